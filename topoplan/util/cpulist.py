# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Helpers for the Linux cpulist notation (``0-19,40-59``) used by
``/sys/devices/system/node/node*/cpulist``, ``taskset -c`` and the
``CPU Affinity`` column of ``nvidia-smi topo -m``.
"""

from typing import Iterable, List, Tuple


def parse_cpulist(cpulist: str) -> Tuple[int, ...]:
    """
    Parses a cpulist string into a sorted tuple of unique core ids.

    .. doctest::

     parse_cpulist("0-3,8") == (0, 1, 2, 3, 8)
     parse_cpulist("40-59,0-19")[:2] == (0, 1)

    Raises:
        ValueError: if a range is malformed or descending
    """
    cores = set()
    for part in cpulist.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo, hi = part.split("-", 1)
            start, end = int(lo), int(hi)
            if end < start:
                raise ValueError(f"descending cpu range `{part}` in `{cpulist}`")
            cores.update(range(start, end + 1))
        else:
            cores.add(int(part))
    return tuple(sorted(cores))


def format_cpulist(cores: Iterable[int]) -> str:
    """
    Inverse of :py:func:`parse_cpulist`, collapses consecutive ids into ranges.

    .. doctest::

     format_cpulist([0, 1, 2, 3, 8]) == "0-3,8"
    """
    ranges: List[str] = []
    ordered = sorted(set(cores))
    i = 0
    while i < len(ordered):
        j = i
        while j + 1 < len(ordered) and ordered[j + 1] == ordered[j] + 1:
            j += 1
        if i == j:
            ranges.append(str(ordered[i]))
        else:
            ranges.append(f"{ordered[i]}-{ordered[j]}")
        i = j + 1
    return ",".join(ranges)

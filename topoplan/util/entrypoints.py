# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict
# pyre-ignore-all-errors[3, 2, 16]

from importlib import metadata
from importlib.metadata import EntryPoint
from typing import Any, Dict, Optional


def _defer_load_ep(ep: EntryPoint) -> object:
    def run(*args: object, **kwargs: object) -> object:
        if ep.attr is None:  # this is a module
            return ep.load()
        else:
            return ep.load()(*args, **kwargs)

    return run


def load_group(
    group: str, default: Optional[Dict[str, Any]] = None, skip_defaults: bool = False
):
    """
    Loads all the entry points specified by ``group`` and returns
    the entry points as a map of ``name (str) -> deferred_load_fn``.
    where the ``deferred_load_fn`` (as the name implies) defers the
    loading of the entrypoint (e.g. ``entrypoint.load()``) until the
    caller explicitly executes the funtion.

    For the following ``entry_point.txt``:

    ::

     [topoplan.named_topologies]
     my_box = my.pkg.topologies:my_box

    1. ``load_group("topoplan.named_topologies")["my_box"]()`` -> equivalent to calling ``my.pkg.topologies.my_box()``
    1. ``load_group("food")`` -> ``None``
    1. ``load_group("food", default={"hello": this.is.c_fn})["hello"]("world")`` -> equivalent to calling ``this.is.c_fn("world")``
    1. ``load_group("food", default={"hello": this.is.c_fn}, skip_defaults=True)`` -> ``None``

    If the entrypoint is a module (versus a function as shown above), then calling the ``deferred_load_fn``
    simply loads the module and ignores any ``*args`` or ``**kwargs`` passed.
    """

    entrypoints = metadata.entry_points().select(group=group)

    if len(entrypoints) == 0:
        if skip_defaults:
            return None
        return default

    eps = {}
    for ep in entrypoints:
        eps[ep.name] = _defer_load_ep(ep)
    return eps

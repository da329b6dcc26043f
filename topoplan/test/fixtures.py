# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Useful test fixtures (classes that you can subclass your python ``unittest.TestCase``)
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from typing import Iterable, List

from topoplan.specs.api import CoreSet, NetworkInterface, WorkerSpec


class TestWithTmpDir(unittest.TestCase):
    """
    A test fixture that creates and destroys (deletes) a temporary test directory for each
    test case. The temporary directory is made available via ``self.tmpdir`` and is only
    valid for the duration of the test case (not the whole test class).

    Usage:

    .. code-block:: python

     class MyTest(TestWithTmpDir):

        def test_foo(self) -> None:
            self.write(".topoplanconfig", ["[cluster]\\n", "protocol = tcp\\n"])
    """

    def setUp(self) -> None:
        self.tmpdir: Path = Path(
            tempfile.mkdtemp(prefix=f"topoplan-{self.__class__.__name__}-")
        )

    def tearDown(self) -> None:
        shutil.rmtree(self.tmpdir)

    def touch(self, filepath: str) -> Path:
        """
        Creates an empty file (and its parent dirs) in the test's tmpdir and
        returns its ``Path``.
        """

        f = self.tmpdir / filepath
        f.parent.mkdir(parents=True, exist_ok=True)

        f.touch()
        return f

    def write(self, filepath: str, content: Iterable[str]) -> Path:
        """
        Writes ``content`` line-by-line into ``filepath`` (relative to the tmpdir).
        """

        f = self.touch(filepath)
        with open(f, "w") as fout:
            fout.writelines(content)
        return f


def worker(
    worker_id: int,
    node: int,
    cores: Iterable[int] = (0,),
    core_set: int = 0,
    group: int = 0,
    interface: str = "ib0",
) -> WorkerSpec:
    """
    Shorthand for a ``WorkerSpec`` in tests that do not go through a planner.
    """
    return WorkerSpec(
        worker_id=worker_id,
        node=node,
        core_set=CoreSet(id=core_set, cores=tuple(cores)),
        interface=NetworkInterface(group=group, name=interface),
    )


def workers_on(nodes: List[int]) -> List[WorkerSpec]:
    return [worker(i, node) for i, node in enumerate(nodes)]

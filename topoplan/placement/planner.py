#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Maps logical workers onto physical accelerators. Each worker receives the
core set and network interface of *its* physical node, no matter which other
nodes are part of the requested subset or in which order they were listed.

.. code-block:: python

 from topoplan.placement import InterfaceNaming, PlacementPlanner
 from topoplan.specs import named_topologies

 planner = PlacementPlanner(named_topologies["dgx1"], InterfaceNaming("mlx5_"))
 workers = planner.plan([5, 2])
 # [WorkerSpec(worker_id=1, node=2, ... interface=NetworkInterface(group=1, name="mlx5_1")),
 #  WorkerSpec(worker_id=0, node=5, ... interface=NetworkInterface(group=2, name="mlx5_2"))]

"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from topoplan.events import log_event
from topoplan.specs.api import (
    CfgVal,
    ConfigurationError,
    CoreSet,
    InternalError,
    NetworkInterface,
    runopts,
    WorkerSpec,
)
from topoplan.specs.topology import TopologyDescriptor
from topoplan.util.types import to_list

log: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterfaceNaming:
    """
    Naming convention of the network interfaces. A proximity group ``g`` is
    named ``f"{prefix}{g + offset}"`` unless explicit ``names`` (indexed by
    group) are given, e.g. the ones reported by
    :py:func:`topoplan.specs.probe.nic_names`.
    """

    prefix: str = "ib"
    offset: int = 0
    names: Optional[Tuple[str, ...]] = None

    def name(self, group: int) -> str:
        if self.names is not None:
            if not 0 <= group < len(self.names):
                raise ConfigurationError(
                    f"no interface name for group {group}, known names: {list(self.names)}"
                )
            return self.names[group]
        return f"{self.prefix}{group + self.offset}"


def parse_visible_devices(value: str) -> List[int]:
    """
    Parses a ``CUDA_VISIBLE_DEVICES`` style string into an accelerator subset.

    .. doctest::

     parse_visible_devices("2,3") == [2, 3]
     parse_visible_devices(" 7, 0 ") == [7, 0]

    Raises:
        ConfigurationError: if an entry is not an integer (e.g. a ``GPU-<uuid>``)
    """
    subset = []
    for entry in to_list(value):
        if not entry:
            continue
        try:
            subset.append(int(entry))
        except ValueError:
            raise ConfigurationError(
                f"`{entry}` in `{value}` is not a device index"
            ) from None
    return subset


class PlacementPlanner:
    """
    Produces one ``WorkerSpec`` per requested accelerator.

    Args:
        topology: the hardware of the host
        naming: naming convention of the network interfaces
    """

    def __init__(
        self,
        topology: TopologyDescriptor,
        naming: Optional[InterfaceNaming] = None,
    ) -> None:
        self._topology = topology
        self._naming: InterfaceNaming = naming or InterfaceNaming()

    @staticmethod
    def run_opts() -> runopts:
        opts = runopts()
        opts.add(
            "interface_prefix",
            type_=str,
            default="ib",
            help="prefix of the network interface names (e.g. ib, mlx5_, eth)",
        )
        opts.add(
            "interface_offset",
            type_=int,
            default=0,
            help="added to the proximity group to derive the interface name suffix",
        )
        opts.add(
            "interface_names",
            type_=List[str],
            default=None,
            help="explicit interface names indexed by proximity group,"
            " takes precedence over interface_prefix",
        )
        return opts

    @classmethod
    def from_cfg(
        cls, topology: TopologyDescriptor, cfg: Mapping[str, CfgVal]
    ) -> "PlacementPlanner":
        resolved = cls.run_opts().resolve(cfg)
        names: Any = resolved["interface_names"]
        naming = InterfaceNaming(
            # pyre-ignore[6]: type checked by runopts.resolve()
            prefix=resolved["interface_prefix"],
            # pyre-ignore[6]: type checked by runopts.resolve()
            offset=resolved["interface_offset"],
            names=tuple(names) if names else None,
        )
        return cls(topology, naming)

    @property
    def topology(self) -> TopologyDescriptor:
        return self._topology

    def affinity(self, node: int) -> Tuple[CoreSet, NetworkInterface]:
        """
        Returns the core set and network interface of the physical ``node``.
        This is a function of the node alone, never of the requested subset.
        """
        self._validate_subset([node])
        return self._resolve(node)

    def _resolve(self, node: int) -> Tuple[CoreSet, NetworkInterface]:
        try:
            core_set = self._topology.core_set_of(node)
            group = self._topology.interface_of(node)
        except ConfigurationError as e:
            raise InternalError(
                f"validated node {node} does not resolve to a core set"
                f" and network interface: {e}"
            ) from e
        return core_set, NetworkInterface(group=group, name=self._naming.name(group))

    def _validate_subset(self, subset: Sequence[int]) -> List[int]:
        nodes = list(subset)
        if not nodes:
            raise ConfigurationError("accelerator subset must not be empty")

        bad_types = [n for n in nodes if not isinstance(n, int) or isinstance(n, bool)]
        if bad_types:
            raise ConfigurationError(
                f"accelerator subset {nodes} has non-integer entries {bad_types}"
            )

        duplicates = sorted(n for n, count in Counter(nodes).items() if count > 1)
        if duplicates:
            raise ConfigurationError(
                f"accelerator subset {nodes} has duplicate entries {duplicates}"
            )

        num_nodes = self._topology.num_nodes
        out_of_range = [n for n in nodes if not 0 <= n < num_nodes]
        if out_of_range:
            raise ConfigurationError(
                f"accelerator subset {nodes} references {out_of_range} outside of"
                f" the topology's nodes 0..{num_nodes - 1}"
            )
        return nodes

    def plan(
        self,
        subset: Optional[Sequence[int]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> List[WorkerSpec]:
        """
        Binds one worker to each node of ``subset``.

        Worker ``i`` is bound to ``subset[i]``; the returned list is ordered by
        physical node index. The caller's order only decides the worker ids.

        Args:
            subset: physical accelerator indices to activate, all nodes if ``None``
            env: environment overrides given to every worker

        Raises:
            ConfigurationError: if the subset is empty, has duplicates or
                references a node outside of the topology
        """
        if subset is None:
            subset = [n.index for n in self._topology.all_nodes()]

        with log_event(
            "plan",
            num_nodes=self._topology.num_nodes,
            metadata={"subset": ",".join(str(n) for n in subset)},
        ) as ctx:
            nodes = self._validate_subset(subset)
            worker_ids = {node: worker_id for worker_id, node in enumerate(nodes)}

            workers = []
            for node in sorted(nodes):
                core_set, interface = self._resolve(node)
                worker = WorkerSpec(
                    worker_id=worker_ids[node],
                    node=node,
                    core_set=core_set,
                    interface=interface,
                    env=dict(env or {}),
                )
                log.info(
                    f"worker {worker.worker_id} -> node {node},"
                    f" core set {core_set.id}, interface {interface.name}"
                )
                workers.append(worker)

            ctx.event.num_workers = len(workers)
            return workers

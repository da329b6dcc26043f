#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Renders the placement decided by :py:class:`topoplan.placement.PlacementPlanner`
into launch descriptors that an external process supervisor consumes to spawn
the workers and the scheduler. Nothing is spawned here.

The output is a pure function of the inputs: the same workers, memory, thread
count and transport hints always serialize to the same bytes.

.. code-block:: python

 builder = ClusterSpecBuilder(protocol="ucx")
 spec = builder.build(
     workers,
     total_memory=512 * GiB,
     threads_per_worker=4,
     transports=["cuda_ipc", "cuda_copy", "tcp"],
 )
 print(spec)  # yaml

"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from topoplan.events import log_event
from topoplan.specs.api import (
    CfgVal,
    ConfigurationError,
    InternalError,
    runopts,
    WorkerSpec,
)

log: logging.Logger = logging.getLogger(__name__)

GiB: int = 1024**3

DEFAULT_PROTOCOL = "ucx"
DEFAULT_SCHEDULER_PORT = 8786

VISIBLE_DEVICES_ENV = "CUDA_VISIBLE_DEVICES"
TRANSPORTS_ENV = "UCX_TLS"
NET_DEVICES_ENV = "UCX_NET_DEVICES"


@dataclass(frozen=True)
class WorkerLaunchSpec:
    """
    Everything the supervisor needs to spawn one worker.

    Args:
        worker_id: logical worker id
        node: physical accelerator index
        cores: cpu ids the process must be pinned to
        nthreads: number of compute threads of the worker
        env: environment of the process (on top of the supervisor's)
        interface: network interface name the worker listens on
        listen_address: ``{protocol}://{interface}:{port}``
        memory_limit_bytes: host memory limit of the worker
    """

    worker_id: int
    node: int
    cores: Tuple[int, ...]
    nthreads: int
    env: Mapping[str, str]
    interface: str
    listen_address: str
    memory_limit_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.worker_id,
            "node": self.node,
            "cores": list(self.cores),
            "nthreads": self.nthreads,
            "env": dict(self.env),
            "interface": self.interface,
            "listenAddress": self.listen_address,
            "memoryLimitBytes": self.memory_limit_bytes,
        }


@dataclass(frozen=True)
class SchedulerLaunchSpec:
    listen_address: str
    interface: str

    def to_dict(self) -> Dict[str, Any]:
        return {"listenAddress": self.listen_address, "interface": self.interface}


@dataclass(frozen=True)
class ClusterLaunchSpec:
    """
    One launch descriptor per worker plus exactly one for the scheduler.
    ``repr()`` returns the serialized (yaml) form.
    """

    scheduler: SchedulerLaunchSpec
    workers: Tuple[WorkerLaunchSpec, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scheduler": self.scheduler.to_dict(),
            "workers": [w.to_dict() for w in self.workers],
        }

    def serialize(self) -> str:
        return yaml.safe_dump(
            self.to_dict(), sort_keys=True, default_flow_style=False
        )

    def __repr__(self) -> str:
        return self.serialize()


def visible_devices(worker_id: int, subset: Sequence[int]) -> str:
    """
    Returns the ``CUDA_VISIBLE_DEVICES`` value of worker ``worker_id``: the
    subset rotated so that the worker's own device is listed first (and
    hence becomes device 0 of the worker process) while the others stay
    visible for peer-to-peer transfers.

    .. doctest::

     visible_devices(0, [2, 3, 5]) == "2,3,5"
     visible_devices(2, [2, 3, 5]) == "5,2,3"
    """
    nodes = list(subset)
    return ",".join(str(n) for n in nodes[worker_id:] + nodes[:worker_id])


class ClusterSpecBuilder:
    """
    Args:
        protocol: scheme of the listen addresses (``ucx``, ``tcp``, ...)
        scheduler_port: port of the scheduler
        worker_port_start: worker ``i`` listens on ``worker_port_start + i``,
            if ``None`` workers listen on port ``0`` (chosen at startup)
        transports: default transport hints when ``build()`` is not given any
        transports_env: env var carrying the transport hints
        net_devices_env: env var carrying the bound network interface
        visible_devices_env: env var restricting the visible accelerators
    """

    def __init__(
        self,
        protocol: str = DEFAULT_PROTOCOL,
        scheduler_port: int = DEFAULT_SCHEDULER_PORT,
        worker_port_start: Optional[int] = None,
        transports: Optional[Sequence[str]] = None,
        transports_env: str = TRANSPORTS_ENV,
        net_devices_env: str = NET_DEVICES_ENV,
        visible_devices_env: str = VISIBLE_DEVICES_ENV,
    ) -> None:
        if not 0 <= scheduler_port <= 65535:
            raise ConfigurationError(f"invalid scheduler port: {scheduler_port}")
        if worker_port_start is not None and not 0 < worker_port_start <= 65535:
            raise ConfigurationError(f"invalid worker port start: {worker_port_start}")
        self._protocol = protocol
        self._scheduler_port = scheduler_port
        self._worker_port_start = worker_port_start
        self._transports: List[str] = list(transports or [])
        self._transports_env = transports_env
        self._net_devices_env = net_devices_env
        self._visible_devices_env = visible_devices_env

    @staticmethod
    def run_opts() -> runopts:
        opts = runopts()
        opts.add(
            "protocol",
            type_=str,
            default=DEFAULT_PROTOCOL,
            help="scheme of the listen addresses",
        )
        opts.add(
            "scheduler_port",
            type_=int,
            default=DEFAULT_SCHEDULER_PORT,
            help="port the scheduler listens on",
        )
        opts.add(
            "worker_port_start",
            type_=int,
            default=None,
            help="first worker port (worker i uses start + i), unset for ephemeral ports",
        )
        opts.add(
            "transports",
            type_=List[str],
            default=None,
            help="ordered transport preference (e.g. cuda_ipc;cuda_copy;tcp)",
        )
        opts.add(
            "transports_env",
            type_=str,
            default=TRANSPORTS_ENV,
            help="env var carrying the transport preference",
        )
        opts.add(
            "net_devices_env",
            type_=str,
            default=NET_DEVICES_ENV,
            help="env var carrying the worker's network interface",
        )
        opts.add(
            "visible_devices_env",
            type_=str,
            default=VISIBLE_DEVICES_ENV,
            help="env var restricting the accelerators visible to a worker",
        )
        return opts

    @classmethod
    def from_cfg(cls, cfg: Mapping[str, CfgVal]) -> "ClusterSpecBuilder":
        opts = cls.run_opts()
        resolved = opts.resolve(cfg)
        # pyre-ignore[6]: types checked by runopts.resolve()
        return cls(**{name: resolved[name] for name, _ in opts})

    def _check_bijection(self, workers: Sequence[WorkerSpec]) -> None:
        worker_ids = sorted(w.worker_id for w in workers)
        if worker_ids != list(range(len(workers))):
            raise InternalError(
                f"worker ids {worker_ids} are not 0..{len(workers) - 1}"
            )
        nodes = [w.node for w in workers]
        if len(set(nodes)) != len(nodes):
            raise InternalError(f"workers bound to the same node: {nodes}")

    def _memory_limit(self, worker: WorkerSpec, share: int) -> int:
        cap = worker.memory_limit_bytes
        if cap is None:
            return share
        if isinstance(cap, bool) or not isinstance(cap, int) or cap <= 0:
            raise ConfigurationError(
                f"worker {worker.worker_id}: memory limit must be a positive int,"
                f" got `{cap}`"
            )
        return min(cap, share)

    def _port(self, worker_id: int) -> int:
        if self._worker_port_start is None:
            return 0
        return self._worker_port_start + worker_id

    def build(
        self,
        workers: Sequence[WorkerSpec],
        total_memory: int,
        threads_per_worker: int = 1,
        transports: Optional[Sequence[str]] = None,
    ) -> ClusterLaunchSpec:
        """
        Renders the launch descriptors of ``workers``.

        Args:
            workers: output of ``PlacementPlanner.plan()``
            total_memory: host memory (bytes) to split evenly among the workers,
                workers with a lower ``memory_limit_bytes`` keep their own limit
            threads_per_worker: compute threads of each worker
            transports: ordered transport preference, overrides the default

        Raises:
            ConfigurationError: if there are no workers, the per-worker memory
                limit would not be positive or the thread count is not positive
            InternalError: if the workers are not a bijection onto their nodes
        """
        with log_event("build", num_workers=len(workers)):
            if len(workers) == 0:
                raise ConfigurationError("cannot build a cluster with zero workers")
            if isinstance(total_memory, bool) or not isinstance(total_memory, int):
                raise ConfigurationError(
                    f"total memory must be an int number of bytes, got `{total_memory}`"
                )
            memory_limit = total_memory // len(workers)
            if memory_limit <= 0:
                raise ConfigurationError(
                    f"total memory {total_memory} split across {len(workers)} workers"
                    f" gives a non-positive memory limit ({memory_limit})"
                )
            if threads_per_worker < 1:
                raise ConfigurationError(
                    f"threads per worker must be positive, got {threads_per_worker}"
                )
            hints = list(self._transports if transports is None else transports)
            if any(not h or "," in h for h in hints):
                raise ConfigurationError(f"invalid transport hints: {hints}")

            self._check_bijection(workers)

            # the caller's subset order, recovered from the worker ids
            subset = [w.node for w in sorted(workers, key=lambda w: w.worker_id)]

            launch_specs = []
            for w in workers:
                env: Dict[str, str] = {
                    self._visible_devices_env: visible_devices(w.worker_id, subset),
                    self._net_devices_env: w.interface.name,
                }
                if hints:
                    env[self._transports_env] = ",".join(hints)
                env.update(w.env)

                launch_specs.append(
                    WorkerLaunchSpec(
                        worker_id=w.worker_id,
                        node=w.node,
                        cores=w.core_set.cores,
                        nthreads=threads_per_worker,
                        env=dict(sorted(env.items())),
                        interface=w.interface.name,
                        listen_address=f"{self._protocol}://{w.interface.name}:{self._port(w.worker_id)}",
                        memory_limit_bytes=self._memory_limit(w, memory_limit),
                    )
                )

            head = min(workers, key=lambda w: w.worker_id)
            scheduler = SchedulerLaunchSpec(
                listen_address=f"{self._protocol}://{head.interface.name}:{self._scheduler_port}",
                interface=head.interface.name,
            )
            log.info(
                f"built {len(launch_specs)} worker launch specs"
                f" (up to {memory_limit} bytes each), scheduler at {scheduler.listen_address}"
            )
            return ClusterLaunchSpec(scheduler=scheduler, workers=tuple(launch_specs))

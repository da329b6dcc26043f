#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Learns the bandwidth between pairs of workers from observed transfers.

Samples are appended to a bounded window per ``(source, dest[, data class])``
key and never mutated; estimates are recomputed from the window on every
query. Each window has its own lock so reporters and readers of different
keys never contend, and there is no global lock on the hot path.

Keys that have no samples yet resolve to the nominal bandwidth of the link
class between the workers' physical nodes (see ``NOMINAL_BANDWIDTH``).
"""

import dataclasses
import logging
import threading
import time
from collections import deque
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
)

import numpy as np

from topoplan.bandwidth.api import (
    BandwidthEstimate,
    BandwidthKey,
    BandwidthSample,
    DEFAULT_MIN_BYTES,
    DEFAULT_WINDOW_SIZE,
    IngestionStats,
    MalformedSampleError,
    NOMINAL_BANDWIDTH,
)
from topoplan.specs.api import (
    CfgVal,
    ConfigurationError,
    LinkClass,
    runopts,
    WorkerSpec,
)
from topoplan.specs.topology import TopologyDescriptor

log: logging.Logger = logging.getLogger(__name__)


class _SampleWindow:
    """
    The most recent samples of one key, oldest first.
    """

    def __init__(self, size: int) -> None:
        self._lock = threading.Lock()
        self._size = size
        self._samples: Deque[BandwidthSample] = deque(maxlen=size)

    def _expire(self, horizon_us: Optional[int]) -> int:
        # must hold the lock
        if horizon_us is None:
            return 0
        # pyre-ignore[58]: samples are stamped before they get here
        keep = [s for s in self._samples if s.timestamp_us >= horizon_us]
        expired = len(self._samples) - len(keep)
        if expired:
            self._samples = deque(keep, maxlen=self._size)
        return expired

    def append(self, sample: BandwidthSample, horizon_us: Optional[int]) -> int:
        """
        Appends ``sample`` and returns the number of samples evicted.
        """
        with self._lock:
            evicted = 1 if len(self._samples) == self._size else 0
            self._samples.append(sample)
            return evicted + self._expire(horizon_us)

    def bandwidths(self, horizon_us: Optional[int]) -> Tuple[List[float], int]:
        """
        Returns the bandwidths of the active samples and the number of
        samples that aged out.
        """
        with self._lock:
            expired = self._expire(horizon_us)
            return [s.bandwidth for s in self._samples], expired


class BandwidthModel:
    """
    Args:
        topology: hardware of the host, used for cold-start defaults
        workers: the workers planned on ``topology``, maps worker ids to nodes
        window_size: maximum number of samples kept per key
        max_age: samples older than this (seconds) are evicted, ``None`` to
            only bound the window by size
        min_bytes: samples of smaller transfers are discarded at ingestion
        nominal_bandwidth: per link class overrides of ``NOMINAL_BANDWIDTH``
        clock: returns the current epoch time in seconds

    Raises:
        ConfigurationError: on non-positive window size, max age or nominal
            bandwidth, or a negative ``min_bytes``
    """

    def __init__(
        self,
        topology: TopologyDescriptor,
        workers: Iterable[WorkerSpec],
        window_size: int = DEFAULT_WINDOW_SIZE,
        max_age: Optional[float] = None,
        min_bytes: int = DEFAULT_MIN_BYTES,
        nominal_bandwidth: Optional[Mapping[LinkClass, float]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window_size < 1:
            raise ConfigurationError(f"window size must be positive, got {window_size}")
        if max_age is not None and max_age <= 0:
            raise ConfigurationError(f"max age must be positive, got {max_age}")
        if min_bytes < 0:
            raise ConfigurationError(f"min bytes must not be negative, got {min_bytes}")

        nominal = {**NOMINAL_BANDWIDTH, **(nominal_bandwidth or {})}
        for link_class, bw in nominal.items():
            if bw <= 0:
                raise ConfigurationError(
                    f"nominal bandwidth of `{link_class}` must be positive, got {bw}"
                )

        self._topology = topology
        self._nodes: Dict[int, int] = {w.worker_id: w.node for w in workers}
        self._window_size = window_size
        self._max_age = max_age
        self._min_bytes = min_bytes
        self._nominal: Dict[LinkClass, float] = nominal
        self._clock = clock

        self._windows: Dict[BandwidthKey, _SampleWindow] = {}
        self._windows_lock = threading.Lock()
        self._stats = IngestionStats()
        self._stats_lock = threading.Lock()

    @staticmethod
    def run_opts() -> runopts:
        opts = runopts()
        opts.add(
            "window_size",
            type_=int,
            default=DEFAULT_WINDOW_SIZE,
            help="maximum number of samples kept per worker pair (and data class)",
        )
        opts.add(
            "max_age",
            type_=float,
            default=None,
            help="seconds after which a sample is evicted, unset to bound by count only",
        )
        opts.add(
            "min_bytes",
            type_=int,
            default=DEFAULT_MIN_BYTES,
            help="transfers smaller than this are not sampled",
        )
        return opts

    @classmethod
    def from_cfg(
        cls,
        topology: TopologyDescriptor,
        workers: Iterable[WorkerSpec],
        cfg: Mapping[str, CfgVal],
        clock: Callable[[], float] = time.time,
    ) -> "BandwidthModel":
        resolved = cls.run_opts().resolve(cfg)
        max_age: Any = resolved["max_age"]
        return cls(
            topology,
            workers,
            # pyre-ignore[6]: type checked by runopts.resolve()
            window_size=resolved["window_size"],
            max_age=None if max_age is None else float(max_age),
            # pyre-ignore[6]: type checked by runopts.resolve()
            min_bytes=resolved["min_bytes"],
            clock=clock,
        )

    def _now_us(self) -> int:
        return int(self._clock() * 1_000_000)

    def _horizon_us(self) -> Optional[int]:
        if self._max_age is None:
            return None
        return self._now_us() - int(self._max_age * 1_000_000)

    def _count(self, **deltas: int) -> None:
        with self._stats_lock:
            for name, delta in deltas.items():
                setattr(self._stats, name, getattr(self._stats, name) + delta)

    def _window(self, key: BandwidthKey) -> _SampleWindow:
        window = self._windows.get(key)
        if window is None:
            with self._windows_lock:
                window = self._windows.setdefault(key, _SampleWindow(self._window_size))
        return window

    def add(self, sample: BandwidthSample) -> bool:
        """
        Ingests one sample. Returns ``True`` if it was accepted, ``False`` if
        it was dropped for being malformed or undersized. Never raises.
        """
        if not isinstance(sample, BandwidthSample) or not sample.is_wellformed():
            log.debug(f"dropping malformed bandwidth sample: {sample}")
            self._count(malformed=1)
            return False
        if sample.nbytes < self._min_bytes:
            log.debug(
                f"dropping {sample.nbytes} byte sample ({sample.source_id} -> {sample.dest_id}),"
                f" smaller than {self._min_bytes} bytes"
            )
            self._count(undersized=1)
            return False

        if sample.timestamp_us is None:
            sample = dataclasses.replace(sample, timestamp_us=self._now_us())

        key = (sample.source_id, sample.dest_id, sample.data_class)
        evicted = self._window(key).append(sample, self._horizon_us())
        self._count(accepted=1, evicted=evicted)
        return True

    def ingest(self, record: Mapping[str, Any]) -> bool:
        """
        Ingests one ``{sourceId, destId, bytes, elapsedMicros, dataClass?,
        timestampMicros?}`` record as reported over the wire. Malformed
        records are counted and dropped, never raised.
        """
        if not isinstance(record, Mapping):
            log.debug(f"dropping non-mapping bandwidth record: {record}")
            self._count(malformed=1)
            return False
        try:
            sample = BandwidthSample.from_record(record)
        except MalformedSampleError as e:
            log.debug(f"dropping malformed bandwidth record: {e}")
            self._count(malformed=1)
            return False
        return self.add(sample)

    def ingest_many(self, records: Iterable[Mapping[str, Any]]) -> int:
        """
        Ingests ``records`` and returns how many were accepted.
        """
        return sum(1 for record in records if self.ingest(record))

    def link_class(self, source_id: int, dest_id: int) -> LinkClass:
        """
        Link class between the nodes of two workers. Workers that are not
        part of this host's plan are reached over the external fabric.
        """
        if source_id == dest_id:
            return LinkClass.X
        src_node = self._nodes.get(source_id)
        dst_node = self._nodes.get(dest_id)
        if src_node is None or dst_node is None:
            return LinkClass.NET
        return self._topology.link_class(src_node, dst_node)

    def default_estimate(self, source_id: int, dest_id: int) -> BandwidthEstimate:
        link_class = self.link_class(source_id, dest_id)
        bw = self._nominal[link_class]
        return BandwidthEstimate(
            p25=bw,
            p50=bw,
            p75=bw,
            sample_count=0,
            link_class=link_class,
            is_default=True,
        )

    def query(
        self, source_id: int, dest_id: int, data_class: Optional[str] = None
    ) -> BandwidthEstimate:
        """
        Returns the p25/p50/p75 (linearly interpolated) of the active window
        of ``(source_id, dest_id, data_class)``. Tagged and untagged samples
        live in separate windows, so a key without active samples gets the
        nominal bandwidth of the pair's link class. Always returns an estimate.
        """
        window = self._windows.get((source_id, dest_id, data_class))
        if window is None:
            return self.default_estimate(source_id, dest_id)

        values, expired = window.bandwidths(self._horizon_us())
        if expired:
            self._count(evicted=expired)
        if not values:
            return self.default_estimate(source_id, dest_id)

        p25, p50, p75 = np.percentile(np.asarray(values, dtype=float), [25, 50, 75])
        return BandwidthEstimate(
            p25=float(p25),
            p50=float(p50),
            p75=float(p75),
            sample_count=len(values),
            link_class=self.link_class(source_id, dest_id),
        )

    def keys(self) -> List[BandwidthKey]:
        """
        Returns the keys that received samples, in a stable order.
        """
        with self._windows_lock:
            keys = list(self._windows.keys())
        return sorted(keys, key=lambda k: (k[0], k[1], k[2] or ""))

    def stats(self) -> IngestionStats:
        """
        Returns a snapshot of the ingestion counters.
        """
        with self._stats_lock:
            return dataclasses.replace(self._stats)

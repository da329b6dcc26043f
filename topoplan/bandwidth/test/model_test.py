#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

import threading
import unittest
from typing import List, Optional

from topoplan.bandwidth.api import (
    BandwidthSample,
    MalformedSampleError,
    NOMINAL_BANDWIDTH,
)
from topoplan.bandwidth.model import BandwidthModel
from topoplan.placement.planner import PlacementPlanner
from topoplan.specs import named_topologies
from topoplan.specs.api import ConfigurationError, LinkClass, WorkerSpec

MB = 1_000_000


def sample(
    src: int,
    dst: int,
    mb_per_s: float,
    data_class: Optional[str] = None,
    nbytes: int = 100 * MB,
) -> BandwidthSample:
    return BandwidthSample(
        source_id=src,
        dest_id=dst,
        nbytes=nbytes,
        elapsed_us=nbytes / mb_per_s,
        data_class=data_class,
    )


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class BandwidthSampleTest(unittest.TestCase):
    def test_bandwidth(self) -> None:
        s = BandwidthSample(source_id=0, dest_id=1, nbytes=2 * MB, elapsed_us=1_000)
        self.assertEqual(2e9, s.bandwidth)
        self.assertTrue(s.is_wellformed())

    def test_from_record(self) -> None:
        s = BandwidthSample.from_record(
            {
                "sourceId": 3,
                "destId": 1,
                "bytes": 4 * MB,
                "elapsedMicros": 2000,
                "dataClass": "cupy.ndarray",
                "timestampMicros": 1.5e15,
            }
        )
        self.assertEqual(
            BandwidthSample(
                source_id=3,
                dest_id=1,
                nbytes=4 * MB,
                elapsed_us=2000,
                data_class="cupy.ndarray",
                timestamp_us=1_500_000_000_000_000,
            ),
            s,
        )
        snake = BandwidthSample.from_record(
            {"source_id": 3, "dest_id": 1, "nbytes": 4 * MB, "elapsed_us": 2000}
        )
        self.assertIsNone(snake.data_class)
        self.assertEqual(2e9, snake.bandwidth)

    def test_from_record_malformed(self) -> None:
        good = {"sourceId": 0, "destId": 1, "bytes": MB, "elapsedMicros": 10}
        for bad in [
            {k: v for k, v in good.items() if k != "destId"},
            {**good, "sourceId": "0"},
            {**good, "destId": True},
            {**good, "bytes": 0},
            {**good, "elapsedMicros": -1},
            {**good, "elapsedMicros": "10"},
            {**good, "dataClass": 7},
            {**good, "timestampMicros": "now"},
        ]:
            with self.subTest(record=bad):
                with self.assertRaises(MalformedSampleError):
                    BandwidthSample.from_record(bad)


class BandwidthModelTest(unittest.TestCase):
    def setUp(self) -> None:
        self.topo = named_topologies["dual_socket.8gpu"]
        self.workers: List[WorkerSpec] = PlacementPlanner(self.topo).plan()
        self.model = BandwidthModel(self.topo, self.workers)

    def test_quantiles(self) -> None:
        for mb_per_s in [400, 100, 300, 200]:
            self.assertTrue(self.model.add(sample(0, 1, mb_per_s)))

        est = self.model.query(0, 1)
        self.assertAlmostEqual(175e6, est.p25, delta=1.0)
        self.assertAlmostEqual(250e6, est.p50, delta=1.0)
        self.assertAlmostEqual(325e6, est.p75, delta=1.0)
        self.assertEqual(4, est.sample_count)
        self.assertFalse(est.is_default)
        self.assertEqual(LinkClass.NV, est.link_class)
        self.assertEqual(
            {"p25": est.p25, "p50": est.p50, "p75": est.p75, "sampleCount": 4},
            est.to_dict(),
        )

    def test_single_sample(self) -> None:
        self.model.add(sample(2, 6, 500))
        est = self.model.query(2, 6)
        self.assertAlmostEqual(500e6, est.p25, delta=1.0)
        self.assertAlmostEqual(500e6, est.p75, delta=1.0)

    def test_cold_start(self) -> None:
        est = self.model.query(0, 1)
        self.assertTrue(est.is_default)
        self.assertEqual(0, est.sample_count)
        self.assertEqual(NOMINAL_BANDWIDTH[LinkClass.NV], est.p50)
        self.assertEqual(est.p25, est.p75)

        self.assertEqual(NOMINAL_BANDWIDTH[LinkClass.SYS], self.model.query(0, 5).p50)
        self.assertEqual(NOMINAL_BANDWIDTH[LinkClass.X], self.model.query(3, 3).p50)
        self.assertGreater(self.model.query(0, 1).p50, self.model.query(0, 5).p50)

    def test_unknown_worker_is_remote(self) -> None:
        self.assertEqual(LinkClass.NET, self.model.link_class(0, 42))
        est = self.model.query(42, 0)
        self.assertEqual(LinkClass.NET, est.link_class)
        self.assertEqual(NOMINAL_BANDWIDTH[LinkClass.NET], est.p50)

    def test_directional(self) -> None:
        self.model.add(sample(0, 1, 100))
        self.assertFalse(self.model.query(0, 1).is_default)
        self.assertTrue(self.model.query(1, 0).is_default)

    def test_undersized(self) -> None:
        self.assertFalse(self.model.add(sample(0, 1, 100, nbytes=MB - 1)))
        self.assertTrue(self.model.add(sample(0, 1, 100, nbytes=MB)))
        self.assertEqual(1, self.model.query(0, 1).sample_count)
        stats = self.model.stats()
        self.assertEqual(1, stats.undersized)
        self.assertEqual(1, stats.accepted)

    def test_malformed_never_raises(self) -> None:
        self.assertFalse(
            self.model.add(
                BandwidthSample(source_id=0, dest_id=1, nbytes=10 * MB, elapsed_us=0)
            )
        )
        # pyre-ignore[6]: invalid on purpose
        self.assertFalse(self.model.add({"sourceId": 0}))
        self.assertFalse(self.model.ingest({"sourceId": 0, "destId": 1}))
        # pyre-ignore[6]: invalid on purpose
        self.assertFalse(self.model.ingest("0->1 100MB"))
        self.assertFalse(
            self.model.ingest(
                {"sourceId": 0, "destId": 1, "bytes": -5, "elapsedMicros": 1}
            )
        )
        self.assertEqual(5, self.model.stats().malformed)
        self.assertEqual(0, self.model.stats().accepted)
        self.assertTrue(self.model.query(0, 1).is_default)

    def test_ingest_many(self) -> None:
        records = [
            {"sourceId": 0, "destId": 1, "bytes": 100 * MB, "elapsedMicros": 1e6},
            {"sourceId": 0, "destId": 1, "bytes": 10, "elapsedMicros": 1},
            {"sourceId": 0, "destId": 1},
            {"sourceId": 0, "destId": 1, "bytes": 300 * MB, "elapsedMicros": 1e6},
        ]
        self.assertEqual(2, self.model.ingest_many(records))
        self.assertAlmostEqual(200e6, self.model.query(0, 1).p50, delta=1.0)
        self.assertEqual(
            {"accepted": 2, "malformed": 1, "undersized": 1, "evicted": 0},
            self.model.stats().to_dict(),
        )

    def test_window_eviction(self) -> None:
        model = BandwidthModel(self.topo, self.workers, window_size=3)
        for mb_per_s in [1, 2, 3, 4, 5]:
            model.add(sample(0, 4, mb_per_s * 100))
        est = model.query(0, 4)
        self.assertEqual(3, est.sample_count)
        self.assertAlmostEqual(400e6, est.p50, delta=1.0)
        self.assertEqual(2, model.stats().evicted)

    def test_data_class(self) -> None:
        for mb_per_s in [1000, 1000, 1000]:
            self.model.add(sample(0, 1, mb_per_s, data_class="cupy.ndarray"))
        self.model.add(sample(0, 1, 100))

        tagged = self.model.query(0, 1, "cupy.ndarray")
        self.assertAlmostEqual(1000e6, tagged.p50, delta=1.0)
        self.assertEqual(3, tagged.sample_count)

        untagged = self.model.query(0, 1)
        self.assertEqual(1, untagged.sample_count)
        self.assertAlmostEqual(100e6, untagged.p50, delta=1.0)

        # a class without samples starts from the link class default
        self.assertEqual(
            self.model.default_estimate(0, 1),
            self.model.query(0, 1, "pandas.DataFrame"),
        )
        self.assertTrue(self.model.query(0, 2, "cupy.ndarray").is_default)

    def test_unseen_data_class_cold_starts(self) -> None:
        self.model.add(sample(0, 1, 100))
        est = self.model.query(0, 1, "pandas.DataFrame")
        self.assertEqual(0, est.sample_count)
        self.assertTrue(est.is_default)
        self.assertEqual(LinkClass.NV, est.link_class)
        self.assertEqual(NOMINAL_BANDWIDTH[LinkClass.NV], est.p50)

    def test_tagged_eviction_counted_once(self) -> None:
        model = BandwidthModel(self.topo, self.workers, window_size=1)
        model.add(sample(0, 1, 100, data_class="cupy.ndarray"))
        model.add(sample(0, 1, 200, data_class="cupy.ndarray"))
        model.add(sample(0, 1, 300))

        stats = model.stats()
        self.assertEqual(3, stats.accepted)
        self.assertEqual(1, stats.evicted)
        live = sum(model.query(*key).sample_count for key in model.keys())
        self.assertEqual(stats.accepted - stats.evicted, live)

    def test_max_age(self) -> None:
        clock = FakeClock(1_000.0)
        model = BandwidthModel(self.topo, self.workers, max_age=10, clock=clock)

        model.add(sample(0, 1, 100))
        clock.now = 1_005.0
        model.add(sample(0, 1, 300))
        self.assertAlmostEqual(200e6, model.query(0, 1).p50, delta=1.0)

        clock.now = 1_012.0
        est = model.query(0, 1)
        self.assertEqual(1, est.sample_count)
        self.assertAlmostEqual(300e6, est.p50, delta=1.0)
        self.assertEqual(1, model.stats().evicted)

        clock.now = 1_100.0
        self.assertTrue(model.query(0, 1).is_default)
        self.assertEqual(2, model.stats().evicted)

    def test_explicit_timestamp(self) -> None:
        clock = FakeClock(1_000.0)
        model = BandwidthModel(self.topo, self.workers, max_age=10, clock=clock)
        stale = BandwidthSample(
            source_id=0,
            dest_id=1,
            nbytes=100 * MB,
            elapsed_us=1e6,
            timestamp_us=900 * 1_000_000,
        )
        self.assertTrue(model.add(stale))
        self.assertTrue(model.query(0, 1).is_default)

    def test_nominal_override(self) -> None:
        model = BandwidthModel(
            self.topo, self.workers, nominal_bandwidth={LinkClass.SYS: 1e9}
        )
        self.assertEqual(1e9, model.query(0, 7).p50)
        self.assertEqual(NOMINAL_BANDWIDTH[LinkClass.NV], model.query(0, 1).p50)

    def test_invalid_config(self) -> None:
        for kwargs in [
            {"window_size": 0},
            {"max_age": 0},
            {"max_age": -1.0},
            {"min_bytes": -1},
            {"nominal_bandwidth": {LinkClass.NV: 0}},
        ]:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ConfigurationError):
                    # pyre-ignore[6]
                    BandwidthModel(self.topo, self.workers, **kwargs)

    def test_from_cfg(self) -> None:
        clock = FakeClock()
        model = BandwidthModel.from_cfg(
            self.topo,
            self.workers,
            {"window_size": 2, "max_age": 5, "min_bytes": 0},
            clock=clock,
        )
        model.add(sample(0, 1, 1, nbytes=10))
        for mb_per_s in [10, 20, 30]:
            model.add(sample(0, 1, mb_per_s))
        self.assertEqual(2, model.query(0, 1).sample_count)
        self.assertEqual(0, model.stats().undersized)

        clock.now += 6
        self.assertTrue(model.query(0, 1).is_default)

    def test_from_cfg_defaults(self) -> None:
        model = BandwidthModel.from_cfg(self.topo, self.workers, {})
        self.assertFalse(model.add(sample(0, 1, 100, nbytes=MB // 2)))

    def test_keys(self) -> None:
        self.model.add(sample(3, 1, 100, data_class="b"))
        self.model.add(sample(0, 2, 100))
        self.model.add(sample(3, 1, 100, data_class="a"))
        self.assertEqual([(0, 2, None), (3, 1, "a"), (3, 1, "b")], self.model.keys())

    def test_stats_snapshot(self) -> None:
        stats = self.model.stats()
        stats.accepted = 100
        self.assertEqual(0, self.model.stats().accepted)

    def test_concurrent_ingestion(self) -> None:
        num_threads = 8
        per_thread = 150
        shared = (0, 7)
        errors: List[Exception] = []
        start = threading.Barrier(num_threads + 1)
        done = threading.Event()

        def report(worker_id: int) -> None:
            try:
                start.wait()
                for i in range(per_thread):
                    self.model.add(sample(worker_id, (worker_id + 1) % 8, 100 + i))
                    self.model.add(sample(*shared, 100 + i))
            except Exception as e:
                errors.append(e)

        def read() -> None:
            try:
                start.wait()
                while not done.is_set():
                    self.model.query(*shared)
                    self.model.query(3, 4)
                    self.model.stats()
            except Exception as e:
                errors.append(e)

        reporters = [
            threading.Thread(target=report, args=(i,)) for i in range(num_threads)
        ]
        reader = threading.Thread(target=read)
        for t in reporters:
            t.start()
        reader.start()
        for t in reporters:
            t.join()
        done.set()
        reader.join()

        self.assertEqual([], errors)
        stats = self.model.stats()
        self.assertEqual(2 * num_threads * per_thread, stats.accepted)
        self.assertEqual(100, self.model.query(*shared).sample_count)
        self.assertEqual(100, self.model.query(3, 4).sample_count)
        # every window is capped at 100 samples
        self.assertEqual(
            (num_threads * per_thread - 100) + num_threads * (per_thread - 100),
            stats.evicted,
        )

#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from topoplan.specs.api import LinkClass

# transfers smaller than this are latency dominated
DEFAULT_MIN_BYTES: int = 1_000_000
DEFAULT_WINDOW_SIZE: int = 100

GB: float = 1e9

# nominal bytes/s per link class, used until a pair has samples
NOMINAL_BANDWIDTH: Mapping[LinkClass, float] = {
    LinkClass.X: 1000 * GB,  # device memory copy
    LinkClass.NV: 150 * GB,
    LinkClass.PIX: 24 * GB,  # PCIe gen4 x16
    LinkClass.PXB: 20 * GB,
    LinkClass.PHB: 16 * GB,
    LinkClass.NODE: 12 * GB,
    LinkClass.SYS: 9 * GB,
    LinkClass.NET: 6 * GB,  # 50 Gb/s class fabric
}

# (source worker id, dest worker id, data class)
BandwidthKey = Tuple[int, int, Optional[str]]


class MalformedSampleError(ValueError):
    """
    Raised by :py:meth:`BandwidthSample.from_record` for records that cannot
    be turned into a sample. Never escapes ``BandwidthModel`` ingestion.
    """


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class BandwidthSample:
    """
    One observed transfer between two workers.

    Args:
        source_id: worker id of the sender
        dest_id: worker id of the receiver
        nbytes: bytes transferred
        elapsed_us: duration of the transfer in microseconds
        data_class: optional tag of the payload type (e.g. ``"cupy.ndarray"``)
        timestamp_us: epoch time of the observation in microseconds,
            stamped at ingestion when ``None``
    """

    source_id: int
    dest_id: int
    nbytes: int
    elapsed_us: float
    data_class: Optional[str] = None
    timestamp_us: Optional[int] = None

    @property
    def bandwidth(self) -> float:
        """
        Observed throughput in bytes per second.
        """
        return self.nbytes * 1e6 / self.elapsed_us

    def is_wellformed(self) -> bool:
        return (
            isinstance(self.source_id, int)
            and isinstance(self.dest_id, int)
            and _is_number(self.nbytes)
            and _is_number(self.elapsed_us)
            and self.nbytes > 0
            and self.elapsed_us > 0
        )

    @staticmethod
    def from_record(record: Mapping[str, Any]) -> "BandwidthSample":
        """
        Creates a sample from an ingestion record of the form
        ``{sourceId, destId, bytes, elapsedMicros, dataClass?, timestampMicros?}``.
        The snake_case field names of this class are accepted as well.

        Raises:
            MalformedSampleError: if a field is missing, has the wrong type or
                ``bytes``/``elapsedMicros`` is not positive
        """

        def field_(names: Sequence[str], required: bool = True) -> Any:
            for name in names:
                if name in record:
                    return record[name]
            if required:
                raise MalformedSampleError(f"record {dict(record)} has no `{names[0]}`")
            return None

        source_id = field_(("sourceId", "source_id"))
        dest_id = field_(("destId", "dest_id"))
        nbytes = field_(("bytes", "nbytes"))
        elapsed_us = field_(("elapsedMicros", "elapsed_us"))
        data_class = field_(("dataClass", "data_class"), required=False)
        timestamp_us = field_(("timestampMicros", "timestamp_us"), required=False)

        for name, value in (("sourceId", source_id), ("destId", dest_id)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise MalformedSampleError(f"`{name}` must be an int, got `{value}`")
        if data_class is not None and not isinstance(data_class, str):
            raise MalformedSampleError(f"`dataClass` must be a str, got `{data_class}`")
        if timestamp_us is not None and not _is_number(timestamp_us):
            raise MalformedSampleError(
                f"`timestampMicros` must be a number, got `{timestamp_us}`"
            )

        sample = BandwidthSample(
            source_id=source_id,
            dest_id=dest_id,
            nbytes=nbytes,
            elapsed_us=elapsed_us,
            data_class=data_class,
            timestamp_us=None if timestamp_us is None else int(timestamp_us),
        )
        if not sample.is_wellformed():
            raise MalformedSampleError(
                f"`bytes` and `elapsedMicros` must be positive numbers,"
                f" got bytes={nbytes} elapsedMicros={elapsed_us}"
            )
        return sample


@dataclass(frozen=True)
class BandwidthEstimate:
    """
    Quantiles (bytes/s) of the recent bandwidth of a key. ``is_default`` is
    set when no samples were available and the figures are the nominal
    bandwidth of the link class.
    """

    p25: float
    p50: float
    p75: float
    sample_count: int
    link_class: Optional[LinkClass] = None
    is_default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "p25": self.p25,
            "p50": self.p50,
            "p75": self.p75,
            "sampleCount": self.sample_count,
        }


@dataclass
class IngestionStats:
    """
    Counters of the ingestion path. Dropped samples are only visible here.
    """

    accepted: int = 0
    malformed: int = 0
    undersized: int = 0
    evicted: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Runtime side: learning per-link bandwidth from reported transfers
(:py:class:`BandwidthModel`) and turning it into transfer time estimates
(:py:class:`CommunicationCostEstimator`).
"""

from topoplan.bandwidth.api import (  # noqa: F401
    BandwidthEstimate,
    BandwidthKey,
    BandwidthSample,
    DEFAULT_MIN_BYTES,
    DEFAULT_WINDOW_SIZE,
    IngestionStats,
    MalformedSampleError,
    NOMINAL_BANDWIDTH,
)
from topoplan.bandwidth.cost import (  # noqa: F401
    CommunicationCostEstimator,
    RankedDestination,
)
from topoplan.bandwidth.model import BandwidthModel  # noqa: F401

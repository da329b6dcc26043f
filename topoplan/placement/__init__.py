#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Bootstrap-time placement: binding workers to physical accelerators
(:py:class:`PlacementPlanner`) and rendering their launch descriptors
(:py:class:`ClusterSpecBuilder`).
"""

from topoplan.placement.builder import (  # noqa: F401
    ClusterLaunchSpec,
    ClusterSpecBuilder,
    DEFAULT_PROTOCOL,
    DEFAULT_SCHEDULER_PORT,
    GiB,
    SchedulerLaunchSpec,
    visible_devices,
    WorkerLaunchSpec,
)
from topoplan.placement.planner import (  # noqa: F401
    InterfaceNaming,
    parse_visible_devices,
    PlacementPlanner,
)

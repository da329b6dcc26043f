#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

import json
from dataclasses import asdict, dataclass
from typing import Dict, Optional, Union


@dataclass
class TopoplanEvent:
    """
    The class represents the event produced by the bootstrap apis
    (``PlacementPlanner.plan``, ``ClusterSpecBuilder.build``).

    Arguments:
        session: Session id of the current process
        api: Api name
        num_nodes: Number of hardware nodes of the topology
        num_workers: Number of workers planned or built
        metadata: Free form details of the call (e.g. the requested subset)
        cpu_time_usec: CPU time spent in usec
        wall_time_usec: Wall time spent in usec
        start_epoch_time_usec: Epoch time in usec when the call started
    """

    session: str
    api: str
    num_nodes: Optional[int] = None
    num_workers: Optional[int] = None
    metadata: Optional[Dict[str, str]] = None
    raw_exception: Optional[str] = None
    cpu_time_usec: Optional[int] = None
    wall_time_usec: Optional[int] = None
    start_epoch_time_usec: Optional[int] = None
    exception_type: Optional[str] = None
    exception_message: Optional[str] = None
    exception_source_location: Optional[str] = None

    def __str__(self) -> str:
        return self.serialize()

    @staticmethod
    def deserialize(data: Union[str, "TopoplanEvent"]) -> "TopoplanEvent":
        if isinstance(data, TopoplanEvent):
            return data
        return TopoplanEvent(**json.loads(data))

    def serialize(self) -> str:
        return json.dumps(asdict(self))

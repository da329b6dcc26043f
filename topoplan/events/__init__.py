#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Structured events of the bootstrap APIs (``plan``, ``build``).

Each call is recorded as one JSON :py:class:`TopoplanEvent` on the
``topoplan-events-{destination}`` logger, which does not propagate to the
root logger. The destination is read from ``$TOPOPLAN_EVENTS``
(``console`` or ``null``, defaults to ``null``).
"""

import json
import logging
import os
import time
import traceback
from types import TracebackType
from typing import Dict, Optional, Type

from topoplan.events.handlers import get_logging_handler
from topoplan.util.session import get_session_id_or_create_new

from .api import TopoplanEvent  # noqa F401

ENV_TOPOPLAN_EVENTS = "TOPOPLAN_EVENTS"

_events_logger: Optional[logging.Logger] = None

log: logging.Logger = logging.getLogger(__name__)


def events_logger() -> logging.Logger:
    """
    Returns the process wide events logger, creating it on first use.
    """
    global _events_logger

    if _events_logger is not None:
        return _events_logger

    destination = os.getenv(ENV_TOPOPLAN_EVENTS, "null")
    handler = get_logging_handler(destination)
    handler.setLevel(logging.DEBUG)
    logger = logging.getLogger(f"topoplan-events-{destination}")
    logger.propagate = False
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    _events_logger = logger
    return logger


def record(event: TopoplanEvent) -> None:
    try:
        serialized = event.serialize()
    except (TypeError, ValueError):
        log.exception(f"cannot serialize `{event.api}` event, dropping it")
        return
    events_logger().info(serialized)


def _source_location(tb: TracebackType) -> Optional[str]:
    frames = traceback.extract_tb(tb)
    if not frames:
        return None
    last = frames[-1]
    return json.dumps(
        {"filename": last.filename, "lineno": last.lineno, "name": last.name}
    )


class log_event:
    """
    Records a :py:class:`TopoplanEvent` with the cpu and wall time of the
    wrapped block, and the error that escaped it, if any.

    ::

     with log_event("plan", num_nodes=8) as ctx:
         workers = ...
         ctx.event.num_workers = len(workers)
    """

    def __init__(
        self,
        api: str,
        num_nodes: Optional[int] = None,
        num_workers: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        self.event: TopoplanEvent = TopoplanEvent(
            session=get_session_id_or_create_new(),
            api=api,
            num_nodes=num_nodes,
            num_workers=num_workers,
            metadata=metadata,
        )
        self._cpu_ns = 0
        self._wall_ns = 0

    def __enter__(self) -> "log_event":
        self.event.start_epoch_time_usec = int(time.time() * 1_000_000)
        self._cpu_ns = time.process_time_ns()
        self._wall_ns = time.perf_counter_ns()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        event = self.event
        event.cpu_time_usec = (time.process_time_ns() - self._cpu_ns) // 1000
        event.wall_time_usec = (time.perf_counter_ns() - self._wall_ns) // 1000
        if exc_type is not None:
            event.exception_type = exc_type.__name__
            event.exception_message = str(exc)
            event.raw_exception = "".join(
                traceback.format_exception(exc_type, exc, tb)
            )
            if tb is not None:
                event.exception_source_location = _source_location(tb)
        record(event)

#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

import logging
from typing import Callable, Dict


_log_handlers: Dict[str, Callable[[], logging.Handler]] = {
    "console": logging.StreamHandler,
    "null": logging.NullHandler,
}


def get_logging_handler(destination: str = "null") -> logging.Handler:
    if destination not in _log_handlers:
        raise ValueError(
            f"Unknown events destination: `{destination}`."
            f" Valid destinations: {list(_log_handlers.keys())}"
        )
    return _log_handlers[destination]()

# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

from .config import (  # noqa
    apply,
    CONFIG_FILE,
    dump,
    ENV_TOPOPLANCONFIG,
    find_configs,
    load,
    SECTIONS,
)

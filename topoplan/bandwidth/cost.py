#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Converts a prospective data movement into an estimated transfer time. This is
the decision primitive handed to an external scheduler. Only direct pairwise
links are considered; transfers that would be relayed through intermediate
workers are not modeled.

.. code-block:: python

 estimator = CommunicationCostEstimator(model)
 estimator.estimate(0, 5, nbytes=256 * 2**20)  # seconds
 estimator.best(0, candidates=[1, 4, 5], nbytes=256 * 2**20)  # worker id

"""

import logging
from typing import Iterable, List, NamedTuple, Optional

from topoplan.bandwidth.model import BandwidthModel

log: logging.Logger = logging.getLogger(__name__)


class RankedDestination(NamedTuple):
    worker_id: int
    seconds: float


class CommunicationCostEstimator:
    def __init__(self, model: BandwidthModel) -> None:
        self._model = model

    def estimate(
        self,
        source_id: int,
        dest_id: int,
        nbytes: int,
        data_class: Optional[str] = None,
    ) -> float:
        """
        Returns the estimated seconds to move ``nbytes`` from ``source_id`` to
        ``dest_id``, i.e. ``nbytes / p50`` of the pair's bandwidth estimate.

        Raises:
            ValueError: if ``nbytes`` is negative
        """
        if nbytes < 0:
            raise ValueError(f"byte count must not be negative, got {nbytes}")
        estimate = self._model.query(source_id, dest_id, data_class)
        return nbytes / estimate.p50

    def rank(
        self,
        source_id: int,
        candidates: Iterable[int],
        nbytes: int,
        data_class: Optional[str] = None,
    ) -> List[RankedDestination]:
        """
        Ranks the ``candidates`` destinations of data held by ``source_id``
        by ascending estimated transfer time, ties broken by lowest worker id.
        Duplicate candidates are ranked once.
        """
        ranked = sorted(
            (
                RankedDestination(
                    dest, self.estimate(source_id, dest, nbytes, data_class)
                )
                for dest in set(candidates)
            ),
            key=lambda r: (r.seconds, r.worker_id),
        )
        log.debug(f"ranked destinations of {nbytes} bytes from {source_id}: {ranked}")
        return ranked

    def best(
        self,
        source_id: int,
        candidates: Iterable[int],
        nbytes: int,
        data_class: Optional[str] = None,
    ) -> int:
        """
        Returns the candidate with the lowest estimated transfer time.

        Raises:
            ValueError: if there are no candidates
        """
        ranked = self.rank(source_id, candidates, nbytes, data_class)
        if not ranked:
            raise ValueError("no candidate destinations to choose from")
        return ranked[0].worker_id

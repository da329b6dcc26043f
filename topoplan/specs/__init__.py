#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
This contains the hardware topology model (link classes, core sets, network
interfaces) and the worker specs derived from it by the placement planner.
"""
import difflib
from typing import Callable, Dict

from topoplan.specs.api import (  # noqa: F401
    CfgVal,
    ConfigurationError,
    CoreSet,
    get_type_name,
    HardwareNode,
    InternalError,
    LinkClass,
    NetworkInterface,
    runopt,
    runopts,
    WorkerSpec,
)
from topoplan.specs.named_topologies_generic import (
    NAMED_TOPOLOGIES as GENERIC_NAMED_TOPOLOGIES,
)
from topoplan.specs.topology import TopologyDescriptor
from topoplan.util.entrypoints import load_group


def _load_named_topologies() -> Dict[str, Callable[[], TopologyDescriptor]]:
    topology_methods = load_group("topoplan.named_topologies", default={})
    materialized_topologies: Dict[str, Callable[[], TopologyDescriptor]] = {}

    for name, topology in {
        **GENERIC_NAMED_TOPOLOGIES,
        **topology_methods,
    }.items():
        materialized_topologies[name] = topology

    return materialized_topologies


_named_topology_factories: Dict[
    str, Callable[[], TopologyDescriptor]
] = _load_named_topologies()


class _NamedTopologiesLibrary:
    def __getitem__(self, key: str) -> TopologyDescriptor:
        if key in _named_topology_factories:
            return _named_topology_factories[key]()
        else:
            matches = difflib.get_close_matches(
                key,
                _named_topology_factories.keys(),
                n=1,
            )
            if matches:
                msg = f"Did you mean `{matches[0]}`?"
            else:
                msg = f"Registered named topologies: {list(_named_topology_factories.keys())}"

            raise KeyError(f"No named topology found for `{key}`. {msg}")

    def __contains__(self, key: str) -> bool:
        return key in _named_topology_factories

    def __iter__(self) -> None:
        raise NotImplementedError("named topologies doesn't support iterating")


named_topologies: _NamedTopologiesLibrary = _NamedTopologiesLibrary()


def get_named_topology(name: str) -> TopologyDescriptor:
    """
    Get a topology registered via entrypoints.txt (or one of the built-in
    reference topologies).

    Named topologies are registered the same way as any other entry point:

    1. Write a function that returns the ``TopologyDescriptor`` of your host

    .. code-block:: python

     # my_module/topologies.py
     from topoplan.specs import TopologyDescriptor

     def gpu_x8_box() -> TopologyDescriptor:
         return TopologyDescriptor(links=..., core_sets=..., interfaces=...)

    2. Register it in the ``topoplan.named_topologies`` group of your package

    .. code-block:: python

     # setup.py
     entry_points={
         "topoplan.named_topologies": [
             "gpu_x8_box = my_module.topologies:gpu_x8_box",
         ],
     }

    3. Use it

    .. code-block:: python

     from topoplan.specs import get_named_topology

     topo = get_named_topology("gpu_x8_box")

    """
    return named_topologies[name]

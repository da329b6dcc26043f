# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

# pyre-strict

"""
Status: Beta

You can store the options of the placement planner, the cluster spec builder
and the bandwidth model for your host in a ``.topoplanconfig`` file.

#. ``.topoplanconfig`` is in INI format and the section names map to the
   components: ``[placement]``, ``[cluster]`` and ``[bandwidth]``. Each
   section contains the options of the component as ``$key = $value`` pairs.

   .. code-block:: ini

    [placement]
    interface_prefix = mlx5_

    [cluster]
    protocol = ucx
    transports = cuda_ipc;cuda_copy;tcp

    [bandwidth]
    window_size = 200
    max_age = 600

#. Generate a template with all the options and their defaults by calling
   :py:func:`dump`. **IMPORTANT:** If you are happy with a default, you
   **should not** redundantly specify it since defaults may change at a
   later date which would leave you with a stale default.

#. A ``.topoplanconfig`` is looked for in ``$HOME`` and in the current working
   directory, the values in ``$HOME`` taking precedence. Alternatively the path
   of a single config file can be set with the ``TOPOPLANCONFIG`` environment
   variable, which disables the directory lookup.

#. Options take the following precedence (high to low):
    1. Options given programmatically (already present in ``cfg``)
    2. If ``TOPOPLANCONFIG`` is set, the options specified in that file
    3. Otherwise, ``$HOME/.topoplanconfig`` then ``$CWD/.topoplanconfig``
    4. Any default values in the code

   Options that are not known to the section's component are skipped with a warning.

Programmatic Usage
~~~~~~~~~~~~~~~~~~~

.. code-block:: python

 from topoplan.config import apply
 from topoplan.placement import ClusterSpecBuilder

 cfg = {"protocol": "tcp"}  # takes precedence over the config files
 apply("cluster", cfg)
 builder = ClusterSpecBuilder.from_cfg(cfg)

"""
import configparser as configparser
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, TextIO

from topoplan.bandwidth.model import BandwidthModel
from topoplan.placement.builder import ClusterSpecBuilder
from topoplan.placement.planner import PlacementPlanner
from topoplan.specs.api import (
    CfgVal,
    ConfigurationError,
    get_type_name,
    runopt,
    runopts,
)


CONFIG_FILE = ".topoplanconfig"
ENV_TOPOPLANCONFIG = "TOPOPLANCONFIG"
DEFAULT_CONFIG_DIRS: List[str] = [str(Path.home()), str(Path.cwd())]

_NONE = "None"

# section name -> options of the component configured by the section
SECTIONS: Dict[str, Callable[[], runopts]] = {
    "placement": PlacementPlanner.run_opts,
    "cluster": ClusterSpecBuilder.run_opts,
    "bandwidth": BandwidthModel.run_opts,
}

log: logging.Logger = logging.getLogger(__name__)


def _configparser() -> configparser.ConfigParser:
    """
    Sets up the configparser and returns it. The same config parser
    should be used between dumps() and loads() methods for ser/de compatibility
    """

    config = configparser.ConfigParser()
    # if optionxform is not overridden, configparser will by default lowercase
    # the option keys because it is compatible with Windows INI files
    # which are expected to be parsed case insensitive.
    # override since option names are case-sensitive
    # pyre-ignore[8]
    config.optionxform = lambda option: option

    return config


def _get_opts(section: str) -> runopts:
    if section not in SECTIONS:
        raise ConfigurationError(
            f"`{section}` is not a config section. Valid sections: {list(SECTIONS.keys())}"
        )
    return SECTIONS[section]()


def _fixme_placeholder(runopt: runopt, max_len: int = 60) -> str:
    ph = f"#FIXME:({get_type_name(runopt.opt_type)}) {runopt.help}"
    return ph if len(ph) <= max_len else f"{ph[:max_len]}..."


def dump(
    f: TextIO, sections: Optional[List[str]] = None, required_only: bool = False
) -> None:
    """
    Dumps a default INI-style config template containing the options of the
    given ``sections`` (all sections if not specified) into the file-like
    object ``f``.

    Optional options are pre-filled with their default values.
    Required options are set with a ``FIXME: ...`` placeholder.
    To only dump required options pass ``required_only=True``.

    Raises:
        ConfigurationError: if given a section name that is not known
    """

    config = _configparser()
    for section in sections or SECTIONS.keys():
        opts = _get_opts(section)
        config.add_section(section)

        for opt_name, opt in opts:
            if opt.is_required:
                val = _fixme_placeholder(opt)
            else:  # not required options MUST have a default
                if required_only:
                    continue

                # serialize list elements with `;` delimiter
                if opt.opt_type == List[str]:
                    # deal with empty or None default lists
                    if opt.default:
                        # pyre-ignore[6] opt.default type checked already as List[str]
                        val = ";".join(opt.default)
                    else:
                        val = _NONE
                else:
                    val = f"{opt.default}"

            config.set(section, opt_name, val)
    config.write(f, space_around_delimiters=True)


def apply(
    section: str,
    cfg: Dict[str, CfgVal],
    dirs: Optional[List[str]] = None,
) -> None:
    """
    Loads the ``.topoplanconfig`` INI files from the specified directories in
    preceding order and applies the options of ``section`` onto the given ``cfg``.

    If no ``dirs`` is specified, then it looks for ``.topoplanconfig`` in
    ``$HOME`` and the current working directory. If a specified directory does
    not have ``.topoplanconfig`` then it is ignored.

    Note that the options already present in the given ``cfg`` take precedence
    over the ones in the config file and only new options are added. The same holds
    true for the options loaded in list order.

    For instance if ``cfg={"protocol":"tcp"}`` and the config files are:

    ::

     # dir_1/.topoplanconfig
     [cluster]
     protocol = ucx
     scheduler_port = 9000

     # dir_2/.topoplanconfig
     [cluster]
     scheduler_port = 9001


    Then after the method call, ``cfg={"protocol":"tcp","scheduler_port":9000}``.
    """

    for configfile in find_configs(dirs):
        with open(configfile, "r") as f:
            load(section, f, cfg)
            log.info(f"loaded [{section}] configs from {configfile}")


def find_configs(dirs: Optional[Iterable[str]] = None) -> List[str]:
    """
    Finds and returns the filepath to ``.topoplanconfig`` files based
    on the following logic:

    1. If the environment variable ``TOPOPLANCONFIG`` exists, then its value
       is returned in a single-element list and the directories specified through
       the ``dirs`` parameter is NOT searched.
    2. Otherwise, a ``.topoplanconfig`` file is looked for in ``dirs`` and
       the filepaths to existing config files are returned. If ``dirs`` is
       not specified or is empty then ``dirs`` defaults to ``[$HOME, $CWD]``.

    """

    config = os.getenv(ENV_TOPOPLANCONFIG)
    if config is not None:
        configfile = Path(config)
        if not configfile.is_file():
            raise FileNotFoundError(
                f"`{ENV_TOPOPLANCONFIG}={config}` does not exist or is not a file."
            )
        return [str(configfile)]
    else:
        config_files = []
        if not dirs:
            dirs = DEFAULT_CONFIG_DIRS
        for d in dirs:
            configfile = Path(d) / CONFIG_FILE
            if configfile.exists():
                config_files.append(str(configfile))
    return config_files


def load(section: str, f: TextIO, cfg: Dict[str, CfgVal]) -> None:
    """
    loads the section ``[{section}]`` from the given configfile ``f``
    (in .INI format) into the provided ``cfg``, only adding options that are
    NOT currently in the given ``cfg`` (e.g. does not override existing
    values in ``cfg``). If no section is found, does nothing.

    Raises:
        ConfigurationError: if a value cannot be converted to its option's type
    """

    config = _configparser()
    config.read_file(f)

    opts = _get_opts(section)

    if config.has_section(section):
        for name, value in config.items(section):
            if name in cfg.keys():
                # DO NOT OVERRIDE existing configs
                continue

            if value == _NONE:
                # should map to None (not str 'None')
                # this also handles empty or None lists
                cfg[name] = None
            else:
                opt = opts.get(name)

                if opt is None:
                    log.warning(
                        f"`{name} = {value}` was declared in the [{section}] section"
                        f" of the config file but is not an option of the section."
                        f" Remove the entry from the config file to no longer see this warning"
                    )
                else:
                    try:
                        if opt.opt_type is bool:
                            # need to handle bool specially since str -> bool is based on
                            # str emptiness not value (e.g. bool("False") == True)
                            cfg[name] = config.getboolean(section, name)
                        elif opt.opt_type == List[str]:
                            cfg[name] = [v for v in value.split(";") if v]
                        else:
                            # pyre-ignore[29]
                            cfg[name] = opt.opt_type(value)
                    except ValueError as e:
                        raise ConfigurationError(
                            f"`{name} = {value}` in the [{section}] section is not a"
                            f" valid {get_type_name(opt.opt_type)}: {e}"
                        ) from e

#!/usr/bin/env python3
# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree.

import os
import re
import sys

from setuptools import find_packages, setup


def get_version():
    # get version string from version.py
    version_file = os.path.join(os.path.dirname(__file__), "topoplan/version.py")
    version_regex = r"__version__ = ['\"]([^'\"]*)['\"]"
    with open(version_file, "r") as f:
        version = re.search(version_regex, f.read(), re.M).group(1)
        return version


def read_requirements(filename):
    with open(filename) as f:
        return [
            line.strip()
            for line in f.read().splitlines()
            if line.strip() and not line.startswith("#")
        ]


if __name__ == "__main__":
    if sys.version_info < (3, 10):
        sys.exit("python >= 3.10 required for topoplan")

    with open("README.md", encoding="utf8") as f:
        readme = f.read()

    version = get_version()
    print(f"-- topoplan building version: {version}")

    setup(
        # Metadata
        name="topoplan",
        version=version,
        author="topoplan devs",
        description="Topology-aware worker placement and communication cost model for multi-accelerator hosts",
        long_description=readme,
        long_description_content_type="text/markdown",
        license="BSD-3",
        keywords=["gpu", "topology", "placement", "dask", "ucx"],
        python_requires=">=3.10",
        install_requires=read_requirements("requirements.txt"),
        include_package_data=True,
        packages=find_packages(exclude=("*.test",)),
        extras_require={
            "dev": read_requirements("dev-requirements.txt"),
        },
        # PyPI package information.
        classifiers=[
            "Development Status :: 4 - Beta",
            "Intended Audience :: Developers",
            "Intended Audience :: Science/Research",
            "License :: OSI Approved :: BSD License",
            "Programming Language :: Python :: 3",
            "Programming Language :: Python :: 3.10",
            "Topic :: System :: Distributed Computing",
        ],
    )

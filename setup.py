# This file is part of guestnet. See LICENSE file for license information.

# Distutils magic for guestnet

import os
import sys
from glob import glob

import setuptools

# Python-path here is a little unpredictable as setup.py could be run
# from a directory other than the root of the repo, so ensure we can find
# our utils
sys.path.insert(0, os.path.dirname(os.path.realpath(__file__)))
# isort: off
from setup_utils import get_version, is_f, read_requires  # noqa: E402

# isort: on
del sys.path[0]

ETC = "/etc"

data_files = [
    (ETC + "/guestnet", [f for f in glob("config/*.cfg") if is_f(f)]),
]

requirements = read_requires()
test_requirements = read_requires("test-requirements.txt")

setuptools.setup(
    name="guestnet",
    version=get_version(),
    description="Network manager detection and configuration for guests",
    package_data={
        "": ["*.json"],
    },
    packages=setuptools.find_packages(exclude=["tests.*", "tests"]),
    license="Apache 2.0",
    data_files=data_files,
    install_requires=requirements,
    extras_require={"test": test_requirements},
    entry_points={
        "console_scripts": [
            "guestnet = guestnet.cmd.main:main",
        ],
    },
)

# -*- coding: utf-8 -*-
"""secret_sync_controller a module for syncing secrets store provider content into Kubernetes.

This module reconciles SecretSync custom resources: it fetches secret content
through a secrets store provider, normalises TLS material and server side
applies the resulting Kubernetes secret, only when a change is detected.

"""

import setuptools
import re
from io import open

VERSIONFILE="secret_sync_controller/_version.py"
verstrline = open(VERSIONFILE, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (VERSIONFILE,))

with open("README.md", "r", encoding='utf-8') as fh:
    long_description = fh.read()

setuptools.setup(
    name='secret_sync_controller',
    version=verstr,
    author="Mike Moore",
    author_email="z_z_zebra@yahoo.com",
    description="A controller that keeps Kubernetes secrets in sync with secrets store provider content",
    long_description_content_type="text/markdown",
    long_description=long_description,
    packages=setuptools.find_packages(exclude=["*.tests", "*.tests.*"]),
    include_package_data=True,
    license="MIT",
    scripts=[],
    python_requires=">=3.8",
    install_requires=[
        "kubernetes>=29.0",
        "cryptography>=41.0",
        "python-dateutil~=2.0",
        "pytz>=2022.0"
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],

)

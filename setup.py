# Copyright © 2025 Nitro PCR Relay

import re
import os
import codecs
from os import path
from io import open
from setuptools import setup, find_packages


here = path.abspath(path.dirname(__file__))

with open(path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

with codecs.open(os.path.join(here, "pcr_canonical/__init__.py"), encoding="utf-8") as init_file:
    version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", init_file.read(), re.M)
    if not version_match:
        raise RuntimeError("Unable to find version string in pcr_canonical/__init__.py")
    version_string = version_match.group(1)


requirements = [
    # TEE Attestation decoding + verification
    "cbor2>=5.4.6",
    "cryptography>=41.0.7",

    # Configuration
    "python-dotenv>=1.0.0",

    # CLI
    "click>=8.1.0",
]

test_requirements = [
    "pytest>=7.4.0",
]

setup(
    name="nitro_pcr_relay",
    version=version_string,
    description="Framed AWS Nitro attestation relay with a robust COSE/CBOR PCR decoder",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(include=['pcr_canonical', 'pcr_canonical.*', 'relay_tee', 'relay_tee.*', 'pcr_audit', 'pcr_audit.*']),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
    },
    entry_points={
        "console_scripts": [
            "pcr-audit=pcr_audit.cli:main",
            "pcr-relay-enclave=relay_tee.enclave.sender:main",
        ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: Security :: Cryptography",
        "Topic :: System :: Distributed Computing"
    ],
)

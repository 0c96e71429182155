#!/usr/bin/env python
"""Setup configuration for eHealthWave emergency access core."""

from setuptools import find_packages, setup

setup(
    name="ehealthwave",
    version="0.1.0",
    description="Emergency PINs, sharing tokens and a hash-chained audit ledger",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy>=2.0.23",
        "structlog>=23.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
)

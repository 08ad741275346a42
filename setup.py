#!/usr/bin/env python
"""Setup configuration for the FHIR conformance engine."""

from setuptools import find_packages, setup

setup(
    name="fhir-conformance-engine",
    version="0.1.0",
    description="Profile conformance checks for FHIR server responses",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "structlog>=23.2.0",
        "httpx>=0.25.0",
        "tenacity>=8.2.0",
        "python-dateutil>=2.8.2",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
)

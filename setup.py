"""Setup configuration for n8n-backup."""

import os
import sys

from setuptools import find_packages, setup

# Get version from package
here = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, here)
from n8nbackup import __author__, __version__  # noqa: E402

# Get the long description from the README file
with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="n8n-backup",
    version=__version__,
    description="Backup, verification and restore for Docker-hosted n8n deployments",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author=__author__,
    keywords="n8n backup restore postgresql docker cli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "click>=8.0.0",
        "pyyaml>=6.0",
        "docker>=6.0.0",
        "requests>=2.28.0",
        "jinja2>=3.0.0",
        "jsonschema>=4.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.12.0",
            "mypy>=0.991",
        ],
    },
    entry_points={
        "console_scripts": [
            "n8n-backup=n8nbackup.cli:cli",
        ],
    },
)

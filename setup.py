"""Setup script for colaplug.

This script installs colaplug and its dependencies.
"""

from __future__ import annotations

import setuptools

# Read the long description from README.md
with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

# Read version from __version__.py
version = {}
with open("colaplug/__version__.py", "r", encoding="utf-8") as f:
    exec(f.read(), version)

# Dependencies
install_requires = [
    "pydantic>=2.6.0",
    "pyyaml>=6.0",
    "structlog>=22.1.0",
    "httpx>=0.24.0",
    "tenacity>=8.2.0",
    "python-json-logger>=2.0.4",
    "semver>=3.0.0",
    "markdown>=3.4",
]

# Development dependencies
dev_requires = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "black>=23.1.0",
    "isort>=5.12.0",
    "mypy>=1.0.0",
    "types-pyyaml",
    "types-markdown",
]

setuptools.setup(
    name="colaplug",
    version=version.get("__version__", "0.1.0"),
    author="colaplug contributors",
    description="Validate, package and publish command launcher plugins",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["colaplug", "colaplug.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require={
        "dev": dev_requires,
    },
    entry_points={
        "console_scripts": [
            "colaplug=colaplug.main:main",
        ],
    },
)

"""Plugin packaging system for colaplug.

This package validates plugin manifests, packages plugin directories into
archives and publishes them.

Modules:
    manifest: Plugin manifest definition and validation
    package: Archive creation, checksums and extraction
    tools: Batch validation and packaging of a plugins directory
    oci: Publication to an OCI registry
    release: Publication as GitHub releases
    repository: GitHub REST client
    cli: Command-line interface
"""

from __future__ import annotations

from colaplug.plugin_system.manifest import Manifest, read_manifest, validate_manifest
from colaplug.plugin_system.package import ArchiveFormat, PackagedArtifact
from colaplug.plugin_system.tools import package_all, package_plugin, validate_plugins

__all__ = [
    "Manifest",
    "read_manifest",
    "validate_manifest",
    "ArchiveFormat",
    "PackagedArtifact",
    "package_all",
    "package_plugin",
    "validate_plugins",
]

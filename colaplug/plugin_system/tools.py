"""Batch tools for plugin repositories.

This module walks a plugins directory and runs validation or packaging
over every plugin it finds. Both operations collect problems per plugin
and report them once at the end instead of stopping at the first one.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from colaplug.plugin_system.manifest import (
    Manifest,
    ValidationResult,
    find_plugin_directories,
    read_manifest,
    sanitize_name,
    validate_manifest,
)
from colaplug.plugin_system.package import (
    ArchiveFormat,
    Archiver,
    PackagedArtifact,
    archive_filename,
    build_archive,
    compute_checksum,
    format_bytes,
    write_checksum_sidecar,
)
from colaplug.utils.exceptions import ArchiveError, ColaError, PackagingError, ParseError

logger = structlog.get_logger(__name__)


@dataclass
class PluginValidation:
    """Validation outcome for one plugin directory."""

    plugin: str
    path: Path
    result: ValidationResult
    manifest: Optional[Manifest] = None

    @property
    def valid(self) -> bool:
        return self.result.valid


@dataclass
class ValidationSummary:
    """Accumulated validation outcome for a plugins directory."""

    results: List[PluginValidation] = field(default_factory=list)

    @property
    def valid_plugins(self) -> List[str]:
        return [r.plugin for r in self.results if r.valid]

    @property
    def invalid_plugins(self) -> List[str]:
        return [r.plugin for r in self.results if not r.valid]

    @property
    def total_errors(self) -> int:
        return sum(len(r.result.errors) for r in self.results)

    @property
    def total_warnings(self) -> int:
        return sum(len(r.result.warnings) for r in self.results)

    @property
    def ok(self) -> bool:
        return bool(self.results) and not self.invalid_plugins

    def outputs(self) -> Dict[str, str]:
        return {
            "validated-plugins": json.dumps(self.valid_plugins),
            "valid-count": str(len(self.valid_plugins)),
            "invalid-count": str(len(self.invalid_plugins)),
        }


@dataclass
class PackagingReport:
    """Accumulator threaded through a packaging run.

    Attributes:
        artifacts: Archives built, in directory discovery order
        failures: Plugin directory name mapped to the failure cause
        skipped: Plugin directory name mapped to the reason it was skipped
    """

    artifacts: List[PackagedArtifact] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.artifacts)

    @property
    def total_size(self) -> int:
        return sum(a.size_bytes for a in self.artifacts)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_artifact(self, artifact: PackagedArtifact) -> None:
        self.artifacts.append(artifact)

    def record_failure(self, plugin: str, cause: str) -> None:
        self.failures[plugin] = cause

    def record_skip(self, plugin: str, reason: str) -> None:
        self.skipped[plugin] = reason

    def outputs(self) -> Dict[str, str]:
        return {
            "packaged-artifacts": json.dumps([a.to_dict() for a in self.artifacts]),
            "package-count": str(self.count),
        }


def write_github_output(outputs: Mapping[str, Any], path: Optional[Union[str, Path]] = None) -> bool:
    """Append ``key=value`` lines to the GitHub Actions output file.

    Args:
        outputs: Output names and values
        path: Output file, defaults to ``$GITHUB_OUTPUT``

    Returns:
        True if outputs were written, False when no output file is configured
    """
    target = path or os.environ.get("GITHUB_OUTPUT")
    if not target:
        return False
    with open(target, "a", encoding="utf-8") as f:
        for key, value in outputs.items():
            f.write(f"{key}={value}\n")
    return True


def validate_plugin(plugin_dir: Union[str, Path]) -> PluginValidation:
    """Validate a single plugin directory.

    A manifest that cannot be read counts as one error for the plugin.
    """
    plugin_dir = Path(plugin_dir)
    plugin = plugin_dir.name

    try:
        manifest = read_manifest(plugin_dir)
    except (FileNotFoundError, ParseError) as e:
        logger.error("Failed to read manifest", plugin=plugin, error=str(e))
        return PluginValidation(plugin, plugin_dir, ValidationResult(False, (str(e),)))

    result = validate_manifest(manifest, plugin_dir)
    for error in result.errors:
        logger.error("Manifest error", plugin=plugin, error=error)
    for warning in result.warnings:
        logger.warning("Manifest warning", plugin=plugin, warning=warning)
    if result.valid:
        logger.info(
            "Manifest is valid",
            plugin=plugin,
            package=manifest.package_name,
            version=manifest.version,
            commands=len(manifest.commands),
        )
    return PluginValidation(plugin, plugin_dir, result, manifest)


def validate_plugins(plugins_dir: Union[str, Path]) -> ValidationSummary:
    """Validate every plugin under a plugins directory.

    All plugins are checked before returning; callers decide what to do
    with invalid ones.

    Args:
        plugins_dir: Directory whose subdirectories hold plugins

    Returns:
        Validation summary

    Raises:
        ColaError: If no plugin directories are found
    """
    plugin_dirs = find_plugin_directories(plugins_dir)
    if not plugin_dirs:
        raise ColaError(f"No plugins found in {plugins_dir}")

    logger.info("Validating plugin manifests", plugins_directory=str(plugins_dir), count=len(plugin_dirs))

    summary = ValidationSummary()
    for plugin_dir in plugin_dirs:
        summary.results.append(validate_plugin(plugin_dir))

    logger.info(
        "Validation summary",
        total=len(summary.results),
        valid=len(summary.valid_plugins),
        invalid=len(summary.invalid_plugins),
        errors=summary.total_errors,
        warnings=summary.total_warnings,
    )
    if summary.invalid_plugins:
        logger.error("Validation failed", invalid_plugins=summary.invalid_plugins)
    return summary


def package_plugin(
        plugin_dir: Union[str, Path],
        output_dir: Union[str, Path],
        format: Union[ArchiveFormat, str] = ArchiveFormat.TAR_GZ,
        archiver: Optional[Archiver] = None,
        manifest: Optional[Manifest] = None
) -> PackagedArtifact:
    """Package a plugin directory into an archive with a checksum sidecar.

    Args:
        plugin_dir: Directory containing the plugin
        output_dir: Directory where the archive is written
        format: Archive format
        archiver: Archive back-end
        manifest: Already parsed manifest, read from plugin_dir if omitted

    Returns:
        The packaged artifact

    Raises:
        ParseError: If the manifest cannot be parsed
        ArchiveError: If the archive cannot be written
    """
    plugin_dir = Path(plugin_dir)
    output_dir = Path(output_dir)
    format = ArchiveFormat(format)

    if manifest is None:
        manifest = read_manifest(plugin_dir)

    base_name = sanitize_name(manifest.package_name)
    archive_path = output_dir / archive_filename(base_name, manifest.version, format)

    build_archive(plugin_dir, archive_path, base_name, format, archiver)

    checksum = compute_checksum(archive_path)
    write_checksum_sidecar(archive_path, checksum)
    size = archive_path.stat().st_size

    logger.info(
        "Packaged plugin",
        plugin=manifest.package_name,
        archive=archive_path.name,
        size=format_bytes(size),
        sha256=checksum,
    )

    return PackagedArtifact(
        name=manifest.package_name,
        version=manifest.version,
        archive_path=archive_path,
        checksum=checksum,
        size_bytes=size,
        manifest=manifest,
        source_dir=plugin_dir,
    )


def package_plugins(
        plugins_dir: Union[str, Path],
        output_dir: Union[str, Path],
        format: Union[ArchiveFormat, str] = ArchiveFormat.TAR_GZ,
        archiver: Optional[Archiver] = None
) -> PackagingReport:
    """Package every plugin under a plugins directory.

    Processing continues past individual plugins; every failure is
    recorded in the returned report.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    report = PackagingReport()

    plugin_dirs = find_plugin_directories(plugins_dir)
    logger.info(
        "Packaging plugins",
        plugins_directory=str(plugins_dir),
        output_directory=str(output_dir),
        count=len(plugin_dirs),
    )

    for plugin_dir in plugin_dirs:
        plugin = plugin_dir.name

        try:
            manifest = read_manifest(plugin_dir)
        except FileNotFoundError as e:
            logger.warning("Skipping plugin without manifest", plugin=plugin, error=str(e))
            report.record_skip(plugin, str(e))
            continue
        except ParseError as e:
            logger.warning("Skipping plugin with malformed manifest", plugin=plugin, error=str(e))
            report.record_failure(plugin, str(e))
            continue

        result = validate_manifest(manifest, plugin_dir)
        if not result.valid:
            cause = "; ".join(result.errors)
            logger.error("Invalid manifest", plugin=plugin, error=cause)
            report.record_failure(plugin, f"Invalid manifest: {cause}")
            continue

        try:
            report.record_artifact(package_plugin(plugin_dir, output_dir, format, archiver, manifest))
        except (ArchiveError, OSError) as e:
            logger.error("Failed to package plugin", plugin=plugin, error=str(e))
            report.record_failure(plugin, str(e))

    logger.info(
        "Packaging summary",
        packaged=report.count,
        failed=len(report.failures),
        skipped=len(report.skipped),
        total_size=format_bytes(report.total_size),
    )
    return report


def package_all(
        plugins_dir: Union[str, Path],
        output_dir: Union[str, Path],
        format: Union[ArchiveFormat, str] = ArchiveFormat.TAR_GZ,
        best_effort: bool = False,
        archiver: Optional[Archiver] = None
) -> List[PackagedArtifact]:
    """Package every plugin and return the artifacts.

    Args:
        plugins_dir: Directory whose subdirectories hold plugins
        output_dir: Directory where archives are written, created if absent
        format: Archive format
        best_effort: Return the partial list instead of raising on failures
        archiver: Archive back-end

    Returns:
        Artifacts in directory discovery order, possibly empty

    Raises:
        PackagingError: If any plugin failed and best_effort is off
    """
    report = package_plugins(plugins_dir, output_dir, format, archiver)
    if report.failures and not best_effort:
        raise PackagingError(
            f"Failed to package {len(report.failures)} plugin(s)",
            failures=report.failures,
            artifacts=report.artifacts,
        )
    return list(report.artifacts)

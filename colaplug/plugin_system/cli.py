"""Command-line interface for colaplug.

This module provides the commands a plugin repository's CI runs: manifest
validation, packaging, publication to an OCI registry or GitHub releases,
and generation of the documentation site.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List, Optional

import structlog

from colaplug.core.config_manager import ActionConfig, ConfigManager
from colaplug.core.logging_manager import LoggingManager
from colaplug.core.process import ProcessExecutor, SubprocessExecutor
from colaplug.documentation.assembler import DocumentationAssembler, DocsResult, PublishedVersion
from colaplug.documentation.pages import PagesPublisher
from colaplug.documentation.sources import ReleaseDocumentSource, published_from_artifacts
from colaplug.plugin_system.oci import OciPublisher
from colaplug.plugin_system.package import ArchiveFormat, PackagedArtifact
from colaplug.plugin_system.release import GitHubReleasePublisher, TagMode
from colaplug.plugin_system.repository import GitHubClient
from colaplug.plugin_system.tools import (
    ValidationSummary,
    package_plugins,
    validate_plugins,
    write_github_output,
)
from colaplug.utils.exceptions import (
    ColaError,
    ConfigurationError,
    PackagingError,
    ValidationFailedError,
)

logger = structlog.get_logger(__name__)

# Command-line destinations and the configuration keys they override
OVERRIDE_KEYS = {
    "plugins_dir": "plugins_directory",
    "output_dir": "output_directory",
    "format": "package_format",
    "validate_only": "validate_only",
    "best_effort": "best_effort",
    "force": "force",
    "registry": "oci.registry",
    "username": "oci.username",
    "oci_token": "oci.token",
    "github_token": "github.token",
    "repository": "github.repository",
    "release": "release.enabled",
    "tag_mode": "release.tag_mode",
    "docs": "docs.enabled",
    "docs_branch": "docs.branch",
    "keep_versions": "docs.keep_versions",
    "template": "docs.template_path",
    "version_index_template": "docs.version_index_template_path",
    "docs_output": "docs.output_directory",
    "push": "docs.push",
    "log_level": "logging.level",
    "log_format": "logging.format",
}


def create_executor() -> ProcessExecutor:
    return SubprocessExecutor()


def load_settings(args: argparse.Namespace) -> ActionConfig:
    """Load the configuration for a command and set up logging.

    Args:
        args: Command-line arguments

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the configuration is invalid
        ManagerInitializationError: If logging cannot be configured
    """
    overrides: Dict[str, Any] = {}
    for dest, key in OVERRIDE_KEYS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[key] = value

    config_manager = ConfigManager(config_path=getattr(args, "config", None), overrides=overrides)
    config_manager.initialize()
    settings = config_manager.settings

    logging_manager = LoggingManager(level=settings.logging.level, format=settings.logging.format)
    logging_manager.initialize()
    return settings


def run_validation(settings: ActionConfig) -> ValidationSummary:
    """Validate every plugin, raising if any of them is invalid."""
    summary = validate_plugins(settings.plugins_directory)
    write_github_output(summary.outputs())
    if not summary.ok:
        raise ValidationFailedError(
            f"{len(summary.invalid_plugins)} plugin(s) failed validation",
            invalid_plugins=summary.invalid_plugins,
        )
    return summary


def run_packaging(settings: ActionConfig, format: Optional[ArchiveFormat] = None) -> List[PackagedArtifact]:
    """Package every plugin in the configured archive format.

    Raises:
        PackagingError: If a plugin failed and best_effort is off
    """
    report = package_plugins(
        settings.plugins_directory,
        settings.output_directory,
        format or settings.package_format.archive_format,
    )
    write_github_output(report.outputs())
    if report.failures and not settings.best_effort:
        raise PackagingError(
            f"Failed to package {len(report.failures)} plugin(s)",
            failures=report.failures,
            artifacts=report.artifacts,
        )
    return list(report.artifacts)


def run_oci_push(settings: ActionConfig, artifacts: List[PackagedArtifact]) -> None:
    oci = settings.oci
    if not oci.registry:
        raise ConfigurationError("An OCI registry is required to push packages", config_key="oci.registry")
    if not oci.username or not oci.token:
        raise ConfigurationError(
            "OCI registry credentials required (oci.username and oci.token)", config_key="oci.username"
        )

    publisher = OciPublisher(
        oci.registry, oci.username, oci.token, executor=create_executor(), force=settings.force
    )
    summary = publisher.publish(artifacts)
    write_github_output({"oci-pushed-count": summary.pushed_count, "oci-skipped-count": summary.skipped_count})


def create_github_client(settings: ActionConfig) -> GitHubClient:
    github = settings.github
    if not github.repository:
        raise ConfigurationError("A GitHub repository is required", config_key="github.repository")
    return GitHubClient(github.token, github.repository, api_url=github.api_url)


def run_releases(settings: ActionConfig, artifacts: List[PackagedArtifact]) -> None:
    with create_github_client(settings) as client:
        publisher = GitHubReleasePublisher(
            client,
            executor=create_executor(),
            remote=settings.release.remote,
            token=settings.github.token,
            tag_mode=settings.release.tag_mode,
            force=settings.force,
        )
        summary = publisher.publish(artifacts)
    write_github_output({"release-count": summary.pushed_count})


def run_docs(settings: ActionConfig, artifacts: Optional[List[PackagedArtifact]] = None) -> DocsResult:
    """Generate the documentation site and optionally push it.

    Versions come from the repository's releases, or from artifacts when
    they are given.
    """
    docs = settings.docs
    repository = settings.github.repository

    if artifacts is not None:
        base_url = f"https://github.com/{repository}/releases/download" if repository else None
        published: List[PublishedVersion] = published_from_artifacts(artifacts, base_url)
    else:
        with create_github_client(settings) as client:
            published = ReleaseDocumentSource(client).collect()

    assembler = DocumentationAssembler(
        template_path=docs.template_path,
        version_index_template_path=docs.version_index_template_path,
        keep_versions=docs.keep_versions,
    )
    result = assembler.build(published, docs.output_directory)

    if docs.push:
        if not repository:
            raise ConfigurationError(
                "A GitHub repository is required to push documentation", config_key="github.repository"
            )
        pages = PagesPublisher(
            repository,
            token=settings.github.token,
            branch=docs.branch,
            executor=create_executor(),
        )
        result.url = pages.publish(result.output_directory)
        logger.info("Documentation published", url=result.url)

    outputs = {"docs-plugins": result.plugins_processed, "docs-versions": result.versions_generated}
    if result.url:
        outputs["docs-url"] = result.url
    write_github_output(outputs)
    return result


def validate_command(args: argparse.Namespace) -> int:
    """Handle the validate command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        settings = load_settings(args)
        summary = run_validation(settings)
        logger.info("All plugins are valid", count=len(summary.valid_plugins))
        return 0

    except ColaError as e:
        logger.error("Validation failed", error=str(e))
        return 1


def package_command(args: argparse.Namespace) -> int:
    """Handle the package command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        settings = load_settings(args)
        artifacts = run_packaging(settings)
        for artifact in artifacts:
            print(f"{artifact.archive_path}  {artifact.checksum}")
        return 0

    except ColaError as e:
        logger.error("Packaging failed", error=str(e))
        return 1


def push_oci_command(args: argparse.Namespace) -> int:
    """Handle the push-oci command.

    Packages every plugin as tar.gz and pushes the archives to the
    configured registry.
    """
    try:
        settings = load_settings(args)
        artifacts = run_packaging(settings, ArchiveFormat.TAR_GZ)
        run_oci_push(settings, artifacts)
        return 0

    except ColaError as e:
        logger.error("OCI push failed", error=str(e))
        return 1


def release_command(args: argparse.Namespace) -> int:
    """Handle the release command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        settings = load_settings(args)
        artifacts = run_packaging(settings)
        run_releases(settings, artifacts)
        return 0

    except ColaError as e:
        logger.error("Release failed", error=str(e))
        return 1


def docs_command(args: argparse.Namespace) -> int:
    """Handle the docs command."""
    try:
        settings = load_settings(args)
        artifacts = run_packaging(settings) if args.from_plugins else None
        result = run_docs(settings, artifacts)
        print(f"Documentation written to {result.output_directory}")
        return 0

    except ColaError as e:
        logger.error("Documentation generation failed", error=str(e))
        return 1


def run_command(args: argparse.Namespace) -> int:
    """Handle the run command.

    Runs the full pipeline: validation, packaging, OCI push, releases and
    documentation. Publishing steps run only when they are configured.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        settings = load_settings(args)
        run_validation(settings)
        if settings.validate_only:
            logger.info("Validation only, skipping packaging")
            return 0

        artifacts = run_packaging(settings)

        if settings.package_format.pushes_oci:
            if settings.oci.registry:
                run_oci_push(settings, artifacts)
            else:
                logger.warning("No OCI registry configured, skipping push")

        if settings.release.enabled:
            run_releases(settings, artifacts)

        if settings.docs.enabled:
            if settings.github.token and settings.github.repository:
                run_docs(settings)
            else:
                logger.warning("GitHub token or repository not available, skipping documentation")

        logger.info("Pipeline completed", packages=len(artifacts))
        return 0

    except ColaError as e:
        logger.error("Pipeline failed", error=str(e))
        return 1


def _add_plugin_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--plugins-dir", help="Directory containing plugin subdirectories")
    parser.add_argument("--output-dir", help="Directory where archives are written")
    parser.add_argument("--best-effort", action="store_true", default=None,
                        help="Keep going when some plugins fail to package")


def _add_format_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--format", choices=["zip", "tar.gz", "oci", "both"], help="Package format")


def _add_oci_arguments(parser: argparse.ArgumentParser, token_flag: str) -> None:
    parser.add_argument("--registry", help="OCI registry with namespace, e.g. ghcr.io/owner")
    parser.add_argument("--username", help="OCI registry user name")
    parser.add_argument(token_flag, dest="oci_token", help="OCI registry token")


def _add_github_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--repository", help="GitHub repository (owner/repo)")
    parser.add_argument("--token", dest="github_token", help="GitHub token")


def _add_release_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--tag-mode", choices=[mode.value for mode in TagMode], help="Where release tags point")


def _add_docs_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--docs-branch", help="Branch the documentation is pushed to")
    parser.add_argument("--keep-versions", type=int, help="Newest versions kept per plugin (0 keeps all)")
    parser.add_argument("--template", help="Version page template")
    parser.add_argument("--version-index-template", help="Version index page template")
    parser.add_argument("--docs-output", help="Directory the documentation is written to")
    parser.add_argument("--no-push", dest="push", action="store_const", const=False, default=None,
                        help="Generate the documentation without pushing it")


def _add_force_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--force", action="store_true", default=None,
                        help="Replace versions that were already published")


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    # Create argument parser
    parser = argparse.ArgumentParser(
        prog="colaplug",
        description="Validate, package and publish command launcher plugins",
    )
    parser.add_argument("--config", help="Path to a YAML or JSON configuration file")
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error", "critical"],
                        help="Minimum log level")
    parser.add_argument("--log-format", choices=["text", "json"], help="Console log format")

    # Add subparsers for commands
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate plugin manifests")
    validate_parser.add_argument("--plugins-dir", help="Directory containing plugin subdirectories")

    # Package command
    package_parser = subparsers.add_parser("package", help="Package plugins into archives")
    _add_plugin_arguments(package_parser)
    package_parser.add_argument("--format", choices=["zip", "tar.gz"], help="Archive format")

    # Push-oci command
    push_parser = subparsers.add_parser("push-oci", help="Package plugins and push them to an OCI registry")
    _add_plugin_arguments(push_parser)
    _add_oci_arguments(push_parser, "--token")
    _add_force_argument(push_parser)

    # Release command
    release_parser = subparsers.add_parser("release", help="Package plugins and create GitHub releases")
    _add_plugin_arguments(release_parser)
    release_parser.add_argument("--format", choices=["zip", "tar.gz"], help="Archive format")
    _add_github_arguments(release_parser)
    _add_release_arguments(release_parser)
    _add_force_argument(release_parser)

    # Docs command
    docs_parser = subparsers.add_parser("docs", help="Generate plugin documentation")
    _add_github_arguments(docs_parser)
    _add_docs_arguments(docs_parser)
    docs_parser.add_argument("--from-plugins", action="store_true",
                             help="Document freshly packaged plugins instead of published releases")
    _add_plugin_arguments(docs_parser)

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the full pipeline")
    _add_plugin_arguments(run_parser)
    _add_format_argument(run_parser)
    run_parser.add_argument("--validate-only", action="store_true", default=None,
                            help="Stop after validating the manifests")
    _add_oci_arguments(run_parser, "--registry-token")
    _add_github_arguments(run_parser)
    run_parser.add_argument("--release", action="store_true", default=None, help="Create GitHub releases")
    _add_release_arguments(run_parser)
    run_parser.add_argument("--docs", action="store_true", default=None, help="Generate documentation")
    _add_docs_arguments(run_parser)
    _add_force_argument(run_parser)

    # Parse arguments
    args = parser.parse_args(args)

    # Execute command
    if args.command == "validate":
        return validate_command(args)
    elif args.command == "package":
        return package_command(args)
    elif args.command == "push-oci":
        return push_oci_command(args)
    elif args.command == "release":
        return release_command(args)
    elif args.command == "docs":
        return docs_command(args)
    elif args.command == "run":
        return run_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

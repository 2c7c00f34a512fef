"""Publishing plugin archives to an OCI registry with ``oras``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from colaplug.core.process import ProcessExecutor, SubprocessExecutor
from colaplug.plugin_system.manifest import sanitize_name
from colaplug.plugin_system.package import PackagedArtifact
from colaplug.utils.exceptions import ProcessError, PublishError

logger = structlog.get_logger(__name__)

LAYER_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"
LATEST_TAG = "latest"

ANNOTATION_TITLE = "org.opencontainers.image.title"
ANNOTATION_VERSION = "org.opencontainers.image.version"
ANNOTATION_DESCRIPTION = "org.opencontainers.image.description"


@dataclass
class PublishSummary:
    """Counts of a publish run.

    Attributes:
        pushed: Artifacts published in this run
        skipped: Artifacts already published and left untouched
    """

    pushed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def pushed_count(self) -> int:
        return len(self.pushed)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def processed_count(self) -> int:
        return self.pushed_count + self.skipped_count


def registry_host(registry: str) -> str:
    """Host part of a registry, e.g. ``ghcr.io`` for ``ghcr.io/owner``."""
    return registry.split("/")[0]


def oci_reference(registry: str, artifact: PackagedArtifact) -> str:
    """Registry reference ``<registry>/<sanitized command name>`` for an artifact."""
    name = artifact.name
    if artifact.manifest is not None and artifact.manifest.primary_command is not None:
        name = artifact.manifest.primary_command.name or name
    return f"{registry.rstrip('/')}/{sanitize_name(name)}"


def build_annotations(artifact: PackagedArtifact) -> List[str]:
    annotations = [
        f"{ANNOTATION_TITLE}={artifact.name}",
        f"{ANNOTATION_VERSION}={artifact.version}",
    ]
    description = artifact.manifest.description if artifact.manifest is not None else None
    if description:
        annotations.append(f"{ANNOTATION_DESCRIPTION}={description}")
    return annotations


class OciPublisher:
    """Pushes packaged artifacts to an OCI registry.

    The whole batch runs inside a single login/logout bracket. Versions
    already present in the registry are skipped unless force is set, in
    which case the existing tag is deleted and pushed again.
    """

    def __init__(
            self,
            registry: str,
            username: str,
            token: str,
            executor: Optional[ProcessExecutor] = None,
            force: bool = False
    ) -> None:
        """Initialize the publisher.

        Args:
            registry: Registry with namespace, e.g. ``ghcr.io/owner``
            username: Registry user name
            token: Registry password or token
            executor: Process executor used to run ``oras``
            force: Overwrite versions that already exist
        """
        self.registry = registry
        self.username = username
        self._token = token
        self.executor = executor or SubprocessExecutor()
        self.force = force

    def _oras(self, *args: str, input: Optional[str] = None, check: bool = True):
        return self.executor.run(["oras", *args], input=input, check=check)

    def ensure_available(self) -> None:
        try:
            self._oras("version")
        except ProcessError as e:
            raise PublishError(f"oras is not available: {e}") from e

    def login(self) -> None:
        host = registry_host(self.registry)
        logger.info("Authenticating to OCI registry", registry=host, username=self.username)
        try:
            self._oras("login", host, "-u", self.username, "--password-stdin", input=self._token)
        except ProcessError as e:
            raise PublishError(f"Failed to log in to {host}: {e}") from e

    def logout(self) -> None:
        host = registry_host(self.registry)
        result = self._oras("logout", host, check=False)
        if not result.ok:
            logger.warning("Failed to log out of OCI registry", registry=host, error=result.stderr.strip())

    def tag_exists(self, reference: str, tag: str) -> bool:
        result = self._oras("manifest", "fetch", f"{reference}:{tag}", check=False)
        exists = result.ok
        logger.debug("Checked OCI tag", reference=reference, tag=tag, exists=exists)
        return exists

    def delete_tag(self, reference: str, tag: str) -> None:
        self._oras("manifest", "delete", "--force", f"{reference}:{tag}")

    def push_artifact(self, artifact: PackagedArtifact) -> bool:
        """Push one artifact, returning False if it was skipped.

        Raises:
            PublishError: If any registry operation fails
        """
        reference = oci_reference(self.registry, artifact)
        target = f"{reference}:{artifact.version}"

        if not artifact.archive_name.endswith(".tar.gz"):
            raise PublishError(
                "OCI registries only accept tar.gz plugin archives", artifact=artifact.archive_name
            )

        try:
            if self.tag_exists(reference, artifact.version):
                if not self.force:
                    logger.warning("Version already exists in registry, skipping", artifact=target)
                    return False
                logger.warning("Version already exists in registry, replacing", artifact=target)
                self.delete_tag(reference, artifact.version)

            args = [
                "push",
                target,
                f"{artifact.archive_path}:{LAYER_MEDIA_TYPE}",
                "--disable-path-validation",
            ]
            for annotation in build_annotations(artifact):
                args.extend(["--annotation", annotation])
            self._oras(*args)
            self._oras("tag", target, LATEST_TAG)
        except ProcessError as e:
            raise PublishError(f"Failed to push to {target}: {e}", artifact=artifact.archive_name) from e

        logger.info("Pushed artifact", artifact=target, latest=f"{reference}:{LATEST_TAG}")
        return True

    def publish(self, artifacts: Sequence[PackagedArtifact]) -> PublishSummary:
        """Push every artifact, stopping at the first failure.

        Args:
            artifacts: Artifacts to publish

        Returns:
            Summary of pushed and skipped artifacts

        Raises:
            PublishError: On the first failed artifact, or if nothing was processed
        """
        logger.info("Pushing packages to OCI registry", registry=self.registry, count=len(artifacts))
        self.ensure_available()
        summary = PublishSummary()

        self.login()
        try:
            for artifact in artifacts:
                if self.push_artifact(artifact):
                    summary.pushed.append(artifact.archive_name)
                else:
                    summary.skipped.append(artifact.archive_name)
        finally:
            self.logout()

        logger.info("OCI push summary", pushed=summary.pushed_count, skipped=summary.skipped_count)
        if summary.processed_count == 0:
            raise PublishError("No packages were processed")
        return summary

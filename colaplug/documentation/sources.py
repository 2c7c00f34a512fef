"""Where published plugin versions come from.

Documentation is normally rebuilt from the archives attached to GitHub
releases. A packaging run can also hand its fresh artifacts over
directly, without a round trip through the release store.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import structlog

from colaplug.documentation.assembler import PublishedVersion
from colaplug.plugin_system.manifest import (
    ARCHIVE_EXTENSIONS,
    MANIFEST_FILENAME,
    README_FILENAME,
    parse_archive_name,
    parse_manifest,
)
from colaplug.plugin_system.package import PackagedArtifact, extract_archive_members
from colaplug.plugin_system.repository import GitHubClient, GitHubRelease, ReleaseAsset
from colaplug.utils.exceptions import ArchiveError, ColaError, DocGenError, ParseError, RepositoryError

logger = structlog.get_logger(__name__)


def group_plugin_assets(releases: Sequence[GitHubRelease]) -> Dict[str, List[ReleaseAsset]]:
    """Release assets whose names parse as plugin archives, keyed by plugin name."""
    grouped: Dict[str, List[ReleaseAsset]] = {}
    for release in releases:
        for asset in release.assets:
            if not asset.name.endswith(ARCHIVE_EXTENSIONS):
                continue
            parsed = parse_archive_name(asset.name)
            if parsed is None:
                continue
            grouped.setdefault(parsed["name"], []).append(asset)
    return grouped


class ReleaseDocumentSource:
    """Collects published versions from a repository's releases."""

    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    def load_version(self, plugin: str, asset: ReleaseAsset, work_dir: Path) -> PublishedVersion:
        """Download one archive and read its manifest and README.

        Raises:
            DocGenError: If the archive cannot be downloaded, extracted or parsed
        """
        parsed = parse_archive_name(asset.name) or {"version": ""}
        try:
            archive_path = self.client.download_asset(asset, work_dir / asset.name)
            extract_dir = work_dir / f"extract-{asset.id}"
            found = extract_archive_members(archive_path, extract_dir, [MANIFEST_FILENAME, README_FILENAME])
            if MANIFEST_FILENAME not in found:
                raise DocGenError(
                    f"No {MANIFEST_FILENAME} in {asset.name}", plugin=plugin, version=parsed["version"]
                )
            manifest = parse_manifest(
                found[MANIFEST_FILENAME].read_text(encoding="utf-8"), source=asset.name
            )
            readme = ""
            if README_FILENAME in found:
                readme = found[README_FILENAME].read_text(encoding="utf-8")
            else:
                logger.warning("No README found, using default content", plugin=plugin, artifact=asset.name)
        except (RepositoryError, ArchiveError, ParseError, OSError, UnicodeDecodeError) as e:
            raise DocGenError(
                f"Failed to process {asset.name}: {e}", plugin=plugin, version=parsed["version"]
            ) from e

        if manifest.version != parsed["version"]:
            logger.warning(
                "Archive name and manifest disagree on version",
                plugin=plugin,
                artifact=asset.name,
                manifest_version=manifest.version,
            )

        return PublishedVersion(
            name=plugin,
            version=manifest.version,
            manifest=manifest,
            readme=readme,
            archive_url=asset.browser_download_url,
            archive_size=asset.size,
            archive_name=asset.name,
        )

    def collect(self) -> List[PublishedVersion]:
        """Every plugin version that can be read from the release assets.

        Versions that fail are logged and skipped. The temporary download
        directory is removed whether or not collection succeeds.

        Raises:
            ColaError: If the repository has no releases or no plugin archives
        """
        releases = self.client.list_releases()
        if not releases:
            raise ColaError("No releases found in repository")

        grouped = group_plugin_assets(releases)
        if not grouped:
            raise ColaError("No plugin archives found in releases")

        logger.info("Found plugins in releases", releases=len(releases), plugins=len(grouped))

        published: List[PublishedVersion] = []
        with tempfile.TemporaryDirectory(prefix="colaplug_docs_") as temp_dir:
            work_dir = Path(temp_dir)
            for plugin, assets in grouped.items():
                for asset in assets:
                    try:
                        published.append(self.load_version(plugin, asset, work_dir))
                    except DocGenError as e:
                        logger.error(
                            "Failed to process version",
                            plugin=e.plugin,
                            version=e.version,
                            artifact=asset.name,
                            error=str(e),
                        )
        return published


def published_from_artifacts(
        artifacts: Sequence[PackagedArtifact],
        download_base_url: Optional[str] = None
) -> List[PublishedVersion]:
    """Published versions built straight from a packaging run.

    Args:
        artifacts: Packaged artifacts carrying their manifests
        download_base_url: Prefix for archive links; release download
            URLs use ``https://github.com/<repo>/releases/download``
    """
    published = []
    for artifact in artifacts:
        if artifact.manifest is None:
            logger.warning("Artifact has no manifest, skipping", artifact=artifact.archive_name)
            continue
        readme = ""
        if artifact.source_dir is not None:
            readme_path = Path(artifact.source_dir) / README_FILENAME
            if readme_path.is_file():
                readme = readme_path.read_text(encoding="utf-8")
        if download_base_url:
            archive_url = f"{download_base_url.rstrip('/')}/{artifact.name}-{artifact.version}/{artifact.archive_name}"
        else:
            archive_url = artifact.archive_name
        published.append(
            PublishedVersion(
                name=artifact.name,
                version=artifact.version,
                manifest=artifact.manifest,
                readme=readme,
                archive_url=archive_url,
                archive_size=artifact.size_bytes,
                archive_name=artifact.archive_name,
            )
        )
    return published

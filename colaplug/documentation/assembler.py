"""Versioned static documentation for published plugins.

The assembler groups published plugin versions by name, sorts each group
newest-first by semantic version, optionally keeps only the newest N and
writes the HTML tree::

    <output>/index.html
    <output>/versions.json
    <output>/plugins/<name>/index.html
    <output>/plugins/<name>/v<version>/index.html
"""

from __future__ import annotations

import datetime
import json
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import semver
import structlog

from colaplug.documentation.generator import (
    create_plugin_card,
    generate_template_variables,
    generate_version_items,
    generate_version_selector,
)
from colaplug.documentation.markdown import escape_html, render_markdown_safe
from colaplug.documentation.template import (
    FALLBACK_VERSION_INDEX_TEMPLATE,
    FALLBACK_VERSION_PAGE_TEMPLATE,
    ROOT_INDEX_TEMPLATE,
    load_template,
    render_template,
)
from colaplug.plugin_system.manifest import Manifest, sanitize_name

logger = structlog.get_logger(__name__)

VERSIONS_FILENAME = "versions.json"


@dataclass
class PublishedVersion:
    """One published plugin version, as handed to the assembler.

    Attributes:
        name: Plugin name the version is grouped under
        version: Semantic version
        manifest: Manifest shipped in the archive
        readme: README markdown, empty if the archive has none
        archive_url: Download URL of the archive
        archive_size: Archive size in bytes
        archive_name: Archive file name
    """

    name: str
    version: str
    manifest: Manifest
    readme: str = ""
    archive_url: str = ""
    archive_size: int = 0
    archive_name: str = ""


@dataclass
class VersionEntry:
    version: str
    manifest: Manifest
    readme_html: str
    archive_url: str
    archive_size_bytes: int
    archive_name: str


@dataclass
class PluginVersionSet:
    """All documented versions of one plugin, newest first."""

    name: str
    entries: List[VersionEntry] = field(default_factory=list)

    @property
    def slug(self) -> str:
        return sanitize_name(self.name) or "plugin"

    @property
    def versions(self) -> List[str]:
        return [entry.version for entry in self.entries]

    @property
    def latest(self) -> Optional[VersionEntry]:
        return self.entries[0] if self.entries else None

    def sort(self) -> None:
        self.entries.sort(key=lambda entry: semver.Version.parse(entry.version), reverse=True)

    def retain(self, keep_versions: int) -> int:
        """Keep only the newest keep_versions entries (0 keeps all); returns the number dropped."""
        if keep_versions <= 0 or len(self.entries) <= keep_versions:
            return 0
        dropped = len(self.entries) - keep_versions
        del self.entries[keep_versions:]
        return dropped


@dataclass
class DocsResult:
    output_directory: Path
    plugins_processed: int = 0
    versions_generated: int = 0
    url: Optional[str] = None


def _default_readme(manifest: Manifest) -> str:
    return f"# {manifest.package_name}\n\nNo documentation available."


def group_versions(
        published: Iterable[PublishedVersion],
        renderer: Callable[[str], str] = render_markdown_safe
) -> Dict[str, PluginVersionSet]:
    """Group published versions by plugin name and sort each group newest-first.

    Duplicate versions keep the first one seen. Versions that are not
    valid semantic versions are logged and left out.

    Args:
        published: Published versions in discovery order
        renderer: Markdown to HTML function used for READMEs

    Returns:
        Version sets keyed by plugin name, in discovery order
    """
    sets: Dict[str, PluginVersionSet] = {}
    for item in published:
        try:
            semver.Version.parse(item.version)
        except ValueError as e:
            logger.error("Invalid semantic version, skipping", plugin=item.name, version=item.version, error=str(e))
            continue

        version_set = sets.setdefault(item.name, PluginVersionSet(item.name))
        if item.version in version_set.versions:
            logger.warning("Duplicate version ignored", plugin=item.name, version=item.version)
            continue

        readme = item.readme or _default_readme(item.manifest)
        version_set.entries.append(
            VersionEntry(
                version=item.version,
                manifest=item.manifest,
                readme_html=renderer(readme),
                archive_url=item.archive_url,
                archive_size_bytes=item.archive_size,
                archive_name=item.archive_name or f"{item.name}-{item.version}",
            )
        )

    for version_set in sets.values():
        version_set.sort()
    return sets


def apply_retention(sets: Dict[str, PluginVersionSet], keep_versions: int) -> None:
    for version_set in sets.values():
        dropped = version_set.retain(keep_versions)
        if dropped:
            logger.info(
                "Dropped old versions",
                plugin=version_set.name,
                kept=keep_versions,
                removed=dropped,
            )


def _timestamp(now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_versions_metadata(
        sets: Dict[str, PluginVersionSet],
        now: Optional[datetime.datetime] = None
) -> Dict[str, Any]:
    return {
        "plugins": {name: version_set.versions for name, version_set in sets.items()},
        "generated": _timestamp(now),
    }


class DocumentationAssembler:
    """Builds the static documentation tree.

    Attributes:
        template_path: Per-version page template
        version_index_template_path: Version index page template
        keep_versions: Newest versions kept per plugin, 0 keeps all
    """

    def __init__(
            self,
            template_path: Optional[Union[str, Path]] = None,
            version_index_template_path: Optional[Union[str, Path]] = None,
            keep_versions: int = 0,
            renderer: Callable[[str], str] = render_markdown_safe
    ) -> None:
        self.template_path = template_path
        self.version_index_template_path = version_index_template_path
        self.keep_versions = keep_versions
        self.renderer = renderer

    def assemble(self, published: Iterable[PublishedVersion]) -> Dict[str, PluginVersionSet]:
        sets = group_versions(published, self.renderer)
        apply_retention(sets, self.keep_versions)
        return {name: version_set for name, version_set in sets.items() if version_set.entries}

    def render_version_page(self, version_set: PluginVersionSet, entry: VersionEntry) -> str:
        variables = generate_template_variables(
            manifest=entry.manifest,
            version=entry.version,
            readme_html=entry.readme_html,
            version_selector=generate_version_selector(version_set.versions, entry.version),
            archive_url=entry.archive_url,
            archive_size=entry.archive_size_bytes,
            archive_name=entry.archive_name,
        )
        template = load_template(self.template_path) or FALLBACK_VERSION_PAGE_TEMPLATE
        return render_template(template, variables)

    def render_version_index(self, version_set: PluginVersionSet) -> str:
        template = load_template(self.version_index_template_path) or FALLBACK_VERSION_INDEX_TEMPLATE
        return render_template(
            template,
            {
                "PLUGIN_NAME": escape_html(version_set.name),
                "VERSION_ITEMS": generate_version_items(version_set.versions),
            },
        )

    def render_root_index(self, sets: Dict[str, PluginVersionSet], generated: str) -> str:
        cards = []
        for version_set in sets.values():
            latest = version_set.latest
            cards.append(
                create_plugin_card(
                    name=version_set.name,
                    version=latest.version,
                    link=f"plugins/{version_set.slug}/index.html",
                    description=latest.manifest.description,
                    tags=latest.manifest.tags,
                )
            )
        return render_template(
            ROOT_INDEX_TEMPLATE,
            {"PLUGIN_CARDS": "\n".join(cards), "GENERATED": generated},
        )

    def write_site(self, sets: Dict[str, PluginVersionSet], output_dir: Union[str, Path]) -> DocsResult:
        """Write every page and ``versions.json`` under output_dir.

        Pages from an earlier build are removed first so versions dropped
        by retention do not linger in the output.
        """
        output_dir = Path(output_dir)
        plugins_dir = output_dir / "plugins"
        if plugins_dir.exists():
            shutil.rmtree(plugins_dir)
        plugins_dir.mkdir(parents=True, exist_ok=True)
        result = DocsResult(output_directory=output_dir)

        for version_set in sets.values():
            plugin_dir = plugins_dir / version_set.slug
            plugin_dir.mkdir(parents=True, exist_ok=True)

            for entry in version_set.entries:
                version_dir = plugin_dir / f"v{entry.version}"
                version_dir.mkdir(parents=True, exist_ok=True)
                (version_dir / "index.html").write_text(
                    self.render_version_page(version_set, entry), encoding="utf-8"
                )
                result.versions_generated += 1

            (plugin_dir / "index.html").write_text(self.render_version_index(version_set), encoding="utf-8")
            result.plugins_processed += 1
            logger.info("Generated documentation", plugin=version_set.name, versions=len(version_set.entries))

        metadata = generate_versions_metadata(sets)
        (output_dir / "index.html").write_text(
            self.render_root_index(sets, metadata["generated"]), encoding="utf-8"
        )
        with open(output_dir / VERSIONS_FILENAME, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)

        return result

    def build(self, published: Iterable[PublishedVersion], output_dir: Union[str, Path]) -> DocsResult:
        """Assemble and write documentation for the given versions."""
        sets = self.assemble(published)
        result = self.write_site(sets, output_dir)
        logger.info(
            "Documentation summary",
            plugins=result.plugins_processed,
            versions=result.versions_generated,
            output_directory=str(result.output_directory),
        )
        return result

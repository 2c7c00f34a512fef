"""HTML fragments shared by the documentation pages."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from colaplug.documentation.markdown import escape_html
from colaplug.plugin_system.manifest import Manifest
from colaplug.plugin_system.package import format_bytes


def _metadata_item(label: str, value_html: str) -> str:
    return (
        '\n            <div class="metadata-item">'
        f'\n                <div class="metadata-label">{label}</div>'
        f'\n                <div class="metadata-value">{value_html}</div>'
        '\n            </div>'
    )


def _link(url: str) -> str:
    escaped = escape_html(url)
    return f'<a href="{escaped}" target="_blank">{escaped}</a>'


def generate_tags(tags: Sequence[str]) -> str:
    if not tags:
        return ""
    spans = "".join(f'<span class="tag">{escape_html(tag)}</span>' for tag in tags)
    return f'<div class="tags">{spans}</div>'


def generate_metadata_items(manifest: Manifest) -> str:
    """Metadata rows for author, license, links, command count and tags."""
    items: List[str] = []
    if manifest.author:
        items.append(_metadata_item("Author", escape_html(manifest.author)))
    if manifest.license:
        items.append(_metadata_item("License", escape_html(manifest.license)))
    if manifest.repository:
        items.append(_metadata_item("Repository", _link(manifest.repository)))
    if manifest.homepage:
        items.append(_metadata_item("Homepage", _link(manifest.homepage)))
    if manifest.commands:
        items.append(_metadata_item("Commands", str(len(manifest.commands))))
    if manifest.tags:
        items.append(_metadata_item("Tags", generate_tags(manifest.tags)))
    return "\n".join(items)


def generate_commands_section(manifest: Manifest) -> str:
    if not manifest.commands:
        return ""

    cards = []
    for command in manifest.commands:
        details = ""
        if command.executable:
            details = (
                '<div class="command-details">'
                '<div class="command-detail-label">Executable:</div>'
                f'<div class="command-detail-value">{escape_html(command.executable)}</div>'
                '</div>'
            )
        short = f'<div class="command-description">{escape_html(command.short)}</div>' if command.short else ""
        long = f'<div class="command-description long">{escape_html(command.long)}</div>' if command.long else ""
        cards.append(
            '\n            <div class="command-card">'
            '\n                <div class="command-header">'
            f'\n                    <span class="command-code">{escape_html(command.name)}</span>'
            f'\n                    <span class="command-type">{escape_html(command.type or "executable")}</span>'
            '\n                </div>'
            f'\n                {short}'
            f'\n                {long}'
            f'\n                {details}'
            '\n            </div>'
        )

    return (
        '\n        <div class="commands-section">'
        '\n            <h2>Available Commands</h2>'
        '\n            <div class="command-list">'
        + "\n".join(cards)
        + '\n            </div>'
        '\n        </div>'
    )


def generate_version_selector(versions: Sequence[str], current_version: str) -> str:
    """A ``<select>`` that navigates to a sibling ``v<version>`` page."""
    options = "\n          ".join(
        f'<option value="v{escape_html(v)}"{" selected" if v == current_version else ""}>v{escape_html(v)}</option>'
        for v in versions
    )
    return (
        '<div class="version-selector">\n'
        '        <label for="version-select">Version:</label>\n'
        '        <select id="version-select" '
        "onchange=\"window.location.href='../' + this.value + '/index.html'\">\n"
        f'          {options}\n'
        '        </select>\n'
        '      </div>'
    )


def generate_version_items(versions: Sequence[str]) -> str:
    """Rows of the version index; the first (newest) row is flagged Latest."""
    items = []
    for index, version in enumerate(versions):
        badge = '<span class="version-badge badge-latest">Latest</span>' if index == 0 else ""
        escaped = escape_html(version)
        items.append(
            '\n            <div class="version-item">'
            '\n                <div class="version-info">'
            f'\n                    <div class="version-number">v{escaped}{badge}</div>'
            '\n                </div>'
            f'\n                <a href="v{escaped}/index.html" class="version-link">View Documentation &rarr;</a>'
            '\n            </div>'
        )
    return "\n".join(items)


def create_plugin_card(
        name: str,
        version: str,
        link: str,
        description: Optional[str] = None,
        tags: Sequence[str] = ()
) -> str:
    description_html = f'<p class="description">{escape_html(description)}</p>' if description else ""
    return (
        '\n    <div class="plugin-card">'
        f'\n      <h3><a href="{escape_html(link)}">{escape_html(name)}</a></h3>'
        f'\n      <span class="version">v{escape_html(version)}</span>'
        f'\n      {description_html}'
        f'\n      {generate_tags(tags)}'
        '\n    </div>'
    )


def generate_template_variables(
        manifest: Manifest,
        version: str,
        readme_html: str,
        version_selector: str,
        archive_url: str,
        archive_size: int,
        archive_name: str
) -> Dict[str, str]:
    """Placeholder values for a per-version page."""
    command = manifest.primary_command
    description = manifest.description
    return {
        "PLUGIN_NAME": escape_html(manifest.package_name),
        "VERSION": escape_html(version),
        "PLUGIN_VERSION": escape_html(version),
        "COMMAND_NAME": escape_html(command.name if command else manifest.package_name),
        "DESCRIPTION": escape_html(description),
        "DESCRIPTION_ITEM": (
            f"<p><strong>Description:</strong> {escape_html(description)}</p>" if description else ""
        ),
        "VERSION_SELECTOR": version_selector,
        "METADATA_ITEMS": generate_metadata_items(manifest),
        "COMMANDS_SECTION": generate_commands_section(manifest),
        "README_CONTENT": readme_html,
        "ARCHIVE_URL": escape_html(archive_url),
        "ARCHIVE_NAME": escape_html(archive_name),
        "ARCHIVE_SIZE": format_bytes(archive_size),
    }

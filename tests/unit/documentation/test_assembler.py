"""Unit tests for the documentation assembler."""

import datetime
import json

import pytest
from structlog.testing import capture_logs

from colaplug.documentation.assembler import (
    DocumentationAssembler,
    PublishedVersion,
    generate_versions_metadata,
    group_versions,
)
from colaplug.plugin_system.manifest import Manifest


def published(version, name="demo", readme="", description=None):
    data = {"pkgName": name, "version": version, "cmds": [{"name": name, "type": "executable"}]}
    if description:
        data["_metadata"] = {"description": description, "tags": ["cli"]}
    return PublishedVersion(
        name=name,
        version=version,
        manifest=Manifest.model_validate(data),
        readme=readme,
        archive_url=f"https://example.com/{name}-{version}.zip",
        archive_size=2048,
        archive_name=f"{name}-{version}.zip",
    )


def test_group_versions_sorts_newest_first():
    sets = group_versions([published(v) for v in ("1.9.0", "1.10.0", "2.0.0-beta.1", "2.0.0", "0.1.0")])

    assert list(sets) == ["demo"]
    assert sets["demo"].versions == ["2.0.0", "2.0.0-beta.1", "1.10.0", "1.9.0", "0.1.0"]
    assert sets["demo"].latest.version == "2.0.0"


def test_group_versions_keeps_first_duplicate():
    first = published("1.0.0", readme="first")
    second = published("1.0.0", readme="second")

    sets = group_versions([first, second], renderer=lambda text: text)

    assert len(sets["demo"].entries) == 1
    assert sets["demo"].entries[0].readme_html == "first"


def test_group_versions_skips_invalid_semver():
    with capture_logs() as logs:
        sets = group_versions([published("1.0.0"), published("latest")])

    assert sets["demo"].versions == ["1.0.0"]
    assert any(log["event"] == "Invalid semantic version, skipping" and log["plugin"] == "demo"
               and log["version"] == "latest" and log["log_level"] == "error" for log in logs)


def test_group_versions_default_readme():
    sets = group_versions([published("1.0.0")], renderer=lambda text: text)
    assert sets["demo"].entries[0].readme_html == "# demo\n\nNo documentation available."


@pytest.mark.parametrize("keep, expected", [
    (0, ["3.0.0", "2.0.0", "1.0.0"]),
    (2, ["3.0.0", "2.0.0"]),
    (5, ["3.0.0", "2.0.0", "1.0.0"]),
])
def test_retention(keep, expected):
    assembler = DocumentationAssembler(keep_versions=keep)
    sets = assembler.assemble([published(v) for v in ("1.0.0", "3.0.0", "2.0.0")])
    assert sets["demo"].versions == expected


def test_versions_metadata():
    sets = group_versions([published("1.0.0"), published("0.5.0", name="other")])
    now = datetime.datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=datetime.timezone.utc)

    assert generate_versions_metadata(sets, now) == {
        "plugins": {"demo": ["1.0.0"], "other": ["0.5.0"]},
        "generated": "2024-01-02T03:04:05.678Z",
    }


def test_build_writes_tree(tmp_path):
    """Three versions with retention of two keep only the newest two pages."""
    output_dir = tmp_path / "docs"
    versions = [published(v, readme="# Demo\n\nUsage notes.", description="Demo plugin") for v in
                ("1.0.0", "1.1.0", "2.0.0")]

    result = DocumentationAssembler(keep_versions=2).build(versions, output_dir)

    assert result.plugins_processed == 1
    assert result.versions_generated == 2
    assert (output_dir / "plugins" / "demo" / "v2.0.0" / "index.html").is_file()
    assert (output_dir / "plugins" / "demo" / "v1.1.0" / "index.html").is_file()
    assert not (output_dir / "plugins" / "demo" / "v1.0.0").exists()

    metadata = json.loads((output_dir / "versions.json").read_text())
    assert metadata["plugins"] == {"demo": ["2.0.0", "1.1.0"]}
    assert metadata["generated"].endswith("Z")

    version_index = (output_dir / "plugins" / "demo" / "index.html").read_text()
    assert version_index.count("Latest") == 1
    assert version_index.index("v2.0.0") < version_index.index("v1.1.0")

    root_index = (output_dir / "index.html").read_text()
    assert 'href="plugins/demo/index.html"' in root_index
    assert '<span class="version">v2.0.0</span>' in root_index
    assert "Demo plugin" in root_index



def test_rebuild_drops_retired_versions(tmp_path):
    output_dir = tmp_path / "docs"
    versions = [published(v) for v in ("1.0.0", "1.1.0", "2.0.0")]
    DocumentationAssembler(keep_versions=0).build(versions, output_dir)

    DocumentationAssembler(keep_versions=1).build(versions, output_dir)

    assert sorted(p.name for p in (output_dir / "plugins" / "demo").iterdir()) == ["index.html", "v2.0.0"]
    assert json.loads((output_dir / "versions.json").read_text())["plugins"] == {"demo": ["2.0.0"]}


def test_rebuild_drops_removed_plugins(tmp_path):
    output_dir = tmp_path / "docs"
    DocumentationAssembler().build([published("1.0.0"), published("1.0.0", name="other")], output_dir)

    DocumentationAssembler().build([published("1.0.0")], output_dir)

    assert sorted(p.name for p in (output_dir / "plugins").iterdir()) == ["demo"]


def test_fallback_version_page(tmp_path):
    output_dir = tmp_path / "docs"
    assembler = DocumentationAssembler(template_path=tmp_path / "missing.html")

    assembler.build([published("1.0.0", readme="# Demo\n\nUsage notes.")], output_dir)

    page = (output_dir / "plugins" / "demo" / "v1.0.0" / "index.html").read_text()
    assert "<h1>demo</h1>" in page
    assert "<p>Usage notes.</p>" in page
    assert '<a href="https://example.com/demo-1.0.0.zip">Download demo-1.0.0.zip</a> (2 KB)' in page
    assert '<option value="v1.0.0" selected>' in page
    assert "{{" not in page


def test_custom_templates(tmp_path):
    page_template = tmp_path / "page.html"
    page_template.write_text("<title>{{PLUGIN_NAME}} {{VERSION}}</title>{{README_CONTENT}}", encoding="utf-8")
    index_template = tmp_path / "index.html"
    index_template.write_text("<h1>{{PLUGIN_NAME}}</h1>{{VERSION_ITEMS}}", encoding="utf-8")
    output_dir = tmp_path / "docs"

    DocumentationAssembler(page_template, index_template).build([published("1.0.0", readme="Hi")], output_dir)

    page = (output_dir / "plugins" / "demo" / "v1.0.0" / "index.html").read_text()
    assert page == "<title>demo 1.0.0</title><p>Hi</p>"
    index = (output_dir / "plugins" / "demo" / "index.html").read_text()
    assert index.startswith("<h1>demo</h1>")


def test_readme_scripts_are_stripped(tmp_path):
    output_dir = tmp_path / "docs"
    readme = "# Demo\n\n<script>alert('x')</script>\n"

    DocumentationAssembler().build([published("1.0.0", readme=readme)], output_dir)

    page = (output_dir / "plugins" / "demo" / "v1.0.0" / "index.html").read_text()
    assert "alert" not in page


def test_plugin_slug_is_sanitized(tmp_path):
    output_dir = tmp_path / "docs"
    DocumentationAssembler().build([published("1.0.0", name="My Tools")], output_dir)

    assert (output_dir / "plugins" / "my-tools" / "v1.0.0" / "index.html").is_file()
    metadata = json.loads((output_dir / "versions.json").read_text())
    assert metadata["plugins"] == {"My Tools": ["1.0.0"]}


def test_build_with_nothing_published(tmp_path):
    result = DocumentationAssembler().build([], tmp_path / "docs")

    assert result.plugins_processed == 0
    assert json.loads((tmp_path / "docs" / "versions.json").read_text())["plugins"] == {}

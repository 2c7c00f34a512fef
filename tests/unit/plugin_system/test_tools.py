"""Unit tests for batch validation and packaging."""

import json
import re
import tarfile

import pytest

from colaplug.plugin_system.package import ArchiveFormat
from colaplug.plugin_system.tools import (
    package_all,
    package_plugin,
    package_plugins,
    validate_plugin,
    validate_plugins,
    write_github_output,
)
from colaplug.utils.exceptions import ColaError, PackagingError


@pytest.fixture
def mixed_plugins(tmp_path, make_plugin, demo_manifest):
    """Plugins directory with one valid, one invalid and one malformed plugin."""
    root = tmp_path / "plugins"
    make_plugin(root, "alpha", demo_manifest, readme="# Alpha\n")

    invalid = dict(demo_manifest, pkgName="broken", version="v2.0.0")
    make_plugin(root, "broken", invalid)

    make_plugin(root, "garbled", "{not json")
    make_plugin(root, "notes")
    return root


def test_validate_plugins_summary(mixed_plugins):
    summary = validate_plugins(mixed_plugins)

    assert [result.plugin for result in summary.results] == ["alpha", "broken", "garbled"]
    assert summary.valid_plugins == ["alpha"]
    assert summary.invalid_plugins == ["broken", "garbled"]
    assert summary.total_errors == 2
    assert not summary.ok

    garbled = summary.results[2]
    assert garbled.manifest is None
    assert "Invalid JSON manifest" in garbled.result.errors[0]


def test_validate_plugins_outputs(plugins_dir):
    summary = validate_plugins(plugins_dir)

    assert summary.ok
    assert summary.total_warnings == 3
    assert summary.outputs() == {
        "validated-plugins": '["demo"]',
        "valid-count": "1",
        "invalid-count": "0",
    }


def test_validate_plugins_empty_directory(tmp_path):
    with pytest.raises(ColaError, match="No plugins found"):
        validate_plugins(tmp_path)


def test_validate_plugin_logs_errors(tmp_path, make_plugin, demo_manifest):
    from structlog.testing import capture_logs

    demo_manifest["version"] = "v1.0.0"
    plugin_dir = make_plugin(tmp_path, "demo", demo_manifest)

    with capture_logs() as logs:
        validation = validate_plugin(plugin_dir)

    assert not validation.valid
    errors = [log for log in logs if log["log_level"] == "error"]
    assert errors == [
        {"event": "Manifest error", "log_level": "error", "plugin": "demo", "error": "Invalid version format: v1.0.0"}
    ]


def test_package_plugin_zip(plugins_dir, tmp_path):
    """Packaging the demo plugin as zip yields one checksummed artifact."""
    output_dir = tmp_path / "build"
    artifacts = package_all(plugins_dir, output_dir, ArchiveFormat.ZIP)

    assert len(artifacts) == 1
    artifact = artifacts[0]
    assert artifact.archive_name == "demo-1.0.0.zip"
    assert artifact.name == "demo"
    assert artifact.version == "1.0.0"
    assert re.fullmatch(r"[0-9a-f]{64}", artifact.checksum)
    assert artifact.size_bytes > 0
    assert artifact.size_bytes == artifact.archive_path.stat().st_size
    assert artifact.source_dir == plugins_dir / "demo"
    assert (output_dir / "demo-1.0.0.zip.sha256").read_text() == f"{artifact.checksum}  demo-1.0.0.zip\n"


def test_package_plugin_uses_sanitized_name(tmp_path, make_plugin, demo_manifest):
    demo_manifest["pkgName"] = "My Demo"
    plugin_dir = make_plugin(tmp_path / "plugins", "demo", demo_manifest)

    artifact = package_plugin(plugin_dir, tmp_path / "out", ArchiveFormat.TAR_GZ)

    assert artifact.archive_name == "my-demo-1.0.0.tar.gz"
    assert artifact.name == "My Demo"
    with tarfile.open(artifact.archive_path) as tf:
        assert "my-demo/manifest.mf" in tf.getnames()


def test_package_plugins_collects_every_failure(mixed_plugins, tmp_path):
    report = package_plugins(mixed_plugins, tmp_path / "out", ArchiveFormat.TAR_GZ)

    assert [artifact.archive_name for artifact in report.artifacts] == ["demo-1.0.0.tar.gz"]
    assert set(report.failures) == {"broken", "garbled"}
    assert report.failures["broken"].startswith("Invalid manifest: Invalid version format")
    assert not report.ok
    assert report.count == 1
    assert report.total_size == report.artifacts[0].size_bytes


def test_package_plugins_skips_directories_without_manifest(tmp_path, make_plugin, demo_manifest):
    root = tmp_path / "plugins"
    make_plugin(root, "demo", demo_manifest)
    make_plugin(root, "docs-only", readme="# Not a plugin\n")

    report = package_plugins(root, tmp_path / "out")

    assert report.ok
    assert report.count == 1
    assert report.skipped == {}


def test_package_plugins_output_directory_is_idempotent(plugins_dir, tmp_path):
    output_dir = tmp_path / "a" / "b"
    package_plugins(plugins_dir, output_dir)
    report = package_plugins(plugins_dir, output_dir)
    assert report.count == 1
    assert output_dir.is_dir()


def test_package_plugins_empty_directory(tmp_path):
    report = package_plugins(tmp_path / "nothing", tmp_path / "out")
    assert report.artifacts == []
    assert report.ok


def test_package_all_raises_with_partial_results(mixed_plugins, tmp_path):
    with pytest.raises(PackagingError) as excinfo:
        package_all(mixed_plugins, tmp_path / "out")

    error = excinfo.value
    assert set(error.failures) == {"broken", "garbled"}
    assert [artifact.name for artifact in error.artifacts] == ["demo"]
    assert "broken" in str(error)


def test_package_all_best_effort(mixed_plugins, tmp_path):
    artifacts = package_all(mixed_plugins, tmp_path / "out", best_effort=True)
    assert [artifact.name for artifact in artifacts] == ["demo"]


def test_packaging_report_outputs(plugins_dir, tmp_path):
    report = package_plugins(plugins_dir, tmp_path / "out", ArchiveFormat.ZIP)
    outputs = report.outputs()

    assert outputs["package-count"] == "1"
    packaged = json.loads(outputs["packaged-artifacts"])
    assert packaged[0]["archive"] == "demo-1.0.0.zip"
    assert packaged[0]["checksum"] == report.artifacts[0].checksum


def test_write_github_output(tmp_path, monkeypatch):
    output_file = tmp_path / "github_output"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))

    assert write_github_output({"package-count": "2"})
    assert write_github_output({"valid-count": 1})

    assert output_file.read_text() == "package-count=2\nvalid-count=1\n"


def test_write_github_output_without_target(monkeypatch):
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    assert write_github_output({"package-count": "2"}) is False

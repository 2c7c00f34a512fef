"""Unit tests for plugin archives."""

import hashlib
import tarfile
import tempfile
import zipfile
from pathlib import Path

import pytest

from colaplug.core.process import ProcessResult
from colaplug.plugin_system.package import (
    ArchiveFormat,
    CommandArchiver,
    archive_filename,
    build_archive,
    checksum_path,
    compute_checksum,
    extract_archive_members,
    format_bytes,
    verify_checksum,
    write_checksum_sidecar,
)
from colaplug.utils.exceptions import ArchiveError


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    source = tmp_path / "demo"
    (source / "bin").mkdir(parents=True)
    (source / "manifest.mf").write_text('{"pkgName": "demo"}', encoding="utf-8")
    (source / "README.md").write_text("# Demo\n", encoding="utf-8")
    (source / "bin" / "demo").write_text("#!/bin/sh\necho demo\n", encoding="utf-8")
    return source


def test_build_zip_has_no_wrapper_directory(source_dir, tmp_path):
    output = tmp_path / "out" / "demo-1.0.0.zip"
    build_archive(source_dir, output, "demo", ArchiveFormat.ZIP)

    with zipfile.ZipFile(output) as zf:
        names = sorted(zf.namelist())
    assert names == ["README.md", "bin/demo", "manifest.mf"]


def test_build_tar_gz_is_rooted_at_base_name(source_dir, tmp_path):
    output = tmp_path / "demo-1.0.0.tar.gz"
    build_archive(source_dir, output, "demo", "tar.gz")

    with tarfile.open(output, "r:gz") as tf:
        files = sorted(member.name for member in tf.getmembers() if member.isfile())
        assert tf.extractfile("demo/README.md").read() == b"# Demo\n"
    assert files == ["demo/README.md", "demo/bin/demo", "demo/manifest.mf"]


def test_build_archive_replaces_existing_file(source_dir, tmp_path):
    output = tmp_path / "demo-1.0.0.zip"
    output.write_text("stale")
    build_archive(source_dir, output, "demo", ArchiveFormat.ZIP)
    assert zipfile.is_zipfile(output)


def test_build_archive_missing_source(tmp_path):
    with pytest.raises(ArchiveError, match="Source directory not found"):
        build_archive(tmp_path / "missing", tmp_path / "out.zip", "missing", ArchiveFormat.ZIP)


def test_command_archiver_runs_zip_and_tar(source_dir, tmp_path, fake_executor):
    def create_output(command):
        # zip writes its archive path as the 4th argument, tar as the 3rd
        Path(command[3] if command[0] == "zip" else command[2]).write_bytes(b"archive")
        return ProcessResult(0)

    fake_executor.set_response(("zip",), create_output)
    fake_executor.set_response(("tar",), create_output)
    archiver = CommandArchiver(fake_executor)

    build_archive(source_dir, tmp_path / "demo-1.0.0.zip", "demo", ArchiveFormat.ZIP, archiver)
    build_archive(source_dir, tmp_path / "demo-1.0.0.tar.gz", "demo", ArchiveFormat.TAR_GZ, archiver)

    zip_call, tar_call = fake_executor.calls
    assert zip_call[:3] == ["zip", "-r", "-q"]
    assert zip_call[-1] == "."
    assert fake_executor.cwds[0] == str(source_dir)
    assert tar_call[:2] == ["tar", "-czf"]
    assert tar_call[-1] == "demo"


def test_command_archiver_failure(source_dir, tmp_path, fake_executor):
    fake_executor.set_response(("zip",), ProcessResult(12, stderr="zip error"))
    output = tmp_path / "demo-1.0.0.zip"

    with pytest.raises(ArchiveError, match="Failed to create zip archive demo-1.0.0.zip"):
        build_archive(source_dir, output, "demo", ArchiveFormat.ZIP, CommandArchiver(fake_executor))
    assert not output.exists()



def test_command_archiver_removes_staging_on_failure(source_dir, tmp_path, fake_executor, monkeypatch):
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    fake_executor.set_response(("tar",), ProcessResult(2, stderr="tar: write error"))

    with pytest.raises(ArchiveError, match="tar: write error"):
        build_archive(
            source_dir, tmp_path / "demo-1.0.0.tar.gz", "demo", ArchiveFormat.TAR_GZ, CommandArchiver(fake_executor)
        )
    assert list(scratch.iterdir()) == []

def test_command_archiver_without_output(source_dir, tmp_path, fake_executor):
    with pytest.raises(ArchiveError, match="Archive was not created"):
        build_archive(
            source_dir, tmp_path / "demo-1.0.0.zip", "demo", ArchiveFormat.ZIP, CommandArchiver(fake_executor)
        )


def test_archive_filename():
    assert archive_filename("demo", "1.0.0", ArchiveFormat.ZIP) == "demo-1.0.0.zip"
    assert archive_filename("demo", "1.0.0", "tar.gz") == "demo-1.0.0.tar.gz"


def test_checksum_matches_sha256(tmp_path):
    path = tmp_path / "data.bin"
    content = b"x" * 200_000
    path.write_bytes(content)

    checksum = compute_checksum(path)
    assert checksum == hashlib.sha256(content).hexdigest()
    assert len(checksum) == 64


def test_checksum_sidecar_format(tmp_path):
    archive = tmp_path / "demo-1.0.0.zip"
    archive.write_bytes(b"archive")
    checksum = compute_checksum(archive)

    sidecar = write_checksum_sidecar(archive, checksum)

    assert sidecar == checksum_path(archive)
    assert sidecar.name == "demo-1.0.0.zip.sha256"
    assert sidecar.read_bytes() == f"{checksum}  demo-1.0.0.zip\n".encode()


def test_verify_checksum_detects_mutation(tmp_path):
    archive = tmp_path / "demo-1.0.0.zip"
    archive.write_bytes(b"original content")
    checksum = compute_checksum(archive)
    assert verify_checksum(archive, checksum)

    data = bytearray(archive.read_bytes())
    data[0] ^= 0x01
    archive.write_bytes(bytes(data))
    assert not verify_checksum(archive, checksum)


def test_verify_checksum_is_case_sensitive(tmp_path):
    archive = tmp_path / "demo-1.0.0.zip"
    archive.write_bytes(b"content")
    assert not verify_checksum(archive, compute_checksum(archive).upper())


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (1048576, "1 MB"),
        (5 * 1024 ** 3, "5 GB"),
    ],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


@pytest.mark.parametrize("format", [ArchiveFormat.ZIP, ArchiveFormat.TAR_GZ])
def test_extract_archive_members(source_dir, tmp_path, format):
    archive = tmp_path / archive_filename("demo", "1.0.0", format)
    build_archive(source_dir, archive, "demo", format)

    found = extract_archive_members(archive, tmp_path / "extract", ["manifest.mf", "README.md", "LICENSE"])

    assert set(found) == {"manifest.mf", "README.md"}
    assert found["README.md"].read_text(encoding="utf-8") == "# Demo\n"
    assert found["manifest.mf"].parent == (tmp_path / "extract").resolve()


def test_extract_ignores_deeply_nested_files(tmp_path):
    archive = tmp_path / "nested-1.0.0.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("a/b/manifest.mf", "{}")
    assert extract_archive_members(archive, tmp_path / "extract", ["manifest.mf"]) == {}



def test_extract_prefers_root_level_files(tmp_path):
    archive = tmp_path / "demo-1.0.0.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("docs/README.md", "nested")
        zf.writestr("README.md", "root")
        zf.writestr("manifest.mf", "{}")

    found = extract_archive_members(archive, tmp_path / "extract", ["manifest.mf", "README.md"])

    assert found["README.md"].read_text() == "root"


def test_extract_prefers_shallowest_tar_member(tmp_path):
    source = tmp_path / "src"
    (source / "docs").mkdir(parents=True)
    (source / "docs" / "README.md").write_text("nested")
    (source / "README.md").write_text("root")
    archive = tmp_path / "demo-1.0.0.tar.gz"
    with tarfile.open(archive, "w:gz") as tf:
        tf.add(str(source / "docs" / "README.md"), arcname="docs/README.md")
        tf.add(str(source / "README.md"), arcname="README.md")

    found = extract_archive_members(archive, tmp_path / "extract", ["README.md"])

    assert found["README.md"].read_text() == "root"

def test_extract_keeps_traversal_inside_target(tmp_path):
    archive = tmp_path / "evil-1.0.0.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("../manifest.mf", '{"pkgName": "evil"}')

    target = tmp_path / "extract"
    found = extract_archive_members(archive, target, ["manifest.mf"])

    assert found["manifest.mf"] == (target / "manifest.mf").resolve()
    assert not (tmp_path / "manifest.mf").exists()


def test_extract_unsupported_archive(tmp_path):
    archive = tmp_path / "demo-1.0.0.zip"
    archive.write_text("not an archive")
    with pytest.raises(ArchiveError, match="Unsupported archive format"):
        extract_archive_members(archive, tmp_path / "extract", ["manifest.mf"])


def test_extract_missing_archive(tmp_path):
    with pytest.raises(ArchiveError, match="Failed to extract"):
        extract_archive_members(tmp_path / "missing.tar.gz", tmp_path / "extract", ["manifest.mf"])

"""Plugin archive creation and checksum handling.

This module turns a plugin directory into a distributable archive and
pairs it with a SHA-256 sidecar file. Archives are named
``<sanitized-name>-<version>.<zip|tar.gz>``; tar.gz archives wrap their
content in a ``<base-name>/`` directory, zip archives do not.
"""

from __future__ import annotations

import abc
import enum
import hashlib
import os
import shutil
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from colaplug.core.process import ProcessExecutor
from colaplug.plugin_system.manifest import Manifest, build_archive_filename
from colaplug.utils.exceptions import ArchiveError, ProcessError

logger = structlog.get_logger(__name__)

CHECKSUM_SUFFIX = ".sha256"
HASH_CHUNK_SIZE = 64 * 1024


class ArchiveFormat(str, enum.Enum):
    """Format for plugin archives."""

    ZIP = "zip"
    TAR_GZ = "tar.gz"

    @property
    def extension(self) -> str:
        return self.value


@dataclass
class PackagedArtifact:
    """An archive written by the packaging run.

    Attributes:
        name: Plugin package name
        version: Plugin version
        archive_path: Path to the archive file
        checksum: SHA-256 hex digest of the archive
        size_bytes: Archive size on disk
        manifest: Manifest the archive was built from
        source_dir: Plugin directory the archive was built from
    """

    name: str
    version: str
    archive_path: Path
    checksum: str
    size_bytes: int
    manifest: Optional[Manifest] = field(default=None, repr=False, compare=False)
    source_dir: Optional[Path] = field(default=None, repr=False, compare=False)

    @property
    def archive_name(self) -> str:
        return self.archive_path.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "archive": self.archive_name,
            "checksum": self.checksum,
            "size": self.size_bytes,
        }


def _iter_source_files(source_dir: Path) -> List[Tuple[Path, PurePosixPath]]:
    """Every file under source_dir with its archive-relative path, sorted."""
    files = []
    for root, dirs, filenames in os.walk(source_dir):
        dirs.sort()
        root_path = Path(root)
        for filename in sorted(filenames):
            file_path = root_path / filename
            rel_path = PurePosixPath(file_path.relative_to(source_dir).as_posix())
            files.append((file_path, rel_path))
    return files


class Archiver(abc.ABC):
    """Writes one archive from a directory."""

    @abc.abstractmethod
    def create_zip(self, source_dir: Path, output_path: Path) -> None:
        ...

    @abc.abstractmethod
    def create_tar_gz(self, source_dir: Path, output_path: Path, base_name: str) -> None:
        ...


class InProcessArchiver(Archiver):
    """Archiver built on :mod:`zipfile` and :mod:`tarfile`."""

    def create_zip(self, source_dir: Path, output_path: Path) -> None:
        with zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED) as zf:
            for file_path, rel_path in _iter_source_files(source_dir):
                zf.write(file_path, str(rel_path))

    def create_tar_gz(self, source_dir: Path, output_path: Path, base_name: str) -> None:
        with tarfile.open(output_path, "w:gz") as tf:
            tf.add(str(source_dir), arcname=base_name, recursive=False)
            for file_path, rel_path in _iter_source_files(source_dir):
                tf.add(str(file_path), arcname=f"{base_name}/{rel_path}", recursive=False)


class CommandArchiver(Archiver):
    """Archiver that shells out to ``zip`` and ``tar``."""

    def __init__(self, executor: ProcessExecutor) -> None:
        self.executor = executor

    def create_zip(self, source_dir: Path, output_path: Path) -> None:
        # Run from inside the directory so entries have no wrapper directory
        self.executor.run(["zip", "-r", "-q", str(output_path.resolve()), "."], cwd=source_dir)

    def create_tar_gz(self, source_dir: Path, output_path: Path, base_name: str) -> None:
        with tempfile.TemporaryDirectory(prefix="colaplug_stage_") as stage:
            staged = Path(stage) / base_name
            shutil.copytree(source_dir, staged)
            self.executor.run(["tar", "-czf", str(output_path.resolve()), "-C", stage, base_name])


def build_archive(
        source_dir: Union[str, Path],
        output_path: Union[str, Path],
        base_name: str,
        format: Union[ArchiveFormat, str] = ArchiveFormat.TAR_GZ,
        archiver: Optional[Archiver] = None
) -> None:
    """Write an archive holding every file under source_dir.

    Args:
        source_dir: Directory to archive
        output_path: Archive file to write
        base_name: Wrapper directory name inside tar.gz archives
        format: Archive format
        archiver: Back-end used to write the archive (in-process by default)

    Raises:
        ArchiveError: If the source is missing or the archive cannot be written
    """
    source_dir = Path(source_dir)
    output_path = Path(output_path)
    format = ArchiveFormat(format)
    archiver = archiver or InProcessArchiver()

    if not source_dir.exists() or not source_dir.is_dir():
        raise ArchiveError(f"Source directory not found: {source_dir}", source=str(source_dir))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.exists():
        output_path.unlink()

    logger.info("Creating archive", archive=output_path.name, format=format.value)

    try:
        if format == ArchiveFormat.ZIP:
            archiver.create_zip(source_dir, output_path)
        else:
            archiver.create_tar_gz(source_dir, output_path, base_name)
    except (OSError, ProcessError, zipfile.BadZipFile, tarfile.TarError) as e:
        if output_path.exists():
            output_path.unlink()
        raise ArchiveError(
            f"Failed to create {format.value} archive {output_path.name}: {e}",
            source=str(source_dir),
        ) from e

    if not output_path.is_file():
        raise ArchiveError(f"Archive was not created: {output_path}", source=str(source_dir))


def archive_filename(name: str, version: str, format: Union[ArchiveFormat, str]) -> str:
    return build_archive_filename(name, version, ArchiveFormat(format).extension)


def compute_checksum(path: Union[str, Path]) -> str:
    """Calculate a SHA-256 hash of a file, reading it in chunks.

    Args:
        path: Path to the file

    Returns:
        Lowercase hex digest
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def checksum_path(path: Union[str, Path]) -> Path:
    path = Path(path)
    return path.with_name(path.name + CHECKSUM_SUFFIX)


def write_checksum_sidecar(path: Union[str, Path], checksum: str) -> Path:
    """Write ``<checksum>  <basename>\\n`` next to the archive, sha256sum style."""
    path = Path(path)
    sidecar = checksum_path(path)
    with open(sidecar, "w", encoding="utf-8", newline="\n") as f:
        f.write(f"{checksum}  {path.name}\n")
    return sidecar


def verify_checksum(path: Union[str, Path], expected: str) -> bool:
    return compute_checksum(path) == expected


def format_bytes(size: int) -> str:
    """Human readable size, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    value = round(value, 2)
    return f"{value:g} {units[index]}"


def _safe_member_path(target_dir: Path, member_name: str) -> Path:
    destination = (target_dir / member_name).resolve()
    if target_dir.resolve() not in destination.parents and destination != target_dir.resolve():
        raise ArchiveError(f"Refusing to extract outside target directory: {member_name}")
    return destination


def extract_archive_members(
        archive_path: Union[str, Path],
        target_dir: Union[str, Path],
        filenames: Sequence[str]
) -> Dict[str, Path]:
    """Extract selected files from a zip or tar.gz archive.

    Files are matched by basename at the archive root or one directory
    deep, so archives with and without a wrapper directory both work.
    A file at the archive root wins over one of the same name in a
    subdirectory.

    Args:
        archive_path: Archive to read
        target_dir: Directory to extract into
        filenames: Basenames to look for (e.g. ``manifest.mf``)

    Returns:
        Mapping of basename to extracted path for each file found

    Raises:
        ArchiveError: If the archive cannot be read
    """
    archive_path = Path(archive_path)
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    wanted = set(filenames)
    found: Dict[str, Path] = {}

    def choose(names: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
        # Shallowest entry per basename; earlier entries win at equal depth
        chosen: Dict[str, Tuple[int, Any]] = {}
        for member_name, member in names:
            parts = PurePosixPath(member_name).parts
            if not 1 <= len(parts) <= 2 or parts[-1] not in wanted:
                continue
            if parts[-1] not in chosen or len(parts) < chosen[parts[-1]][0]:
                chosen[parts[-1]] = (len(parts), member)
        return {basename: member for basename, (_, member) in chosen.items()}

    try:
        if zipfile.is_zipfile(archive_path):
            with zipfile.ZipFile(archive_path) as zf:
                members = choose((info.filename, info) for info in zf.infolist() if not info.is_dir())
                for basename, info in members.items():
                    destination = _safe_member_path(target_dir, basename)
                    destination.write_bytes(zf.read(info))
                    found[basename] = destination
        elif tarfile.is_tarfile(archive_path):
            with tarfile.open(archive_path, "r:*") as tf:
                members = choose((member.name, member) for member in tf.getmembers() if member.isfile())
                for basename, member in members.items():
                    extracted = tf.extractfile(member)
                    if extracted is None:
                        continue
                    destination = _safe_member_path(target_dir, basename)
                    destination.write_bytes(extracted.read())
                    found[basename] = destination
        else:
            raise ArchiveError(f"Unsupported archive format: {archive_path.name}", source=str(archive_path))
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        raise ArchiveError(f"Failed to extract {archive_path.name}: {e}", source=str(archive_path)) from e

    return found

from __future__ import annotations
import enum
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pydantic
import structlog
import yaml
from pydantic import ConfigDict, Field, field_validator

from colaplug.utils.exceptions import ParseError

logger = structlog.get_logger(__name__)

MANIFEST_FILENAME = 'manifest.mf'
README_FILENAME = 'README.md'

# Numeric identifiers may not carry leading zeros, matching semver.org
SEMVER_REGEX = re.compile(
    r'^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)'
    r'(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?'
    r'(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$'
)
COMMAND_NAME_REGEX = re.compile(r'^[a-z0-9-]+$')
ARCHIVE_NAME_REGEX = re.compile(r'^(.+)-(\d+\.\d+\.\d+.*)$')
ARCHIVE_EXTENSIONS = ('.tar.gz', '.tgz', '.zip')


class CommandType(str, enum.Enum):
    EXECUTABLE = 'executable'
    ALIAS = 'alias'
    GROUP = 'group'

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class ManifestFormat(str, enum.Enum):
    JSON = 'json'
    YAML = 'yaml'
    AUTO = 'auto'


class CommandFlag(pydantic.BaseModel):
    model_config = ConfigDict(extra='allow')

    name: str = ''
    short: Optional[str] = None
    type: str = 'string'
    description: Optional[str] = None
    required: bool = False
    default: Optional[Union[str, bool, int, float]] = None


class Command(pydantic.BaseModel):
    """One invocable entry of a plugin."""

    model_config = ConfigDict(extra='allow')

    name: str = ''
    type: str = ''
    short: Optional[str] = None
    long: Optional[str] = None
    executable: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    subcommands: List[Command] = Field(default_factory=list)
    flags: List[CommandFlag] = Field(default_factory=list)

    @field_validator('name', 'type', mode='before')
    @classmethod
    def coerce_missing(cls, v: Any) -> Any:
        return '' if v is None else v

    @property
    def command_type(self) -> Optional[CommandType]:
        try:
            return CommandType(self.type)
        except ValueError:
            return None


class PluginMetadata(pydantic.BaseModel):
    model_config = ConfigDict(extra='allow')

    author: Optional[str] = None
    license: Optional[str] = None
    homepage: Optional[str] = None
    repository: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None

    @field_validator('tags', mode='before')
    @classmethod
    def unique_tags(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            v = [tag.strip() for tag in v.split(',') if tag.strip()]
        if isinstance(v, (list, tuple, set)):
            # Tags behave as a set but keep their declared order
            return list(dict.fromkeys(str(tag) for tag in v))
        return v


class Manifest(pydantic.BaseModel):
    """Canonical plugin descriptor, loaded from ``manifest.mf``.

    The model is deliberately lenient: required fields default to empty
    values so that :func:`validate_manifest` can report every problem at
    once instead of failing on the first one during parsing. Unknown
    top-level keys are preserved in :attr:`extra`.
    """

    model_config = ConfigDict(extra='allow', populate_by_name=True, frozen=True)

    package_name: str = Field(default='', alias='pkgName')
    version: str = ''
    commands: List[Command] = Field(default_factory=list, alias='cmds')
    metadata: Optional[PluginMetadata] = Field(default=None, alias='_metadata')

    @field_validator('package_name', 'version', mode='before')
    @classmethod
    def coerce_scalar(cls, v: Any) -> Any:
        if v is None:
            return ''
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            # YAML turns an unquoted "1.0" into a float
            return str(v)
        return v

    @field_validator('commands', mode='before')
    @classmethod
    def coerce_commands(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def extra(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    @property
    def primary_command(self) -> Optional[Command]:
        return self.commands[0] if self.commands else None

    @property
    def author(self) -> Optional[str]:
        return self.metadata.author if self.metadata else None

    @property
    def license(self) -> Optional[str]:
        return self.metadata.license if self.metadata else None

    @property
    def homepage(self) -> Optional[str]:
        return self.metadata.homepage if self.metadata else None

    @property
    def repository(self) -> Optional[str]:
        return self.metadata.repository if self.metadata else None

    @property
    def tags(self) -> List[str]:
        return list(self.metadata.tags) if self.metadata else []

    @property
    def description(self) -> Optional[str]:
        """Metadata description, falling back to the primary command's short text."""
        if self.metadata and self.metadata.description:
            return self.metadata.description
        command = self.primary_command
        return command.short if command else None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()


def _detect_format(raw_text: str) -> ManifestFormat:
    stripped = raw_text.lstrip()
    if stripped.startswith('{') or stripped.startswith('['):
        return ManifestFormat.JSON
    return ManifestFormat.YAML


def parse_manifest(
        raw_text: str,
        format: ManifestFormat = ManifestFormat.AUTO,
        source: Optional[str] = None
) -> Manifest:
    """Parse manifest text into a :class:`Manifest`.

    Args:
        raw_text: Manifest file content
        format: JSON, YAML or AUTO to detect from the content
        source: Where the text came from, used in error messages

    Returns:
        Parsed manifest

    Raises:
        ParseError: If the text is not JSON/YAML, the root is not an object,
            or a field has the wrong shape
    """
    format = ManifestFormat(format)
    if format == ManifestFormat.AUTO:
        format = _detect_format(raw_text)

    try:
        if format == ManifestFormat.JSON:
            data = json.loads(raw_text)
        else:
            data = yaml.safe_load(raw_text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(f'Invalid {format.value.upper()} manifest: {e}', path=source) from e

    if not isinstance(data, dict):
        raise ParseError(
            f'Manifest root must be an object, got {type(data).__name__}', path=source
        )

    try:
        return Manifest.model_validate(data)
    except pydantic.ValidationError as e:
        problems = ', '.join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ParseError(f'Invalid manifest structure: {problems}', path=source) from e


def read_manifest(plugin_dir: Union[str, Path]) -> Manifest:
    """Read and parse ``manifest.mf`` from a plugin directory.

    Raises:
        FileNotFoundError: If the directory has no manifest
        ParseError: If the manifest cannot be parsed
    """
    manifest_path = Path(plugin_dir) / MANIFEST_FILENAME
    if not manifest_path.is_file():
        raise FileNotFoundError(f'Manifest file not found: {manifest_path}')
    raw_text = manifest_path.read_text(encoding='utf-8')
    return parse_manifest(raw_text, ManifestFormat.AUTO, source=str(manifest_path))


def find_plugin_directories(plugins_dir: Union[str, Path]) -> List[Path]:
    """List immediate subdirectories that contain a manifest, in sorted order."""
    root = Path(plugins_dir)
    if not root.is_dir():
        return []
    return [
        child for child in sorted(root.iterdir(), key=lambda p: p.name)
        if child.is_dir() and (child / MANIFEST_FILENAME).is_file()
    ]


def is_valid_version(version: str) -> bool:
    return bool(SEMVER_REGEX.match(version or ''))


def validate_manifest(manifest: Manifest, plugin_dir: Optional[Union[str, Path]] = None) -> ValidationResult:
    """Check a manifest against the launcher's schema rules.

    Every rule is evaluated, so a single call reports all problems. Errors
    make the result invalid; warnings never do. This function never raises.

    Args:
        manifest: Manifest to check
        plugin_dir: Plugin directory, used to look for a README

    Returns:
        Validation result
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not manifest.package_name or not manifest.package_name.strip():
        errors.append('Missing required field: pkgName')

    if not manifest.version:
        errors.append('Missing required field: version')
    elif not is_valid_version(manifest.version):
        errors.append(f'Invalid version format: {manifest.version}')

    if not manifest.commands:
        errors.append('Missing required field: cmds (must have at least one command)')
    else:
        command = manifest.commands[0]
        if not command.name:
            errors.append('First command missing required field: name')
        elif not COMMAND_NAME_REGEX.match(command.name):
            errors.append(
                f"Command name '{command.name}' contains invalid characters "
                '(must be lowercase alphanumeric with hyphens)'
            )

        if not command.type:
            errors.append('First command missing required field: type')
        elif command.command_type is None:
            errors.append(
                f"Invalid command type: {command.type} "
                f"(must be one of: {', '.join(CommandType.values())})"
            )
        elif command.command_type == CommandType.EXECUTABLE and not command.executable:
            errors.append(
                f"Command '{command.name}' of type 'executable' requires an 'executable' path"
            )

    if not manifest.author:
        warnings.append('Missing recommended field: _metadata.author')
    if not manifest.license:
        warnings.append('Missing recommended field: _metadata.license')
    if plugin_dir is not None and not (Path(plugin_dir) / README_FILENAME).is_file():
        warnings.append(f'No {README_FILENAME} found (recommended)')

    return ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


def sanitize_name(name: str) -> str:
    """Derive a registry/file-safe identifier from an arbitrary name."""
    lowered = (name or '').lower()
    hyphenated = re.sub(r'\s', '-', lowered)
    return re.sub(r'[^a-z0-9-]', '', hyphenated)


def strip_archive_extension(filename: str) -> str:
    for extension in ARCHIVE_EXTENSIONS:
        if filename.endswith(extension):
            return filename[:-len(extension)]
    return filename


def build_archive_filename(name: str, version: str, extension: str) -> str:
    return f'{name}-{version}.{extension.lstrip(".")}'


def parse_archive_name(filename: str) -> Optional[Dict[str, str]]:
    """Split ``<name>-<version>.<ext>`` back into its parts.

    Returns None when the name does not carry a version; callers skip
    such files rather than treating them as errors.
    """
    base = strip_archive_extension(Path(filename).name)
    match = ARCHIVE_NAME_REGEX.match(base)
    if not match:
        return None
    return {'name': match.group(1), 'version': match.group(2)}

from __future__ import annotations

import enum
import json
import os
import pathlib
from copy import deepcopy
from typing import Any, Dict, List, Mapping, Optional, Set, Union

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from colaplug.core.base import ColaManager
from colaplug.plugin_system.package import ArchiveFormat
from colaplug.plugin_system.release import TagMode
from colaplug.utils.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


class PackageFormat(str, enum.Enum):
    """What a run produces: archives, an OCI push, or both."""

    ZIP = 'zip'
    TAR_GZ = 'tar.gz'
    OCI = 'oci'
    BOTH = 'both'

    @property
    def archive_format(self) -> ArchiveFormat:
        return ArchiveFormat.ZIP if self == PackageFormat.ZIP else ArchiveFormat.TAR_GZ

    @property
    def pushes_oci(self) -> bool:
        return self in (PackageFormat.OCI, PackageFormat.BOTH)


class OciSettings(BaseModel):
    model_config = ConfigDict(extra='forbid', coerce_numbers_to_str=True)

    registry: Optional[str] = None
    username: Optional[str] = None
    token: Optional[str] = Field(default=None, repr=False)


class GitHubSettings(BaseModel):
    model_config = ConfigDict(extra='forbid', coerce_numbers_to_str=True)

    token: Optional[str] = Field(default=None, repr=False)
    repository: Optional[str] = None
    api_url: str = 'https://api.github.com'


class ReleaseSettings(BaseModel):
    model_config = ConfigDict(extra='forbid', coerce_numbers_to_str=True)

    enabled: bool = False
    tag_mode: TagMode = TagMode.CURRENT_COMMIT
    remote: Optional[str] = None


class DocsSettings(BaseModel):
    model_config = ConfigDict(extra='forbid', coerce_numbers_to_str=True)

    enabled: bool = False
    branch: str = 'gh-pages'
    keep_versions: int = Field(default=0, ge=0)
    template_path: Optional[str] = None
    version_index_template_path: Optional[str] = None
    output_directory: str = 'build/docs'
    push: bool = True


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra='forbid', coerce_numbers_to_str=True)

    level: str = 'info'
    format: str = 'text'

    @field_validator('level', 'format', mode='before')
    @classmethod
    def lowercase(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @model_validator(mode='after')
    def check_values(self) -> 'LoggingSettings':
        if self.level not in ('debug', 'info', 'warning', 'error', 'critical'):
            raise ValueError(f'Unknown log level: {self.level}')
        if self.format not in ('text', 'json'):
            raise ValueError(f'Unknown log format: {self.format}')
        return self


class ActionConfig(BaseModel):
    """Schema for a colaplug run.

    Every section has defaults, so an empty configuration is valid for
    validation and packaging. Publishing sections are only checked when
    the matching target is selected.
    """

    model_config = ConfigDict(extra='forbid', coerce_numbers_to_str=True)

    plugins_directory: str = 'plugins'
    output_directory: str = 'build/packages'
    package_format: PackageFormat = PackageFormat.TAR_GZ
    validate_only: bool = False
    best_effort: bool = False
    force: bool = False
    oci: OciSettings = Field(default_factory=OciSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    release: ReleaseSettings = Field(default_factory=ReleaseSettings)
    docs: DocsSettings = Field(default_factory=DocsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode='after')
    def validate_oci_credentials(self) -> 'ActionConfig':
        """Pushing to a registry needs credentials."""
        if self.package_format.pushes_oci and self.oci.registry:
            if not self.oci.username or not self.oci.token:
                raise ValueError('OCI registry credentials required (oci.username and oci.token)')
        return self


class ConfigManager(ColaManager):
    """Loads the run configuration.

    Sources, later ones winning: schema defaults, an optional YAML or JSON
    file, ``<prefix>SECTION__KEY`` environment variables, the GitHub
    Actions variables ``GITHUB_TOKEN`` and ``GITHUB_REPOSITORY``, and
    explicit overrides (usually from the command line).

    Attributes:
        _config_path: Path to the configuration file
        _env_prefix: Prefix for environment variables
        _config: The loaded configuration
        _loaded_from_file: Whether configuration was loaded from a file
        _env_vars_applied: Set of applied environment variables
    """

    ENV_SEPARATOR = '__'

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'COLA_',
            overrides: Optional[Mapping[str, Any]] = None,
            environ: Optional[Mapping[str, str]] = None
    ) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
            env_prefix: Prefix for environment variables
            overrides: Dotted keys (``docs.keep_versions``) applied last
            environ: Environment to read, ``os.environ`` by default
        """
        super().__init__(name='config_manager')
        self._config_path = pathlib.Path(config_path) if config_path else None
        self._env_prefix = env_prefix
        self._overrides = dict(overrides or {})
        self._environ = environ if environ is not None else os.environ
        self._config: Dict[str, Any] = {}
        self._settings: Optional[ActionConfig] = None
        self._loaded_from_file = False
        self._env_vars_applied: Set[str] = set()

    def initialize(self) -> None:
        """Load and validate the configuration.

        Raises:
            ConfigurationError: If the file cannot be read or the result is invalid
        """
        self._config = ActionConfig().model_dump(mode='json')
        self._load_from_file()
        self._apply_env_vars()
        self._apply_ci_defaults()
        for key, value in self._overrides.items():
            if value is not None:
                self._set_nested_value(self._config, key.split('.'), value)
        self._validate_config()

        self._initialized = True
        self._healthy = True
        logger.debug('Configuration loaded', config_file=str(self._config_path) if self._loaded_from_file else None)

    def _load_from_file(self) -> None:
        """Merge the configuration file, if one was given.

        Raises:
            ConfigurationError: If the file is missing or cannot be parsed
        """
        if self._config_path is None:
            return
        if not self._config_path.exists():
            raise ConfigurationError(
                f'Configuration file not found: {self._config_path}', config_key='config_path'
            )

        try:
            content = self._config_path.read_text(encoding='utf-8')
            if self._config_path.suffix.lower() in ('.yaml', '.yml'):
                file_config = yaml.safe_load(content)
            elif self._config_path.suffix.lower() == '.json':
                file_config = json.loads(content)
            else:
                raise ConfigurationError(
                    f'Unsupported config file format: {self._config_path.suffix}',
                    config_key='config_path'
                )
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigurationError(
                    f'Config file {self._config_path} must contain a mapping', config_key='config_path'
                )
            self._merge_config(file_config)
            self._loaded_from_file = True

    def _apply_env_vars(self) -> None:
        """Override configuration values with prefixed environment variables."""
        for env_name, env_value in self._environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            config_path = env_name[len(self._env_prefix):].lower().split(self.ENV_SEPARATOR)
            self._set_nested_value(self._config, config_path, self._parse_env_value(env_value))
            self._env_vars_applied.add(env_name)

    def _apply_ci_defaults(self) -> None:
        github = self._config.setdefault('github', {})
        if not github.get('token') and self._environ.get('GITHUB_TOKEN'):
            github['token'] = self._environ['GITHUB_TOKEN']
        if not github.get('repository') and self._environ.get('GITHUB_REPOSITORY'):
            github['repository'] = self._environ['GITHUB_REPOSITORY']

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable values into appropriate types.

        Args:
            value: The string value from the environment

        Returns:
            The parsed value (bool, int, float, or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
                return int(value)
            return float(value)
        except ValueError:
            return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        """Set a nested value in the configuration dictionary.

        Args:
            config: The configuration dictionary
            path: List of keys forming the path to the value
            value: The value to set
        """
        if not path:
            return

        if len(path) == 1:
            config[path[0]] = value
            return

        key = path[0]
        if not isinstance(config.get(key), dict):
            config[key] = {}

        self._set_nested_value(config[key], path[1:], value)

    def _merge_config(self, from_config: Dict[str, Any], to_config: Optional[Dict[str, Any]] = None) -> None:
        if to_config is None:
            to_config = self._config

        for key, value in from_config.items():
            if isinstance(to_config.get(key), dict) and isinstance(value, dict):
                self._merge_config(value, to_config[key])
            elif value is not None:
                to_config[key] = value

    def _validate_config(self) -> None:
        """Validate the configuration against the schema.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            self._settings = ActionConfig.model_validate(self._config)
            self._config = self._settings.model_dump(mode='json')
        except ValidationError as e:
            errors = e.errors()
            error_details = ', '.join((
                f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
                for error in errors
            ))
            locations = ['.'.join(str(loc) for loc in error['loc']) for error in errors]
            raise ConfigurationError(
                f'Invalid configuration: {error_details}',
                config_key=locations[0] if locations else None,
                details={'validation_errors': locations}
            ) from e

    @property
    def settings(self) -> ActionConfig:
        if self._settings is None:
            raise ConfigurationError('Cannot access configuration before initialization')
        return self._settings

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key.

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        result: Any = self._config
        try:
            for part in key.split('.'):
                result = result[part]
            return deepcopy(result)
        except (KeyError, TypeError):
            return default

    def shutdown(self) -> None:
        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            'config_file': str(self._config_path) if self._loaded_from_file else None,
            'loaded_from_file': self._loaded_from_file,
            'env_vars_applied': len(self._env_vars_applied),
        })
        return status

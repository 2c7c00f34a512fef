from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class ColaError(Exception):
    """Base exception for all colaplug errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ConfigurationError(ColaError):
    """Exception raised for configuration-related errors."""

    def __init__(
            self, message: str, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            config_key: The configuration key that caused the error.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = dict(kwargs.pop("details", None) or {})
        details.update(kwargs)
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, **details)
        self.config_key = config_key


class ManagerInitializationError(ColaError):
    """Exception raised when a manager fails to initialize."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, manager_name=manager_name, **kwargs)
        self.manager_name = manager_name


class ParseError(ColaError):
    """Exception raised when a manifest cannot be parsed."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, path=path, **kwargs)
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return super().__str__()


class ArchiveError(ColaError):
    """Exception raised when an archive cannot be written or read."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, source=source, **kwargs)
        self.source = source


class PackagingError(ColaError):
    """Aggregate error for a packaging run.

    Packaging keeps going past individual plugin failures; this error is
    raised once at the end and carries every failure plus the artifacts
    that were built successfully.
    """

    def __init__(
            self,
            message: str,
            failures: Optional[Dict[str, str]] = None,
            artifacts: Optional[Sequence[Any]] = None,
            **kwargs: Any
    ) -> None:
        failures = dict(failures or {})
        super().__init__(message, failures=failures, **kwargs)
        self.failures = failures
        self.artifacts: List[Any] = list(artifacts or [])

    def __str__(self) -> str:
        if not self.failures:
            return super().__str__()
        lines = [self.message]
        for plugin, cause in self.failures.items():
            lines.append(f"  - {plugin}: {cause}")
        return "\n".join(lines)


class ValidationFailedError(ColaError):
    """Exception raised when one or more plugin manifests are invalid."""

    def __init__(self, message: str, invalid_plugins: Optional[Sequence[str]] = None, **kwargs: Any) -> None:
        invalid = list(invalid_plugins or [])
        super().__init__(message, invalid_plugins=invalid, **kwargs)
        self.invalid_plugins = invalid


class ProcessError(ColaError):
    """Exception raised when an external command exits non-zero."""

    def __init__(
            self,
            message: str,
            command: Optional[Sequence[str]] = None,
            returncode: Optional[int] = None,
            stderr: str = "",
            **kwargs: Any
    ) -> None:
        super().__init__(message, command=list(command or []), returncode=returncode, **kwargs)
        self.command = list(command or [])
        self.returncode = returncode
        self.stderr = stderr


class RepositoryError(ColaError):
    """Exception raised for GitHub API failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, status_code=status_code, **kwargs)
        self.status_code = status_code


class PublishError(ColaError):
    """Exception raised when publishing an artifact fails.

    Publishing is fail-fast, so this aborts the whole run.
    """

    def __init__(self, message: str, artifact: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, artifact=artifact, **kwargs)
        self.artifact = artifact

    def __str__(self) -> str:
        if self.artifact:
            return f"{self.message} (Artifact: {self.artifact})"
        return super().__str__()


class DocGenError(ColaError):
    """Exception raised when a single plugin version cannot be documented."""

    def __init__(
            self,
            message: str,
            plugin: Optional[str] = None,
            version: Optional[str] = None,
            **kwargs: Any
    ) -> None:
        super().__init__(message, plugin=plugin, version=version, **kwargs)
        self.plugin = plugin
        self.version = version

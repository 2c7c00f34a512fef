"""Utility functions and classes for colaplug."""

from colaplug.utils.exceptions import (
    ArchiveError,
    ColaError,
    ConfigurationError,
    DocGenError,
    ManagerInitializationError,
    PackagingError,
    ParseError,
    ProcessError,
    PublishError,
    RepositoryError,
    ValidationFailedError,
)

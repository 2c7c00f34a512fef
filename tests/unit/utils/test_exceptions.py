"""Unit tests for the exceptions module."""

import pytest

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


def test_cola_error():
    """Test the base ColaError class."""
    error = ColaError("Test error message")
    assert str(error) == "Test error message"
    assert error.message == "Test error message"
    assert error.details == {}

    # Test with details
    error = ColaError("Test with details", key="value", number=123)
    assert error.details == {"key": "value", "number": 123}


def test_configuration_error():
    """Test the ConfigurationError class."""
    error = ConfigurationError("Config error message")
    assert str(error) == "Config error message"
    assert "config_key" not in error.details

    # Test with config key
    error = ConfigurationError("Config error with key", config_key="oci.registry")
    assert error.config_key == "oci.registry"
    assert error.details["config_key"] == "oci.registry"

    # Test with additional details
    details = {"validation_errors": ["docs.keep_versions"]}
    error = ConfigurationError("Config error with details", config_key="docs", details=details)
    assert error.details["config_key"] == "docs"
    assert error.details["validation_errors"] == ["docs.keep_versions"]


def test_manager_initialization_error():
    """Test the ManagerInitializationError class."""
    error = ManagerInitializationError("Init error", manager_name="logging_manager")
    assert str(error) == "Init error"
    assert error.manager_name == "logging_manager"
    assert error.details["manager_name"] == "logging_manager"


def test_parse_error_includes_path():
    error = ParseError("Invalid JSON manifest", path="plugins/demo/manifest.mf")
    assert str(error) == "Invalid JSON manifest (plugins/demo/manifest.mf)"
    assert error.details["path"] == "plugins/demo/manifest.mf"

    assert str(ParseError("Invalid JSON manifest")) == "Invalid JSON manifest"


def test_archive_error():
    error = ArchiveError("Source directory not found", source="plugins/missing")
    assert error.source == "plugins/missing"
    assert isinstance(error, ColaError)


def test_packaging_error_lists_failures():
    """Test that PackagingError reports every failed plugin."""
    error = PackagingError(
        "Failed to package 2 plugin(s)",
        failures={"alpha": "Invalid manifest", "beta": "disk full"},
        artifacts=["artifact"],
    )
    message = str(error)
    assert message.startswith("Failed to package 2 plugin(s)")
    assert "alpha: Invalid manifest" in message
    assert "beta: disk full" in message
    assert error.artifacts == ["artifact"]
    assert error.details["failures"] == {"alpha": "Invalid manifest", "beta": "disk full"}

    assert str(PackagingError("Nothing failed")) == "Nothing failed"


def test_validation_failed_error():
    error = ValidationFailedError("1 plugin(s) failed validation", invalid_plugins=["broken"])
    assert error.invalid_plugins == ["broken"]
    assert error.details["invalid_plugins"] == ["broken"]


def test_process_error():
    error = ProcessError("Command failed", command=["oras", "push"], returncode=2, stderr="denied")
    assert error.command == ["oras", "push"]
    assert error.returncode == 2
    assert error.stderr == "denied"


def test_repository_error():
    error = RepositoryError("Not found", status_code=404)
    assert error.status_code == 404
    assert error.details["status_code"] == 404


def test_publish_error_includes_artifact():
    error = PublishError("Failed to push", artifact="demo-1.0.0.tar.gz")
    assert str(error) == "Failed to push (Artifact: demo-1.0.0.tar.gz)"
    assert str(PublishError("No packages were processed")) == "No packages were processed"


def test_doc_gen_error():
    error = DocGenError("Failed to process", plugin="demo", version="1.0.0")
    assert error.plugin == "demo"
    assert error.version == "1.0.0"


def test_errors_share_base_class():
    """Every colaplug error can be caught as ColaError."""
    for error_class in (
        ArchiveError,
        ConfigurationError,
        DocGenError,
        PackagingError,
        ParseError,
        ProcessError,
        PublishError,
        RepositoryError,
        ValidationFailedError,
    ):
        with pytest.raises(ColaError):
            raise error_class("boom")

"""Tests for error handling across components."""

from taint_preserver.exceptions import (
    ConfigurationError,
    FinalizerError,
    KubernetesError,
    MissingNodeNameError,
    NodeUpdateError,
    TaintPreserverError,
    TaintSerializationError,
    TaintStoreError,
)
from taint_preserver.logging_config import get_logger, setup_logging


def test_custom_exception_with_details():
    """Test that custom exceptions support message and details."""
    error = TaintStoreError("Failed to read ConfigMap", "API returned status 500")

    assert error.message == "Failed to read ConfigMap"
    assert error.details == "API returned status 500"
    assert "Failed to read ConfigMap" in str(error)
    assert "API returned status 500" in str(error)
    assert "Details:" in error.format_message()


def test_custom_exception_without_details():
    """Test that custom exceptions work without details."""
    error = ConfigurationError("Invalid configuration")

    assert error.message == "Invalid configuration"
    assert error.details is None
    assert str(error) == "Invalid configuration"


def test_exception_hierarchy():
    """Test that all custom exceptions inherit from TaintPreserverError."""
    for exc_type in (
        MissingNodeNameError,
        TaintStoreError,
        TaintSerializationError,
        FinalizerError,
        NodeUpdateError,
        KubernetesError,
        ConfigurationError,
    ):
        assert issubclass(exc_type, TaintPreserverError)


def test_exception_can_be_caught_as_base_class():
    """Test that specific exceptions can be caught as TaintPreserverError."""
    try:
        raise FinalizerError("Test error")
    except TaintPreserverError as e:
        assert isinstance(e, FinalizerError)
        assert e.message == "Test error"


def test_logging_setup():
    """Test that logging can be configured."""
    setup_logging(level="INFO", verbose=False)

    logger = get_logger("test")
    assert logger is not None
    assert logger.name == "test"


def test_logging_with_log_file(tmp_path):
    """Test that a log file handler is created on request."""
    log_file = tmp_path / "logs" / "controller.log"
    setup_logging(verbose=True, log_file=log_file)

    get_logger("test").debug("This is a debug message")
    assert log_file.exists()


def test_verbose_logging_quiets_client_libraries():
    """Test that verbose mode lowers the stderr level but not the client libraries."""
    import logging

    setup_logging(verbose=True)

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.handlers[0].level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("kubernetes").level == logging.WARNING


def test_exception_details_are_optional_in_message():
    """Test that empty details do not add a Details section."""
    assert str(NodeUpdateError("Failed to patch node", "")) == "Failed to patch node"

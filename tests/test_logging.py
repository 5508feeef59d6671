"""Tests for structured logging."""

import json
import logging

import pytest

from extension_host.core import logging as host_logging
from extension_host.core.logging import ColoredFormatter, JSONFormatter, get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_logging():
    host_logging._initialized = False
    yield
    host_logging._initialized = False
    root = logging.getLogger("extension_host")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("extension_host.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    record = make_record(component="registry", namespace="local", extra_data={"diagnostics": 2})

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "hello"
    assert data["level"] == "INFO"
    assert data["component"] == "registry"
    assert data["namespace"] == "local"
    assert data["diagnostics"] == 2
    assert data["timestamp"].endswith("Z")


def test_colored_formatter_appends_context():
    record = make_record(component="executor", extension="local:map", duration_ms=12.4)

    text = ColoredFormatter().format(record)

    assert "[executor]" in text
    assert "ext=local:map" in text
    assert "time=12ms" in text


def test_get_logger_is_cached():
    assert get_logger("registry") is get_logger("registry")
    assert get_logger("registry").logger.name == "extension_host.registry"


def test_host_logger_passes_context(caplog):
    logger = get_logger("test")

    with caplog.at_level(logging.INFO, logger="extension_host"):
        logger.info("installed", component="loader", namespace="private", extension=None, version="1.0")

    record = caplog.records[-1]
    assert record.component == "loader"
    assert record.namespace == "private"
    assert not hasattr(record, "extension")
    assert record.extra_data == {"version": "1.0"}


def test_panel_conflict_is_a_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="extension_host"):
        get_logger("registry").panel_conflict("map", "local:alpha", "private:beta")

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.panel == "map"
    assert record.extension == "private:beta"


def test_setup_logging_writes_file(temp_dir):
    setup_logging(level="DEBUG", format_type="json", log_dir=temp_dir, console_enabled=False)

    get_logger("test").info("to disk", component="test")
    for handler in logging.getLogger("extension_host").handlers:
        handler.flush()

    lines = (temp_dir / "extension_host.log").read_text().splitlines()
    assert json.loads(lines[-1])["message"] == "to disk"


def test_setup_logging_runs_once(temp_dir):
    setup_logging(console_enabled=True, file_enabled=False)
    handlers = list(logging.getLogger("extension_host").handlers)

    setup_logging(log_dir=temp_dir, file_enabled=True)

    assert logging.getLogger("extension_host").handlers == handlers

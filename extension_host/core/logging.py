"""Structured logging for the extension host.

Provides JSON-formatted logs with file and console output.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from logging.handlers import RotatingFileHandler


# Keyword arguments that become record attributes
CONTEXT_FIELDS = ("component", "extension", "namespace", "panel", "duration_ms", "success")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for human-readable output."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%H:%M:%S")
        prefix = f"{color}[{timestamp}] {record.levelname:8}{self.RESET}"

        if hasattr(record, "component"):
            prefix += f" [{record.component}]"

        message = record.getMessage()

        extras = []
        if hasattr(record, "namespace"):
            extras.append(f"ns={record.namespace}")
        if hasattr(record, "extension"):
            extras.append(f"ext={record.extension}")
        if hasattr(record, "panel"):
            extras.append(f"panel={record.panel}")
        if hasattr(record, "duration_ms"):
            extras.append(f"time={record.duration_ms:.0f}ms")

        if extras:
            message += f" ({', '.join(extras)})"

        return f"{prefix} {message}"


class HostLogger:
    """Logger wrapper with convenience methods for extension host events."""

    def __init__(self, name: str, logger: logging.Logger):
        self._name = name
        self._logger = logger

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def _log(self, level: int, message: str, **kwargs):
        """Log with extra context fields."""
        extra = {}

        for key in CONTEXT_FIELDS:
            if key in kwargs:
                value = kwargs.pop(key)
                if value is not None:
                    extra[key] = value

        if kwargs:
            extra["extra_data"] = kwargs

        self._logger.log(level, message, extra=extra)

    def extension_installed(self, qualified_name: str, version: str, namespace: str):
        self.info(
            f"Extension installed: {qualified_name} v{version}",
            component="loader",
            extension=qualified_name,
            namespace=namespace,
        )

    def extension_uninstalled(self, extension_id: str, namespace: str, removed: bool):
        self.info(
            f"Extension {'uninstalled' if removed else 'not found'}: {extension_id}",
            component="loader",
            extension=extension_id,
            namespace=namespace,
            success=removed,
        )

    def extension_activated(self, qualified_name: str, success: bool, duration_ms: float):
        level = logging.DEBUG if success else logging.WARNING
        self._logger.log(
            level,
            f"Extension {'activated' if success else 'failed to activate'}: {qualified_name}",
            extra={
                "component": "executor",
                "extension": qualified_name,
                "success": success,
                "duration_ms": duration_ms,
            },
        )

    def panel_conflict(self, panel: str, winner: str, loser: str):
        self.warning(
            f"Panel {panel} from {loser} is shadowed by {winner}",
            component="registry",
            panel=panel,
            extension=loser,
        )

    def refresh_completed(self, extensions: int, panels: int, diagnostics: int, duration_ms: float):
        self.info(
            f"Refresh completed: {extensions} extension(s), {panels} panel(s)",
            component="registry",
            duration_ms=duration_ms,
            success=diagnostics == 0,
            diagnostics=diagnostics,
        )


# Global logger registry
_loggers: dict[str, HostLogger] = {}
_initialized = False


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_dir: Optional[Path] = None,
    file_enabled: bool = True,
    console_enabled: bool = True
) -> None:
    """Initialize the logging system.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text"
        log_dir: Directory for log files
        file_enabled: Write logs to file
        console_enabled: Write logs to console
    """
    global _initialized

    if _initialized:
        return

    root = logging.getLogger("extension_host")
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()

    if console_enabled:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG)

        if format_type == "json":
            console.setFormatter(JSONFormatter())
        else:
            console.setFormatter(ColoredFormatter())

        root.addHandler(console)

    if file_enabled and log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "extension_host.log"

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    _initialized = True


def get_logger(name: str = "extension_host") -> HostLogger:
    """Get a host logger instance."""
    if name not in _loggers:
        logger = logging.getLogger(f"extension_host.{name}")
        _loggers[name] = HostLogger(name, logger)
    return _loggers[name]

"""Centralized configuration for the extension host.

This module provides typed, validated configuration loaded from
environment variables and .env files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

from extension_host.models.extension import ExtensionNamespace

# Load .env file if it exists
load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PathConfig:
    """Path configuration."""
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    logs_dir: Path = field(default_factory=lambda: Path("./data/logs"))

    def __post_init__(self):
        base = os.getenv("EXTHOST_DATA_DIR")
        if base:
            self.data_dir = Path(base)
            self.logs_dir = self.data_dir / "logs"

    def extension_db(self, namespace: str) -> Path:
        """Database file owned by a namespace's loader."""
        return self.data_dir / f"extensions-{namespace}.db"


@dataclass
class RegistryConfig:
    """Namespace order and install policy.

    Namespaces earlier in the order win panel name collisions.
    """
    namespaces: list[str] = field(default_factory=lambda: ["local", "private"])
    allow_overwrite: bool = False
    max_concurrency: int = 8

    def __post_init__(self):
        raw = os.getenv("EXTHOST_NAMESPACES")
        if raw:
            self.namespaces = [ns.strip().lower() for ns in raw.split(",") if ns.strip()]
        self.allow_overwrite = _env_flag("EXTHOST_ALLOW_OVERWRITE", self.allow_overwrite)
        self.max_concurrency = int(os.getenv("EXTHOST_MAX_CONCURRENCY", self.max_concurrency))


@dataclass
class ExecutionConfig:
    """Activation sandbox configuration."""
    timeout_seconds: float = 5.0
    max_panels: int = 64
    process_isolation: bool = True
    unrestricted: bool = False
    mode: str = "production"

    def __post_init__(self):
        self.timeout_seconds = float(os.getenv("EXTHOST_TIMEOUT", self.timeout_seconds))
        self.max_panels = int(os.getenv("EXTHOST_MAX_PANELS", self.max_panels))
        self.process_isolation = _env_flag("EXTHOST_PROCESS_ISOLATION", self.process_isolation)
        self.unrestricted = _env_flag("EXTHOST_UNRESTRICTED", self.unrestricted)
        self.mode = os.getenv("EXTHOST_MODE", self.mode).lower()


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"  # "json" or "text"
    file_enabled: bool = False
    console_enabled: bool = True

    def __post_init__(self):
        self.level = os.getenv("EXTHOST_LOG_LEVEL", self.level).upper()
        self.format = os.getenv("EXTHOST_LOG_FORMAT", self.format).lower()
        self.file_enabled = _env_flag("EXTHOST_LOG_FILE", self.file_enabled)
        self.console_enabled = _env_flag("EXTHOST_LOG_CONSOLE", self.console_enabled)


@dataclass
class Config:
    """Main configuration container."""
    paths: PathConfig = field(default_factory=PathConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []
        known = {ns.value for ns in ExtensionNamespace}

        if not self.registry.namespaces:
            issues.append("At least one namespace must be configured")

        for ns in self.registry.namespaces:
            if ns not in known:
                issues.append(f"Unknown namespace '{ns}' (expected one of {sorted(known)})")

        if len(set(self.registry.namespaces)) != len(self.registry.namespaces):
            issues.append("Namespaces must not repeat")

        if self.registry.max_concurrency < 1:
            issues.append("max_concurrency must be at least 1")

        if self.execution.timeout_seconds <= 0:
            issues.append("timeout_seconds must be positive")

        if self.execution.max_panels < 1:
            issues.append("max_panels must be at least 1")

        if self.execution.mode not in ("production", "development", "test"):
            issues.append(f"Unknown mode '{self.execution.mode}'")

        return issues

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None

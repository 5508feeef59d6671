"""Data models for the extension host."""

from .extension import ExtensionInfo, ExtensionManifest, ExtensionNamespace
from .environment import ResourceLimits
from .panel import ExtensionDiagnostic, RegisteredPanel, RegistrySnapshot

__all__ = [
    "ExtensionInfo",
    "ExtensionManifest",
    "ExtensionNamespace",
    "ResourceLimits",
    "ExtensionDiagnostic",
    "RegisteredPanel",
    "RegistrySnapshot",
]

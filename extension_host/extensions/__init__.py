"""Extensions package - per-namespace loaders and the aggregating registry."""

from .loader import ExtensionLoader, SqliteExtensionLoader
from .package import ParsedPackage, create_package, parse_package
from .registry import ExtensionRegistry
from .resolution import PanelCandidate, resolve_panels

__all__ = [
    "ExtensionLoader",
    "SqliteExtensionLoader",
    "ParsedPackage",
    "create_package",
    "parse_package",
    "ExtensionRegistry",
    "PanelCandidate",
    "resolve_panels",
]

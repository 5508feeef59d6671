"""Custom exceptions for the extension host.

Provides user-friendly error messages and structured error handling.
"""

from typing import Optional, Any


class ExtensionHostError(Exception):
    """Base exception for all extension host errors.

    Provides:
    - User-friendly message
    - Technical details for debugging
    - Suggested fixes when applicable
    """

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details
        self.suggestion = suggestion
        self.cause = cause
        super().__init__(message)

    def format_user_friendly(self) -> str:
        """Format error for display to user."""
        parts = [f"❌ {self.message}"]

        if self.details:
            parts.append(f"   Details: {self.details}")

        if self.suggestion:
            parts.append(f"   💡 Try: {self.suggestion}")

        return "\n".join(parts)

    def __str__(self) -> str:
        return self.format_user_friendly()


class ConfigError(ExtensionHostError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion and config_key:
            suggestion = f"Set the {config_key} environment variable or add it to .env"
        super().__init__(message, suggestion=suggestion, **kwargs)
        self.config_key = config_key


class ValidationError(ExtensionHostError):
    """Input validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and field:
            details = f"Field: {field}"
            if value is not None:
                details += f", Value: {repr(value)[:50]}"

        super().__init__(message, details=details, **kwargs)
        self.field = field
        self.value = value


class StorageError(ExtensionHostError):
    """The persisted extension store could not be written."""

    def __init__(self, message: str, namespace: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None)
        if not details and namespace:
            details = f"Namespace: {namespace}"
        super().__init__(message, details=details, **kwargs)
        self.namespace = namespace


class ExtensionError(ExtensionHostError):
    """Extension-related errors."""

    def __init__(
        self,
        message: str,
        extension_name: Optional[str] = None,
        namespace: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details:
            parts = []
            if extension_name:
                parts.append(f"Extension: {extension_name}")
            if namespace:
                parts.append(f"Namespace: {namespace}")
            if parts:
                details = ", ".join(parts)

        super().__init__(message, details=details, **kwargs)
        self.extension_name = extension_name
        self.namespace = namespace


class DiscoveryError(ExtensionError):
    """A namespace's installed extensions could not be enumerated."""

    def __init__(self, message: str, namespace: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Check that the extension store for this namespace is readable"
        super().__init__(message, namespace=namespace, suggestion=suggestion, **kwargs)


class NotFoundError(ExtensionError):
    """No extension with the requested id exists in the namespace."""

    def __init__(self, extension_id: str, namespace: Optional[str] = None, **kwargs):
        super().__init__(
            f"Extension '{extension_id}' is not installed",
            extension_name=extension_id,
            namespace=namespace,
            **kwargs
        )
        self.extension_id = extension_id


class CorruptionError(ExtensionError):
    """Stored extension source could not be read or decoded."""

    def __init__(self, message: str, extension_id: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Reinstall the extension"
        super().__init__(message, extension_name=extension_id, suggestion=suggestion, **kwargs)
        self.extension_id = extension_id


class InvalidPackageError(ExtensionError):
    """An install payload is not a well-formed extension package."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None)
        if not details and field:
            details = f"Field: {field}"
        super().__init__(message, details=details, **kwargs)
        self.field = field


class DuplicateError(ExtensionError):
    """An extension with the same identity is already installed."""

    def __init__(self, extension_id: str, namespace: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Uninstall the existing extension first or enable overwrite"
        super().__init__(
            f"Extension '{extension_id}' is already installed",
            extension_name=extension_id,
            namespace=namespace,
            suggestion=suggestion,
            **kwargs
        )
        self.extension_id = extension_id


class PanelConflictError(ExtensionError):
    """A panel registration lost to an earlier registration of the same name.

    Reported through diagnostics, never raised by the registry.
    """

    def __init__(
        self,
        panel_name: str,
        winner: str,
        loser: str,
        namespace: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            f"Panel '{panel_name}' from {loser} is shadowed by {winner}",
            extension_name=loser,
            namespace=namespace,
            **kwargs
        )
        self.panel_name = panel_name
        self.winner = winner
        self.loser = loser


class ExecutionError(ExtensionHostError):
    """Errors during extension activation."""

    def __init__(
        self,
        message: str,
        extension_name: Optional[str] = None,
        traceback: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and extension_name:
            details = f"Extension: {extension_name}"

        super().__init__(message, details=details, **kwargs)
        self.extension_name = extension_name
        self.traceback = traceback


class ExecutionTimeout(ExecutionError):
    """Activation exceeded its time limit."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and timeout_seconds:
            details = f"Timeout after {timeout_seconds}s"

        super().__init__(message, details=details, **kwargs)
        self.timeout_seconds = timeout_seconds


class RefreshError(ExtensionHostError):
    """Every namespace failed during a refresh cycle."""

    def __init__(self, message: str, failures: Optional[list[Exception]] = None, **kwargs):
        self.failures = list(failures or [])
        details = kwargs.pop("details", None)
        if not details and self.failures:
            details = "; ".join(
                e.message if isinstance(e, ExtensionHostError) else str(e)
                for e in self.failures
            )
        super().__init__(message, details=details, **kwargs)


def format_exception_chain(error: Exception, max_depth: int = 5) -> str:
    """Format an exception chain for display.

    Handles nested exceptions and provides clean output.
    """
    lines = []
    current = error
    depth = 0

    while current and depth < max_depth:
        if isinstance(current, ExtensionHostError):
            lines.append(current.format_user_friendly())
        else:
            lines.append(f"❌ {type(current).__name__}: {current}")

        current = getattr(current, "__cause__", None) or getattr(current, "cause", None)
        depth += 1

        if current:
            lines.append("   Caused by:")

    return "\n".join(lines)

"""VM package - sandboxed activation runtime."""

from .sandbox import ExtensionContext, Sandbox, SandboxError
from .executor import ActivationResult, Executor

__all__ = ["ExtensionContext", "Sandbox", "SandboxError", "ActivationResult", "Executor"]

"""Sandbox - RestrictedPython-based extension activation.

This module provides the isolation boundary every extension runs through.
The sandbox:
- Compiles extension source with RestrictedPython's AST transformer
- Provides only safe builtins (no open, exec, eval, arbitrary imports)
- Hands the extension exactly one capability: ``ctx.register_panel``
- Converts any fault during activation into a SandboxError
"""

from typing import Any
import ast
import json
import math
import re
import datetime
import operator

from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Eval import default_guarded_getattr, default_guarded_getitem
from RestrictedPython.Guards import (
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
)
from RestrictedPython.PrintCollector import PrintCollector

from extension_host.core.errors import ExecutionError

ENTRY_POINT = "activate"


class SandboxError(ExecutionError):
    """Raised when sandboxed activation fails."""
    pass


class SecurityViolation(SandboxError):
    """Raised when code attempts a forbidden operation."""
    pass


class ExtensionContext:
    """The only object an extension receives from the host.

    Each call to ``register_panel`` records one candidate registration.
    """

    def __init__(self, extension_name: str, mode: str = "production", max_panels: int = 64):
        self._extension_name = extension_name
        self._mode = mode
        self._max_panels = max_panels
        self._registrations: list[tuple[str, Any]] = []

    @property
    def mode(self) -> str:
        return self._mode

    def register_panel(self, name: str, registration: Any = None) -> None:
        if not isinstance(name, str) or not name.strip():
            raise SandboxError(
                "Panel name must be a non-empty string",
                extension_name=self._extension_name,
            )
        if len(self._registrations) >= self._max_panels:
            raise SandboxError(
                f"Extension registered more than {self._max_panels} panels",
                extension_name=self._extension_name,
            )
        self._registrations.append((name, registration))

    # Extensions written against camelCase hosts
    registerPanel = register_panel

    @property
    def registrations(self) -> list[tuple[str, Any]]:
        return list(self._registrations)


class Sandbox:
    """RestrictedPython sandbox for extension activation.

    This sandbox:
    - Compiles code with RestrictedPython's AST transformer
    - Provides only safe builtins (no open, exec, eval, import)
    - Injects the extension context as the only way to reach the host
    - Guards attribute and item access
    """

    # Modules that are safe to import inside extensions
    WHITELISTED_MODULES = {
        "json": json,
        "re": re,
        "math": math,
        "datetime": datetime,
    }

    # Builtins allowed in the sandbox
    SAFE_BUILTINS = {
        **safe_builtins,
        "enumerate": enumerate,
        "map": map,
        "filter": filter,
        "reversed": reversed,
        "list": list,
        "dict": dict,
        "set": set,
        "all": all,
        "any": any,
        "max": max,
        "min": min,
        "sum": sum,
    }

    _OPERATORS = {
        "+=": operator.iadd,
        "-=": operator.isub,
        "*=": operator.imul,
        "/=": operator.itruediv,
        "//=": operator.ifloordiv,
        "%=": operator.imod,
        "**=": operator.ipow,
        "&=": operator.iand,
        "|=": operator.ior,
        "^=": operator.ixor,
        "<<=": operator.ilshift,
        ">>=": operator.irshift,
    }

    @classmethod
    def _safe_import(cls, name, *args, **kwargs):
        """Safe import function that only allows whitelisted modules."""
        if name in cls.WHITELISTED_MODULES:
            return cls.WHITELISTED_MODULES[name]
        raise SecurityViolation(f"Module '{name}' is not allowed in the sandbox")

    @classmethod
    def _inplacevar(cls, op, x, y):
        if op not in cls._OPERATORS:
            raise SecurityViolation(f"Operation '{op}' is not allowed")
        return cls._OPERATORS[op](x, y)

    def __init__(self, unrestricted: bool = False):
        self._unrestricted = unrestricted

    @property
    def unrestricted(self) -> bool:
        return self._unrestricted

    def compile(self, source_code: str, filename: str = "<extension>") -> Any:
        """Compile source code.

        Args:
            source_code: Python source code to compile
            filename: Name for error messages

        Returns:
            Compiled code object
        """
        if self._unrestricted:
            try:
                return compile(source_code, filename, "exec")
            except SyntaxError as e:
                raise SandboxError(f"Syntax error at line {e.lineno}: {e.msg}")
            except ValueError as e:
                raise SandboxError(f"Compilation failed: {e}")

        try:
            result = compile_restricted(
                source_code,
                filename=filename,
                mode="exec"
            )

            if hasattr(result, "errors") and result.errors:
                errors = "\n".join(result.errors)
                raise SandboxError(f"Compilation errors:\n{errors}")

            if hasattr(result, "code"):
                return result.code
            return result

        except SyntaxError as e:
            raise SandboxError("Compilation errors:\n" + "\n".join(_syntax_issues(e)))
        except SandboxError:
            raise
        except Exception as e:
            raise SandboxError(f"Compilation failed: {e}")

    def create_globals(self) -> dict[str, Any]:
        """Create the module globals extension code runs with."""
        if self._unrestricted:
            return {"__builtins__": __builtins__, "__name__": "extension"}

        return {
            "__builtins__": {**self.SAFE_BUILTINS, "__import__": self._safe_import},
            "__name__": "extension",
            "__metaclass__": type,
            "_getattr_": default_guarded_getattr,
            "_getitem_": default_guarded_getitem,
            "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
            "_unpack_sequence_": guarded_unpack_sequence,
            "_getiter_": iter,
            "_write_": lambda x: x,
            "_inplacevar_": self._inplacevar,
            "_print_": PrintCollector,
        }

    def activate(
        self,
        source_code: str,
        context: ExtensionContext,
        entry_point: str = ENTRY_POINT,
        filename: str = "<extension>"
    ) -> list[tuple[str, Any]]:
        """Run an extension's module code, then call its entry point.

        Args:
            source_code: Python source code
            context: The registration context handed to the entry point
            entry_point: Function to call after module execution

        Returns:
            The (panel name, registration) pairs the extension registered
        """
        code = self.compile(source_code, filename)
        module_globals = self.create_globals()

        try:
            exec(code, module_globals)

            entry_func = module_globals.get(entry_point)
            if entry_func is None:
                raise SandboxError(f"Entry point '{entry_point}' not found")
            if not callable(entry_func):
                raise SandboxError(f"Entry point '{entry_point}' is not callable")

            entry_func(context)
        except SandboxError:
            raise
        except Exception as e:
            raise SandboxError(f"Activation error: {type(e).__name__}: {e}", cause=e)

        return context.registrations

    def validate_code(self, source_code: str) -> tuple[bool, list[str]]:
        """Validate code without executing it."""
        issues = []

        if self._unrestricted:
            try:
                compile(source_code, "<validation>", "exec")
            except SyntaxError as e:
                issues.append(f"Syntax error at line {e.lineno}: {e.msg}")
            except ValueError as e:
                issues.append(f"Validation error: {e}")
        else:
            try:
                result = compile_restricted(source_code, "<validation>", "exec")
                if hasattr(result, "errors") and result.errors:
                    issues.extend(result.errors)
            except SyntaxError as e:
                issues.extend(_syntax_issues(e))
            except Exception as e:
                issues.append(f"Validation error: {e}")

        if not issues:
            if not has_entry_point(source_code):
                issues.append(f"Missing '{ENTRY_POINT}' function")

        return len(issues) == 0, issues


def has_entry_point(source_code: str, entry_point: str = ENTRY_POINT) -> bool:
    """Check the module defines the entry point at top level."""
    tree = ast.parse(source_code)
    return any(
        isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == entry_point
        for node in tree.body
    )


def _syntax_issues(error: SyntaxError) -> list[str]:
    """Flatten a SyntaxError into messages.

    compile_restricted reports every problem at once as a list in args[0].
    """
    if error.lineno is None and error.args and isinstance(error.args[0], (list, tuple)):
        return [str(issue) for issue in error.args[0]]
    return [f"Syntax error at line {error.lineno}: {error.msg}"]

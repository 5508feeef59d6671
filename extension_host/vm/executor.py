"""Executor - runs extension activation with resource limits.

This module handles:
- Activating extensions in isolated contexts
- Enforcing timeouts
- Collecting panel registrations
- Error handling
"""

import asyncio
import multiprocessing
import pickle
import queue
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Optional

from extension_host.core.errors import ExecutionError, ExecutionTimeout, ExtensionHostError
from extension_host.core.logging import get_logger
from extension_host.models.environment import ResourceLimits
from extension_host.models.extension import ExtensionInfo
from .sandbox import ExtensionContext, Sandbox, SandboxError

logger = get_logger("executor")


@dataclass
class ActivationResult:
    """Result of activating one extension."""
    success: bool
    registrations: list[tuple[str, Any]] = field(default_factory=list)
    error: ExecutionError | None = None
    execution_time_ms: float = 0


def _run_in_process(result_queue, source_code, extension_name, mode, max_panels, unrestricted):
    """Function to run in the separate process."""
    try:
        # A fresh sandbox; the parent's instance is not shared across processes
        sandbox = Sandbox(unrestricted=unrestricted)
        context = ExtensionContext(extension_name, mode=mode, max_panels=max_panels)
        registrations = sandbox.activate(
            source_code, context, filename=f"<extension {extension_name}>"
        )
        try:
            payload = pickle.dumps(registrations)
        except Exception as e:
            # Panel factories defined by the extension cannot cross the process boundary
            result_queue.put(("local", None, f"{type(e).__name__}: {e}"))
            return
        result_queue.put(("success", payload, None))
    except Exception as e:
        message = e.message if isinstance(e, ExtensionHostError) else f"{type(e).__name__}: {e}"
        result_queue.put(("error", message, traceback.format_exc()))


class Executor:
    """Activates extensions in the sandbox with resource limits.

    This is the bridge between the registry and the sandbox.
    It handles:
    - Choosing process or inline isolation
    - Enforcing the activation time limit
    - Turning every fault into a failed ActivationResult
    """

    def __init__(
        self,
        limits: ResourceLimits | None = None,
        unrestricted: bool = False,
        process_isolation: bool = True,
        mode: str = "production"
    ):
        self._limits = limits or ResourceLimits()
        self._unrestricted = unrestricted
        self._process_isolation = process_isolation
        self._mode = mode
        self._sandbox = Sandbox(unrestricted=unrestricted)

    @property
    def limits(self) -> ResourceLimits:
        return self._limits

    @property
    def process_isolation(self) -> bool:
        return self._process_isolation

    async def activate(self, extension: ExtensionInfo, source_code: str) -> ActivationResult:
        """Activate an extension and collect its panel registrations.

        Args:
            extension: The extension being activated
            source_code: Its entry source, as returned by its loader

        Returns:
            ActivationResult with success/failure and registrations/error
        """
        start_time = time.perf_counter()
        name = extension.qualified_name

        try:
            if self._process_isolation:
                registrations = await asyncio.to_thread(self._activate_isolated, source_code, name)
                if registrations is None:
                    # The child finished in time; rerun here to keep the original objects
                    registrations = await self._activate_inline(source_code, name)
            else:
                registrations = await self._activate_inline(source_code, name)

            result = ActivationResult(
                success=True,
                registrations=registrations,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
            )
        except ExecutionError as e:
            if e.extension_name is None:
                e.extension_name = name
            result = ActivationResult(
                success=False,
                error=e,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
            )
        except Exception as e:
            result = ActivationResult(
                success=False,
                error=ExecutionError(
                    f"Unexpected error: {type(e).__name__}: {e}",
                    extension_name=name,
                    traceback=traceback.format_exc(),
                    cause=e,
                ),
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
            )

        logger.extension_activated(name, result.success, result.execution_time_ms)
        return result

    async def _activate_inline(self, source_code: str, name: str) -> list[tuple[str, Any]]:
        """Activate in a worker thread of this process.

        Registrations may be any object. A timed-out activation keeps running
        in its thread, but its registrations land in a discarded context.
        """
        context = ExtensionContext(name, mode=self._mode, max_panels=self._limits.max_panels)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self._sandbox.activate, source_code, context, filename=f"<extension {name}>"
                ),
                timeout=self._limits.cpu_time_seconds,
            )
        except asyncio.TimeoutError:
            raise ExecutionTimeout(
                f"Activation timed out after {self._limits.cpu_time_seconds}s",
                timeout_seconds=self._limits.cpu_time_seconds,
                extension_name=name,
            )

    def _activate_isolated(self, source_code: str, name: str) -> Optional[list[tuple[str, Any]]]:
        """Activate in a child process that is killed on timeout.

        Uses multiprocessing so that CPU-bound code like infinite loops can be
        stopped, unlike thread-based approaches.

        Returns None when the activation succeeded but its registrations could
        not be pickled back to this process.
        """
        ctx = multiprocessing.get_context("spawn")
        result_queue = ctx.Queue()

        process = ctx.Process(
            target=_run_in_process,
            args=(
                result_queue,
                source_code,
                name,
                self._mode,
                self._limits.max_panels,
                self._unrestricted,
            ),
            daemon=True,
        )
        process.start()

        try:
            status, payload, trace = result_queue.get(timeout=self._limits.cpu_time_seconds)
        except queue.Empty:
            if process.is_alive():
                process.terminate()
                process.join(timeout=1.0)
                if process.is_alive():
                    process.kill()
                raise ExecutionTimeout(
                    f"Activation timed out after {self._limits.cpu_time_seconds}s",
                    timeout_seconds=self._limits.cpu_time_seconds,
                    extension_name=name,
                )
            raise SandboxError("Process terminated without returning a result", extension_name=name)
        finally:
            result_queue.close()

        process.join(timeout=1.0)

        if status == "success":
            return pickle.loads(payload)
        if status == "local":
            logger.debug(
                f"Registrations of {name} are not picklable ({trace}); activating in-process",
                component="executor",
                extension=name,
            )
            return None
        raise SandboxError(payload, extension_name=name, traceback=trace)

    def validate(self, source_code: str) -> tuple[bool, list[str]]:
        """Validate extension source code.

        Returns:
            Tuple of (is_valid, list of issues)
        """
        return self._sandbox.validate_code(source_code)

"""Extension registry - aggregates every namespace into one panel table.

A refresh cycle discovers extensions through each namespace's loader,
activates each extension in the sandbox, resolves panel name collisions in
namespace order and publishes the result as one RegistrySnapshot.

Overlapping refresh calls are queued: a call made while a cycle is running
waits for it, then shares the next cycle with every other call made in the
meantime. Each caller therefore receives a snapshot from a cycle that
started after its call.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Sequence

from extension_host.context.app_module import AppModule
from extension_host.core.errors import (
    ConfigError,
    DiscoveryError,
    ExecutionError,
    ExtensionHostError,
    RefreshError,
)
from extension_host.core.logging import get_logger
from extension_host.models.extension import ExtensionInfo, ExtensionNamespace
from extension_host.models.panel import ExtensionDiagnostic, RegisteredPanel, RegistrySnapshot
from extension_host.vm.executor import Executor
from .loader import ExtensionLoader
from .resolution import PanelCandidate, resolve_panels

logger = get_logger("registry")

DiagnosticHandler = Callable[[ExtensionDiagnostic], None]


class ExtensionRegistry:
    """Owns the ordered loaders and the last published snapshot.

    Loader order is fixed at construction and decides which namespace wins
    when two extensions register the same panel name: earlier wins.
    """

    def __init__(
        self,
        loaders: Sequence[ExtensionLoader],
        executor: Executor | None = None,
        app_module: AppModule | None = None,
        max_concurrency: int = 8,
        on_diagnostic: Optional[DiagnosticHandler] = None
    ):
        if not loaders:
            raise ConfigError("An extension registry needs at least one loader")

        namespaces = [ExtensionNamespace(loader.namespace) for loader in loaders]
        if len(set(namespaces)) != len(namespaces):
            raise ConfigError(
                "Each namespace must have exactly one loader",
                details=f"Namespaces: {', '.join(ns.value for ns in namespaces)}",
            )

        if max_concurrency < 1:
            raise ConfigError("max_concurrency must be at least 1", config_key="EXTHOST_MAX_CONCURRENCY")

        self._loaders = tuple(loaders)
        self._executor = executor or Executor()
        self._app_module = app_module or AppModule()
        self._max_concurrency = max_concurrency
        self._on_diagnostic = on_diagnostic

        self._snapshot = RegistrySnapshot()
        self._lock = asyncio.Lock()
        self._pending: asyncio.Future | None = None
        self._cycles: set[asyncio.Task] = set()

    @property
    def namespaces(self) -> tuple[ExtensionNamespace, ...]:
        return tuple(ExtensionNamespace(loader.namespace) for loader in self._loaders)

    @property
    def loaders(self) -> tuple[ExtensionLoader, ...]:
        return self._loaders

    @property
    def app_module(self) -> AppModule:
        return self._app_module

    @property
    def snapshot(self) -> RegistrySnapshot:
        """The last published snapshot."""
        return self._snapshot

    @property
    def registered_extensions(self) -> tuple[ExtensionInfo, ...]:
        return self._snapshot.registered_extensions

    @property
    def registered_panels(self) -> Mapping[str, RegisteredPanel]:
        return self._snapshot.registered_panels

    @property
    def diagnostics(self) -> tuple[ExtensionDiagnostic, ...]:
        return self._snapshot.diagnostics

    def loader_for(self, namespace: ExtensionNamespace | str) -> ExtensionLoader:
        """Get the loader that owns a namespace."""
        try:
            namespace = ExtensionNamespace(namespace)
        except ValueError as e:
            raise ConfigError(
                f"Unknown namespace '{namespace}'",
                config_key="EXTHOST_NAMESPACES",
                cause=e,
            ) from e
        for loader in self._loaders:
            if loader.namespace == namespace:
                return loader
        raise ConfigError(
            f"Namespace '{namespace.value}' is not configured",
            config_key="EXTHOST_NAMESPACES",
        )

    async def refresh_extensions(self) -> RegistrySnapshot:
        """Run (or join) a refresh cycle and return the snapshot it published.

        Raises:
            RefreshError: if every namespace failed discovery
        """
        if self._pending is None:
            self._pending = asyncio.get_running_loop().create_future()
            task = asyncio.ensure_future(self._drive(self._pending))
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)
        return await asyncio.shield(self._pending)

    async def _drive(self, future: asyncio.Future) -> None:
        async with self._lock:
            # Calls from here on belong to the next cycle
            if self._pending is future:
                self._pending = None
            try:
                snapshot = await self._run_cycle()
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(snapshot)

    async def _run_cycle(self) -> RegistrySnapshot:
        start_time = time.perf_counter()
        diagnostics: list[ExtensionDiagnostic] = []

        discovered = await asyncio.gather(
            *(self._discover(loader) for loader in self._loaders)
        )

        failures = [error for _, error in discovered if error is not None]
        for error in failures:
            diagnostics.append(ExtensionDiagnostic(
                level="error",
                message=error.message,
                namespace=error.namespace,
                error=error,
            ))

        if failures and len(failures) == len(self._loaders):
            for diagnostic in diagnostics:
                self._report(diagnostic)
            raise RefreshError("Every extension namespace failed to load", failures=failures)

        extensions: list[ExtensionInfo] = []
        jobs = []
        semaphore = asyncio.Semaphore(self._max_concurrency)

        for rank, (loader, (infos, _)) in enumerate(zip(self._loaders, discovered)):
            for index, extension in enumerate(infos):
                extensions.append(extension)
                jobs.append(self._activate(semaphore, loader, rank, index, extension))

        results = await asyncio.gather(*jobs)

        # Single-step fold: no other coroutine touches the table being built
        candidates: list[PanelCandidate] = []
        for extension_candidates, diagnostic in results:
            candidates.extend(extension_candidates)
            if diagnostic is not None:
                diagnostics.append(diagnostic)

        panels, conflicts = resolve_panels(candidates)
        for conflict in conflicts:
            logger.panel_conflict(conflict.panel_name, conflict.winner, conflict.loser)
            diagnostics.append(ExtensionDiagnostic(
                level="warning",
                message=conflict.message,
                extension=conflict.loser,
                namespace=conflict.namespace,
                panel=conflict.panel_name,
                error=conflict,
            ))

        snapshot = RegistrySnapshot(
            registered_extensions=tuple(extensions),
            registered_panels=panels,
            diagnostics=tuple(diagnostics),
            refreshed_at=datetime.now(timezone.utc),
        )
        self._snapshot = snapshot

        logger.refresh_completed(
            len(extensions),
            len(panels),
            len(diagnostics),
            (time.perf_counter() - start_time) * 1000,
        )
        for diagnostic in diagnostics:
            self._report(diagnostic)

        return snapshot

    async def _discover(
        self, loader: ExtensionLoader
    ) -> tuple[list[ExtensionInfo], DiscoveryError | None]:
        namespace = ExtensionNamespace(loader.namespace).value
        try:
            infos = await loader.get_extensions()
        except DiscoveryError as e:
            if e.namespace is None:
                e.namespace = namespace
            return [], e
        except Exception as e:
            return [], DiscoveryError(
                f"Could not list extensions in namespace '{namespace}': {e}",
                namespace=namespace,
                cause=e,
            )

        logger.debug(f"Found {len(infos)} extension(s)", component="registry", namespace=namespace)
        return list(infos), None

    async def _activate(
        self,
        semaphore: asyncio.Semaphore,
        loader: ExtensionLoader,
        rank: int,
        index: int,
        extension: ExtensionInfo
    ) -> tuple[list[PanelCandidate], ExtensionDiagnostic | None]:
        """Load and activate one extension; failures contribute no panels."""
        namespace = ExtensionNamespace(loader.namespace).value

        async with semaphore:
            logger.debug(
                f"Activating extension {extension.qualified_name}",
                component="registry",
                extension=extension.qualified_name,
                namespace=namespace,
            )
            try:
                source_code = await loader.load_extension(extension.id)
            except ExtensionHostError as e:
                return [], self._failure(extension, namespace, e)
            except Exception as e:
                error = ExecutionError(
                    f"Could not load extension: {type(e).__name__}: {e}",
                    extension_name=extension.qualified_name,
                    cause=e,
                )
                return [], self._failure(extension, namespace, error)

            result = await self._executor.activate(extension, source_code)

        if not result.success:
            return [], self._failure(extension, namespace, result.error)

        candidates = [
            PanelCandidate(
                panel_name=name,
                extension=extension,
                namespace_rank=rank,
                extension_index=index,
                sequence=sequence,
                registration=registration,
            )
            for sequence, (name, registration) in enumerate(result.registrations)
        ]
        for candidate in candidates:
            logger.debug(
                f"Extension {extension.qualified_name} registering panel: {candidate.panel_name}",
                component="registry",
                extension=extension.qualified_name,
                panel=candidate.panel_name,
            )
        return candidates, None

    def _failure(
        self, extension: ExtensionInfo, namespace: str, error: Exception
    ) -> ExtensionDiagnostic:
        message = error.message if isinstance(error, ExtensionHostError) else str(error)
        return ExtensionDiagnostic(
            level="error",
            message=message,
            extension=extension.qualified_name,
            namespace=namespace,
            error=error,
        )

    def _report(self, diagnostic: ExtensionDiagnostic) -> None:
        if diagnostic.level == "error":
            logger.error(
                diagnostic.message,
                component="registry",
                extension=diagnostic.extension,
                namespace=diagnostic.namespace,
            )
        if self._on_diagnostic is not None:
            try:
                self._on_diagnostic(diagnostic)
            except Exception as e:
                logger.error(f"Diagnostic handler failed: {e}", component="registry")

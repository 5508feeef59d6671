"""Extension host - wires configuration, loaders, executor and registry.

Consumers receive the registry through this object; a host without a
registry is a configuration error raised at construction.
"""

from typing import Optional

from extension_host.config import Config, get_config
from extension_host.context.app_module import AppModule
from extension_host.core.errors import ConfigError
from extension_host.core.logging import get_logger
from extension_host.extensions.loader import SqliteExtensionLoader
from extension_host.extensions.registry import DiagnosticHandler, ExtensionRegistry
from extension_host.models.environment import ResourceLimits
from extension_host.models.extension import ExtensionInfo, ExtensionNamespace
from extension_host.models.panel import RegisteredPanel, RegistrySnapshot
from extension_host.vm.executor import Executor

logger = get_logger("host")


class ExtensionHost:
    """Application-facing entry point to the extension subsystem."""

    def __init__(self, registry: ExtensionRegistry | None, app_module: AppModule | None = None):
        if registry is None:
            raise ConfigError("An ExtensionRegistry is required to create an ExtensionHost")
        self._registry = registry
        self._app_module = app_module or registry.app_module

    @classmethod
    def from_config(
        cls,
        config: Config | None = None,
        app_module: AppModule | None = None,
        on_diagnostic: Optional[DiagnosticHandler] = None
    ) -> "ExtensionHost":
        """Build a host with one SQLite loader per configured namespace."""
        config = config or get_config()

        issues = config.validate()
        if issues:
            raise ConfigError("Invalid configuration", details="; ".join(issues))

        loaders = [
            SqliteExtensionLoader(
                namespace,
                config.paths.extension_db(namespace),
                allow_overwrite=config.registry.allow_overwrite,
                unrestricted=config.execution.unrestricted,
            )
            for namespace in config.registry.namespaces
        ]
        executor = Executor(
            ResourceLimits(
                cpu_time_seconds=config.execution.timeout_seconds,
                max_panels=config.execution.max_panels,
            ),
            unrestricted=config.execution.unrestricted,
            process_isolation=config.execution.process_isolation,
            mode=config.execution.mode,
        )
        app_module = app_module or AppModule()
        registry = ExtensionRegistry(
            loaders,
            executor=executor,
            app_module=app_module,
            max_concurrency=config.registry.max_concurrency,
            on_diagnostic=on_diagnostic,
        )
        return cls(registry, app_module)

    @property
    def registry(self) -> ExtensionRegistry:
        return self._registry

    @property
    def app_module(self) -> AppModule:
        return self._app_module

    async def start(self) -> RegistrySnapshot:
        """Run the first refresh cycle."""
        logger.info(
            f"Starting extension host with namespaces: "
            f"{', '.join(ns.value for ns in self._registry.namespaces)}",
            component="host",
        )
        return await self._registry.refresh_extensions()

    async def install_extension(
        self, namespace: ExtensionNamespace | str, package_data: bytes
    ) -> ExtensionInfo:
        """Install into a namespace, then refresh so the new panels appear."""
        info = await self._registry.loader_for(namespace).install_extension(package_data)
        await self._registry.refresh_extensions()
        return info

    async def uninstall_extension(self, namespace: ExtensionNamespace | str, extension_id: str) -> bool:
        """Uninstall from a namespace, then refresh if anything was removed."""
        removed = await self._registry.loader_for(namespace).uninstall_extension(extension_id)
        if removed:
            await self._registry.refresh_extensions()
        return removed

    def get_panel(self, name: str) -> RegisteredPanel | None:
        """The winning registration for a panel name in the current snapshot."""
        return self._registry.registered_panels.get(name)

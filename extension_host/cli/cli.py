"""Extension host CLI - manage installed extensions from the command line.

Usage:
    extension-host list                          - List installed extensions
    extension-host panels                        - Show the resolved panel table
    extension-host install FILE -n local         - Install a package
    extension-host uninstall ID -n local         - Uninstall an extension
    extension-host pack DIRECTORY -o FILE        - Build a package from a directory
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from extension_host import __version__
from extension_host.config import get_config
from extension_host.core.errors import ExtensionHostError, InvalidPackageError
from extension_host.core.logging import setup_logging
from extension_host.extensions.package import MANIFEST_FILENAME, create_package, parse_package
from extension_host.host import ExtensionHost
from extension_host.models.extension import ExtensionNamespace

NAMESPACE_CHOICE = click.Choice([ns.value for ns in ExtensionNamespace])


def _run(coro):
    """Run a coroutine, printing host errors instead of tracebacks."""
    try:
        return asyncio.run(coro)
    except ExtensionHostError as e:
        click.echo(e.format_user_friendly(), err=True)
        sys.exit(1)


def _build_host() -> ExtensionHost:
    config = get_config()
    setup_logging(
        level=config.log.level,
        format_type=config.log.format,
        log_dir=config.paths.logs_dir,
        file_enabled=config.log.file_enabled,
        console_enabled=config.log.console_enabled,
    )
    return ExtensionHost.from_config(config)


@click.group()
@click.version_option(version=__version__, prog_name="Extension Host")
def cli():
    """Extension Host - namespaced extension manager.

    Installs extension packages into isolated namespaces and resolves
    which extension supplies each named panel.
    """
    pass


@cli.command(name="list")
@click.option("--namespace", "-n", type=NAMESPACE_CHOICE, help="Only show this namespace")
def list_extensions(namespace: str | None):
    """List installed extensions."""
    async def _list():
        host = _build_host()
        snapshot = await host.start()
        return [
            ext for ext in snapshot.registered_extensions
            if namespace is None or (ext.namespace and ext.namespace.value == namespace)
        ]

    extensions = _run(_list())

    if not extensions:
        click.echo("No extensions installed.")
        return

    for ext in extensions:
        click.echo(ext.to_display_string())


@cli.command()
def panels():
    """Show which extension supplies each panel."""
    async def _panels():
        host = _build_host()
        return await host.start()

    snapshot = _run(_panels())

    if not snapshot.registered_panels:
        click.echo("No panels registered.")
    for name in sorted(snapshot.registered_panels):
        panel = snapshot.registered_panels[name]
        click.echo(f"{name}: {panel.extension_name}")

    for diagnostic in snapshot.diagnostics:
        click.echo(diagnostic.render(), err=True)


@cli.command()
@click.argument("package_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--namespace", "-n", type=NAMESPACE_CHOICE, default="local", show_default=True)
@click.option("--overwrite", is_flag=True, help="Replace an installed extension with the same name")
def install(package_file: Path, namespace: str, overwrite: bool):
    """Install an extension package."""
    config = get_config()
    if overwrite:
        config.registry.allow_overwrite = True

    async def _install():
        host = _build_host()
        return await host.install_extension(namespace, package_file.read_bytes())

    info = _run(_install())
    click.echo(f"✅ Installed {info.qualified_name} v{info.version} ({info.id})")


@cli.command()
@click.argument("extension_id")
@click.option("--namespace", "-n", type=NAMESPACE_CHOICE, default="local", show_default=True)
def uninstall(extension_id: str, namespace: str):
    """Uninstall an extension by id."""
    async def _uninstall():
        host = _build_host()
        return await host.uninstall_extension(namespace, extension_id)

    removed = _run(_uninstall())
    if removed:
        click.echo(f"Uninstalled {extension_id} from {namespace}")
    else:
        click.echo(f"{extension_id} is not installed in {namespace}")


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Package file to write")
def pack(directory: Path, output: Path | None):
    """Build a package from a directory holding package.json and its main file."""
    manifest_path = directory / MANIFEST_FILENAME
    if not manifest_path.exists():
        click.echo(f"Error: {manifest_path} not found", err=True)
        sys.exit(1)

    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        if not isinstance(manifest, dict):
            raise ValueError(f"{MANIFEST_FILENAME} must be a JSON object")
        main_path = directory / str(manifest.get("main", ""))
        source = main_path.read_text(encoding="utf-8")
        data = create_package(manifest, source)
        parsed = parse_package(data, unrestricted=get_config().execution.unrestricted)
    except InvalidPackageError as e:
        click.echo(e.format_user_friendly(), err=True)
        sys.exit(1)
    except (OSError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    output = output or Path(f"{parsed.manifest.extension_id}-{parsed.manifest.version}.zip")
    output.write_bytes(data)
    click.echo(f"📦 Wrote {output}")


if __name__ == "__main__":
    cli()

"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add project root to Python path so 'extension_host' is findable
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import asyncio
import io
import json
import tempfile
import zipfile
from typing import Generator
import pytest

from extension_host.config import reset_config
from extension_host.core.errors import CorruptionError, DiscoveryError, NotFoundError
from extension_host.extensions.loader import ExtensionLoader
from extension_host.extensions.package import MANIFEST_FILENAME, create_package, parse_package
from extension_host.models.environment import ResourceLimits
from extension_host.models.extension import ExtensionInfo, ExtensionManifest, ExtensionNamespace
from extension_host.vm.executor import Executor


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Keep the cached configuration from leaking between tests."""
    for key in ("EXTHOST_NAMESPACES", "EXTHOST_ALLOW_OVERWRITE", "EXTHOST_DATA_DIR"):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


def panel_source(*panels: str) -> str:
    """Extension source registering the given panel names."""
    lines = ["def activate(ctx):"]
    for name in panels:
        lines.append(f'    ctx.register_panel("{name}", {{"title": "{name}"}})')
    if not panels:
        lines.append("    return None")
    return "\n".join(lines) + "\n"


@pytest.fixture
def make_source():
    """Factory for extension sources registering panels."""
    return panel_source


@pytest.fixture
def make_package():
    """Factory for package bytes."""
    def _make(name: str, source: str | None = None, publisher: str = "tester", **fields):
        manifest = {
            "name": name,
            "publisher": publisher,
            "version": fields.pop("version", "1.0.0"),
            "displayName": fields.pop("displayName", name.title()),
            "description": fields.pop("description", f"Test extension {name}"),
            "main": fields.pop("main", "extension.py"),
            **fields,
        }
        return create_package(manifest, source if source is not None else panel_source(name))
    return _make


@pytest.fixture
def damaged_package():
    """Factory for packages whose zip members cannot be read.

    "bad-crc" flips a byte inside the stored package.json; "encrypted" marks
    the entry file as password protected.
    """
    def _make(kind: str) -> bytes:
        manifest = json.dumps({"name": "map", "publisher": "tester", "main": "extension.py"})
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
            archive.writestr(MANIFEST_FILENAME, manifest)
            archive.writestr("extension.py", panel_source("map"))
            if kind == "encrypted":
                archive.getinfo("extension.py").flag_bits |= 0x1
        data = buffer.getvalue()
        if kind == "bad-crc":
            data = data.replace(b'"tester"', b'"tesTer"', 1)
        return data
    return _make


@pytest.fixture
def sample_extension_code() -> str:
    """Sample valid extension code."""
    return '''
def activate(ctx):
    """Register a single map panel."""
    ctx.register_panel("map", {"title": "Map", "mode": ctx.mode})
'''


@pytest.fixture
def failing_extension_code() -> str:
    """Extension that registers a panel, then throws."""
    return '''
def activate(ctx):
    ctx.register_panel("broken", {"title": "Broken"})
    raise RuntimeError("boom")
'''


@pytest.fixture
def inline_executor() -> Executor:
    """Executor that activates in-process for fast registry tests."""
    return Executor(ResourceLimits(cpu_time_seconds=5.0), process_isolation=False, mode="test")


class MemoryLoader(ExtensionLoader):
    """In-memory loader for registry tests."""

    def __init__(self, namespace, fail_discovery: bool = False, gate: asyncio.Event | None = None):
        self._namespace = ExtensionNamespace(namespace)
        self.fail_discovery = fail_discovery
        self.gate = gate
        self.discovery_calls = 0
        self._entries: dict[str, tuple[ExtensionInfo, str | None]] = {}

    @property
    def namespace(self) -> ExtensionNamespace:
        return self._namespace

    def add(self, name: str, source: str | None, publisher: str = "tester") -> ExtensionInfo:
        manifest = ExtensionManifest(name=name, publisher=publisher, main="extension.py")
        info = ExtensionInfo.from_manifest(manifest, self._namespace)
        self._entries[info.id] = (info, source)
        return info

    def add_listing_only(self, name: str) -> ExtensionInfo:
        """Listed by discovery but missing from the source store."""
        info = self.add(name, "")
        self._entries[info.id] = (info, "__missing__")
        return info

    async def get_extensions(self) -> list[ExtensionInfo]:
        self.discovery_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_discovery:
            raise DiscoveryError("store offline", namespace=self._namespace.value)
        return [info for info, _ in sorted(self._entries.values(), key=lambda e: e[0].name)]

    async def load_extension(self, extension_id: str) -> str:
        if extension_id not in self._entries:
            raise NotFoundError(extension_id, namespace=self._namespace.value)
        _, source = self._entries[extension_id]
        if source == "__missing__":
            raise NotFoundError(extension_id, namespace=self._namespace.value)
        if source is None:
            raise CorruptionError("unreadable", extension_id=extension_id)
        return source

    async def install_extension(self, package_data: bytes) -> ExtensionInfo:
        parsed = parse_package(package_data)
        info = ExtensionInfo.from_manifest(parsed.manifest, self._namespace)
        self._entries[info.id] = (info, parsed.source)
        return info

    async def uninstall_extension(self, extension_id: str) -> bool:
        return self._entries.pop(extension_id, None) is not None


@pytest.fixture
def memory_loader():
    """The in-memory loader class."""
    return MemoryLoader

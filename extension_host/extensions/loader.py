"""Extension loaders - per-namespace storage of installed extensions.

Each namespace has exactly one loader, and that loader is the only writer
of the namespace's store. The registry reads through ``get_extensions``
and ``load_extension`` only.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from pathlib import Path

import aiosqlite

from extension_host.core.errors import (
    CorruptionError,
    DiscoveryError,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from extension_host.core.logging import get_logger
from extension_host.models.extension import ExtensionInfo, ExtensionNamespace, qualify
from .package import parse_package

logger = get_logger("loader")


class ExtensionLoader(ABC):
    """Contract implemented once per namespace."""

    @property
    @abstractmethod
    def namespace(self) -> ExtensionNamespace:
        """The namespace this loader owns."""
        pass

    @abstractmethod
    async def get_extensions(self) -> list[ExtensionInfo]:
        """List installed extensions.

        Raises:
            DiscoveryError: if the backing store cannot be read
        """
        pass

    @abstractmethod
    async def load_extension(self, extension_id: str) -> str:
        """Return the entry source of an installed extension.

        Raises:
            NotFoundError: no extension with that id
            CorruptionError: the stored source cannot be read
        """
        pass

    @abstractmethod
    async def install_extension(self, package_data: bytes) -> ExtensionInfo:
        """Install an extension from package bytes.

        Raises:
            InvalidPackageError: malformed package
            DuplicateError: already installed and overwrite is not allowed
        """
        pass

    @abstractmethod
    async def uninstall_extension(self, extension_id: str) -> bool:
        """Remove an extension. Returns False if nothing matched."""
        pass


class SqliteExtensionLoader(ExtensionLoader):
    """Loader backed by one SQLite database per namespace.

    Stores the original package, the extracted entry source and its
    SHA-256 checksum so that corrupted source is detected on load.
    """

    def __init__(
        self,
        namespace: ExtensionNamespace | str,
        db_path: str | Path,
        allow_overwrite: bool = False,
        unrestricted: bool = False
    ):
        self._namespace = ExtensionNamespace(namespace)
        self._db_path = Path(db_path)
        self._allow_overwrite = allow_overwrite
        self._unrestricted = unrestricted
        self._initialized = False

    @property
    def namespace(self) -> ExtensionNamespace:
        return self._namespace

    @property
    def allow_overwrite(self) -> bool:
        return self._allow_overwrite

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def _ensure_initialized(self) -> aiosqlite.Connection:
        """Get connection and ensure tables exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self._db_path)

        if not self._initialized:
            try:
                await conn.executescript("""
                    CREATE TABLE IF NOT EXISTS extensions (
                        id TEXT PRIMARY KEY,
                        name TEXT UNIQUE NOT NULL,
                        publisher TEXT NOT NULL,
                        version TEXT NOT NULL,
                        display_name TEXT NOT NULL,
                        description TEXT NOT NULL,
                        license TEXT NOT NULL,
                        homepage TEXT NOT NULL,
                        keywords TEXT NOT NULL,
                        source BLOB NOT NULL,
                        checksum TEXT NOT NULL,
                        package BLOB NOT NULL,
                        installed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE INDEX IF NOT EXISTS idx_extensions_name ON extensions(name);
                """)
                await conn.commit()
            except Exception:
                await conn.close()
                raise
            self._initialized = True

        return conn

    def _row_to_info(self, row: tuple) -> ExtensionInfo:
        """Convert a database row to an ExtensionInfo."""
        ext_id, name, publisher, version, display_name, description, license_, homepage, keywords = row
        return ExtensionInfo(
            id=ext_id,
            name=name,
            qualified_name=qualify(name, self._namespace),
            display_name=display_name,
            description=description,
            publisher=publisher,
            version=version,
            license=license_,
            homepage=homepage,
            keywords=frozenset(json.loads(keywords)),
            namespace=self._namespace,
        )

    async def get_extensions(self) -> list[ExtensionInfo]:
        """List every extension installed in this namespace, ordered by name."""
        try:
            conn = await self._ensure_initialized()
            try:
                cursor = await conn.execute("""
                    SELECT id, name, publisher, version, display_name, description,
                           license, homepage, keywords
                    FROM extensions ORDER BY name
                """)
                rows = await cursor.fetchall()
            finally:
                await conn.close()
            return [self._row_to_info(row) for row in rows]
        except (aiosqlite.Error, OSError, ValueError) as e:
            raise DiscoveryError(
                f"Could not list extensions in namespace '{self._namespace.value}'",
                namespace=self._namespace.value,
                cause=e,
            ) from e

    async def load_extension(self, extension_id: str) -> str:
        """Return the verified entry source of an extension."""
        try:
            conn = await self._ensure_initialized()
            try:
                cursor = await conn.execute(
                    "SELECT source, checksum FROM extensions WHERE id = ?",
                    (extension_id,)
                )
                row = await cursor.fetchone()
            finally:
                await conn.close()
        except (aiosqlite.Error, OSError) as e:
            raise CorruptionError(
                f"Could not read stored source for '{extension_id}'",
                extension_id=extension_id,
                namespace=self._namespace.value,
                cause=e,
            ) from e

        if row is None:
            raise NotFoundError(extension_id, namespace=self._namespace.value)

        source, checksum = row
        if isinstance(source, str):
            source = source.encode("utf-8")

        if hashlib.sha256(source).hexdigest() != checksum:
            raise CorruptionError(
                f"Stored source for '{extension_id}' failed its checksum",
                extension_id=extension_id,
                namespace=self._namespace.value,
            )

        try:
            return source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptionError(
                f"Stored source for '{extension_id}' is not UTF-8",
                extension_id=extension_id,
                namespace=self._namespace.value,
                cause=e,
            ) from e

    async def install_extension(self, package_data: bytes) -> ExtensionInfo:
        """Parse, validate and persist a package."""
        # Parsing happens before the store is touched
        parsed = parse_package(package_data, unrestricted=self._unrestricted)
        manifest = parsed.manifest
        info = ExtensionInfo.from_manifest(manifest, self._namespace)
        source = parsed.source.encode("utf-8")

        conn = await self._ensure_initialized()
        try:
            cursor = await conn.execute(
                "SELECT id FROM extensions WHERE id = ? OR name = ?",
                (info.id, info.name)
            )
            existing = await cursor.fetchall()

            if existing and not self._allow_overwrite:
                raise DuplicateError(info.id, namespace=self._namespace.value)

            if existing:
                await conn.execute(
                    "DELETE FROM extensions WHERE id = ? OR name = ?",
                    (info.id, info.name)
                )

            await conn.execute("""
                INSERT INTO extensions (
                    id, name, publisher, version, display_name, description,
                    license, homepage, keywords, source, checksum, package
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                info.id,
                info.name,
                info.publisher,
                info.version,
                info.display_name,
                info.description,
                info.license,
                info.homepage,
                json.dumps(sorted(info.keywords)),
                source,
                hashlib.sha256(source).hexdigest(),
                bytes(package_data),
            ))
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            raise StorageError(
                f"Could not persist extension '{info.id}'",
                namespace=self._namespace.value,
                cause=e,
            ) from e
        finally:
            await conn.close()

        logger.extension_installed(info.qualified_name, info.version, self._namespace.value)
        return info

    async def uninstall_extension(self, extension_id: str) -> bool:
        """Delete an extension; False if it was not installed."""
        conn = await self._ensure_initialized()
        try:
            cursor = await conn.execute(
                "DELETE FROM extensions WHERE id = ?",
                (extension_id,)
            )
            await conn.commit()
            removed = cursor.rowcount > 0
        except aiosqlite.Error as e:
            raise StorageError(
                f"Could not remove extension '{extension_id}'",
                namespace=self._namespace.value,
                cause=e,
            ) from e
        finally:
            await conn.close()

        logger.extension_uninstalled(extension_id, self._namespace.value, removed)
        return removed


"""Extension packages - parsing and building installable archives.

A package is a zip archive holding a ``package.json`` manifest and the
Python entry source the manifest's ``main`` field points at. The entry
source must define a top-level ``activate(ctx)`` function.
"""

import io
import json
import zipfile
import zlib
from dataclasses import dataclass
from typing import Any

import pydantic

from extension_host.core.errors import InvalidPackageError
from extension_host.models.extension import ExtensionManifest
from extension_host.vm.sandbox import Sandbox

MANIFEST_FILENAME = "package.json"

# Raised by ZipFile.read for damaged, encrypted or unsupported members
ARCHIVE_ERRORS = (zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError, EOFError)


@dataclass(frozen=True)
class ParsedPackage:
    """Manifest and entry source extracted from a package."""
    manifest: ExtensionManifest
    source: str


def _read_member(archive: zipfile.ZipFile, name: str, field: str, missing: str, **kwargs) -> bytes:
    """Read one archive member, mapping every zip fault to InvalidPackageError."""
    try:
        return archive.read(name)
    except KeyError:
        raise InvalidPackageError(missing, field=field, **kwargs)
    except ARCHIVE_ERRORS as e:
        raise InvalidPackageError(
            f"Package member '{name}' is damaged or unreadable: {e}", field=field, cause=e, **kwargs
        )


def _read_manifest(archive: zipfile.ZipFile) -> ExtensionManifest:
    raw = _read_member(
        archive, MANIFEST_FILENAME, MANIFEST_FILENAME, f"Package has no {MANIFEST_FILENAME}"
    )

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidPackageError(
            f"{MANIFEST_FILENAME} is not valid JSON", field=MANIFEST_FILENAME, cause=e
        )

    if not isinstance(data, dict):
        raise InvalidPackageError(f"{MANIFEST_FILENAME} must be a JSON object", field=MANIFEST_FILENAME)

    try:
        return ExtensionManifest.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or MANIFEST_FILENAME
        raise InvalidPackageError(
            f"Invalid manifest: {first['msg']}", field=field, cause=e
        )


def parse_package(data: bytes, unrestricted: bool = False) -> ParsedPackage:
    """Parse package bytes into manifest and entry source.

    Raises:
        InvalidPackageError: for anything that is not a well-formed package
    """
    if not isinstance(data, (bytes, bytearray, memoryview)) or len(data) == 0:
        raise InvalidPackageError("Package data is empty")

    try:
        archive = zipfile.ZipFile(io.BytesIO(bytes(data)))
    except ARCHIVE_ERRORS as e:
        raise InvalidPackageError("Package is not a zip archive", cause=e)

    with archive:
        manifest = _read_manifest(archive)

        raw_source = _read_member(
            archive,
            manifest.main,
            "main",
            f"Entry file '{manifest.main}' is missing from the package",
            extension_name=manifest.name,
        )

    try:
        source = raw_source.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidPackageError(
            f"Entry file '{manifest.main}' is not UTF-8 text",
            field="main",
            extension_name=manifest.name,
            cause=e,
        )

    # Checked with the compiler activation uses
    is_valid, issues = Sandbox(unrestricted=unrestricted).validate_code(source)
    if not is_valid:
        raise InvalidPackageError(
            f"Invalid extension source: {issues[0]}",
            field="main",
            extension_name=manifest.name,
            details="\n".join(issues),
        )

    return ParsedPackage(manifest=manifest, source=source)


def create_package(manifest: dict[str, Any], source: str) -> bytes:
    """Build package bytes from a manifest dict and entry source."""
    main = manifest.get("main") or "extension.py"
    manifest = {**manifest, "main": main}

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(MANIFEST_FILENAME, json.dumps(manifest, indent=2))
        archive.writestr(main, source)
    return buffer.getvalue()

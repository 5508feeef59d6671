"""Tests for package parsing and building."""

import io
import json
import zipfile
from zipfile import BadZipFile

import pytest

from extension_host.core.errors import InvalidPackageError
from extension_host.extensions.package import (
    MANIFEST_FILENAME,
    create_package,
    parse_package,
)


def raw_package(files: dict[str, bytes | str]) -> bytes:
    """Zip arbitrary files without any validation."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def test_parse_package(make_package):
    """Test a well-formed package round trip."""
    parsed = parse_package(make_package("map", publisher="Acme Corp", keywords=["geo"]))

    assert parsed.manifest.name == "map"
    assert parsed.manifest.extension_id == "acme-corp.map"
    assert parsed.manifest.display_name == "Map"
    assert parsed.manifest.keywords == ["geo"]
    assert "def activate(ctx):" in parsed.source


def test_create_package_defaults_main():
    data = create_package({"name": "map", "publisher": "tester"}, "def activate(ctx):\n    pass\n")

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        manifest = json.loads(archive.read(MANIFEST_FILENAME))
        assert manifest["main"] == "extension.py"
        assert "extension.py" in archive.namelist()


def test_nested_main(make_package):
    """Test main may point into a subdirectory."""
    parsed = parse_package(make_package("map", main="src/panel.py"))
    assert parsed.manifest.main == "src/panel.py"


@pytest.mark.parametrize("data", [b"", "not bytes"])
def test_empty_or_wrong_type(data):
    with pytest.raises(InvalidPackageError):
        parse_package(data)


def test_not_a_zip():
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(b"definitely not a zip archive")
    assert "zip" in exc_info.value.message


def test_missing_manifest():
    data = raw_package({"extension.py": "def activate(ctx):\n    pass\n"})

    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(data)
    assert exc_info.value.field == MANIFEST_FILENAME


def test_manifest_not_json():
    data = raw_package({MANIFEST_FILENAME: "{name: map", "extension.py": "x = 1"})

    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(data)
    assert "JSON" in exc_info.value.message


def test_manifest_not_object():
    data = raw_package({MANIFEST_FILENAME: "[1, 2]"})

    with pytest.raises(InvalidPackageError):
        parse_package(data)


def test_manifest_missing_main():
    manifest = json.dumps({"name": "map", "publisher": "tester"})
    data = raw_package({MANIFEST_FILENAME: manifest, "extension.py": "def activate(ctx):\n    pass\n"})

    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(data)
    assert exc_info.value.field == "main"


@pytest.mark.parametrize("name", ["Map", "my map", "-map", ""])
def test_invalid_name(make_package, name):
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(make_package(name))
    assert exc_info.value.field == "name"


def test_invalid_publisher(make_package):
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(make_package("map", publisher="!!!"))
    assert exc_info.value.field == "publisher"


@pytest.mark.parametrize("main", ["../escape.py", "/abs/extension.py"])
def test_unsafe_main(main):
    manifest = json.dumps({"name": "map", "publisher": "tester", "main": main})
    data = raw_package({MANIFEST_FILENAME: manifest})

    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(data)
    assert exc_info.value.field == "main"


def test_main_file_missing():
    manifest = json.dumps({"name": "map", "publisher": "tester", "main": "extension.py"})
    data = raw_package({MANIFEST_FILENAME: manifest})

    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(data)
    assert "missing" in exc_info.value.message


def test_source_not_utf8():
    manifest = json.dumps({"name": "map", "publisher": "tester", "main": "extension.py"})
    data = raw_package({MANIFEST_FILENAME: manifest, "extension.py": b"\xff\xfe\x00bad"})

    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(data)
    assert "UTF-8" in exc_info.value.message


def test_source_syntax_error(make_package):
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(make_package("map", source="def activate(ctx)\n"))
    assert exc_info.value.field == "main"
    assert "line 1" in exc_info.value.message.lower()


def test_source_without_activate(make_package):
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(make_package("map", source="def setup(ctx):\n    pass\n"))
    assert "activate" in exc_info.value.message



def test_restricted_only_error_rejected(make_package):
    """Test names the sandbox refuses fail at install time, not activation."""
    source = "_private = 1\ndef activate(ctx):\n    pass\n"

    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(make_package("map", source=source))
    assert exc_info.value.field == "main"
    assert "_private" in exc_info.value.message

    assert parse_package(make_package("map", source=source), unrestricted=True).source == source


def test_exec_call_rejected(make_package):
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(make_package("map", source="exec('1')\ndef activate(ctx):\n    pass\n"))
    assert exc_info.value.details


def test_member_with_bad_crc(damaged_package):
    """Test a corrupted member is reported as an invalid package."""
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(damaged_package("bad-crc"))

    assert exc_info.value.field == MANIFEST_FILENAME
    assert isinstance(exc_info.value.cause, BadZipFile)
    assert "damaged" in exc_info.value.message


def test_encrypted_member(damaged_package):
    with pytest.raises(InvalidPackageError) as exc_info:
        parse_package(damaged_package("encrypted"))

    assert exc_info.value.field == "main"
    assert exc_info.value.extension_name == "map"
    assert isinstance(exc_info.value.cause, RuntimeError)

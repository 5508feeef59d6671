"""Extension data models."""

import re
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


class ExtensionNamespace(str, Enum):
    """Isolation scopes an extension can be installed into."""
    LOCAL = "local"
    PRIVATE = "private"


def normalize_publisher(publisher: str) -> str:
    """Lowercase a publisher and collapse anything outside [a-z0-9-] to '-'."""
    return re.sub(r"[^a-z0-9-]+", "-", publisher.strip().lower()).strip("-")


class ExtensionManifest(BaseModel):
    """The package.json shipped inside an extension package."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., description="Extension name, unique within a namespace")
    publisher: str = Field(..., description="Who published the extension")
    version: str = Field(default="0.0.0", description="Semantic version")
    display_name: str = Field(default="", alias="displayName")
    description: str = Field(default="")
    license: str = Field(default="")
    homepage: str = Field(default="")
    keywords: list[str] = Field(default_factory=list)
    main: str = Field(..., description="Path of the entry source inside the package")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not NAME_PATTERN.match(value):
            raise ValueError(
                "name must be lowercase and contain only letters, digits, '.', '_' or '-'"
            )
        return value

    @field_validator("publisher")
    @classmethod
    def _check_publisher(cls, value: str) -> str:
        if not normalize_publisher(value):
            raise ValueError("publisher must contain at least one letter or digit")
        return value.strip()

    @field_validator("main")
    @classmethod
    def _check_main(cls, value: str) -> str:
        value = value.strip()
        path = PurePosixPath(value)
        if not value or path.is_absolute() or value.startswith("\\") or ".." in path.parts:
            raise ValueError("main must be a relative path inside the package")
        return str(path)

    @property
    def extension_id(self) -> str:
        return f"{normalize_publisher(self.publisher)}.{self.name}"


def qualify(name: str, namespace: Optional[ExtensionNamespace]) -> str:
    """Build the namespace-qualified name of an extension."""
    if namespace is None:
        return name
    return f"{ExtensionNamespace(namespace).value}:{name}"


class ExtensionInfo(BaseModel):
    """Identity and metadata of one installed extension.

    Instances are immutable; installing again produces a new value.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique within its namespace")
    name: str
    qualified_name: str
    display_name: str = ""
    description: str = ""
    publisher: str = ""
    version: str = "0.0.0"
    license: str = ""
    homepage: str = ""
    keywords: frozenset[str] = Field(default_factory=frozenset)
    namespace: Optional[ExtensionNamespace] = None

    @classmethod
    def from_manifest(
        cls,
        manifest: ExtensionManifest,
        namespace: Optional[ExtensionNamespace] = None
    ) -> "ExtensionInfo":
        return cls(
            id=manifest.extension_id,
            name=manifest.name,
            qualified_name=qualify(manifest.name, namespace),
            display_name=manifest.display_name or manifest.name,
            description=manifest.description,
            publisher=manifest.publisher,
            version=manifest.version,
            license=manifest.license,
            homepage=manifest.homepage,
            keywords=frozenset(manifest.keywords),
            namespace=namespace,
        )

    def to_display_string(self) -> str:
        """One-line summary for listings."""
        return f"{self.qualified_name} v{self.version} ({self.id}) - {self.display_name}"

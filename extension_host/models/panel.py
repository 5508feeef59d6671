"""Panel registration and registry snapshot models."""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field

from .extension import ExtensionInfo, ExtensionNamespace

DiagnosticLevel = Literal["warning", "error"]


class RegisteredPanel(BaseModel):
    """The winning registration for one panel name."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    extension_name: str = Field(..., description="Namespace-qualified name of the contributing extension")
    extension_id: str
    namespace: Optional[ExtensionNamespace] = None
    registration: Any = Field(default=None, description="Opaque panel factory or metadata")


@dataclass(frozen=True)
class ExtensionDiagnostic:
    """One entry of the registry's error-reporting channel."""
    level: DiagnosticLevel
    message: str
    extension: Optional[str] = None
    namespace: Optional[str] = None
    panel: Optional[str] = None
    error: Optional[Exception] = None

    def render(self) -> str:
        location = self.extension or self.namespace or "registry"
        text = f"[{self.level.upper()}] {location}: {self.message}"
        if self.panel:
            text += f" (panel: {self.panel})"
        return text


@dataclass(frozen=True)
class RegistrySnapshot:
    """Everything one refresh cycle produced, published as a unit."""
    registered_extensions: tuple[ExtensionInfo, ...] = ()
    registered_panels: Mapping[str, RegisteredPanel] = field(
        default_factory=lambda: MappingProxyType({})
    )
    diagnostics: tuple[ExtensionDiagnostic, ...] = ()
    refreshed_at: Optional[datetime] = None

    @property
    def errors(self) -> list[ExtensionDiagnostic]:
        return [d for d in self.diagnostics if d.level == "error"]

    @property
    def warnings(self) -> list[ExtensionDiagnostic]:
        return [d for d in self.diagnostics if d.level == "warning"]

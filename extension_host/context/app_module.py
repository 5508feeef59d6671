"""Host-provided capabilities shared with extensions and registry consumers.

Every member is optional. A missing member means the capability is not
available; it is never an error.
"""

from typing import Any, Awaitable, Callable, Optional
from pydantic import BaseModel, ConfigDict, Field

from extension_host.core.errors import ValidationError

CreateEvent = Callable[..., Awaitable[None]]


class AppModule(BaseModel):
    """Capability bag injected once at startup."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    providers: tuple[Any, ...] = Field(default=(), description="Opaque provider components")
    sync_adapters: tuple[Any, ...] = Field(default=(), description="Opaque data-sync adapters")
    create_event: Optional[CreateEvent] = Field(
        default=None,
        description="async create_event(device_id, timestamp, duration_nanos, metadata)",
    )

    @property
    def supports_events(self) -> bool:
        return self.create_event is not None

    async def record_event(
        self,
        device_id: str,
        timestamp: str,
        duration_nanos: str,
        metadata: dict[str, str] | None = None
    ) -> bool:
        """Forward an event to the host.

        Returns:
            False if the host offers no event capability, True once the
            host has accepted the event
        """
        metadata = dict(metadata or {})
        for key, value in metadata.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ValidationError(
                    "Event metadata must map strings to strings",
                    field=f"metadata.{key}",
                    value=value,
                )

        if self.create_event is None:
            return False

        await self.create_event(
            device_id=device_id,
            timestamp=timestamp,
            duration_nanos=duration_nanos,
            metadata=metadata,
        )
        return True

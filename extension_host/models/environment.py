"""Resource limit models."""

from pydantic import BaseModel, Field


class ResourceLimits(BaseModel):
    """Resource limits for extension activation."""
    cpu_time_seconds: float = Field(default=5.0, gt=0, description="Max wall time per activation")
    max_panels: int = Field(default=64, ge=1, description="Max panels one extension may register")

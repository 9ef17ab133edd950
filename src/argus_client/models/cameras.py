"""Camera models matching the mobile API schema."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Camera(BaseModel):
    """Camera summary as returned by GET /api/v1/mobile/cameras."""
    id: UUID
    name: str
    type: str | None = None
    is_enabled: bool | None = None
    source_type: str | None = None
    is_doorbell: bool | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def enabled(self) -> bool:
        return self.is_enabled if self.is_enabled is not None else True

    @property
    def doorbell(self) -> bool:
        return bool(self.is_doorbell)

    @property
    def display_type(self) -> str:
        return self.source_type or self.type or "Unknown"

"""Auth-related data models.

Wire models mirror the mobile API's snake_case JSON bodies; ``Credentials``
and ``DeviceIdentity`` are the locally persisted counterparts.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time, used as the default clock everywhere."""
    return datetime.now(timezone.utc)


class PairRequest(BaseModel):
    """Body for POST /auth/pair."""
    device_id: str
    device_name: str | None = None
    device_model: str | None = None
    platform: str


class PairResponse(BaseModel):
    """A freshly issued pairing code."""
    code: str
    expires_at: datetime


class PairingStatusResponse(BaseModel):
    """Result of polling a pairing code."""
    confirmed: bool = False
    expired: bool = False


class ExchangeRequest(BaseModel):
    """Body for POST /auth/exchange."""
    code: str
    device_id: str


class RefreshRequest(BaseModel):
    """Body for POST /auth/refresh."""
    refresh_token: str
    device_id: str


class TokenResponse(BaseModel):
    """Token pair returned by exchange and refresh."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(gt=0)


class ErrorResponse(BaseModel):
    """Error body; ``detail`` is surfaced to the user when present."""
    detail: str | None = None


class Credentials(BaseModel):
    """Stored token pair. Always written and replaced as a unit."""
    access_token: str
    refresh_token: str
    expires_at: datetime

    @classmethod
    def issue(
        cls,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        now: datetime | None = None,
    ) -> Credentials:
        """Build credentials whose expiry is counted from the moment of storage."""
        issued_at = now or utcnow()
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=issued_at + timedelta(seconds=expires_in),
        )

    def seconds_remaining(self, now: datetime | None = None) -> float:
        return (self.expires_at - (now or utcnow())).total_seconds()


class DeviceIdentity(BaseModel):
    """Identity sent to the server when requesting a pairing code."""
    device_id: str
    device_name: str | None = None
    device_model: str | None = None
    platform: str


class TokenStatus(BaseModel):
    """Current state of the stored access token."""
    has_token: bool
    is_expired: bool
    expires_at: datetime | None = None
    seconds_remaining: int | None = None

"""Scoped secret storage backed by the system keyring.

The token pair and its expiry live in a single keyring entry so they are
always written, replaced and removed together.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

import keyring
from keyring.errors import PasswordDeleteError
from pydantic import ValidationError

from argus_client.models.auth import Credentials, utcnow

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "credentials"
DEVICE_ID_KEY = "device_id"
DEVICE_NAME_KEY = "device_name"


class CredentialStore:
    """Key-value facade over ``keyring`` scoped to one service name."""

    def __init__(self, service: str = "argusai") -> None:
        self._service = service

    # ── Token pair ───────────────────────────────────────────────────

    def load_credentials(self) -> Credentials | None:
        raw = keyring.get_password(self._service, CREDENTIALS_KEY)
        if not raw:
            return None
        try:
            return Credentials.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable stored credentials: {e}")
            return None

    def store_tokens(
        self,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        now: datetime | None = None,
    ) -> Credentials:
        """Replace the stored token pair. Expiry is counted from now."""
        credentials = Credentials.issue(access_token, refresh_token, expires_in, now=now)
        keyring.set_password(self._service, CREDENTIALS_KEY, credentials.model_dump_json())
        logger.info(f"Stored token pair, expires at {credentials.expires_at.isoformat()}")
        return credentials

    @property
    def access_token(self) -> str | None:
        credentials = self.load_credentials()
        return credentials.access_token if credentials else None

    @property
    def refresh_token(self) -> str | None:
        credentials = self.load_credentials()
        return credentials.refresh_token if credentials else None

    @property
    def token_expires_at(self) -> datetime | None:
        credentials = self.load_credentials()
        return credentials.expires_at if credentials else None

    def needs_refresh(self, margin: timedelta, now: datetime | None = None) -> bool:
        """True when less than ``margin`` remains, or no expiry is known."""
        expires_at = self.token_expires_at
        if expires_at is None:
            return True
        return (now or utcnow()) + margin >= expires_at

    def clear_tokens(self) -> None:
        self._delete(CREDENTIALS_KEY)

    def clear_all(self) -> None:
        """Remove the token pair and the paired device name.

        The device id is kept so the server keeps seeing the same device.
        """
        self._delete(CREDENTIALS_KEY)
        self._delete(DEVICE_NAME_KEY)

    # ── Device identity ──────────────────────────────────────────────

    @property
    def device_id(self) -> str:
        """Stable device id, generated and persisted on first access."""
        existing = keyring.get_password(self._service, DEVICE_ID_KEY)
        if existing:
            return existing
        new_id = str(uuid.uuid4()).upper()
        keyring.set_password(self._service, DEVICE_ID_KEY, new_id)
        logger.info(f"Generated device id {new_id}")
        return new_id

    @property
    def device_name(self) -> str | None:
        return keyring.get_password(self._service, DEVICE_NAME_KEY)

    @device_name.setter
    def device_name(self, name: str | None) -> None:
        if name is None:
            self._delete(DEVICE_NAME_KEY)
        else:
            keyring.set_password(self._service, DEVICE_NAME_KEY, name)

    def _delete(self, key: str) -> None:
        try:
            keyring.delete_password(self._service, key)
        except PasswordDeleteError:
            pass

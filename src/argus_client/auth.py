"""Device pairing and token lifecycle for the ArgusAI mobile API.

Handles pairing code generation, status polling, code exchange, token
refresh with rotation, and logout.
"""

from __future__ import annotations

import asyncio
import logging
import platform
from datetime import datetime, timedelta
from typing import Callable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from argus_client.client import TransportClient
from argus_client.credentials import CredentialStore
from argus_client.models.auth import (
    DeviceIdentity,
    ErrorResponse,
    ExchangeRequest,
    PairingStatusResponse,
    PairRequest,
    PairResponse,
    RefreshRequest,
    TokenResponse,
    TokenStatus,
    utcnow,
)
from argus_client.utils.errors import (
    CodeNotConfirmed,
    InvalidCode,
    InvalidResponse,
    NotAuthenticated,
    RateLimited,
    ServerError,
    SessionExpired,
)

logger = logging.getLogger(__name__)

PAIR_PATH = "/api/v1/mobile/auth/pair"
STATUS_PATH = "/api/v1/mobile/auth/status/{code}"
EXCHANGE_PATH = "/api/v1/mobile/auth/exchange"
REFRESH_PATH = "/api/v1/mobile/auth/refresh"

# Refresh this long before the access token expires
EXPIRY_BUFFER = timedelta(minutes=5)

ModelT = TypeVar("ModelT", bound=BaseModel)


def error_detail(response: httpx.Response, default: str) -> str:
    """Server-provided ``detail`` message, or ``default`` when there is none."""
    try:
        detail = ErrorResponse.model_validate(response.json()).detail
    except (ValueError, ValidationError):
        detail = None
    return detail or default


def decode(model: type[ModelT], response: httpx.Response) -> ModelT:
    """Decode a successful response body, mapping failures to InvalidResponse."""
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"Could not decode {model.__name__}: {e}")
        raise InvalidResponse() from e


def local_device_name() -> str:
    return platform.node() or "ArgusAI client"


class AuthService:
    """Pairs this device with a server and keeps its tokens fresh."""

    def __init__(
        self,
        transport: TransportClient,
        credentials: CredentialStore,
        platform_tag: str = "linux",
        refresh_margin: timedelta = EXPIRY_BUFFER,
        device_name: str | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._transport = transport
        self._credentials = credentials
        self._platform = platform_tag
        self._refresh_margin = refresh_margin
        self._device_name = device_name or local_device_name()
        self._now = now
        self._refresh_task: asyncio.Task | None = None

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_authenticated(self) -> bool:
        return self._credentials.access_token is not None

    @property
    def access_token(self) -> str | None:
        return self._credentials.access_token

    @property
    def device_id(self) -> str:
        return self._credentials.device_id

    @property
    def device_name(self) -> str | None:
        """Name recorded when this device was last paired."""
        return self._credentials.device_name

    def identity(self) -> DeviceIdentity:
        return DeviceIdentity(
            device_id=self._credentials.device_id,
            device_name=self._device_name,
            device_model=platform.machine() or None,
            platform=self._platform,
        )

    def get_status(self) -> TokenStatus:
        """Get the current token status."""
        stored = self._credentials.load_credentials()
        if stored is None:
            return TokenStatus(has_token=False, is_expired=True)

        remaining = stored.seconds_remaining(self._now())
        is_expired = remaining <= 0
        return TokenStatus(
            has_token=True,
            is_expired=is_expired,
            expires_at=stored.expires_at,
            seconds_remaining=None if is_expired else int(remaining),
        )

    # ── Pairing flow ─────────────────────────────────────────────────

    async def generate_pairing_code(self) -> PairResponse:
        """Request a pairing code for this device."""
        request = PairRequest(**self.identity().model_dump())
        response = await self._transport.post(PAIR_PATH, body=request.model_dump())

        if response.status_code in (200, 201):
            return decode(PairResponse, response)
        if response.status_code == 429:
            raise RateLimited()

        logger.warning(f"Pair request failed (HTTP {response.status_code}): {response.text}")
        raise ServerError(error_detail(response, f"Server error ({response.status_code})"))

    async def check_pairing_status(self, code: str) -> PairingStatusResponse:
        """Ask whether a pairing code has been confirmed or has expired."""
        response = await self._transport.get(STATUS_PATH.format(code=code))

        if response.status_code == 200:
            return decode(PairingStatusResponse, response)
        if response.status_code == 404:
            raise InvalidCode("Pairing code not found or expired")
        if response.status_code == 429:
            raise RateLimited()
        raise ServerError(error_detail(response, "Unknown error"))

    async def exchange_code_for_tokens(self, code: str) -> None:
        """Redeem a confirmed code and store the issued token pair."""
        request = ExchangeRequest(code=code, device_id=self.device_id)
        response = await self._transport.post(EXCHANGE_PATH, body=request.model_dump())

        if response.status_code == 200:
            tokens = decode(TokenResponse, response)
            logger.info(f"Token received - expires in {tokens.expires_in} seconds")
            self._credentials.store_tokens(
                tokens.access_token,
                tokens.refresh_token,
                tokens.expires_in,
                now=self._now(),
            )
            self._credentials.device_name = self._device_name
            return
        if response.status_code == 400:
            raise CodeNotConfirmed(error_detail(response, "Pairing code not yet confirmed"))
        if response.status_code in (401, 404):
            raise InvalidCode(error_detail(response, "Invalid or expired pairing code"))
        if response.status_code == 429:
            raise RateLimited()
        raise ServerError(error_detail(response, "Unknown error"))

    # ── Token refresh ────────────────────────────────────────────────

    async def refresh_token_if_needed(self) -> None:
        """Refresh when the access token is within the safety margin of expiry."""
        if self._refresh_task is not None:
            await self._join_refresh(None)
            return

        if not self._credentials.needs_refresh(self._refresh_margin, now=self._now()):
            logger.info("No refresh needed")
            return

        token = self._credentials.refresh_token
        if not token:
            logger.info("No refresh token available")
            raise NotAuthenticated()

        await self._join_refresh(token)

    async def refresh_token(self, token: str | None = None) -> None:
        """Rotate the token pair.

        Concurrent callers share a single in-flight refresh and its outcome,
        so two different token pairs are never written for one rotation.
        """
        if self._refresh_task is None and token is None:
            token = self._credentials.refresh_token
            if not token:
                raise NotAuthenticated()
        await self._join_refresh(token)

    async def _join_refresh(self, token: str | None) -> None:
        if self._refresh_task is None:
            if token is None:
                raise NotAuthenticated()
            task = asyncio.ensure_future(self._perform_refresh(token))
            task.add_done_callback(self._refresh_finished)
            self._refresh_task = task
        else:
            logger.info("Joining in-flight token refresh")
        await asyncio.shield(self._refresh_task)

    def _refresh_finished(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _perform_refresh(self, token: str) -> None:
        request = RefreshRequest(refresh_token=token, device_id=self.device_id)
        response = await self._transport.post(REFRESH_PATH, body=request.model_dump())

        if response.status_code == 200:
            tokens = decode(TokenResponse, response)
            # Rotation: the new refresh token replaces the old one outright.
            self._credentials.store_tokens(
                tokens.access_token,
                tokens.refresh_token,
                tokens.expires_in,
                now=self._now(),
            )
            logger.info("Token pair rotated")
            return
        if response.status_code == 401:
            logger.warning("Refresh token rejected; clearing stored credentials")
            self._credentials.clear_all()
            raise SessionExpired()
        raise ServerError(error_detail(response, "Token refresh failed"))

    # ── Logout ───────────────────────────────────────────────────────

    def logout(self) -> None:
        self._credentials.clear_all()
        logger.info("Logged out")

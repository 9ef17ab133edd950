"""Camera listing for a paired device."""

from __future__ import annotations

import logging

import httpx

from argus_client.auth import AuthService, error_detail
from argus_client.client import TransportClient
from argus_client.models.cameras import Camera
from argus_client.utils.errors import InvalidResponse, NotAuthenticated, ServerError, SessionExpired

logger = logging.getLogger(__name__)

CAMERAS_PATH = "/api/v1/mobile/cameras"


class CameraService:
    """Authenticated reads of the camera list."""

    def __init__(self, transport: TransportClient, auth: AuthService) -> None:
        self._transport = transport
        self._auth = auth

    async def list(self) -> list[Camera]:
        """Fetch all cameras, refreshing the access token when it is due.

        A 401 forces one refresh and retry before giving up.
        """
        await self._auth.refresh_token_if_needed()
        response = await self._get_with_token()

        if response.status_code == 401:
            logger.warning("Got 401, refreshing token and retrying...")
            await self._auth.refresh_token()
            response = await self._get_with_token()

        if response.status_code == 401:
            raise SessionExpired()
        if response.status_code != 200:
            raise ServerError(error_detail(response, f"Server error ({response.status_code})"))

        return parse_cameras(response)

    async def _get_with_token(self) -> httpx.Response:
        token = self._auth.access_token
        if token is None:
            raise NotAuthenticated()
        return await self._transport.get(CAMERAS_PATH, token=token)


def parse_cameras(response: httpx.Response) -> list[Camera]:
    """Decode either a bare list or a ``{"cameras": [...]}`` envelope."""
    try:
        data = response.json()
    except ValueError as e:
        raise InvalidResponse() from e

    if isinstance(data, dict):
        data = data.get("cameras", [])
    if not isinstance(data, list):
        raise InvalidResponse()

    try:
        return [Camera.model_validate(item) for item in data]
    except ValueError as e:
        raise InvalidResponse() from e

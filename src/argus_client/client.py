"""HTTP transport for the ArgusAI mobile API.

Resolves the base URL on every request and applies the configured TLS
verification policy.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any

import httpx

from argus_client.endpoint import EndpointResolver
from argus_client.models.endpoint import ConnectionCheck, EndpointConfig
from argus_client.utils.errors import InvalidURL, NetworkError

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/v1/mobile/health"


def tls_verification(verify: bool) -> ssl.SSLContext | bool:
    """Return the httpx ``verify`` setting for a verification policy.

    Bypass is done with a dedicated SSLContext handed to one client only;
    nothing process-wide is changed.
    """
    if verify:
        return True
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def build_url(base_url: str, path: str) -> str:
    """Join a base URL and an API path, rejecting anything that is not http(s)."""
    url = base_url.rstrip("/") + path
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise InvalidURL() from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidURL()
    return url


def describe_connection_error(error: httpx.HTTPError) -> str:
    """Turn a transport failure into a message a user can act on."""
    if isinstance(error, httpx.TimeoutException):
        return "Connection timed out"
    text = str(error)
    lower = text.lower()
    if "certificate" in lower or "ssl" in lower:
        return (
            "TLS certificate could not be verified. "
            "Enable skip TLS verification for self-signed certificates."
        )
    if "name or service not known" in lower or "nodename nor servname" in lower or "getaddrinfo" in lower:
        return "Cannot find host"
    if isinstance(error, httpx.ConnectError):
        return "Cannot connect to host"
    return f"Connection failed: {text}"


class TransportClient:
    """Async HTTP client for the mobile API."""

    def __init__(
        self,
        resolver: EndpointResolver,
        timeout: float = 30.0,
        health_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._resolver = resolver
        self._timeout = timeout
        self._health_timeout = health_timeout
        self._transport = transport
        # One client per verification policy, so toggling the flag never
        # reuses a connection pool built under the other policy.
        self._clients: dict[bool, httpx.AsyncClient] = {}

    @property
    def resolver(self) -> EndpointResolver:
        return self._resolver

    def _client(self) -> httpx.AsyncClient:
        verify = self._resolver.config.verify_tls
        client = self._clients.get(verify)
        if client is None:
            if not verify:
                logger.warning("TLS certificate verification is disabled for API requests")
            client = httpx.AsyncClient(
                timeout=self._timeout,
                verify=tls_verification(verify),
                transport=self._transport,
            )
            self._clients[verify] = client
        return client

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> httpx.Response:
        """Send a request to the currently resolved server.

        Raises:
            InvalidURL: If the base URL cannot form a valid http(s) URL.
            NetworkError: On any transport-level failure.
        """
        url = build_url(self._resolver.resolve_base_url(), path)
        headers = self._build_headers(token, has_body=body is not None)

        logger.info(f"{method} {url}")
        try:
            response = await self._client().request(method, url, headers=headers, json=body)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise NetworkError(e) from e

        logger.info(f"Response: {response.status_code}")
        return response

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """Convenience method for GET requests."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """Convenience method for POST requests."""
        return await self.request("POST", path, **kwargs)

    async def check_health(self, config: EndpointConfig | None = None) -> ConnectionCheck:
        """Probe the health endpoint.

        Checks ``config`` when given (so a server can be tested before it is
        saved), otherwise the currently resolved server. Any status from 200
        to 499 counts as reachable: a 404 still proves a server answered.
        """
        if config is not None:
            if config.url is None:
                raise InvalidURL()
            base_url, verify = config.url, config.verify_tls
        else:
            base_url, verify = self._resolver.resolve_base_url(), self._resolver.config.verify_tls

        url = build_url(base_url, HEALTH_PATH)
        async with httpx.AsyncClient(
            timeout=self._health_timeout,
            verify=tls_verification(verify),
            transport=self._transport,
        ) as http:
            try:
                response = await http.get(url)
            except httpx.HTTPError as e:
                logger.warning(f"Health check {url} failed: {e}")
                return ConnectionCheck(url=url, reachable=False, error=describe_connection_error(e))

        if 200 <= response.status_code < 500:
            return ConnectionCheck(url=url, reachable=True, status_code=response.status_code)
        return ConnectionCheck(
            url=url,
            reachable=False,
            status_code=response.status_code,
            error=f"Server returned status {response.status_code}",
        )

    def _build_headers(self, token: str | None, has_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if has_body:
            headers["Content-Type"] = "application/json"
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def aclose(self) -> None:
        """Close the underlying HTTP clients."""
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.aclose()

"""Shared fixtures for the argus-mobile test suite."""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from argus_client.config import Config, ServerConfigStore, Settings
from argus_client.credentials import CredentialStore
from argus_client.endpoint import EndpointResolver
from argus_client.models.endpoint import EndpointConfig

FIXED_NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryKeyring(KeyringBackend):
    """Keyring backend that keeps secrets in a dict."""

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError(username)


class FakeClock:
    """Settable clock for code that takes a ``now`` callable."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


@pytest.fixture
def memory_keyring():
    previous = keyring.get_keyring()
    backend = InMemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def credential_store(memory_keyring) -> CredentialStore:
    return CredentialStore("argusai-test")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_settings(tmp_path) -> Settings:
    return Settings(
        config_dir=tmp_path,
        default_url="https://argusai.example.com",
        keyring_service="argusai-test",
        poll_interval=0.01,
        countdown_interval=0.01,
        discovery_timeout=0.05,
        platform="linux",
    )


@pytest.fixture
def fake_config(fake_settings) -> Config:
    return Config(settings=fake_settings, server=EndpointConfig())


@pytest.fixture
def server_store(tmp_path) -> ServerConfigStore:
    return ServerConfigStore(tmp_path / "server.yaml")


@pytest.fixture
def resolver(server_store) -> EndpointResolver:
    return EndpointResolver(server_store, discovery=None, default_url="https://argusai.example.com")


@pytest.fixture
def mock_transport():
    """MagicMock standing in for TransportClient."""
    transport = MagicMock()
    transport.request = AsyncMock()
    transport.get = AsyncMock()
    transport.post = AsyncMock()
    transport.aclose = AsyncMock()
    return transport


def make_response(status_code: int = 200, json_data=None, text: str | None = None) -> httpx.Response:
    """Build a real httpx.Response with a JSON or raw body."""
    request = httpx.Request("GET", "https://argusai.example.com/")
    if text is not None:
        return httpx.Response(status_code, text=text, request=request)
    return httpx.Response(status_code, json=json_data if json_data is not None else {}, request=request)


def context_opener(ctx):
    """Stand-in for ``open_context`` that yields a prepared context."""

    @asynccontextmanager
    async def _open(config, discover=False):
        ctx.opened_with_discover = discover
        yield ctx

    return _open


@pytest.fixture
def cli_context(resolver):
    """MagicMock ClientContext backed by a real resolver."""
    ctx = MagicMock()
    ctx.resolver = resolver
    ctx.transport = MagicMock()
    ctx.transport.check_health = AsyncMock()
    ctx.discovery = MagicMock()
    ctx.discovery.refresh_discovery = AsyncMock()
    ctx.discovery.wait = AsyncMock(return_value=None)
    ctx.auth = MagicMock()
    ctx.auth.refresh_token = AsyncMock()
    ctx.auth.refresh_token_if_needed = AsyncMock()
    return ctx

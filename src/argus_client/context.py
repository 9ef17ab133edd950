"""Wiring of the client services for one run of the CLI."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator

from argus_client.auth import AuthService
from argus_client.client import TransportClient
from argus_client.config import Config
from argus_client.credentials import CredentialStore
from argus_client.discovery import DiscoveryService
from argus_client.endpoint import EndpointResolver
from argus_client.services.pairing import PairingStateMachine


@dataclass
class ClientContext:
    config: Config
    discovery: DiscoveryService
    resolver: EndpointResolver
    transport: TransportClient
    credentials: CredentialStore
    auth: AuthService

    def pairing(self) -> PairingStateMachine:
        settings = self.config.settings
        return PairingStateMachine(
            self.auth,
            poll_interval=settings.poll_interval,
            countdown_interval=settings.countdown_interval,
        )


def build_context(config: Config) -> ClientContext:
    settings = config.settings
    discovery = DiscoveryService(settings.service_type, timeout=settings.discovery_timeout)
    resolver = EndpointResolver(config.server_store(), discovery, default_url=settings.default_url)
    transport = TransportClient(
        resolver,
        timeout=settings.request_timeout,
        health_timeout=settings.health_timeout,
    )
    credentials = CredentialStore(settings.keyring_service)
    auth = AuthService(
        transport,
        credentials,
        platform_tag=settings.platform,
        refresh_margin=timedelta(seconds=settings.refresh_margin),
    )
    return ClientContext(config, discovery, resolver, transport, credentials, auth)


@asynccontextmanager
async def open_context(config: Config, discover: bool = False) -> AsyncIterator[ClientContext]:
    """Build the services, optionally wait for local discovery, and tear them down.

    With ``discover`` the search runs to completion (found or timed out)
    before the body runs, so the resolver already prefers a local server.
    """
    context = build_context(config)
    try:
        if discover:
            await context.discovery.start_discovery()
            await context.discovery.wait()
        yield context
    finally:
        await context.resolver.aclose()
        await context.transport.aclose()

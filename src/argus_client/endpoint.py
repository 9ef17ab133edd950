"""Base URL selection: discovered local server, configured server, default."""

from __future__ import annotations

import logging

from argus_client.config import DEFAULT_REMOTE_URL, ServerConfigStore
from argus_client.discovery import DiscoveryService
from argus_client.models.endpoint import EndpointConfig

logger = logging.getLogger(__name__)


class EndpointResolver:
    """Decides where API requests go.

    Reads discovery and configuration state only; it never touches the
    network. The persisted configuration is loaded once at construction and
    kept in sync by ``configure_server`` / ``clear_server_configuration``.
    """

    def __init__(
        self,
        store: ServerConfigStore,
        discovery: DiscoveryService | None = None,
        default_url: str = DEFAULT_REMOTE_URL,
    ) -> None:
        self._store = store
        self._discovery = discovery
        self._default_url = default_url
        self._config = store.load()

    @property
    def config(self) -> EndpointConfig:
        return self._config

    @property
    def discovery(self) -> DiscoveryService | None:
        return self._discovery

    @property
    def is_server_configured(self) -> bool:
        return self._config.is_configured

    @property
    def configured_server_url(self) -> str | None:
        return self._config.url

    def resolve_base_url(self) -> str:
        """Return the base URL to use right now. Evaluated on every call."""
        if self._discovery is not None and self._discovery.is_local_available:
            return self._discovery.result.url  # type: ignore[union-attr]
        return self.configured_server_url or self._default_url

    def configure_server(
        self,
        host: str,
        port: int | None = None,
        use_tls: bool = True,
        skip_tls_verification: bool = False,
    ) -> EndpointConfig:
        config = EndpointConfig(
            host=host.strip(),
            port=port,
            use_tls=use_tls,
            skip_tls_verification=skip_tls_verification,
        )
        if config.use_tls and config.skip_tls_verification:
            logger.warning(f"TLS certificate verification disabled for {config.host}")
        self._store.save(config)
        self._config = config
        return config

    def update_server(self, **fields: object) -> EndpointConfig:
        """Change individual server fields (host, port, use_tls, skip_tls_verification)."""
        self._config = self._store.update(**fields)
        return self._config

    def clear_server_configuration(self) -> None:
        self._store.clear()
        self._config = EndpointConfig()

    async def aclose(self) -> None:
        if self._discovery is not None:
            await self._discovery.aclose()

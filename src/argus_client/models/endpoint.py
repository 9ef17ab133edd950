"""Server endpoint models."""

from __future__ import annotations

from pydantic import BaseModel, Field


def url_host(host: str) -> str:
    """Bracket IPv6 literals for use in a URL authority."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


class EndpointConfig(BaseModel):
    """User-configured remote server. Persisted to server.yaml."""
    host: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    use_tls: bool = True
    skip_tls_verification: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    @property
    def scheme(self) -> str:
        return "https" if self.use_tls else "http"

    @property
    def url(self) -> str | None:
        """``scheme://host[:port]``, or None when no host is set."""
        if not self.host:
            return None
        port_suffix = f":{self.port}" if self.port is not None else ""
        return f"{self.scheme}://{url_host(self.host)}{port_suffix}"

    @property
    def verify_tls(self) -> bool:
        # Skipping verification only means something on a TLS connection.
        return not (self.use_tls and self.skip_tls_verification)


class DiscoveredEndpoint(BaseModel):
    """A server found on the local network. Never persisted."""
    url: str
    is_available: bool = True
    name: str | None = None


class ConnectionCheck(BaseModel):
    """Outcome of probing /api/v1/mobile/health."""
    url: str
    reachable: bool
    status_code: int | None = None
    error: str | None = None

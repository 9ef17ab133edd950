"""Configuration management for the ArgusAI client.

Loads settings from the environment (and .env) and the persisted server
configuration from server.yaml in the config directory.
"""

from __future__ import annotations

import logging
import os
import platform
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from argus_client.models.endpoint import EndpointConfig

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_URL = "https://argusai.example.com"
SERVICE_TYPE = "_argusai._tcp.local."


class Settings(BaseModel):
    """Application settings loaded from environment variables."""
    config_dir: Path = Field(default=Path.home() / ".argusai", description="Directory for server.yaml")
    default_url: str = Field(default=DEFAULT_REMOTE_URL, description="Fallback server URL")
    keyring_service: str = Field(default="argusai", description="Keyring service name for secrets")
    request_timeout: float = Field(default=30.0, description="API request timeout in seconds")
    health_timeout: float = Field(default=10.0, description="Connection test timeout in seconds")
    discovery_timeout: float = Field(default=10.0, description="How long an mDNS search runs")
    refresh_margin: int = Field(default=300, description="Refresh tokens this many seconds before expiry")
    poll_interval: float = Field(default=2.0, description="Pairing status poll interval in seconds")
    countdown_interval: float = Field(default=1.0, description="Pairing countdown tick in seconds")
    service_type: str = Field(default=SERVICE_TYPE, description="mDNS service type to browse")
    platform: str = Field(default=platform.system().lower() or "unknown", description="Platform tag sent when pairing")


class ServerConfigStore:
    """Persists the user-configured server in a YAML file.

    Fields can be set independently; ``clear`` removes all of them at once.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> EndpointConfig:
        if not self._path.exists():
            return EndpointConfig()

        with open(self._path) as f:
            data = yaml.safe_load(f) or {}

        return EndpointConfig(**data)

    def save(self, config: EndpointConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(exclude_none=True)
        with open(self._path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        logger.info(f"Saved server configuration to {self._path}")

    def update(self, **fields: object) -> EndpointConfig:
        """Change some fields, keeping the rest of the stored configuration."""
        current = self.load().model_dump()
        current.update(fields)
        config = EndpointConfig(**current)
        self.save(config)
        return config

    def clear(self) -> None:
        if self._path.exists():
            self._path.unlink()
            logger.info(f"Cleared server configuration at {self._path}")


class Config(BaseModel):
    """Full application configuration."""
    settings: Settings
    server: EndpointConfig

    @property
    def server_config_path(self) -> Path:
        return self.settings.config_dir / "server.yaml"

    def server_store(self) -> ServerConfigStore:
        return ServerConfigStore(self.server_config_path)


def _env(*keys: str, default: str = "") -> str:
    """Try multiple env var names, return the first one found."""
    for key in keys:
        val = os.environ.get(key, "")
        if val:
            return val.strip().strip('"')
    return default


def _load_settings() -> Settings:
    """Load settings from ARGUS_* environment variables."""
    defaults = Settings()
    return Settings(
        config_dir=Path(_env("ARGUS_CONFIG_DIR", default=str(defaults.config_dir))).expanduser(),
        default_url=_env("ARGUS_DEFAULT_URL", default=defaults.default_url).rstrip("/"),
        keyring_service=_env("ARGUS_KEYRING_SERVICE", default=defaults.keyring_service),
        request_timeout=float(_env("ARGUS_REQUEST_TIMEOUT", default=str(defaults.request_timeout))),
        health_timeout=float(_env("ARGUS_HEALTH_TIMEOUT", default=str(defaults.health_timeout))),
        discovery_timeout=float(_env("ARGUS_DISCOVERY_TIMEOUT", default=str(defaults.discovery_timeout))),
        refresh_margin=int(_env("ARGUS_REFRESH_MARGIN", default=str(defaults.refresh_margin))),
        poll_interval=float(_env("ARGUS_POLL_INTERVAL", default=str(defaults.poll_interval))),
        countdown_interval=float(_env("ARGUS_COUNTDOWN_INTERVAL", default=str(defaults.countdown_interval))),
        service_type=_env("ARGUS_SERVICE_TYPE", default=defaults.service_type),
        platform=_env("ARGUS_PLATFORM", default=defaults.platform),
    )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Load and cache the full application configuration."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    settings = _load_settings()
    server = ServerConfigStore(settings.config_dir / "server.yaml").load()

    return Config(settings=settings, server=server)

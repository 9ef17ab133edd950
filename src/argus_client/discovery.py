"""mDNS discovery of an ArgusAI server on the local network.

Browses for ``_argusai._tcp.local.`` for a bounded time and publishes the
first service that resolves to an address.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from zeroconf import ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from argus_client.config import SERVICE_TYPE
from argus_client.models.endpoint import DiscoveredEndpoint, url_host

logger = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 10.0
RESOLVE_TIMEOUT_MS = 5000


def endpoint_url(address: str, port: int) -> str:
    """Build the http URL of a resolved service; IPv6 hosts are bracketed."""
    return f"http://{url_host(address)}:{port}"


class DiscoveryService:
    """Bounded-time local network search for the ArgusAI service.

    Only one search runs at a time: ``start_discovery`` while a search is in
    progress does nothing. The result stays available until
    ``refresh_discovery`` clears it.
    """

    def __init__(
        self,
        service_type: str = SERVICE_TYPE,
        timeout: float = DISCOVERY_TIMEOUT,
        zeroconf_factory: Callable[[], AsyncZeroconf] = AsyncZeroconf,
    ) -> None:
        self._service_type = service_type
        self._timeout = timeout
        self._zeroconf_factory = zeroconf_factory
        self._zeroconf: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._timeout_task: asyncio.Task | None = None
        self._resolve_tasks: set[asyncio.Task] = set()
        self._searching = False
        self._finished = asyncio.Event()
        self._finished.set()
        self.result: DiscoveredEndpoint | None = None

    @property
    def is_searching(self) -> bool:
        return self._searching

    @property
    def is_local_available(self) -> bool:
        return self.result is not None and self.result.is_available

    async def start_discovery(self) -> None:
        """Begin browsing; stops by itself after the timeout if nothing is found."""
        if self._searching:
            return
        self._searching = True
        self._finished.clear()
        logger.info(f"Starting discovery for {self._service_type}")

        self._zeroconf = self._zeroconf_factory()
        self._browser = AsyncServiceBrowser(
            self._zeroconf.zeroconf,
            [self._service_type],
            handlers=[self._on_service_state_change],
        )
        self._timeout_task = asyncio.create_task(self._expire_after(self._timeout))

    async def stop_discovery(self) -> None:
        """Cancel any in-flight search. Safe to call repeatedly."""
        current = asyncio.current_task()

        if self._timeout_task is not None and self._timeout_task is not current:
            self._timeout_task.cancel()
        self._timeout_task = None

        for task in list(self._resolve_tasks):
            if task is not current:
                task.cancel()
        self._resolve_tasks.clear()

        browser, self._browser = self._browser, None
        zeroconf, self._zeroconf = self._zeroconf, None
        if browser is not None:
            await browser.async_cancel()
        if zeroconf is not None:
            await zeroconf.async_close()

        if self._searching:
            logger.info("Discovery stopped")
        self._searching = False
        self._finished.set()

    async def refresh_discovery(self) -> None:
        """Forget the previous result and search again."""
        await self.stop_discovery()
        self.result = None
        await self.start_discovery()

    async def wait(self) -> DiscoveredEndpoint | None:
        """Wait for the current search to end and return its result."""
        await self._finished.wait()
        return self.result

    async def aclose(self) -> None:
        await self.stop_discovery()

    def publish(self, url: str, name: str | None = None) -> None:
        self.result = DiscoveredEndpoint(url=url, is_available=True, name=name)
        logger.info(f"Resolved ArgusAI at: {url}")

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is not ServiceStateChange.Added:
            return
        logger.info(f"Found service: {name}")
        task = asyncio.ensure_future(self._resolve(zeroconf, service_type, name))
        self._resolve_tasks.add(task)
        task.add_done_callback(self._resolve_tasks.discard)

    async def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(zeroconf, RESOLVE_TIMEOUT_MS):
            logger.warning(f"Could not resolve {name}")
            return

        addresses = info.parsed_addresses()
        if not addresses or info.port is None:
            logger.warning(f"Service {name} resolved without an address")
            return
        if not self._searching:
            return

        self.publish(endpoint_url(addresses[0], info.port), name=name)
        await self.stop_discovery()

    async def _expire_after(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self.result is None:
            logger.info(f"No ArgusAI server found within {timeout:.0f}s")
        await self.stop_discovery()

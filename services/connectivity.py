"""Online/offline state tracking for the input-records client."""

from __future__ import annotations

import enum
import logging
import socket
from typing import Callable, Iterable, Optional

from core.errors import StorageError
from core.settings import OFFLINE_SYNC
from services.notifications import OFFLINE_BANNER, Notifier, offline_banner_text


logger = logging.getLogger("canemap.connectivity")


def probe_reachable(
    host: str = OFFLINE_SYNC.probe_host,
    port: int = OFFLINE_SYNC.probe_port,
    timeout: float = OFFLINE_SYNC.probe_timeout_sec,
) -> bool:
    """Return True if a TCP connection to the remote store host succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as exc:
        logger.debug("Reachability probe failed: %s", exc)
        return False


class ConnectionState(str, enum.Enum):
    OFFLINE = "offline"
    ONLINE = "online"


class ConnectivityMonitor:
    """Reflects platform online/offline signals.

    It never polls: something else (the UI's reachability watcher) calls
    :meth:`handle_online` and :meth:`handle_offline` on transitions.
    """

    def __init__(
        self,
        queue,
        engine,
        state_store,
        notifier: Notifier,
        is_online: Optional[Callable[[], bool]] = None,
        capture_page: str = OFFLINE_SYNC.capture_page,
        background_engines: Iterable = (),
    ) -> None:
        self.queue = queue
        self.engine = engine
        # Synced on every reconnect, whatever page was active.
        self.background_engines = list(background_engines)
        self.state_store = state_store
        self.notifier = notifier
        self.capture_page = capture_page
        self._is_online = is_online or probe_reachable
        self.current_page: Optional[str] = None
        self.state = ConnectionState.ONLINE if self._is_online() else ConnectionState.OFFLINE
        logger.info("Network status: %s", self.state.value.upper())

    @property
    def online(self) -> bool:
        return self.state is ConnectionState.ONLINE

    def on_capture_page(self) -> bool:
        return self.current_page == self.capture_page

    def set_page(self, name: str) -> None:
        self.current_page = name
        if self.online:
            return
        if self.on_capture_page():
            self.state_store.mark_capture_page()
        self.notifier.show_banner(OFFLINE_BANNER, offline_banner_text(self.on_capture_page()))

    async def start(self, page: Optional[str] = None) -> None:
        if page is not None:
            self.set_page(page)
        if not self.online:
            self.notifier.show_banner(OFFLINE_BANNER, offline_banner_text(self.on_capture_page()))
            return
        await self._sync_if_needed("startup")

    async def handle_online(self) -> None:
        if self.online:
            return
        self.state = ConnectionState.ONLINE
        logger.info("Device is now ONLINE")
        self.notifier.hide_banner(OFFLINE_BANNER)
        await self._sync_if_needed("reconnect")

    def handle_offline(self) -> None:
        if not self.online:
            return
        self.state = ConnectionState.OFFLINE
        logger.info("Device is now OFFLINE")
        self.notifier.show_banner(OFFLINE_BANNER, offline_banner_text(self.on_capture_page()))
        if self.on_capture_page():
            self.state_store.mark_capture_page()

    async def _sync_if_needed(self, reason: str) -> None:
        if self.state_store.was_on_capture_page():
            await self._sync_queue(self.engine, reason)
        for engine in self.background_engines:
            await self._sync_queue(engine, reason)

    async def _sync_queue(self, engine, reason: str) -> None:
        try:
            count = engine.queue.count_pending()
        except StorageError as exc:
            logger.error("Error checking pending %s(s) on %s: %s", engine.queue.kind, reason, exc)
            return
        if count <= 0:
            return
        logger.info("Found %d pending %s(s) on %s. Starting sync...", count, engine.queue.kind, reason)
        await engine.sync_all()


__all__ = ["ConnectionState", "ConnectivityMonitor", "probe_reachable"]

# ui/app_shell.py
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import flet as ft
from sqlmodel import Session

from core.errors import StorageError
from core.settings import FIRESTORE, OFFLINE_SYNC, SYNC_LOG_PATH, UI
from models.queue_entry import KIND_WORK_LOG

from .banners import FletNotifier
from .pages.input_records import InputRecordsPage
from .pages.sync_status import SyncStatusPage
from .pages.work_logs import WorkLogsPage

from services.connectivity import ConnectivityMonitor, probe_reachable
from services.firestore_store import FirestoreStore
from services.google_auth import GoogleAuth, LocalAuth
from services.offline_queue import OfflineRecordQueue
from services.remote_store import InMemoryStore
from services.sync_engine import SyncEngine
from services.sync_lease import SyncLeaseManager
from services.work_logs import WorkLogSyncEngine
from storage import db
from storage.device import get_device_id, process_owner_id
from storage.session_state import SessionStateStore


logger = logging.getLogger("canemap.ui")


class AppShell:
    def __init__(self, page: ft.Page):
        self.page = page

        self.page.title = UI.app_title
        self.page.horizontal_alignment = ft.CrossAxisAlignment.STRETCH
        self.page.vertical_alignment = ft.MainAxisAlignment.START

        # --- session, queue, remote store (before the pages) ---
        self.state_store = SessionStateStore()
        self.notifier = FletNotifier(page)
        self.queue = OfflineRecordQueue()
        self.work_log_queue = OfflineRecordQueue(kind=KIND_WORK_LOG)
        self.offline_capture_available = True
        try:
            for queue in (self.queue, self.work_log_queue):
                queue.initialize()
                queue.recover_stale()
        except StorageError as exc:
            logger.error("Offline capture unavailable for this session: %s", exc)
            self.offline_capture_available = False

        if FIRESTORE.project_id:
            self.auth = GoogleAuth(state_store=self.state_store)
            self.remote = FirestoreStore(self.auth)
        else:
            logger.warning("CANEMAP_FIRESTORE_PROJECT is not set; records stay in memory")
            self.auth = LocalAuth(self.state_store)
            self.remote = InMemoryStore()

        device_id = get_device_id()
        engine = db.get_engine()
        self.lease = SyncLeaseManager(lambda: Session(engine), process_owner_id(device_id))
        self.sync_engine = SyncEngine(
            self.queue,
            self.remote,
            self.auth,
            notifier=self.notifier,
            state_store=self.state_store,
            is_online=lambda: self.monitor.online,
            lease=self.lease,
            device_id=device_id,
        )
        self.work_log_lease = SyncLeaseManager(
            lambda: Session(engine),
            process_owner_id(device_id),
            name=OFFLINE_SYNC.work_log_lease_name,
        )
        self.work_log_engine = WorkLogSyncEngine(
            self.work_log_queue,
            self.remote,
            self.auth,
            notifier=self.notifier,
            is_online=lambda: self.monitor.online,
            lease=self.work_log_lease,
            device_id=device_id,
        )
        self.monitor = ConnectivityMonitor(
            self.queue,
            self.sync_engine,
            self.state_store,
            self.notifier,
            background_engines=[self.work_log_engine],
        )

        # --- pages ---
        self._input_records = InputRecordsPage(self)
        self._work_logs = WorkLogsPage(self)
        self._sync = SyncStatusPage(self)
        self._pages = [self._input_records, self._work_logs, self._sync]

        self.content = ft.Container(expand=True)

        self.nav = ft.NavigationRail(
            selected_index=0,
            label_type=ft.NavigationRailLabelType.ALL,
            min_width=90,
            min_extended_width=200,
            group_alignment=-0.9,
            on_change=self.on_nav_change,
            destinations=[
                ft.NavigationRailDestination(
                    icon=ft.Icons.EDIT_NOTE_OUTLINED,
                    selected_icon=ft.Icons.EDIT_NOTE,
                    label="Input Records",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.ENGINEERING_OUTLINED,
                    selected_icon=ft.Icons.ENGINEERING,
                    label="Log Work",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.SYNC_OUTLINED,
                    selected_icon=ft.Icons.SYNC,
                    label="Sync",
                ),
            ],
        )

        self.root = ft.Column(
            controls=[
                self.notifier.view,
                ft.Row(
                    controls=[
                        ft.Container(self.nav, width=88, bgcolor=UI.theme.safe_surface_bg),
                        ft.VerticalDivider(width=1),
                        self.content,
                    ],
                    expand=True,
                    spacing=0,
                ),
            ],
            expand=True,
            spacing=0,
        )

        self._watch_task: asyncio.Task | None = None

    # ---------- reachability ----------
    def _start_reachability_watch(self):
        """Turn periodic probe results into online/offline edges for the monitor."""

        interval = OFFLINE_SYNC.watch_interval_sec

        async def _loop():
            while True:
                await asyncio.sleep(interval)
                try:
                    reachable = await asyncio.to_thread(probe_reachable)
                    if reachable and not self.monitor.online:
                        await self.monitor.handle_online()
                        self._refresh_active()
                    elif not reachable and self.monitor.online:
                        self.monitor.handle_offline()
                        self._refresh_active()
                except Exception as e:
                    logger.error("reachability watch: %s", e)

        self._watch_task = self.page.run_task(_loop)

    def stop(self):
        try:
            if self._watch_task:
                self._watch_task.cancel()
        except Exception:
            pass
        self._watch_task = None

    # ---------- mount ----------
    def mount(self):
        self.page.controls.clear()
        self.page.add(self.root)
        self._show(0)

        async def _start():
            await self.monitor.start(self._pages[0].name)
            self._refresh_active()

        self.page.run_task(_start)
        self._start_reachability_watch()

    def on_nav_change(self, e: ft.ControlEvent):
        self._show(int(e.control.selected_index))

    def _show(self, idx: int):
        page = self._pages[idx]
        self.content.content = page.view
        self.monitor.set_page(page.name)
        page.refresh()
        self.page.update()

    def _refresh_active(self):
        for page in self._pages:
            if self.content.content is page.view:
                page.refresh()
        self.page.update()

    # ---------- utilities for pages ----------
    def request_sync(self, after: Optional[Callable[[], None]] = None, engine=None) -> None:
        engine = engine or self.sync_engine

        async def _run():
            await engine.sync_all()
            self._refresh_active()
            if after:
                after()

        self.page.run_task(_run)

    def request_work_log_sync(self, after: Optional[Callable[[], None]] = None) -> None:
        self.request_sync(after, engine=self.work_log_engine)

    def sync_status(self) -> dict:
        try:
            status = self.sync_engine.status()
            status["workLogQueueSize"] = self.work_log_engine.status()["queueSize"]
            return status
        except StorageError as exc:
            logger.error("Sync status error: %s", exc)
            return {}

    def read_sync_log(self, lines: int = 100) -> str:
        try:
            with open(SYNC_LOG_PATH, "r", encoding="utf-8") as fh:
                content = fh.readlines()
        except FileNotFoundError:
            return "No sync log yet."
        content = [line.rstrip("\n") for line in content[-lines:]]
        return "\n".join(content)

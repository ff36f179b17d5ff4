# ui/pages/work_logs.py
from __future__ import annotations

import logging
from datetime import date

import flet as ft

from core.errors import StorageError
from datetime_utils import coerce_datetime
from services.work_logs import TASK_DISPLAY_NAMES, new_work_log

logger = logging.getLogger("canemap.ui")

SAVE_FAILED_MESSAGE = "Could not save work log offline."


class WorkLogsPage:
    """Worker work log form; logs are queued and uploaded as completed tasks."""

    name = "work_logs"

    def __init__(self, app):
        self.app = app

        self.field_tf = ft.TextField(label="Field ID", width=220)
        self.task_dd = ft.Dropdown(
            label="Task",
            width=280,
            options=[ft.dropdown.Option(key, text) for key, text in TASK_DISPLAY_NAMES.items()],
            value="plowing",
        )
        self.worker_tf = ft.TextField(label="Worker name", width=220)
        self.date_tf = ft.TextField(
            label="Completed on (YYYY-MM-DD)",
            width=220,
            value=date.today().isoformat(),
        )
        self.description_tf = ft.TextField(label="Description", multiline=True, min_lines=2, expand=True)
        self.status_text = ft.Text("")
        self.save_btn = ft.ElevatedButton("Save work log", icon=ft.Icons.SAVE, on_click=self.save)

        content = ft.Column(
            controls=[
                ft.Text("Log Work", size=24, weight=ft.FontWeight.BOLD),
                ft.Row([self.field_tf, self.task_dd], wrap=True, spacing=12),
                ft.Row([self.worker_tf, self.date_tf], wrap=True, spacing=12),
                ft.Row([self.description_tf]),
                ft.Row([self.save_btn, self.status_text], spacing=16),
            ],
            spacing=16,
            scroll=ft.ScrollMode.AUTO,
            expand=True,
        )
        self.view = ft.Container(content=content, expand=True, padding=20)

    def refresh(self) -> None:
        try:
            count = self.app.work_log_queue.count_pending()
        except StorageError:
            self.status_text.value = "Offline storage unavailable"
            return
        self.status_text.value = f"Work logs waiting to sync: {count}" if count else ""

    def build_payload(self) -> dict:
        return new_work_log(
            user_id=self.app.state_store.load().user_id,
            field_id=(self.field_tf.value or "").strip(),
            task_name=self.task_dd.value,
            description=(self.description_tf.value or "").strip(),
            worker_name=(self.worker_tf.value or "").strip() or None,
            completion_date=coerce_datetime(self.date_tf.value),
        )

    def save(self, _):
        if not (self.field_tf.value or "").strip():
            self.status_text.value = "Field ID is required"
            self.app.page.update()
            return
        try:
            entry_id = self.app.work_log_queue.enqueue(self.build_payload())
        except StorageError as exc:
            logger.error("Could not save work log offline: %s", exc)
            self.app.notifier.show(SAVE_FAILED_MESSAGE, "error")
            return

        self.description_tf.value = ""
        if self.app.monitor.online:
            self.app.request_work_log_sync()
        else:
            self.app.notifier.show(
                "Work log saved offline. It will sync when you are back online.",
                "info",
                {"auto_close": True, "timeout": 3000},
            )
        self.status_text.value = f"Saved #{entry_id}"
        self.refresh()
        self.app.page.update()

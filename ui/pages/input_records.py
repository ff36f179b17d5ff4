# ui/pages/input_records.py
from __future__ import annotations

import logging
from datetime import date

import flet as ft

from core.errors import StorageError
from core.varieties import VARIETY_HARVEST_MONTHS
from datetime_utils import coerce_datetime, utc_now

logger = logging.getLogger("canemap.ui")

SAVE_FAILED_MESSAGE = "Could not save record offline."

TASK_TYPES = [
    "Planting Operation",
    "Replanting / Gap Filling",
    "Fertilizer Application",
    "Weeding",
    "Irrigation",
    "Pest Control",
    "Harvesting",
    "Others",
]

GROWTH_STAGES = [
    "Germination",
    "Tillering",
    "Grand Growth",
    "Maturation",
    "Ripening",
    "Harvest-ready",
]


class InputRecordsPage:
    """Capture form; the only page usable while offline."""

    name = "input_records"

    def __init__(self, app):
        self.app = app

        self.field_tf = ft.TextField(label="Field ID", width=220)
        self.task_dd = ft.Dropdown(
            label="Task type",
            width=260,
            options=[ft.dropdown.Option(t) for t in TASK_TYPES],
            value=TASK_TYPES[0],
        )
        self.operation_tf = ft.TextField(label="Operation", width=260)
        self.stage_dd = ft.Dropdown(
            label="Growth stage",
            width=200,
            options=[ft.dropdown.Option(s) for s in GROWTH_STAGES],
            value=GROWTH_STAGES[0],
        )
        self.variety_dd = ft.Dropdown(
            label="Variety",
            width=200,
            options=[ft.dropdown.Option(v) for v in sorted(VARIETY_HARVEST_MONTHS)],
        )
        self.date_tf = ft.TextField(
            label="Date (YYYY-MM-DD)",
            width=200,
            value=date.today().isoformat(),
        )
        self.notes_tf = ft.TextField(label="Notes", multiline=True, min_lines=2, expand=True)
        self.items_tf = ft.TextField(
            label="Bought items (one per line: name, qty)",
            multiline=True,
            min_lines=2,
            expand=True,
        )
        self.status_text = ft.Text("")
        self.save_btn = ft.ElevatedButton("Save record", icon=ft.Icons.SAVE, on_click=self.save)

        content = ft.Column(
            controls=[
                ft.Text("Input Records", size=24, weight=ft.FontWeight.BOLD),
                ft.Row([self.field_tf, self.task_dd, self.operation_tf], wrap=True, spacing=12),
                ft.Row([self.stage_dd, self.variety_dd, self.date_tf], wrap=True, spacing=12),
                ft.Row([self.notes_tf]),
                ft.Row([self.items_tf]),
                ft.Row([self.save_btn, self.status_text], spacing=16),
            ],
            spacing=16,
            scroll=ft.ScrollMode.AUTO,
            expand=True,
        )
        self.view = ft.Container(content=content, expand=True, padding=20)

    def refresh(self) -> None:
        try:
            count = self.app.queue.count_pending()
        except StorageError:
            self.status_text.value = "Offline storage unavailable"
            return
        self.status_text.value = f"Waiting to sync: {count}" if count else ""

    def _bought_items(self) -> list[dict]:
        items = []
        for line in (self.items_tf.value or "").splitlines():
            if not line.strip():
                continue
            name, _, qty = line.partition(",")
            item = {"name": name.strip()}
            if qty.strip():
                try:
                    item["quantity"] = float(qty.strip())
                except ValueError:
                    item["quantity"] = qty.strip()
            items.append(item)
        return items

    def build_payload(self) -> dict:
        record_date = coerce_datetime(self.date_tf.value) or utc_now()
        offline = not self.app.monitor.online
        payload = {
            "fieldId": (self.field_tf.value or "").strip(),
            "taskType": self.task_dd.value,
            "operation": (self.operation_tf.value or "").strip() or self.task_dd.value,
            "status": self.stage_dd.value,
            "userId": self.app.state_store.load().user_id,
            "recordDate": record_date,
            "createdAt": utc_now(),
            "data": {
                "startDate": record_date,
                "variety": self.variety_dd.value,
                "notes": (self.notes_tf.value or "").strip(),
            },
        }
        if offline:
            payload["recordStatus"] = "Pending Sync"
            payload["_originalStatus"] = "Completed"
        else:
            payload["recordStatus"] = "Completed"
        items = self._bought_items()
        if items:
            payload["boughtItems"] = items
        return payload

    def save(self, _):
        if not (self.field_tf.value or "").strip():
            self.status_text.value = "Field ID is required"
            self.app.page.update()
            return
        try:
            entry_id = self.app.queue.enqueue(self.build_payload())
        except StorageError as exc:
            logger.error("Could not save record offline: %s", exc)
            self.app.notifier.show(SAVE_FAILED_MESSAGE, "error")
            return

        self.operation_tf.value = ""
        self.notes_tf.value = ""
        self.items_tf.value = ""
        if self.app.monitor.online:
            self.app.request_sync()
        else:
            self.app.notifier.show(
                "Record saved offline. It will sync when you are back online.",
                "info",
                {"auto_close": True, "timeout": 3000},
            )
        self.status_text.value = f"Saved #{entry_id}"
        self.refresh()
        self.app.page.update()

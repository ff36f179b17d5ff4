# ui/pages/sync_status.py
from datetime import timezone
import flet as ft


class SyncStatusPage:
    name = "sync"

    def __init__(self, app):
        self.app = app

        self.queue_text = ft.Text()
        self.state_text = ft.Text()
        self.last_pass_text = ft.Text()
        self.lease_text = ft.Text()
        self.user_text = ft.Text()

        self.user_tf = ft.TextField(label="Handler ID", width=240)
        self.sign_in_btn = ft.ElevatedButton("Sign in", icon=ft.Icons.LOGIN, on_click=self.sign_in)
        self.sign_out_btn = ft.OutlinedButton("Sign out", icon=ft.Icons.LOGOUT, on_click=self.sign_out)
        self.sync_btn = ft.ElevatedButton("Sync now", icon=ft.Icons.SYNC, on_click=self.sync_now)
        self.refresh_log_btn = ft.TextButton("Refresh log", icon=ft.Icons.ARTICLE, on_click=self.refresh_log)

        self.log_view = ft.Text("", selectable=True)

        content = ft.Column(
            controls=[
                ft.Text("Sync", size=24, weight=ft.FontWeight.BOLD),
                self.user_text,
                ft.Row([self.user_tf, self.sign_in_btn, self.sign_out_btn], spacing=12),
                self.queue_text,
                self.state_text,
                self.last_pass_text,
                self.lease_text,
                ft.Row([self.sync_btn], spacing=12),
                ft.Column([
                    ft.Text("Sync log", size=18, weight=ft.FontWeight.W_600),
                    ft.Container(self.log_view, height=220, padding=10, bgcolor="#F1F5F9"),
                    self.refresh_log_btn,
                ], spacing=8),
            ],
            expand=True,
            spacing=16,
            scroll=ft.ScrollMode.AUTO,
        )

        self.view = ft.Container(content=content, expand=True, padding=20)

    def _format_dt(self, value) -> str:
        if not value:
            return "-"
        if getattr(value, "tzinfo", None) is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")

    def refresh(self):
        status = self.app.sync_status() or {}
        size = status.get("queueSize")
        self.queue_text.value = "Pending records: " + ("unavailable" if size is None else str(size))
        logs = status.get("workLogQueueSize")
        if logs:
            self.queue_text.value += f", work logs: {logs}"
        online = "online" if self.app.monitor.online else "offline"
        syncing = ", syncing" if status.get("syncing") else ""
        self.state_text.value = f"Connection: {online}{syncing}"
        last = "Last sync pass: " + self._format_dt(status.get("lastPassAt"))
        if status.get("lastSuccess") is not None:
            last += f" ({status['lastSuccess']} synced, {status['lastFailed']} failed)"
        self.last_pass_text.value = last
        holder = status.get("leaseHolder")
        self.lease_text.value = f"Sync lease: {holder}" if holder else "Sync lease: free"
        user_id = self.app.state_store.load().user_id
        self.user_text.value = f"Signed in as: {user_id}" if user_id else "Not signed in"
        self.log_view.value = self.app.read_sync_log()

    def sign_in(self, _):
        user_id = (self.user_tf.value or "").strip()
        if not user_id:
            self.user_text.value = "Enter a handler ID"
            self.app.page.update()
            return
        try:
            self.app.auth.sign_in(user_id)
        except (OSError, RuntimeError) as e:
            self.user_text.value = f"Sign-in failed: {e}"
            self.app.page.update()
            return
        self.refresh()
        self.app.page.update()
        self.app.request_sync()

    def sign_out(self, _):
        self.app.auth.sign_out()
        self.refresh()
        self.app.page.update()

    def sync_now(self, _):
        self.app.request_sync(after=self._after_sync)
        self.app.request_work_log_sync(after=self._after_sync)

    def _after_sync(self):
        self.refresh()
        self.app.page.update()

    def refresh_log(self, _):
        self.log_view.value = self.app.read_sync_log()
        self.app.page.update()

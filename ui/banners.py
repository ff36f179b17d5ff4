from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import flet as ft

from core.settings import UI
from services.notifications import KINDS, OFFLINE_BANNER, Notifier


_TOAST_COLORS = {
    "info": UI.theme.toast_info,
    "success": UI.theme.toast_success,
    "warning": UI.theme.toast_warning,
    "error": UI.theme.toast_error,
}


class FletNotifier(Notifier):
    """Top banner plus SnackBar toasts.

    Only one banner is rendered; the sync banner wins over the offline one.
    """

    def __init__(self, page: ft.Page):
        self.page = page
        self._banners: Dict[str, str] = {}
        self._dismissed: set[str] = set()

        self.icon = ft.Icon(ft.Icons.WIFI_OFF, color=UI.theme.banner_text, size=18)
        self.spinner = ft.ProgressRing(width=16, height=16, stroke_width=2, color=UI.theme.banner_text)
        self.text = ft.Text("", color=UI.theme.banner_text, weight=ft.FontWeight.W_500, expand=True)
        self.close_btn = ft.IconButton(
            icon=ft.Icons.CLOSE,
            icon_color=UI.theme.banner_text,
            tooltip="Dismiss",
            on_click=self._dismiss,
        )
        self.view = ft.Container(
            content=ft.Row(
                [self.icon, self.spinner, self.text, self.close_btn],
                spacing=12,
                vertical_alignment=ft.CrossAxisAlignment.CENTER,
            ),
            padding=ft.padding.symmetric(horizontal=16, vertical=8),
            visible=False,
        )

    # ------------------------------------------------------------------
    def show(self, message: str, kind: str = "info", options: Optional[Mapping[str, Any]] = None) -> None:
        if kind not in KINDS:
            kind = "info"
        opts = dict(options or {})
        snack = ft.SnackBar(
            ft.Text(message, color=UI.theme.banner_text),
            bgcolor=_TOAST_COLORS[kind],
            duration=int(opts.get("timeout", 3000)) if opts.get("auto_close", True) else 60_000,
        )
        try:
            self.page.open(snack)
        except RuntimeError:
            # page already closed
            pass

    def show_banner(self, name: str, text: str) -> None:
        self._banners[name] = text
        self._dismissed.discard(name)
        self._render()

    def hide_banner(self, name: str) -> None:
        self._banners.pop(name, None)
        self._dismissed.discard(name)
        self._render()

    # ------------------------------------------------------------------
    def _active(self) -> Optional[str]:
        # Any sync banner wins over the offline one.
        for name in self._banners:
            if name != OFFLINE_BANNER:
                return name
        if OFFLINE_BANNER in self._banners and OFFLINE_BANNER not in self._dismissed:
            return OFFLINE_BANNER
        return None

    def _render(self) -> None:
        active = self._active()
        if active is None:
            self.view.visible = False
        else:
            syncing = active != OFFLINE_BANNER
            self.text.value = self._banners[active]
            self.view.bgcolor = UI.theme.sync_banner_bg if syncing else UI.theme.offline_banner_bg
            self.spinner.visible = syncing
            self.icon.visible = not syncing
            self.close_btn.visible = not syncing
            self.view.visible = True
        self._update()

    def _dismiss(self, _):
        self._dismissed.add(OFFLINE_BANNER)
        self._render()

    def _update(self) -> None:
        try:
            self.page.update()
        except RuntimeError:
            # page already closed
            pass


__all__ = ["FletNotifier"]

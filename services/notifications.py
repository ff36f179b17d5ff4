"""Notification surface used by the connectivity monitor and the sync engine."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from core.settings import OFFLINE_SYNC


KINDS = ("info", "success", "warning", "error")

OFFLINE_BANNER = "offline"
SYNC_BANNER = "sync"

OFFLINE_TEXT_CAPTURE_PAGE = "You are offline. Offline mode is available only on this page."
OFFLINE_TEXT_OTHER_PAGE = "Offline mode: You can only use Input Records while offline."
SYNC_TEXT = "Syncing pending input records..."
WORK_LOG_SYNC_BANNER = "work_log_sync"
WORK_LOG_SYNC_TEXT = "Syncing pending work logs..."


def offline_banner_text(on_capture_page: bool) -> str:
    return OFFLINE_TEXT_CAPTURE_PAGE if on_capture_page else OFFLINE_TEXT_OTHER_PAGE


def success_message(count: int, noun: str = "input record") -> str:
    if count == 1:
        return f"{noun[:1].upper()}{noun[1:]} synced successfully!"
    return f"{count} {noun}(s) synced successfully!"


def failure_message(count: int, noun: str = "record") -> str:
    return f"{count} {noun}(s) failed to sync. Will retry on next connection."


PASS_FAILED_MESSAGE = "Sync failed. Will retry later."


def toast_options(kind: str) -> Dict[str, Any]:
    timeouts = {
        "success": OFFLINE_SYNC.success_toast_timeout_ms,
        "warning": OFFLINE_SYNC.warning_toast_timeout_ms,
        "error": OFFLINE_SYNC.error_toast_timeout_ms,
    }
    return {"auto_close": True, "timeout": timeouts.get(kind, OFFLINE_SYNC.success_toast_timeout_ms)}


class Notifier:
    """Toasts plus named banners.

    The sync banner has priority: while it is visible the offline banner is
    hidden, and it comes back when the sync banner goes away if the device is
    still offline.
    """

    def show(self, message: str, kind: str = "info", options: Optional[Mapping[str, Any]] = None) -> None:
        raise NotImplementedError

    def show_banner(self, name: str, text: str) -> None:
        raise NotImplementedError

    def hide_banner(self, name: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Headless notifier: writes to the log and remembers what is visible."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("canemap.notify")
        self.messages: list[tuple[str, str]] = []
        self.banners: Dict[str, str] = {}

    def show(self, message: str, kind: str = "info", options: Optional[Mapping[str, Any]] = None) -> None:
        if kind not in KINDS:
            kind = "info"
        self.messages.append((kind, message))
        level = logging.WARNING if kind in ("warning", "error") else logging.INFO
        self.logger.log(level, "[%s] %s", kind, message)

    def show_banner(self, name: str, text: str) -> None:
        self.banners[name] = text

    def hide_banner(self, name: str) -> None:
        self.banners.pop(name, None)


__all__ = [
    "KINDS",
    "OFFLINE_BANNER",
    "SYNC_BANNER",
    "SYNC_TEXT",
    "WORK_LOG_SYNC_BANNER",
    "WORK_LOG_SYNC_TEXT",
    "PASS_FAILED_MESSAGE",
    "Notifier",
    "LoggingNotifier",
    "offline_banner_text",
    "success_message",
    "failure_message",
    "toast_options",
]

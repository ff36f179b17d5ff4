"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "CaneMap"


DATA_DIR = get_default_data_dir(APP_NAME)
STORAGE_DIR = DATA_DIR / "storage"
SECRETS_DIR = DATA_DIR / "secrets"
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, STORAGE_DIR, SECRETS_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "input_records.db"
TOKEN_PATH = DATA_DIR / "token.json"
CLIENT_SECRET_PATH = SECRETS_DIR / "client_secret.json"
SESSION_STATE_PATH = STORAGE_DIR / "session_state.json"
DEVICE_ID_PATH = DATA_DIR / "device_id.txt"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class ThemeColors:
    offline_banner_bg: str = "#D97706"
    sync_banner_bg: str = "#2563EB"
    banner_text: str = "#FFFFFF"
    toast_info: str = "#2563EB"
    toast_success: str = "#16A34A"
    toast_warning: str = "#D97706"
    toast_error: str = "#DC2626"
    safe_surface_bg: str = "#F1F5F9"


@dataclass(frozen=True)
class UISettings:
    app_title: str = APP_NAME
    theme_mode: str = "system"
    color_scheme_seed: str = "#15803D"
    window_min_width: int = 900
    window_min_height: int = 600
    theme: ThemeColors = ThemeColors()


UI = UISettings()


@dataclass(frozen=True)
class OfflineSyncSettings:
    enabled: bool = True
    # Page that permits offline capture; reconnecting auto-syncs only if the
    # handler was last active here.
    capture_page: str = "input_records"
    lease_name: str = "input-records-sync"
    work_log_lease_name: str = "work-logs-sync"
    lease_ttl_sec: int = 300
    probe_host: str = "firestore.googleapis.com"
    probe_port: int = 443
    probe_timeout_sec: float = 3.0
    watch_interval_sec: int = 10
    success_toast_timeout_ms: int = 3000
    warning_toast_timeout_ms: int = 4000
    error_toast_timeout_ms: int = 3000


OFFLINE_SYNC = OfflineSyncSettings()


@dataclass(frozen=True)
class FirestoreSettings:
    project_id: str = os.environ.get("CANEMAP_FIRESTORE_PROJECT", "")
    database: str = "(default)"
    records_collection: str = "records"
    fields_collection: str = "fields"
    bought_items_collection: str = "bought_items"
    vehicle_updates_collection: str = "vehicle_updates"
    tasks_collection: str = "tasks"
    notifications_collection: str = "notifications"
    scopes: tuple[str, ...] = (
        "https://www.googleapis.com/auth/datastore",
        "https://www.googleapis.com/auth/userinfo.email",
        "openid",
    )


FIRESTORE = FirestoreSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "STORAGE_DIR",
    "SECRETS_DIR",
    "LOG_DIR",
    "DB_PATH",
    "TOKEN_PATH",
    "CLIENT_SECRET_PATH",
    "SESSION_STATE_PATH",
    "DEVICE_ID_PATH",
    "SYNC_LOG_PATH",
    "UI",
    "OFFLINE_SYNC",
    "FIRESTORE",
    "get_default_data_dir",
]

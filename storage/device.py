"""Helpers for generating and storing a stable device identifier."""
from __future__ import annotations

import os
import uuid
from pathlib import Path

from core.settings import DEVICE_ID_PATH


def _read_existing(path: Path) -> str | None:
    try:
        if path.exists():
            value = path.read_text(encoding="utf-8").strip()
            if value:
                return value
    except OSError:
        return None
    return None


def _write_value(path: Path, value: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    try:
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def get_device_id(path: str | Path | None = None) -> str:
    """Return the identifier of this installation.

    It prefixes remote record ids so that queue ids from different devices
    never map to the same document.
    """

    target = Path(path or DEVICE_ID_PATH)
    existing = _read_existing(target)
    if existing:
        return existing

    new_id = uuid.uuid4().hex[:12].upper()
    try:
        _write_value(target, new_id)
    except OSError:
        # Not persisted; the next start generates another id.
        return new_id
    return new_id


def process_owner_id(device_id: str | None = None) -> str:
    """Lease owner token for the running process."""
    return f"{device_id or get_device_id()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


__all__ = ["get_device_id", "process_owner_id"]

"""JSON-backed session state shared by the connectivity monitor and the sync engine."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import SESSION_STATE_PATH


@dataclass
class SessionState:
    """Flags that must survive page reloads and restarts."""

    was_on_capture_page: bool = False
    user_id: Optional[str] = None


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


class SessionStateStore:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or SESSION_STATE_PATH)

    def load(self) -> SessionState:
        data = self._load()
        return SessionState(
            was_on_capture_page=bool(data.get("was_on_capture_page", False)),
            user_id=data.get("user_id") or None,
        )

    def save(self, state: SessionState) -> None:
        _ensure_parent(self.path)
        payload = json.dumps(asdict(state), ensure_ascii=False, indent=2, sort_keys=True)
        tmp = self.path.with_suffix(".tmp")
        try:
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.path)
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    pass

    def update(self, **changes: Any) -> SessionState:
        state = self.load()
        for key, value in changes.items():
            if hasattr(state, key):
                setattr(state, key, value)
        self.save(state)
        return state

    # ------------------------------------------------------------------
    def was_on_capture_page(self) -> bool:
        return self.load().was_on_capture_page

    def mark_capture_page(self) -> None:
        self.update(was_on_capture_page=True)

    def clear_capture_page(self) -> None:
        self.update(was_on_capture_page=False)

    def _load(self) -> Dict[str, Any]:
        return _load_raw(self.path)


__all__ = ["SessionState", "SessionStateStore"]

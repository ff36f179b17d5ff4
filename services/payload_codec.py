"""Conversion between in-memory record payloads and their queued JSON form.

Queued payloads must survive a round trip through ``json``. Two kinds of
values need special handling because the remote store treats them as typed
values rather than plain data:

* timestamps, stored as ``{"_type": "Timestamp", "seconds": s, "nanoseconds": n}``;
* the server-assigned timestamp placeholder, stored as
  ``{"_methodName": "serverTimestamp"}``.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Mapping

from datetime_utils import UTC, ensure_utc, midnight_utc


class _ServerTimestamp:
    """Placeholder replaced by the remote store's commit time."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

_TIMESTAMP_TAG = "Timestamp"
_SERVER_TIMESTAMP_METHOD = "serverTimestamp"


def encode_timestamp(value: datetime) -> dict:
    dt = ensure_utc(value)
    whole = int(dt.replace(microsecond=0).timestamp())
    return {"_type": _TIMESTAMP_TAG, "seconds": whole, "nanoseconds": dt.microsecond * 1000}


def decode_timestamp(value: Mapping[str, Any]) -> datetime:
    seconds = int(value.get("seconds") or 0)
    nanos = int(value.get("nanoseconds") or 0)
    dt = datetime.fromtimestamp(seconds, UTC)
    return dt.replace(microsecond=nanos // 1000)


def serialize(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return {"_methodName": _SERVER_TIMESTAMP_METHOD}
    if isinstance(value, datetime):
        return encode_timestamp(value)
    if isinstance(value, date):
        return encode_timestamp(midnight_utc(value))
    if isinstance(value, Mapping):
        return {str(key): serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    return value


def deserialize(value: Any) -> Any:
    if isinstance(value, list):
        return [deserialize(item) for item in value]
    if isinstance(value, dict):
        if value.get("_type") == _TIMESTAMP_TAG:
            return decode_timestamp(value)
        if value.get("_methodName") == _SERVER_TIMESTAMP_METHOD:
            return SERVER_TIMESTAMP
        return {key: deserialize(item) for key, item in value.items()}
    return value


def dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(serialize(payload), ensure_ascii=False, sort_keys=True)


def loads(raw: str) -> dict:
    """Parse a queued payload into its JSON form (placeholders still encoded)."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Queued payload is not a mapping")
    return data


__all__ = [
    "SERVER_TIMESTAMP",
    "serialize",
    "deserialize",
    "encode_timestamp",
    "decode_timestamp",
    "dumps",
    "loads",
]

"""Cloud Firestore client (REST v1) used as the remote record store."""

from __future__ import annotations

import base64
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from core.errors import RemoteWriteError
from core.settings import FIRESTORE
from datetime_utils import midnight_utc, parse_rfc3339, to_rfc3339_utc
from services.payload_codec import SERVER_TIMESTAMP
from services.remote_store import RemoteStore, join_path, new_document_id


logger = logging.getLogger("canemap.firestore")

_SIMPLE_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


def quote_field(name: str) -> str:
    if _SIMPLE_FIELD_RE.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": to_rfc3339_utc(value)}
    if isinstance(value, date):
        return {"timestampValue": to_rfc3339_utc(midnight_utc(value))}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (bytes, bytearray)):
        return {"bytesValue": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    raise TypeError(f"Unsupported Firestore value: {type(value).__name__}")


def encode_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key): encode_value(item) for key, item in fields.items()}


def decode_value(value: Mapping[str, Any]) -> Any:
    """Inverse of :func:`encode_value` for the value types documents carry."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return parse_rfc3339(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields") or {})
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values") or []]
    raise ValueError(f"Unknown Firestore value: {sorted(value)}")


def decode_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(item) for key, item in fields.items()}


def split_server_timestamps(
    fields: Mapping[str, Any], prefix: str = ""
) -> Tuple[Dict[str, Any], List[str]]:
    """Strip :data:`SERVER_TIMESTAMP` placeholders, returning them as field paths."""
    plain: Dict[str, Any] = {}
    transforms: List[str] = []
    for key, value in fields.items():
        path = f"{prefix}{quote_field(str(key))}"
        if value is SERVER_TIMESTAMP:
            transforms.append(path)
        elif isinstance(value, Mapping):
            nested, nested_transforms = split_server_timestamps(value, prefix=f"{path}.")
            plain[key] = nested
            transforms.extend(nested_transforms)
        else:
            plain[key] = value
    return plain, transforms


class FirestoreStore(RemoteStore):
    def __init__(
        self,
        auth,
        project_id: Optional[str] = None,
        database: Optional[str] = None,
    ) -> None:
        self.auth = auth
        self.project_id = project_id or FIRESTORE.project_id
        self.database = database or FIRESTORE.database
        self.service = None

    # ------------------------------------------------------------------
    # Initialisation helpers
    @property
    def database_path(self) -> str:
        return f"projects/{self.project_id}/databases/{self.database}"

    @property
    def documents_root(self) -> str:
        return f"{self.database_path}/documents"

    def connect(self) -> None:
        if self.service is not None:
            return
        if not self.project_id:
            raise RemoteWriteError("Firestore project id is not configured")
        creds = None
        if hasattr(self.auth, "get_credentials") and callable(self.auth.get_credentials):
            creds = self.auth.get_credentials()
        if not creds:
            raise RemoteWriteError("Google credentials are not available", status=401)
        self.service = build("firestore", "v1", credentials=creds, cache_discovery=False)

    # ------------------------------------------------------------------
    # RemoteStore
    def set_document(self, path: str, fields: Mapping[str, Any]) -> None:
        self._commit([self._write(path, fields)])

    def add_document(self, collection_path: str, fields: Mapping[str, Any]) -> str:
        doc_id = new_document_id()
        write = self._write(join_path(collection_path, doc_id), fields)
        write["currentDocument"] = {"exists": False}
        self._commit([write])
        return doc_id

    def update_document(self, path: str, fields: Mapping[str, Any]) -> None:
        write = self._write(path, fields)
        plain, _ = split_server_timestamps(fields)
        write["updateMask"] = {"fieldPaths": [quote_field(str(key)) for key in plain]}
        write["currentDocument"] = {"exists": True}
        self._commit([write])

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        name = f"{self.documents_root}/{path.strip('/')}"
        try:
            doc = self._execute(
                lambda: self.service.projects().databases().documents().get(name=name)
            )
        except RemoteWriteError as exc:
            if exc.status == 404:
                return None
            raise
        return decode_fields(doc.get("fields") or {})

    # ------------------------------------------------------------------
    def _write(self, path: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        plain, transforms = split_server_timestamps(fields)
        write: Dict[str, Any] = {
            "update": {
                "name": f"{self.documents_root}/{path.strip('/')}",
                "fields": encode_fields(plain),
            }
        }
        if transforms:
            write["updateTransforms"] = [
                {"fieldPath": field_path, "setToServerValue": "REQUEST_TIME"}
                for field_path in transforms
            ]
        return write

    def _commit(self, writes: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._execute(
            lambda: self.service.projects()
            .databases()
            .documents()
            .commit(database=self.database_path, body={"writes": writes})
        )

    def _execute(self, make_request) -> Dict[str, Any]:
        try:
            self.connect()
            return make_request().execute()
        except HttpError as exc:
            status = getattr(exc, "resp", None) and getattr(exc.resp, "status", None)
            logger.warning("Firestore request failed with %s", status)
            raise RemoteWriteError(f"Firestore request failed: {exc}", status=int(status or 0)) from exc
        except (GoogleAuthError, HttpLib2Error, OSError) as exc:
            # httplib2 raises ServerNotFoundError when DNS fails while offline.
            logger.warning("Firestore transport error: %s", exc)
            raise RemoteWriteError(f"Firestore unreachable: {exc}") from exc


__all__ = [
    "FirestoreStore",
    "encode_value",
    "encode_fields",
    "decode_value",
    "decode_fields",
    "split_server_timestamps",
    "quote_field",
]

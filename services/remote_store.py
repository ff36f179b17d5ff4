"""Remote document store capabilities used by the sync engine."""

from __future__ import annotations

import copy
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from core.errors import RemoteWriteError
from datetime_utils import utc_now
from services.payload_codec import SERVER_TIMESTAMP


def new_document_id() -> str:
    """Random 20-character id in the style of client-generated document ids."""
    return uuid.uuid4().hex[:20]


def join_path(*parts: str) -> str:
    return "/".join(str(part).strip("/") for part in parts if part)


class RemoteStore:
    """Capabilities the sync engine needs from the system of record.

    ``fields`` may contain :data:`SERVER_TIMESTAMP` anywhere; implementations
    replace it with their own commit time.
    """

    def set_document(self, path: str, fields: Mapping[str, Any]) -> None:
        """Create or overwrite the document at ``collection/.../id``."""
        raise NotImplementedError

    def add_document(self, collection_path: str, fields: Mapping[str, Any]) -> str:
        """Create a document with a generated id and return that id."""
        raise NotImplementedError

    def update_document(self, path: str, fields: Mapping[str, Any]) -> None:
        """Update the given top-level fields of an existing document."""
        raise NotImplementedError

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        """Return the document fields, or ``None`` if it does not exist."""
        raise NotImplementedError


def _resolve_server_values(value: Any, now) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Mapping):
        return {key: _resolve_server_values(item, now) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_server_values(item, now) for item in value]
    return copy.deepcopy(value)


class InMemoryStore(RemoteStore):
    """Dictionary-backed store used for local runs without a project configured."""

    def __init__(self) -> None:
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.writes: List[Tuple[str, str]] = []

    def set_document(self, path: str, fields: Mapping[str, Any]) -> None:
        self.documents[path] = _resolve_server_values(dict(fields), utc_now())
        self.writes.append(("set", path))

    def add_document(self, collection_path: str, fields: Mapping[str, Any]) -> str:
        doc_id = new_document_id()
        self.set_document(join_path(collection_path, doc_id), fields)
        return doc_id

    def update_document(self, path: str, fields: Mapping[str, Any]) -> None:
        if path not in self.documents:
            raise RemoteWriteError(f"Document {path} does not exist", status=404)
        self.documents[path].update(_resolve_server_values(dict(fields), utc_now()))
        self.writes.append(("update", path))

    def collection(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        prefix = collection_path.strip("/") + "/"
        depth = prefix.count("/")
        return {
            path: data
            for path, data in self.documents.items()
            if path.startswith(prefix) and path.count("/") == depth
        }

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        doc = self.documents.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        return self.documents.get(path)


__all__ = ["RemoteStore", "InMemoryStore", "new_document_id", "join_path"]

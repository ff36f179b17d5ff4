"""Field-level updates implied by a synced input record."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from core.settings import FIRESTORE
from core.varieties import (
    PLANTING_DATE_KEYS,
    PLANTING_TASK_TYPES,
    expected_harvest_range,
)
from datetime_utils import coerce_datetime
from services.remote_store import join_path


def is_planting_record(record: Mapping[str, Any]) -> bool:
    return record.get("status") == "Germination" and record.get("taskType") in PLANTING_TASK_TYPES


def planting_details(record: Mapping[str, Any]) -> Tuple[Any, Optional[str]]:
    details = record.get("data") or {}
    if not isinstance(details, Mapping):
        return None, None
    planting = next((details.get(key) for key in PLANTING_DATE_KEYS if details.get(key)), None)
    return planting, details.get("variety") or None


def harvest_prediction_update(record: Mapping[str, Any]) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Return ``(field_path, fields)`` for the predicted-harvest update, if any.

    Only planting and replanting records in the Germination stage carry a
    prediction; the earliest date of the variety's harvest window is stored.
    """
    if not is_planting_record(record):
        return None
    planting_raw, variety = planting_details(record)
    if not planting_raw or not variety:
        return None
    planting = coerce_datetime(planting_raw)
    if planting is None:
        raise ValueError(f"Unrecognised planting date: {planting_raw!r}")
    field_id = record.get("fieldId")
    if not field_id:
        raise ValueError("Planting record has no fieldId")

    earliest, _latest = expected_harvest_range(planting, variety)
    path = join_path(FIRESTORE.fields_collection, str(field_id))
    return path, {
        "plantingDate": planting,
        "sugarcane_variety": variety,
        "expectedHarvestDate": earliest,
        "currentGrowthStage": "Germination",
        "status": "active",
    }


__all__ = ["harvest_prediction_update", "is_planting_record", "planting_details"]

"""Sugarcane variety harvest windows and predicted harvest dates."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Optional, Tuple

# Harvest window per variety in months after planting (min, max).
VARIETY_HARVEST_MONTHS: Dict[str, Tuple[float, float]] = {
    "K 88-65": (12, 14),
    "K 88-87": (12, 14),
    "PS 1": (11, 12),
    "VMC 84-947": (11, 12),
    "PS 2": (9, 10),
    "VMC 88-354": (9, 10),
    "PS 3": (10, 11),
    "VMC 84-524": (10, 11),
    "CADP Sc1": (10, 11),
    "PS 4": (10, 12),
    "VMC 95-152": (10, 12),
    "PS 5": (10, 12),
    "VMC 95-09": (10, 12),
    "PSR 2000-161": (11, 12),
    "PSR 2000-343": (11, 11.5),
    "PSR 2000-34": (11, 12),
    "PSR 97-41": (11, 11),
    "PSR 97-45": (10, 11),
    "Ps 862": (10, 12),
    "VMC 71-39": (10, 12),
    "VMC 84-549": (10, 10),
    "VMC 86-550": (11, 12),
    "VMC 87-599": (10, 12),
    "VMC 87-95": (10, 11),
}

AVERAGE_DAYS_PER_MONTH = 30.44
DEFAULT_HARVEST_DAYS: Tuple[int, int] = (305, 365)

PLANTING_TASK_TYPES = frozenset({"Planting Operation", "Replanting / Gap Filling"})
PLANTING_DATE_KEYS = ("startDate", "plantingDate", "replantingDate", "date")


def harvest_days_range(variety: Optional[str]) -> Tuple[int, int]:
    """Return ``(min_days, max_days)`` for ``variety``; unknown ones use the default window."""
    months = VARIETY_HARVEST_MONTHS.get((variety or "").strip())
    if months is None:
        return DEFAULT_HARVEST_DAYS
    low, high = months
    return round(low * AVERAGE_DAYS_PER_MONTH), round(high * AVERAGE_DAYS_PER_MONTH)


def expected_harvest_range(
    planting: date | datetime, variety: Optional[str]
) -> Tuple[datetime, datetime]:
    if not isinstance(planting, datetime):
        planting = datetime(planting.year, planting.month, planting.day)
    low, high = harvest_days_range(variety)
    return planting + timedelta(days=low), planting + timedelta(days=high)


def is_known_variety(variety: Optional[str]) -> bool:
    return (variety or "").strip() in VARIETY_HARVEST_MONTHS


__all__ = [
    "VARIETY_HARVEST_MONTHS",
    "DEFAULT_HARVEST_DAYS",
    "PLANTING_TASK_TYPES",
    "PLANTING_DATE_KEYS",
    "harvest_days_range",
    "expected_harvest_range",
    "is_known_variety",
]

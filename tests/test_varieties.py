from datetime import date, datetime, timedelta, timezone

import pytest

from core.varieties import (
    DEFAULT_HARVEST_DAYS,
    expected_harvest_range,
    harvest_days_range,
    is_known_variety,
)
from services.field_updates import harvest_prediction_update, is_planting_record


def test_known_variety_days():
    assert harvest_days_range("PS 2") == (274, 304)
    assert harvest_days_range("K 88-65") == (365, 426)
    assert harvest_days_range(" PS 2 ") == (274, 304)


def test_unknown_variety_uses_default_window():
    assert harvest_days_range("Unknown") == DEFAULT_HARVEST_DAYS
    assert harvest_days_range(None) == (305, 365)
    assert is_known_variety("PS 1")
    assert not is_known_variety("PS 99")


def test_expected_harvest_range_from_date():
    earliest, latest = expected_harvest_range(date(2024, 1, 1), "PS 2")
    assert earliest == datetime(2024, 1, 1) + timedelta(days=274)
    assert latest == datetime(2024, 1, 1) + timedelta(days=304)


def _planting(**overrides):
    record = {
        "fieldId": "F1",
        "taskType": "Replanting / Gap Filling",
        "status": "Germination",
        "data": {"replantingDate": "2024-03-10", "variety": "VMC 84-549"},
    }
    record.update(overrides)
    return record


def test_harvest_update_for_planting_record():
    path, fields = harvest_prediction_update(_planting())
    planted = datetime(2024, 3, 10, tzinfo=timezone.utc)
    assert path == "fields/F1"
    assert fields["plantingDate"] == planted
    assert fields["expectedHarvestDate"] == planted + timedelta(days=304)
    assert fields["sugarcane_variety"] == "VMC 84-549"
    assert fields["status"] == "active"


@pytest.mark.parametrize(
    "overrides",
    [
        {"taskType": "Weeding"},
        {"status": "Tillering"},
        {"data": {"variety": "PS 1"}},
        {"data": {"startDate": "2024-03-10"}},
    ],
)
def test_no_update_for_other_records(overrides):
    assert harvest_prediction_update(_planting(**overrides)) is None


def test_unparseable_planting_date_raises():
    with pytest.raises(ValueError):
        harvest_prediction_update(_planting(data={"startDate": "garbage", "variety": "PS 1"}))


def test_is_planting_record():
    assert is_planting_record({"status": "Germination", "taskType": "Planting Operation"})
    assert not is_planting_record({"status": "Germination", "taskType": "Harvesting"})

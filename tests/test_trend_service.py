import sys
from datetime import date
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.models.record import normalize
from app.services.trend_service import weight_series

TODAY = date(2024, 6, 30)


def _records():
    raw = {
        "2023-06-01": {"weights": {"morning": {"value": 70.0}}},
        "2024-01-15": {"weights": {"morning": {"value": 68.0}}},
        "2024-05-20": {"weights": {"morning": {"value": 66.5}}},
        "2024-06-10": {"weights": {"morning": {"value": 65.9}}},
        "2024-06-11": {"weights": {"morning": {"value": ""}}},
        "2024-06-12": {"weights": {"evening": {"value": 66.0}}},
        "2024-06-13": {"weights": {"morning": {"value": 0}}},
        "2024-06-29": {"weights": {"morning": {"value": 65.2}}},
    }
    return {key: normalize(value) for key, value in raw.items()}


def test_one_month_keeps_recent_morning_weights():
    df = weight_series(_records(), "1month", today=TODAY)
    assert [d.strftime("%Y-%m-%d") for d in df["date"]] == ["2024-06-10", "2024-06-29"]
    assert list(df["weight_kg"]) == [65.9, 65.2]


@pytest.mark.parametrize(
    "range_key,count",
    [("3months", 3), ("6months", 4), ("1year", 4)],
)
def test_longer_ranges(range_key, count):
    assert len(weight_series(_records(), range_key, today=TODAY)) == count


def test_empty_records():
    df = weight_series({}, "1month", today=TODAY)
    assert list(df.columns) == ["date", "weight_kg"]
    assert df.empty


def test_unknown_range():
    with pytest.raises(ValueError):
        weight_series(_records(), "2weeks", today=TODAY)

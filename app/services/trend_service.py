# app/services/trend_service.py
from datetime import date
from typing import Mapping, Optional

import pandas as pd

from app.models.record import DailyRecord

RANGE_OFFSETS = {
    "1month": pd.DateOffset(months=1),
    "3months": pd.DateOffset(months=3),
    "6months": pd.DateOffset(months=6),
    "1year": pd.DateOffset(years=1),
}


def weight_series(
    records: Mapping[str, DailyRecord],
    range_key: str = "1month",
    today: Optional[date] = None,
) -> pd.DataFrame:
    """
    朝の体重の推移を返す（列: date, weight_kg）。

    期間は today から range_key 分さかのぼった日以降。未入力・0 の体重は含めない。
    """
    offset = RANGE_OFFSETS.get(range_key)
    if offset is None:
        raise ValueError(f"unknown range: {range_key!r}")
    start = pd.Timestamp(today or date.today()) - offset

    rows = []
    for date_key in sorted(records):
        morning = records[date_key].weights.morning
        if morning is None or not morning.value:
            continue
        rows.append({"date": pd.Timestamp(date_key), "weight_kg": morning.value})

    df = pd.DataFrame(rows, columns=["date", "weight_kg"])
    return df[df["date"] >= start].reset_index(drop=True)

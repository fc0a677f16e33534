# app/utils/date_utils.py
import calendar
from datetime import date, timedelta
from typing import List


def parse_date_key(date_key: str) -> date:
    """'YYYY-MM-DD' を date に変換（形式が違えば ValueError）"""
    if not isinstance(date_key, str) or len(date_key) != 10:
        raise ValueError(f"invalid date key: {date_key!r}")
    return date.fromisoformat(date_key)


def to_date_key(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def shift_date_key(date_key: str, days: int) -> str:
    """前日・翌日への移動"""
    return to_date_key(parse_date_key(date_key) + timedelta(days=days))


def parse_month(month: str) -> date:
    """'YYYY-MM' をその月の1日に変換"""
    try:
        year, mon = (int(part) for part in month.split("-"))
        return date(year, mon, 1)
    except (AttributeError, TypeError, ValueError):
        raise ValueError(f"invalid month: {month!r}")


def month_date_keys(month: str) -> List[str]:
    first = parse_month(month)
    days = calendar.monthrange(first.year, first.month)[1]
    return [to_date_key(first.replace(day=d)) for d in range(1, days + 1)]

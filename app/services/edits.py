# app/services/edits.py
"""ドラフトに適用するフォーム変更（dict 形式の記録を書き換える mutator）"""

from typing import Any, Callable, Dict

from app.models.record import (
    ALCOHOL_COUNT,
    MEAL_SLOTS,
    MENU_COUNT,
    OVERTIME_HOURS,
    OVERTIME_LEGACY,
    PHOTO_COUNT,
    WEIGHT_SLOTS,
)

Mutator = Callable[[Dict[str, Any]], None]

WEIGHT_FIELDS = ("value", "time", "option1", "option2", "note")
ALCOHOL_FIELDS = ("degree", "amount")


def _check(value: str, allowed, what: str) -> None:
    if value not in allowed:
        raise ValueError(f"unknown {what}: {value!r}")


def _index(index: Any, count: int, what: str) -> int:
    try:
        i = int(index)
    except (TypeError, ValueError):
        raise ValueError(f"invalid {what} index: {index!r}")
    if not 0 <= i < count:
        raise ValueError(f"{what} index out of range: {i}")
    return i


def set_weight(slot: str, field: str, value: Any) -> Mutator:
    _check(slot, WEIGHT_SLOTS, "weight slot")
    _check(field, WEIGHT_FIELDS, "weight field")

    def mutate(record: Dict[str, Any]) -> None:
        entry = dict(record["weights"].get(slot) or {})
        entry[field] = value
        record["weights"][slot] = entry

    return mutate


def set_menu(meal: str, index: Any, value: Any) -> Mutator:
    _check(meal, MEAL_SLOTS, "meal")
    i = _index(index, MENU_COUNT, "menu")

    def mutate(record: Dict[str, Any]) -> None:
        record["meals"][meal]["menus"][i] = value

    return mutate


def set_alcohol(meal: str, index: Any, field: str, value: Any) -> Mutator:
    _check(meal, MEAL_SLOTS, "meal")
    _check(field, ALCOHOL_FIELDS, "alcohol field")
    i = _index(index, ALCOHOL_COUNT, "alcohol")

    def mutate(record: Dict[str, Any]) -> None:
        record["meals"][meal]["alcohols"][i][field] = value

    return mutate


def set_photo(meal: str, index: Any, encoded: str | None) -> Mutator:
    _check(meal, MEAL_SLOTS, "meal")
    i = _index(index, PHOTO_COUNT, "photo")

    def mutate(record: Dict[str, Any]) -> None:
        record["meals"][meal]["photos"][i] = encoded

    return mutate


def remove_photo(meal: str, index: Any) -> Mutator:
    return set_photo(meal, index, None)


def set_overtime_type(kind: str) -> Mutator:
    """
    残業区分を変更する。

    custom 以外へ切り替えると固定時間が入り、custom の入力値は破棄される。
    custom へ切り替えたときは直前の hours を引き継ぐ。
    """
    kind = OVERTIME_LEGACY.get(kind, kind)
    _check(kind, OVERTIME_HOURS, "overtime type")

    def mutate(record: Dict[str, Any]) -> None:
        record["overtime"] = {"type": kind, "hours": record["overtime"].get("hours", 0.0)}

    return mutate


def set_overtime_hours(hours: Any) -> Mutator:
    # custom 以外では normalize で固定値に戻る
    def mutate(record: Dict[str, Any]) -> None:
        record["overtime"]["hours"] = hours

    return mutate


def set_diary(text: Any) -> Mutator:
    def mutate(record: Dict[str, Any]) -> None:
        record["diary"] = text

    return mutate


def field_mutator(path: str, value: Any) -> Mutator:
    """
    ドット区切りのパスから mutator を作る。

    例: ``weights.morning.value`` / ``meals.lunch.menus.2`` /
    ``meals.dinner.alcohols.0.degree`` / ``meals.morning.photos.1`` /
    ``overtime.type`` / ``overtime.hours`` / ``diary``
    """
    parts = path.split(".") if isinstance(path, str) else []
    head = parts[0] if parts else ""

    if head == "weights" and len(parts) == 3:
        return set_weight(parts[1], parts[2], value)
    if head == "meals" and len(parts) >= 4:
        meal, kind = parts[1], parts[2]
        if kind == "menus" and len(parts) == 4:
            return set_menu(meal, parts[3], value)
        if kind == "alcohols" and len(parts) == 5:
            return set_alcohol(meal, parts[3], parts[4], value)
        if kind == "photos" and len(parts) == 4:
            return set_photo(meal, parts[3], value or None)
    if parts == ["overtime", "type"]:
        return set_overtime_type(str(value))
    if parts == ["overtime", "hours"]:
        return set_overtime_hours(value)
    if parts == ["diary"]:
        return set_diary(value)
    raise ValueError(f"unknown field path: {path!r}")

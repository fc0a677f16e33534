# app/models/record.py
"""日次記録（DailyRecord）の形と既定値・正規化

Firestore 上の古いリビジョンの記録はフィールドが欠けていたり、
日本語ラベルのまま保存されていたりするため、読み込み時は必ず
``normalize`` を通して固定長の形に揃える。
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WEIGHT_SLOTS = ("morning", "evening", "other")
MEAL_SLOTS = ("morning", "lunch", "dinner")

MENU_COUNT = 5
ALCOHOL_COUNT = 5
PHOTO_COUNT = 2

MENU_MAX_LENGTH = 20
NOTE_MAX_LENGTH = 16
DIARY_MAX_LENGTH = 200

WEIGHT_OPTION1 = {"": "", "after_waking": "after_waking", "after_meal": "after_meal",
                  "起床後": "after_waking", "食後": "after_meal"}
WEIGHT_OPTION2 = {"": "", "after_urination": "after_urination",
                  "after_bowel_movement": "after_bowel_movement",
                  "排尿後": "after_urination", "排便後": "after_bowel_movement"}

# None は任意入力（hours を保持する）
OVERTIME_HOURS: Dict[str, Optional[float]] = {
    "0h": 0.0,
    "2h": 2.0,
    "3h": 3.0,
    "holiday": 0.0,
    "custom": None,
}
OVERTIME_LEGACY = {"0時間": "0h", "2時間": "2h", "3時間": "3h", "休日出勤": "holiday", "任意": "custom"}


def to_number(value: Any, default: float = 0.0) -> float:
    """フォーム入力を数値に変換。空は default、不正値・負数は 0"""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def _clip(value: Any, limit: int) -> str:
    if value is None:
        return ""
    return str(value)[:limit]


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return dict(value) if isinstance(value, dict) else {}


def _fixed(items: Any, count: int, filler: Any) -> List[Any]:
    values = list(items) if isinstance(items, (list, tuple)) else []
    values = values[:count]
    return values + [filler() if callable(filler) else filler for _ in range(count - len(values))]


class WeightEntry(BaseModel):
    value: Optional[float] = None   # kg
    time: str = ""                  # HHMM
    option1: str = ""
    option2: str = ""
    note: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return to_number(v)

    @field_validator("time", mode="before")
    @classmethod
    def _coerce_time(cls, v):
        return "" if v is None else str(v).replace(":", "").strip()[:4]

    @field_validator("option1", mode="before")
    @classmethod
    def _coerce_option1(cls, v):
        return WEIGHT_OPTION1.get(str(v) if v is not None else "", "")

    @field_validator("option2", mode="before")
    @classmethod
    def _coerce_option2(cls, v):
        return WEIGHT_OPTION2.get(str(v) if v is not None else "", "")

    @field_validator("note", mode="before")
    @classmethod
    def _coerce_note(cls, v):
        return _clip(v, NOTE_MAX_LENGTH)


class Alcohol(BaseModel):
    degree: float = 0.0   # %
    amount: float = 0.0   # ml

    @field_validator("degree", mode="before")
    @classmethod
    def _coerce_degree(cls, v):
        return min(to_number(v), 100.0)

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v):
        return to_number(v)


class MealEntry(BaseModel):
    menus: List[str] = Field(default_factory=lambda: [""] * MENU_COUNT)
    alcohols: List[Alcohol] = Field(default_factory=lambda: [Alcohol() for _ in range(ALCOHOL_COUNT)])
    photos: List[Optional[str]] = Field(default_factory=lambda: [None] * PHOTO_COUNT)

    @field_validator("menus", mode="before")
    @classmethod
    def _fixed_menus(cls, v):
        return [_clip(m, MENU_MAX_LENGTH) for m in _fixed(v, MENU_COUNT, "")]

    @field_validator("alcohols", mode="before")
    @classmethod
    def _fixed_alcohols(cls, v):
        return [a if isinstance(a, Alcohol) else _as_dict(a) for a in _fixed(v, ALCOHOL_COUNT, dict)]

    @field_validator("photos", mode="before")
    @classmethod
    def _fixed_photos(cls, v):
        return [p if isinstance(p, str) and p else None for p in _fixed(v, PHOTO_COUNT, None)]

    def pure_alcohol_ml(self) -> float:
        """純アルコール量 (ml) = Σ 度数/100 × 飲酒量"""
        return sum(a.degree / 100 * a.amount for a in self.alcohols)


class Weights(BaseModel):
    morning: Optional[WeightEntry] = None
    evening: Optional[WeightEntry] = None
    other: Optional[WeightEntry] = None

    @field_validator(*WEIGHT_SLOTS, mode="before")
    @classmethod
    def _coerce_slot(cls, v):
        # 旧リビジョンは未入力の枠を {} で保存していた
        if isinstance(v, WeightEntry):
            return v
        return _as_dict(v) or None


class Meals(BaseModel):
    morning: MealEntry = Field(default_factory=MealEntry)
    lunch: MealEntry = Field(default_factory=MealEntry)
    dinner: MealEntry = Field(default_factory=MealEntry)

    @field_validator(*MEAL_SLOTS, mode="before")
    @classmethod
    def _coerce_slot(cls, v):
        return v if isinstance(v, MealEntry) else _as_dict(v)


class Overtime(BaseModel):
    type: str = "0h"
    hours: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _derive_hours(cls, data):
        if isinstance(data, Overtime):
            return data
        data = _as_dict(data)
        kind = str(data.get("type") or "0h")
        kind = OVERTIME_LEGACY.get(kind, kind)
        if kind not in OVERTIME_HOURS:
            kind = "0h"
        fixed = OVERTIME_HOURS[kind]
        return {"type": kind, "hours": fixed if fixed is not None else to_number(data.get("hours"))}


class DailyRecord(BaseModel):
    # 旧リビジョンのトップレベル項目（独立した alcohols など）は捨てずに保持する
    model_config = ConfigDict(extra="allow")

    weights: Weights = Field(default_factory=Weights)
    meals: Meals = Field(default_factory=Meals)
    overtime: Overtime = Field(default_factory=Overtime)
    diary: str = ""

    @field_validator("weights", "meals", mode="before")
    @classmethod
    def _coerce_section(cls, v):
        return v if isinstance(v, BaseModel) else _as_dict(v)

    @field_validator("overtime", mode="before")
    @classmethod
    def _coerce_overtime(cls, v):
        return v if isinstance(v, Overtime) else _as_dict(v)

    @field_validator("diary", mode="before")
    @classmethod
    def _coerce_diary(cls, v):
        return _clip(v, DIARY_MAX_LENGTH)

    def is_empty(self) -> bool:
        return self == default_record()


def default_record() -> DailyRecord:
    """全枠が揃った空の記録"""
    return DailyRecord()


def normalize(raw: Any) -> DailyRecord:
    """欠けた枠・配列要素を既定値で補完する。normalize(normalize(x)) == normalize(x)"""
    if isinstance(raw, DailyRecord):
        raw = raw.model_dump()
    return DailyRecord.model_validate(_as_dict(raw))

# app/services/ui_state_service.py
"""最後に表示した月・選択日の保存と復元"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator

from app.config import settings
from app.utils.date_utils import parse_date_key, parse_month

logger = logging.getLogger(__name__)


class UiState(BaseModel):
    current_month: str   # YYYY-MM
    selected_date: str   # YYYY-MM-DD

    @field_validator("current_month")
    @classmethod
    def _check_month(cls, v):
        return parse_month(v).strftime("%Y-%m")

    @field_validator("selected_date")
    @classmethod
    def _check_date(cls, v):
        parse_date_key(v)
        return v

    @classmethod
    def today(cls, today: Optional[date] = None) -> "UiState":
        d = today or date.today()
        return cls(current_month=d.strftime("%Y-%m"), selected_date=d.isoformat())


def _state_path(path: str | Path | None) -> Path:
    return Path(path or settings.UI_STATE_PATH)


def load_ui_state(path: str | Path | None = None, today: Optional[date] = None) -> UiState:
    """保存が無い・壊れている場合は今日の日付を返す"""
    p = _state_path(path)
    if not p.exists():
        return UiState.today(today)
    try:
        return UiState.model_validate(json.loads(p.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning(f"[UI_STATE] ignoring unreadable state {p}: {e}")
        return UiState.today(today)


def save_ui_state(state: UiState, path: str | Path | None = None) -> UiState:
    p = _state_path(path)
    p.write_text(json.dumps(state.model_dump(), ensure_ascii=False), encoding="utf-8")
    return state

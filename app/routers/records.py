# app/routers/records.py

from fastapi import APIRouter, Header, File, UploadFile, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Dict
from app.errors import DraftClosedError, ImageDecodeError, PersistenceError
from app.services.draft_service import SaveOutcome
from app.services.journal import DailyJournal, get_journal
from app.utils.auth_utils import require_token, resolve_user_id
from app.utils.date_utils import parse_date_key
import logging

router = APIRouter(prefix="/records", tags=["records"])
logger = logging.getLogger(__name__)


class FieldEdit(BaseModel):
    path: str          # 例: "weights.morning.value"
    value: Any = None


def _journal(x_api_token: str | None, x_user_id: str | None) -> DailyJournal:
    require_token(x_api_token)
    return get_journal(resolve_user_id(x_user_id))


def _draft_payload(journal: DailyJournal) -> Dict[str, Any]:
    draft = journal.drafts.draft
    if draft is None:
        return {"ok": True, "state": journal.drafts.state.value, "date_key": None, "record": None}
    return {
        "ok": True,
        "state": draft.state.value,
        "date_key": draft.date_key,
        "has_record": journal.store.has_record(draft.date_key),
        "record": draft.record.model_dump(),
        "pure_alcohol_ml": {
            meal: round(entry.pure_alcohol_ml(), 2)
            for meal, entry in draft.record.meals
        },
    }


def _closed() -> JSONResponse:
    return JSONResponse({"ok": False, "error": "No day is open"}, status_code=409)


@router.get("/status")
async def records_status(
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """購読状態（読み込み中・エラー）"""
    journal = _journal(x_api_token, x_user_id)
    return {"ok": True, **journal.status()}


@router.get("/calendar")
async def records_calendar(
    month: str = Query(..., description="対象月 (YYYY-MM)"),
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """月内で記録がある日付"""
    journal = _journal(x_api_token, x_user_id)
    try:
        recorded = journal.month_marks(month)
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return {"ok": True, "month": month, "recorded": recorded}


@router.get("/draft")
async def draft_get(
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return _draft_payload(_journal(x_api_token, x_user_id))


@router.post("/draft/open/{date_key}")
async def draft_open(
    date_key: str,
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """日付を開いてドラフトを作る（未保存の変更は破棄）"""
    journal = _journal(x_api_token, x_user_id)
    try:
        journal.open_day(date_key)
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return _draft_payload(journal)


@router.post("/draft/shift")
async def draft_shift(
    days: int = Query(..., description="-1 で前日、1 で翌日"),
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    journal = _journal(x_api_token, x_user_id)
    journal.shift_day(days)
    return _draft_payload(journal)


@router.patch("/draft")
async def draft_edit(
    body: FieldEdit,
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """フォームの1項目を変更"""
    journal = _journal(x_api_token, x_user_id)
    try:
        journal.edit_field(body.path, body.value)
    except DraftClosedError:
        return _closed()
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return _draft_payload(journal)


@router.post("/draft/save")
async def draft_save(
    close: bool = Query(False),
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """ドラフトを保存（close=true なら保存後に日付を閉じる）"""
    journal = _journal(x_api_token, x_user_id)
    try:
        outcome = await journal.save(close=close)
    except DraftClosedError:
        return _closed()
    except PersistenceError as e:
        logger.error(f"[RECORDS] save failed: {e}")
        return JSONResponse(
            {"ok": False, "error": "Failed to save record", "detail": str(e), "state": journal.drafts.state.value},
            status_code=503,
        )
    resp = _draft_payload(journal)
    resp["outcome"] = outcome.value
    if close and outcome in (SaveOutcome.SAVED, SaveOutcome.UNCHANGED):
        resp["close_reason"] = "saved" if outcome is SaveOutcome.SAVED else "closed"
    return resp


@router.post("/draft/close")
async def draft_close(
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """日付を閉じる。未保存の変更があれば reason=discarded"""
    journal = _journal(x_api_token, x_user_id)
    reason = journal.close_day()
    return {"ok": True, "reason": reason.value}


@router.post("/draft/photos/{meal}/{index}")
async def draft_photo_upload(
    meal: str,
    index: int,
    file: UploadFile = File(...),
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """食事写真を正規化してドラフトに入れる"""
    journal = _journal(x_api_token, x_user_id)
    data: bytes = await file.read()
    if len(data) == 0:
        return JSONResponse({"ok": False, "error": "Empty file"}, status_code=400)

    try:
        result = await journal.upload_photo(meal, index, data)
    except DraftClosedError:
        return _closed()
    except ImageDecodeError as e:
        return JSONResponse({"ok": False, "error": "Unsupported image", "detail": str(e)}, status_code=400)
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)

    resp = _draft_payload(journal)
    if result is None:
        resp["superseded"] = True
    else:
        resp["image"] = {"width": result.width, "height": result.height, "mime": result.mime, "size": result.size}
    return resp


@router.delete("/draft/photos/{meal}/{index}")
async def draft_photo_remove(
    meal: str,
    index: int,
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    journal = _journal(x_api_token, x_user_id)
    try:
        journal.remove_photo(meal, index)
    except DraftClosedError:
        return _closed()
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return _draft_payload(journal)


@router.get("/{date_key}")
async def record_get(
    date_key: str,
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """保存済みの記録（ドラフトではない）"""
    journal = _journal(x_api_token, x_user_id)
    try:
        parse_date_key(date_key)
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    record = journal.store.get(date_key)
    return {
        "ok": True,
        "date_key": date_key,
        "has_record": record is not None,
        "record": record.model_dump() if record is not None else None,
    }

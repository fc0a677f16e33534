# app/routers/ui.py

from fastapi import APIRouter, Header, File, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from typing import Any, Dict
from app.errors import ImageDecodeError
from app.services.image_service import ImagePipeline
from app.services.ui_state_service import load_ui_state, save_ui_state, UiState
from app.utils.auth_utils import require_token
import logging
import uuid

router = APIRouter(prefix="/ui", tags=["ui"])
logger = logging.getLogger(__name__)


@router.get("/state")
def ui_get_state(
    x_api_token: str | None = Header(None, alias="x-api-token"),
) -> Dict[str, Any]:
    """最後に表示した月・選択日を復元"""
    require_token(x_api_token)
    return {"ok": True, "state": load_ui_state().model_dump()}


@router.put("/state")
def ui_put_state(
    body: Dict[str, Any],
    x_api_token: str | None = Header(None, alias="x-api-token"),
) -> Dict[str, Any]:
    """表示中の月・選択日を保存"""
    require_token(x_api_token)
    try:
        state = UiState.model_validate(body)
    except ValidationError as e:
        return JSONResponse({"ok": False, "error": "Validation failed", "details": e.errors(include_url=False)}, status_code=400)

    try:
        save_ui_state(state)
    except OSError as e:
        logger.exception("[UI_STATE] save failed")
        return JSONResponse({"ok": False, "error": str(e)}, status_code=500)
    return {"ok": True, "state": state.model_dump()}


# ⭐ プレビュー専用：ドラフトにも保存しない
@router.post("/photo/preview")
async def ui_photo_preview(
    x_api_token: str | None = Header(None, alias="x-api-token"),
    file: UploadFile = File(...),
):
    require_token(x_api_token)
    request_id = str(uuid.uuid4())
    data: bytes = await file.read()

    if len(data) == 0:
        return JSONResponse({"ok": False, "error": "Empty file", "request_id": request_id}, status_code=400)

    try:
        result = await ImagePipeline.from_settings().normalize_image(data)
    except ImageDecodeError as e:
        logger.warning(f"[IMAGE] preview decode failed request_id={request_id}: {e}")
        return JSONResponse(
            {"ok": False, "error": "Unsupported image", "detail": str(e), "request_id": request_id},
            status_code=400,
        )

    logger.info(f"[IMAGE] preview {len(data)} -> {result.size} bytes request_id={request_id}")
    return {
        "ok": True,
        "request_id": request_id,
        "original_size": len(data),
        "size": result.size,
        "width": result.width,
        "height": result.height,
        "mime": result.mime,
        "data_url": result.data_url,
    }

from fastapi import APIRouter, Header, Query
from fastapi.responses import JSONResponse
from app.services.journal import get_journal
from app.utils.auth_utils import require_token, resolve_user_id

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/weight")
async def get_weight_dashboard_data(
    range_key: str = Query("1month", alias="range", description="期間 (1month / 3months / 6months / 1year)"),
    x_api_token: str | None = Header(None, alias="x-api-token"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    """体重（朝）の推移グラフ用データを取得"""
    require_token(x_api_token)
    journal = get_journal(resolve_user_id(x_user_id))

    try:
        df = journal.weight_trend(range_key)
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)

    data = {
        "dates": [d.strftime("%m/%d") for d in df["date"]],
        "date_keys": [d.strftime("%Y-%m-%d") for d in df["date"]],
        "weight_kg": [float(w) for w in df["weight_kg"]],
    }
    # グラフは2日分以上の記録があるときだけ描画する
    return {"ok": True, "range": range_key, "enough": len(df) > 1, "data": data}

# main.py
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime, timezone
import logging
import traceback
import os

from app.config import settings
from app.routers import records, dashboard, ui
from app.services.journal import reset_journals

# ログ設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s] %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Onigiri Note API",
    description="Daily weight, meal, alcohol, overtime and diary records",
    version="1.0.0",
    debug=settings.DEBUG
)

# CORS設定
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# グローバル例外ハンドラー
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """予期しないエラーのハンドリング"""
    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Traceback: {traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": "Internal server error",
            "detail": str(exc) if app.debug else "An unexpected error occurred"
        }
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """バリデーションエラーのハンドリング"""
    return JSONResponse(
        status_code=422,
        content={
            "ok": False,
            "error": "Validation error",
            "detail": exc.errors()
        }
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP例外のハンドリング"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "ok": False,
            "error": exc.detail,
            "status_code": exc.status_code
        }
    )

# APIルーター登録
app.include_router(records.router)
app.include_router(dashboard.router)
app.include_router(ui.router)

@app.get("/api/health")
def api_health():
    """APIヘルスチェック"""
    return {
        "message": "Onigiri Note API v1.0",
        "services": ["records", "dashboard", "ui"],
        "status": "healthy"
    }

@app.get("/health")
async def enhanced_health_check():
    """Firestore接続を含むヘルスチェック"""
    from app.database.firestore import db

    checks = {
        "api": True,
        "firestore": False,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    try:
        if db:
            db.collection("health_check").limit(1).get()
            checks["firestore"] = True
    except Exception as e:
        logger.warning(f"Firestore health check failed: {e}")

    return {
        "status": "healthy" if all(checks.values()) else "degraded",
        "checks": checks,
        "version": "1.0.0"
    }

@app.on_event("startup")
async def startup_event():
    logger.info("Onigiri Note API starting up...")

@app.on_event("shutdown")
async def shutdown_event():
    """購読を解除して終了"""
    reset_journals()
    logger.info("Onigiri Note API shutting down...")

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8080))
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
        access_log=True
    )

# app/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Settings:
    """環境変数から読み込むアプリケーション設定"""

    # Firestore のパス artifacts/{APP_ID}/users/{uid}/daily-records に使う
    APP_ID: str = os.getenv("APP_ID", "onigiri-note")
    GOOGLE_CLOUD_PROJECT: str | None = os.getenv("GOOGLE_CLOUD_PROJECT") or None

    UI_API_TOKEN: str = os.getenv("UI_API_TOKEN", "")

    # 食事写真の正規化（長辺のみ制限）
    IMAGE_MAX_SIDE: int = _int_env("IMAGE_MAX_SIDE", 640)
    IMAGE_QUALITY: int = _int_env("IMAGE_QUALITY", 80)
    IMAGE_FORMAT: str = os.getenv("IMAGE_FORMAT", "WEBP").upper()

    # 最後に表示した月・選択日
    UI_STATE_PATH: str = os.getenv("UI_STATE_PATH", ".onigiri-note-ui.json")

    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"


settings = Settings()

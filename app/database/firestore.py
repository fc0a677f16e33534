from google.cloud import firestore
from google.auth.exceptions import DefaultCredentialsError
from app.config import settings

try:
    db = firestore.Client(project=settings.GOOGLE_CLOUD_PROJECT)
except (DefaultCredentialsError, OSError):
    db = None

def user_doc(user_id: str = "demo", app_id: str | None = None):
    """ユーザードキュメントの参照を返す"""
    if not db:
        raise RuntimeError("Firestore client is not configured")
    return (
        db.collection("artifacts")
        .document(app_id or settings.APP_ID)
        .collection("users")
        .document(user_id)
    )

def daily_records_collection(user_id: str = "demo", app_id: str | None = None):
    """日次記録コレクション（キーは YYYY-MM-DD）の参照を返す"""
    return user_doc(user_id, app_id).collection("daily-records")

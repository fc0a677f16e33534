# app/errors.py


class RecordsError(Exception):
    """日次記録まわりのエラーの基底クラス"""


class SubscriptionError(RecordsError):
    """リモートのスナップショット購読が壊れた（最後のマッピングは保持する）"""


class PersistenceError(RecordsError):
    """Firestore への書き込みに失敗した（ドラフトは dirty のまま）"""

    def __init__(self, message: str, date_key: str | None = None):
        super().__init__(message)
        self.date_key = date_key


class ImageDecodeError(RecordsError):
    """画像として読み込めない入力"""


class DraftClosedError(RecordsError):
    """日付が開かれていない状態でドラフトを操作した"""

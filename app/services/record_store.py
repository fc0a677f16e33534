# app/services/record_store.py
"""全日付の記録マッピング（Firestore の購読で更新される）"""

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.auth.exceptions import GoogleAuthError

from app.errors import PersistenceError, SubscriptionError
from app.models.record import DailyRecord, normalize
from app.utils.date_utils import parse_date_key

logger = logging.getLogger(__name__)

OnChange = Callable[[Mapping[str, DailyRecord]], None]
OnError = Callable[[SubscriptionError], None]


class Subscription:
    """on_snapshot の Watch をラップした購読ハンドル"""

    def __init__(self, watch=None, error: Optional[SubscriptionError] = None):
        self._watch = watch
        self.error = error
        self.closed = watch is None

    @property
    def active(self) -> bool:
        return not self.closed

    def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._watch.unsubscribe()
        except Exception as e:
            logger.warning(f"[RECORDS] unsubscribe failed: {e}")


class RecordStore:
    """
    日付キー → DailyRecord のマッピングを保持する。

    マッピングを書き換えるのは購読コールバックだけ。Firestore の Watch は
    別スレッドから呼ばれるので、ループが渡されていれば
    ``call_soon_threadsafe`` で配送順のままイベントループに載せ替える。
    """

    def __init__(self, collection, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._collection = collection
        self._loop = loop
        self._records: Dict[str, DailyRecord] = {}
        self._subscription: Optional[Subscription] = None
        self._on_change: Optional[OnChange] = None
        self._on_error: Optional[OnError] = None
        self.loaded = False
        self.last_error: Optional[SubscriptionError] = None

    # ---- 購読 ----
    def subscribe(self, on_change: OnChange, on_error: Optional[OnError] = None) -> Subscription:
        """コレクション全体の購読を開始する（既存の購読は解除）"""
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._on_change = on_change
        self._on_error = on_error

        try:
            watch = self._collection.on_snapshot(self._handle_snapshot)
        except Exception as e:
            logger.exception("[RECORDS] subscribe failed")
            error = SubscriptionError(f"subscribe failed: {e}")
            self._subscription = Subscription(error=error)
            self._report(error)
            return self._subscription

        self._subscription = Subscription(watch)
        logger.info("[RECORDS] subscribed to daily records")
        return self._subscription

    def _handle_snapshot(self, docs, changes, read_time) -> None:
        try:
            records = {doc.id: normalize(doc.to_dict()) for doc in docs}
        except Exception as e:
            logger.exception("[RECORDS] snapshot conversion failed")
            self._dispatch(self._report, SubscriptionError(f"bad snapshot: {e}"))
            return
        self._dispatch(self._apply, records)

    def _dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(fn, *args)
        else:
            fn(*args)

    def _apply(self, records: Dict[str, DailyRecord]) -> None:
        self._records = records
        self.loaded = True
        self.last_error = None
        logger.debug(f"[RECORDS] snapshot applied: {len(records)} records")
        if self._on_change is not None:
            self._on_change(self.records())

    def _report(self, error: SubscriptionError) -> None:
        # 最後に受け取ったマッピングはそのまま残す
        self.last_error = error
        if self._on_error is not None:
            self._on_error(error)

    # ---- 参照 ----
    def records(self) -> Mapping[str, DailyRecord]:
        return MappingProxyType(self._records)

    def get(self, date_key: str) -> Optional[DailyRecord]:
        record = self._records.get(date_key)
        return record.model_copy(deep=True) if record is not None else None

    def has_record(self, date_key: str) -> bool:
        """記録の有無はキーの存在で判定（中身が空でも True）"""
        return date_key in self._records

    # ---- 書き込み ----
    def write(self, date_key: str, record: DailyRecord | Dict[str, Any]) -> Dict[str, Any]:
        """
        1ドキュメントへのフィールド単位マージ書き込み。

        ``record`` に含まれないフィールドはリモート側の値を残す。
        同じ内容を再送しても結果は変わらない。
        """
        parse_date_key(date_key)
        payload = record.model_dump() if isinstance(record, DailyRecord) else dict(record)

        try:
            self._collection.document(date_key).set(payload, merge=True)
        except (GoogleAPICallError, RetryError, GoogleAuthError) as e:
            logger.error(f"[RECORDS] write failed date_key={date_key}: {e}")
            raise PersistenceError(str(e), date_key=date_key) from e

        logger.info(f"[RECORDS] wrote date_key={date_key} fields={sorted(payload)}")
        return {"ok": True, "date_key": date_key, "fields": sorted(payload)}

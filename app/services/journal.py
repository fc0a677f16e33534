# app/services/journal.py
"""ユーザーごとの記録セッション（ストア・ドラフト・画像処理をつなぐ）"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from app.database.firestore import daily_records_collection
from app.errors import DraftClosedError, SubscriptionError
from app.models.record import MEAL_SLOTS, PHOTO_COUNT, DailyRecord
from app.services import edits
from app.services.draft_service import CloseReason, DraftReconciler, SaveOutcome
from app.services.image_service import EncodedImage, ImagePipeline
from app.services.record_store import RecordStore, Subscription
from app.services.trend_service import weight_series
from app.utils.date_utils import month_date_keys, shift_date_key

logger = logging.getLogger(__name__)


class DailyJournal:
    def __init__(self, store: RecordStore, images: Optional[ImagePipeline] = None):
        self.store = store
        self.drafts = DraftReconciler(store)
        self.images = images or ImagePipeline.from_settings()
        self.subscription: Optional[Subscription] = None
        self._seen: Mapping[str, DailyRecord] = {}

    def start(self) -> Subscription:
        self.subscription = self.store.subscribe(self._on_records, self._on_subscription_error)
        return self.subscription

    def stop(self) -> None:
        if self.subscription is not None:
            self.subscription.unsubscribe()

    def _on_records(self, mapping: Mapping[str, DailyRecord]) -> None:
        previous, self._seen = self._seen, dict(mapping)
        key = self.drafts.date_key
        if key is None:
            return
        if previous.get(key) != mapping.get(key):
            self.drafts.on_remote_update(key, mapping.get(key))

    def _on_subscription_error(self, error: SubscriptionError) -> None:
        logger.warning(f"[RECORDS] subscription degraded, keeping last mapping: {error}")

    # ---- 日付の選択 ----
    def open_day(self, date_key: str):
        return self.drafts.open_day(date_key)

    def shift_day(self, days: int):
        """前日・翌日へ移動（未保存の変更は破棄）"""
        current = self.drafts.date_key or date.today().isoformat()
        return self.open_day(shift_date_key(current, days))

    def close_day(self) -> CloseReason:
        return self.drafts.close_day()

    # ---- 編集 ----
    def edit_field(self, path: str, value: Any) -> DailyRecord:
        return self.drafts.edit(edits.field_mutator(path, value))

    async def upload_photo(self, meal: str, index: int, raw: bytes) -> Optional[EncodedImage]:
        """
        写真を正規化してドラフトに入れる。

        処理中に同じ枠へ新しい写真が指定された場合や、日付が切り替わった
        場合は結果を捨てて None を返す。
        """
        if meal not in MEAL_SLOTS or not 0 <= index < PHOTO_COUNT:
            raise ValueError(f"unknown photo slot: {meal}/{index}")
        draft = self.drafts.draft
        if draft is None:
            raise DraftClosedError("no day is open")

        result = await self.images.process((meal, index), raw)
        if result is None:
            return None
        if self.drafts.draft is not draft:
            logger.info(f"[IMAGE] day changed while encoding, result for {draft.date_key} dropped")
            return None
        self.drafts.edit(edits.set_photo(meal, index, result.data_url))
        return result

    def remove_photo(self, meal: str, index: int) -> DailyRecord:
        # 処理中の写真が後から入らないように要求を進めておく
        self.images.begin((meal, index))
        return self.drafts.edit(edits.remove_photo(meal, index))

    async def save(self, close: bool = False) -> SaveOutcome:
        return await self.drafts.save(close=close)

    # ---- 参照 ----
    def month_marks(self, month: str) -> List[str]:
        """その月で記録がある日付キー"""
        return [key for key in month_date_keys(month) if self.store.has_record(key)]

    def weight_trend(self, range_key: str = "1month", today: Optional[date] = None) -> pd.DataFrame:
        return weight_series(self.store.records(), range_key, today)

    def status(self) -> Dict[str, Any]:
        subscription = self.subscription
        return {
            "loaded": self.store.loaded,
            "subscribed": subscription is not None and subscription.active,
            "subscribe_error": str(subscription.error) if subscription and subscription.error else None,
            "error": str(self.store.last_error) if self.store.last_error else None,
            "records": len(self.store.records()),
            "open_day": self.drafts.date_key,
            "state": self.drafts.state.value,
        }


_journals: Dict[str, DailyJournal] = {}


def get_journal(user_id: str = "demo") -> DailyJournal:
    """ユーザーのセッションを返す（初回は購読を開始する）。イベントループ内で呼ぶこと"""
    journal = _journals.get(user_id)
    if journal is None:
        store = RecordStore(daily_records_collection(user_id), loop=asyncio.get_running_loop())
        journal = DailyJournal(store)
        journal.start()
        _journals[user_id] = journal
    return journal


def reset_journals() -> None:
    for journal in _journals.values():
        journal.stop()
    _journals.clear()

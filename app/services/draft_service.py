# app/services/draft_service.py
r"""
選択中の1日分のドラフトとリモート値の突き合わせ

状態遷移::

    closed --open_day--> clean --edit--> dirty --save--> saving --ok--> clean
                                                          \--error--> dirty

リモート更新は clean のときだけドラフトを置き換える。dirty / saving の間は
baseline（最新のリモート値）だけを更新し、未保存の入力には触れない。
保存時は origin（編集を始めた時点の値）からの差分だけを書き込むので、
ユーザーが触っていないフィールドのリモート側の変更は消えない。
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from app.errors import DraftClosedError, PersistenceError
from app.models.record import DailyRecord, default_record, normalize
from app.services.edits import Mutator
from app.utils.date_utils import parse_date_key
from app.utils.merge_utils import deep_merge, diff_fields

logger = logging.getLogger(__name__)


class DraftState(str, Enum):
    CLOSED = "closed"
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"


class SaveOutcome(str, Enum):
    SAVED = "saved"
    UNCHANGED = "unchanged"
    BUSY = "busy"
    DETACHED = "detached"  # 保存中に日付が閉じられた


class CloseReason(str, Enum):
    CLOSED = "closed"
    DISCARDED = "discarded"  # 未保存の変更を破棄
    SAVED = "saved"


@dataclass
class Draft:
    date_key: str
    record: DailyRecord
    baseline: DailyRecord
    origin: DailyRecord
    dirty: bool = False
    saving: bool = False
    edited_while_saving: bool = False

    @property
    def state(self) -> DraftState:
        if self.saving:
            return DraftState.SAVING
        return DraftState.DIRTY if self.dirty else DraftState.CLEAN


class DraftReconciler:
    def __init__(self, store):
        self._store = store
        self._draft: Optional[Draft] = None

    @property
    def state(self) -> DraftState:
        return self._draft.state if self._draft else DraftState.CLOSED

    @property
    def date_key(self) -> Optional[str]:
        return self._draft.date_key if self._draft else None

    @property
    def draft(self) -> Optional[Draft]:
        return self._draft

    def _require_draft(self) -> Draft:
        if self._draft is None:
            raise DraftClosedError("no day is open")
        return self._draft

    def open_day(self, date_key: str) -> Draft:
        parse_date_key(date_key)
        if self._draft is not None and self._draft.dirty:
            logger.info(f"[DRAFT] discarding unsaved edits of {self._draft.date_key}")
        current = normalize(self._store.get(date_key) or default_record())
        self._draft = Draft(
            date_key=date_key,
            record=current.model_copy(deep=True),
            baseline=current,
            origin=current,
        )
        return self._draft

    def edit(self, mutator: Mutator) -> DailyRecord:
        """ドラフトだけを書き換える。mutator が失敗したらドラフトはそのまま"""
        draft = self._require_draft()
        data = draft.record.model_dump()
        mutator(data)
        draft.record = normalize(data)
        draft.dirty = True
        if draft.saving:
            draft.edited_while_saving = True
        return draft.record

    def on_remote_update(self, date_key: str, value: Any) -> bool:
        """開いている日のリモート値が変わった。ドラフトを置き換えたら True"""
        draft = self._draft
        if draft is None or draft.date_key != date_key:
            return False

        incoming = normalize(value)
        if draft.dirty or draft.saving:
            draft.baseline = incoming
            logger.info(f"[DRAFT] remote update for {date_key} kept aside (state={draft.state.value})")
            return False

        draft.baseline = incoming
        draft.origin = incoming
        draft.record = incoming.model_copy(deep=True)
        return True

    def _payload(self, draft: Draft, submitted: DailyRecord) -> Dict[str, Any]:
        if not self._store.has_record(draft.date_key):
            return submitted.model_dump()
        return diff_fields(draft.origin.model_dump(), submitted.model_dump())

    async def save(self, close: bool = False) -> SaveOutcome:
        """
        ドラフトを保存する。1日につき同時に走る書き込みは1本だけ。

        失敗時は dirty に戻して ``PersistenceError`` を送出する。
        """
        draft = self._require_draft()
        if draft.saving:
            logger.info(f"[DRAFT] save ignored, write in flight for {draft.date_key}")
            return SaveOutcome.BUSY
        if not draft.dirty:
            self._rebase_clean(draft)
            if close:
                self._close(CloseReason.CLOSED)
            return SaveOutcome.UNCHANGED

        submitted = draft.record.model_copy(deep=True)
        payload = self._payload(draft, submitted)
        if not payload:
            # 入力が元に戻っただけ。保留中のリモート値に追いつく
            self._rebase_clean(draft)
            if close:
                self._close(CloseReason.CLOSED)
            return SaveOutcome.UNCHANGED

        draft.saving = True
        draft.edited_while_saving = False
        try:
            await asyncio.to_thread(self._store.write, draft.date_key, payload)
        except PersistenceError:
            if self._draft is draft:
                logger.warning(f"[DRAFT] save failed for {draft.date_key}, draft stays dirty")
                raise
            logger.warning(f"[DRAFT] background save failed for closed day {draft.date_key}")
            return SaveOutcome.DETACHED
        finally:
            # 想定外の例外やキャンセルでも saving のまま残さない
            draft.saving = False

        if self._draft is not draft:
            logger.info(f"[DRAFT] save for {draft.date_key} finished after the day was closed")
            return SaveOutcome.DETACHED

        merged = deep_merge(draft.baseline.model_dump(), payload)
        rebased = normalize(merged)
        draft.baseline = rebased
        if draft.edited_while_saving:
            pending = diff_fields(submitted.model_dump(), draft.record.model_dump())
            draft.record = normalize(deep_merge(merged, pending))
            draft.origin = rebased
            draft.dirty = True
            draft.edited_while_saving = False
        else:
            draft.record = rebased.model_copy(deep=True)
            draft.origin = rebased
            draft.dirty = False

        logger.info(f"[DRAFT] saved {draft.date_key}")
        if close:
            self._close(CloseReason.SAVED)
        return SaveOutcome.SAVED

    def _rebase_clean(self, draft: Draft) -> None:
        draft.record = draft.baseline.model_copy(deep=True)
        draft.origin = draft.baseline
        draft.dirty = False

    def close_day(self) -> CloseReason:
        """日付を閉じる。未保存の変更があれば破棄扱い"""
        if self._draft is None:
            return CloseReason.CLOSED
        reason = CloseReason.DISCARDED if self._draft.dirty else CloseReason.CLOSED
        return self._close(reason)

    def _close(self, reason: CloseReason) -> CloseReason:
        if self._draft is not None:
            logger.info(f"[DRAFT] close {self._draft.date_key} reason={reason.value}")
        self._draft = None
        return reason

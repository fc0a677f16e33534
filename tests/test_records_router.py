import io
import os
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

os.environ.setdefault("FIRESTORE_EMULATOR_HOST", "localhost:8080")
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastapi.testclient import TestClient

from conftest import DummyCollection
from app.services.image_service import ImagePipeline
from app.services.journal import DailyJournal
from app.services.record_store import RecordStore
from main import app

client = TestClient(app)

DAY = "2024-05-01"


@pytest.fixture
def journal(monkeypatch):
    collection = DummyCollection({
        DAY: {"diary": "朝ごはんおいしかった", "weights": {"morning": {"value": 64.0}}},
        "2024-05-03": {},
        "2024-04-30": {"weights": {"morning": {"value": 64.4}}},
    })
    journal = DailyJournal(RecordStore(collection), images=ImagePipeline())
    journal.start()
    journal.collection = collection
    monkeypatch.setattr("app.routers.records.get_journal", lambda user_id="demo": journal)
    monkeypatch.setattr("app.routers.dashboard.get_journal", lambda user_id="demo": journal)
    return journal


def _jpeg(width, height):
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (width, height), color="green").save(buf, format="JPEG")
    return buf.getvalue()


def test_status_and_calendar(journal):
    status = client.get("/records/status").json()
    assert status["loaded"] is True
    assert status["subscribed"] is True
    assert status["subscribe_error"] is None
    assert status["records"] == 3
    assert status["state"] == "closed"

    res = client.get("/records/calendar", params={"month": "2024-05"})
    assert res.status_code == 200
    # 空のドキュメントでも記録ありとして扱う
    assert res.json()["recorded"] == [DAY, "2024-05-03"]


def test_calendar_rejects_bad_month(journal):
    res = client.get("/records/calendar", params={"month": "May"})
    assert res.status_code == 400
    assert res.json()["ok"] is False


def test_get_saved_record(journal):
    body = client.get(f"/records/{DAY}").json()
    assert body["has_record"] is True
    assert body["record"]["weights"]["morning"]["value"] == 64.0
    assert body["record"]["meals"]["lunch"]["menus"] == [""] * 5

    missing = client.get("/records/2024-05-02").json()
    assert missing == {"ok": True, "date_key": "2024-05-02", "has_record": False, "record": None}

    assert client.get("/records/yesterday").status_code == 400


def test_edit_without_open_day_is_conflict(journal):
    res = client.patch("/records/draft", json={"path": "diary", "value": "x"})
    assert res.status_code == 409
    assert client.post("/records/draft/save").status_code == 409


def test_open_edit_save_close(journal):
    opened = client.post(f"/records/draft/open/{DAY}").json()
    assert opened["state"] == "clean"
    assert opened["has_record"] is True

    res = client.patch("/records/draft", json={"path": "meals.dinner.alcohols.0.degree", "value": "5"})
    client.patch("/records/draft", json={"path": "meals.dinner.alcohols.0.amount", "value": "500"})
    assert res.status_code == 200
    draft = client.get("/records/draft").json()
    assert draft["state"] == "dirty"
    assert draft["pure_alcohol_ml"]["dinner"] == 25.0

    saved = client.post("/records/draft/save", params={"close": "true"}).json()
    assert saved["outcome"] == "saved"
    assert saved["close_reason"] == "saved"
    assert saved["state"] == "closed"

    write = journal.collection.calls[-1]
    assert write["merge"] is True
    assert set(write["data"]) == {"meals"}
    assert journal.collection.docs[DAY]["diary"] == "朝ごはんおいしかった"
    assert journal.collection.docs[DAY]["meals"]["dinner"]["alcohols"][0] == {"degree": 5.0, "amount": 500.0}


def test_invalid_edit_is_rejected(journal):
    client.post(f"/records/draft/open/{DAY}")
    res = client.patch("/records/draft", json={"path": "meals.snack.menus.0", "value": "x"})
    assert res.status_code == 400
    assert client.get("/records/draft").json()["state"] == "clean"


def test_close_with_unsaved_edits_reports_discard(journal):
    client.post(f"/records/draft/open/{DAY}")
    client.patch("/records/draft", json={"path": "diary", "value": "消える"})
    assert client.post("/records/draft/close").json()["reason"] == "discarded"
    assert journal.collection.calls == []


def test_shift_moves_to_next_day(journal):
    client.post(f"/records/draft/open/{DAY}")
    body = client.post("/records/draft/shift", params={"days": -1}).json()
    assert body["date_key"] == "2024-04-30"
    assert body["record"]["weights"]["morning"]["value"] == 64.4


def test_save_failure_returns_503_and_keeps_draft(journal):
    client.post("/records/draft/open/2024-05-02")
    client.patch("/records/draft", json={"path": "weights.morning.value", "value": "63.5"})
    journal.collection.fail_writes = True

    res = client.post("/records/draft/save")
    assert res.status_code == 503
    assert res.json()["state"] == "dirty"

    journal.collection.fail_writes = False
    saved = client.post("/records/draft/save").json()
    assert saved["outcome"] == "saved"
    # 新しい日は全フィールドを書き込む
    assert set(journal.collection.calls[-1]["data"]) == {"weights", "meals", "overtime", "diary"}


def test_photo_upload_and_remove(journal):
    client.post(f"/records/draft/open/{DAY}")
    res = client.post(
        "/records/draft/photos/lunch/1",
        files={"file": ("lunch.jpg", _jpeg(2000, 1500), "image/jpeg")},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["image"]["width"] == 640
    assert body["image"]["height"] == 480
    assert body["record"]["meals"]["lunch"]["photos"][1].startswith("data:image/webp;base64,")

    removed = client.delete("/records/draft/photos/lunch/1").json()
    assert removed["record"]["meals"]["lunch"]["photos"] == [None, None]


def test_photo_upload_errors(journal):
    assert client.post(
        "/records/draft/photos/lunch/0",
        files={"file": ("a.jpg", _jpeg(10, 10), "image/jpeg")},
    ).status_code == 409

    client.post(f"/records/draft/open/{DAY}")
    empty = client.post("/records/draft/photos/lunch/0", files={"file": ("a.jpg", b"", "image/jpeg")})
    assert empty.status_code == 400
    assert empty.json()["error"] == "Empty file"

    broken = client.post("/records/draft/photos/lunch/0", files={"file": ("a.jpg", b"garbage", "image/jpeg")})
    assert broken.status_code == 400
    assert broken.json()["error"] == "Unsupported image"

    slot = client.post("/records/draft/photos/lunch/2", files={"file": ("a.jpg", _jpeg(10, 10), "image/jpeg")})
    assert slot.status_code == 400
    assert client.get("/records/draft").json()["state"] == "clean"


def test_weight_dashboard(journal):
    today = date.today()
    for days_ago, value in ((3, 63.1), (1, 62.8), (400, 70.0)):
        key = (today - timedelta(days=days_ago)).isoformat()
        journal.collection.store(key, {"weights": {"morning": {"value": value}}})

    body = client.get("/dashboard/weight", params={"range": "1month"}).json()
    assert body["enough"] is True
    assert body["data"]["weight_kg"] == [63.1, 62.8]
    assert body["data"]["dates"][-1] == (today - timedelta(days=1)).strftime("%m/%d")


def test_weight_dashboard_unknown_range(journal):
    res = client.get("/dashboard/weight", params={"range": "10years"})
    assert res.status_code == 400


def test_status_reports_failed_subscription(monkeypatch):
    collection = DummyCollection()
    collection.fail_subscribe = True
    journal = DailyJournal(RecordStore(collection), images=ImagePipeline())
    journal.start()
    monkeypatch.setattr("app.routers.records.get_journal", lambda user_id="demo": journal)

    status = client.get("/records/status").json()
    assert status["loaded"] is False
    assert status["subscribed"] is False
    assert "subscribe failed" in status["subscribe_error"]
    assert status["records"] == 0

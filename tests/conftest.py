import copy
import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

os.environ.setdefault("FIRESTORE_EMULATOR_HOST", "localhost:8080")
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from google.api_core.exceptions import ServiceUnavailable

from app.utils.merge_utils import deep_merge


class DummyWatch:
    def __init__(self, collection, callback):
        self.collection = collection
        self.callback = callback
        self.unsubscribed = False

    def unsubscribe(self):
        self.unsubscribed = True
        self.collection.callbacks.remove(self.callback)


class DummyDoc:
    def __init__(self, collection, key):
        self.collection = collection
        self.key = key

    def set(self, data, merge=False):
        self.collection.calls.append({"key": self.key, "data": copy.deepcopy(data), "merge": merge})
        if self.collection.fail_writes:
            raise ServiceUnavailable("firestore unavailable")
        self.collection.store(self.key, data, merge)


class DummyCollection:
    """on_snapshot / document().set(merge=True) だけを持つ Firestore コレクションの代役"""

    def __init__(self, docs=None):
        self.docs = copy.deepcopy(docs or {})
        self.callbacks = []
        self.calls = []
        self.fail_writes = False
        self.fail_subscribe = False

    def on_snapshot(self, callback):
        if self.fail_subscribe:
            raise ServiceUnavailable("listen failed")
        self.callbacks.append(callback)
        callback(self._snapshot(), [], None)
        return DummyWatch(self, callback)

    def document(self, key):
        return DummyDoc(self, key)

    def store(self, key, data, merge=True):
        existing = self.docs.get(key, {})
        self.docs[key] = deep_merge(existing, data) if merge else copy.deepcopy(data)
        self.push()

    def push(self):
        for callback in list(self.callbacks):
            callback(self._snapshot(), [], None)

    def _snapshot(self):
        return [
            SimpleNamespace(id=key, to_dict=(lambda d=copy.deepcopy(data): d))
            for key, data in sorted(self.docs.items())
        ]


@pytest.fixture
def collection():
    return DummyCollection()

from __future__ import annotations

import asyncio
import itertools

import pytest
from google.api_core import exceptions as gexc

from apps.safety_backend.adapters.firestore_adapter import FirestoreAreaAdapter
from apps.safety_backend.area_tree import Area
from apps.safety_backend.errors import NotFound, StorageError, ValidationError


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data
        self.exists = data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeWatch:
    def __init__(self, collection, callback):
        self.collection = collection
        self.callback = callback
        self.unsubscribed = 0

    def unsubscribe(self):
        self.unsubscribed += 1
        self.collection.watches.remove(self)


class FakeDocRef:
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.id = doc_id

    def create(self, data):
        if self.id in self.collection.docs:
            raise gexc.AlreadyExists(f"{self.id} exists")
        self.collection.docs[self.id] = dict(data)
        self.collection.changed()

    def update(self, data):
        if self.id not in self.collection.docs:
            raise gexc.NotFound(f"{self.id} missing")
        self.collection.docs[self.id].update(data)
        self.collection.changed()


class FakeBatch:
    def __init__(self, client):
        self.client = client
        self.deletes = []

    def delete(self, ref):
        self.deletes.append(ref)

    def commit(self):
        if self.client.fail_commits:
            raise gexc.ServiceUnavailable("firestore down")
        for ref in self.deletes:
            ref.collection.docs.pop(ref.id, None)
        if self.deletes:
            self.deletes[0].collection.changed()


class FakeCollection:
    def __init__(self):
        self.docs = {}
        self.watches = []
        self._auto = itertools.count(1)

    def document(self, doc_id=None):
        return FakeDocRef(self, doc_id or f"auto{next(self._auto)}")

    def snapshots(self):
        return [FakeSnapshot(k, v) for k, v in self.docs.items()]

    def on_snapshot(self, callback):
        watch = FakeWatch(self, callback)
        self.watches.append(watch)
        callback(self.snapshots(), [], None)
        return watch

    def changed(self):
        for w in list(self.watches):
            w.callback(self.snapshots(), [], None)


class FakeFirestore:
    def __init__(self):
        self.collections = {}
        self.fail_commits = False
        self.closed = False

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection())

    def get_all(self, refs):
        for ref in refs:
            yield FakeSnapshot(ref.id, ref.collection.docs.get(ref.id))

    def batch(self):
        return FakeBatch(self)

    def close(self):
        self.closed = True


@pytest.fixture()
def fake():
    return FakeFirestore()


@pytest.fixture()
def adapter(fake):
    return FirestoreAreaAdapter(client=fake, collection="areas")


def test_subscribe_delivers_flat_rows(fake, adapter):
    fake.collection("areas").docs.update(
        {
            "A": {"name": "Plant", "machines": []},
            "B": {"name": "Line1", "machines": ["Press"], "parentId": "A"},
        }
    )
    seen = []
    unsubscribe = adapter.subscribe_areas(seen.append)
    assert seen[0] == [
        {"area_id": "A", "name": "Plant", "machines": [], "parentId": None},
        {"area_id": "B", "name": "Line1", "machines": ["Press"], "parentId": "A"},
    ]

    unsubscribe()
    unsubscribe()
    assert fake.collection("areas").watches == []


def test_create_stores_flat_document(fake, adapter):
    root_id = asyncio.run(adapter.create_area({"name": "Plant", "machines": ["Boiler"]}))
    child_id = asyncio.run(adapter.create_area({"area_id": "L1", "name": "Line1"}, root_id))

    docs = fake.collection("areas").docs
    assert docs[root_id] == {"name": "Plant", "machines": ["Boiler"]}
    assert child_id == "L1"
    assert docs["L1"] == {"name": "Line1", "machines": [], "parentId": root_id}


def test_create_duplicate_id_is_validation_error(adapter):
    asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant"}))
    with pytest.raises(ValidationError):
        asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant"}))


def test_update_only_touches_name_and_machines(fake, adapter):
    asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant"}))
    asyncio.run(adapter.create_area({"area_id": "B", "name": "Line1"}, "A"))

    asyncio.run(adapter.update_area(Area("B", " Line 1 ", ("Press",), "A")))
    assert fake.collection("areas").docs["B"] == {
        "name": "Line 1",
        "machines": ["Press"],
        "parentId": "A",
    }

    with pytest.raises(NotFound):
        asyncio.run(adapter.update_area(Area("ghost", "x")))


def test_delete_batch(fake, adapter):
    for area_id, parent in (("A", None), ("B", "A"), ("C", "B")):
        asyncio.run(adapter.create_area({"area_id": area_id, "name": area_id}, parent))
    seen = []
    adapter.subscribe_areas(seen.append)

    deleted = asyncio.run(adapter.delete_areas(["A", "B", "C", "ghost"]))
    assert deleted == ["A", "B", "C"]
    assert fake.collection("areas").docs == {}
    assert seen[-1] == []


def test_delete_failure_keeps_documents_and_names_batch(fake, adapter):
    asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant"}))
    fake.fail_commits = True
    with pytest.raises(StorageError) as ei:
        asyncio.run(adapter.delete_areas(["A"]))
    assert ei.value.ids == ["A"]
    assert "A" in fake.collection("areas").docs


def test_close_stops_watches_and_client(fake, adapter):
    adapter.subscribe_areas(lambda rows: None)
    adapter.close()
    assert fake.collection("areas").watches == []
    assert fake.closed

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from apps.safety_backend.adapters.sql_adapter import SqlAreaAdapter
from apps.safety_backend.area_tree import Area
from apps.safety_backend.errors import NotFound, StorageError, ValidationError
from apps.safety_backend.models import AreaRow, AuditLog
from common_core.db import SafetySessionLocal, make_engine, make_session


def _adapter():
    return SqlAreaAdapter(SafetySessionLocal)


def test_subscribe_delivers_current_rows_then_changes(clean_db):
    adapter = _adapter()
    seen = []
    unsubscribe = adapter.subscribe_areas(seen.append)
    assert seen == [[]]

    area_id = asyncio.run(adapter.create_area({"name": "Warehouse", "machines": ["Forklift 1"]}))
    assert len(seen) == 2
    assert seen[-1] == [
        {"area_id": area_id, "name": "Warehouse", "machines": ["Forklift 1"], "parentId": None}
    ]

    unsubscribe()
    unsubscribe()  # idempotent
    asyncio.run(adapter.create_area({"name": "Packaging"}))
    assert len(seen) == 2


def test_create_keeps_caller_id_and_parent(clean_db):
    adapter = _adapter()
    asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant"}))
    asyncio.run(adapter.create_area({"area_id": "B", "name": "Line1", "machines": []}, "A"))

    db = SafetySessionLocal()
    try:
        b = db.get(AreaRow, "B")
        assert b.parent_id == "A"
        assert b.machines == []
        actions = db.execute(select(AuditLog.action)).scalars().all()
        assert actions.count("AREA_CREATE") == 2
    finally:
        db.close()


def test_create_rejects_unknown_parent_and_duplicates(clean_db):
    adapter = _adapter()
    with pytest.raises(NotFound):
        asyncio.run(adapter.create_area({"name": "Ghost"}, "missing"))
    asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant"}))
    with pytest.raises(ValidationError) as ei:
        asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant again"}))
    assert ei.value.code == "area_id_exists"
    with pytest.raises(ValidationError):
        asyncio.run(adapter.create_area({"name": " "}))


def test_update_writes_name_and_machines_only(clean_db):
    adapter = _adapter()
    asyncio.run(adapter.create_area({"area_id": "A", "name": "Plant"}))
    asyncio.run(adapter.create_area({"area_id": "B", "name": "Line1"}, "A"))

    asyncio.run(adapter.update_area(Area("B", "Line 1", ("Press",), "A")))

    db = SafetySessionLocal()
    try:
        b = db.get(AreaRow, "B")
        assert (b.name, b.machines, b.parent_id) == ("Line 1", ["Press"], "A")
    finally:
        db.close()

    with pytest.raises(NotFound):
        asyncio.run(adapter.update_area(Area("nope", "x")))


def test_delete_batch_reports_present_ids(clean_db):
    adapter = _adapter()
    for area_id, parent in (("A", None), ("B", "A"), ("C", "B")):
        asyncio.run(adapter.create_area({"area_id": area_id, "name": f"Area {area_id}"}, parent))

    seen = []
    adapter.subscribe_areas(seen.append)
    deleted = asyncio.run(adapter.delete_areas(["A", "B", "C", "ghost"]))
    assert deleted == ["A", "B", "C"]
    assert seen[-1] == []
    assert asyncio.run(adapter.delete_areas([])) == []


def test_storage_failures_raise_storage_error(tmp_path):
    # a database without the areas table
    empty = SqlAreaAdapter(make_session(make_engine(f"sqlite+pysqlite:///{tmp_path / 'empty.db'}")))

    with pytest.raises(StorageError):
        empty.subscribe_areas(lambda rows: None)
    with pytest.raises(StorageError):
        asyncio.run(empty.create_area({"name": "Warehouse"}))
    with pytest.raises(StorageError) as ei:
        asyncio.run(empty.delete_areas(["A", "B"]))
    assert ei.value.ids == ["A", "B"]


def test_failing_listener_does_not_block_others(clean_db):
    adapter = _adapter()

    def boom(rows):
        raise RuntimeError("listener bug")

    seen = []
    adapter.subscribe_areas(boom)
    adapter.subscribe_areas(seen.append)
    asyncio.run(adapter.create_area({"name": "Warehouse"}))
    assert len(seen) == 2

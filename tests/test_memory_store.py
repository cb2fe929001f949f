import asyncio
from datetime import datetime

import pytest

from store.base import BatchOperation, Filter, SERVER_TIMESTAMP
from store.memory import InMemoryDocumentStore
from store.transactions import run_transaction
from utils.errors import ConflictError, NotFoundError, PersistenceError


def test_create_and_get_resolve_server_timestamps(store):
    async def scenario():
        doc_id = await store.create("things", {"name": "a", "created_at": SERVER_TIMESTAMP, "nested": [SERVER_TIMESTAMP]})
        return await store.get("things", doc_id), doc_id

    document, doc_id = asyncio.run(scenario())
    assert document["id"] == doc_id
    assert document["_version"] == 1
    assert isinstance(document["created_at"], datetime)
    assert document["nested"][0] == document["created_at"]


def test_get_missing_returns_none(store):
    assert asyncio.run(store.get("things", "nope")) is None


def test_reads_are_copies(store):
    async def scenario():
        doc_id = await store.create("things", {"tags": ["a"]})
        document = await store.get("things", doc_id)
        document["tags"].append("b")
        return await store.get("things", doc_id)

    assert asyncio.run(scenario())["tags"] == ["a"]


def test_update_merges_and_checks_version(store):
    async def scenario():
        doc_id = await store.create("things", {"name": "a", "count": 1})
        await store.update("things", doc_id, {"count": 2}, expected_version=1)
        with pytest.raises(ConflictError):
            await store.update("things", doc_id, {"count": 3}, expected_version=1)
        with pytest.raises(NotFoundError):
            await store.update("things", "missing", {"count": 3})
        return await store.get("things", doc_id)

    document = asyncio.run(scenario())
    assert document == {"id": document["id"], "_version": 2, "name": "a", "count": 2}


def test_create_with_existing_id_conflicts(store):
    async def scenario():
        await store.create("things", {"n": 1}, doc_id="fixed")
        with pytest.raises(ConflictError):
            await store.create("things", {"n": 2}, doc_id="fixed")
        return await store.get("things", "fixed")

    assert asyncio.run(scenario())["n"] == 1


def test_query_filters_ordering_and_pagination(store):
    async def scenario():
        for index in range(5):
            await store.create("things", {
                "index": index,
                "city": "New Delhi" if index % 2 else "Mumbai",
                "tags": ["even"] if index % 2 == 0 else ["odd"],
                "created_at": SERVER_TIMESTAMP,
            })

        newest = await store.query("things", limit=2)
        delhi = await store.query("things", [Filter("city", "icontains", "delhi")])
        evens = await store.query("things", [Filter("tags", "array_contains", "even")], descending=False)
        ranged = await store.query("things", [Filter("index", ">=", 1), Filter("index", "<", 3)])
        picked = await store.query("things", [Filter("index", "in", [0, 4])])
        not_mumbai = await store.query("things", [Filter("city", "!=", "Mumbai")])
        last_page = await store.query("things", limit=2, offset=4)
        count_only = await store.query("things", limit=0)
        return newest, delhi, evens, ranged, picked, not_mumbai, last_page, count_only

    newest, delhi, evens, ranged, picked, not_mumbai, last_page, count_only = asyncio.run(scenario())

    assert [d["index"] for d in newest.documents] == [4, 3]
    assert newest.total == 5 and newest.has_more
    assert sorted(d["index"] for d in delhi.documents) == [1, 3]
    assert [d["index"] for d in evens.documents] == [0, 2, 4]
    assert sorted(d["index"] for d in ranged.documents) == [1, 2]
    assert sorted(d["index"] for d in picked.documents) == [0, 4]
    assert not_mumbai.total == 2
    assert [d["index"] for d in last_page.documents] == [0]
    assert not last_page.has_more
    assert count_only.documents == [] and count_only.total == 5


def test_filter_rejects_unknown_operator():
    with pytest.raises(ValueError):
        Filter("name", "~=", "x")


def test_atomic_batch_applies_all_or_nothing(store):
    async def scenario():
        first = await store.create("things", {"read": False})
        second = await store.create("things", {"read": False})
        await store.update("things", second, {"touched": True})

        stale = [
            BatchOperation(action="update", collection="things", doc_id=first, data={"read": True}, expected_version=1),
            BatchOperation(action="update", collection="things", doc_id=second, data={"read": True}, expected_version=1),
        ]
        with pytest.raises(ConflictError):
            await store.atomic_batch(stale)
        after_failure = [await store.get("things", first), await store.get("things", second)]

        fresh = [
            BatchOperation(action="update", collection="things", doc_id=first, data={"read": True}, expected_version=1),
            BatchOperation(action="update", collection="things", doc_id=second, data={"read": True}, expected_version=2),
            BatchOperation(action="create", collection="log", data={"event": "read"}),
        ]
        await store.atomic_batch(fresh)
        after_success = [await store.get("things", first), await store.get("things", second)]
        log = await store.query("log")
        return after_failure, after_success, log

    after_failure, after_success, log = asyncio.run(scenario())
    assert [d["read"] for d in after_failure] == [False, False]
    assert [d["read"] for d in after_success] == [True, True]
    assert log.total == 1


def test_atomic_batch_rejects_unknown_action(store):
    with pytest.raises(ValueError):
        asyncio.run(store.atomic_batch([BatchOperation(action="delete", collection="things", data={}, doc_id="x")]))


class SlowStore(InMemoryDocumentStore):
    async def _get(self, collection, doc_id):
        await asyncio.sleep(1)
        return None


class BrokenStore(InMemoryDocumentStore):
    async def _query(self, collection, filters, order_by, descending, limit, offset):
        raise RuntimeError("connection reset")


def test_timeout_surfaces_retryable_persistence_error():
    store = SlowStore(timeout=0.01)
    with pytest.raises(PersistenceError) as excinfo:
        asyncio.run(store.get("things", "x"))
    assert excinfo.value.retryable


def test_driver_failure_surfaces_persistence_error():
    with pytest.raises(PersistenceError) as excinfo:
        asyncio.run(BrokenStore().query("things"))
    assert excinfo.value.retryable
    assert "query things" in excinfo.value.detail


def test_run_transaction_retries_conflicts(store):
    async def scenario():
        doc_id = await store.create("counters", {"value": 0})
        interfered = []

        async def increment(document):
            if not interfered:
                interfered.append(True)
                await store.update("counters", doc_id, {"value": 100})
            return {"value": document["value"] + 1}

        result = await run_transaction(store, "counters", doc_id, increment)
        return result, await store.get("counters", doc_id)

    result, stored = asyncio.run(scenario())
    assert stored["value"] == 101
    assert result["value"] == 101
    assert result["_version"] == stored["_version"] == 3


def test_run_transaction_gives_up_after_max_attempts(store):
    async def scenario():
        doc_id = await store.create("counters", {"value": 0})

        async def always_interfered(document):
            await store.update("counters", doc_id, {"value": document["value"] + 10})
            return {"value": -1}

        await run_transaction(store, "counters", doc_id, always_interfered, max_attempts=3)

    with pytest.raises(PersistenceError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.retryable


def test_run_transaction_missing_document(store):
    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(run_transaction(store, "counters", "missing", lambda d: {}, not_found_message="Counter not found"))
    assert excinfo.value.detail == "Counter not found"


def test_run_transaction_skips_empty_changes(store):
    async def scenario():
        doc_id = await store.create("counters", {"value": 0})
        await run_transaction(store, "counters", doc_id, lambda d: {})
        return await store.get("counters", doc_id)

    assert asyncio.run(scenario())["_version"] == 1


def test_run_transaction_returns_resolved_timestamps(store):
    async def scenario():
        doc_id = await store.create("counters", {"value": 0})
        return await run_transaction(store, "counters", doc_id, lambda d: {"value": 1, "updated_at": SERVER_TIMESTAMP})

    result = asyncio.run(scenario())
    assert result["value"] == 1
    assert isinstance(result["updated_at"], datetime)
    assert result["_version"] == 2

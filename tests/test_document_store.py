import asyncio
from datetime import datetime, timezone

import pytest

from examprep.services.document_store import (
    DocumentNotFound,
    MemoryDocumentStore,
    TransactionConflict,
    document_path,
    normalize_filter_value,
)


def test_document_path_requires_even_segments():
    assert document_path("users", "u1", "quizAttempts", "q1") == "users/u1/quizAttempts/q1"
    with pytest.raises(ValueError):
        document_path("users", "u1", "quizAttempts")
    with pytest.raises(ValueError):
        document_path("users", "")


def test_set_merge_and_update(store, helpers):
    async def scenario():
        await store.set("users/u1", {"name": "Sara", "role": "student"})
        await store.set("users/u1", {"name": "Sara K"}, merge=True)
        merged = await store.get("users/u1")
        await store.set("users/u1", {"name": "Replaced"})
        replaced = await store.get("users/u1")
        with pytest.raises(DocumentNotFound):
            await store.update("users/missing", {"name": "x"})
        return merged, replaced

    merged, replaced = helpers.run(scenario())
    assert merged == {"name": "Sara K", "role": "student"}
    assert replaced == {"name": "Replaced"}
    assert helpers.read(store, "users/missing") is None


def test_get_returns_a_copy(store, helpers):
    helpers.seed(store, {"users/u1": {"stats": {"totalQuizzes": 1}}})
    data = helpers.read(store, "users/u1")
    data["stats"]["totalQuizzes"] = 99
    assert helpers.read(store, "users/u1")["stats"]["totalQuizzes"] == 1


def test_concurrent_transactions_retry_on_conflict(store, helpers):
    helpers.seed(store, {"counters/c1": {"value": 0}})

    async def increment(tx):
        data = await tx.get("counters/c1")
        tx.set("counters/c1", {"value": data["value"] + 1})

    async def scenario():
        await asyncio.gather(*(store.run_transaction(increment) for _ in range(3)))

    helpers.run(scenario())
    assert helpers.read(store, "counters/c1") == {"value": 3}


def test_transaction_gives_up_after_max_attempts(store, helpers):
    helpers.seed(store, {"counters/c1": {"value": 0}})

    async def increment(tx):
        data = await tx.get("counters/c1")
        tx.set("counters/c1", {"value": data["value"] + 1})

    async def scenario():
        return await asyncio.gather(
            store.run_transaction(increment, max_attempts=1),
            store.run_transaction(increment, max_attempts=1),
            return_exceptions=True
        )

    outcomes = helpers.run(scenario())
    assert sum(isinstance(o, TransactionConflict) for o in outcomes) == 1
    assert helpers.read(store, "counters/c1") == {"value": 1}


def test_transaction_reads_must_precede_writes(store, helpers):
    async def bad(tx):
        tx.set("a/1", {"x": 1})
        await tx.get("a/2")

    with pytest.raises(RuntimeError):
        helpers.run(store.run_transaction(bad))
    assert helpers.read(store, "a/1") is None


def test_commit_failure_leaves_every_document_unchanged(store, helpers, monkeypatch):
    helpers.seed(store, {"a/1": {"x": 1}, "b/1": {"y": 1}})
    original = store._apply_write

    def failing(current, write):
        if write.path == "b/1":
            raise RuntimeError("disk full")
        return original(current, write)

    monkeypatch.setattr(store, "_apply_write", failing)

    async def write_both(tx):
        tx.set("a/1", {"x": 2})
        tx.set("b/1", {"y": 2})

    with pytest.raises(RuntimeError):
        helpers.run(store.run_transaction(write_both))
    assert helpers.read(store, "a/1") == {"x": 1}
    assert helpers.read(store, "b/1") == {"y": 1}


def test_query_filters_orders_and_limits(store, helpers):
    helpers.seed(store, {
        "enrollments/e1": {"studentId": "u1", "status": "active", "rank": 2},
        "enrollments/e2": {"studentId": "u1", "status": "expired", "rank": 1},
        "enrollments/e3": {"studentId": "u1", "status": "active", "rank": 3},
        "enrollments/e4": {"studentId": "u2", "status": "active", "rank": 4},
        "users/u1": {"studentId": "u1", "status": "active"},
    })

    snapshots = helpers.run(store.query(
        "enrollments",
        where=[("studentId", "==", "u1"), ("status", "==", "active")],
        order_by="rank",
        descending=True,
        limit=1
    ))
    assert [s.id for s in snapshots] == ["e3"]

    ranked = helpers.run(store.query("enrollments", where=[("rank", ">=", 2), ("rank", "<=", 3)]))
    assert sorted(s.id for s in ranked) == ["e1", "e3"]

    with pytest.raises(ValueError):
        helpers.run(store.query("enrollments", where=[("rank", "!=", 2)]))


def test_find_nearest_applies_filters_and_sorts_by_distance(store, helpers):
    helpers.seed(store, {
        "knowledge_base/far": {"metadata": {"type": "book"}, "embedding": [0.0, 1.0]},
        "knowledge_base/near": {"metadata": {"type": "book"}, "embedding": [1.0, 0.1]},
        "knowledge_base/other": {"metadata": {"type": "syllabus"}, "embedding": [1.0, 0.0]},
        "knowledge_base/unindexed": {"metadata": {"type": "book"}},
    })

    hits = helpers.run(store.find_nearest(
        "knowledge_base", "embedding", [1.0, 0.0], limit=5, filters={"metadata.type": "book"}
    ))
    assert [h.id for h in hits] == ["near", "far"]
    assert hits[0].distance < hits[1].distance


def test_datetime_filters_match_stored_iso_strings():
    moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert normalize_filter_value(moment) == "2026-01-02T03:04:05Z"
    assert normalize_filter_value("plain") == "plain"


def test_add_generates_ids(helpers):
    store = MemoryDocumentStore()
    first = helpers.run(store.add("ai_tutor_logs", {"query": "a"}))
    second = helpers.run(store.add("ai_tutor_logs", {"query": "b"}))
    assert first != second
    assert helpers.read(store, f"ai_tutor_logs/{first}") == {"query": "a"}

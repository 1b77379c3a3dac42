from datetime import datetime, timedelta, timezone
import numpy as np
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine
from memrag.errors import MemoryNotFoundError
from memrag.models import Embedding, MemoryRecord
from memrag.models.base import utc_now
from memrag.search import TagFilter, VectorStore, batch_cosine_similarity, cosine_similarity


@pytest.fixture(name="store")
def store_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return VectorStore(engine)


def add_memory(store, name, body="body", tags=None, modified=None, vectors=()):
    record = MemoryRecord(name=name, title=name.title(), body=body, content=body)
    if modified is not None:
        record.modified = modified
    memory_id = store.upsert_memory(record)
    if tags:
        store.upsert_tags(memory_id, tags)
    for i, vector in enumerate(vectors):
        emb = Embedding(memory_id=memory_id, chunk_text=f"{name}-{i}", chunk_index=i, model="test")
        emb.set_vector(vector)
        store.insert_embedding(emb)
    return memory_id


def test_upsert_memory_keeps_id_by_name(store):
    first = add_memory(store, "notes.md", body="v1")
    second = store.upsert_memory(MemoryRecord(id=999, name="notes.md", body="v2"))

    assert first == second
    assert store.get_memory("notes.md").body == "v2"
    assert len(store.list_memories()) == 1


def test_backlink_is_canonical_and_last_write_wins(store):
    ids = [add_memory(store, f"m{i}.md") for i in range(3)]
    low, high = ids[0], ids[2]

    store.upsert_backlink(high, low, 0.8)
    store.upsert_backlink(low, high, 0.6)

    links = store.backlinks_for(low, 0.0)
    assert len(links) == 1
    assert (links[0].memory_a_id, links[0].memory_b_id) == (low, high)
    assert links[0].similarity_score == pytest.approx(0.6)
    assert store.backlinks_for(high, 0.0)[0].id == links[0].id


def test_self_backlink_rejected(store):
    mid = add_memory(store, "solo.md")
    with pytest.raises(ValueError):
        store.upsert_backlink(mid, mid, 0.9)


def test_backlinks_for_orders_and_filters(store):
    a, b, c, d = [add_memory(store, f"{n}.md") for n in "abcd"]
    store.upsert_backlink(a, b, 0.3)
    store.upsert_backlink(c, a, 0.9)
    store.upsert_backlink(a, d, 0.05)

    links = store.backlinks_for(a, 0.1)
    assert [link.other(a) for link in links] == [c, b]


def test_similarity_search_threshold_is_strict(store):
    add_memory(store, "exact.md", vectors=[[1.0, 0.0]])

    assert store.similarity_search([1.0, 0.0], threshold=1.0, limit=10) == []
    assert len(store.similarity_search([1.0, 0.0], threshold=0.99, limit=10)) == 1


def test_similarity_search_orders_excludes_and_limits(store):
    near = add_memory(store, "near.md", vectors=[[1.0, 0.1]])
    mid = add_memory(store, "mid.md", vectors=[[0.0, 1.0], [1.0, 1.0]])
    far = add_memory(store, "far.md", vectors=[[-1.0, 0.2]])

    results = store.similarity_search([1.0, 0.0], threshold=0.1, limit=10)
    assert [r.memory.id for r in results] == [near, mid]
    # best chunk wins, one row per memory
    assert results[1].similarity == pytest.approx(0.7071, abs=1e-3)
    assert far not in [r.memory.id for r in results]

    assert [r.memory.id for r in store.similarity_search([1.0, 0.0], 0.1, 10, exclude_id=near)] == [mid]
    assert len(store.similarity_search([1.0, 0.0], 0.1, 1)) == 1


def test_similarity_search_skips_dimension_mismatch(store):
    add_memory(store, "old-model.md", vectors=[[1.0, 0.0, 0.0]])
    ok = add_memory(store, "new-model.md", vectors=[[1.0, 0.0]])

    results = store.similarity_search([1.0, 0.0], threshold=0.1, limit=10)
    assert [r.memory.id for r in results] == [ok]


def test_similarity_search_tag_filters(store):
    both = add_memory(store, "both.md", tags={"project": "x", "status": "done"}, vectors=[[1.0, 0.0]])
    only_project = add_memory(store, "project.md", tags={"project": "x"}, vectors=[[0.9, 0.1]])
    add_memory(store, "untagged.md", vectors=[[1.0, 0.05]])

    filters = [TagFilter(key="project"), TagFilter.parse("status=done")]

    all_of = store.similarity_search([1.0, 0.0], 0.1, 10, tag_filters=filters, require_all=True)
    assert [r.memory.id for r in all_of] == [both]

    any_of = store.similarity_search([1.0, 0.0], 0.1, 10, tag_filters=filters, require_all=False)
    assert sorted(r.memory.id for r in any_of) == sorted([both, only_project])


def test_tag_only_search_orders_by_recency(store):
    now = utc_now()
    older = add_memory(store, "older.md", tags={"status": "done"}, modified=now - timedelta(days=2))
    newer = add_memory(store, "newer.md", tags={"status": "done"}, modified=now)
    add_memory(store, "open.md", tags={"status": "open"}, modified=now)

    records = store.tag_only_search([TagFilter.parse("status=done")], require_all=False, limit=10)
    assert [r.id for r in records] == [newer, older]


def test_bool_tags_stored_as_text(store):
    mid = add_memory(store, "flag.md", tags={"pinned": True, "draft": False, "empty": None})
    assert store.tags_for(mid) == {"pinned": "true", "draft": "false", "empty": ""}

    records = store.tag_only_search([TagFilter.parse("pinned=true")], False, 10)
    assert [r.id for r in records] == [mid]


def test_upsert_tags_replaces_previous_set(store):
    mid = add_memory(store, "t.md", tags={"a": "1", "b": "2"})
    store.upsert_tags(mid, {"c": "3"})
    assert store.tags_for(mid) == {"c": "3"}


def test_pending_and_mark_processed(store):
    mid = add_memory(store, "p.md")
    assert [r.id for r in store.pending_memories()] == [mid]

    store.mark_processed(mid)
    record = store.get_memory_by_id(mid)
    assert record.last_processed is not None
    assert not record.is_stale
    assert store.pending_memories() == []

    # touching modified makes it stale again
    record.modified = record.last_processed + timedelta(seconds=1)
    store.upsert_memory(record)
    assert [r.id for r in store.pending_memories()] == [mid]


def test_equal_timestamps_are_not_stale(store):
    mid = add_memory(store, "same.md")
    store.mark_processed(mid)
    record = store.get_memory_by_id(mid)
    record.modified = record.last_processed
    store.upsert_memory(record)

    assert store.pending_memories() == []


def test_mark_processed_unknown_id(store):
    with pytest.raises(MemoryNotFoundError):
        store.mark_processed(12345)


def test_delete_memory_cascades(store):
    gone = add_memory(store, "gone.md", tags={"k": "v"}, vectors=[[1.0, 0.0]])
    kept = add_memory(store, "kept.md", vectors=[[0.0, 1.0]])
    store.upsert_backlink(gone, kept, 0.7)

    store.delete_memory("gone.md")

    assert store.get_memory("gone.md") is None
    assert store.embeddings_for(gone) == []
    assert store.tags_for(gone) == {}
    assert store.backlinks_for(kept, 0.0) == []
    assert store.stats() == {"memories": 1, "pending": 1, "embeddings": 1, "backlinks": 0, "tags": 0}

    with pytest.raises(MemoryNotFoundError):
        store.delete_memory("gone.md")


def test_embedding_vector_roundtrip(store):
    mid = add_memory(store, "v.md", vectors=[[0.5, -0.25, 1.0]])
    emb = store.embeddings_for(mid)[0]
    assert emb.dims == 3
    assert emb.get_vector().tolist() == [0.5, -0.25, 1.0]


def test_cosine_helpers():
    v1 = np.array([1, 0], dtype=np.float32)
    assert cosine_similarity(v1, np.array([1, 0], dtype=np.float32)) > 0.99
    assert cosine_similarity(v1, np.array([0, 1], dtype=np.float32)) < 0.01

    scores = batch_cosine_similarity(v1, np.array([[2, 0], [0, 0], [-1, 0]], dtype=np.float32))
    assert scores.tolist() == pytest.approx([1.0, 0.0, -1.0])


def test_changed_content_with_old_date_becomes_pending(store):
    mid = add_memory(store, "edited.md", body="first")
    store.mark_processed(mid)
    record = store.get_memory_by_id(mid)

    # front matter date unchanged, body changed
    store.upsert_memory(MemoryRecord(name="edited.md", body="second", modified=record.modified))

    assert store.get_memory_by_id(mid).modified > record.last_processed
    assert [r.id for r in store.pending_memories()] == [mid]


def test_timestamps_read_back_as_aware_utc(store):
    mid = add_memory(store, "tz.md", modified=datetime(2024, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2))))
    store.mark_processed(mid)
    record = store.get_memory_by_id(mid)

    assert record.modified == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert record.last_processed.tzinfo is not None
    assert not record.is_stale


def test_delete_memory_releases_lock(store):
    mid = add_memory(store, "locked.md")
    store.mark_processed(mid)
    assert mid in store._locks

    store.delete_memory("locked.md")
    assert mid not in store._locks

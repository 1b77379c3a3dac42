"""
Storage gateway for memories, chunk embeddings, tags and semantic backlinks.

Every method opens its own short session and commits before returning.
Nothing here spans a transaction across calls: delete_embeddings followed
by insert_embedding is two commits, and a reader in between sees no chunks.
"""
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import delete, func, or_
from sqlmodel import Session, select

from memrag.logging import logger
from memrag.models.backlink import SemanticBacklink
from memrag.models.base import to_utc, utc_now
from memrag.models.memory import MemoryRecord, MemoryTag
from memrag.models.vector import Embedding
from memrag.errors import MemoryNotFoundError
from memrag.search.filters import TagFilter, combine_tag_filters, tag_value_str
from memrag.search.vector_search import best_chunk_scores


@dataclass
class SimilarMemory:
    memory: MemoryRecord
    similarity: float


class VectorStore:
    def __init__(self, engine):
        self.engine = engine
        self._locks: Dict[int, threading.RLock] = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()
        self._backlink_lock = threading.Lock()

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    @contextmanager
    def memory_lock(self, memory_id: int) -> Iterator[None]:
        """Serialize writes touching one memory id. Reentrant for the holding thread."""
        with self._locks_guard:
            lock = self._locks[memory_id]
        with lock:
            yield

    def upsert_memory(self, record: MemoryRecord) -> int:
        """
        Insert a memory or update the row with the same name.

        Existing rows are found by name; ids are assigned by the database and
        any id on the incoming record is ignored. Returns the row id and sets
        it on ``record``.

        Updates run under the memory's lock, so they wait for an in-flight
        ``process`` of the same memory. Changed content whose ``modified`` is
        not after ``last_processed`` gets ``modified`` bumped to now, so the
        edit is always picked up by the next pending pass.
        """
        existing = self.get_memory(record.name)
        if existing is None:
            logger.debug(f"Inserting memory {record.name}")
            row = MemoryRecord(
                name=record.name,
                title=record.title,
                description=record.description,
                content=record.content,
                body=record.body,
                created=to_utc(record.created),
                modified=to_utc(record.modified),
                content_hash=record.content_hash,
            )
            with self._session() as session:
                session.add(row)
                session.commit()
                session.refresh(row)
            record.id = row.id
            return record.id

        with self.memory_lock(existing.id), self._session() as session:
            row = session.get(MemoryRecord, existing.id)
            if row is None:
                raise MemoryNotFoundError(record.name)

            logger.debug(f"Updating memory {record.name} (ID: {row.id})")
            changed = row.content_hash != record.content_hash or row.body != record.body
            modified = to_utc(record.modified)
            if changed and row.last_processed is not None and modified <= row.last_processed:
                modified = utc_now()

            row.title = record.title
            row.description = record.description
            row.content = record.content
            row.body = record.body
            row.modified = modified
            row.content_hash = record.content_hash
            session.add(row)
            session.commit()
            record.id = row.id

        return record.id

    def upsert_tags(self, memory_id: int, tags: Dict[str, Any]):
        """Replace the tag set of a memory."""
        with self.memory_lock(memory_id), self._session() as session:
            session.exec(delete(MemoryTag).where(MemoryTag.memory_id == memory_id))
            for name, value in (tags or {}).items():
                session.add(MemoryTag(memory_id=memory_id, tag_name=name, tag_value=tag_value_str(value)))
            session.commit()

    def tags_for(self, memory_id: int) -> Dict[str, str]:
        with self._session() as session:
            rows = session.exec(select(MemoryTag).where(MemoryTag.memory_id == memory_id)).all()
            return {t.tag_name: t.tag_value for t in rows}

    def get_memory(self, name: str) -> Optional[MemoryRecord]:
        with self._session() as session:
            return session.exec(select(MemoryRecord).where(MemoryRecord.name == name)).first()

    def get_memory_by_id(self, memory_id: int) -> Optional[MemoryRecord]:
        with self._session() as session:
            return session.get(MemoryRecord, memory_id)

    def list_memories(self) -> List[MemoryRecord]:
        with self._session() as session:
            return list(session.exec(select(MemoryRecord).order_by(MemoryRecord.name)).all())

    def pending_memories(self) -> List[MemoryRecord]:
        """Memories never processed or modified since their last processing."""
        with self._session() as session:
            return list(session.exec(
                select(MemoryRecord)
                .where(or_(
                    MemoryRecord.last_processed.is_(None),
                    MemoryRecord.modified > MemoryRecord.last_processed,
                ))
                .order_by(MemoryRecord.id)
            ).all())

    def mark_processed(self, memory_id: int):
        with self.memory_lock(memory_id), self._session() as session:
            record = session.get(MemoryRecord, memory_id)
            if record is None:
                raise MemoryNotFoundError(str(memory_id))
            record.last_processed = utc_now()
            session.add(record)
            session.commit()

    def delete_memory(self, name: str):
        """Remove a memory with its embeddings, tags and backlinks on either side."""
        record = self.get_memory(name)
        if record is None:
            raise MemoryNotFoundError(name)

        with self.memory_lock(record.id), self._session() as session:
            session.exec(delete(Embedding).where(Embedding.memory_id == record.id))
            session.exec(delete(MemoryTag).where(MemoryTag.memory_id == record.id))
            session.exec(delete(SemanticBacklink).where(or_(
                SemanticBacklink.memory_a_id == record.id,
                SemanticBacklink.memory_b_id == record.id,
            )))
            session.exec(delete(MemoryRecord).where(MemoryRecord.id == record.id))
            session.commit()
        with self._locks_guard:
            self._locks.pop(record.id, None)
        logger.info(f"Deleted memory {name} (ID: {record.id})")

    def delete_embeddings(self, memory_id: int):
        with self.memory_lock(memory_id), self._session() as session:
            session.exec(delete(Embedding).where(Embedding.memory_id == memory_id))
            session.commit()

    def insert_embedding(self, embedding: Embedding) -> int:
        with self.memory_lock(embedding.memory_id), self._session() as session:
            session.add(embedding)
            session.commit()
            session.refresh(embedding)
            return embedding.id

    def embeddings_for(self, memory_id: int) -> List[Embedding]:
        with self._session() as session:
            return list(session.exec(
                select(Embedding)
                .where(Embedding.memory_id == memory_id)
                .order_by(Embedding.chunk_index)
            ).all())

    def similarity_search(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int,
        exclude_id: int = -1,
        tag_filters: Optional[Sequence[TagFilter]] = None,
        require_all: bool = False,
    ) -> List[SimilarMemory]:
        """
        Memories whose best chunk has cosine similarity strictly above threshold.

        Ordered by similarity, highest first, capped at ``limit``.
        ``exclude_id`` is dropped when it is >= 0.
        """
        with self._session() as session:
            stmt = select(Embedding)
            if exclude_id >= 0:
                stmt = stmt.where(Embedding.memory_id != exclude_id)

            tag_clause = combine_tag_filters(tag_filters or [], require_all)
            if tag_clause is not None:
                matching = select(MemoryRecord.id).where(tag_clause)
                stmt = stmt.where(Embedding.memory_id.in_(matching))

            embeddings = session.exec(stmt).all()
            if not embeddings:
                return []

            scores = best_chunk_scores(query_embedding, embeddings)
            ranked = sorted(
                ((mid, score) for mid, score in scores.items() if score > threshold),
                key=lambda item: (-item[1], item[0]),
            )[:limit]
            if not ranked:
                return []

            ids = [mid for mid, _ in ranked]
            records = {
                r.id: r for r in session.exec(select(MemoryRecord).where(MemoryRecord.id.in_(ids))).all()
            }

        logger.debug(f"Vector search: {len(embeddings)} chunks scanned, {len(ranked)} memories above {threshold}")
        return [SimilarMemory(memory=records[mid], similarity=score) for mid, score in ranked if mid in records]

    def tag_only_search(
        self,
        tag_filters: Sequence[TagFilter],
        require_all: bool,
        limit: int,
    ) -> List[MemoryRecord]:
        """Memories matching the tag filters, most recently modified first."""
        with self._session() as session:
            stmt = select(MemoryRecord)
            tag_clause = combine_tag_filters(tag_filters, require_all)
            if tag_clause is not None:
                stmt = stmt.where(tag_clause)
            stmt = stmt.order_by(MemoryRecord.modified.desc(), MemoryRecord.id).limit(limit)
            return list(session.exec(stmt).all())

    def upsert_backlink(self, memory_a_id: int, memory_b_id: int, similarity: float):
        """Store the undirected edge under (min id, max id). Last write wins."""
        if memory_a_id == memory_b_id:
            raise ValueError(f"refusing self backlink for memory {memory_a_id}")
        a, b = min(memory_a_id, memory_b_id), max(memory_a_id, memory_b_id)

        with self._backlink_lock, self._session() as session:
            existing = session.exec(
                select(SemanticBacklink).where(
                    SemanticBacklink.memory_a_id == a,
                    SemanticBacklink.memory_b_id == b,
                )
            ).first()
            if existing:
                existing.similarity_score = float(similarity)
                session.add(existing)
            else:
                session.add(SemanticBacklink(memory_a_id=a, memory_b_id=b, similarity_score=float(similarity)))
            session.commit()

    def backlinks_for(self, memory_id: int, min_similarity: float) -> List[SemanticBacklink]:
        with self._session() as session:
            return list(session.exec(
                select(SemanticBacklink)
                .where(
                    or_(SemanticBacklink.memory_a_id == memory_id, SemanticBacklink.memory_b_id == memory_id),
                    SemanticBacklink.similarity_score >= min_similarity,
                )
                .order_by(SemanticBacklink.similarity_score.desc(), SemanticBacklink.id)
            ).all())

    def stats(self) -> Dict[str, int]:
        with self._session() as session:
            return {
                "memories": session.exec(select(func.count()).select_from(MemoryRecord)).one(),
                "pending": session.exec(
                    select(func.count()).select_from(MemoryRecord).where(or_(
                        MemoryRecord.last_processed.is_(None),
                        MemoryRecord.modified > MemoryRecord.last_processed,
                    ))
                ).one(),
                "embeddings": session.exec(select(func.count()).select_from(Embedding)).one(),
                "backlinks": session.exec(select(func.count()).select_from(SemanticBacklink)).one(),
                "tags": session.exec(select(func.count()).select_from(MemoryTag)).one(),
            }

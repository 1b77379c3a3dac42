"""
Keeps the vector store in step with the document collaborator.

The document store itself (files, front matter parsing) lives outside this
package; anything implementing DocumentSource can be synced.
"""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from memrag.logging import logger, op_scope
from memrag.models.base import to_utc, utc_now
from memrag.models.memory import MemoryRecord
from memrag.rag.processor import RAGProcessor
from memrag.rag.results import ProcessingReport
from memrag.search.vector_store import VectorStore


@dataclass
class Frontmatter:
    title: str = ""
    description: str = ""
    tags: Dict[str, Any] = field(default_factory=dict)
    created: Optional[datetime] = None
    modified: Optional[datetime] = None


@dataclass
class Document:
    content: str # raw, with front matter
    body: str # front matter stripped
    frontmatter: Frontmatter = field(default_factory=Frontmatter)


class DocumentSource(Protocol):
    def list(self) -> List[str]: ...

    def read_with_metadata(self, name: str) -> Document: ...


def compute_content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class DocumentSync:
    def __init__(self, source: DocumentSource, store: VectorStore, processor: RAGProcessor):
        self.source = source
        self.store = store
        self.processor = processor

    def sync_one(self, name: str) -> bool:
        """
        Mirror one document into the store and (re)process it.

        Returns False when the stored content hash already matches and
        nothing was done. Processing failures are logged; the memory stays
        pending and is retried by the next pending pass.
        """
        doc = self.source.read_with_metadata(name)
        content_hash = compute_content_hash(doc.content)

        existing = self.store.get_memory(name)
        if existing is not None and existing.content_hash == content_hash:
            return False

        fm = doc.frontmatter
        now = utc_now()
        # The store bumps modified when changed content carries a date that is not newer
        modified = to_utc(fm.modified) or now

        record = MemoryRecord(
            name=name,
            title=fm.title or "",
            description=fm.description or "",
            content=doc.content,
            body=doc.body,
            created=to_utc(fm.created) or now,
            modified=modified,
            content_hash=content_hash,
        )
        memory_id = self.store.upsert_memory(record)
        self.store.upsert_tags(memory_id, fm.tags)

        stored = self.store.get_memory_by_id(memory_id)
        try:
            self.processor.process(stored)
        except Exception as e:
            logger.warning(f"Failed to process memory {name}: {e}")
        return True

    def sync_all(self) -> ProcessingReport:
        """Sync every document the source lists. Failures are isolated per document."""
        report = ProcessingReport()
        with op_scope("sync"):
            for name in self.source.list():
                try:
                    if self.sync_one(name):
                        report.processed.append(name)
                except Exception as e:
                    logger.warning(f"Failed to sync memory {name}: {e}")
                    report.failed.append(name)
        return report

    def delete(self, name: str):
        self.store.delete_memory(name)

"""
RAG processor: turns memories into chunk embeddings and semantic backlinks,
and answers semantic search and backlink queries.

Per memory the lifecycle is Unprocessed -> Processing -> Processed, and a
processed memory becomes pending again once ``modified > last_processed``.
"""
from typing import Callable, List, Optional, Sequence

from memrag.config import RAGConfig, Settings, settings
from memrag.embeddings.batch import BatchEmbedder
from memrag.embeddings.chunker import ChunkConfig, chunk_markdown
from memrag.embeddings.client import EmbeddingClient
from memrag.errors import ConfigurationError, EmbeddingProviderError, MemoryNotFoundError
from memrag.logging import logger, op_scope
from memrag.models.memory import MemoryRecord
from memrag.models.vector import Embedding
from memrag.rag.results import (
    BacklinkResult,
    LINK_SEMANTIC,
    ProcessingReport,
    SOURCE_EMBEDDING,
    make_snippet,
)
from memrag.search.filters import TagFilter
from memrag.search.vector_store import SimilarMemory, VectorStore

# Returns explicit (link-based) backlinks for a memory name
ExplicitBacklinkProvider = Callable[[str], List[BacklinkResult]]

# Score reported for tag-only matches, where no similarity is computed
NEUTRAL_SCORE = 1.0


class RAGProcessor:
    def __init__(
        self,
        store: VectorStore,
        client: EmbeddingClient,
        config: RAGConfig = RAGConfig(),
        batch_embedder: Optional[BatchEmbedder] = None,
        explicit_backlinks: Optional[ExplicitBacklinkProvider] = None,
    ):
        self.store = store
        self.client = client
        self.config = config
        self.batch_embedder = batch_embedder or BatchEmbedder(client, config.batch_size, config.batch_delay)
        self.chunk_config = ChunkConfig(
            max_size=config.chunk_max_size,
            min_size=config.chunk_min_size,
            overlap=config.chunk_overlap,
        )
        self.explicit_backlinks = explicit_backlinks

    @classmethod
    def from_settings(
        cls,
        store: VectorStore,
        s: Settings = settings,
        explicit_backlinks: Optional[ExplicitBacklinkProvider] = None,
    ) -> "RAGProcessor":
        api_key = s.VOYAGE_API_KEY.get_secret_value() if s.VOYAGE_API_KEY else ""
        if not api_key:
            raise ConfigurationError("MEMRAG_VOYAGE_API_KEY is required")
        client = EmbeddingClient(api_key=api_key, base_url=s.VOYAGE_BASE_URL, timeout=s.REQUEST_TIMEOUT)
        return cls(store, client, RAGConfig.from_settings(s), explicit_backlinks=explicit_backlinks)

    def process(self, record: MemoryRecord):
        """
        Rebuild the embeddings and semantic backlinks of one memory.

        Old embeddings are deleted first and that delete is committed on its
        own. If chunk embedding fails afterwards the memory is left with no
        embeddings and no new ``last_processed``, so the next pending pass
        picks it up again.
        """
        if record.id is None:
            raise ValueError(f"memory {record.name} has not been stored yet")

        with self.store.memory_lock(record.id):
            # Work from the stored row; the caller's copy may predate an update
            current = self.store.get_memory_by_id(record.id)
            if current is None:
                raise MemoryNotFoundError(record.name)
            record = current
            logger.info(f"Processing memory: {record.name}")

            # 1. Drop previous embeddings
            self.store.delete_embeddings(record.id)

            # 2. Chunk
            chunks = chunk_markdown(record.body or "", self.chunk_config)
            if not chunks:
                logger.info(f"No chunks generated for memory: {record.name}")
                self.store.mark_processed(record.id)
                return

            logger.info(f"Generated {len(chunks)} chunks for memory: {record.name}")

            # 3. Embed, all or nothing
            vectors = self.batch_embedder.embed_all(chunks, self.config.embedding_model)
            if len(vectors) != len(chunks):
                raise EmbeddingProviderError(f"expected {len(chunks)} embeddings, got {len(vectors)}")

            # 4. Store
            for chunk, vector in zip(chunks, vectors):
                emb = Embedding(
                    memory_id=record.id,
                    chunk_text=chunk.text,
                    chunk_index=chunk.index,
                    model=self.config.embedding_model,
                )
                emb.set_vector(vector)
                self.store.insert_embedding(emb)

            # 5. The first chunk stands in for the whole document
            self._update_semantic_backlinks(record, vectors[0])

            # 6. Done
            self.store.mark_processed(record.id)
            logger.info(f"Successfully processed memory: {record.name}")

    def _update_semantic_backlinks(self, record: MemoryRecord, representative: List[float]) -> int:
        """
        Upsert an edge to every neighbour above the discovery threshold.

        Best effort: failures are logged and never abort processing. Edges to
        memories that dropped out of the neighbour list are left in place.
        """
        try:
            neighbours = self.store.similarity_search(
                representative,
                threshold=self.config.discovery_threshold,
                limit=self.config.discovery_limit,
                exclude_id=record.id,
            )
        except Exception as e:
            logger.error(f"Failed to find similar memories for {record.name}: {e}")
            return 0

        logger.info(f"Found {len(neighbours)} similar memories for memory ID {record.id}")

        created = 0
        for hit in neighbours:
            try:
                self.store.upsert_backlink(record.id, hit.memory.id, hit.similarity)
                created += 1
            except Exception as e:
                logger.error(f"Failed to create semantic backlink between {record.id} and {hit.memory.id}: {e}")
        return created

    def process_all_pending(self) -> ProcessingReport:
        """Process every stale memory. One failure does not stop the rest."""
        with op_scope("process"):
            return self._process_pending()

    def _process_pending(self) -> ProcessingReport:
        report = ProcessingReport()

        pending = self.store.pending_memories()
        if not pending:
            logger.info("No memories need processing")
            return report

        logger.info(f"Processing {len(pending)} memories that need embeddings")
        for record in pending:
            try:
                self.process(record)
                report.processed.append(record.name)
            except Exception as e:
                logger.error(f"Failed to process memory {record.name}: {e}")
                report.failed.append(record.name)

        logger.info(f"Pending pass done: {len(report.processed)} processed, {len(report.failed)} failed")
        return report

    def search(
        self,
        query: str,
        tag_filters: Optional[Sequence[TagFilter]] = None,
        require_all: bool = False,
        limit: int = 10,
    ) -> List[SimilarMemory]:
        """
        Semantic search, optionally restricted by tags.

        An empty query with tag filters lists the matching memories by
        recency, each with a neutral score of 1.0. An empty query without
        filters returns nothing.
        """
        filters = list(tag_filters or [])

        if not query.strip():
            if not filters:
                return []
            logger.info(f"Tag-only search with {len(filters)} filters (require_all={require_all})")
            records = self.store.tag_only_search(filters, require_all, limit)
            return [SimilarMemory(memory=r, similarity=NEUTRAL_SCORE) for r in records]

        query_vec = self.client.embed_one(query, self.config.embedding_model)
        results = self.store.similarity_search(
            query_vec,
            threshold=self.config.search_threshold,
            limit=limit,
            tag_filters=filters or None,
            require_all=require_all,
        )
        logger.info(f"Semantic search for '{query}' returned {len(results)} memories")
        return results

    def _require_memory(self, name: str) -> MemoryRecord:
        memory = self.store.get_memory(name)
        if memory is None:
            raise MemoryNotFoundError(name)
        return memory

    def semantic_backlinks(self, name: str, min_similarity: Optional[float] = None) -> List[SimilarMemory]:
        """Memories linked to ``name`` by a stored semantic edge, strongest first."""
        memory = self._require_memory(name)
        if min_similarity is None:
            min_similarity = self.config.backlink_display_threshold

        results = []
        for link in self.store.backlinks_for(memory.id, min_similarity):
            target_id = link.other(memory.id)
            target = self.store.get_memory_by_id(target_id)
            if target is None:
                logger.warning(f"Backlink {link.id} points at missing memory {target_id}")
                continue
            results.append(SimilarMemory(memory=target, similarity=link.similarity_score))
        return results

    def enhanced_backlinks(self, name: str, query: str = "", limit: int = 10) -> List[BacklinkResult]:
        """
        Explicit and semantic backlinks of a memory, optionally reranked.

        Explicit links come first, then semantic ones. With a query, the
        combined list is reranked by the provider and each score replaced by
        the rerank score; if reranking fails the original order is kept.
        """
        self._require_memory(name)

        results: List[BacklinkResult] = []
        if self.explicit_backlinks is not None:
            try:
                results.extend(self.explicit_backlinks(name))
            except Exception as e:
                logger.warning(f"Failed to get explicit backlinks for {name}: {e}")

        for hit in self.semantic_backlinks(name, self.config.backlink_display_threshold):
            results.append(BacklinkResult(
                memory=hit.memory,
                snippet=make_snippet(hit.memory.body, self.config.snippet_length),
                link_type=LINK_SEMANTIC,
                relevance_score=hit.similarity,
                source_type=SOURCE_EMBEDDING,
            ))

        if query and results:
            try:
                results = self._rerank(query, results, limit)
            except EmbeddingProviderError as e:
                logger.warning(f"Reranking failed, returning original order: {e}")

        if limit > 0:
            results = results[:limit]
        return results

    def _rerank(self, query: str, backlinks: List[BacklinkResult], top_k: int) -> List[BacklinkResult]:
        documents = []
        for link in backlinks:
            doc = link.memory.title
            if doc:
                doc += "\n\n"
            documents.append(doc + link.snippet)

        reranked = self.client.rerank(query, documents, self.config.rerank_model, top_k)

        ordered = []
        for item in reranked:
            if 0 <= item.index < len(backlinks):
                link = backlinks[item.index]
                link.relevance_score = item.relevance_score
                ordered.append(link)
        return ordered

    def validate_configuration(self):
        self.client.validate(self.config.embedding_model)

from memrag.embeddings.chunker import Chunk, ChunkConfig, chunk_text, chunk_markdown
from memrag.embeddings.client import EmbeddingClient, RerankResult
from memrag.embeddings.batch import BatchEmbedder

__all__ = [
    "Chunk",
    "ChunkConfig",
    "chunk_text",
    "chunk_markdown",
    "EmbeddingClient",
    "RerankResult",
    "BatchEmbedder",
]

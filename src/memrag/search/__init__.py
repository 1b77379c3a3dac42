from memrag.search.filters import TagFilter, filters_from_mapping
from memrag.search.vector_search import cosine_similarity, batch_cosine_similarity, best_chunk_scores
from memrag.search.vector_store import VectorStore, SimilarMemory

__all__ = [
    "TagFilter",
    "filters_from_mapping",
    "cosine_similarity",
    "batch_cosine_similarity",
    "best_chunk_scores",
    "VectorStore",
    "SimilarMemory",
]

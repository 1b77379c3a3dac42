from memrag.models.memory import MemoryRecord, MemoryTag
from memrag.models.vector import Embedding
from memrag.models.backlink import SemanticBacklink

__all__ = [
    "MemoryRecord", "MemoryTag",
    "Embedding",
    "SemanticBacklink",
]

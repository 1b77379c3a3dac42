from typing import Optional
from sqlmodel import Field
from memrag.models.base import CreatedAtMixin
import numpy as np

class Embedding(CreatedAtMixin, table=True):
    __tablename__ = "embeddings"

    id: Optional[int] = Field(default=None, primary_key=True)
    memory_id: int = Field(foreign_key="memories.id", index=True)

    chunk_text: str
    chunk_index: int

    model: str = ""
    dims: int = 0
    vector: bytes = b"" # Store as BLOB (numpy tobytes)

    def set_vector(self, embedding: list[float]):
        """Convert list of floats to bytes for storage."""
        arr = np.array(embedding, dtype=np.float32)
        self.vector = arr.tobytes()
        self.dims = len(embedding)

    def get_vector(self) -> np.ndarray:
        """Convert bytes back to numpy array."""
        return np.frombuffer(self.vector, dtype=np.float32)

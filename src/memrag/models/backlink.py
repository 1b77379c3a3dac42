from typing import Optional
from sqlmodel import Field, UniqueConstraint
from memrag.models.base import CreatedAtMixin


class SemanticBacklink(CreatedAtMixin, table=True):
    """Undirected similarity edge. memory_a_id is always the smaller id."""
    __tablename__ = "semantic_backlinks"
    __table_args__ = (
        UniqueConstraint("memory_a_id", "memory_b_id", name="unique_backlink_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    memory_a_id: int = Field(foreign_key="memories.id", index=True)
    memory_b_id: int = Field(foreign_key="memories.id", index=True)
    similarity_score: float = Field(index=True)

    def other(self, memory_id: int) -> int:
        """Return the id on the opposite side of the edge."""
        return self.memory_b_id if self.memory_a_id == memory_id else self.memory_a_id

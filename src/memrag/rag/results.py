from dataclasses import dataclass, field
from typing import List
from memrag.models.memory import MemoryRecord

LINK_EXPLICIT = "explicit"
LINK_SEMANTIC = "semantic"

SOURCE_WIKI = "wiki"
SOURCE_MARKDOWN = "markdown"
SOURCE_EMBEDDING = "embedding"


@dataclass
class BacklinkResult:
    memory: MemoryRecord
    snippet: str
    link_type: str # LINK_EXPLICIT or LINK_SEMANTIC
    relevance_score: float
    source_type: str # SOURCE_WIKI, SOURCE_MARKDOWN or SOURCE_EMBEDDING


@dataclass
class ProcessingReport:
    processed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def make_snippet(body: str, length: int = 200) -> str:
    if len(body) > length:
        return body[:length] + "..."
    return body

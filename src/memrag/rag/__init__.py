from memrag.rag.processor import RAGProcessor
from memrag.rag.results import BacklinkResult, ProcessingReport
from memrag.rag.sync import Document, DocumentSource, DocumentSync, Frontmatter
from memrag.rag.links import ExplicitBacklinkFinder, extract_links

__all__ = [
    "RAGProcessor",
    "BacklinkResult",
    "ProcessingReport",
    "Document",
    "DocumentSource",
    "DocumentSync",
    "Frontmatter",
    "ExplicitBacklinkFinder",
    "extract_links",
]

"""
Explicit link extraction.

Finds ``[[wiki]]`` links and ``[text](target.md)`` markdown links in memory
content, and turns documents linking to a memory into explicit backlinks.
"""
import re
from dataclasses import dataclass
from typing import List

from memrag.logging import logger
from memrag.models.memory import MemoryRecord
from memrag.rag.results import BacklinkResult, LINK_EXPLICIT, SOURCE_MARKDOWN, SOURCE_WIKI, make_snippet

WIKI_LINK_RE = re.compile(r"\[\[([^\]]+)\]\]")
# Images (![alt](x.md)) are not links
MARKDOWN_LINK_RE = re.compile(r"(?<!!)\[([^\]]*)\]\(\s*([^)\s]+\.md)\s*\)")


@dataclass
class Link:
    text: str
    target: str
    type: str # SOURCE_WIKI or SOURCE_MARKDOWN


def with_md_suffix(name: str) -> str:
    return name if name.endswith(".md") else name + ".md"


def extract_links(content: str) -> List[Link]:
    links = []
    for match in WIKI_LINK_RE.finditer(content):
        text = match.group(1)
        links.append(Link(text=text, target=with_md_suffix(text.strip()), type=SOURCE_WIKI))
    for match in MARKDOWN_LINK_RE.finditer(content):
        links.append(Link(text=match.group(1), target=match.group(2), type=SOURCE_MARKDOWN))
    return links


def links_to(link: Link, target_name: str) -> bool:
    return link.target in (target_name, with_md_suffix(target_name))


class ExplicitBacklinkFinder:
    """
    Callable that scans a document source for memories linking to a name.

    Meant to be handed to RAGProcessor as its explicit backlink provider.
    """

    def __init__(self, source, store, snippet_length: int = 200):
        self.source = source
        self.store = store
        self.snippet_length = snippet_length

    def __call__(self, target_name: str) -> List[BacklinkResult]:
        results = []
        for name in self.source.list():
            if name == target_name:
                continue
            try:
                doc = self.source.read_with_metadata(name)
            except Exception as e:
                logger.warning(f"Skipping {name} while scanning for links: {e}")
                continue

            link = next((l for l in extract_links(doc.content) if links_to(l, target_name)), None)
            if link is None:
                continue

            record = self.store.get_memory(name)
            if record is None:
                record = MemoryRecord(
                    name=name,
                    title=doc.frontmatter.title,
                    description=doc.frontmatter.description,
                    content=doc.content,
                    body=doc.body,
                )
            results.append(BacklinkResult(
                memory=record,
                snippet=make_snippet(doc.body, self.snippet_length),
                link_type=LINK_EXPLICIT,
                relevance_score=1.0,
                source_type=link.type,
            ))
        return results

from typing import List, Optional, Sequence
from memrag.rag.results import BacklinkResult, make_snippet
from memrag.search.filters import TagFilter
from memrag.search.vector_store import SimilarMemory


def describe_filters(filters: Sequence[TagFilter], require_all: bool) -> str:
    parts = [f"{f.key}:{f.value}" if f.check_value and f.value else f.key for f in filters]
    connector = "all of" if require_all else "any of"
    return f"{connector} tags [{', '.join(parts)}]"


def format_search_results(
    query: str,
    results: List[SimilarMemory],
    tag_filters: Optional[Sequence[TagFilter]] = None,
    require_all: bool = False,
) -> str:
    desc = f"'{query}'"
    if tag_filters:
        desc += f" with {describe_filters(tag_filters, require_all)}"

    if not results:
        return f"No memories found for semantic search: {desc}"

    lines = [f"# Semantic search results for {desc}", ""]
    for i, hit in enumerate(results, 1):
        memory = hit.memory
        lines.append(f"## {i}. {memory.name}")
        if memory.title and memory.title != memory.name:
            lines += [f"**Title:** {memory.title}", ""]
        lines += ["**Snippet:**", make_snippet(memory.body, 300), ""]
        lines += [f"**Similarity:** {hit.similarity:.3f}", ""]
        if memory.description:
            lines += [f"**Description:** {memory.description}", ""]
        lines += ["---", ""]
    return "\n".join(lines)


def format_backlinks(name: str, backlinks: List[BacklinkResult], query: str = "") -> str:
    if not backlinks:
        return f"No backlinks found for '{name}'"

    header = f"# Related memories for '{name}'"
    if query:
        header += f" (query: {query})"
    lines = [header, ""]
    for i, link in enumerate(backlinks, 1):
        memory = link.memory
        lines.append(f"## {i}. {memory.name}")
        if memory.title and memory.title != memory.name:
            lines += [f"**Title:** {memory.title}", ""]
        lines += ["**Snippet:**", link.snippet, ""]
        lines += [f"**Link Type:** {link.link_type} | **Relevance:** {link.relevance_score:.3f}", ""]
        if memory.description:
            lines += [f"**Description:** {memory.description}", ""]
        lines += ["---", ""]
    return "\n".join(lines)

"""
Boundary-aware text chunking.

Splits a memory body into overlapping chunks that prefer natural split
points (paragraphs, sentences, headings, list items, code fences) over
hard cuts. Chunking is deterministic: same input and config, same chunks.
"""
import re
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import List, Tuple

MAX_CHUNK_SIZE = 1000
MIN_CHUNK_SIZE = 100
OVERLAP_SIZE = 100

PARAGRAPH_RE = re.compile(r"\n\s*\n")
SENTENCE_RE = re.compile(r"[.!?]\s+[A-Z]")
HEADER_RE = re.compile(r"^#+\s+", re.MULTILINE)
LIST_ITEM_RE = re.compile(r"^[ \t]*[-*+]\s+", re.MULTILINE)
CODE_FENCE_RE = re.compile(r"```")

# Trailing markdown fragments left behind by a chunk cut
DANGLING_LINK_RE = re.compile(r"\[([^\]]*)\]\($")
DANGLING_LINK_TEXT_RE = re.compile(r"\[[^\]]*$")
STRONG_RE = re.compile(r"\*\*")
# A lone '*' touching a word on at least one side; '* item' list markers are not emphasis
EMPHASIS_RE = re.compile(r"(?<![*\s])\*(?!\*)|(?<!\*)\*(?![*\s])")
SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")


@dataclass(frozen=True)
class ChunkConfig:
    max_size: int = MAX_CHUNK_SIZE
    min_size: int = MIN_CHUNK_SIZE
    overlap: int = OVERLAP_SIZE


@dataclass
class Chunk:
    text: str
    index: int
    start: int # offset into the normalized text
    end: int


def normalize_text(text: str) -> Tuple[str, List[int]]:
    """
    Collapse whitespace runs to a single space and trim the ends.

    Returns the normalized text and an offset map where ``offsets[i]`` is the
    position in the normalized text that raw position ``i`` lands on
    (``len(offsets) == len(text) + 1``). Boundaries are detected on the raw
    text, where newlines still exist, and translated through this map.
    """
    lead = len(text) - len(text.lstrip())
    tail = len(text.rstrip())

    out: List[str] = []
    offsets: List[int] = []
    prev_space = False
    for i, ch in enumerate(text):
        offsets.append(len(out))
        if i < lead or i >= tail:
            continue
        if ch.isspace():
            if not prev_space:
                out.append(" ")
                prev_space = True
        else:
            out.append(ch)
            prev_space = False
    offsets.append(len(out))
    return "".join(out), offsets


def find_boundaries(text: str) -> List[int]:
    """Candidate split points in ``text`` (raw offsets), excluding 0 and len."""
    points = []
    points.extend(m.end() for m in PARAGRAPH_RE.finditer(text))
    # Split right after the punctuation, before the whitespace
    points.extend(m.start() + 1 for m in SENTENCE_RE.finditer(text))
    points.extend(m.start() for m in HEADER_RE.finditer(text))
    points.extend(m.start() for m in LIST_ITEM_RE.finditer(text))
    points.extend(m.start() for m in CODE_FENCE_RE.finditer(text))
    return points


def _normalized_boundaries(raw: str) -> Tuple[str, List[int]]:
    normalized, offsets = normalize_text(raw)
    mapped = {offsets[p] for p in find_boundaries(raw)}
    mapped.add(0)
    mapped.add(len(normalized))
    return normalized, sorted(b for b in mapped if 0 <= b <= len(normalized))


def _create_chunks(text: str, boundaries: List[int], config: ChunkConfig) -> List[Chunk]:
    chunks: List[Chunk] = []
    n = len(text)
    start = 0

    while start < n:
        # Farthest boundary that keeps the chunk within max_size
        idx = bisect_right(boundaries, start + config.max_size) - 1
        end = boundaries[idx] if idx >= 0 and boundaries[idx] > start else start

        # No boundary fits: hard cut
        if end == start:
            end = min(start + config.max_size, n)

        piece = text[start:end].strip()
        # Short pieces are dropped, except the one that reaches the end
        if len(piece) >= config.min_size or end == n:
            chunks.append(Chunk(text=piece, index=len(chunks), start=start, end=end))

        if end >= n:
            break

        next_start = end - config.overlap
        if next_start <= start:
            next_start = end
        else:
            snapped = boundaries[bisect_left(boundaries, next_start)]
            # Only snap if that does not skip text past the current end
            if snapped <= end:
                next_start = snapped
        start = next_start

    return chunks


def chunk_text(text: str, config: ChunkConfig = ChunkConfig()) -> List[Chunk]:
    """
    Split text into overlapping, boundary-aware chunks.

    Text that already fits in ``max_size`` is returned as a single chunk,
    untouched. Blank text yields no chunks.
    """
    if not text.strip():
        return []

    if len(text) <= config.max_size:
        return [Chunk(text=text, index=0, start=0, end=len(text))]

    normalized, boundaries = _normalized_boundaries(text)
    return _create_chunks(normalized, boundaries, config)


def _is_mid_word(text: str, pos: int) -> bool:
    return 0 < pos < len(text) and text[pos - 1].isalnum() and text[pos].isalnum()


def _trim_partial_words(piece: str, source: str, start: int, end: int) -> str:
    if _is_mid_word(source, start):
        space = re.search(r"\s", piece)
        if space:
            piece = piece[space.start():].strip()
    if _is_mid_word(source, end):
        space = max(piece.rfind(" "), piece.rfind("\n"), piece.rfind("\t"))
        if space != -1:
            piece = piece[:space].strip()
    return piece


def _strip_from_last(pattern: re.Pattern, text: str, final_fragment_only: bool = False) -> str:
    """
    Cut from the last match when the matches cannot all be paired.

    With ``final_fragment_only`` the cut is skipped if a sentence ends after
    the unpaired marker, which then reads as a literal (``*.py``, ``2**10``)
    rather than emphasis opened by the trailing fragment.
    """
    matches = list(pattern.finditer(text))
    if len(matches) % 2 == 0:
        return text
    last = matches[-1]
    if final_fragment_only and SENTENCE_END_RE.search(text, last.end()):
        return text
    return text[:last.start()]


def fix_broken_markdown(text: str) -> str:
    """Remove markdown constructs left unterminated at the end of a cut chunk."""
    text = DANGLING_LINK_RE.sub(r"\1", text)
    text = DANGLING_LINK_TEXT_RE.sub("", text)
    text = _strip_from_last(STRONG_RE, text, final_fragment_only=True)
    text = _strip_from_last(EMPHASIS_RE, text.rstrip(), final_fragment_only=True)
    # An odd fence count means the last fence opens a block the chunk never closes
    text = _strip_from_last(CODE_FENCE_RE, text)
    return text.strip()


def chunk_markdown(content: str, config: ChunkConfig = ChunkConfig()) -> List[Chunk]:
    """
    Chunk markdown, then clean up chunk edges.

    Edges that cut through a word are trimmed back to whitespace. Chunks
    that end before the end of the text also lose dangling links, emphasis
    and code fences at their end; the chunk that reaches the end of the
    text is the author's own ending and is left as is. Chunks emptied by
    the cleanup are dropped and the rest re-indexed.
    """
    if not content.strip():
        return []

    if len(content) <= config.max_size:
        source = content
        raw = [Chunk(text=content, index=0, start=0, end=len(content))]
    else:
        source, boundaries = _normalized_boundaries(content)
        raw = _create_chunks(source, boundaries, config)

    chunks: List[Chunk] = []
    for chunk in raw:
        piece = _trim_partial_words(chunk.text.strip(), source, chunk.start, chunk.end)
        if chunk.end < len(source):
            piece = fix_broken_markdown(piece)
        if not piece:
            continue
        chunks.append(Chunk(text=piece, index=len(chunks), start=chunk.start, end=chunk.end))
    return chunks

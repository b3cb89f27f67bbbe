"""
Structure-aware text chunking.

Text is cut along the coarsest boundary that keeps every chunk within
``max_length`` characters: headings, then blank-line paragraphs, then
sentences, then clauses, then whitespace-separated tokens. A token is
never cut; a token longer than ``max_length`` becomes a chunk of its own.

Headings and short paragraphs are carried: they never end a chunk while
the text after them still fits. Headings (and sentence fragments moved
forward) always open the chunk holding the text they introduce; a run of
short paragraphs is closed at its last paragraph boundary when the next
unit fits on its own.
"""
import re
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

SHORT_UNIT_CHARS = 100

PARAGRAPH, SENTENCE, CLAUSE, TOKEN = range(4)

_BLANK_LINE_RUN = re.compile(r"\n(?:[ \t]*\n){2,}")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s")
_CAPS_HEADING = re.compile(r"^[A-Z][^a-z]{2,}$")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_CLAUSE_BREAK = re.compile(r"(?<=[,;:])\s+")
# terminal punctuation, optionally closed by quotes/brackets, at a word end
_SENTENCE_END = re.compile(r"[.!?][\"')\]]*(?=\s|$)")

_SPLITTERS = (
    (SENTENCE, _SENTENCE_BREAK),
    (CLAUSE, _CLAUSE_BREAK),
    (TOKEN, None),
)


@dataclass(frozen=True)
class _Unit:
    text: str
    level: int
    carried: bool = False
    # must open the chunk that holds the text following it
    leading: bool = False


def normalize_text(text: str) -> str:
    """Unify line endings, squeeze blank-line runs, expand tabs and trim."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _BLANK_LINE_RUN.sub("\n\n", text)
    text = text.replace("\t", "    ")
    return text.strip()


def _squash(text: str) -> str:
    return " ".join(text.split())


def _is_heading(line: str) -> bool:
    line = line.strip()
    if _MARKDOWN_HEADING.match(line):
        return True
    return len(line) <= SHORT_UNIT_CHARS and bool(_CAPS_HEADING.match(line))


def _paragraph(lines: List[str]) -> Optional[_Unit]:
    text = _squash(" ".join(lines))
    if not text:
        return None
    return _Unit(text, PARAGRAPH, carried=len(text) < SHORT_UNIT_CHARS)


def _structural_units(text: str) -> List[_Unit]:
    """Headings and paragraphs in source order."""
    units: List[_Unit] = []
    for block in _PARAGRAPH_BREAK.split(text):
        lines: List[str] = []
        for line in block.split("\n"):
            if not _is_heading(line):
                lines.append(line)
                continue
            para = _paragraph(lines)
            if para:
                units.append(para)
            lines = []
            units.append(_Unit(_squash(line), PARAGRAPH, carried=True, leading=True))
        para = _paragraph(lines)
        if para:
            units.append(para)
    return units


def _split_unit(unit: _Unit) -> List[_Unit]:
    """Break a unit along the next finer boundary that actually splits it."""
    for level, pattern in _SPLITTERS:
        if level <= unit.level:
            continue
        pieces = pattern.split(unit.text) if pattern else unit.text.split()
        pieces = [p for p in pieces if p]
        if len(pieces) > 1:
            return [_Unit(p, level) for p in pieces]
    return [unit]


def _length(units: List[_Unit]) -> int:
    if not units:
        return 0
    return sum(len(u.text) for u in units) + len(units) - 1


def _join(units: List[_Unit]) -> str:
    return _squash(" ".join(u.text for u in units))


def _split_trailing(buffer: List[_Unit], attr: str) -> Tuple[List[_Unit], List[_Unit]]:
    """Separate the trailing run of units with ``attr`` set from the rest."""
    cut = len(buffer)
    while cut > 0 and getattr(buffer[cut - 1], attr):
        cut -= 1
    return buffer[:cut], buffer[cut:]


def _detach_fragment(text: str) -> Tuple[str, Optional[_Unit]]:
    """
    Split off a trailing sentence fragment that lacks terminal punctuation.

    Text without any sentence end is returned whole.
    """
    last = None
    for last in _SENTENCE_END.finditer(text):
        pass
    if last is None:
        return text, None
    tail = text[last.end():].strip()
    if not tail:
        return text, None
    return text[:last.end()].rstrip(), _Unit(tail, SENTENCE, carried=True, leading=True)


def chunk_text(text: str, max_length: int = 8000) -> List[str]:
    """
    Split ``text`` into ordered chunks of at most ``max_length`` characters.

    Whitespace inside each chunk is collapsed to single spaces. The only
    chunks longer than ``max_length`` are single tokens that have no
    whitespace to split on; they are returned verbatim.

    Args:
        text: Extracted document text.
        max_length: Upper bound on chunk length, in characters.

    Returns:
        Non-empty chunks in source order. Empty input yields ``[]``.

    Raises:
        TypeError: If ``text`` is not a string.
        ValueError: If ``max_length`` is smaller than 1.
    """
    if not isinstance(text, str):
        raise TypeError(f"text must be str, not {type(text).__name__}")
    if max_length < 1:
        raise ValueError("max_length must be >= 1")

    normalized = normalize_text(text)
    if not normalized:
        return []

    queue: Deque[_Unit] = deque(_structural_units(normalized))
    chunks: List[str] = []
    buffer: List[_Unit] = []
    size = 0

    while queue:
        unit = queue.popleft()
        needed = len(unit.text) + (size + 1 if buffer else 0)
        if needed <= max_length:
            buffer.append(unit)
            size = needed
            continue

        head, carry = _split_trailing(buffer, "carried")
        if head:
            flushed, fragment = _detach_fragment(_join(head))
            chunks.append(flushed)
            buffer = ([fragment] if fragment else []) + carry
            size = _length(buffer)
            queue.appendleft(unit)
            continue

        # buffer holds only carried units (or nothing)
        settled, lead = _split_trailing(buffer, "leading")
        if settled and len(unit.text) <= max_length:
            # close the short-paragraph run at its paragraph boundary
            chunks.append(_join(settled))
            buffer = lead
            size = _length(buffer)
            queue.appendleft(unit)
            continue

        pieces = _split_unit(unit)
        if len(pieces) > 1:
            queue.extendleft(reversed(pieces))
            continue

        # indivisible: the carried text cannot share a chunk with it
        if buffer:
            chunks.append(_join(buffer))
        buffer = [unit]
        size = len(unit.text)

    if buffer:
        chunks.append(_join(buffer))
    return [c for c in chunks if c]

"""
Anchor-based segmentation of POA text.

Each semantic block starts at a line matching one of the anchors below and
runs until the next anchor (or end of text). The table is ordered: when two
anchors match at the same offset the earlier entry wins. Adding a new block
type means adding one row here, nothing else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_LINE_START = r"^[ \t]*"
_DECORATION = r"[^\w\n]*\s*"  # "*** ", ">>> " and similar banner noise

ANCHORS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (label, re.compile(_LINE_START + pattern, re.IGNORECASE | re.MULTILINE))
    for label, pattern in (
        ("principal", r"(?:I,\s+\w|principal\s*:)"),
        (
            "agent",
            r"(?:(?:primary|secondary|tertiary|alternate|successor|appointed|co-?)\s*)?"
            r"agent\s*(?:#\s*)?\d*\s*:",
        ),
        ("cremation", _DECORATION + r"cremation\s+(?:authority|authori[sz]ation)\b"),
        ("durability", _DECORATION + r"durability(?:\s+clause)?\b"),
        ("expiration", _DECORATION + r"(?:expiration|termination)(?:\s+date)?\s*:"),
        ("signature", r"principal(?:'s)?\s+signature\b"),
        (
            "notary",
            r"(?:notary\s+acknowledge?ment\b"
            r"|(?:certificate\s+of\s+)?acknowledge?ment(?:\s+of\s+notary(?:\s+public)?)?[ \t]*$"
            r"|notary\s+public\s*:"
            r"|[^\n]*\backnowledged\s+before\s+me\b)",
        ),
        ("witness", r"(?:electronic\s+)?witness\s*(?:#\s*)?\d*\s*:"),
        (
            "witness_header",
            _DECORATION
            + r"(?:(?:witness(?:es)?\s+signatures?|signed\s+in\s+the\s+presence\s+of)\b|witnesses[ \t]*:)",
        ),
    )
)

PREAMBLE = "preamble"


@dataclass(frozen=True)
class Segment:
    """A labelled span of the document text."""

    label: str
    start: int  # Offset of the anchor line
    end: int  # Offset of the next anchor, or len(text)
    header: str  # The anchor text itself
    body: str  # Everything after the anchor up to ``end``

    @property
    def text(self) -> str:
        return self.header + self.body


def segment(text: str) -> list[Segment]:
    """Split ``text`` into labelled segments in document order.

    Text before the first anchor becomes a ``preamble`` segment so nothing is
    silently dropped.
    """
    hits: dict[int, tuple[int, str, re.Match[str]]] = {}
    for priority, (label, pattern) in enumerate(ANCHORS):
        for match in pattern.finditer(text):
            existing = hits.get(match.start())
            if existing is None or priority < existing[0]:
                hits[match.start()] = (priority, label, match)

    ordered = sorted(hits.items())
    segments: list[Segment] = []

    first_start = ordered[0][0] if ordered else len(text)
    if text[:first_start].strip():
        segments.append(Segment(PREAMBLE, 0, first_start, "", text[:first_start]))

    for index, (start, (_, label, match)) in enumerate(ordered):
        end = ordered[index + 1][0] if index + 1 < len(ordered) else len(text)
        # A long anchor (e.g. "...acknowledged before me") may run past the next one
        header_end = min(match.end(), end)
        segments.append(
            Segment(label, start, end, text[start:header_end], text[header_end:end])
        )

    return segments


def bodies(segments: list[Segment], label: str) -> list[str]:
    """Text of every segment with ``label``, headers included."""
    return [s.text for s in segments if s.label == label]


def first(segments: list[Segment], label: str) -> Segment | None:
    for s in segments:
        if s.label == label:
            return s
    return None

"""
Person-name cleanup and comparison.

Names in signature blocks arrive wrapped in noise: labels ("WITNESS #1:",
"E-Notary:"), typed-signature marks ("/s/"), parenthetical notes
("(Typed)"), signature-line underscores and OCR whitespace. Conflict rules
compare names after normalisation, so "Dr. James Wilson" and
"JAMES  WILSON" are the same person.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, Optional

_HONORIFICS: frozenset[str] = frozenset({
    "mr", "mrs", "ms", "miss", "mx", "dr", "prof", "rev", "hon",
    "attorney", "atty", "esq", "jr", "sr", "ii", "iii", "iv",
})

_PARENTHETICAL = re.compile(r"\([^)]*\)|\[[^\]]*\]")
_TYPED_SIGNATURE = re.compile(r"/s/", re.IGNORECASE)
_SIGNATURE_LINE = re.compile(r"_{2,}")
_TRAILING_NOTE = re.compile(r"\s*(?:\*{3}.*|-{2,}.*)$")


def clean_person_name(raw: Optional[str]) -> Optional[str]:
    """Strip labels, notes and signature artefacts from a captured name.

    Returns None when nothing name-like is left (e.g. a blank signature line).

    Example:
        "CONFLICT: Robert Smith (SAME AS AGENT)" -> "Robert Smith"
        "/s/ Mary Johnson (Typed)"               -> "Mary Johnson"
    """
    if raw is None:
        return None
    value = raw.split("\n", 1)[0]
    # Labels stack up ("Witness 1: Electronic Witness 1: Tom Baker"), keep the tail
    if ":" in value:
        value = value.rsplit(":", 1)[1]
    value = _PARENTHETICAL.sub(" ", value)
    value = _TYPED_SIGNATURE.sub(" ", value)
    value = _SIGNATURE_LINE.sub(" ", value)
    value = _TRAILING_NOTE.sub("", value)
    value = re.sub(r"\s+", " ", value).strip(" ,;.-*~")
    if not re.search(r"[A-Za-z]{2,}", value):
        return None
    return value


def normalize_name(name: str) -> str:
    """Canonical form used for equality: lowercase ASCII, no honorifics or punctuation."""
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = decomposed.encode("ascii", "ignore").decode("ascii").lower()
    tokens = re.findall(r"[a-z0-9']+", ascii_only)
    return " ".join(t.replace("'", "") for t in tokens if t not in _HONORIFICS)


def names_match(left: Optional[str], right: Optional[str]) -> bool:
    """Case-insensitive, normalised equality. Absent or empty names never match."""
    if not left or not right:
        return False
    a, b = normalize_name(left), normalize_name(right)
    return bool(a) and a == b


def find_conflict(candidates: Iterable[Optional[str]], agents: Iterable[str]) -> Optional[tuple[str, str]]:
    """Return the first ``(candidate, agent)`` pair that names the same person."""
    agent_list = list(agents)
    for candidate in candidates:
        for agent in agent_list:
            if names_match(candidate, agent):
                return candidate, agent  # type: ignore[return-value]
    return None


def dedupe_names(names: Iterable[str]) -> list[str]:
    """Drop repeats (by normalised form) while keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        key = normalize_name(name)
        if key and key not in seen:
            seen.add(key)
            result.append(name)
    return result

"""
Curated phrase sets for cremation authority and durability.

This is a checklist, not language understanding. A clause counts as explicit
cremation authority only when an authorisation word is bound to cremation or
disposition of remains within the same sentence. Creatively worded but
compliant documents can be missed; that is a known limitation, and the fix
is a new pattern here, reviewed like any other rule change.
"""

from __future__ import annotations

import re
from typing import Optional

# What the agent is being authorised over
_DISPOSITION_TARGET = (
    r"(?:cremat\w*"
    r"|disposition\s+of\s+(?:my\s+|the\s+)?(?:mortal\s+|human\s+)?remains"
    r"|final\s+disposition"
    r"|(?:my|mortal|cremated|human)\s+remains)"
)

# Any mention of what happens to the body. Broader than the target above:
# "final arrangements" and "funeral" are on topic but not specific enough.
DISPOSITION_TOPIC_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bcremat\w*",
        r"\bdisposition\s+of\s+(?:my\s+|the\s+)?(?:mortal\s+|human\s+)?remains\b",
        r"\b(?:my|mortal|cremated|human)\s+remains\b",
        r"\bfinal\s+disposition\b",
        r"\bfinal\s+arrangements?\b",
        r"\bfuneral\b",
        r"\bashes\b",
        r"\bdispose\s+of\s+my\s+(?:body|remains)\b",
    )
)

EXPLICIT_AUTHORIZATION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # "may authorize cremation", "authorized to make all decisions regarding cremation"
        rf"\bauthori[sz](?:e|es|ed|ing|ation)\b[^.;]{{0,80}}\b{_DISPOSITION_TARGET}",
        # "full cremation authority", "cremation authorization"
        rf"\b{_DISPOSITION_TARGET}[^.;]{{0,20}}\bauthori(?:ty|zation|sation)\b",
        # "power and authority to make all decisions regarding the disposition of my remains"
        rf"\b(?:power|authority|right)\b[^.;]{{0,60}}\b(?:to|over|for|regarding)\b[^.;]{{0,60}}\b{_DISPOSITION_TARGET}",
        # "I direct that my remains be cremated"
        rf"\b(?:empower(?:s|ed)?|direct(?:s|ed)?|instruct(?:s|ed)?)\b[^.;]{{0,60}}\b{_DISPOSITION_TARGET}",
    )
)

_NEGATED_AUTHORIZATION = re.compile(
    r"\b(?:do|does|shall|will|may|must)\s+not\s+(?:\w+\s+){0,2}"
    r"(?:authori[sz]e|permit|allow|consent\s+to)\b"
    r"|\bno\s+authority\b"
    r"|\bprohibit\w*\b[^.;]{0,40}\bcremat\w*",
    re.IGNORECASE,
)

DURABILITY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(?<!non-)(?<!non)\bdurable\b",
        r"\b(?:remain|remains|continue|continues|survive|survives)\b[^.]{0,60}"
        r"\b(?:incapacit\w*|disabilit\w*|incompeten\w*)",
        r"\bnot\s+be\s+affected\s+by\b[^.]{0,60}\b(?:incapacit|disabilit)\w*",
        r"\b(?:effective|valid)\b[^.]{0,40}\b(?:incapacit|disabilit)\w*",
        r"\bnotwithstanding\b[^.]{0,40}\bincapacit\w*",
    )
)


_NEGATED_DURABILITY = re.compile(
    r"\b(?:not|never)\s+(?:a\s+|be\s+)?durable\b|\bshall\s+not\s+(?:remain|continue|survive)\b",
    re.IGNORECASE,
)


def mentions_disposition(text: str) -> bool:
    """True if the text talks about cremation or disposition of remains at all."""
    return any(p.search(text) for p in DISPOSITION_TOPIC_PATTERNS)


def find_explicit_authorization(text: str) -> Optional[str]:
    """Return the matched explicit-authority phrase, or None for vague/negated text."""
    if _NEGATED_AUTHORIZATION.search(text):
        return None
    for pattern in EXPLICIT_AUTHORIZATION_PATTERNS:
        match = pattern.search(text)
        if match:
            return re.sub(r"\s+", " ", match.group(0)).strip()
    return None


def is_explicit_cremation_authority(text: str) -> bool:
    return find_explicit_authorization(text) is not None


def asserts_durability(text: str) -> bool:
    """True if the text says the power survives the principal's incapacity."""
    if _NEGATED_DURABILITY.search(text):
        return False
    return any(p.search(text) for p in DURABILITY_PATTERNS)

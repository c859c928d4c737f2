"""
Field Parser: extracted text → ParsedFields.

Pure regex over anchored segments. It never raises: a block that cannot be
found is left as None and the rule engine decides what that means. It is
better to report a field as absent than to fill it with a guess.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Optional

from .dates import find_dates, first_date
from .models import (
    CommissionNumber,
    ExtractionResult,
    NotaryBlock,
    ParsedFields,
    WitnessRecord,
)
from .names import clean_person_name, dedupe_names
from .segmenter import Segment, bodies, first, segment
from .verbiage import asserts_durability, find_explicit_authorization, mentions_disposition

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_LENGTH = 6

_SENTENCE_SPLIT = re.compile(r"(?<=[.;!?])\s+|\n\s*\n")
# Titles and banners: no lowercase letters and no sentence punctuation
_HEADING_LINE = re.compile(r"^[^a-z\n.;!?]*[A-Z][^a-z\n.;!?]*$", re.MULTILINE)


def parse_fields(
    extraction: ExtractionResult,
    commission_number_length: int = DEFAULT_COMMISSION_LENGTH,
) -> ParsedFields:
    """Locate the semantic blocks of a POA in extracted text.

    Args:
        extraction: Output of text acquisition (must not be unreadable).
        commission_number_length: Digits a well-formed commission number has.

    Returns:
        ParsedFields; any block that was not found is None (or [] for lists).
    """
    text = extraction.text
    segments = segment(text)
    logger.info(
        "Segmented document into %d block(s): %s",
        len(segments),
        ", ".join(s.label for s in segments),
    )

    return ParsedFields(
        principal=_extract_principal(segments),
        agents=_extract_agents(segments),
        cremation_clause=_extract_cremation_clause(text, segments),
        durability_clause=_extract_durability_clause(text, segments),
        notary=_extract_notary(segments, commission_number_length),
        witnesses=_extract_witnesses(segments),
        execution_date=_extract_execution_date(text, segments),
        expiration_date=_extract_expiration_date(segments),
        confidence=extraction.confidence,
    )


# ─── Parties ─────────────────────────────────────────────────────────


def _extract_principal(segments: list[Segment]) -> Optional[str]:
    block = first(segments, "principal")
    if block is None:
        return None
    value = re.sub(r"\s+", " ", block.text).strip()
    return value or None


_APPOINTMENT = re.compile(
    r"\bappoints?\s+(?:my\s+[\w-]+,\s+)?"
    r"(?P<name>[A-Z][\w.'-]*(?:\s+[A-Z][\w.'-]*)+)"
    r"(?:,)?\s+(?:as\s+my|to\s+act)",
)


def _extract_agents(segments: list[Segment]) -> list[str]:
    """Agent names from 'Agent:' lines, falling back to the appointment sentence."""
    names: list[str] = []
    for block in segments:
        if block.label != "agent":
            continue
        # "Agent: Jane Smith, 456 Oak Avenue, ...": the address follows the first comma
        value = block.body.split("\n", 1)[0].split(",", 1)[0]
        name = clean_person_name(value)
        if name:
            names.append(name)

    if not names:
        principal = first(segments, "principal")
        if principal is not None:
            match = _APPOINTMENT.search(re.sub(r"\s+", " ", principal.text))
            if match:
                name = clean_person_name(match.group("name"))
                if name:
                    names.append(name)

    return dedupe_names(names)


# ─── Clauses ─────────────────────────────────────────────────────────


def _sentences(text: str) -> list[str]:
    return [re.sub(r"\s+", " ", s).strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def _extract_cremation_clause(text: str, segments: list[Segment]) -> Optional[str]:
    """The span that talks about disposition of remains, explicit or not.

    A labelled 'CREMATION AUTHORITY' section wins when its body is on topic.
    Otherwise the first on-topic sentence anywhere is used, preferring one
    that is an explicit grant. Headings never count, including a title such
    as "POWER OF ATTORNEY FOR CREMATION AUTHORIZATION".
    """
    for block in segments:
        if block.label == "cremation":
            body = re.sub(r"\s+", " ", block.body).strip(" :*>\n")
            if body and mentions_disposition(body):
                return body

    candidates = [
        sentence
        for block in segments
        if block.label not in ("cremation", "notary", "witness", "witness_header")
        for sentence in _sentences(_HEADING_LINE.sub("", block.text))
        if mentions_disposition(sentence)
    ]
    for sentence in candidates:
        if find_explicit_authorization(sentence):
            return sentence
    return candidates[0] if candidates else None


def _extract_durability_clause(text: str, segments: list[Segment]) -> Optional[str]:
    for block in segments:
        if block.label == "durability":
            body = re.sub(r"\s+", " ", block.body).strip(" :<>\n")
            if body and asserts_durability(body):
                return body

    for sentence in _sentences(text):
        if asserts_durability(sentence):
            return sentence
    return None


# ─── Notary ──────────────────────────────────────────────────────────

_NOTARY_NAME = re.compile(
    r"^[ \t]*(?:e-?)?notary(?:\s+public)?(?:\s+name)?[ \t]*:[ \t]*(?P<name>[^\n]*)$",
    re.IGNORECASE | re.MULTILINE,
)
_NOTARY_NAME_TRAILING = re.compile(
    r"\bby\s+(?P<name>[A-Z][^\n,]*?),\s*notary\s+public\b", re.IGNORECASE
)
_COMMISSION = re.compile(
    r"\bcommission\s*(?:#|no\.?|number)[ \t]*:?[ \t]*(?P<token>[^\s]*)",
    re.IGNORECASE,
)
_COUNTY_LABEL = re.compile(r"^[ \t]*county[ \t]*:[ \t]*(?P<county>[^\n]*)$", re.IGNORECASE | re.MULTILINE)
_COUNTY_OF = re.compile(r"\bcounty\s+of\s+(?P<county>[A-Z][A-Za-z .'-]*?)\s*(?:[,;\n)]|$)", re.IGNORECASE)
_COMMISSION_EXPIRES = re.compile(
    r"\b(?:my\s+)?commission\s+expires?\b[ \t]*(?:on)?[ \t]*:?[ \t]*(?P<rest>[^\n]*)",
    re.IGNORECASE,
)
_NOTARIZED_ON = re.compile(
    r"\b(?:date\s+notarized|notarized\s+on|date\s+of\s+acknowledge?ment|acknowledged\s+before\s+me\s+on)\b"
    r"[ \t]*:?[ \t]*(?P<rest>[^\n]*)",
    re.IGNORECASE,
)


def _extract_notary(segments: list[Segment], commission_number_length: int) -> Optional[NotaryBlock]:
    """Parse the notary acknowledgment. None means no acknowledgment block at all."""
    blocks = bodies(segments, "notary")
    if not blocks:
        return None
    block = "\n".join(blocks)

    return NotaryBlock(
        name=_notary_name(block),
        commission_number=_commission_number(block, commission_number_length),
        county=_notary_county(block),
        expiration_date=_date_after(_COMMISSION_EXPIRES, block),
        notarized_date=_date_after(_NOTARIZED_ON, block),
    )


def _notary_name(block: str) -> Optional[str]:
    for match in _NOTARY_NAME.finditer(block):
        name = clean_person_name(match.group("name"))
        if name:
            return name
    match = _NOTARY_NAME_TRAILING.search(block)
    if match:
        return clean_person_name(match.group("name"))
    return None


def _commission_number(block: str, expected_length: int) -> Optional[CommissionNumber]:
    """The commission token, flagged malformed if it is not exactly N digits.

    A label with nothing after it is recorded as present-but-empty, which the
    completeness rule treats the same as malformed.
    """
    for match in _COMMISSION.finditer(block):
        token = match.group("token").strip(".,;")
        if token.lower().startswith("expire"):
            continue  # "Commission Expires:" is not a number label
        well_formed = token.isdigit() and len(token) == expected_length
        return CommissionNumber(raw=token, well_formed=well_formed)
    return None


def _notary_county(block: str) -> Optional[str]:
    match = _COUNTY_LABEL.search(block) or _COUNTY_OF.search(block)
    if not match:
        return None
    county = re.sub(r"\s+", " ", match.group("county")).strip(" .,;")
    return county or None


def _date_after(pattern: re.Pattern[str], block: str) -> Optional[date]:
    for match in pattern.finditer(block):
        parsed = first_date(match.group("rest"))
        if parsed is not None:
            return parsed
    return None


# ─── Witnesses ───────────────────────────────────────────────────────

_DATE_LINE = re.compile(r"^[ \t]*(?:date(?:d)?|signed\s+on)[ \t]*:?[ \t]*(?P<rest>[^\n]*)$", re.IGNORECASE | re.MULTILINE)


_LISTED_NAME = re.compile(r"^[A-Z][\w.'-]*(?:\s+[A-Z][\w.'-]*){1,3}$")
_NAME_SEPARATORS = re.compile(r"\s*(?:,|&|\band\b)\s*")


def _extract_witnesses(segments: list[Segment]) -> list[WitnessRecord]:
    """Witness records in document order. No witness blocks → [].

    'Witness 1: name' lines give one record each. A 'WITNESSES:' or 'Signed
    in the presence of:' heading gives one record per name listed under it.
    """
    witnesses: list[WitnessRecord] = []
    for block in segments:
        if block.label == "witness":
            name = clean_person_name(block.body.split("\n", 1)[0])
            witness_date: Optional[date] = None
            for match in _DATE_LINE.finditer(block.body):
                witness_date = first_date(match.group("rest"))
                if witness_date is not None:
                    break
            witnesses.append(WitnessRecord(name=name, date=witness_date))
        elif block.label == "witness_header":
            witnesses.extend(_listed_witnesses(block.body))
    return witnesses


def _listed_witnesses(body: str) -> list[WitnessRecord]:
    """Names under a witness heading, one per line or inline after the colon.

    Labelled lines (Address:, Signature:) are skipped; a Date: line dates the
    name above it.
    """
    records: list[WitnessRecord] = []
    for index, line in enumerate(body.split("\n")):
        date_match = _DATE_LINE.match(line)
        if date_match:
            parsed = first_date(date_match.group("rest"))
            if records and records[-1].date is None and parsed is not None:
                records[-1] = records[-1].model_copy(update={"date": parsed})
            continue
        if index == 0:
            line = line.lstrip(" \t:-")
        elif ":" in line:
            continue
        for part in _NAME_SEPARATORS.split(line):
            name = clean_person_name(part)
            if name and _LISTED_NAME.match(name):
                records.append(WitnessRecord(name=name))
    return records


# ─── Dates ───────────────────────────────────────────────────────────

_EXECUTED = re.compile(
    r"\b(?:dated|executed(?:\s+on)?|signed\s+(?:on|this))\b[ \t]*:?[ \t]*(?P<rest>[^\n]*)",
    re.IGNORECASE,
)
_EXPIRES_PHRASE = re.compile(
    r"\b(?:expires?|expiration\s+date|terminates?|shall\s+(?:expire|terminate))\b"
    r"[ \t]*(?:on)?[ \t]*:?[ \t]*(?P<rest>[^\n]*)",
    re.IGNORECASE,
)


def _extract_execution_date(text: str, segments: list[Segment]) -> Optional[date]:
    """When the principal signed: the signature line first, then 'Dated/Executed' phrases."""
    signature = first(segments, "signature")
    if signature is not None:
        for _, parsed in find_dates(signature.text):
            return parsed

    outside_blocks = "\n".join(
        s.text for s in segments if s.label not in ("notary", "witness", "witness_header")
    )
    return _date_after(_EXECUTED, outside_blocks)


def _extract_expiration_date(segments: list[Segment]) -> Optional[date]:
    """An explicit end date for the POA itself (never the notary's commission)."""
    for block in segments:
        if block.label == "expiration":
            parsed = first_date(block.body)
            if parsed is not None:
                return parsed

    for block in segments:
        if block.label in ("notary", "witness", "witness_header", "expiration"):
            continue
        parsed = _date_after(_EXPIRES_PHRASE, block.text)
        if parsed is not None:
            return parsed
    return None

"""
Pydantic models for the POA validation pipeline.

Optional fields mean "not found in the document". The rules rely on the
difference between None (absent) and an empty or malformed value (present
but wrong), so parsers must never collapse the two.
"""

from __future__ import annotations

import datetime as dt
import hashlib
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── Reason Codes ───────────────────────────────────────────────────


class ReasonCode(str, Enum):
    """Stable failure codes. Renaming any of these is a breaking change."""

    UNREADABLE_FILE = "UNREADABLE_FILE"
    ILLEGIBLE_CONTENT = "ILLEGIBLE_CONTENT"
    NOTARY_MISSING = "NOTARY_MISSING"
    NOTARY_INCOMPLETE = "NOTARY_INCOMPLETE"
    NOTARY_INVALID_COMMISSION = "NOTARY_INVALID_COMMISSION"
    NOTARY_EXPIRED = "NOTARY_EXPIRED"
    NOTARY_IS_AGENT = "NOTARY_IS_AGENT"
    NOTARY_VERIFICATION_UNAVAILABLE = "NOTARY_VERIFICATION_UNAVAILABLE"
    WITNESS_MISSING = "WITNESS_MISSING"
    WITNESS_IS_AGENT = "WITNESS_IS_AGENT"
    CREMATION_AUTHORITY_MISSING = "CREMATION_AUTHORITY_MISSING"
    NON_COMPLIANT_VERBIAGE = "NON_COMPLIANT_VERBIAGE"
    POA_EXPIRED = "POA_EXPIRED"


class VerdictStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


# ─── Input ──────────────────────────────────────────────────────────


class UploadedDocument(BaseModel):
    """A file handed to the engine by the upload layer."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str
    page_count: Optional[int] = None
    filename: Optional[str] = None

    @property
    def sha256(self) -> str:
        """Audit hash of the raw upload."""
        return hashlib.sha256(self.data).hexdigest()


# ─── Text Acquisition ───────────────────────────────────────────────


class PageMethod(str, Enum):
    DIRECT = "direct"  # Embedded PDF text or plain text
    OCR = "ocr"
    FAILED = "failed"  # OCR raised or timed out on this page


class PageExtraction(BaseModel):
    """Text recovered from one page."""

    page_number: int
    text: str = ""
    confidence: float = 0.0  # 0-100
    method: PageMethod = PageMethod.DIRECT
    low_resolution: bool = False

    @property
    def char_count(self) -> int:
        return len("".join(self.text.split()))


class ExtractionResult(BaseModel):
    """Output of Text Acquisition.

    ``confidence`` is None only when nothing could be extracted; use
    :meth:`unreadable` to build that case.
    """

    text: str = ""
    pages: list[PageExtraction] = Field(default_factory=list)
    confidence: Optional[float] = None
    used_ocr: bool = False
    failure_reason: Optional[str] = None

    @classmethod
    def unreadable(cls, reason: str) -> ExtractionResult:
        return cls(failure_reason=reason)

    @property
    def is_unreadable(self) -> bool:
        return self.confidence is None


# ─── Parsed Fields ──────────────────────────────────────────────────


class CommissionNumber(BaseModel):
    """The token found after a 'Commission #' label, well-formed or not."""

    raw: str
    well_formed: bool


class NotaryBlock(BaseModel):
    name: Optional[str] = None
    commission_number: Optional[CommissionNumber] = None
    county: Optional[str] = None
    expiration_date: Optional[date] = None
    notarized_date: Optional[date] = None


class WitnessRecord(BaseModel):
    name: Optional[str] = None
    date: Optional[dt.date] = None


class ParsedFields(BaseModel):
    """Semantic blocks located in the document text."""

    principal: Optional[str] = None
    agents: list[str] = Field(default_factory=list)
    cremation_clause: Optional[str] = None
    durability_clause: Optional[str] = None
    notary: Optional[NotaryBlock] = None
    witnesses: list[WitnessRecord] = Field(default_factory=list)
    execution_date: Optional[date] = None
    expiration_date: Optional[date] = None
    confidence: Optional[float] = None  # Carried over from ExtractionResult


# ─── Rule Results & Verdict ─────────────────────────────────────────


class RuleResult(BaseModel):
    """Outcome of one compliance rule."""

    rule_id: str
    passed: bool
    reason_code: Optional[ReasonCode] = None
    message: str = ""  # Human-readable explanation (audit only)
    details: dict = Field(default_factory=dict)


class Verdict(BaseModel):
    """The final answer for one document. Never mutated after construction."""

    model_config = ConfigDict(frozen=True)

    status: VerdictStatus
    reasons: list[ReasonCode] = Field(default_factory=list)
    confidence: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        return self.status == VerdictStatus.VALID


class ValidationReport(BaseModel):
    """Everything one validation run produced, for audit trails and the API."""

    verdict: Verdict
    rule_results: list[RuleResult] = Field(default_factory=list)
    parsed_fields: Optional[ParsedFields] = None
    extraction: ExtractionResult
    document_hash: str = ""  # SHA-256 of the uploaded bytes
    validation_date: date

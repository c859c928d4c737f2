"""
POA Validator — FastAPI Server
===============================

RESTful API for validating cremation Power-of-Attorney documents.

Endpoints:
    POST /validate          Upload a PDF, image or text file for validation
    POST /validate/text     Validate already-extracted document text
    GET  /reason-codes      The stable reason-code enumeration
    GET  /health            Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production

Configuration comes from POA_* environment variables (or a .env file),
e.g. POA_LEGIBILITY_THRESHOLD=70, POA_NOTARY_REGISTRY_FILE=registry.json.
"""

from __future__ import annotations

import asyncio
import mimetypes
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, UploadFile
from pydantic import BaseModel, Field

from poa_validator import __version__
from poa_validator.config import ValidationConfig
from poa_validator.models import ReasonCode, UploadedDocument, ValidationReport
from poa_validator.notary_lookup import lookup_from_env
from poa_validator.pipeline import ValidationPipeline
from poa_validator.rules import RULE_CATALOG

load_dotenv()


# ─── Application Lifespan (pre-warm pipeline) ───────────────────────

_pipeline: ValidationPipeline | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline once on startup; bad configuration fails here."""
    global _pipeline  # noqa: PLW0603
    config = ValidationConfig.from_env()
    _pipeline = ValidationPipeline(config, lookup=lookup_from_env(timeout=config.lookup_timeout))
    yield
    if _pipeline is not None:
        _close_lookup(_pipeline.lookup)
    _pipeline = None


def _close_lookup(lookup) -> None:
    """Release the registry client, looking through rate-limiting wrappers."""
    while hasattr(lookup, "inner"):
        lookup = lookup.inner
    close = getattr(lookup, "close", None)
    if callable(close):
        close()


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="POA Validator API",
    description=(
        "Compliance checks for cremation Power-of-Attorney documents. "
        "PDF text extraction with OCR fallback, anchored field parsing, "
        "notary/witness/verbiage rules and a deterministic verdict."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class ValidateTextRequest(BaseModel):
    """Request body for the /validate/text endpoint."""

    text: str = Field(
        ...,
        min_length=1,
        description="Document text that was already extracted upstream.",
        json_schema_extra={
            "example": (
                "POWER OF ATTORNEY\n"
                "I, Dorothy Martinez, appoint Jane Smith as my agent.\n"
                "Agent: Jane Smith, 456 Oak Avenue\n"
                "CREMATION AUTHORITY: I authorize my agent to make all decisions "
                "regarding cremation and disposition of my remains.\n"
                "NOTARY ACKNOWLEDGMENT\n"
                "Notary: Patricia Lee\n"
                "Commission #: 123456\n"
                "County: Los Angeles\n"
                "WITNESS SIGNATURES\n"
                "Witness 1: Mary Johnson\n"
            )
        },
    )
    validation_date: Optional[date] = Field(
        None, description="Date to validate against (defaults to today)."
    )


class RuleResultOut(BaseModel):
    rule_id: str
    passed: bool
    reason_code: Optional[str] = None
    message: str
    details: dict


class ValidateResponse(BaseModel):
    """Verdict plus the audit trail behind it."""

    status: str
    reasons: list[str]
    confidence: Optional[float] = None
    document_hash: str = Field(description="SHA-256 hash of the uploaded bytes")
    used_ocr: bool
    validation_date: date
    rule_results: list[RuleResultOut]

    model_config = {"json_schema_extra": {"example": {
        "status": "invalid",
        "reasons": ["WITNESS_MISSING"],
        "confidence": 100.0,
        "document_hash": "a1b2c3d4...",
        "used_ocr": False,
        "validation_date": "2025-06-01",
        "rule_results": [
            {
                "rule_id": "witness_presence",
                "passed": False,
                "reason_code": "WITNESS_MISSING",
                "message": "No witness signatures found in the document.",
                "details": {},
            }
        ],
    }}}


class ReasonCodeOut(BaseModel):
    code: str
    rule_id: Optional[str] = None  # None for UNREADABLE_FILE (no rule, acquisition)


class HealthResponse(BaseModel):
    status: str
    version: str
    lookup: str


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> ValidationPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _resolve_mime_type(file: UploadFile) -> str:
    """Trust the declared type unless it is missing or generic."""
    declared = (file.content_type or "").split(";", 1)[0].strip().lower()
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(file.filename or "")
    return guessed or declared


def _build_response(report: ValidationReport) -> ValidateResponse:
    """Convert the internal ValidationReport to the API response schema."""
    return ValidateResponse(
        status=report.verdict.status.value,
        reasons=[r.value for r in report.verdict.reasons],
        confidence=report.verdict.confidence,
        document_hash=report.document_hash,
        used_ocr=report.extraction.used_ocr,
        validation_date=report.validation_date,
        rule_results=[
            RuleResultOut(
                rule_id=r.rule_id,
                passed=r.passed,
                reason_code=r.reason_code.value if r.reason_code else None,
                message=r.message,
                details=r.details,
            )
            for r in report.rule_results
        ],
    )


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/validate",
    summary="Validate an uploaded POA document",
    tags=["Validation"],
    responses={
        413: {"description": "File too large"},
        422: {"description": "Empty upload"},
        503: {"description": "Pipeline not yet initialised"},
    },
)
async def validate_document(file: UploadFile) -> ValidateResponse:
    """Upload a PDF, image (PNG/JPEG/TIFF/...) or UTF-8 text file.

    Returns the verdict:
    - **status**: `valid` or `invalid`
    - **reasons**: reason codes in rule-catalog order (empty when valid)
    - **rule_results**: every rule's outcome with a human-readable message
    - **document_hash**: SHA-256 of the upload for audit trail

    An unreadable or unsupported file is a normal `invalid` verdict with
    `UNREADABLE_FILE`, not an HTTP error.
    """
    pipeline = _get_pipeline()
    limit = pipeline.config.max_upload_bytes
    if file.size and file.size > limit:
        raise HTTPException(status_code=413, detail=f"File too large (max {limit} bytes)")

    content = await file.read()
    if len(content) > limit:
        raise HTTPException(status_code=413, detail=f"File too large (max {limit} bytes)")
    if not content:
        raise HTTPException(status_code=422, detail="Uploaded file is empty")

    document = UploadedDocument(
        data=content,
        mime_type=_resolve_mime_type(file),
        filename=file.filename,
    )
    report = await asyncio.to_thread(pipeline.run, document)
    return _build_response(report)


@app.post(
    "/validate/text",
    summary="Validate already-extracted POA text",
    tags=["Validation"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def validate_text(request: ValidateTextRequest) -> ValidateResponse:
    """Run the parser and rules on plain text (no OCR)."""
    pipeline = _get_pipeline()
    report = pipeline.validate_text(request.text, validation_date=request.validation_date)
    return _build_response(report)


@app.get("/reason-codes", summary="Reason-code enumeration", tags=["System"])
def reason_codes() -> list[ReasonCodeOut]:
    """Every reason code a verdict can carry, with the rule that emits it."""
    emitted_by = {code: rule_id for rule_id, codes in RULE_CATALOG for code in codes}
    return [ReasonCodeOut(code=code.value, rule_id=emitted_by.get(code)) for code in ReasonCode]


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and configuration info."""
    pipeline = _get_pipeline()
    return HealthResponse(
        status="healthy",
        version=__version__,
        lookup=type(pipeline.lookup).__name__,
    )

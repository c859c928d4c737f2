"""
Main validation pipeline: orchestrates the full workflow.

Flow:
  ┌─────────────┐
  │ Upload      │   bytes + MIME type
  └──────┬──────┘
         │
  ┌──────▼──────┐
  │ Acquisition │   ← pdfplumber text, Tesseract OCR fallback
  └──────┬──────┘
         │  unreadable? ──────────────┐
  ┌──────▼──────┐                     │
  │   Parser    │   ← anchored regex  │
  └──────┬──────┘                     │
         │                            │
  ┌──────▼──────┐                     │
  │ Rule Engine │   ← notary lookup   │
  └──────┬──────┘                     │
         │                            │
  ┌──────▼──────┐                     │
  │ Aggregator  │ ◄───────────────────┘
  └─────────────┘

Design principles:
  - Data flows forward only; no stage looks back at an earlier one.
  - An unreadable file goes straight to the aggregator. The parser and
    rules never see it.
  - Everything expected (missing fields, an unreachable registry) ends up
    as a reason code, not an exception.
  - The uploaded bytes are SHA-256 hashed for the audit trail.
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Optional, Union

from .acquisition import acquire
from .aggregator import aggregate
from .config import ValidationConfig
from .exceptions import ConfigurationError, UnreadableFileError
from .models import (
    ExtractionResult,
    ParsedFields,
    RuleResult,
    UploadedDocument,
    ValidationReport,
    Verdict,
)
from .notary_lookup import NotaryLookup, UnavailableNotaryLookup
from .parser import parse_fields
from .rules import RuleEngine

logger = logging.getLogger(__name__)


class ValidationPipeline:
    """Validates one POA document at a time; safe to share across threads.

    Usage:
        pipeline = ValidationPipeline(ValidationConfig(), lookup=load_registry("registry.json"))
        verdict = pipeline.validate(pdf_bytes, "application/pdf")
        if not verdict.is_valid:
            for reason in verdict.reasons:
                print(reason.value)
    """

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        lookup: Optional[NotaryLookup] = None,
    ):
        if config is None:
            config = ValidationConfig()
        elif not isinstance(config, ValidationConfig):
            raise ConfigurationError(
                f"config must be a ValidationConfig, got {type(config).__name__}"
            )
        if lookup is not None and not callable(getattr(lookup, "lookup", None)):
            raise ConfigurationError(
                f"lookup must provide lookup(commission_number, as_of), got {type(lookup).__name__}"
            )

        self.config = config
        self.lookup = lookup or UnavailableNotaryLookup()
        self.rules = RuleEngine(config, self.lookup)

    def run(
        self,
        document: Union[UploadedDocument, bytes],
        mime_type: Optional[str] = None,
        validation_date: Optional[date] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ValidationReport:
        """Execute the full pipeline and keep every intermediate result.

        Args:
            document: The upload, or raw bytes together with ``mime_type``.
            mime_type: Required when ``document`` is bytes.
            validation_date: "Today" for expiration checks. Defaults to date.today().
            cancel_event: Set it from another thread to abandon OCR work.

        Returns:
            ValidationReport with the verdict and the audit trail behind it.

        Raises:
            ValidationCancelled: ``cancel_event`` was set during acquisition.
        """
        if not isinstance(document, UploadedDocument):
            document = UploadedDocument(data=document, mime_type=mime_type or "")
        validation_date = validation_date or date.today()

        # ── Step 0: Audit hash of original input ────────────────────
        doc_hash = document.sha256

        # ── Step 1: Text acquisition ────────────────────────────────
        logger.info(
            "Acquiring text from %s (%d bytes, %s)",
            document.filename or "upload",
            len(document.data),
            document.mime_type,
        )
        try:
            extraction = acquire(document.data, document.mime_type, self.config, cancel_event)
        except UnreadableFileError as exc:
            logger.error("Unreadable file %s: %s", doc_hash[:12], exc)
            extraction = ExtractionResult.unreadable(str(exc))

        fields: Optional[ParsedFields] = None
        results: list[RuleResult] = []
        if not extraction.is_unreadable:
            # ── Step 2: Field parsing ───────────────────────────────
            fields = parse_fields(extraction, self.config.commission_number_length)

            # ── Step 3: Rule evaluation ─────────────────────────────
            results = self.rules.evaluate(fields, validation_date)

        # ── Step 4: Verdict ─────────────────────────────────────────
        verdict = aggregate(extraction, results)
        logger.info(
            "Document %s is %s%s",
            doc_hash[:12],
            verdict.status.value,
            f": {', '.join(r.value for r in verdict.reasons)}" if verdict.reasons else "",
        )

        return ValidationReport(
            verdict=verdict,
            rule_results=results,
            parsed_fields=fields,
            extraction=extraction,
            document_hash=doc_hash,
            validation_date=validation_date,
        )

    def validate(
        self,
        document: Union[UploadedDocument, bytes],
        mime_type: Optional[str] = None,
        validation_date: Optional[date] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Verdict:
        """Like :meth:`run`, returning only the verdict."""
        return self.run(document, mime_type, validation_date, cancel_event).verdict

    def validate_text(self, text: str, validation_date: Optional[date] = None) -> ValidationReport:
        """Validate text that was already extracted upstream."""
        return self.run(
            UploadedDocument(data=text.encode("utf-8"), mime_type="text/plain"),
            validation_date=validation_date,
        )

#!/usr/bin/env python3
"""
POA Validator — Entry Point
============================

Validates one Power-of-Attorney document and prints a report.

Usage:
    python main.py poa.pdf
    python main.py scan.png --registry notary_registry.json
    python main.py extracted.txt --as-of 2025-06-01
    python main.py                    # Built-in sample document

Exit code is 0 when the document is valid, 1 when it is not.
"""

from __future__ import annotations

import argparse
import logging
import mimetypes
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

from poa_validator.config import ValidationConfig
from poa_validator.models import UploadedDocument, ValidationReport
from poa_validator.notary_lookup import load_registry, lookup_from_env
from poa_validator.pipeline import ValidationPipeline

load_dotenv()


# ─── Sample Document (no notary, vague cremation clause) ────────────

SAMPLE_TEXT = """\
POWER OF ATTORNEY
State of California

I, Steven Clark, residing at 12 Pine Street, appoint Robert Smith as my agent.
Agent: Robert Smith, 88 Elm Road, Fresno, CA

CREMATION AUTHORITY:
Robert may handle my final arrangements as he sees fit.

DURABILITY:
This power of attorney shall remain in effect notwithstanding my incapacity.

Principal Signature: ____________  Date: 2025-01-15

*** NO NOTARY ACKNOWLEDGMENT ***

WITNESS SIGNATURES
Witness 1: Mary Johnson
Address: 3 Birch Lane
Date: 2025-01-15
Signature: ____________
"""


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_fields(report: ValidationReport) -> None:
    """Print the parsed POA fields."""
    fields = report.parsed_fields
    if fields is None:
        print(f"  {_DIM}(no fields: document could not be read){_RESET}")
        return
    notary = fields.notary
    print(f"  Agents:      {', '.join(fields.agents) or '-'}")
    if notary is not None:
        commission = notary.commission_number.raw if notary.commission_number else "-"
        print(f"  Notary:      {notary.name or '-'}  (commission {commission}, county {notary.county or '-'})")
    else:
        print("  Notary:      -")
    print(f"  Witnesses:   {', '.join(w.name or '?' for w in fields.witnesses) or '-'}")
    print(f"  Executed:    {fields.execution_date or '-'}")
    print(f"  Expires:     {fields.expiration_date or '-'}")
    print(f"  Durable:     {'yes' if fields.durability_clause else 'no'}")


def _print_rules(report: ValidationReport) -> None:
    for result in report.rule_results:
        if result.passed:
            print(f"    {_GREEN}PASS{_RESET}  {result.rule_id:<24} {_DIM}{result.message}{_RESET}")
        else:
            print(f"    {_RED}FAIL{_RESET}  {result.rule_id:<24} [{result.reason_code.value}]")
            print(f"          {result.message}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(report: ValidationReport) -> int:
    """Pretty-print the validation report with ANSI color codes.

    Returns:
        0 if the POA is valid, 1 if rejected.
    """
    verdict = report.verdict
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  POA VALIDATION REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Audit Hash:  {_DIM}{report.document_hash[:16]}...{_RESET}")
    print(f"  Validated:   {report.validation_date}")
    confidence = "-" if verdict.confidence is None else f"{verdict.confidence:.1f}"
    print(f"  Confidence:  {confidence}  (OCR: {'yes' if report.extraction.used_ocr else 'no'})")
    print(f"{'─' * _WIDTH}")
    _print_fields(report)
    print(f"{'─' * _WIDTH}")
    _print_rules(report)

    print(f"{'=' * _WIDTH}")
    if verdict.is_valid:
        print(f"  {_GREEN}{_BOLD}POA PASSED ALL CHECKS{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}POA REJECTED  --  {', '.join(r.value for r in verdict.reasons)}{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if verdict.is_valid else 1


# ─── Main ────────────────────────────────────────────────────────────


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate a cremation Power-of-Attorney document.")
    parser.add_argument("file", nargs="?", type=Path, help="PDF, image or text file (default: built-in sample)")
    parser.add_argument("--mime", help="Override the MIME type guessed from the file name")
    parser.add_argument("--registry", type=Path, help="JSON notary commission registry")
    parser.add_argument("--as-of", type=date.fromisoformat, help="Validation date, YYYY-MM-DD (default: today)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline stages")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run the full validation pipeline and print the report."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = ValidationConfig.from_env()
    lookup = load_registry(args.registry) if args.registry else lookup_from_env(timeout=config.lookup_timeout)
    pipeline = ValidationPipeline(config, lookup=lookup)

    if args.file is None:
        document = UploadedDocument(data=SAMPLE_TEXT.encode("utf-8"), mime_type="text/plain", filename="sample")
    else:
        mime_type = args.mime or mimetypes.guess_type(args.file.name)[0] or "application/octet-stream"
        document = UploadedDocument(data=args.file.read_bytes(), mime_type=mime_type, filename=args.file.name)

    print(f"\n  Validating {document.filename} ({document.mime_type})...")
    report = pipeline.run(document, validation_date=args.as_of)
    sys.exit(print_report(report))


if __name__ == "__main__":
    main()

"""
Verdict Aggregator: rule results → Verdict.

No I/O, no exceptions. Reasons keep rule-catalog order so the same document
always produces the same list.
"""

from __future__ import annotations

from .models import ExtractionResult, ReasonCode, RuleResult, Verdict, VerdictStatus


def aggregate(extraction: ExtractionResult, results: list[RuleResult]) -> Verdict:
    """Combine rule outcomes into the final verdict.

    An unreadable extraction is terminal: the verdict is invalid with exactly
    ``[UNREADABLE_FILE]`` whatever ``results`` holds (it should be empty).
    """
    if extraction.is_unreadable:
        return Verdict(
            status=VerdictStatus.INVALID,
            reasons=[ReasonCode.UNREADABLE_FILE],
            confidence=None,
        )

    reasons = [r.reason_code for r in results if not r.passed and r.reason_code is not None]
    all_passed = all(r.passed for r in results)
    return Verdict(
        status=VerdictStatus.VALID if all_passed else VerdictStatus.INVALID,
        reasons=reasons,
        confidence=extraction.confidence,
    )

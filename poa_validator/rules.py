"""
Rule Engine: the compliance checklist.

Each check is a plain function of ParsedFields returning one RuleResult,
independently testable and free of I/O. The single exception is the
commission lookup, which the engine performs up front (bounded by a
timeout) and hands to the commission check as data.

Every rule runs on every document, in catalog order. A rule whose inputs
are absent passes as "not applicable" when another rule already reports
the absence, so each defect surfaces under exactly one reason code.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date
from typing import Optional

from .config import ValidationConfig
from .exceptions import NotaryLookupUnavailable
from .models import ParsedFields, ReasonCode, RuleResult
from .names import find_conflict
from .notary_lookup import (
    CommissionLookupResult,
    CommissionStatus,
    NotaryLookup,
    UnavailableNotaryLookup,
)
from .verbiage import find_explicit_authorization

logger = logging.getLogger(__name__)


# ─── Rule Catalog ────────────────────────────────────────────────────

NOTARY_PRESENCE = "notary_presence"
NOTARY_COMPLETENESS = "notary_completeness"
NOTARY_COMMISSION = "notary_commission"
NOTARY_AGENT_CONFLICT = "notary_agent_conflict"
WITNESS_PRESENCE = "witness_presence"
WITNESS_AGENT_CONFLICT = "witness_agent_conflict"
CREMATION_AUTHORITY = "cremation_authority"
VERBIAGE_SPECIFICITY = "verbiage_specificity"
EXPIRATION = "expiration"
LEGIBILITY = "legibility"

RULE_CATALOG: tuple[tuple[str, tuple[ReasonCode, ...]], ...] = (
    (NOTARY_PRESENCE, (ReasonCode.NOTARY_MISSING,)),
    (NOTARY_COMPLETENESS, (ReasonCode.NOTARY_INCOMPLETE,)),
    (
        NOTARY_COMMISSION,
        (
            ReasonCode.NOTARY_EXPIRED,
            ReasonCode.NOTARY_INVALID_COMMISSION,
            ReasonCode.NOTARY_VERIFICATION_UNAVAILABLE,
        ),
    ),
    (NOTARY_AGENT_CONFLICT, (ReasonCode.NOTARY_IS_AGENT,)),
    (WITNESS_PRESENCE, (ReasonCode.WITNESS_MISSING,)),
    (WITNESS_AGENT_CONFLICT, (ReasonCode.WITNESS_IS_AGENT,)),
    (CREMATION_AUTHORITY, (ReasonCode.CREMATION_AUTHORITY_MISSING,)),
    (VERBIAGE_SPECIFICITY, (ReasonCode.NON_COMPLIANT_VERBIAGE,)),
    (EXPIRATION, (ReasonCode.POA_EXPIRED,)),
    (LEGIBILITY, (ReasonCode.ILLEGIBLE_CONTENT,)),
)


def _passed(rule_id: str, message: str, **details: object) -> RuleResult:
    return RuleResult(rule_id=rule_id, passed=True, message=message, details=details)


def _failed(rule_id: str, code: ReasonCode, message: str, **details: object) -> RuleResult:
    return RuleResult(
        rule_id=rule_id,
        passed=False,
        reason_code=code,
        message=message,
        details=details,
    )


# ─── Engine ──────────────────────────────────────────────────────────


class RuleEngine:
    """Runs the rule catalog against parsed fields.

    Usage:
        engine = RuleEngine(ValidationConfig(), lookup=load_registry("registry.json"))
        results = engine.evaluate(fields, validation_date=date.today())
    """

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        lookup: Optional[NotaryLookup] = None,
    ):
        self.config = config or ValidationConfig()
        self.lookup = lookup or UnavailableNotaryLookup()

    def evaluate(self, fields: ParsedFields, validation_date: date) -> list[RuleResult]:
        """Run every rule in catalog order. Never raises for document content."""
        lookup_outcome = self._lookup_commission(fields, validation_date)

        results = [
            check_notary_presence(fields),
            check_notary_completeness(fields),
            check_notary_commission(fields, lookup_outcome, commission_as_of(fields, validation_date)),
            check_notary_agent_conflict(fields),
            check_witness_presence(fields),
            check_witness_agent_conflict(fields),
            check_cremation_authority(fields),
            check_verbiage_specificity(fields),
            check_expiration(fields, validation_date),
            check_legibility(fields, self.config.legibility_threshold),
        ]

        failed = [r.rule_id for r in results if not r.passed]
        logger.info(
            "Evaluated %d rule(s): %d failed%s",
            len(results),
            len(failed),
            f" ({', '.join(failed)})" if failed else "",
        )
        return results

    def _lookup_commission(
        self, fields: ParsedFields, validation_date: date
    ) -> Optional[CommissionLookupResult]:
        """Ask the registry about the commission, bounded by ``lookup_timeout``.

        Returns None when there is nothing to look up. Timeouts and errors
        come back as UNAVAILABLE rather than propagating.
        """
        notary = fields.notary
        if notary is None or notary.commission_number is None or not notary.commission_number.well_formed:
            return None

        number = notary.commission_number.raw
        as_of = commission_as_of(fields, validation_date)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="poa-lookup")
        try:
            future = executor.submit(self.lookup.lookup, number, as_of)
            outcome = future.result(timeout=self.config.lookup_timeout)
        except FutureTimeoutError:
            logger.warning(
                "Notary lookup for %s timed out after %.1fs", number, self.config.lookup_timeout
            )
            return CommissionLookupResult(status=CommissionStatus.UNAVAILABLE)
        except NotaryLookupUnavailable as exc:
            logger.warning("Notary registry unavailable for %s: %s", number, exc)
            return CommissionLookupResult(status=CommissionStatus.UNAVAILABLE)
        except Exception as exc:
            logger.warning("Notary lookup for %s failed: %s", number, exc)
            return CommissionLookupResult(status=CommissionStatus.UNAVAILABLE)
        finally:
            # Do not block on a hung registry call
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info("Notary commission %s as of %s: %s", number, as_of, outcome.status.value)
        return outcome


def commission_as_of(fields: ParsedFields, validation_date: date) -> date:
    """The date the commission must have been active on.

    The notarization date when we have it, else the execution date, else
    the day of validation.
    """
    if fields.notary is not None and fields.notary.notarized_date is not None:
        return fields.notary.notarized_date
    return fields.execution_date or validation_date


# ─── Notary Rules ────────────────────────────────────────────────────


def check_notary_presence(fields: ParsedFields) -> RuleResult:
    """A POA authorizing cremation must carry a notary acknowledgment."""
    if fields.notary is None:
        return _failed(
            NOTARY_PRESENCE,
            ReasonCode.NOTARY_MISSING,
            "No notary acknowledgment found in the document.",
        )
    return _passed(NOTARY_PRESENCE, "Notary acknowledgment present.", notary=fields.notary.name)


def check_notary_completeness(fields: ParsedFields) -> RuleResult:
    """Commission number (well-formed) and county must both be stated.

    A malformed number is reported here, not as a missing notary: the block
    exists, it is just incomplete.
    """
    notary = fields.notary
    if notary is None:
        return _passed(NOTARY_COMPLETENESS, "Not applicable: no notary block.")

    problems: list[str] = []
    commission = notary.commission_number
    if commission is None:
        problems.append("commission number missing")
    elif not commission.well_formed:
        problems.append(f"commission number '{commission.raw}' is malformed")
    if not notary.county:
        problems.append("county missing")

    if problems:
        return _failed(
            NOTARY_COMPLETENESS,
            ReasonCode.NOTARY_INCOMPLETE,
            f"Notary acknowledgment is incomplete: {'; '.join(problems)}.",
            commission_number=commission.raw if commission else None,
            county=notary.county,
            problems=problems,
        )
    return _passed(
        NOTARY_COMPLETENESS,
        "Notary commission number and county present.",
        commission_number=commission.raw if commission else None,
        county=notary.county,
    )


def check_notary_commission(
    fields: ParsedFields,
    outcome: Optional[CommissionLookupResult],
    as_of: date,
) -> RuleResult:
    """The commission must be active and unexpired on ``as_of``."""
    notary = fields.notary
    if notary is None or notary.commission_number is None or not notary.commission_number.well_formed:
        return _passed(NOTARY_COMMISSION, "Not applicable: no well-formed commission number.")

    number = notary.commission_number.raw
    if outcome is None or outcome.status == CommissionStatus.UNAVAILABLE:
        return _failed(
            NOTARY_COMMISSION,
            ReasonCode.NOTARY_VERIFICATION_UNAVAILABLE,
            f"Commission {number} could not be verified with the notary registry; "
            f"manual verification required.",
            commission_number=number,
            as_of=str(as_of),
        )

    expired = outcome.status == CommissionStatus.EXPIRED or (
        outcome.status == CommissionStatus.ACTIVE
        and outcome.expiration_date is not None
        and outcome.expiration_date < as_of
    )
    if expired:
        return _failed(
            NOTARY_COMMISSION,
            ReasonCode.NOTARY_EXPIRED,
            f"Notary commission {number} was expired on {as_of}"
            + (f" (expired {outcome.expiration_date})." if outcome.expiration_date else "."),
            commission_number=number,
            as_of=str(as_of),
            expiration_date=str(outcome.expiration_date) if outcome.expiration_date else None,
        )

    if outcome.status == CommissionStatus.NOT_FOUND:
        return _failed(
            NOTARY_COMMISSION,
            ReasonCode.NOTARY_INVALID_COMMISSION,
            f"Commission {number} is not an active commission in the notary registry.",
            commission_number=number,
            as_of=str(as_of),
        )

    return _passed(
        NOTARY_COMMISSION,
        f"Commission {number} active as of {as_of}.",
        commission_number=number,
        as_of=str(as_of),
        expiration_date=str(outcome.expiration_date) if outcome.expiration_date else None,
    )


def check_notary_agent_conflict(fields: ParsedFields) -> RuleResult:
    """The notary cannot be one of the agents."""
    notary_name = fields.notary.name if fields.notary else None
    conflict = find_conflict([notary_name], fields.agents)
    if conflict:
        return _failed(
            NOTARY_AGENT_CONFLICT,
            ReasonCode.NOTARY_IS_AGENT,
            f"Notary '{conflict[0]}' is also named as agent '{conflict[1]}'.",
            notary=conflict[0],
            agent=conflict[1],
        )
    return _passed(NOTARY_AGENT_CONFLICT, "Notary is not an agent.")


# ─── Witness Rules ───────────────────────────────────────────────────


def check_witness_presence(fields: ParsedFields) -> RuleResult:
    if not fields.witnesses:
        return _failed(
            WITNESS_PRESENCE,
            ReasonCode.WITNESS_MISSING,
            "No witness signatures found in the document.",
        )
    return _passed(
        WITNESS_PRESENCE,
        f"{len(fields.witnesses)} witness(es) found.",
        count=len(fields.witnesses),
    )


def check_witness_agent_conflict(fields: ParsedFields) -> RuleResult:
    """No witness may also be an agent."""
    conflict = find_conflict((w.name for w in fields.witnesses), fields.agents)
    if conflict:
        return _failed(
            WITNESS_AGENT_CONFLICT,
            ReasonCode.WITNESS_IS_AGENT,
            f"Witness '{conflict[0]}' is also named as agent '{conflict[1]}'.",
            witness=conflict[0],
            agent=conflict[1],
        )
    return _passed(WITNESS_AGENT_CONFLICT, "No witness is an agent.")


# ─── Cremation Rules ─────────────────────────────────────────────────


def check_cremation_authority(fields: ParsedFields) -> RuleResult:
    if fields.cremation_clause is None:
        return _failed(
            CREMATION_AUTHORITY,
            ReasonCode.CREMATION_AUTHORITY_MISSING,
            "The document does not address cremation or disposition of remains.",
        )
    return _passed(CREMATION_AUTHORITY, "Cremation clause present.", clause=fields.cremation_clause)


def check_verbiage_specificity(fields: ParsedFields) -> RuleResult:
    """The cremation clause must explicitly authorize the agent.

    "May handle my final arrangements as he sees fit" talks about the topic
    but grants nothing specific, so it fails here.
    """
    clause = fields.cremation_clause
    if clause is None:
        return _passed(VERBIAGE_SPECIFICITY, "Not applicable: no cremation clause.")

    phrase = find_explicit_authorization(clause)
    if phrase is None:
        return _failed(
            VERBIAGE_SPECIFICITY,
            ReasonCode.NON_COMPLIANT_VERBIAGE,
            "Cremation clause does not explicitly authorize cremation or "
            "disposition of remains.",
            clause=clause,
        )
    return _passed(VERBIAGE_SPECIFICITY, "Cremation authority is explicit.", phrase=phrase)


# ─── Document Rules ──────────────────────────────────────────────────


def check_expiration(fields: ParsedFields, validation_date: date) -> RuleResult:
    """An explicit expiration date must not be before the validation date.

    Documents without one are open-ended, durable or not.
    """
    expires = fields.expiration_date
    if expires is None:
        return _passed(EXPIRATION, "No expiration date; treated as open-ended.")
    if expires < validation_date:
        return _failed(
            EXPIRATION,
            ReasonCode.POA_EXPIRED,
            f"Power of attorney expired on {expires} (validated {validation_date}).",
            expiration_date=str(expires),
            validation_date=str(validation_date),
            days_expired=(validation_date - expires).days,
        )
    return _passed(
        EXPIRATION,
        f"Power of attorney valid through {expires}.",
        expiration_date=str(expires),
    )


def check_legibility(fields: ParsedFields, threshold: float) -> RuleResult:
    confidence = fields.confidence if fields.confidence is not None else 0.0
    if confidence < threshold:
        return _failed(
            LEGIBILITY,
            ReasonCode.ILLEGIBLE_CONTENT,
            f"Text confidence {confidence:.1f} is below the legibility threshold of {threshold:.1f}.",
            confidence=confidence,
            threshold=threshold,
        )
    return _passed(LEGIBILITY, f"Text confidence {confidence:.1f}.", confidence=confidence)

"""
Rule engine and notary lookup tests.

Every rule is checked in isolation against hand-built ParsedFields, then
the engine is checked for ordering, lookup timeouts and failure handling.

Run: pytest tests/test_rules.py -v
"""

from __future__ import annotations

import json
import time
from datetime import date
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from poa_samples import EXPLICIT_CREMATION, VAGUE_CREMATION, make_registry

from poa_validator.aggregator import aggregate
from poa_validator.config import ValidationConfig
from poa_validator.exceptions import NotaryLookupUnavailable
from poa_validator.models import (
    CommissionNumber,
    ExtractionResult,
    NotaryBlock,
    PageExtraction,
    ParsedFields,
    ReasonCode,
    VerdictStatus,
    WitnessRecord,
)
from poa_validator.notary_lookup import (
    CommissionLookupResult,
    CommissionStatus,
    HttpNotaryLookup,
    RateLimitedNotaryLookup,
    StaticNotaryLookup,
    UnavailableNotaryLookup,
    load_registry,
    lookup_from_env,
)
from poa_validator.rules import (
    RULE_CATALOG,
    RuleEngine,
    check_cremation_authority,
    check_expiration,
    check_legibility,
    check_notary_agent_conflict,
    check_notary_commission,
    check_notary_completeness,
    check_notary_presence,
    check_verbiage_specificity,
    check_witness_agent_conflict,
    check_witness_presence,
    commission_as_of,
)

VALIDATION_DATE = date(2025, 6, 1)
ACTIVE = CommissionLookupResult(status=CommissionStatus.ACTIVE, expiration_date=date(2026, 12, 31))


def _make_notary(**overrides: Any) -> NotaryBlock:
    kwargs: dict[str, Any] = {
        "name": "Patricia Lee",
        "commission_number": CommissionNumber(raw="123456", well_formed=True),
        "county": "Los Angeles",
        "expiration_date": date(2026, 12, 31),
        "notarized_date": date(2025, 1, 15),
    }
    kwargs.update(overrides)
    return NotaryBlock(**kwargs)


def _make_fields(**overrides: Any) -> ParsedFields:
    """Factory for parsed fields with sensible (valid) defaults."""
    kwargs: dict[str, Any] = {
        "principal": "I, Dorothy Martinez, hereby appoint Jane Smith as my attorney-in-fact.",
        "agents": ["Jane Smith"],
        "cremation_clause": EXPLICIT_CREMATION,
        "durability_clause": "This power of attorney shall not be affected by my incapacity.",
        "notary": _make_notary(),
        "witnesses": [
            WitnessRecord(name="Mary Johnson", date=date(2025, 1, 15)),
            WitnessRecord(name="Thomas Brown", date=date(2025, 1, 15)),
        ],
        "execution_date": date(2025, 1, 15),
        "expiration_date": None,
        "confidence": 100.0,
    }
    kwargs.update(overrides)
    return ParsedFields(**kwargs)


# ═══════════════════════════════════════════════════════════════════════
# NOTARY RULES
# ═══════════════════════════════════════════════════════════════════════


class TestNotaryPresence:
    def test_present(self):
        assert check_notary_presence(_make_fields()).passed

    def test_missing(self):
        result = check_notary_presence(_make_fields(notary=None))
        assert not result.passed
        assert result.reason_code == ReasonCode.NOTARY_MISSING


class TestNotaryCompleteness:
    def test_complete(self):
        assert check_notary_completeness(_make_fields()).passed

    def test_not_applicable_without_notary(self):
        assert check_notary_completeness(_make_fields(notary=None)).passed

    def test_malformed_commission_is_incomplete_not_missing(self):
        notary = _make_notary(commission_number=CommissionNumber(raw="INVALID123", well_formed=False))
        fields = _make_fields(notary=notary)
        result = check_notary_completeness(fields)
        assert result.reason_code == ReasonCode.NOTARY_INCOMPLETE
        assert "INVALID123" in result.message
        assert check_notary_presence(fields).passed

    def test_missing_commission(self):
        result = check_notary_completeness(_make_fields(notary=_make_notary(commission_number=None)))
        assert result.reason_code == ReasonCode.NOTARY_INCOMPLETE
        assert result.details["problems"] == ["commission number missing"]

    def test_missing_county(self):
        result = check_notary_completeness(_make_fields(notary=_make_notary(county=None)))
        assert result.reason_code == ReasonCode.NOTARY_INCOMPLETE
        assert result.details["problems"] == ["county missing"]


class TestNotaryCommission:
    def test_active(self):
        assert check_notary_commission(_make_fields(), ACTIVE, date(2025, 1, 15)).passed

    def test_expired(self):
        outcome = CommissionLookupResult(status=CommissionStatus.EXPIRED, expiration_date=date(2024, 12, 31))
        result = check_notary_commission(_make_fields(), outcome, date(2025, 1, 15))
        assert result.reason_code == ReasonCode.NOTARY_EXPIRED
        assert result.details["expiration_date"] == "2024-12-31"

    def test_active_but_past_its_expiration_is_expired(self):
        outcome = CommissionLookupResult(status=CommissionStatus.ACTIVE, expiration_date=date(2025, 1, 1))
        result = check_notary_commission(_make_fields(), outcome, date(2025, 1, 15))
        assert result.reason_code == ReasonCode.NOTARY_EXPIRED

    def test_not_found(self):
        outcome = CommissionLookupResult(status=CommissionStatus.NOT_FOUND)
        result = check_notary_commission(_make_fields(), outcome, date(2025, 1, 15))
        assert result.reason_code == ReasonCode.NOTARY_INVALID_COMMISSION

    def test_unavailable(self):
        outcome = CommissionLookupResult(status=CommissionStatus.UNAVAILABLE)
        result = check_notary_commission(_make_fields(), outcome, date(2025, 1, 15))
        assert result.reason_code == ReasonCode.NOTARY_VERIFICATION_UNAVAILABLE

    def test_not_applicable_when_malformed(self):
        notary = _make_notary(commission_number=CommissionNumber(raw="12", well_formed=False))
        assert check_notary_commission(_make_fields(notary=notary), None, VALIDATION_DATE).passed

    def test_not_applicable_without_notary(self):
        assert check_notary_commission(_make_fields(notary=None), None, VALIDATION_DATE).passed


class TestCommissionAsOf:
    def test_prefers_notarized_date(self):
        assert commission_as_of(_make_fields(), VALIDATION_DATE) == date(2025, 1, 15)

    def test_falls_back_to_execution_date(self):
        fields = _make_fields(notary=_make_notary(notarized_date=None), execution_date=date(2025, 2, 1))
        assert commission_as_of(fields, VALIDATION_DATE) == date(2025, 2, 1)

    def test_falls_back_to_validation_date(self):
        fields = _make_fields(notary=_make_notary(notarized_date=None), execution_date=None)
        assert commission_as_of(fields, VALIDATION_DATE) == VALIDATION_DATE


class TestNotaryAgentConflict:
    def test_distinct(self):
        assert check_notary_agent_conflict(_make_fields()).passed

    def test_notary_is_agent(self):
        result = check_notary_agent_conflict(_make_fields(notary=_make_notary(name="JANE  SMITH")))
        assert result.reason_code == ReasonCode.NOTARY_IS_AGENT
        assert result.details == {"notary": "JANE  SMITH", "agent": "Jane Smith"}

    def test_not_applicable_without_notary(self):
        assert check_notary_agent_conflict(_make_fields(notary=None)).passed


# ═══════════════════════════════════════════════════════════════════════
# WITNESS RULES
# ═══════════════════════════════════════════════════════════════════════


class TestWitnessRules:
    def test_witnesses_present(self):
        result = check_witness_presence(_make_fields())
        assert result.passed
        assert result.details["count"] == 2

    def test_no_witnesses(self):
        result = check_witness_presence(_make_fields(witnesses=[]))
        assert result.reason_code == ReasonCode.WITNESS_MISSING

    def test_witness_is_agent_case_insensitive(self):
        witnesses = [WitnessRecord(name="Mary Johnson"), WitnessRecord(name="jane smith")]
        result = check_witness_agent_conflict(_make_fields(witnesses=witnesses))
        assert result.reason_code == ReasonCode.WITNESS_IS_AGENT
        assert result.details["witness"] == "jane smith"

    def test_unnamed_witness_is_not_a_conflict(self):
        assert check_witness_agent_conflict(_make_fields(witnesses=[WitnessRecord(name=None)])).passed

    def test_no_witnesses_is_not_a_conflict(self):
        assert check_witness_agent_conflict(_make_fields(witnesses=[])).passed


# ═══════════════════════════════════════════════════════════════════════
# CREMATION RULES
# ═══════════════════════════════════════════════════════════════════════


class TestCremationRules:
    def test_explicit_clause_passes_both(self):
        fields = _make_fields()
        assert check_cremation_authority(fields).passed
        assert check_verbiage_specificity(fields).passed

    def test_vague_clause_is_present_but_non_compliant(self):
        fields = _make_fields(cremation_clause=VAGUE_CREMATION)
        assert check_cremation_authority(fields).passed
        result = check_verbiage_specificity(fields)
        assert result.reason_code == ReasonCode.NON_COMPLIANT_VERBIAGE

    def test_missing_clause_reports_only_missing(self):
        fields = _make_fields(cremation_clause=None)
        assert check_cremation_authority(fields).reason_code == ReasonCode.CREMATION_AUTHORITY_MISSING
        assert check_verbiage_specificity(fields).passed


# ═══════════════════════════════════════════════════════════════════════
# EXPIRATION & LEGIBILITY
# ═══════════════════════════════════════════════════════════════════════


class TestExpiration:
    def test_open_ended(self):
        assert check_expiration(_make_fields(), VALIDATION_DATE).passed

    def test_open_ended_even_when_not_durable(self):
        assert check_expiration(_make_fields(durability_clause=None), VALIDATION_DATE).passed

    def test_expired(self):
        result = check_expiration(_make_fields(expiration_date=date(2024, 12, 31)), VALIDATION_DATE)
        assert result.reason_code == ReasonCode.POA_EXPIRED
        assert result.details["days_expired"] == 152

    def test_expiring_on_validation_date_is_still_valid(self):
        assert check_expiration(_make_fields(expiration_date=VALIDATION_DATE), VALIDATION_DATE).passed


class TestLegibility:
    def test_at_threshold_passes(self):
        assert check_legibility(_make_fields(confidence=60.0), 60.0).passed

    def test_below_threshold_fails(self):
        result = check_legibility(_make_fields(confidence=59.9), 60.0)
        assert result.reason_code == ReasonCode.ILLEGIBLE_CONTENT

    def test_missing_confidence_is_illegible(self):
        assert not check_legibility(_make_fields(confidence=None), 60.0).passed


# ═══════════════════════════════════════════════════════════════════════
# RULE ENGINE
# ═══════════════════════════════════════════════════════════════════════


class TestRuleEngine:
    def test_runs_every_rule_in_catalog_order(self):
        results = RuleEngine(lookup=make_registry()).evaluate(_make_fields(), VALIDATION_DATE)
        assert [r.rule_id for r in results] == [rule_id for rule_id, _ in RULE_CATALOG]
        assert all(r.passed for r in results)

    def test_no_short_circuit(self):
        fields = _make_fields(notary=None, witnesses=[], cremation_clause=None, confidence=10.0)
        results = RuleEngine(lookup=make_registry()).evaluate(fields, VALIDATION_DATE)
        assert len(results) == len(RULE_CATALOG)
        assert [r.reason_code for r in results if not r.passed] == [
            ReasonCode.NOTARY_MISSING,
            ReasonCode.WITNESS_MISSING,
            ReasonCode.CREMATION_AUTHORITY_MISSING,
            ReasonCode.ILLEGIBLE_CONTENT,
        ]

    def test_lookup_called_with_notarized_date(self):
        lookup = MagicMock()
        lookup.lookup.return_value = ACTIVE
        RuleEngine(lookup=lookup).evaluate(_make_fields(), VALIDATION_DATE)
        lookup.lookup.assert_called_once_with("123456", date(2025, 1, 15))

    def test_malformed_commission_skips_lookup(self):
        lookup = MagicMock()
        notary = _make_notary(commission_number=CommissionNumber(raw="INVALID123", well_formed=False))
        RuleEngine(lookup=lookup).evaluate(_make_fields(notary=notary), VALIDATION_DATE)
        lookup.lookup.assert_not_called()

    def test_registry_expired_as_of_notarization(self):
        engine = RuleEngine(lookup=make_registry(expiration=date(2024, 12, 31)))
        results = engine.evaluate(_make_fields(), VALIDATION_DATE)
        assert [r.reason_code for r in results if not r.passed] == [ReasonCode.NOTARY_EXPIRED]

    def test_commission_expiring_after_notarization_is_fine(self):
        engine = RuleEngine(lookup=make_registry(expiration=date(2025, 3, 1)))
        assert all(r.passed for r in engine.evaluate(_make_fields(), VALIDATION_DATE))

    def test_unknown_commission(self):
        engine = RuleEngine(lookup=StaticNotaryLookup())
        results = engine.evaluate(_make_fields(), VALIDATION_DATE)
        assert [r.reason_code for r in results if not r.passed] == [ReasonCode.NOTARY_INVALID_COMMISSION]

    @pytest.mark.parametrize(
        "failure",
        [RuntimeError("registry crashed"), NotaryLookupUnavailable("registry down")],
    )
    def test_lookup_errors_become_unavailable(self, failure):
        lookup = MagicMock()
        lookup.lookup.side_effect = failure
        results = RuleEngine(lookup=lookup).evaluate(_make_fields(), VALIDATION_DATE)
        assert [r.reason_code for r in results if not r.passed] == [
            ReasonCode.NOTARY_VERIFICATION_UNAVAILABLE
        ]

    def test_lookup_timeout_becomes_unavailable(self):
        class SlowLookup:
            def lookup(self, commission_number, as_of):
                time.sleep(1.0)
                return ACTIVE

        engine = RuleEngine(ValidationConfig(lookup_timeout=0.05), lookup=SlowLookup())
        started = time.monotonic()
        results = engine.evaluate(_make_fields(), VALIDATION_DATE)
        assert time.monotonic() - started < 0.9
        assert results[2].reason_code == ReasonCode.NOTARY_VERIFICATION_UNAVAILABLE

    def test_default_lookup_is_unavailable(self):
        results = RuleEngine().evaluate(_make_fields(), VALIDATION_DATE)
        assert [r.reason_code for r in results if not r.passed] == [
            ReasonCode.NOTARY_VERIFICATION_UNAVAILABLE
        ]

    def test_evaluate_is_deterministic(self):
        engine = RuleEngine(lookup=make_registry())
        fields = _make_fields(witnesses=[], cremation_clause=VAGUE_CREMATION)
        assert engine.evaluate(fields, VALIDATION_DATE) == engine.evaluate(fields, VALIDATION_DATE)


# ═══════════════════════════════════════════════════════════════════════
# AGGREGATOR
# ═══════════════════════════════════════════════════════════════════════


class TestAggregator:
    def _extraction(self, confidence=100.0) -> ExtractionResult:
        return ExtractionResult(text="x", pages=[PageExtraction(page_number=1, text="x")], confidence=confidence)

    def test_all_passed_is_valid(self):
        results = RuleEngine(lookup=make_registry()).evaluate(_make_fields(), VALIDATION_DATE)
        verdict = aggregate(self._extraction(87.5), results)
        assert verdict.status == VerdictStatus.VALID
        assert verdict.reasons == []
        assert verdict.confidence == 87.5

    def test_reasons_follow_result_order(self):
        fields = _make_fields(witnesses=[], cremation_clause=VAGUE_CREMATION, notary=None)
        results = RuleEngine(lookup=make_registry()).evaluate(fields, VALIDATION_DATE)
        verdict = aggregate(self._extraction(), results)
        assert verdict.status == VerdictStatus.INVALID
        assert verdict.reasons == [
            ReasonCode.NOTARY_MISSING,
            ReasonCode.WITNESS_MISSING,
            ReasonCode.NON_COMPLIANT_VERBIAGE,
        ]

    def test_unreadable_is_terminal(self):
        results = RuleEngine(lookup=make_registry()).evaluate(_make_fields(notary=None), VALIDATION_DATE)
        verdict = aggregate(ExtractionResult.unreadable("corrupt"), results)
        assert verdict.reasons == [ReasonCode.UNREADABLE_FILE]
        assert verdict.confidence is None

    def test_no_results_is_valid(self):
        assert aggregate(self._extraction(), []).is_valid


# ═══════════════════════════════════════════════════════════════════════
# NOTARY LOOKUP IMPLEMENTATIONS
# ═══════════════════════════════════════════════════════════════════════


class TestStaticLookup:
    def test_statuses(self):
        registry = make_registry(expiration=date(2025, 12, 31))
        assert registry.lookup("123456", date(2025, 1, 1)).status == CommissionStatus.ACTIVE
        assert registry.lookup("123456", date(2026, 1, 1)).status == CommissionStatus.EXPIRED
        assert registry.lookup("999999", date(2025, 1, 1)).status == CommissionStatus.NOT_FOUND

    def test_revoked_commission_is_not_found(self):
        registry = make_registry(active=False)
        assert registry.lookup("123456", date(2025, 1, 1)).status == CommissionStatus.NOT_FOUND

    def test_load_registry_list(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text(json.dumps([
            {"commission_number": "123456", "name": "Patricia Lee", "expiration_date": "2026-12-31"},
            {"commission_number": "654321", "active": False},
        ]))
        registry = load_registry(path)
        assert len(registry) == 2
        assert registry.lookup("123456", date(2025, 1, 15)).expiration_date == date(2026, 12, 31)

    def test_load_registry_object(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text(json.dumps({"commissions": [{"commission_number": "111111"}]}))
        assert load_registry(path).lookup("111111", date(2025, 1, 1)).status == CommissionStatus.ACTIVE


class TestHttpLookup:
    def _lookup(self, handler) -> HttpNotaryLookup:
        return HttpNotaryLookup(
            "https://registry.example/api",
            api_key="secret-token",
            transport=httpx.MockTransport(handler),
        )

    def test_active_commission(self):
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={"active": True, "expirationDate": "2026-12-31"})

        result = self._lookup(handler).lookup("123456", date(2025, 1, 15))
        assert result == ACTIVE
        request = seen["request"]
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.url.path == "/api/verify"
        assert request.url.params["commission"] == "123456"
        assert request.url.params["as_of"] == "2025-01-15"

    def test_expired_commission(self):
        handler = lambda request: httpx.Response(200, json={"active": False, "expirationDate": "2024-12-31"})  # noqa: E731
        result = self._lookup(handler).lookup("123456", date(2025, 1, 15))
        assert result.status == CommissionStatus.EXPIRED

    def test_inactive_commission_is_not_found(self):
        handler = lambda request: httpx.Response(200, json={"active": False})  # noqa: E731
        assert self._lookup(handler).lookup("123456", date(2025, 1, 15)).status == CommissionStatus.NOT_FOUND

    def test_404_is_not_found(self):
        handler = lambda request: httpx.Response(404)  # noqa: E731
        assert self._lookup(handler).lookup("123456", date(2025, 1, 15)).status == CommissionStatus.NOT_FOUND

    def test_server_error_raises_unavailable(self):
        handler = lambda request: httpx.Response(503)  # noqa: E731
        with pytest.raises(NotaryLookupUnavailable):
            self._lookup(handler).lookup("123456", date(2025, 1, 15))

    def test_connection_error_raises_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NotaryLookupUnavailable):
            self._lookup(handler).lookup("123456", date(2025, 1, 15))

    def test_garbage_body_raises_unavailable(self):
        handler = lambda request: httpx.Response(200, text="<html>maintenance</html>")  # noqa: E731
        with pytest.raises(NotaryLookupUnavailable):
            self._lookup(handler).lookup("123456", date(2025, 1, 15))


class TestLookupWrappers:
    def test_unavailable_lookup(self):
        result = UnavailableNotaryLookup().lookup("123456", date(2025, 1, 1))
        assert result.status == CommissionStatus.UNAVAILABLE

    def test_rate_limited_spaces_calls(self):
        inner = MagicMock()
        inner.lookup.return_value = ACTIVE
        limited = RateLimitedNotaryLookup(inner, min_interval=0.05)
        started = time.monotonic()
        limited.lookup("123456", date(2025, 1, 1))
        limited.lookup("123456", date(2025, 1, 1))
        assert time.monotonic() - started >= 0.05
        assert inner.lookup.call_count == 2

    def test_lookup_from_env(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text("[]")
        assert isinstance(lookup_from_env({}), UnavailableNotaryLookup)
        assert isinstance(lookup_from_env({"POA_NOTARY_REGISTRY_FILE": str(path)}), StaticNotaryLookup)
        http = lookup_from_env({"POA_NOTARY_REGISTRY_URL": "https://registry.example"})
        assert isinstance(http, RateLimitedNotaryLookup)
        assert isinstance(http.inner, HttpNotaryLookup)

"""
Notary commission lookup.

The rule engine asks one question: "is commission N active as of date D?".
Where the answer comes from is an injected collaborator:

  - StaticNotaryLookup: an in-memory registry (JSON file or test fixture)
  - HttpNotaryLookup: a state registry endpoint over HTTPS
  - UnavailableNotaryLookup: no registry configured, always UNAVAILABLE

Implementations may return UNAVAILABLE or raise NotaryLookupUnavailable;
the rule engine treats both (and timeouts) the same way.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from .exceptions import NotaryLookupUnavailable

logger = logging.getLogger(__name__)


class CommissionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


class CommissionLookupResult(BaseModel):
    status: CommissionStatus
    expiration_date: Optional[date] = None


@runtime_checkable
class NotaryLookup(Protocol):
    def lookup(self, commission_number: str, as_of: date) -> CommissionLookupResult: ...


# ─── In-Memory Registry ──────────────────────────────────────────────


class CommissionRecord(BaseModel):
    """One row of a commission registry."""

    commission_number: str
    name: Optional[str] = None
    county: Optional[str] = None
    active: bool = True  # False for revoked/surrendered commissions
    expiration_date: Optional[date] = None


class StaticNotaryLookup:
    """Registry held in memory. Unknown or revoked commissions are NOT_FOUND."""

    def __init__(self, records: Iterable[CommissionRecord] = ()):
        self._records = {r.commission_number.strip(): r for r in records}

    def __len__(self) -> int:
        return len(self._records)

    def lookup(self, commission_number: str, as_of: date) -> CommissionLookupResult:
        record = self._records.get(commission_number.strip())
        if record is None or not record.active:
            return CommissionLookupResult(status=CommissionStatus.NOT_FOUND)
        if record.expiration_date is not None and record.expiration_date < as_of:
            return CommissionLookupResult(
                status=CommissionStatus.EXPIRED,
                expiration_date=record.expiration_date,
            )
        return CommissionLookupResult(
            status=CommissionStatus.ACTIVE,
            expiration_date=record.expiration_date,
        )


def load_registry(path: str | Path) -> StaticNotaryLookup:
    """Load a commission registry from a JSON list of records.

    Example file:
        [{"commission_number": "123456", "name": "Patricia Lee",
          "county": "Los Angeles", "expiration_date": "2026-12-31"}]
    """
    with Path(path).open(encoding="utf-8") as f:
        raw = json.load(f)

    if isinstance(raw, dict):
        raw = raw.get("commissions", [])
    records = [CommissionRecord.model_validate(item) for item in raw]
    logger.info("Loaded %d notary commission(s) from %s", len(records), path)
    return StaticNotaryLookup(records)


# ─── HTTP Registry ───────────────────────────────────────────────────


class HttpNotaryLookup:
    """Client for a state notary registry.

    ``GET {base_url}/verify?commission=N&as_of=YYYY-MM-DD`` with a bearer
    token; the response body is ``{"active": bool, "expirationDate": "..."}``.
    A 404 means the commission does not exist.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def lookup(self, commission_number: str, as_of: date) -> CommissionLookupResult:
        try:
            response = self._client.get(
                "/verify",
                params={"commission": commission_number, "as_of": as_of.isoformat()},
            )
        except httpx.HTTPError as exc:
            raise NotaryLookupUnavailable(
                f"Notary registry request failed: {exc}",
                details={"commission_number": commission_number},
            ) from exc

        if response.status_code == 404:
            return CommissionLookupResult(status=CommissionStatus.NOT_FOUND)
        if response.status_code >= 400:
            raise NotaryLookupUnavailable(
                f"Notary registry returned HTTP {response.status_code}",
                details={"commission_number": commission_number, "status": response.status_code},
            )

        try:
            body = response.json()
            expiration = body.get("expirationDate")
            expiration_date = date.fromisoformat(expiration[:10]) if expiration else None
            active = bool(body["active"])
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise NotaryLookupUnavailable(
                f"Unexpected notary registry response: {exc}",
                details={"commission_number": commission_number},
            ) from exc

        if expiration_date is not None and expiration_date < as_of:
            status = CommissionStatus.EXPIRED
        elif not active:
            status = CommissionStatus.NOT_FOUND
        else:
            status = CommissionStatus.ACTIVE
        return CommissionLookupResult(status=status, expiration_date=expiration_date)


# ─── Fallbacks & Wrappers ────────────────────────────────────────────


class UnavailableNotaryLookup:
    """Used when no registry is configured: every commission needs manual verification."""

    def lookup(self, commission_number: str, as_of: date) -> CommissionLookupResult:
        return CommissionLookupResult(status=CommissionStatus.UNAVAILABLE)


class RateLimitedNotaryLookup:
    """Space out calls to a shared registry by at least ``min_interval`` seconds."""

    def __init__(self, inner: NotaryLookup, min_interval: float = 0.5):
        self.inner = inner
        self.min_interval = min_interval
        self._lock = threading.Lock()
        self._last_call = 0.0

    def lookup(self, commission_number: str, as_of: date) -> CommissionLookupResult:
        with self._lock:
            wait_for = self._last_call + self.min_interval - time.monotonic()
            if wait_for > 0:
                time.sleep(wait_for)
            self._last_call = time.monotonic()
        return self.inner.lookup(commission_number, as_of)


# ─── Environment Wiring ──────────────────────────────────────────────


def lookup_from_env(environ: Optional[dict[str, str]] = None, timeout: float = 5.0) -> NotaryLookup:
    """Pick a lookup from the environment.

    ``POA_NOTARY_REGISTRY_URL`` (with optional ``POA_NOTARY_REGISTRY_API_KEY``)
    selects the HTTP registry, rate-limited by
    ``POA_NOTARY_REGISTRY_MIN_INTERVAL`` seconds; ``POA_NOTARY_REGISTRY_FILE``
    selects a JSON registry. With neither, every commission is UNAVAILABLE.
    """
    env = os.environ if environ is None else environ

    url = env.get("POA_NOTARY_REGISTRY_URL", "").strip()
    if url:
        interval = float(env.get("POA_NOTARY_REGISTRY_MIN_INTERVAL", "0.5") or 0.5)
        logger.info("Using HTTP notary registry at %s", url)
        return RateLimitedNotaryLookup(
            HttpNotaryLookup(url, api_key=env.get("POA_NOTARY_REGISTRY_API_KEY"), timeout=timeout),
            min_interval=interval,
        )

    path = env.get("POA_NOTARY_REGISTRY_FILE", "").strip()
    if path:
        return load_registry(path)

    logger.warning("No notary registry configured; commissions will need manual verification")
    return UnavailableNotaryLookup()

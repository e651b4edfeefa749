"""Client orchestrator: one user enquiry from input to user-facing state.

  validate input → remember last query → cache lookup → gateway call →
  parse HTML → map outcome → cache successful records

Every path ends in an EnquiryResult; nothing here raises for expected
failures. Messages shown to the user never include HTTP status codes or
raw error text.

  Records                     → RESULTS
  NoRecords(REF_ONLY)         → NO_RECORDS_REFERENCE
  NoRecords(REF_AND_SERIAL)   → NO_RECORDS_REFERENCE_AND_SERIAL
  Empty / parser exception    → PARSE_FAILURE
  gateway 400 / local checks  → INVALID_INPUT
  gateway 429                 → RATE_LIMITED
  other non-2xx, transport    → UPSTREAM_OFFLINE
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx

from fsenquiry.client.cache import ResultCache
from fsenquiry.constants import MAX_FIELD_LENGTH
from fsenquiry.parser import Empty, FirearmRecord, NoRecords, NoRecordsScope, Records, parse
from fsenquiry.utils.logger import get_logger, mask_value

logger = get_logger(__name__)

DEFAULT_GATEWAY_URL = "http://127.0.0.1:3000"
ENQUIRY_ENDPOINT = "/api/firearm-status"

# Longer than the gateway's default upstream timeout, so the gateway's 503
# arrives first.
DEFAULT_CLIENT_TIMEOUT_S = 20.0

OFFLINE_MESSAGE = "SAPS servers appear to be offline or not responding. Please try again later."
RATE_LIMITED_MESSAGE = "Too many enquiries. Please wait a minute and try again."
PARSE_FAILURE_MESSAGE = "Failed to parse results. The SAPS website may have changed format."


class EnquiryState(str, Enum):
    RESULTS = "RESULTS"
    NO_RECORDS_REFERENCE = "NO_RECORDS_REFERENCE"
    NO_RECORDS_REFERENCE_AND_SERIAL = "NO_RECORDS_REFERENCE_AND_SERIAL"
    PARSE_FAILURE = "PARSE_FAILURE"
    INVALID_INPUT = "INVALID_INPUT"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_OFFLINE = "UPSTREAM_OFFLINE"


@dataclass(frozen=True)
class EnquiryResult:
    state: EnquiryState
    records: tuple[FirearmRecord, ...] = field(default_factory=tuple)
    fetched_at: str = ""
    message: Optional[str] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.state is EnquiryState.RESULTS

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "records": [record.to_dict() for record in self.records],
            "fetchedAt": self.fetched_at,
            "message": self.message,
            "fromCache": self.from_cache,
        }


def validate_query(reference: str, serial: Optional[str] = None) -> Optional[str]:
    """Return a user-facing error message, or None when the query is acceptable."""
    if not reference or not reference.strip():
        return "Reference Number is required"
    if len(reference) > MAX_FIELD_LENGTH:
        return "Reference Number exceeds maximum length"
    if serial and len(serial) > MAX_FIELD_LENGTH:
        return "Serial Number exceeds maximum length"
    return None


def outcome_to_result(outcome: object, fetched_at: str) -> EnquiryResult:
    """Map a parser outcome onto the user-facing state."""
    if isinstance(outcome, Records):
        return EnquiryResult(EnquiryState.RESULTS, records=outcome.records, fetched_at=fetched_at)

    if isinstance(outcome, NoRecords):
        if outcome.scope is NoRecordsScope.REF_AND_SERIAL:
            return EnquiryResult(
                EnquiryState.NO_RECORDS_REFERENCE_AND_SERIAL,
                fetched_at=fetched_at,
                message=(
                    f"No records found for Reference Number {outcome.reference} "
                    f"and Serial Number {outcome.serial}"
                ),
            )
        return EnquiryResult(
            EnquiryState.NO_RECORDS_REFERENCE,
            fetched_at=fetched_at,
            message=f"No records found for Reference Number {outcome.reference}",
        )

    if not isinstance(outcome, Empty):
        logger.error("Unexpected parse outcome", outcome_type=type(outcome).__name__)
    return EnquiryResult(EnquiryState.PARSE_FAILURE, fetched_at=fetched_at, message=PARSE_FAILURE_MESSAGE)


def _iso(moment: datetime | float) -> str:
    if not isinstance(moment, datetime):
        moment = datetime.fromtimestamp(moment, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now_iso() -> str:
    return _iso(datetime.now(timezone.utc))


class EnquiryClient:
    """Runs enquiries against a gateway, with an optional local result cache.

    With a cache, every valid query is remembered as the last query.
    ``use_cache=False`` keeps that but skips the result lookup and store.

    Usage::

        async with EnquiryClient("https://gateway.example") as client:
            result = await client.enquire("REF123", "SER456")
    """

    def __init__(
        self,
        gateway_url: str = DEFAULT_GATEWAY_URL,
        *,
        cache: Optional[ResultCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = DEFAULT_CLIENT_TIMEOUT_S,
        use_cache: bool = True,
    ) -> None:
        self.gateway_url = gateway_url.rstrip("/")
        self.cache = cache
        self._caching = cache is not None and use_cache
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

    async def __aenter__(self) -> "EnquiryClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def enquire(self, reference: str, serial: Optional[str] = None) -> EnquiryResult:
        """Run one enquiry end to end and return its user-facing result."""
        serial = serial or ""
        problem = validate_query(reference, serial)
        if problem:
            logger.warning("Enquiry not sent: invalid input", problem=problem)
            return EnquiryResult(EnquiryState.INVALID_INPUT, fetched_at=_now_iso(), message=problem)

        reference, serial = reference.strip(), serial.strip()

        if self.cache is not None:
            self.cache.save_last_query(reference, serial)

        if self._caching:
            hit = self.cache.lookup(reference, serial)  # type: ignore[union-attr]
            if hit and hit.records:
                return EnquiryResult(
                    EnquiryState.RESULTS,
                    records=tuple(hit.records),
                    fetched_at=_iso(hit.stored_at),
                    from_cache=True,
                )

        result = await self._query_gateway(reference, serial)

        if result.ok and self._caching:
            self.cache.put(reference, serial, list(result.records))  # type: ignore[union-attr]
        return result

    async def _query_gateway(self, reference: str, serial: str) -> EnquiryResult:
        payload: dict[str, str] = {"fsref": reference}
        if serial:
            payload["fserial"] = serial

        logger.debug("Querying gateway", reference=mask_value(reference), url=self.gateway_url)
        try:
            response = await self._http.post(f"{self.gateway_url}{ENQUIRY_ENDPOINT}", json=payload)
        except httpx.HTTPError as exc:
            logger.error("Gateway request failed", error_type=type(exc).__name__)
            return EnquiryResult(EnquiryState.UPSTREAM_OFFLINE, fetched_at=_now_iso(), message=OFFLINE_MESSAGE)

        if response.status_code == 429:
            logger.warning("Gateway rate limit hit", retry_after=response.headers.get("retry-after"))
            return EnquiryResult(EnquiryState.RATE_LIMITED, fetched_at=_now_iso(), message=RATE_LIMITED_MESSAGE)
        if response.status_code == 400:
            logger.warning("Gateway rejected input")
            return EnquiryResult(
                EnquiryState.INVALID_INPUT,
                fetched_at=_now_iso(),
                message="The Reference Number or Serial Number was not accepted",
            )
        if not response.is_success:
            logger.error("Gateway error", status=response.status_code)
            return EnquiryResult(EnquiryState.UPSTREAM_OFFLINE, fetched_at=_now_iso(), message=OFFLINE_MESSAGE)

        try:
            data = response.json()
            html = data["html"]
            fetched_at = str(data.get("fetchedAt") or _now_iso())
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Gateway response malformed", error_type=type(exc).__name__)
            return EnquiryResult(EnquiryState.UPSTREAM_OFFLINE, fetched_at=_now_iso(), message=OFFLINE_MESSAGE)

        try:
            outcome = parse(html)
        except Exception as exc:  # noqa: BLE001
            logger.error("HTML parsing failed", error_type=type(exc).__name__, error=str(exc))
            return EnquiryResult(EnquiryState.PARSE_FAILURE, fetched_at=fetched_at, message=PARSE_FAILURE_MESSAGE)

        result = outcome_to_result(outcome, fetched_at)
        logger.info(
            "Enquiry completed",
            state=result.state.value,
            record_count=len(result.records),
            reference=mask_value(reference),
        )
        return result

"""
Client for the aviationapi.com airports endpoint.

Source: GET https://api.aviationapi.com/v1/airports?apt=KJFK
Free, no authentication required. Returns JSON keyed by the requested code::

    {"KJFK": [{"facility_name": "JOHN F KENNEDY INTL", "latitude_sec": "146303.7400N", ...}]}

HTTP and transport failures are translated into the service error taxonomy
here, so the resilience stages only ever see classified errors.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from models.aviation_api import AirportRecord
from services.exceptions import (
    AirportNotFoundError,
    MappingError,
    UpstreamFaultError,
    UpstreamRequestError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.aviationapi.com"
DEFAULT_AIRPORTS_PATH = "/v1/airports"

# Keys that identify a single airport record sent as a flat object
_RECORD_KEYS = ("icao_ident", "facility_name", "faa_ident")


class AviationApiClient:
    """Raw HTTP access to the provider. One attempt per call, no retries."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        airports_path: str = DEFAULT_AIRPORTS_PATH,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.airports_path = airports_path
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Return a reusable httpx client (lazy init)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                limits=httpx.Limits(max_connections=100, keepalive_expiry=20.0),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_airport(self, icao_code: str) -> Any:
        """GET the airport payload for ``icao_code`` and return the decoded JSON body."""
        client = await self._get_client()
        try:
            response = await client.get(self.airports_path, params={"apt": icao_code})
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"Timed out fetching airport {icao_code}: {e!r}") from e
        except httpx.TransportError as e:
            raise UpstreamFaultError(f"Transport error fetching airport {icao_code}: {e!r}") from e

        self._raise_for_status(icao_code, response)

        try:
            return response.json()
        except ValueError as e:
            raise MappingError(f"Airport payload for {icao_code} is not valid JSON: {e}") from e

    @staticmethod
    def _raise_for_status(icao_code: str, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 404:
            raise AirportNotFoundError(icao_code)
        if status == 504:
            raise UpstreamTimeoutError(f"Provider gateway timeout for {icao_code}", status=status)
        if status >= 500:
            raise UpstreamFaultError(f"Provider returned HTTP {status} for {icao_code}", status=status)
        raise UpstreamRequestError(f"Provider rejected request for {icao_code} with HTTP {status}", status=status)


def _matches(raw: Any, icao_code: str) -> bool:
    """A record without an ICAO ident is taken at its key; one with a different ident is not ours."""
    if not isinstance(raw, dict):
        return True
    ident = raw.get("icao_ident")
    if not isinstance(ident, str) or not ident.strip():
        return True
    return ident.strip().upper() == icao_code


def extract_airport_record(payload: Any, icao_code: str) -> AirportRecord:
    """Pick the record for ``icao_code`` out of a provider payload.

    Accepts the usual map of code -> list of candidates, a map of code -> single
    record, or a flat record. The first candidate whose ``icao_ident`` is the
    requested code (or absent) wins. A payload without such a record is a
    not-found, anything else that cannot be read is a mapping error.
    """
    if not isinstance(payload, dict):
        raise MappingError(
            f"Unexpected airport payload for {icao_code}: expected an object, got {type(payload).__name__}"
        )

    if icao_code in payload:
        candidates = payload[icao_code]
    elif any(key in payload for key in _RECORD_KEYS):
        candidates = payload
    else:
        matches = [key for key in payload if isinstance(key, str) and key.upper() == icao_code]
        if not matches:
            raise AirportNotFoundError(icao_code)
        candidates = payload[matches[0]]

    if candidates is None:
        raise AirportNotFoundError(icao_code)
    if not isinstance(candidates, list):
        candidates = [candidates]

    raw = next((c for c in candidates if _matches(c, icao_code)), None)
    if raw is None:
        if candidates:
            logger.warning(f"Provider returned no record with ICAO ident {icao_code}")
        raise AirportNotFoundError(icao_code)

    if not isinstance(raw, dict):
        raise MappingError(f"Unexpected airport record for {icao_code}: {type(raw).__name__}")

    try:
        return AirportRecord.model_validate(raw)
    except ValidationError as e:
        raise MappingError(f"Invalid airport record for {icao_code}: {e}") from e

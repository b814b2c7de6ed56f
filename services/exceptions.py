"""
Error taxonomy for the airport lookup pipeline.

Every error carries the HTTP status and title it is rendered with, so the
API layer can tell "airport doesn't exist" apart from "provider is degraded".
"""

from typing import Optional


class AviationDataError(Exception):
    """Base class for all classified airport lookup failures."""

    status_code = 500
    title = "Internal Server Error"


class InvalidIcaoCodeError(AviationDataError, ValueError):
    status_code = 400
    title = "Invalid Request"

    def __init__(self, icao_code: Optional[str]):
        super().__init__(
            f"Invalid ICAO code format: '{icao_code}'. ICAO code must be 4 alphanumeric characters"
        )
        self.icao_code = icao_code


class AirportNotFoundError(AviationDataError):
    status_code = 404
    title = "Airport Not Found"

    def __init__(self, icao_code: str):
        super().__init__(f"Airport with ICAO code '{icao_code}' not found")
        self.icao_code = icao_code


class RateLimitedError(AviationDataError):
    status_code = 429
    title = "Too Many Requests"

    def __init__(self, name: str, timeout: float):
        super().__init__(f"Rate limiter '{name}' has no permit available within {timeout:g}s")
        self.name = name


class MappingError(AviationDataError):
    """Upstream answered successfully but the payload could not be mapped."""

    status_code = 500
    title = "Upstream Payload Error"


class UpstreamFaultError(AviationDataError):
    """Server-side or transport failure of the provider. Retryable."""

    status_code = 502
    title = "Bad Gateway"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UpstreamTimeoutError(UpstreamFaultError):
    status_code = 504
    title = "Gateway Timeout"


class UpstreamRequestError(AviationDataError):
    """Provider rejected the request (4xx other than 404). Terminal."""

    status_code = 502
    title = "Upstream Request Rejected"

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


class CircuitOpenError(AviationDataError):
    status_code = 503
    title = "Service Unavailable"

    def __init__(self, name: str, state: str):
        super().__init__(f"Circuit breaker '{name}' is {state} and does not permit further calls")
        self.name = name
        self.state = state

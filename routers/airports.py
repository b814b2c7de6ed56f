from fastapi import APIRouter, Depends, Path, Request
import logging

from models.airports import AirportResponse, normalize_icao_code
from models.responses import ErrorResponse
from services.airport_service import AviationDataPort

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/airports", tags=["Airports"])


def get_airport_service(request: Request) -> AviationDataPort:
    """Airport service built at startup and kept on the application state."""
    return request.app.state.airport_service


@router.get(
    "/{icao}",
    response_model=AirportResponse,
    response_model_exclude_none=True,
    summary="Get airport by ICAO code",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid ICAO code format"},
        404: {"model": ErrorResponse, "description": "Airport not found"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Provider payload could not be read"},
        502: {"model": ErrorResponse, "description": "Provider error"},
        503: {"model": ErrorResponse, "description": "Service unavailable (circuit breaker open)"},
        504: {"model": ErrorResponse, "description": "Provider timed out"},
    },
)
async def get_airport_by_icao(
    icao: str = Path(..., description="4-character ICAO code (e.g., KJFK, EGLL, YSSY)"),
    service: AviationDataPort = Depends(get_airport_service),
) -> AirportResponse:
    """
    Get airport information by ICAO code.

    Returns identity, location, elevation and timezone. Results are cached;
    upstream failures are retried and isolated behind a circuit breaker.

    - **icao**: 4-character ICAO airport code (e.g., KJFK, EGLL)
    """
    logger.info(f"Received request for airport with ICAO: {icao}")
    icao_code = normalize_icao_code(icao)

    airport = await service.get_airport_by_icao(icao_code)

    logger.info(f"Successfully processed request for ICAO: {icao_code}")
    return AirportResponse.from_domain(airport)

import os
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Dict, Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings
from models.responses import (
    CacheStatus,
    CircuitBreakerStatus,
    ErrorResponse,
    HealthResponse,
)
from routers.airports import router as airports_router
from services.airport_service import create_airport_service
from services.exceptions import AviationDataError
from services.timezone_resolver import TimezoneResolver

VERSION = "1.0.0"

settings = Settings.from_env()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _add_cors(application: FastAPI):
    """Add CORS middleware to an app."""
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error_response(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(status=status_code, error=error, message=message, path=request.url.path)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def aviation_error_handler(request: Request, exc: AviationDataError) -> JSONResponse:
    """Map classified lookup failures to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{exc.title}: {exc}")
    else:
        logger.warning(f"{exc.title}: {exc}")
    return _error_response(request, exc.status_code, exc.title, str(exc))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error: {exc}")
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        "An unexpected error occurred. Please try again later.",
    )


@asynccontextmanager
async def lifespan(main_app: FastAPI):
    """Application lifespan events"""
    logger.info("Aviation Data API starting up...")

    # Polygon dataset is loaded once here and shared for the process lifetime
    timezone_resolver = TimezoneResolver()
    airport_service = create_airport_service(settings, timezone_resolver=timezone_resolver)
    main_app.state.airport_service = airport_service
    logger.info(f"Airport service ready, upstream {settings.base_url}")

    yield

    logger.info("Aviation Data API shutting down...")
    await airport_service.client.aclose()


app = FastAPI(
    title="Aviation Data API",
    description=(
        "## Aviation Data API\n\n"
        "Airport metadata by ICAO code:\n\n"
        "- **Identity**: ICAO and alternate identifiers, facility name\n"
        "- **Location**: City, country and decimal-degree coordinates\n"
        "- **Elevation**: Field elevation in feet\n"
        "- **Timezone**: IANA timezone derived from the coordinates\n\n"
        "Data comes from a third-party aviation provider behind a cache, "
        "rate limiter, retry policy and circuit breaker."
    ),
    version=VERSION,
    lifespan=lifespan,
    debug=settings.debug,
    openapi_version="3.0.2",
    openapi_tags=[
        {
            "name": "Airports",
            "description": "Airport information lookup by ICAO code.",
        },
    ],
)
_add_cors(app)
app.add_exception_handler(AviationDataError, aviation_error_handler)
app.add_exception_handler(Exception, unexpected_error_handler)

app.include_router(airports_router)


# ── Root-level endpoints ──────────────────────────────────────────────────────

@app.get("/")
async def root() -> Dict[str, Any]:
    """API information and version overview"""
    return {
        "name": "Aviation Data API",
        "version": VERSION,
        "status": "operational",
        "description": "Airport metadata lookup by ICAO code",
        "documentation": "/docs",
    }


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check with circuit breaker state and cache statistics"""
    airport_service = getattr(request.app.state, "airport_service", None)
    if airport_service is None:
        return HealthResponse(status="starting", version=VERSION)

    metrics = airport_service.pipeline.circuit_breaker.metrics()
    breaker = CircuitBreakerStatus(
        state=metrics.state.value,
        buffered_calls=metrics.buffered_calls,
        failure_rate=metrics.failure_rate,
        slow_call_rate=metrics.slow_call_rate,
    )
    caches = {
        "airports": CacheStatus(**asdict(airport_service.cache.cache.stats())),
        "timezones": CacheStatus(**asdict(airport_service.timezone_resolver.cache.stats())),
    }
    return HealthResponse(
        status="healthy" if metrics.state.value == "CLOSED" else "degraded",
        version=VERSION,
        circuit_breaker=breaker,
        caches=caches,
    )


# Application entry point
if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.debug,
        access_log=settings.debug
    )

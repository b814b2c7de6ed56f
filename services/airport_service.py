import logging
from typing import Optional, Protocol, Tuple, runtime_checkable

from pydantic import ValidationError

from config import Settings
from data_ingestion.aviation_api import AviationApiClient, extract_airport_record
from models.airports import Airport
from models.aviation_api import AirportRecord
from services.cache import CacheAside, TTLCache
from services.coordinates import CoordinateParseError, parse_dms, parse_from_seconds
from services.exceptions import MappingError
from services.resilience.pipeline import ResiliencePipeline, build_pipeline
from services.timezone_resolver import TimezoneResolver

logger = logging.getLogger(__name__)

AVIATION_API = "aviation_api"


@runtime_checkable
class AviationDataPort(Protocol):
    """Look up an airport by a normalized ICAO code."""

    async def get_airport_by_icao(self, icao_code: str) -> Airport:
        ...


def _parse_coordinate(seconds_value: Optional[str], dms_value: Optional[str]) -> Optional[float]:
    """Prefer the arc-seconds encoding, fall back to dashed DMS."""
    if seconds_value:
        return parse_from_seconds(seconds_value)
    if dms_value:
        return parse_dms(dms_value)
    return None


def _parse_elevation(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    return int(round(float(value)))


class AirportService:
    """Cached, resilient airport lookups against the aviation data provider."""

    def __init__(
        self,
        client: AviationApiClient,
        pipeline: ResiliencePipeline,
        timezone_resolver: TimezoneResolver,
        cache: CacheAside[Airport],
    ):
        self.client = client
        self.pipeline = pipeline
        self.timezone_resolver = timezone_resolver
        self.cache = cache

    async def get_airport_by_icao(self, icao_code: str) -> Airport:
        """Return the airport for an already-normalized ICAO code.

        Raises a subclass of AviationDataError on failure; failures are never cached.
        """
        logger.info(f"Fetching airport data for ICAO: {icao_code}")
        try:
            airport = await self.cache.get_or_fetch(icao_code, lambda: self._load(icao_code))
        except Exception as e:
            logger.error(f"Error fetching airport {icao_code}: {e}")
            raise
        logger.info(f"Successfully fetched airport: {airport.name}")
        return airport

    async def _load(self, icao_code: str) -> Airport:
        payload = await self.pipeline.execute(lambda: self.client.fetch_airport(icao_code))
        return self.map_to_domain(icao_code, payload)

    def map_to_domain(self, icao_code: str, payload) -> Airport:
        record = extract_airport_record(payload, icao_code)
        try:
            latitude, longitude = self._coordinates(record)
            elevation = _parse_elevation(record.elevation)
            return Airport(
                icao_code=(record.icao_ident or icao_code).upper(),
                secondary_code=record.faa_ident,
                name=record.facility_name,
                city=record.city,
                country=record.country,
                latitude=latitude,
                longitude=longitude,
                timezone_id=self.timezone_resolver.resolve(latitude, longitude),
                elevation_feet=elevation,
            )
        except (CoordinateParseError, ValidationError, ValueError, ArithmeticError) as e:
            logger.error(f"Error mapping response to domain for {icao_code}: {e}")
            raise MappingError(f"Unable to map airport data for {icao_code}: {e}") from e

    @staticmethod
    def _coordinates(record: AirportRecord) -> Tuple[Optional[float], Optional[float]]:
        latitude = _parse_coordinate(record.latitude_sec, record.latitude)
        longitude = _parse_coordinate(record.longitude_sec, record.longitude)
        return latitude, longitude


def create_airport_service(
    settings: Settings,
    timezone_resolver: Optional[TimezoneResolver] = None,
) -> AirportService:
    """Wire the client, pipeline, caches and timezone resolver from settings."""
    client = AviationApiClient(
        base_url=settings.base_url,
        airports_path=settings.airports_path,
        timeout=settings.timeout_seconds,
    )
    cache: TTLCache[Airport] = TTLCache(
        ttl_seconds=settings.airport_cache_ttl_seconds,
        maxsize=settings.cache_max_size,
    )
    if timezone_resolver is None:
        timezone_resolver = TimezoneResolver(
            cache=TTLCache(ttl_seconds=settings.airport_cache_ttl_seconds, maxsize=settings.cache_max_size)
        )
    return AirportService(
        client=client,
        pipeline=build_pipeline(AVIATION_API, settings),
        timezone_resolver=timezone_resolver,
        cache=CacheAside(cache, single_flight=settings.cache_single_flight),
    )

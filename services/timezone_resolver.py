"""
Timezone lookup from airport coordinates.

Uses the timezonefinder polygon dataset, loaded once when the resolver is
built at startup. Lookups are cached per exact coordinate pair. Anything that
cannot be resolved falls back to UTC.
"""

import logging
from typing import Optional, Protocol, Tuple

from timezonefinder import TimezoneFinder

from services.cache import TTLCache

logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "UTC"

# Timezone polygons are static data, keep resolved points for a day
_TIMEZONE_CACHE_TTL = 24 * 3600


class TimezoneEngine(Protocol):
    def timezone_at(self, *, lng: float, lat: float) -> Optional[str]:
        ...


class TimezoneResolver:
    """Resolve an IANA zone id for a (latitude, longitude) pair."""

    def __init__(
        self,
        engine: Optional[TimezoneEngine] = None,
        cache: Optional[TTLCache[str]] = None,
    ):
        if engine is None:
            logger.info("Loading timezone boundary dataset...")
            engine = TimezoneFinder()
        self._engine = engine
        if cache is None:
            cache = TTLCache(ttl_seconds=_TIMEZONE_CACHE_TTL, maxsize=1000)
        self._cache = cache

    @property
    def cache(self) -> TTLCache[str]:
        return self._cache

    def resolve(self, latitude: Optional[float], longitude: Optional[float]) -> str:
        if latitude is None or longitude is None:
            return FALLBACK_TIMEZONE

        key: Tuple[float, float] = (latitude, longitude)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        zone = self._lookup(latitude, longitude)
        self._cache.set(key, zone)
        return zone

    def _lookup(self, latitude: float, longitude: float) -> str:
        try:
            zone = self._engine.timezone_at(lng=longitude, lat=latitude)
        except ValueError as e:
            # timezonefinder rejects out-of-range coordinates
            logger.warning(f"Timezone lookup failed for ({latitude}, {longitude}): {e}")
            return FALLBACK_TIMEZONE

        if not zone:
            logger.debug(f"No timezone polygon for ({latitude}, {longitude}), using {FALLBACK_TIMEZONE}")
            return FALLBACK_TIMEZONE
        return zone

"""End-to-end tests of the airport service against a mocked provider."""

import asyncio

import httpx
import pytest

from config import Settings
from data_ingestion.aviation_api import AviationApiClient
from services.airport_service import AirportService, AviationDataPort, create_airport_service
from services.cache import CacheAside, TTLCache
from services.exceptions import (
    AirportNotFoundError,
    CircuitOpenError,
    MappingError,
    UpstreamFaultError,
    UpstreamRequestError,
)
from services.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from services.resilience.pipeline import ResiliencePipeline
from services.resilience.rate_limiter import RateLimiter, RateLimiterConfig
from services.resilience.retry import Retry, RetryConfig
from services.timezone_resolver import TimezoneResolver

BASE_URL = "https://api.aviationapi.test"
TTL_SECONDS = 3600.0


class Provider:
    """Scripted provider: serves queued responses, then repeats the last one."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def _service(provider, clock, timezone_engine, *, single_flight=False) -> AirportService:
    http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(provider))
    pipeline = ResiliencePipeline(
        CircuitBreaker("aviation_api", CircuitBreakerConfig(), clock=clock),
        Retry("aviation_api", RetryConfig(max_attempts=3, base_delay=0.5), sleep=clock.sleep),
        RateLimiter("aviation_api", RateLimiterConfig(), clock=clock, sleep=clock.sleep),
    )
    return AirportService(
        client=AviationApiClient(base_url=BASE_URL, client=http_client),
        pipeline=pipeline,
        timezone_resolver=TimezoneResolver(engine=timezone_engine),
        cache=CacheAside(TTLCache(ttl_seconds=TTL_SECONDS, clock=clock), single_flight=single_flight),
    )


def _lookup(service: AirportService, icao="KJFK"):
    return asyncio.run(service.get_airport_by_icao(icao))


def test_service_satisfies_port(clock, timezone_engine, kjfk_payload) -> None:
    service = _service(Provider(httpx.Response(200, json=kjfk_payload)), clock, timezone_engine)
    assert isinstance(service, AviationDataPort)


def test_maps_provider_record_to_airport(clock, timezone_engine, kjfk_payload) -> None:
    service = _service(Provider(httpx.Response(200, json=kjfk_payload)), clock, timezone_engine)

    airport = _lookup(service)

    assert airport.icao_code == "KJFK"
    assert airport.secondary_code == "JFK"
    assert airport.name == "JOHN F KENNEDY INTL"
    assert airport.city == "NEW YORK"
    assert airport.country == "QUEENS"
    assert airport.latitude == pytest.approx(40.63993, abs=1e-4)
    assert airport.longitude == pytest.approx(-73.77869, abs=1e-4)
    assert airport.elevation_feet == 13
    assert airport.timezone_id == "America/New_York"


def test_dms_coordinates_used_when_seconds_missing(clock, timezone_engine, kjfk_payload) -> None:
    record = kjfk_payload["KJFK"][0]
    record["latitude_sec"] = ""
    record["longitude_sec"] = None
    service = _service(Provider(httpx.Response(200, json=kjfk_payload)), clock, timezone_engine)

    airport = _lookup(service)

    assert airport.latitude == pytest.approx(40.63993, abs=1e-4)
    assert airport.longitude == pytest.approx(-73.77869, abs=1e-4)


def test_cache_hit_skips_provider(clock, timezone_engine, kjfk_payload) -> None:
    provider = Provider(httpx.Response(200, json=kjfk_payload))
    service = _service(provider, clock, timezone_engine)

    first = _lookup(service)
    clock.advance(TTL_SECONDS - 1)
    second = _lookup(service)

    assert first == second
    assert len(provider.requests) == 1


def test_expired_entry_is_fetched_again_once(clock, timezone_engine, kjfk_payload) -> None:
    provider = Provider(httpx.Response(200, json=kjfk_payload))
    service = _service(provider, clock, timezone_engine)

    _lookup(service)
    clock.advance(TTL_SECONDS)
    _lookup(service)
    _lookup(service)

    assert len(provider.requests) == 2


def test_not_found_is_neither_retried_nor_cached(clock, timezone_engine) -> None:
    provider = Provider(httpx.Response(404))
    service = _service(provider, clock, timezone_engine)

    with pytest.raises(AirportNotFoundError):
        _lookup(service, "ZZZZ")
    with pytest.raises(AirportNotFoundError):
        _lookup(service, "ZZZZ")

    assert len(provider.requests) == 2
    assert clock.sleeps == []
    assert "ZZZZ" not in service.cache.cache
    assert service.pipeline.circuit_breaker.metrics().failed_calls == 0


def test_empty_success_payload_is_not_found(clock, timezone_engine) -> None:
    provider = Provider(httpx.Response(200, json={"ZZZZ": []}))
    service = _service(provider, clock, timezone_engine)

    with pytest.raises(AirportNotFoundError):
        _lookup(service, "ZZZZ")
    assert len(provider.requests) == 1


def test_transient_failures_are_retried_with_backoff(clock, timezone_engine, kjfk_payload) -> None:
    provider = Provider(
        httpx.Response(500),
        httpx.Response(503),
        httpx.Response(200, json=kjfk_payload),
    )
    service = _service(provider, clock, timezone_engine)

    airport = _lookup(service)

    assert airport.icao_code == "KJFK"
    assert len(provider.requests) == 3
    assert clock.sleeps == pytest.approx([0.5, 1.0])
    assert service.pipeline.circuit_breaker.metrics().failed_calls == 0


def test_exhausted_retries_surface_upstream_fault(clock, timezone_engine) -> None:
    provider = Provider(httpx.Response(500))
    service = _service(provider, clock, timezone_engine)

    with pytest.raises(UpstreamFaultError):
        _lookup(service)

    assert len(provider.requests) == 3
    assert service.pipeline.circuit_breaker.metrics().failed_calls == 1
    assert "KJFK" not in service.cache.cache


def test_rejected_request_is_not_retried(clock, timezone_engine) -> None:
    provider = Provider(httpx.Response(400))
    service = _service(provider, clock, timezone_engine)

    with pytest.raises(UpstreamRequestError):
        _lookup(service)
    assert len(provider.requests) == 1


def test_open_circuit_rejects_without_calling_provider(clock, timezone_engine) -> None:
    provider = Provider(httpx.Response(500))
    service = _service(provider, clock, timezone_engine)

    for _ in range(5):
        with pytest.raises(UpstreamFaultError):
            _lookup(service)
    assert service.pipeline.circuit_breaker.state is CircuitState.OPEN
    sent = len(provider.requests)

    with pytest.raises(CircuitOpenError):
        _lookup(service)
    assert len(provider.requests) == sent


@pytest.mark.parametrize(
    "field, value",
    [
        ("latitude_sec", "garbage"),
        ("latitude_sec", "400000.0000N"),
        ("longitude_sec", "265603.2930X"),
        ("elevation", "thirteen"),
    ],
)
def test_malformed_record_is_mapping_error(clock, timezone_engine, kjfk_payload, field, value) -> None:
    kjfk_payload["KJFK"][0][field] = value
    service = _service(Provider(httpx.Response(200, json=kjfk_payload)), clock, timezone_engine)

    with pytest.raises(MappingError):
        _lookup(service)
    assert "KJFK" not in service.cache.cache


def test_single_coordinate_is_mapping_error(clock, timezone_engine, kjfk_payload) -> None:
    record = kjfk_payload["KJFK"][0]
    for field in ("longitude", "longitude_sec"):
        record.pop(field)
    service = _service(Provider(httpx.Response(200, json=kjfk_payload)), clock, timezone_engine)

    with pytest.raises(MappingError):
        _lookup(service)


def test_missing_name_is_mapping_error(clock, timezone_engine, kjfk_payload) -> None:
    kjfk_payload["KJFK"][0]["facility_name"] = " "
    service = _service(Provider(httpx.Response(200, json=kjfk_payload)), clock, timezone_engine)

    with pytest.raises(MappingError):
        _lookup(service)


def test_no_coordinates_falls_back_to_utc(clock, timezone_engine, kjfk_payload) -> None:
    record = kjfk_payload["KJFK"][0]
    for field in ("latitude", "latitude_sec", "longitude", "longitude_sec"):
        record.pop(field)
    service = _service(Provider(httpx.Response(200, json=kjfk_payload)), clock, timezone_engine)

    airport = _lookup(service)

    assert airport.latitude is None and airport.longitude is None
    assert airport.timezone_id == "UTC"
    assert timezone_engine.calls == []


def test_single_flight_shares_one_load(clock, timezone_engine, kjfk_payload) -> None:
    provider = Provider(httpx.Response(200, json=kjfk_payload))
    service = _service(provider, clock, timezone_engine, single_flight=True)

    async def run():
        return await asyncio.gather(*(service.get_airport_by_icao("KJFK") for _ in range(5)))

    airports = asyncio.run(run())

    assert len({a.icao_code for a in airports}) == 1
    assert len(provider.requests) == 1


def test_create_airport_service_wires_settings(timezone_engine) -> None:
    settings = Settings(cache_ttl_minutes=5, cache_max_size=50, cache_single_flight=True, max_retries=4)
    service = create_airport_service(settings, timezone_resolver=TimezoneResolver(engine=timezone_engine))

    assert service.cache.single_flight is True
    assert service.cache.cache.ttl_seconds == 300.0
    assert service.cache.cache.maxsize == 50
    assert service.pipeline.retry.config.max_attempts == 4
    assert service.client.base_url == "https://api.aviationapi.com"


def test_record_for_another_airport_is_not_cached(clock, timezone_engine, kjfk_payload) -> None:
    record = dict(kjfk_payload["KJFK"][0], icao_ident="KLGA", facility_name="LAGUARDIA")
    provider = Provider(httpx.Response(200, json=record))
    service = _service(provider, clock, timezone_engine)

    with pytest.raises(AirportNotFoundError):
        _lookup(service)
    assert "KJFK" not in service.cache.cache
    assert "KLGA" not in service.cache.cache

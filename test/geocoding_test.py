#!/usr/bin/env python
"""
Unit tests for location to service-area detection
"""
import httpx
import pytest

from utils.config import TransitConfig
from utils.geocoding import (
    AreaDetectionResult,
    AreaNotDetermined,
    AreaResolver,
    GeocodeResult,
    GeocodingProvider,
    GoogleMapsGeocoder,
    MiddlewareGeocoder,
    NominatimGeocoder,
    ProviderError,
    SERVICE_AREAS,
    area_from_geocode,
    bias_to_malaysia,
    build_providers,
    get_area_state_mapping,
    match_gazetteer,
    LOCATION_TO_AREA,
    STATE_TO_AREA,
)


class StubProvider(GeocodingProvider):
    """Provider that returns or raises a canned outcome and records queries."""

    def __init__(self, outcome, name="stub", confidence="high"):
        super().__init__(http_client=None)
        self.name = name
        self.confidence = confidence
        self.outcome = outcome
        self.queries = []

    async def geocode(self, query):
        self.queries.append(query)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def geocoded(name, lat=5.4145, lon=100.3292, confidence="high", provider="stub", **extra):
    return GeocodeResult(name=name, lat=lat, lon=lon, provider=provider, confidence=confidence, **extra)


def failing(name="stub"):
    return StubProvider(ProviderError(name, "HTTP 503"), name=name)


KOMTAR = geocoded("Komtar, Jalan Penang, George Town, Pulau Pinang, Malaysia", state="Pulau Pinang")
SABAH = geocoded("Mount Kinabalu, Ranau, Sabah, Malaysia", lat=6.0753, lon=116.5588, state="Sabah")


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Gazetteer
# ---------------------------------------------------------------------------

def test_gazetteer_areas_are_known_service_areas():
    for key, area in LOCATION_TO_AREA + STATE_TO_AREA:
        assert key == key.lower()
        assert area in SERVICE_AREAS

def test_area_state_mapping_covers_every_service_area():
    assert set(get_area_state_mapping()) == set(SERVICE_AREAS)

def test_match_gazetteer_first_match_wins():
    # "kedah" precedes "nilai" in the state table
    assert match_gazetteer("nilai, kedah", STATE_TO_AREA) == ("kedah", "alor-setar")
    assert match_gazetteer("somewhere else", STATE_TO_AREA) is None

def test_bias_to_malaysia():
    assert bias_to_malaysia("Komtar") == "Komtar, Malaysia"
    assert bias_to_malaysia("Komtar, MALAYSIA") == "Komtar, MALAYSIA"

def test_area_from_geocode_prefers_state_then_city_then_address():
    assert area_from_geocode(geocoded("x", state="Kedah")) == "alor-setar"
    assert area_from_geocode(geocoded("x", state="Sabah", city="Ipoh")) == "ipoh"
    assert area_from_geocode(geocoded("Jalan SS 15, Subang Jaya, Selangor, Malaysia")) == "klang-valley"
    assert area_from_geocode(SABAH) is None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_direct_match_with_geocoding_is_high_confidence():
    provider = StubProvider(KOMTAR)
    result = await AreaResolver([provider]).resolve("Komtar")

    assert isinstance(result, AreaDetectionResult)
    assert result.area == "penang"
    assert result.source == "direct_match"
    assert result.confidence == "high"
    assert result.location.coordinates.lat == pytest.approx(5.4145)
    # Original text goes to the provider, biased to Malaysia
    assert provider.queries == ["Komtar, Malaysia"]

@pytest.mark.asyncio
async def test_direct_match_is_case_insensitive():
    result = await AreaResolver([StubProvider(KOMTAR)]).resolve("  near KLCC park ")
    assert result.area == "klang-valley"
    assert result.source == "direct_match"

@pytest.mark.asyncio
async def test_state_mapping_when_no_direct_match():
    provider = StubProvider(geocoded("Kedah, Malaysia", lat=6.1184, lon=100.3685, confidence="medium"))
    result = await AreaResolver([provider]).resolve("Kedah")

    assert result.area == "alor-setar"
    assert result.source == "state_mapping"
    # Table match plus coordinates is high regardless of provider
    assert result.confidence == "high"

@pytest.mark.asyncio
async def test_seremban_2_is_a_direct_match():
    result = await AreaResolver([StubProvider(KOMTAR)]).resolve("Seremban 2")
    assert result.area == "seremban"
    assert result.source == "direct_match"

@pytest.mark.asyncio
async def test_table_match_without_coordinates_is_medium():
    resolver = AreaResolver([failing("middleware"), failing("nominatim")])
    result = await resolver.resolve("Kedah")

    assert result.area == "alor-setar"
    assert result.source == "state_mapping"
    assert result.confidence == "medium"
    assert result.location.coordinates is None
    assert result.location.name == "Kedah"
    assert result.location.state == "kedah"

    location = result.to_dict()["location"]
    assert (location["lat"], location["lon"]) == (0, 0)
    assert location["hasCoordinates"] is False

@pytest.mark.asyncio
async def test_unknown_place_with_failing_providers_is_not_found():
    primary, fallback = failing("middleware"), failing("nominatim")
    result = await AreaResolver([primary, fallback]).resolve("asdkfjasldkfj_not_a_place")

    assert isinstance(result, AreaNotDetermined)
    assert result.found is False
    assert set(result.available_areas) == set(SERVICE_AREAS)
    # Both providers were tried, in order
    assert primary.queries == fallback.queries == ["asdkfjasldkfj_not_a_place, Malaysia"]

@pytest.mark.asyncio
async def test_blank_query_is_not_found_without_geocoding():
    provider = StubProvider(KOMTAR)
    result = await AreaResolver([provider]).resolve("   ")
    assert isinstance(result, AreaNotDetermined)
    assert provider.queries == []

@pytest.mark.asyncio
async def test_geocoding_source_when_only_provider_output_matches():
    provider = StubProvider(geocoded("Ideal Foresta, Bayan Lepas, Pulau Pinang, Malaysia", state="Pulau Pinang"))
    result = await AreaResolver([provider]).resolve("Ideal Foresta")

    assert result.area == "penang"
    assert result.source == "geocoding"
    assert result.confidence == "high"

@pytest.mark.asyncio
async def test_nominatim_fallback_answer_is_medium_confidence():
    nominatim = StubProvider(
        geocoded("Ideal Foresta, Bayan Lepas, Pulau Pinang, Malaysia", confidence="medium", provider="nominatim", state="Pulau Pinang"),
        name="nominatim",
        confidence="medium",
    )
    result = await AreaResolver([failing("google"), nominatim]).resolve("Ideal Foresta")

    assert result.area == "penang"
    assert result.source == "geocoding"
    assert result.confidence == "medium"

@pytest.mark.asyncio
async def test_unmappable_answer_tries_next_provider():
    primary = StubProvider(SABAH, name="middleware")
    fallback = StubProvider(geocoded("Ipoh, Perak, Malaysia", confidence="medium", state="Perak"), name="nominatim")
    result = await AreaResolver([primary, fallback]).resolve("Somewhere Far")

    assert result.area == "ipoh"
    assert result.confidence == "medium"
    assert len(fallback.queries) == 1

@pytest.mark.asyncio
async def test_unmappable_answers_yield_unknown_with_coordinates():
    fallback = StubProvider(geocoded("Kinabalu Park, Sabah, Malaysia", confidence="medium"), name="nominatim")
    result = await AreaResolver([StubProvider(SABAH), fallback]).resolve("Mount Kinabalu")

    assert result.area == "unknown"
    assert result.confidence == "low"
    assert result.source == "geocoding"
    # First answer is kept
    assert result.location.name == SABAH.name
    assert result.location.coordinates.lon == pytest.approx(116.5588)

@pytest.mark.asyncio
async def test_resolve_is_idempotent():
    resolver = AreaResolver([StubProvider(KOMTAR)])
    first = await resolver.resolve("Komtar")
    second = await resolver.resolve("Komtar")
    assert (first.area, first.source) == (second.area, second.source)
    assert first == second


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

def test_build_providers_prefers_google_key():
    providers = build_providers(TransitConfig(google_maps_api_key="secret"), http_client=None)
    assert [p.name for p in providers] == ["google", "nominatim"]

def test_build_providers_uses_middleware_without_key():
    providers = build_providers(TransitConfig(middleware_url="http://mw.test"), http_client=None)
    assert [p.name for p in providers] == ["middleware", "nominatim"]
    assert providers[0].url == "http://mw.test/api/geocode"

def test_build_providers_nominatim_only():
    providers = build_providers(TransitConfig(geocode_via_middleware=False), http_client=None)
    assert [p.name for p in providers] == ["nominatim"]

@pytest.mark.asyncio
async def test_nominatim_request_and_parse():
    def handler(request):
        assert request.url.path == "/search"
        assert request.url.params["q"] == "Komtar, Malaysia"
        assert request.url.params["countrycodes"] == "my"
        assert request.url.params["limit"] == "1"
        assert request.headers["User-Agent"] == "MalaysiaTransitMCP/1.0"
        return httpx.Response(200, json=[{
            "lat": "5.4145",
            "lon": "100.3292",
            "display_name": "Komtar, George Town, Pulau Pinang, Malaysia",
            "address": {"town": "George Town", "state": "Pulau Pinang", "country": "Malaysia"},
        }])

    async with mock_client(handler) as client:
        provider = NominatimGeocoder(client, "https://nominatim.test", "MalaysiaTransitMCP/1.0")
        result = await provider.geocode("Komtar, Malaysia")

    assert result.lat == pytest.approx(5.4145)
    assert result.city == "George Town"
    assert result.confidence == "medium"
    assert area_from_geocode(result) == "penang"

@pytest.mark.asyncio
async def test_nominatim_empty_result_is_provider_error():
    async with mock_client(lambda request: httpx.Response(200, json=[])) as client:
        provider = NominatimGeocoder(client, "https://nominatim.test", "ua")
        with pytest.raises(ProviderError):
            await provider.geocode("nowhere, Malaysia")

@pytest.mark.asyncio
async def test_google_request_and_parse():
    def handler(request):
        assert request.url.params["address"] == "KLCC, Malaysia"
        assert request.url.params["key"] == "secret"
        assert request.url.params["components"] == "country:MY"
        return httpx.Response(200, json={
            "status": "OK",
            "results": [{
                "formatted_address": "Kuala Lumpur City Centre, 50088 Kuala Lumpur, Malaysia",
                "address_components": [
                    {"long_name": "Kuala Lumpur", "types": ["locality", "political"]},
                    {"long_name": "Wilayah Persekutuan Kuala Lumpur", "types": ["administrative_area_level_1", "political"]},
                ],
                "geometry": {"location": {"lat": 3.1579, "lng": 101.7116}},
            }],
        })

    async with mock_client(handler) as client:
        result = await GoogleMapsGeocoder(client, "secret", url="https://maps.test/geocode/json").geocode("KLCC, Malaysia")

    assert result.state == "Wilayah Persekutuan Kuala Lumpur"
    assert result.city == "Kuala Lumpur"
    assert result.lon == pytest.approx(101.7116)
    assert result.confidence == "high"
    assert area_from_geocode(result) == "klang-valley"

@pytest.mark.asyncio
async def test_google_zero_results_is_provider_error():
    async with mock_client(lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})) as client:
        with pytest.raises(ProviderError):
            await GoogleMapsGeocoder(client, "secret").geocode("nowhere, Malaysia")

@pytest.mark.asyncio
async def test_middleware_request_and_parse():
    def handler(request):
        assert request.url.params["query"] == "Sunway Pyramid, Malaysia"
        assert request.headers["X-App-Name"] == "Malaysia-Transit-MCP"
        return httpx.Response(200, json={
            "lat": 3.0731,
            "lon": 101.6076,
            "formattedAddress": "Sunway Pyramid, Subang Jaya, Selangor, Malaysia",
        })

    config = TransitConfig(middleware_url="http://mw.test")
    async with mock_client(handler) as client:
        provider = MiddlewareGeocoder(client, config.middleware_geocode_url, headers=config.client_headers)
        result = await provider.geocode("Sunway Pyramid, Malaysia")

    assert result.name == "Sunway Pyramid, Subang Jaya, Selangor, Malaysia"
    assert result.provider == "middleware"
    assert area_from_geocode(result) == "klang-valley"

@pytest.mark.asyncio
async def test_middleware_missing_coordinates_is_provider_error():
    async with mock_client(lambda request: httpx.Response(200, json={"formattedAddress": "Somewhere"})) as client:
        with pytest.raises(ProviderError):
            await MiddlewareGeocoder(client, "http://mw.test/api/geocode").geocode("Somewhere, Malaysia")

@pytest.mark.asyncio
async def test_http_status_and_timeout_are_provider_errors():
    async with mock_client(lambda request: httpx.Response(404, json={"error": "not found"})) as client:
        with pytest.raises(ProviderError, match="HTTP 404"):
            await MiddlewareGeocoder(client, "http://mw.test/api/geocode").geocode("x")

    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with mock_client(timeout) as client:
        with pytest.raises(ProviderError):
            await NominatimGeocoder(client, "https://nominatim.test", "ua").geocode("x")

@pytest.mark.asyncio
async def test_resolver_falls_back_over_the_wire():
    def handler(request):
        if request.url.host == "mw.test":
            return httpx.Response(503)
        return httpx.Response(200, json=[{
            "lat": "4.5975",
            "lon": "101.0901",
            "display_name": "Ipoh, Perak, Malaysia",
            "address": {"city": "Ipoh", "state": "Perak", "country": "Malaysia"},
        }])

    config = TransitConfig(middleware_url="http://mw.test", nominatim_url="https://nominatim.test")
    async with mock_client(handler) as client:
        result = await AreaResolver.from_config(config, client).resolve("Ideal Foresta")

    assert result.area == "ipoh"
    assert result.source == "geocoding"
    assert result.confidence == "medium"

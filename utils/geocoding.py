"""
Detect which Malaysian transit service area a free-text location belongs to.

Two static gazetteers map lowercase substrings to service areas: landmarks
and terminals first, then states and major towns. Whatever the tables say,
the query is also geocoded through an ordered chain of providers so that
callers get real coordinates for nearby-stop searches.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from utils.config import TransitConfig

logger = logging.getLogger(__name__)

GOOGLE_MAPS_API = "https://maps.googleapis.com/maps/api/geocode/json"

DIRECT_MATCH = "direct_match"
STATE_MAPPING = "state_mapping"
GEOCODING = "geocoding"

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

UNKNOWN_AREA = "unknown"

SERVICE_AREAS = (
    "alor-setar",
    "kangar",
    "penang",
    "ipoh",
    "kota-bharu",
    "kuala-terengganu",
    "kuantan",
    "seremban",
    "klang-valley",
    "melaka",
    "johor",
    "kuching",
)

# Landmarks and terminals. Scanned before STATE_TO_AREA; first key found in
# the query wins, so keep the order stable.
LOCATION_TO_AREA: Tuple[Tuple[str, str], ...] = (
    # Penang
    ("komtar", "penang"),
    ("bayan lepas", "penang"),
    ("butterworth", "penang"),
    ("penang sentral", "penang"),
    ("gurney", "penang"),
    ("queensbay", "penang"),
    # Klang Valley
    ("klcc", "klang-valley"),
    ("klia", "klang-valley"),
    ("klia2", "klang-valley"),
    ("mid valley", "klang-valley"),
    ("pavilion", "klang-valley"),
    ("sunway", "klang-valley"),
    ("1 utama", "klang-valley"),
    ("kl sentral", "klang-valley"),
    ("bukit bintang", "klang-valley"),
    ("bangsar", "klang-valley"),
    ("mont kiara", "klang-valley"),
    ("ioi city", "klang-valley"),
    ("tbs", "klang-valley"),
    ("terminal bersepadu selatan", "klang-valley"),
    # Ipoh
    ("medan kidd", "ipoh"),
    ("terminal amanjaya", "ipoh"),
    ("ipoh parade", "ipoh"),
    # Seremban
    ("terminal one seremban", "seremban"),
    ("seremban 2", "seremban"),
    # Melaka
    ("melaka sentral", "melaka"),
    ("jonker street", "melaka"),
    ("a famosa", "melaka"),
    # Johor
    ("jb sentral", "johor"),
    ("larkin", "johor"),
    ("legoland", "johor"),
    # Kuching
    ("kuching sentral", "kuching"),
)

# States and major towns. Also used to label geocoder output.
STATE_TO_AREA: Tuple[Tuple[str, str], ...] = (
    # Kedah
    ("kedah", "alor-setar"),
    ("alor setar", "alor-setar"),
    ("alor star", "alor-setar"),
    # Perlis
    ("perlis", "kangar"),
    ("kangar", "kangar"),
    # Penang
    ("penang", "penang"),
    ("pulau pinang", "penang"),
    ("george town", "penang"),
    ("georgetown", "penang"),
    ("butterworth", "penang"),
    ("bayan lepas", "penang"),
    # Perak
    ("perak", "ipoh"),
    ("ipoh", "ipoh"),
    ("bercham", "ipoh"),
    ("tanjung rambutan", "ipoh"),
    ("medan kidd", "ipoh"),
    # Kelantan
    ("kelantan", "kota-bharu"),
    ("kota bharu", "kota-bharu"),
    ("kota bahru", "kota-bharu"),
    # Terengganu
    ("terengganu", "kuala-terengganu"),
    ("kuala terengganu", "kuala-terengganu"),
    # Pahang
    ("pahang", "kuantan"),
    ("kuantan", "kuantan"),
    # Negeri Sembilan
    ("negeri sembilan", "seremban"),
    ("seremban", "seremban"),
    ("nilai", "seremban"),
    ("port dickson", "seremban"),
    # Selangor, Kuala Lumpur, Putrajaya
    ("selangor", "klang-valley"),
    ("kuala lumpur", "klang-valley"),
    ("kl", "klang-valley"),
    ("putrajaya", "klang-valley"),
    ("petaling jaya", "klang-valley"),
    ("shah alam", "klang-valley"),
    ("klang", "klang-valley"),
    ("subang jaya", "klang-valley"),
    ("cyberjaya", "klang-valley"),
    ("ampang", "klang-valley"),
    ("cheras", "klang-valley"),
    ("kajang", "klang-valley"),
    ("bangi", "klang-valley"),
    ("rawang", "klang-valley"),
    ("gombak", "klang-valley"),
    # Melaka
    ("melaka", "melaka"),
    ("malacca", "melaka"),
    # Johor
    ("johor", "johor"),
    ("johor bahru", "johor"),
    ("johor baharu", "johor"),
    ("jb", "johor"),
    ("iskandar puteri", "johor"),
    # Sarawak
    ("sarawak", "kuching"),
    ("kuching", "kuching"),
)

_STATE_LOOKUP: Dict[str, str] = dict(STATE_TO_AREA)


def get_area_state_mapping() -> Dict[str, List[str]]:
    """Service areas with the state names they cover, for manual selection."""
    return {
        "alor-setar": ["Kedah"],
        "kangar": ["Perlis"],
        "penang": ["Penang", "Pulau Pinang"],
        "ipoh": ["Perak"],
        "kota-bharu": ["Kelantan"],
        "kuala-terengganu": ["Terengganu"],
        "kuantan": ["Pahang"],
        "seremban": ["Negeri Sembilan"],
        "klang-valley": ["Selangor", "Kuala Lumpur", "Putrajaya"],
        "melaka": ["Melaka", "Malacca"],
        "johor": ["Johor"],
        "kuching": ["Sarawak"],
    }


def match_gazetteer(text: str, table: Sequence[Tuple[str, str]]) -> Optional[Tuple[str, str]]:
    """Return the first (key, area) whose key occurs in the lowercase text."""
    for key, area in table:
        if key in text:
            return key, area
    return None


def bias_to_malaysia(query: str) -> str:
    if "malaysia" in query.lower():
        return query
    return f"{query}, Malaysia"


class GeocodingError(Exception):
    """Base class for geocoding failures."""


class ProviderError(GeocodingError):
    """A single provider could not produce a usable answer."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float


@dataclass(frozen=True)
class GeocodeResult:
    name: str
    lat: float
    lon: float
    provider: str
    confidence: str
    state: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.lat, self.lon)


def area_from_geocode(result: GeocodeResult) -> Optional[str]:
    """
    Label a provider answer with a service area.

    Exact state, then exact city or town, then a substring scan of the
    formatted address against STATE_TO_AREA.
    """
    for candidate in (result.state, result.city):
        if candidate:
            area = _STATE_LOOKUP.get(candidate.strip().lower())
            if area:
                return area
    match = match_gazetteer(result.name.lower(), STATE_TO_AREA)
    if match:
        return match[1]
    return None


@dataclass(frozen=True)
class DetectedLocation:
    name: str
    state: Optional[str] = None
    country: Optional[str] = None
    coordinates: Optional[Coordinates] = None

    @classmethod
    def from_geocode(cls, result: GeocodeResult) -> "DetectedLocation":
        return cls(
            name=result.name,
            state=result.state,
            country=result.country,
            coordinates=result.coordinates,
        )

    def to_dict(self) -> Dict[str, Any]:
        # Clients of the tool payload treat lat/lon 0 as "no coordinates"
        if self.coordinates is None:
            lat, lon = 0, 0
        else:
            lat, lon = self.coordinates.lat, self.coordinates.lon
        return {
            "name": self.name,
            "state": self.state,
            "country": self.country,
            "lat": lat,
            "lon": lon,
            "hasCoordinates": self.coordinates is not None,
        }


@dataclass(frozen=True)
class AreaDetectionResult:
    area: str
    confidence: str
    location: DetectedLocation
    source: str

    found = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "area": self.area,
            "confidence": self.confidence,
            "location": self.location.to_dict(),
            "source": self.source,
        }


@dataclass(frozen=True)
class AreaNotDetermined:
    query: str
    available_areas: Dict[str, List[str]] = field(default_factory=get_area_state_mapping)

    found = False


class GeocodingProvider:
    """
    One external geocoding service.

    Subclasses implement _request and _parse; geocode wraps every transport,
    status and payload problem into ProviderError.
    """

    name = "provider"
    confidence = MEDIUM

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 5.0):
        self.http_client = http_client
        self.timeout = timeout

    async def geocode(self, query: str) -> GeocodeResult:
        try:
            payload = await self._request(query)
            return self._parse(payload, query)
        except ProviderError:
            raise
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"Request error: {e!r}") from e
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(self.name, f"Malformed response: {e!r}") from e

    async def _get(self, url: str, params: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Any:
        response = await self.http_client.get(url, params=params, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def _request(self, query: str) -> Any:
        raise NotImplementedError

    def _parse(self, payload: Any, query: str) -> GeocodeResult:
        raise NotImplementedError

    def _result(self, name: str, lat: Any, lon: Any, **extra: Optional[str]) -> GeocodeResult:
        if lat is None or lon is None:
            raise ProviderError(self.name, "No coordinates in response")
        return GeocodeResult(
            name=name,
            lat=float(lat),
            lon=float(lon),
            provider=self.name,
            confidence=self.confidence,
            **extra,
        )


class MiddlewareGeocoder(GeocodingProvider):
    """Google Maps geocoding delegated to the transit middleware."""

    name = "middleware"
    confidence = HIGH

    def __init__(self, http_client: httpx.AsyncClient, url: str, headers: Optional[Dict[str, str]] = None, timeout: float = 5.0):
        super().__init__(http_client, timeout)
        self.url = url
        self.headers = headers or {}

    async def _request(self, query: str) -> Any:
        return await self._get(self.url, {"query": query}, self.headers)

    def _parse(self, payload: Any, query: str) -> GeocodeResult:
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict):
            raise ProviderError(self.name, "Unexpected response body")
        return self._result(
            payload.get("formattedAddress") or query,
            payload.get("lat"),
            payload.get("lon"),
            state=payload.get("state"),
            country=payload.get("country") or "Malaysia",
        )


class GoogleMapsGeocoder(GeocodingProvider):
    name = "google"
    confidence = HIGH

    def __init__(self, http_client: httpx.AsyncClient, api_key: str, timeout: float = 5.0, url: str = GOOGLE_MAPS_API):
        super().__init__(http_client, timeout)
        self.api_key = api_key
        self.url = url

    async def _request(self, query: str) -> Any:
        params = {
            "address": query,
            "key": self.api_key,
            "region": "my",
            "components": "country:MY",
        }
        return await self._get(self.url, params)

    def _parse(self, payload: Any, query: str) -> GeocodeResult:
        status = payload.get("status")
        results = payload.get("results") or []
        if status != "OK" or not results:
            raise ProviderError(self.name, f"No results (status {status})")

        result = results[0]
        state = city = None
        for component in result.get("address_components", []):
            types = component.get("types", [])
            if state is None and "administrative_area_level_1" in types:
                state = component.get("long_name")
            elif city is None and "locality" in types:
                city = component.get("long_name")

        location = result["geometry"]["location"]
        return self._result(
            result.get("formatted_address") or query,
            location.get("lat"),
            location.get("lng"),
            state=state,
            city=city,
            country="Malaysia",
        )


class NominatimGeocoder(GeocodingProvider):
    """OpenStreetMap Nominatim search, restricted to Malaysia."""

    name = "nominatim"
    confidence = MEDIUM

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, user_agent: str, timeout: float = 5.0):
        super().__init__(http_client, timeout)
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent

    async def _request(self, query: str) -> Any:
        params = {
            "q": query,
            "format": "json",
            "addressdetails": 1,
            "limit": 1,
            "countrycodes": "my",
        }
        return await self._get(f"{self.base_url}/search", params, {"User-Agent": self.user_agent})

    def _parse(self, payload: Any, query: str) -> GeocodeResult:
        if not isinstance(payload, list) or not payload:
            raise ProviderError(self.name, "No results")

        result = payload[0]
        address = result.get("address") or {}
        return self._result(
            result.get("display_name") or query,
            result.get("lat"),
            result.get("lon"),
            state=address.get("state"),
            city=address.get("city") or address.get("town"),
            country=address.get("country"),
        )


def build_providers(config: TransitConfig, http_client: httpx.AsyncClient) -> List[GeocodingProvider]:
    """
    Provider chain for a configuration: one primary, then Nominatim.

    A Google Maps key selects direct Google geocoding as primary; without
    one the middleware's geocoding endpoint is used, if enabled.
    """
    providers: List[GeocodingProvider] = []
    timeout = config.geocoding_timeout
    if config.google_maps_api_key:
        providers.append(GoogleMapsGeocoder(http_client, config.google_maps_api_key, timeout=timeout))
    elif config.geocode_via_middleware:
        providers.append(
            MiddlewareGeocoder(
                http_client,
                config.middleware_geocode_url,
                headers=config.client_headers,
                timeout=timeout,
            )
        )
    providers.append(NominatimGeocoder(http_client, config.nominatim_url, config.user_agent, timeout=timeout))
    return providers


class AreaResolver:
    """Resolve a location query to a service area with coordinates."""

    def __init__(self, providers: Sequence[GeocodingProvider]):
        self.providers = list(providers)

    @classmethod
    def from_config(cls, config: TransitConfig, http_client: httpx.AsyncClient) -> "AreaResolver":
        return cls(build_providers(config, http_client))

    async def resolve(self, query: str) -> Union[AreaDetectionResult, AreaNotDetermined]:
        query = query.strip()
        if not query:
            return AreaNotDetermined(query=query)

        normalized = query.lower()
        detected_area = detected_state = source = None

        match = match_gazetteer(normalized, LOCATION_TO_AREA)
        if match:
            detected_area, source = match[1], DIRECT_MATCH
        else:
            match = match_gazetteer(normalized, STATE_TO_AREA)
            if match:
                detected_state, detected_area = match
                source = STATE_MAPPING

        # Geocode even after a table match; only providers give coordinates
        search_query = bias_to_malaysia(query)
        unlabelled = None
        for provider in self.providers:
            try:
                result = await provider.geocode(search_query)
            except ProviderError as e:
                logger.warning("Geocoding failed, trying next provider: %s", e)
                continue

            if detected_area:
                return AreaDetectionResult(
                    area=detected_area,
                    confidence=HIGH,
                    location=DetectedLocation.from_geocode(result),
                    source=source,
                )

            area = area_from_geocode(result)
            if area:
                return AreaDetectionResult(
                    area=area,
                    confidence=result.confidence,
                    location=DetectedLocation.from_geocode(result),
                    source=GEOCODING,
                )

            logger.info("%s found %r outside any known service area", provider.name, result.name)
            if unlabelled is None:
                unlabelled = result

        if unlabelled is not None:
            return AreaDetectionResult(
                area=UNKNOWN_AREA,
                confidence=LOW,
                location=DetectedLocation.from_geocode(unlabelled),
                source=GEOCODING,
            )

        if detected_area:
            logger.info("No coordinates for %r, falling back to %s", query, source)
            return AreaDetectionResult(
                area=detected_area,
                confidence=MEDIUM,
                location=DetectedLocation(name=query, state=detected_state),
                source=source,
            )

        logger.info("Could not detect a service area for %r", query)
        return AreaNotDetermined(query=query)

#!/usr/bin/env python
"""
Malaysia Transit MCP Server

This server provides tools to query Malaysian bus, rail and ferry information
through MCP. Every tool forwards to the Malaysia Transit middleware API,
except detect_location_area which resolves place names locally.
"""
import httpx
import json
import os
import logging
import uvicorn

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP
from starlette.middleware.cors import CORSMiddleware
from utils import handle as handle_utils
from utils.config import TransitConfig
from utils.geocoding import AreaResolver


load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Initialize MCP server
mcp = FastMCP("malaysia-transit")

config = TransitConfig.from_env()

# HTTP client
http_client = httpx.AsyncClient(timeout=config.http_timeout)

resolver = AreaResolver.from_config(config, http_client)

VEHICLE_TYPES = ("bus", "rail")
SCHEDULE_DIRECTIONS = ("outbound", "inbound", "loop")
ORIGIN_DIRECTIONS = ("outbound", "inbound")
KTM_SCHEDULE_TYPES = ("ktm-komuter-utara", "ktm-intercity")
FERRY_DIRECTIONS = ("butterworth-georgetown", "georgetown-butterworth")
FERRY_DAYS = ("weekday", "weekend")
MAX_JOURNEY_LEGS = 5

ARRIVALS_DISCLAIMER = """
📊 ABOUT THESE ARRIVAL PREDICTIONS:

Arrival times are estimated by the middleware from live vehicle positions:

1. Shape-based distance (preferred): follows the route geometry from GTFS
   data. Typically within 2-4 minutes of Google Maps/Moovit.
   Marked "calculationMethod": "shape-based", "confidence": "high" or "medium".
2. Straight-line distance (fallback): used when shape data is missing or the
   vehicle position is uncertain, with a 1.4x road-curve multiplier.
   Marked "calculationMethod": "straight-line", "confidence": "low".

Predictions are conservative and buses may arrive earlier than estimated.
Live traffic incidents are not factored in, and operator TripUpdates are not
yet published by Malaysia's GTFS API.

---

ARRIVAL DATA:
"""

FARE_DISCLAIMER = """
💰 FARE CALCULATION DISCLAIMER:
This fare is an ESTIMATE based on distance travelled along the route.
• BAS.MY uses distance-based fares (RM 0.05/km, min RM 0.40)
• Rapid Penang uses a staged fare structure
• Actual fare may vary, please confirm with the bus driver

---

FARE DETAILS:
"""

JOURNEY_FARE_DISCLAIMER = """
💰 MULTI-LEG JOURNEY FARE DISCLAIMER:
This fare is an ESTIMATE based on distance travelled.
• Each bus change requires a separate fare payment
• BAS.MY does not have integrated transfer discounts
• Actual fare may vary, please confirm with each bus driver

---

JOURNEY FARE DETAILS:
"""

MISSING_LOCATION = handle_utils.error_response(
    "Missing location parameters",
    "Please provide either a location name OR lat/lon coordinates",
)


async def fetch_middleware(path: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Delegate to shared implementation with injected http_client and config."""
    return await handle_utils.fetch_api(
        f"{config.middleware_url}{path}",
        http_client,
        params=params,
        headers=config.client_headers,
    )

async def detect_area(location: str):
    """Delegate to the configured resolver; keep signature for tests."""
    return await resolver.resolve(location)

# ---------------------------------------------------------------------------
# Service areas
# ---------------------------------------------------------------------------

@mcp.tool()
async def list_service_areas() -> str:
    """List all available transit service areas in Malaysia (e.g., Klang Valley, Penang, Kuantan)."""
    data = await fetch_middleware("/api/areas")
    return handle_utils.relay(data, "Failed to fetch service areas")

@mcp.tool()
async def detect_location_area(location: str) -> str:
    """Detect which transit service area a place belongs to.

    Use this when the user mentions a place without naming the area
    (e.g., "KTM Alor Setar", "Komtar", "KLCC"). After detecting the area,
    prefer find_nearby_stops_with_arrivals or find_nearby_stops with the
    location parameter.

    Args:
        location: Location name or place (e.g., "KTM Alor Setar", "Komtar", "Pavilion KL")
    """
    result = await detect_area(location)

    if not result.found:
        return handle_utils.format_response({
            "success": False,
            "message": f'Could not automatically detect service area for "{location}". Please specify the area manually.',
            "availableAreas": result.available_areas,
        })

    if result.location.coordinates is None:
        guidance = (
            "NOTE: Geocoding did not return coordinates. Use find_nearby_stops_with_arrivals "
            'or find_nearby_stops with the "location" parameter instead of coordinates.'
        )
    else:
        guidance = 'TIP: You can use find_nearby_stops_with_arrivals with the "location" parameter for a simpler workflow.'

    payload = {"success": True}
    payload.update(result.to_dict())
    payload.update({
        "message": f'Location "{location}" detected in service area: {result.area}',
        "nextStepGuidance": guidance,
        "recommendedTools": [
            "find_nearby_stops_with_arrivals - Find nearby stops AND get arrivals in one call",
            "find_nearby_stops - Find nearby stops (supports location parameter)",
            "search_stops - Search stops by name (auto-geocodes if no match)",
        ],
    })
    return handle_utils.format_response(payload)

@mcp.tool()
async def get_area_info(areaId: str) -> str:
    """Get detailed information about a specific transit service area.

    Args:
        areaId: Service area ID (e.g., "penang", "klang-valley", "kuantan")
    """
    data = await fetch_middleware(handle_utils.build_path("api", "areas", areaId))
    return handle_utils.relay(data, f"Failed to fetch area info for {areaId}")

# ---------------------------------------------------------------------------
# Stops
# ---------------------------------------------------------------------------

@mcp.tool()
async def search_stops(area: str, query: str) -> str:
    """Search for bus or train stops by name in a specific area.

    Place names (like "Ideal Foresta") are geocoded by the middleware to find
    nearby stops when no stop name matches. Use detect_location_area first if
    unsure which area a location belongs to.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        query: A stop name (e.g., "Komtar") or a place name (e.g., "Ideal Foresta")
    """
    data = await fetch_middleware("/api/stops/search", {"area": area, "q": query})
    return handle_utils.relay(data, f"Failed to search stops in {area}")

@mcp.tool()
async def get_stop_details(area: str, stopId: str) -> str:
    """Get detailed information about a specific bus or train stop.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        stopId: Stop ID from search results
    """
    data = await fetch_middleware(handle_utils.build_path("api", "stops", stopId), {"area": area})
    return handle_utils.relay(data, f"Failed to fetch stop details for {stopId}")

@mcp.tool()
async def get_stop_arrivals(area: str, stopId: str) -> str:
    """Get real-time arrival predictions for buses/trains at a specific stop.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        stopId: Stop ID from search results
    """
    data = await fetch_middleware(handle_utils.build_path("api", "stops", stopId, "arrivals"), {"area": area})
    return handle_utils.relay(data, f"Failed to fetch arrivals for stop {stopId}", disclaimer=ARRIVALS_DISCLAIMER)

@mcp.tool()
async def find_nearby_stops(
    area: str,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    location: Optional[str] = None,
    radius: float = 500,
) -> str:
    """Find stops near a location AND the routes serving them.

    Provide EITHER coordinates (lat/lon) OR a location name; the middleware
    geocodes place names automatically.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        lat: Latitude coordinate (optional if location is provided)
        lon: Longitude coordinate (optional if location is provided)
        location: Place name to geocode (e.g., "Ideal Foresta", "KLCC", "Komtar")
        radius: Search radius in meters (default: 500)
    """
    params = handle_utils.nearby_params({"area": area, "radius": radius}, location, lat, lon)
    if params is None:
        return MISSING_LOCATION

    data = await fetch_middleware("/api/stops/nearby/routes", params)
    return handle_utils.relay(data, "Failed to find nearby stops")

@mcp.tool()
async def find_nearby_stops_with_arrivals(
    area: str,
    location: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    radius: float = 500,
    routeFilter: Optional[str] = None,
) -> str:
    """Find bus stops near a location AND get real-time arrivals in one call.

    Recommended when users ask about nearby stops and arrival times together.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        location: Place name to geocode (e.g., "Ideal Foresta", "KLCC", "Komtar")
        lat: Latitude coordinate (optional if location is provided)
        lon: Longitude coordinate (optional if location is provided)
        radius: Search radius in meters (default: 500)
        routeFilter: Filter arrivals by route number (e.g., "302", "101")
    """
    params = handle_utils.nearby_params({"area": area, "radius": radius}, location, lat, lon)
    if params is None:
        return MISSING_LOCATION
    if routeFilter:
        params["route"] = routeFilter

    data = await fetch_middleware("/api/stops/nearby/arrivals", params)
    return handle_utils.relay(data, "Failed to find nearby stops with arrivals")

@mcp.tool()
async def find_nearby_stops_with_routes(
    area: str,
    location: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    radius: float = 500,
) -> str:
    """Find bus stops near a location AND all routes serving them in one call.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        location: Place name to geocode (e.g., "Ideal Foresta", "KLCC", "Komtar")
        lat: Latitude coordinate (optional if location is provided)
        lon: Longitude coordinate (optional if location is provided)
        radius: Search radius in meters (default: 500)
    """
    params = handle_utils.nearby_params({"area": area, "radius": radius}, location, lat, lon)
    if params is None:
        return MISSING_LOCATION

    data = await fetch_middleware("/api/stops/nearby/routes", params)
    return handle_utils.relay(data, "Failed to find nearby stops with routes")

# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@mcp.tool()
async def list_routes(area: str) -> str:
    """List all available bus or train routes in a specific area.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
    """
    data = await fetch_middleware("/api/routes", {"area": area})
    return handle_utils.relay(data, f"Failed to fetch routes for {area}")

@mcp.tool()
async def get_route_stops(area: str, routeId: str) -> str:
    """Get all stops on a specific route. Call list_routes first for the route ID.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        routeId: Route ID from list_routes (e.g., "302", "101")
    """
    # The geometry endpoint carries the stop list
    data = await fetch_middleware(handle_utils.build_path("api", "routes", routeId, "geometry"), {"area": area})
    return handle_utils.relay(data, f"Failed to fetch stops for route {routeId}")

@mcp.tool()
async def get_route_details(area: str, routeId: str) -> str:
    """Get detailed information about a route including stops and geometry.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        routeId: Route ID from list_routes (e.g., "302", "101")
    """
    data = await fetch_middleware(handle_utils.build_path("api", "routes", routeId), {"area": area})
    return handle_utils.relay(data, f"Failed to fetch route details for {routeId}")

@mcp.tool()
async def get_route_geometry(area: str, routeId: str) -> str:
    """Get the geographic path and stops for a route (for map visualization).

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        routeId: Route ID from list_routes
    """
    data = await fetch_middleware(handle_utils.build_path("api", "routes", routeId, "geometry"), {"area": area})
    return handle_utils.relay(data, f"Failed to fetch route geometry for {routeId}")

# ---------------------------------------------------------------------------
# Real-time data
# ---------------------------------------------------------------------------

@mcp.tool()
async def get_live_vehicles(area: str, type: Optional[str] = None) -> str:
    """Get real-time positions of all buses and trains in a specific area.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
        type: Filter by transit type, "bus" or "rail" (optional)
    """
    invalid = handle_utils.check_choice("type", type, VEHICLE_TYPES)
    if invalid:
        return invalid

    data = await fetch_middleware("/api/realtime", {"area": area, "type": type})
    return handle_utils.relay(data, f"Failed to fetch live vehicles for {area}")

@mcp.tool()
async def get_provider_status(area: str) -> str:
    """Check the operational status of transit providers in a specific area.

    Args:
        area: Service area ID (e.g., "penang", "klang-valley")
    """
    data = await fetch_middleware(handle_utils.build_path("api", "areas", area, "providers", "status"))
    return handle_utils.relay(data, f"Failed to fetch provider status for {area}")

# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

def schedule_path(routeId: str, endpoint: str) -> str:
    return handle_utils.build_path("api", "schedules", "routes", routeId, endpoint)

@mcp.tool()
async def get_route_departures(area: str, routeId: str, count: int = 5) -> str:
    """Get the next N departures for a route (both directions).

    Use route_short_name (e.g., "K10", "A32", "101"), NOT the numeric route_id.
    Works for: penang, ipoh, seremban, kangar, alor-setar, kota-bharu,
    kuala-terengganu, melaka, johor, kuching.

    Args:
        area: Service area ID (e.g., "penang", "ipoh", "seremban", "alor-setar")
        routeId: Route SHORT NAME from the list_routes route_short_name field
        count: Number of departures to return (default: 5)
    """
    data = await fetch_middleware(schedule_path(routeId, "departures"), {"area": area, "count": count})
    return handle_utils.relay(data, f"Failed to fetch departures for route {routeId}")

@mcp.tool()
async def get_next_departure(area: str, routeId: str, direction: Optional[str] = None) -> str:
    """Get the single next departure for a route, optionally in one direction.

    Args:
        area: Service area ID (e.g., "penang", "ipoh", "seremban", "alor-setar")
        routeId: Route SHORT NAME (e.g., "101", "K10", "A32"), NOT numeric route_id
        direction: "outbound", "inbound" or "loop" (optional)
    """
    invalid = handle_utils.check_choice("direction", direction, SCHEDULE_DIRECTIONS)
    if invalid:
        return invalid

    data = await fetch_middleware(schedule_path(routeId, "next"), {"area": area, "direction": direction})
    return handle_utils.relay(data, f"Failed to fetch next departure for route {routeId}")

@mcp.tool()
async def get_stop_routes(area: str, stopId: str, count: int = 3) -> str:
    """Get all routes serving a stop with their next departures.

    Args:
        area: Service area ID (e.g., "penang", "ipoh", "seremban", "alor-setar")
        stopId: Stop ID from search_stops
        count: Number of departures per route (default: 3)
    """
    path = handle_utils.build_path("api", "schedules", "stops", stopId, "routes")
    data = await fetch_middleware(path, {"area": area, "count": count})
    return handle_utils.relay(data, f"Failed to fetch routes for stop {stopId}")

@mcp.tool()
async def get_route_schedule(area: str, routeId: str) -> str:
    """Get the complete daily schedule for a route.

    Args:
        area: Service area ID (e.g., "penang", "ipoh", "seremban", "alor-setar")
        routeId: Route SHORT NAME (e.g., "101", "K10", "A32"), NOT numeric route_id
    """
    data = await fetch_middleware(schedule_path(routeId, "full"), {"area": area})
    return handle_utils.relay(data, f"Failed to fetch schedule for route {routeId}")

@mcp.tool()
async def get_route_origin(area: str, routeId: str, direction: Optional[str] = None) -> str:
    """Get the origin stop name for a route in a specific direction.

    Args:
        area: Service area ID (e.g., "penang", "ipoh", "seremban", "alor-setar")
        routeId: Route SHORT NAME (e.g., "101", "K10", "A32"), NOT numeric route_id
        direction: "outbound" or "inbound" (optional)
    """
    invalid = handle_utils.check_choice("direction", direction, ORIGIN_DIRECTIONS)
    if invalid:
        return invalid

    data = await fetch_middleware(schedule_path(routeId, "origin"), {"area": area, "direction": direction})
    return handle_utils.relay(data, f"Failed to fetch origin for route {routeId}")

@mcp.tool()
async def get_route_status(area: str, routeId: str) -> str:
    """Check if a route is currently operating based on its schedule.

    Args:
        area: Service area ID (e.g., "penang", "ipoh", "seremban", "alor-setar")
        routeId: Route SHORT NAME (e.g., "101", "K10", "A32"), NOT numeric route_id
    """
    data = await fetch_middleware(schedule_path(routeId, "status"), {"area": area})
    return handle_utils.relay(data, f"Failed to fetch status for route {routeId}")

# ---------------------------------------------------------------------------
# Fares
# ---------------------------------------------------------------------------

@mcp.tool()
async def get_fare_routes(area: str) -> str:
    """Get all routes available for fare calculation in an area.

    Call this FIRST before calculate_fare to get valid route_id values.

    Args:
        area: Service area ID: ipoh, seremban, kangar, alor-setar, kota-bharu,
            kuala-terengganu, melaka, johor, kuching or penang
    """
    data = await fetch_middleware(handle_utils.build_path("api", "fare", area, "routes"))
    return handle_utils.relay(data, f"Failed to fetch fare routes for {area}")

@mcp.tool()
async def get_route_stops_for_fare(area: str, routeId: str) -> str:
    """Get all stops on a route with their distances for fare calculation.

    Call this SECOND (after get_fare_routes) to get valid stop_id values.

    Args:
        area: Service area ID, same as used in get_fare_routes
        routeId: The route_id value from get_fare_routes (e.g., "D62", "A32")
    """
    data = await fetch_middleware(handle_utils.build_path("api", "fare", area, "route", routeId, "stops"))
    return handle_utils.relay(data, f"Failed to fetch stops for route {routeId}")

@mcp.tool()
async def get_route_directions_for_fare(area: str, routeId: str) -> str:
    """Get available directions (outbound/inbound) for a route when calculating fares.

    Args:
        area: Service area ID (e.g., "penang", "ipoh")
        routeId: Route ID from get_fare_routes
    """
    data = await fetch_middleware(handle_utils.build_path("api", "fare", area, "route", routeId, "directions"))
    return handle_utils.relay(data, f"Failed to fetch directions for route {routeId}")

@mcp.tool()
async def calculate_fare(area: str, routeId: str, fromStop: str, toStop: str) -> str:
    """Calculate the bus fare between two stops on a route.

    Get routeId from get_fare_routes and stop IDs from
    get_route_stops_for_fare first. Do NOT guess IDs.

    Args:
        area: Service area ID, same as used in previous calls
        routeId: The exact route_id from get_fare_routes (NOT route_short_name)
        fromStop: The exact stop_id from get_route_stops_for_fare
        toStop: The exact stop_id from get_route_stops_for_fare
    """
    params = {"routeId": routeId, "fromStop": fromStop, "toStop": toStop}
    data = await fetch_middleware(handle_utils.build_path("api", "fare", area, "calculate"), params)
    return handle_utils.relay(data, "Failed to calculate fare", disclaimer=FARE_DISCLAIMER)

@mcp.tool()
async def calculate_journey_fare(area: str, legs: List[Dict[str, str]]) -> str:
    """Calculate the total fare for a multi-leg journey with bus transfers.

    Each leg is charged separately since BAS.MY has no integrated transfers.

    Args:
        area: Base service area ID (legs may set areaId for inter-area journeys)
        legs: Journey legs (max 5), each with routeId, fromStop, toStop and optional areaId
    """
    invalid = handle_utils.check_journey_legs(legs, MAX_JOURNEY_LEGS)
    if invalid:
        return invalid

    path = handle_utils.build_path("api", "fare", area, "calculate-journey")
    data = await fetch_middleware(path, {"legs": json.dumps(legs)})
    return handle_utils.relay(data, "Failed to calculate journey fare", disclaimer=JOURNEY_FARE_DISCLAIMER)

# ---------------------------------------------------------------------------
# KTM
# ---------------------------------------------------------------------------

@mcp.tool()
async def get_ktm_komuter_stations() -> str:
    """Get all KTM Komuter Utara stations (Padang Besar - Butterworth - Ipoh line)."""
    data = await fetch_middleware("/api/ktm/komuter/stations")
    return handle_utils.relay(data, "Failed to fetch KTM Komuter stations")

@mcp.tool()
async def calculate_ktm_komuter_fare(from_station: str, to_station: str) -> str:
    """Calculate KTM Komuter Utara fare between two stations.

    Args:
        from_station: Origin station code (e.g., "BU" for Butterworth, "IP" for Ipoh)
        to_station: Destination station code (e.g., "PB" for Padang Besar)
    """
    data = await fetch_middleware("/api/ktm/komuter/fare", {"from": from_station, "to": to_station})
    return handle_utils.relay(data, "Failed to calculate KTM Komuter fare")

@mcp.tool()
async def get_ktm_komuter_fare_matrix() -> str:
    """Get the full KTM Komuter Utara fare matrix between all station pairs."""
    data = await fetch_middleware("/api/ktm/komuter/fare-matrix")
    return handle_utils.relay(data, "Failed to fetch KTM Komuter fare matrix")

@mcp.tool()
async def get_ktm_station_departures(stationName: str, type: str) -> str:
    """Get departure times for a KTM station.

    Args:
        stationName: Station name (e.g., "Butterworth", "Ipoh", "Padang Besar", "Gemas")
        type: "ktm-komuter-utara" (Padang Besar-Ipoh) or "ktm-intercity"
    """
    invalid = handle_utils.check_choice("type", type, KTM_SCHEDULE_TYPES)
    if invalid:
        return invalid

    path = handle_utils.build_path("api", "ktm", "stations", stationName, "departures")
    data = await fetch_middleware(path, {"type": type})
    return handle_utils.relay(data, f"Failed to fetch departures for station {stationName}")

@mcp.tool()
async def get_ktm_stations(type: str) -> str:
    """Get all KTM stations for a schedule type.

    Args:
        type: "ktm-komuter-utara" or "ktm-intercity"
    """
    invalid = handle_utils.check_choice("type", type, KTM_SCHEDULE_TYPES)
    if invalid:
        return invalid

    data = await fetch_middleware("/api/ktm/stations", {"type": type})
    return handle_utils.relay(data, "Failed to fetch KTM stations")

@mcp.tool()
async def get_ktm_schedules(type: str) -> str:
    """Get the full KTM timetable for a schedule type.

    Args:
        type: "ktm-komuter-utara" or "ktm-intercity"
    """
    invalid = handle_utils.check_choice("type", type, KTM_SCHEDULE_TYPES)
    if invalid:
        return invalid

    data = await fetch_middleware("/api/ktm/schedules", {"type": type})
    return handle_utils.relay(data, "Failed to fetch KTM schedules")

@mcp.tool()
async def find_nearby_ktm_stations(
    type: str,
    location: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    radius: float = 10,
) -> str:
    """Find KTM stations near a location name or coordinates.

    Args:
        type: "ktm-komuter-utara" or "ktm-intercity"
        location: Place name to geocode (e.g., "Butterworth", "Ipoh", "Padang Besar")
        lat: Latitude coordinate (optional if location is provided)
        lon: Longitude coordinate (optional if location is provided)
        radius: Search radius in kilometers (default: 10)
    """
    invalid = handle_utils.check_choice("type", type, KTM_SCHEDULE_TYPES)
    if invalid:
        return invalid

    params = handle_utils.nearby_params({"radius": radius, "type": type}, location, lat, lon)
    if params is None:
        return MISSING_LOCATION

    data = await fetch_middleware("/api/ktm/nearby", params)
    return handle_utils.relay(data, "Failed to find nearby KTM stations")

# ---------------------------------------------------------------------------
# Penang ferry
# ---------------------------------------------------------------------------

@mcp.tool()
async def get_penang_ferry_overview() -> str:
    """Get the Penang Ferry overview: terminals, operating hours, frequency and contacts."""
    data = await fetch_middleware("/api/ferry/penang")
    return handle_utils.relay(data, "Failed to fetch Penang Ferry overview")

@mcp.tool()
async def get_penang_ferry_schedule(direction: Optional[str] = None, day: Optional[str] = None) -> str:
    """Get the Penang Ferry schedule, optionally filtered by direction and day type.

    Args:
        direction: "butterworth-georgetown" or "georgetown-butterworth" (optional)
        day: "weekday" or "weekend" (optional)
    """
    invalid = (
        handle_utils.check_choice("direction", direction, FERRY_DIRECTIONS)
        or handle_utils.check_choice("day", day, FERRY_DAYS)
    )
    if invalid:
        return invalid

    data = await fetch_middleware("/api/ferry/penang/schedule", {"direction": direction, "day": day})
    return handle_utils.relay(data, "Failed to fetch Penang Ferry schedule")

@mcp.tool()
async def get_penang_ferry_next_departure() -> str:
    """Get the next ferry departures from both Butterworth and George Town."""
    data = await fetch_middleware("/api/ferry/penang/next")
    return handle_utils.relay(data, "Failed to fetch next ferry departures")

@mcp.tool()
async def get_penang_ferry_terminals() -> str:
    """Get Penang Ferry terminal details: facilities, connections and parking."""
    data = await fetch_middleware("/api/ferry/penang/terminals")
    return handle_utils.relay(data, "Failed to fetch ferry terminal information")

@mcp.tool()
async def get_penang_ferry_fare() -> str:
    """Get Penang Ferry fares, payment methods and terminal coordinates."""
    data = await fetch_middleware("/api/ferry/penang/fare")
    return handle_utils.relay(data, "Failed to fetch Penang Ferry fare information")

# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

@mcp.tool()
async def get_system_health() -> str:
    """Check the health status of the Malaysia Transit middleware service."""
    data = await fetch_middleware("/health")
    return handle_utils.relay(data, "Failed to check system health", middlewareUrl=config.middleware_url)

@mcp.tool()
async def get_debug_info() -> str:
    """Get middleware debug information including memory usage and initialized areas."""
    data = await fetch_middleware("/api/debug")
    return handle_utils.relay(data, "Failed to fetch debug info")

@mcp.tool()
async def hello() -> str:
    """A simple test tool to verify that the MCP server is working."""
    return handle_utils.format_response({
        "message": "Hello from Malaysia Transit MCP!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "middlewareUrl": config.middleware_url,
    })

def main():
    transport_mode = os.getenv("TRANSPORT", "stdio")

    logger.info("Using middleware URL: %s", config.middleware_url)
    logger.info("Geocoding chain: %s", " -> ".join(p.name for p in resolver.providers))

    if transport_mode == "http":
        logger.info("Starting Malaysia Transit MCP server in HTTP mode...")
        app = mcp.streamable_http_app()

        # CORS for browser based clients
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["mcp-session-id", "mcp-protocol-version"],
            max_age=86400,
        )

        host = os.environ.get("HOST", "0.0.0.0")
        port = int(os.environ.get("PORT", 8080))
        logger.info("Listening on %s:%s", host, port)

        uvicorn.run(app, host=host, port=port, log_level="info")

    else:
        # stdout carries the MCP stream in stdio mode
        logger.info("Starting Malaysia Transit MCP server in STDIO mode...")
        mcp.run(transport='stdio')

if __name__ == "__main__":
    main()

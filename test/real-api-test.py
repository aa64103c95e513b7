#!/usr/bin/env python
"""
Real API integration test for the Malaysia Transit MCP Server

This script runs a few tools against the live middleware and geocoding
providers to check that requests go through and responses parse.
"""

from pathlib import Path

import asyncio
import json
import sys

sys.path.append(Path(__file__).resolve().parent.parent.as_posix())
import malaysia_transit_mcp


async def run_integration_test():
    """Run a series of tests against the real middleware"""
    print("🔍 Running integration tests against the Malaysia Transit middleware...\n")
    print(f"Middleware: {malaysia_transit_mcp.config.middleware_url}")
    print(f"Geocoding chain: {' -> '.join(p.name for p in malaysia_transit_mcp.resolver.providers)}\n")

    # Test 1: Service areas
    print("📋 Testing list_service_areas()...")
    areas = json.loads(await malaysia_transit_mcp.list_service_areas())
    if "error" in areas:
        print(f"❌ Failed to retrieve service areas: {areas['message']}")
        return False
    print("✅ Success! Retrieved service areas")

    # Test 2: Area detection, one per gazetteer tier plus a geocoder-only place
    for place, expected in (("Komtar", "penang"), ("Kedah", "alor-setar"), ("Ideal Foresta", None)):
        print(f"\n📍 Testing detect_location_area('{place}')...")
        detected = json.loads(await malaysia_transit_mcp.detect_location_area(place))
        if not detected["success"]:
            print(f"⚠️ Could not detect an area for '{place}'")
            continue
        location = detected["location"]
        print(f"📄 {detected['area']} via {detected['source']} ({detected['confidence']}), "
              f"coordinates {location['lat']}, {location['lon']}")
        if expected and detected["area"] != expected:
            print(f"❌ Expected {expected}")
            return False

    # Test 3: Stop search and arrivals
    print("\n🚏 Testing search_stops('penang', 'Komtar')...")
    stops = json.loads(await malaysia_transit_mcp.search_stops("penang", "Komtar"))
    if "error" in stops:
        print(f"❌ Failed to search stops: {stops['message']}")
        return False
    print("✅ Success! Stop search returned")

    # Test 4: Ferry, which needs no area
    print("\n⛴️ Testing get_penang_ferry_next_departure()...")
    ferry = await malaysia_transit_mcp.get_penang_ferry_next_departure()
    print(ferry[:300])

    await malaysia_transit_mcp.http_client.aclose()
    print("\n🎉 All integration tests completed successfully!")
    return True

if __name__ == "__main__":
    result = asyncio.run(run_integration_test())
    sys.exit(0 if result else 1)

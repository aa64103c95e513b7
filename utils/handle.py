"""
Shared helper implementations for the Malaysia Transit MCP server.

These functions depend only on their arguments (an injected http_client,
base URLs, payloads) so that the server module controls configuration and
tests can patch the module-level delegates.
"""

import json
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import httpx


async def fetch_api(
    url: str,
    http_client: httpx.AsyncClient,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    """
    Fetch JSON from a middleware endpoint using the provided http_client.

    Failures come back as {"error": ...} so tool handlers never raise.
    """
    if params is not None:
        params = {key: value for key, value in params.items() if value is not None}
    try:
        response = await http_client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        return {"error": f"HTTP error: {e}"}
    except httpx.RequestError as e:
        return {"error": f"Request error: {e}"}
    except Exception as e:
        return {"error": f"Unexpected error: {e}"}


def build_path(*segments: Any) -> str:
    """Join path segments, escaping user-supplied ids."""
    return "/" + "/".join(quote(str(segment).strip("/"), safe="") for segment in segments)


def nearby_params(
    params: Dict[str, Any],
    location: Optional[str],
    lat: Optional[float],
    lon: Optional[float],
) -> Optional[Dict[str, Any]]:
    """
    Add a place name or coordinates to params for the nearby endpoints.

    A place name wins over coordinates. Returns None when neither a place
    name nor both coordinates are given.
    """
    if location and location.strip():
        return {**params, "location": location.strip()}
    if lat is not None and lon is not None:
        return {**params, "lat": lat, "lon": lon}
    return None


def is_error(data: Any) -> bool:
    return isinstance(data, dict) and "error" in data and len(data) == 1


def format_response(data: Any, disclaimer: Optional[str] = None) -> str:
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if disclaimer:
        return disclaimer + text
    return text


def error_response(error: str, message: str, **extra: Any) -> str:
    payload = {"error": error, "message": message}
    payload.update(extra)
    return json.dumps(payload, indent=2, ensure_ascii=False)


def relay(data: Any, error: str, disclaimer: Optional[str] = None, **extra: Any) -> str:
    """Pass a middleware payload through, or wrap its failure in an error payload."""
    if is_error(data):
        return error_response(error, data["error"], **extra)
    return format_response(data, disclaimer)


def check_choice(name: str, value: Optional[str], choices: Iterable[str]) -> Optional[str]:
    """Return an error payload if value is set and not one of choices."""
    choices = list(choices)
    if value is None or value in choices:
        return None
    return error_response(
        f"Invalid {name}",
        f"'{value}' is not one of: {', '.join(choices)}",
    )


def check_journey_legs(legs: List[Dict[str, Any]], max_legs: int) -> Optional[str]:
    """Return an error payload if legs is empty, too long or incomplete."""
    if not legs:
        return error_response("Invalid legs", "Provide at least one journey leg")
    if len(legs) > max_legs:
        return error_response("Invalid legs", f"A journey can have at most {max_legs} legs")
    for i, leg in enumerate(legs, 1):
        missing = [key for key in ("routeId", "fromStop", "toStop") if not leg.get(key)]
        if missing:
            return error_response("Invalid legs", f"Leg {i} is missing {', '.join(missing)}")
    return None

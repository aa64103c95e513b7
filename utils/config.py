"""
Runtime settings for the Malaysia Transit MCP server.

Settings are read once from the environment and passed explicitly to the
geocoding resolver and the HTTP helpers, so tests can build their own
TransitConfig without touching os.environ.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_MIDDLEWARE_URL = "https://malaysiatransit.techmavie.digital"
DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org"
APP_NAME = "Malaysia-Transit-MCP"

# Nominatim usage policy requires an identifying User-Agent
USER_AGENT = "MalaysiaTransitMCP/1.0"


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_url(environ: Mapping[str, str], name: str, default: str) -> str:
    raw = (environ.get(name) or "").strip()
    return (raw or default).rstrip("/")


@dataclass(frozen=True)
class TransitConfig:
    """Immutable settings shared by the tools and the area resolver."""

    middleware_url: str = DEFAULT_MIDDLEWARE_URL
    google_maps_api_key: Optional[str] = None
    geocode_via_middleware: bool = True
    middleware_geocode_path: str = "/api/geocode"
    nominatim_url: str = DEFAULT_NOMINATIM_URL
    user_agent: str = USER_AGENT
    app_name: str = APP_NAME
    geocoding_timeout: float = 5.0
    http_timeout: float = 30.0

    @property
    def client_headers(self) -> dict:
        """Headers identifying this server to the middleware analytics."""
        return {"X-App-Name": self.app_name}

    @property
    def middleware_geocode_url(self) -> str:
        path = self.middleware_geocode_path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.middleware_url}{path}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TransitConfig":
        env = os.environ if environ is None else environ
        api_key = (env.get("GOOGLE_MAPS_API_KEY") or "").strip() or None
        return cls(
            middleware_url=_env_url(env, "MIDDLEWARE_URL", DEFAULT_MIDDLEWARE_URL),
            google_maps_api_key=api_key,
            geocode_via_middleware=_env_bool(env, "GEOCODE_VIA_MIDDLEWARE", True),
            middleware_geocode_path=env.get("MIDDLEWARE_GEOCODE_PATH") or "/api/geocode",
            nominatim_url=_env_url(env, "NOMINATIM_URL", DEFAULT_NOMINATIM_URL),
            geocoding_timeout=_env_float(env, "GEOCODING_TIMEOUT", 5.0),
            http_timeout=_env_float(env, "HTTP_TIMEOUT", 30.0),
        )

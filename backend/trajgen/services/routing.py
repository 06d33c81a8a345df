"""Routing collaborator: origin/destination -> driving polyline."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

import httpx

from trajgen.core.config import settings
from trajgen.core.errors import RoutingFailure
from trajgen.services.geo import LatLng

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """Routed polyline with provider totals (meters, seconds)."""
    path: List[LatLng]
    distance_meters: float
    duration_seconds: float = 0.0


class Router(Protocol):
    async def route(self, origin: LatLng, destination: LatLng) -> Route:
        ...


class OpenRouteServiceRouter:
    """OpenRouteService directions client (GeoJSON response)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ORS_API_KEY
        self.base_url = (base_url or settings.ORS_BASE_URL).rstrip("/")
        self.profile = profile or settings.ORS_PROFILE
        self._client = client

    async def route(self, origin: LatLng, destination: LatLng) -> Route:
        if not self.api_key:
            raise RoutingFailure("OpenRouteService API key is not configured")

        url = f"{self.base_url}/v2/directions/{self.profile}"
        params = {
            "start": f"{origin.lng},{origin.lat}",
            "end": f"{destination.lng},{destination.lat}",
        }
        headers = {
            "Authorization": self.api_key,
            "Accept": "application/json, application/geo+json",
        }

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, headers=headers)
            else:
                timeout = settings.ORS_TIMEOUT_SEC or None
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise RoutingFailure(f"Route request failed: {e}") from e

        if response.is_error:
            raise RoutingFailure(_error_message(response))

        try:
            return parse_route(response.json())
        except ValueError as e:
            raise RoutingFailure(f"Malformed route response: {e}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        message = (body.get("error") or {}).get("message")
    except (ValueError, AttributeError):
        message = None
    return message or f"Route calculation failed (HTTP {response.status_code})"


def parse_route(data: dict) -> Route:
    """Build a Route from an ORS GeoJSON FeatureCollection."""
    try:
        feature = data["features"][0]
        coords = feature["geometry"]["coordinates"]
        summary = feature["properties"]["summary"]
        path = [LatLng(lat=float(c[1]), lng=float(c[0])) for c in coords]
        distance = float(summary.get("distance", 0))
        duration = float(summary.get("duration", 0))
    except (KeyError, IndexError, TypeError) as e:
        raise ValueError(f"missing {e}") from e

    if len(path) < 2:
        raise ValueError("route has fewer than two vertices")
    logger.debug("Route with %d vertices, %.0f m", len(path), distance)
    return Route(path=path, distance_meters=distance, duration_seconds=duration)

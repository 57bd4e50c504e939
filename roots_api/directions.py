import logging
import math
from typing import Any, List, Optional, Tuple

import requests
from fastapi import APIRouter, Query

from .config import API_PREFIX, HTTP_TIMEOUT, MAPBOX_ACCESS_TOKEN
from .errors import InvalidRequestError, NotConfiguredError, NotFoundError, UpstreamBusyError, UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter()

MAPBOX_BASE = "https://api.mapbox.com/directions/v5/mapbox"
PROFILES = ("walking", "cycling", "driving")

Coordinate = Tuple[float, float]


def parse_point(raw: Optional[str], name: str) -> Coordinate:
    """Parse a ``"lat,lng"`` query value."""
    parts = (raw or "").split(",")
    try:
        lat, lng = (float(part) for part in parts)
    except ValueError:
        raise InvalidRequestError(f"{name} must be given as lat,lng.")
    if not (math.isfinite(lat) and math.isfinite(lng)) or abs(lat) > 90 or abs(lng) > 180:
        raise InvalidRequestError(f"{name} must be given as lat,lng.")
    return lat, lng


def compute_bounds(points: List[Coordinate]) -> List[List[float]]:
    latitudes = [lat for lat, _ in points]
    longitudes = [lng for _, lng in points]
    return [[min(latitudes), min(longitudes)], [max(latitudes), max(longitudes)]]


def fetch_directions(start: Coordinate, end: Coordinate, profile: str = "walking") -> dict[str, Any]:
    if not MAPBOX_ACCESS_TOKEN:
        raise NotConfiguredError("Mapbox access token is not configured on the server.")
    url = f"{MAPBOX_BASE}/{profile}/{start[1]},{start[0]};{end[1]},{end[0]}"
    params = {"geometries": "geojson", "overview": "full", "access_token": MAPBOX_ACCESS_TOKEN}
    resp = requests.get(url, params=params, timeout=HTTP_TIMEOUT)
    if resp.status_code in (429, 503):
        raise UpstreamBusyError("Directions service is busy. Please try again shortly.", resp.status_code)
    if not resp.ok:
        raise UpstreamError(
            f"Directions API error ({resp.status_code}): {resp.text or resp.reason}",
            upstream_status=resp.status_code,
        )

    routes = resp.json().get("routes") or []
    route = routes[0] if routes else {}
    line = (route.get("geometry") or {}).get("coordinates") or []
    if not line:
        raise NotFoundError("No route available for the selected points.")

    coordinates = [(lat, lng) for lng, lat in line]
    return {
        "coordinates": [list(point) for point in coordinates],
        "distanceKm": route.get("distance", 0) / 1000,
        "durationMinutes": route.get("duration", 0) / 60,
        "bounds": compute_bounds(coordinates),
    }


@router.get(f"{API_PREFIX}/directions")
def get_directions(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    profile: str = Query("walking"),
):
    if profile not in PROFILES:
        raise InvalidRequestError(f"profile must be one of: {', '.join(PROFILES)}.")
    origin = parse_point(start, "start")
    destination = parse_point(end, "end")
    try:
        return fetch_directions(origin, destination, profile)
    except requests.RequestException as exc:
        logger.error("Directions request failed: %s", exc, exc_info=True)
        raise UpstreamError("Unable to reach the directions service.")

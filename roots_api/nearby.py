import logging
import math
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Query

from .config import API_PREFIX, HTTP_TIMEOUT, OVERPASS_URL, UA
from .errors import InvalidRequestError
from .normalize import round_half_up

logger = logging.getLogger(__name__)

router = APIRouter()

WIKIPEDIA_API = "https://en.wikipedia.org/w/api.php"
HEADERS = {"User-Agent": UA, "Accept": "application/json"}
EARTH_RADIUS_M = 6371e3
DEFAULT_RADIUS = 5000
MAX_RADIUS = 50000
MAX_RESULTS = 30

DEFAULT_IMAGE = "https://images.unsplash.com/photo-1488646953014-85cb44e25828?w=800&auto=format&fit=crop"
CATEGORY_IMAGES = {
    "museum": "https://images.unsplash.com/photo-1565359472850-749ba7402ea4?w=800&auto=format&fit=crop",
    "gallery": "https://images.unsplash.com/photo-1499781350541-7783f6c6a0c8?w=800&auto=format&fit=crop",
    "monument": "https://images.unsplash.com/photo-1513635269975-59663e0ac1ad?w=800&auto=format&fit=crop",
    "memorial": "https://images.unsplash.com/photo-1509023464722-18d996393ca8?w=800&auto=format&fit=crop",
    "castle": "https://images.unsplash.com/photo-1585834171856-50a1e845f283?w=800&auto=format&fit=crop",
    "ruins": "https://images.unsplash.com/photo-1590073242678-70ee3fc28e8e?w=800&auto=format&fit=crop",
    "archaeological_site": "https://images.unsplash.com/photo-1587595431973-160d0d94add1?w=800&auto=format&fit=crop",
    "theatre": "https://images.unsplash.com/photo-1503095396549-807759245b35?w=800&auto=format&fit=crop",
    "arts_centre": "https://images.unsplash.com/photo-1518709268805-4e9042af9f23?w=800&auto=format&fit=crop",
    "cinema": "https://images.unsplash.com/photo-1489599849927-2ee91cede3ba?w=800&auto=format&fit=crop",
    "attraction": DEFAULT_IMAGE,
    "viewpoint": "https://images.unsplash.com/photo-1506905925346-21bda4d32df4?w=800&auto=format&fit=crop",
    "artwork": "https://images.unsplash.com/photo-1547826039-bfc35e0f1ea8?w=800&auto=format&fit=crop",
}

FALLBACK_ATTRACTIONS = [
    ("Local Museum", "Museum", 4.5, "50K+", "museum", "Explore local history and culture"),
    ("City Park", "Park", 4.3, "100K+", "viewpoint", "Beautiful green space for relaxation"),
    ("Historic Center", "Historic", 4.7, "75K+", "monument", "Historic landmarks and architecture"),
    ("Art Gallery", "Cultural", 4.6, "40K+", "gallery", "Contemporary and classical art exhibitions"),
    ("Cultural Center", "Cultural", 4.4, "60K+", "arts_centre", "Events, performances, and exhibitions"),
    ("Local Theater", "Entertainment", 4.8, "30K+", "theatre", "Live performances and shows"),
]


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def image_for_category(category: str) -> str:
    return CATEGORY_IMAGES.get(category.lower(), DEFAULT_IMAGE)


def _coordinate(raw: Optional[str], limit: float) -> float:
    try:
        value = float(raw) if raw is not None and raw.strip() else None
    except ValueError:
        value = None
    if value is None or not math.isfinite(value) or abs(value) > limit:
        raise InvalidRequestError("Latitude and longitude are required.")
    return value


def parse_radius(raw: Optional[str]) -> int:
    if raw is None or not raw.strip():
        return DEFAULT_RADIUS
    try:
        value = float(raw)
    except ValueError:
        raise InvalidRequestError("Radius must be a number of meters.")
    if not math.isfinite(value) or value <= 0:
        raise InvalidRequestError("Radius must be a number of meters.")
    return min(int(value), MAX_RADIUS)


def build_overpass_query(lat: float, lon: float, radius: int) -> str:
    around = f"(around:{radius},{lat},{lon})"
    return (
        "[out:json][timeout:25];("
        f'node["tourism"~"museum|gallery|attraction|artwork|viewpoint"]{around};'
        f'node["historic"~"monument|memorial|castle|ruins|archaeological_site"]{around};'
        f'node["amenity"~"theatre|arts_centre|cinema"]{around};'
        f'way["tourism"~"museum|gallery|attraction"]{around};'
        f'way["historic"~"monument|memorial|castle|ruins"]{around};'
        ");out body;>;out skel qt;"
    )


@lru_cache(maxsize=512)
def wikipedia_thumbnail(tag: str) -> str:
    title = tag.split(":", 1)[1] if ":" in tag else tag
    params = {
        "action": "query",
        "titles": title,
        "prop": "pageimages",
        "format": "json",
        "pithumbsize": 800,
    }
    try:
        with httpx.Client(timeout=HTTP_TIMEOUT, headers=HEADERS) as c:
            r = c.get(WIKIPEDIA_API, params=params)
        if r.status_code != 200:
            return ""
        pages = (r.json().get("query") or {}).get("pages") or {}
        for page in pages.values():
            source = (page.get("thumbnail") or {}).get("source")
            if source:
                return source
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Wikipedia thumbnail lookup failed for %s: %s", title, exc)
    return ""


def fetch_overpass_elements(lat: float, lon: float, radius: int) -> List[Dict[str, Any]]:
    with httpx.Client(timeout=HTTP_TIMEOUT, headers=HEADERS) as c:
        r = c.post(OVERPASS_URL, data={"data": build_overpass_query(lat, lon, radius)})
        r.raise_for_status()
        return r.json().get("elements") or []


def _visitors(distance: float) -> str:
    if distance < 1000:
        return "100K+"
    if distance < 3000:
        return "50K+"
    return "25K+"


def to_attraction(element: Dict[str, Any], lat: float, lon: float) -> Dict[str, Any]:
    tags = element.get("tags") or {}
    category = tags.get("tourism") or tags.get("historic") or tags.get("amenity") or "attraction"
    distance = haversine_m(lat, lon, element["lat"], element["lon"])
    place = tags.get("addr:city") or tags.get("addr:suburb") or "Near you"
    country = tags.get("addr:country") or ""
    image = wikipedia_thumbnail(tags["wikipedia"]) if tags.get("wikipedia") else ""
    return {
        "id": f"osm-{element.get('id')}",
        "title": tags["name"],
        "location": f"{place}, {country}" if country else place,
        "category": category.replace("_", " ").capitalize(),
        # OSM carries no ratings; derive a stable one from the element id.
        "rating": round(4.0 + (int(element.get("id") or 0) % 10) / 10, 1),
        "visitors": _visitors(distance),
        "image": image or image_for_category(category),
        "description": tags.get("description") or tags.get("wikipedia") or f"Historic and cultural {category}",
        "coordinates": {"lat": element["lat"], "lon": element["lon"]},
        "distance": round_half_up(distance),
    }


def fallback_attractions(lat: float, lon: float) -> List[Dict[str, Any]]:
    """Generic places spread on a small ring around the requested point."""
    attractions = []
    for index, (title, category, rating, visitors, image_key, description) in enumerate(FALLBACK_ATTRACTIONS):
        angle = 2 * math.pi * index / len(FALLBACK_ATTRACTIONS)
        offset = 0.01 * (1 + index * 0.5)
        attractions.append(
            {
                "id": f"fallback-{index + 1}",
                "title": title,
                "location": "Near you",
                "category": category,
                "rating": rating,
                "visitors": visitors,
                "image": image_for_category(image_key),
                "description": description,
                "coordinates": {
                    "lat": max(-90.0, min(90.0, lat + offset * math.sin(angle))),
                    "lon": lon + offset * math.cos(angle),
                },
                "distance": 1000 + index * 500,
            }
        )
    return attractions


def find_nearby_attractions(lat: float, lon: float, radius: int) -> List[Dict[str, Any]]:
    try:
        elements = fetch_overpass_elements(lat, lon, radius)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("OpenStreetMap lookup failed: %s", exc)
        return fallback_attractions(lat, lon)
    named = [
        el
        for el in elements
        if (el.get("tags") or {}).get("name") and el.get("lat") is not None and el.get("lon") is not None
    ]
    attractions = [to_attraction(el, lat, lon) for el in named[:MAX_RESULTS]]
    if not attractions:
        logger.info("Using fallback attractions")
        return fallback_attractions(lat, lon)
    logger.info("Found %d attractions from OpenStreetMap", len(attractions))
    return sorted(attractions, key=lambda item: item["distance"])


@router.get(f"{API_PREFIX}/attractions/nearby")
def nearby_attractions(
    lat: Optional[str] = Query(None),
    lon: Optional[str] = Query(None),
    radius: Optional[str] = Query(None),
):
    latitude = _coordinate(lat, 90)
    longitude = _coordinate(lon, 180)
    return {"attractions": find_nearby_attractions(latitude, longitude, parse_radius(radius))}

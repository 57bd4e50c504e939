import logging
import math
from typing import Any, Optional

from fastapi import APIRouter, Body
from pydantic import BaseModel

from . import llm
from .config import API_PREFIX
from .errors import InvalidRequestError, NoContentError, RootsError
from .normalize import as_mapping, bounded_int, optional_text, text_field
from .reply_parser import extract_json

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_LIMIT = 8
MAX_LIMIT = 12


class CityAttractionRequest(BaseModel):
    city: str
    country: Optional[str] = None
    limit: int = DEFAULT_LIMIT
    category: Optional[str] = None


class CityAttraction(BaseModel):
    title: str
    neighborhood: Optional[str] = None
    summary: Optional[str] = None
    latitude: float
    longitude: float
    mapLink: Optional[str] = None


def normalize_city_attraction_request(body: Any) -> CityAttractionRequest:
    raw = as_mapping(body)
    city = text_field(raw, "city")
    if not city:
        raise InvalidRequestError("City is required.")
    return CityAttractionRequest(
        city=city,
        country=optional_text(raw, "country"),
        limit=bounded_int(raw, "limit", DEFAULT_LIMIT, 1, MAX_LIMIT),
        category=optional_text(raw, "category"),
    )


def build_attraction_prompt(request: CityAttractionRequest) -> str:
    place = f"{request.city}, {request.country}" if request.country else request.city
    focus = (
        f"Focus exclusively on {request.category} experiences and skip unrelated ideas."
        if request.category
        else "Mix indoor and outdoor options when possible."
    )
    return (
        "You are Roots' global explorer planning real-world map experiences.\n\n"
        "Return ONLY valid minified JSON using this schema:\n"
        '{"attractions": [{"title": "short attraction title", '
        '"neighborhood": "optional area or borough", '
        '"summary": "single short sentence highlight", '
        '"latitude": 40.123, "longitude": -74.321, '
        '"mapLink": "https://www.google.com/maps/search/?api=1&query=encoded place name"}]}\n\n'
        "Rules:\n"
        f"- Highlight {request.limit} must-see spots people can visit in {place}.\n"
        f"- Provide precise decimal latitude/longitude pairs located inside or near {place}.\n"
        "- Summaries must be one friendly sentence no longer than 12 words.\n"
        f"- {focus}\n"
        "- Use friendly but concise wording.\n"
        "- Do not include markdown, explanations, or code fences. Respond with plain JSON text only."
    )


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _clean(value: Any) -> Optional[str]:
    return value.strip() or None if isinstance(value, str) else None


def parse_attractions(payload: Any) -> list[CityAttraction]:
    items = payload.get("attractions") if isinstance(payload, dict) else None
    attractions = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        latitude = _finite(item.get("latitude"))
        longitude = _finite(item.get("longitude"))
        if latitude is None or longitude is None:
            continue
        attractions.append(
            CityAttraction(
                title=_clean(item.get("title")) or "Unnamed attraction",
                neighborhood=_clean(item.get("neighborhood")),
                summary=_clean(item.get("summary")),
                latitude=latitude,
                longitude=longitude,
                mapLink=_clean(item.get("mapLink")),
            )
        )
    if not attractions:
        raise NoContentError("Gemini did not return any attractions.")
    return attractions


def request_city_attractions(
    request: CityAttractionRequest, guard: Optional[llm.InFlightGuard] = None
) -> list[CityAttraction]:
    guard = guard or llm.guard_for("city-attractions")
    with guard:
        reply = llm.generate_text(
            [llm.user_turn(build_attraction_prompt(request))],
            temperature=0.7,
            top_p=0.95,
            top_k=40,
            busy_message="Gemini is handling a lot of requests. Try again in a moment.",
            empty_message="Gemini reply was empty.",
        )
    return parse_attractions(extract_json(reply, "object"))


@router.post(f"{API_PREFIX}/attractions/city")
def city_attractions(payload: Any = Body(None)):
    request = normalize_city_attraction_request(payload)
    try:
        attractions = request_city_attractions(request)
    except RootsError:
        raise
    except Exception as exc:
        logger.error("City attractions error: %s", exc, exc_info=True)
        raise RootsError("Unexpected error while contacting Gemini.")
    return {"attractions": [item.model_dump(exclude_none=True) for item in attractions]}

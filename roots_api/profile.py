import logging
import math
from typing import Any, Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from . import storage
from .config import API_PREFIX, HTTP_TIMEOUT, RESTCOUNTRIES_URL, UA
from .errors import InvalidRequestError, NotFoundError, RootsError
from .normalize import bounded_int
from .session import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_SAVED_ATTRACTIONS = 40
PROFILE_FIELDS = (
    "name",
    "email",
    "location",
    "homeCountry",
    "favoriteMuseums",
    "favoriteRecipes",
    "bio",
    "socialHandle",
)
PUBLIC_FIELDS = PROFILE_FIELDS + ("role", "points", "createdAt", "updatedAt")


def sanitize(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_handle(handle: Any) -> str:
    return sanitize(handle).lstrip("@").lower()


def public_profile(profile: dict[str, Any], user_id: str) -> dict[str, Any]:
    data = {field: profile.get(field) for field in PUBLIC_FIELDS if field in profile}
    data["userId"] = user_id
    return data


def validate_country(country: str) -> bool:
    if not country:
        return True
    try:
        with httpx.Client(timeout=HTTP_TIMEOUT, headers={"User-Agent": UA}) as c:
            r = c.get(f"{RESTCOUNTRIES_URL}/name/{quote(country)}", params={"fullText": "false"})
        if r.status_code == 200:
            return len(r.json() or []) > 0
        return False
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Country validation error for %s: %s", country, exc)
        return False


@router.get(f"{API_PREFIX}/profile")
def get_profile(user_id: str = Depends(current_user_id)):
    try:
        profile = storage.get_document(storage.PROFILES, user_id)
    except Exception as exc:
        logger.error("Profile lookup failed: %s", exc, exc_info=True)
        raise RootsError("Unable to load profile details.")
    return {"profile": public_profile(profile, user_id) if profile else None}


@router.post(f"{API_PREFIX}/profile")
def save_profile(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    body = payload if isinstance(payload, dict) else {}
    fields = {field: sanitize(body.get(field)) for field in PROFILE_FIELDS}
    fields["email"] = fields["email"].lower()
    if not fields["name"] or not fields["email"]:
        raise InvalidRequestError("Name and email are required.")
    if fields["homeCountry"] and not validate_country(fields["homeCountry"]):
        raise InvalidRequestError(
            f'"{fields["homeCountry"]}" is not a valid country name. Please check spelling.'
        )

    try:
        now = storage.utcnow_iso()
        existing = storage.get_document(storage.PROFILES, user_id)
        update = dict(fields, socialHandleNormalized=normalize_handle(fields["socialHandle"]), updatedAt=now)
        if existing is None:
            update["createdAt"] = now
        storage.set_document(storage.PROFILES, user_id, update)
        saved = dict(existing or {}, **update)
    except Exception as exc:
        logger.error("Profile save failed: %s", exc, exc_info=True)
        raise RootsError("Unable to save profile details.")
    return {"profile": public_profile(saved, user_id)}


class SavedAttraction(BaseModel):
    id: str
    label: str
    latitude: float
    longitude: float
    createdAt: str
    source: str
    category: Optional[str] = None
    description: Optional[str] = None


def _clip(value: Any, size: int) -> str:
    return sanitize(value)[:size]


def _coordinate(value: Any, low: float, high: float) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed) or parsed < low or parsed > high:
        return None
    return parsed


def normalize_saved_attraction(payload: Any) -> SavedAttraction:
    raw = payload if isinstance(payload, dict) else {}
    latitude = _coordinate(raw.get("latitude"), -90, 90)
    longitude = _coordinate(raw.get("longitude"), -180, 180)
    if latitude is None or longitude is None:
        raise InvalidRequestError("Latitude and longitude must be valid numbers.")
    label = _clip(raw.get("label"), 120) or _clip(raw.get("title"), 120)
    return SavedAttraction(
        id=storage.new_id(),
        label=label or f"Pinned destination ({latitude:.3f}, {longitude:.3f})",
        latitude=latitude,
        longitude=longitude,
        createdAt=storage.utcnow_iso(),
        source=_clip(raw.get("source"), 120) or "live-map",
        category=_clip(raw.get("category"), 40).lower() or None,
        description=_clip(raw.get("description"), 120) or None,
    )


def _saved_attractions(user_id: str) -> list[dict[str, Any]]:
    profile = storage.get_document(storage.PROFILES, user_id) or {}
    saved = profile.get("savedAttractions")
    return saved if isinstance(saved, list) else []


@router.get(f"{API_PREFIX}/profile/attractions")
def list_saved_attractions(
    limit: Optional[str] = Query(None),
    user_id: str = Depends(current_user_id),
):
    count = bounded_int({"limit": limit}, "limit", MAX_SAVED_ATTRACTIONS, 1, MAX_SAVED_ATTRACTIONS)
    try:
        attractions = _saved_attractions(user_id)
    except Exception as exc:
        logger.error("Saved attractions lookup failed: %s", exc, exc_info=True)
        raise RootsError("Unable to load saved attractions.")
    return {"attractions": attractions[-count:]}


@router.post(f"{API_PREFIX}/profile/attractions")
def save_attraction(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    attraction = normalize_saved_attraction(payload).model_dump(exclude_none=True)
    try:
        attractions = (_saved_attractions(user_id) + [attraction])[-MAX_SAVED_ATTRACTIONS:]
        storage.set_document(
            storage.PROFILES,
            user_id,
            {"savedAttractions": attractions, "updatedAt": storage.utcnow_iso()},
        )
    except Exception as exc:
        logger.error("Saving attraction failed: %s", exc, exc_info=True)
        raise RootsError("Unable to save destination.")
    return {"attraction": attraction, "attractions": attractions}


@router.delete(f"{API_PREFIX}/profile/attractions")
def delete_saved_attraction(
    attraction_id: Optional[str] = Query(None, alias="id"),
    user_id: str = Depends(current_user_id),
):
    attraction_id = (attraction_id or "").strip()
    if not attraction_id:
        raise InvalidRequestError("Saved destination id is required.")
    attractions = _saved_attractions(user_id)
    remaining = [item for item in attractions if item.get("id") != attraction_id]
    if len(remaining) == len(attractions):
        raise NotFoundError("Saved destination not found.")
    storage.set_document(
        storage.PROFILES,
        user_id,
        {"savedAttractions": remaining, "updatedAt": storage.utcnow_iso()},
    )
    return {"success": True, "attractions": remaining}

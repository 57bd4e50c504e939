import logging
import math
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from . import storage
from .config import API_PREFIX
from .errors import InvalidRequestError, NotFoundError, RootsError
from .normalize import as_mapping, round_half_up, text_field
from .session import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()

WORLD_COUNTRY_COUNT = 195


class TravelLog(BaseModel):
    type: str
    title: str
    description: str = ""
    country: str = ""
    city: str = ""
    rating: Optional[int] = None
    imageUrl: str = ""
    notes: str = ""


def normalize_rating(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidRequestError("Rating must be a number.")
    try:
        rating = float(value)
    except (TypeError, ValueError):
        raise InvalidRequestError("Rating must be a number.")
    if not math.isfinite(rating):
        raise InvalidRequestError("Rating must be a number.")
    return min(max(round_half_up(rating), 1), 5)


def normalize_travel_log(body: Any) -> TravelLog:
    raw = as_mapping(body)
    log_type = text_field(raw, "type").lower()
    title = text_field(raw, "title")
    if not log_type or not title:
        raise InvalidRequestError("Type and title are required.")
    return TravelLog(
        type=log_type,
        title=title,
        description=text_field(raw, "description"),
        country=text_field(raw, "country"),
        city=text_field(raw, "city"),
        rating=normalize_rating(raw.get("rating")),
        imageUrl=text_field(raw, "imageUrl"),
        notes=text_field(raw, "notes"),
    )


def compute_log_stats(logs: list[dict[str, Any]]) -> dict[str, int]:
    attractions = [log for log in logs if log.get("type") == "attraction"]
    recipes = [log for log in logs if log.get("type") == "recipe"]
    countries = {log["country"].strip().lower() for log in attractions if (log.get("country") or "").strip()}
    return {
        "totalAttractions": len(attractions),
        "totalRecipes": len(recipes),
        "countriesVisited": len(countries),
        "worldPercentage": round_half_up(len(countries) / WORLD_COUNTRY_COUNT * 100),
    }


@router.get(f"{API_PREFIX}/logs")
def list_logs(user_id: str = Depends(current_user_id)):
    try:
        logs = storage.find_many(storage.TRAVEL_LOGS, {"userId": user_id}, order_by="visitedAt", descending=True)
    except Exception as exc:
        logger.error("Logs GET error: %s", exc, exc_info=True)
        raise RootsError("Unable to load travel logs.")
    return {"logs": logs, "stats": compute_log_stats(logs)}


@router.post(f"{API_PREFIX}/logs")
def create_log(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    entry = normalize_travel_log(payload)
    now = storage.utcnow_iso()
    try:
        log_id = storage.insert_document(
            storage.TRAVEL_LOGS,
            dict(entry.model_dump(), userId=user_id, visitedAt=now, createdAt=now),
        )
    except Exception as exc:
        logger.error("Logs POST error: %s", exc, exc_info=True)
        raise RootsError("Unable to save travel log.")
    return {"success": True, "logId": log_id}


@router.delete(f"{API_PREFIX}/logs")
def delete_log(log_id: Optional[str] = Query(None, alias="id"), user_id: str = Depends(current_user_id)):
    if not log_id or not log_id.strip():
        raise InvalidRequestError("Invalid log ID.")
    log = storage.get_document(storage.TRAVEL_LOGS, log_id.strip())
    if not log or log.get("userId") != user_id:
        raise NotFoundError("Log not found.")
    storage.delete_document(storage.TRAVEL_LOGS, log["id"])
    return {"success": True}

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from . import storage
from .config import API_PREFIX
from .errors import InvalidRequestError, RootsError
from .normalize import as_mapping
from .session import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _attraction_id(value: Any) -> str:
    if isinstance(value, bool) or value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


@router.get(f"{API_PREFIX}/attractions/favorites")
def list_favorites(user_id: str = Depends(current_user_id)):
    try:
        favorites = storage.find_many(storage.FAVORITES, {"userId": user_id}, order_by="createdAt", descending=True)
    except Exception as exc:
        logger.error("Get favorites error: %s", exc, exc_info=True)
        raise RootsError("Unable to fetch favorites.")
    return {
        "favorites": [
            {"attractionId": item.get("attractionId"), "attraction": item.get("attraction"), "createdAt": item.get("createdAt")}
            for item in favorites
        ]
    }


@router.post(f"{API_PREFIX}/attractions/favorites")
def add_favorite(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    attraction = as_mapping(payload).get("attraction")
    attraction_id = _attraction_id(attraction.get("id")) if isinstance(attraction, dict) else ""
    if not attraction_id:
        raise InvalidRequestError("Attraction data is required.")

    try:
        if storage.find_one(storage.FAVORITES, {"userId": user_id, "attractionId": attraction_id}):
            raise InvalidRequestError("Attraction already in favorites.")
        storage.insert_document(
            storage.FAVORITES,
            {"userId": user_id, "attractionId": attraction_id, "attraction": attraction, "createdAt": storage.utcnow_iso()},
        )
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Add favorite error: %s", exc, exc_info=True)
        raise RootsError("Unable to add favorite.")
    return {"success": True}


@router.delete(f"{API_PREFIX}/attractions/favorites")
def remove_favorite(
    payload: Any = Body(None),
    query_id: Optional[str] = Query(None, alias="attractionId"),
    user_id: str = Depends(current_user_id),
):
    attraction_id = _attraction_id(as_mapping(payload).get("attractionId")) or _attraction_id(query_id)
    if not attraction_id:
        raise InvalidRequestError("Attraction ID is required.")
    try:
        for favorite in storage.find_many(storage.FAVORITES, {"userId": user_id, "attractionId": attraction_id}):
            storage.delete_document(storage.FAVORITES, favorite["id"])
    except Exception as exc:
        logger.error("Remove favorite error: %s", exc, exc_info=True)
        raise RootsError("Unable to remove favorite.")
    return {"success": True}

import logging
import math
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from . import storage
from .config import API_PREFIX
from .errors import ForbiddenError, InvalidRequestError, NotAuthenticatedError, NotFoundError, RootsError
from .normalize import as_mapping, round_half_up
from .session import current_user_id, optional_user_id, parse_user_id

logger = logging.getLogger(__name__)

router = APIRouter()

LEADERBOARD_SIZE = 25


def read_points(profile: Optional[dict[str, Any]]) -> int:
    if not profile:
        return 0
    value = profile.get("points")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    return int(value)


def get_points(user_id: str) -> int:
    return read_points(storage.get_document(storage.PROFILES, user_id))


def set_points(user_id: str, points: int) -> int:
    normalized = max(0, int(points))
    storage.set_document(
        storage.PROFILES,
        user_id,
        {"points": normalized, "updatedAt": storage.utcnow_iso()},
    )
    return normalized


def award_points(user_id: str, amount: int) -> None:
    """Adjust a balance by ``amount``; negative amounts deduct."""
    storage.set_document(
        storage.PROFILES,
        user_id,
        {"points": storage.increment(amount), "updatedAt": storage.utcnow_iso()},
    )


def normalize_points_value(raw: Any) -> int:
    if isinstance(raw, bool) or raw is None:
        raise InvalidRequestError("Numeric points are required.")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise InvalidRequestError("Numeric points are required.")
    if not math.isfinite(value):
        raise InvalidRequestError("Numeric points are required.")
    return max(0, round_half_up(value))


@router.get(f"{API_PREFIX}/points")
def read_points_balance(
    profile_id: Optional[str] = Query(None, alias="profileId"),
    user_id: Optional[str] = Depends(optional_user_id),
):
    target = parse_user_id(profile_id) or user_id
    if not target:
        raise NotAuthenticatedError()
    try:
        return {"points": get_points(target)}
    except Exception as exc:
        logger.error("Points lookup failed: %s", exc, exc_info=True)
        raise RootsError("Unable to load points.")


@router.post(f"{API_PREFIX}/points")
def save_points_balance(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    body = as_mapping(payload)
    profile_id = body.get("profileId")
    if profile_id is not None and parse_user_id(profile_id if isinstance(profile_id, str) else None) != user_id:
        raise ForbiddenError("You can only update your own points.")
    points = normalize_points_value(body.get("points"))
    try:
        if storage.get_document(storage.PROFILES, user_id) is None:
            raise NotFoundError("Profile not found.")
        return {"points": set_points(user_id, points)}
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Points update failed: %s", exc, exc_info=True)
        raise RootsError("Unable to save points.")


def build_leaderboard(profiles: list[dict[str, Any]], size: int = LEADERBOARD_SIZE) -> list[dict[str, Any]]:
    rows = []
    for profile in profiles:
        # Only registered accounts carry an email.
        if not profile.get("email"):
            continue
        points = read_points(profile)
        name = (profile.get("name") or "").strip() or profile["email"]
        rows.append({"userId": profile.get("id"), "name": name, "points": points})
    rows.sort(key=lambda row: (-row["points"], row["userId"] or ""))
    return [dict(row, rank=index + 1) for index, row in enumerate(rows[:size])]


@router.get(f"{API_PREFIX}/leaderboard")
def leaderboard():
    try:
        return {"entries": build_leaderboard(storage.find_many(storage.PROFILES))}
    except Exception as exc:
        logger.error("Leaderboard failed: %s", exc, exc_info=True)
        raise RootsError("Unable to load leaderboard.")

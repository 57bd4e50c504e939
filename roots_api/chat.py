import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from . import storage
from .config import API_PREFIX
from .errors import ForbiddenError, InvalidRequestError, NotFoundError, RootsError
from .normalize import as_mapping, text_field
from .profile import normalize_handle
from .session import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()

MESSAGE_HISTORY_LIMIT = 500


def edge_id(owner_id: str, friend_id: str) -> str:
    return f"{owner_id}_{friend_id}"


def _friend_card(profile: Optional[dict[str, Any]], friend_id: str, fallback_handle: str = "") -> dict[str, Any]:
    profile = profile or {}
    return {
        "id": friend_id,
        "name": profile.get("name") or "Traveler",
        "handle": profile.get("socialHandle") or fallback_handle,
        "bio": profile.get("bio") or "",
    }


def is_friend(user_id: str, friend_id: str) -> bool:
    return storage.get_document(storage.FRIENDS, edge_id(user_id, friend_id)) is not None


@router.get(f"{API_PREFIX}/chat/friends")
def list_friends(user_id: str = Depends(current_user_id)):
    try:
        edges = storage.find_many(storage.FRIENDS, {"userId": user_id}, order_by="createdAt", descending=True)
        friends = []
        for edge in edges:
            friend_id = edge.get("friendId")
            if not friend_id:
                continue
            profile = storage.get_document(storage.PROFILES, friend_id)
            card = _friend_card(profile, friend_id, edge.get("friendHandle") or "")
            card["addedAt"] = edge.get("createdAt")
            friends.append(card)
    except Exception as exc:
        logger.error("Friends GET error: %s", exc, exc_info=True)
        raise RootsError("Unable to load your friends list.")
    return {"friends": friends}


@router.post(f"{API_PREFIX}/chat/friends")
def add_friend(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    handle = normalize_handle(as_mapping(payload).get("handle"))
    if not handle:
        raise InvalidRequestError("Please provide a valid social handle.")

    try:
        target = storage.find_one(storage.PROFILES, {"socialHandleNormalized": handle})
        if not target:
            raise NotFoundError("No traveler found with that social handle.")
        friend_id = target["id"]
        if friend_id == user_id:
            raise InvalidRequestError("You cannot add yourself as a friend.")

        friend = _friend_card(target, friend_id, f"@{handle}")
        if is_friend(user_id, friend_id):
            return {"friend": friend, "alreadyAdded": True}

        current = storage.get_document(storage.PROFILES, user_id) or {}
        now = storage.utcnow_iso()
        # Deterministic edge ids make a repeated add overwrite rather than duplicate.
        storage.set_document(
            storage.FRIENDS,
            edge_id(user_id, friend_id),
            {"userId": user_id, "friendId": friend_id, "friendHandle": friend["handle"], "createdAt": now},
            merge=False,
        )
        storage.set_document(
            storage.FRIENDS,
            edge_id(friend_id, user_id),
            {"userId": friend_id, "friendId": user_id, "friendHandle": current.get("socialHandle") or "@you", "createdAt": now},
            merge=False,
        )
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Friends POST error: %s", exc, exc_info=True)
        raise RootsError("Unable to add that traveler right now.")
    logger.info("Friendship created between %s and %s", user_id, friend_id)
    return {"friend": friend, "alreadyAdded": False}


def _message_view(message: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": message["id"],
        "senderId": message.get("senderId"),
        "recipientId": message.get("recipientId"),
        "body": message.get("body"),
        "createdAt": message.get("createdAt"),
    }


@router.get(f"{API_PREFIX}/chat/messages")
def list_messages(friend_id: Optional[str] = Query(None, alias="friendId"), user_id: str = Depends(current_user_id)):
    friend_id = (friend_id or "").strip()
    if not friend_id:
        raise InvalidRequestError("Missing friendId.")
    try:
        if not is_friend(user_id, friend_id):
            raise ForbiddenError("You are not connected to that traveler.")
        messages = storage.find_many(
            storage.MESSAGES,
            {"participants": sorted([user_id, friend_id])},
            order_by="createdAt",
            limit=MESSAGE_HISTORY_LIMIT,
        )
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Messages GET error: %s", exc, exc_info=True)
        raise RootsError("Unable to load messages right now.")
    return {"messages": [_message_view(message) for message in messages]}


@router.post(f"{API_PREFIX}/chat/messages")
def send_message(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    raw = as_mapping(payload)
    friend_id = text_field(raw, "friendId")
    body = text_field(raw, "message")
    if not friend_id:
        raise InvalidRequestError("friendId is required.")
    if not body:
        raise InvalidRequestError("Message cannot be empty.")

    try:
        if not is_friend(user_id, friend_id):
            raise ForbiddenError("You are not connected to that traveler.")
        message = {
            "senderId": user_id,
            "recipientId": friend_id,
            "participants": sorted([user_id, friend_id]),
            "body": body,
            "createdAt": storage.utcnow_iso(),
        }
        message["id"] = storage.insert_document(storage.MESSAGES, dict(message))
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Messages POST error: %s", exc, exc_info=True)
        raise RootsError("Unable to send message right now.")
    return {"message": _message_view(message)}

import logging
import re
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from passlib.context import CryptContext

from . import storage
from .config import API_PREFIX
from .errors import ConflictError, InvalidRequestError, NotAuthenticatedError, NotFoundError
from .points import read_points
from .session import clear_session, current_user_id, persist_session

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_PASSWORD_LENGTH = 6
DEFAULT_ROLE = "client"

# pbkdf2_sha256 stores its random salt inside the hash string and verifies in
# constant time.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def normalize_email(email: Any) -> str:
    return str(email or "").strip().lower()


def build_default_name(email: str) -> str:
    local_part = email.split("@")[0]
    return re.sub(r"\W+", " ", local_part).strip() or "Roots Explorer"


def _credentials(payload: Any) -> tuple[str, str]:
    body = payload if isinstance(payload, dict) else {}
    email = normalize_email(body.get("email"))
    password = body.get("password")
    if not email or not isinstance(password, str) or not password:
        raise InvalidRequestError("Email and password are required.")
    return email, password


def _find_by_email(email: str) -> dict[str, Any] | None:
    return storage.find_one(storage.PROFILES, {"email": email})


def _auth_response(message: str, profile: dict[str, Any]) -> JSONResponse:
    response = JSONResponse(
        {
            "ok": True,
            "message": message,
            "email": profile["email"],
            "role": profile.get("role") or DEFAULT_ROLE,
            "userId": profile["id"],
        }
    )
    persist_session(response, profile["id"])
    return response


@router.post(f"{API_PREFIX}/auth/check-email")
def check_email(payload: Any = Body(None)):
    body = payload if isinstance(payload, dict) else {}
    email = normalize_email(body.get("email"))
    if not email:
        raise InvalidRequestError("Email is required.")
    return {"exists": _find_by_email(email) is not None}


@router.post(f"{API_PREFIX}/auth/register")
def register(payload: Any = Body(None)):
    email, password = _credentials(payload)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if _find_by_email(email):
        raise ConflictError("Email already registered. Please login.")

    now = storage.utcnow_iso()
    profile = {
        "email": email,
        "passwordHash": pwd_context.hash(password),
        "role": DEFAULT_ROLE,
        "name": build_default_name(email),
        "location": "",
        "homeCountry": "",
        "favoriteMuseums": "",
        "favoriteRecipes": "",
        "bio": "",
        "socialHandle": "",
        "points": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    profile["id"] = storage.insert_document(storage.PROFILES, profile)
    logger.info("Registered profile %s", profile["id"])
    return _auth_response("Account created and ready to use.", profile)


@router.post(f"{API_PREFIX}/auth/login")
def login(payload: Any = Body(None)):
    email, password = _credentials(payload)
    profile = _find_by_email(email)
    if not profile:
        raise NotFoundError("Account not found. Please register.")

    password_hash = profile.get("passwordHash")
    if not password_hash:
        # Half-written account; drop it so the email can register again.
        storage.delete_document(storage.PROFILES, profile["id"])
        raise ConflictError("Account data was corrupted. Please register again.")

    if not pwd_context.verify(password, password_hash):
        raise NotAuthenticatedError("Incorrect password. Try again.")

    if not isinstance(profile.get("points"), (int, float)):
        storage.set_document(storage.PROFILES, profile["id"], {"points": 0, "updatedAt": storage.utcnow_iso()})
    return _auth_response("You're logged in.", profile)


@router.post(f"{API_PREFIX}/auth/logout")
def logout():
    response = JSONResponse({"success": True})
    clear_session(response)
    return response


@router.get(f"{API_PREFIX}/auth/me")
def me(user_id: str = Depends(current_user_id)):
    profile = storage.get_document(storage.PROFILES, user_id)
    if not profile:
        raise NotFoundError("User not found.")
    return {
        "userId": user_id,
        "email": profile.get("email"),
        "role": profile.get("role") or DEFAULT_ROLE,
        "createdAt": profile.get("createdAt"),
        "name": profile.get("name"),
        "points": read_points(profile),
    }

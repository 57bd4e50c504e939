import re
from typing import Optional

from fastapi import Cookie, Response

from .config import AUTH_COOKIE_MAX_AGE, AUTH_COOKIE_NAME, COOKIE_SECURE
from .errors import NotAuthenticatedError

# Profile document ids are uuid4 hex; anything reasonably id-shaped is accepted.
USER_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def parse_user_id(raw: Optional[str]) -> Optional[str]:
    value = (raw or "").strip()
    if not value or not USER_ID_RE.match(value):
        return None
    return value


def optional_user_id(
    roots_user: Optional[str] = Cookie(default=None, alias=AUTH_COOKIE_NAME),
) -> Optional[str]:
    return parse_user_id(roots_user)


def current_user_id(
    roots_user: Optional[str] = Cookie(default=None, alias=AUTH_COOKIE_NAME),
) -> str:
    user_id = parse_user_id(roots_user)
    if user_id is None:
        raise NotAuthenticatedError()
    return user_id


def persist_session(response: Response, user_id: str) -> None:
    response.set_cookie(
        AUTH_COOKIE_NAME,
        user_id,
        max_age=AUTH_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
    )


def clear_session(response: Response) -> None:
    response.set_cookie(
        AUTH_COOKIE_NAME,
        "",
        max_age=0,
        path="/",
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
    )

import math
from typing import Any, Optional

from .errors import InvalidRequestError


def as_mapping(body: Any) -> dict[str, Any]:
    return body if isinstance(body, dict) else {}


def text_field(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def optional_text(raw: dict[str, Any], key: str) -> Optional[str]:
    return text_field(raw, key) or None


def require_text(raw: dict[str, Any], *keys: str, message: str) -> list[str]:
    values = [text_field(raw, key) for key in keys]
    if not all(values):
        raise InvalidRequestError(message)
    return values


def bounded_int(
    raw: dict[str, Any],
    key: str,
    default: int,
    low: int,
    high: int,
    message: Optional[str] = None,
) -> int:
    """Floor a provided number and clamp it into ``[low, high]``.

    Absent or ``null`` means ``default``; anything present that is not a
    finite number is rejected.
    """
    value = raw.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidRequestError(message or f"{key} must be a number.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidRequestError(message or f"{key} must be a number.")
    if not math.isfinite(number):
        raise InvalidRequestError(message or f"{key} must be a number.")
    return min(max(math.floor(number), low), high)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ``.5`` going up, unlike ``round``."""
    return math.floor(value + 0.5)

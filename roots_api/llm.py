import logging
import threading
from typing import Any, Optional, Sequence

import google.genai as genai
from google.genai import errors, types

from .config import GCP_LOCATION, GCP_PROJECT_ID, GEMINI_API_KEY, GEMINI_MODEL
from .errors import (
    NoContentError,
    NotConfiguredError,
    RequestInFlightError,
    UpstreamBusyError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 503)

_client: Optional[genai.Client] = None


class InFlightGuard:
    """Single-slot, non-blocking guard for one feature's outbound calls.

    Used as a context manager; a second caller entering while the slot is
    held gets ``RequestInFlightError`` instead of queueing. The slot lives in
    process memory only.
    """

    def __init__(self, name: str, busy_message: Optional[str] = None):
        self.name = name
        self.busy_message = busy_message or (
            f"Another {name} request is already in progress. Please wait a moment."
        )
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def __enter__(self) -> "InFlightGuard":
        if not self._lock.acquire(blocking=False):
            raise RequestInFlightError(self.busy_message)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._lock.release()


_guards: dict[str, InFlightGuard] = {}
_guards_lock = threading.Lock()


def guard_for(feature: str, busy_message: Optional[str] = None) -> InFlightGuard:
    with _guards_lock:
        guard = _guards.get(feature)
        if guard is None:
            guard = InFlightGuard(feature, busy_message)
            _guards[feature] = guard
        elif busy_message:
            guard.busy_message = busy_message
        return guard


def _get_client() -> genai.Client:
    global _client
    if _client is None:
        if GEMINI_API_KEY:
            _client = genai.Client(api_key=GEMINI_API_KEY)
        elif GCP_PROJECT_ID:
            _client = genai.Client(
                vertexai=True,
                project=GCP_PROJECT_ID,
                location=GCP_LOCATION,
                http_options=types.HttpOptions(api_version="v1"),
            )
        else:
            raise NotConfiguredError("Gemini API key is not configured on the server.")
    return _client


def user_turn(*items: str | types.Part) -> types.Content:
    parts = [types.Part.from_text(text=item) if isinstance(item, str) else item for item in items]
    return types.Content(role="user", parts=parts)


def model_turn(text: str) -> types.Content:
    return types.Content(role="model", parts=[types.Part.from_text(text=text)])


def image_part(data: bytes, mime_type: str) -> types.Part:
    return types.Part.from_bytes(data=data, mime_type=mime_type)


def _reply_text(response: Any) -> str:
    raw_text = getattr(response, "text", None)
    if not raw_text and getattr(response, "candidates", None):
        raw_chunks = []
        for candidate in response.candidates:
            for part in getattr(candidate.content, "parts", None) or []:
                if getattr(part, "text", None):
                    raw_chunks.append(part.text)
        raw_text = "".join(raw_chunks)
    return (raw_text or "").strip()


def upstream_failure(
    status: Optional[int],
    body: str,
    busy_message: str,
    model: str = GEMINI_MODEL,
):
    """Map a non-2xx provider answer onto the typed error it stands for."""
    if status in RETRYABLE_STATUSES:
        return UpstreamBusyError(busy_message, status)
    return UpstreamError(
        f"Gemini request failed for model {model} ({status}): {body or 'no details'}",
        upstream_status=status,
    )


def generate_text(
    contents: Sequence[types.Content] | Sequence[types.Part] | str,
    *,
    temperature: float = 0.7,
    top_p: float = 0.95,
    top_k: Optional[int] = 40,
    max_output_tokens: Optional[int] = None,
    busy_message: str = "Gemini is handling a high volume of requests. Please try again in a moment.",
    empty_message: str = "Gemini did not return any content.",
) -> str:
    """Send one ``generate_content`` call and return the joined reply text."""
    client = _get_client()
    logger.info("Gemini request -> %s", GEMINI_MODEL)
    try:
        response = client.models.generate_content(
            model=GEMINI_MODEL,
            contents=contents,
            config=types.GenerateContentConfig(
                automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
                temperature=temperature,
                top_p=top_p,
                top_k=top_k,
                max_output_tokens=max_output_tokens,
            ),
        )
    except errors.APIError as exc:
        logger.warning("Gemini answered %s: %s", exc.code, exc.message)
        raise upstream_failure(exc.code, exc.message or str(exc), busy_message) from exc
    reply = _reply_text(response)
    if not reply:
        raise NoContentError(empty_message)
    return reply

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body
from fastapi.responses import Response
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import texttospeech

from . import llm
from .config import API_PREFIX, TTS_LANGUAGE_CODE, TTS_VOICE_NAME
from .errors import (
    InvalidRequestError,
    NoContentError,
    NotConfiguredError,
    RootsError,
    UpstreamBusyError,
    UpstreamError,
)
from .normalize import as_mapping, text_field

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_SPEECH_CHARS = 2500

_tts_client: Optional[texttospeech.TextToSpeechClient] = None


def _tts() -> texttospeech.TextToSpeechClient:
    global _tts_client
    if _tts_client is None:
        try:
            _tts_client = texttospeech.TextToSpeechClient()
        except DefaultCredentialsError as exc:
            raise NotConfiguredError("Text-to-Speech credentials are not configured.") from exc
    return _tts_client


def normalize_speech_text(body: Any) -> str:
    text = text_field(as_mapping(body), "text")
    if not text:
        raise InvalidRequestError("Text is required.")
    return text[:MAX_SPEECH_CHARS]


def synthesize_speech(text: str, guard: Optional[llm.InFlightGuard] = None) -> bytes:
    """Render ``text`` to MP3 with the configured Cloud TTS voice."""
    guard = guard or llm.guard_for("speech")
    with guard:
        try:
            response = _tts().synthesize_speech(
                input=texttospeech.SynthesisInput(text=text),
                voice=texttospeech.VoiceSelectionParams(
                    language_code=TTS_LANGUAGE_CODE,
                    name=TTS_VOICE_NAME,
                ),
                audio_config=texttospeech.AudioConfig(
                    audio_encoding=texttospeech.AudioEncoding.MP3,
                    speaking_rate=1.02,
                ),
            )
        except GoogleAPICallError as exc:
            status = int(exc.code) if exc.code is not None else None
            logger.warning("Text-to-Speech answered %s: %s", status, exc.message)
            if status in llm.RETRYABLE_STATUSES:
                raise UpstreamBusyError("Text-to-Speech is busy. Please try again shortly.", status) from exc
            raise UpstreamError(
                f"Text-to-Speech request failed ({status}): {exc.message}",
                upstream_status=status,
            ) from exc
    if not response.audio_content:
        raise NoContentError("Text-to-Speech did not return any audio.")
    return response.audio_content


@router.post(f"{API_PREFIX}/recipes/speak")
def speak(payload: Any = Body(None)):
    text = normalize_speech_text(payload)
    try:
        audio = synthesize_speech(text)
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Text-to-Speech synthesis failed: %s", exc, exc_info=True)
        raise RootsError("Unable to generate speech.")
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Cache-Control": "no-store"},
    )

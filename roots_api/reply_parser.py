"""Recover JSON from the free-text replies of a generative model.

Models tend to wrap the JSON they were asked for in commentary or markdown
fences, and to leave trailing commas behind. The repair here is heuristic
text surgery, not a grammar-aware parser: a string value that itself
contains bracket characters can make the slicing pick the wrong span.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Literal, Optional

from .errors import ReplyParseError

logger = logging.getLogger(__name__)

FENCE_RE = re.compile(r"```(?:[\w-]+)?\s*([\s\S]*?)\s*```")
TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

Shape = Literal["object", "array"]

_OPENERS = {"object": "{", "array": "["}
_CLOSERS = {"object": "}", "array": "]"}


@dataclass
class ParsedReply:
    ok: bool
    value: Any = None
    error: Optional[str] = None


def strip_code_fence(text: str) -> str:
    match = FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    # An unterminated fence still starts the reply now and then.
    if text.startswith("```"):
        text = re.sub(r"^```(?:[\w-]+)?", "", text).strip()
    return text


def slice_json_span(text: str, expect: Optional[Shape] = None) -> str:
    if expect:
        start = text.find(_OPENERS[expect])
        end = text.rfind(_CLOSERS[expect])
    else:
        starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
        start = min(starts) if starts else -1
        end = max(text.rfind("}"), text.rfind("]"))
    if start == -1 or end == -1 or end < start:
        raise ReplyParseError("Model reply did not contain any JSON.")
    return text[start : end + 1]


def repair_json_text(text: str) -> str:
    text = text.replace("\r", "")
    text = text.replace("\n", " ").replace("\t", " ")
    return TRAILING_COMMA_RE.sub(r"\1", text)


def extract_json(raw_text: str, expect: Optional[Shape] = None) -> Any:
    if not raw_text or not raw_text.strip():
        raise ReplyParseError("Model reply was empty.")
    text = strip_code_fence(raw_text.strip())
    span = repair_json_text(slice_json_span(text, expect))
    try:
        value = json.loads(span)
    except json.JSONDecodeError as exc:
        logger.warning("Unable to parse model reply: %s", exc)
        raise ReplyParseError(f"Model reply was not valid JSON: {exc.msg}") from exc
    if expect == "object" and not isinstance(value, dict):
        raise ReplyParseError("Model reply was not a JSON object.")
    if expect == "array" and not isinstance(value, list):
        raise ReplyParseError("Model reply was not a JSON array.")
    return value


def parse_reply(raw_text: str, expect: Optional[Shape] = None) -> ParsedReply:
    try:
        return ParsedReply(ok=True, value=extract_json(raw_text, expect))
    except ReplyParseError as exc:
        return ParsedReply(ok=False, error=exc.message)

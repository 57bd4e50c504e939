import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body
from pydantic import BaseModel

from . import llm
from .config import API_PREFIX
from .errors import InvalidRequestError, RootsError
from .normalize import as_mapping, optional_text, text_field

logger = logging.getLogger(__name__)

router = APIRouter()

PLANNER_BUSY = "Gemini is handling a high volume of requests. Please try again in a moment."


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class PlannerRequest(BaseModel):
    location: str
    budget: str
    interests: Optional[str] = None
    notes: Optional[str] = None
    messages: list[ChatMessage]


def normalize_messages(value: Any) -> list[ChatMessage]:
    messages = []
    for item in value if isinstance(value, list) else []:
        entry = as_mapping(item)
        content = text_field(entry, "content")
        if not content:
            continue
        role = "assistant" if entry.get("role") == "assistant" else "user"
        messages.append(ChatMessage(role=role, content=content))
    return messages


def normalize_planner_request(body: Any) -> PlannerRequest:
    raw = as_mapping(body)
    location = text_field(raw, "location")
    budget = text_field(raw, "budget")
    messages = normalize_messages(raw.get("messages"))
    if not location or not budget or not messages:
        raise InvalidRequestError(
            "Location, budget, and at least one conversation message are required."
        )
    return PlannerRequest(
        location=location,
        budget=budget,
        interests=optional_text(raw, "interests"),
        notes=optional_text(raw, "notes"),
        messages=messages,
    )


def build_planner_prompt(request: PlannerRequest) -> str:
    notes = f"Additional notes: {request.notes}\n" if request.notes else ""
    return (
        f"You are Roots' cultural concierge helping a user explore {request.location}.\n"
        f"They have a budget of {request.budget} and are interested in "
        f"{request.interests or 'a variety of city experiences'}.\n"
        f"{notes}\n"
        "TASK:\n"
        "Return a JSON document with the following structure:\n"
        "{\n"
        '  "intro": "short conversational intro, friendly tone",\n'
        '  "tips": ["quick travel tip 1", "quick travel tip 2"],\n'
        '  "attractions": [\n'
        "    {\n"
        '      "title": "name of the activity or place",\n'
        '      "neighborhood": "area or borough",\n'
        '      "cost": "Free, $, $$, $$$",\n'
        '      "description": "2-3 sentence highlight",\n'
        '      "mapLink": "https://www.google.com/maps/search/?api=1&query=encoded location",\n'
        '      "category": "museum | gallery | park | food | nightlife | shopping | landmark | event | other",\n'
        '      "latitude": 40.7128,\n'
        '      "longitude": -74.006,\n'
        '      "notes": ["bullet point tip 1", "bullet point tip 2"]\n'
        "    }\n"
        "  ],\n"
        '  "closing": "conversational outro inviting follow-up questions"\n'
        "}\n\n"
        "REQUIREMENTS:\n"
        "- Always include at least three attractions.\n"
        "- Each attraction must include a valid Google Maps link.\n"
        f"- Latitude and longitude must be decimal degrees that fall near {request.location}.\n"
        "- Category must be one of: museum, gallery, park, food, nightlife, shopping, landmark, event, other.\n"
        "- Keep the response friendly and concise so the client can render styled cards.\n"
        "- Do not include any markdown or backticks, just the JSON string."
    )


def request_plan(request: PlannerRequest, guard: Optional[llm.InFlightGuard] = None) -> str:
    """Ask Gemini for a trip plan; the reply is returned as raw text."""
    guard = guard or llm.guard_for(
        "planner", "Another Gemini plan is already running. Please wait a moment and try again."
    )
    contents = [llm.user_turn(build_planner_prompt(request))]
    for message in request.messages:
        if message.role == "assistant":
            contents.append(llm.model_turn(message.content))
        else:
            contents.append(llm.user_turn(message.content))
    with guard:
        return llm.generate_text(
            contents,
            temperature=0.8,
            top_k=32,
            top_p=0.95,
            busy_message=PLANNER_BUSY,
        )


@router.post(f"{API_PREFIX}/attractions/plan")
def plan_attractions(payload: Any = Body(None)):
    request = normalize_planner_request(payload)
    try:
        return {"reply": request_plan(request)}
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Attraction planner failed: %s", exc, exc_info=True)
        raise RootsError("Unexpected error while contacting Gemini.")

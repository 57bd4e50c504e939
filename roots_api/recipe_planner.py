import json
import logging
from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Body

from pydantic import BaseModel

from . import llm
from .attraction_planner import normalize_messages
from .config import API_PREFIX
from .errors import InvalidRequestError, RootsError, UpstreamBusyError
from .normalize import as_mapping, bounded_int, optional_text, require_text

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_LIMIT = 3
MAX_LIMIT = 5
CHAT_MAX_TOKENS = 100


class RecipeRequest(BaseModel):
    country: str
    zone: str
    dietaryFocus: Optional[str] = None
    notes: Optional[str] = None
    limit: int = DEFAULT_LIMIT


def normalize_recipe_request(body: Any) -> RecipeRequest:
    raw = as_mapping(body)
    country, zone = require_text(
        raw,
        "country",
        "zone",
        message="Both a country and a zone/region are required to suggest recipes.",
    )
    return RecipeRequest(
        country=country,
        zone=zone,
        dietaryFocus=optional_text(raw, "dietaryFocus"),
        notes=optional_text(raw, "notes"),
        limit=bounded_int(raw, "limit", DEFAULT_LIMIT, 1, MAX_LIMIT),
    )


def build_recipe_prompt(request: RecipeRequest) -> str:
    notes = f"Additional notes: {request.notes}\n" if request.notes else ""
    return (
        f"You are Roots' culinary curator. Suggest {request.limit} traditional or modern dishes "
        f"from {request.zone} in {request.country}.\n"
        f"Dietary focus: {request.dietaryFocus or 'any'}.\n"
        f"{notes}\n"
        "Return ONLY valid JSON with the structure:\n"
        "{\n"
        '  "intro": "one short paragraph",\n'
        '  "recipes": [\n'
        "    {\n"
        '      "name": "dish name",\n'
        '      "region": "zone/neighborhood",\n'
        '      "flavorProfile": "brief descriptors",\n'
        '      "description": "2 sentence summary",\n'
        '      "keyIngredients": ["ingredient 1","ingredient 2","ingredient 3"],\n'
        '      "difficulty": "Easy | Moderate | Advanced",\n'
        '      "mapLink": "https://www.google.com/maps/search/?api=1&query=encoded region + country",\n'
        '      "culturalNote": "short fun fact or serving tip"\n'
        "    }\n"
        "  ],\n"
        '  "closing": "invitation to explore or ask for another region"\n'
        "}\n\n"
        f"Requirements: include exactly {request.limit} recipes, each with at least three ingredients "
        "and a valid Google Maps link related to the zone or a signature market/restaurant."
    )


def request_recipes(request: RecipeRequest, guard: Optional[llm.InFlightGuard] = None) -> str:
    guard = guard or llm.guard_for("recipes", "Another recipe request is already in progress. Please wait a moment.")
    with guard:
        return llm.generate_text(
            [llm.user_turn(build_recipe_prompt(request))],
            temperature=0.65,
            top_k=40,
            top_p=0.9,
            busy_message="Gemini is busy crafting recipes. Please try again shortly.",
            empty_message="Gemini did not return any recipes.",
        )


FALLBACK_IDEAS = (
    {
        "name": "{zone} Market Mezze",
        "flavorProfile": "Bright herbs & citrus",
        "description": "Snack through the markets of {zone}, sampling herb-forward bites that showcase {country}'s produce.",
        "keyIngredients": ["Seasonal vegetables", "Citrus", "Fresh herbs"],
        "difficulty": "Easy",
        "culturalNote": "Pair with mint tea or a local spritz for an afternoon refresh.",
        "mapQuery": "{zone} market",
    },
    {
        "name": "{zone} Hearth Stew",
        "flavorProfile": "Slow-cooked comfort",
        "description": "A rustic stew that families across {zone} simmer for hours, layering spices and local grains.",
        "keyIngredients": ["Root vegetables", "Local grain", "Signature spice blend"],
        "difficulty": "Moderate",
        "culturalNote": "Traditionally served at gatherings with plenty of flatbread for dipping.",
        "mapQuery": "{zone} traditional restaurant",
    },
    {
        "name": "{zone} Coastal Grill",
        "flavorProfile": "Smoky seaside flavors",
        "description": "Seafood grilled over open coals the way fishers from {zone} have done for generations.",
        "keyIngredients": ["Daily catch", "Citrus marinade", "Charred chilies"],
        "difficulty": "Moderate",
        "culturalNote": "Look for pop-up grills near the harbor at dusk.",
        "mapQuery": "{zone} harbor",
    },
    {
        "name": "{zone} Sweet Street Treat",
        "flavorProfile": "Caramelized & nutty",
        "description": "A portable dessert from {zone}'s street vendors, layered with toasted nuts and syrup.",
        "keyIngredients": ["Phyllo or crepe batter", "Toasted nuts", "Local honey"],
        "difficulty": "Easy",
        "culturalNote": "Best enjoyed fresh while wandering the old town.",
        "mapQuery": "{zone} dessert stand",
    },
    {
        "name": "{zone} Sunrise Brew & Bite",
        "flavorProfile": "Spiced & aromatic",
        "description": "Kick off the day with a spiced beverage and pastry pairing beloved across {zone}.",
        "keyIngredients": ["Spice mix", "Milk or plant base", "Buttery pastry"],
        "difficulty": "Easy",
        "culturalNote": "Many cafés open before dawn to serve travelers catching early transport.",
        "mapQuery": "{zone} cafe",
    },
)


def build_fallback_recipe_payload(request: RecipeRequest) -> str:
    """Templated dishes used while Gemini is rate limited."""
    zone, country = request.zone, request.country
    limit = min(max(request.limit, 1), MAX_LIMIT)
    recipes = []
    for idea in FALLBACK_IDEAS[:limit]:
        query = f"{idea['mapQuery'].format(zone=zone)} {country}"
        recipes.append(
            {
                "name": idea["name"].format(zone=zone),
                "region": zone,
                "flavorProfile": idea["flavorProfile"],
                "description": idea["description"].format(zone=zone, country=country),
                "keyIngredients": list(idea["keyIngredients"]),
                "difficulty": idea["difficulty"],
                "culturalNote": idea["culturalNote"],
                "mapLink": f"https://www.google.com/maps/search/?api=1&query={quote(query, safe='')}",
            }
        )
    return json.dumps(
        {
            "intro": f"Gemini is taking a moment, so here are some curated {zone} bites from the Roots pantry.",
            "recipes": recipes,
            "closing": "Ask again once Gemini is ready for more custom ideas or choose another region.",
        },
        ensure_ascii=False,
    )


@router.post(f"{API_PREFIX}/recipes/suggest")
def suggest_recipes(payload: Any = Body(None)):
    request = normalize_recipe_request(payload)
    try:
        return {"reply": request_recipes(request)}
    except UpstreamBusyError as exc:
        logger.warning("Serving fallback recipes for %s, %s: %s", request.zone, request.country, exc.message)
        return {"reply": build_fallback_recipe_payload(request), "fallback": True}
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Recipe planner error: %s", exc, exc_info=True)
        raise RootsError("Unexpected error while contacting Gemini.")


@router.post(f"{API_PREFIX}/recipes/chat")
def recipe_chat(payload: Any = Body(None)):
    messages = normalize_messages(as_mapping(payload).get("messages"))
    if not messages:
        raise InvalidRequestError("At least one message is required.")
    contents = [
        llm.model_turn(message.content) if message.role == "assistant" else llm.user_turn(message.content)
        for message in messages
    ]
    try:
        with llm.guard_for("recipe-chat"):
            text = llm.generate_text(contents, temperature=0.7, top_p=1.0, top_k=None, max_output_tokens=CHAT_MAX_TOKENS)
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Recipe chat error: %s", exc, exc_info=True)
        raise RootsError("Error generating response")
    return {"response": text}

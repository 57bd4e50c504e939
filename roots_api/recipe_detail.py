import logging
from typing import Any, Optional

from fastapi import APIRouter, Body
from pydantic import BaseModel

from . import llm
from .config import API_PREFIX
from .errors import RootsError
from .normalize import as_mapping, optional_text, require_text
from .reply_parser import extract_json

logger = logging.getLogger(__name__)

router = APIRouter()

FORMAT_INSTRUCTION = (
    'Respond ONLY with valid JSON matching: {"name":"","servings":"","prepTime":"","cookTime":"",'
    '"ingredients":[""],"steps":[""],"tips":""}. Include at least six ingredients and six '
    "imperative steps tailored to the requested dish."
)


class RecipeDetailRequest(BaseModel):
    country: str
    zone: str
    recipeName: str
    region: Optional[str] = None
    description: Optional[str] = None
    dietaryFocus: Optional[str] = None
    notes: Optional[str] = None


def normalize_recipe_detail_request(body: Any) -> RecipeDetailRequest:
    raw = as_mapping(body)
    country, zone, recipe_name = require_text(
        raw,
        "country",
        "zone",
        "recipeName",
        message="Country, zone, and recipe name are required.",
    )
    return RecipeDetailRequest(
        country=country,
        zone=zone,
        recipeName=recipe_name,
        region=optional_text(raw, "region"),
        description=optional_text(raw, "description"),
        dietaryFocus=optional_text(raw, "dietaryFocus"),
        notes=optional_text(raw, "notes"),
    )


def build_detail_prompt(request: RecipeDetailRequest) -> str:
    lines = [f"the recipe for {request.recipeName}, as cooked in {request.region or request.zone}, {request.country}"]
    if request.description:
        lines.append(f"Dish summary: {request.description}")
    if request.dietaryFocus:
        lines.append(f"Dietary focus: {request.dietaryFocus}")
    if request.notes:
        lines.append(f"Additional notes: {request.notes}")
    return "\n".join(lines)


def request_recipe_detail(
    request: RecipeDetailRequest, guard: Optional[llm.InFlightGuard] = None
) -> dict[str, Any]:
    guard = guard or llm.guard_for(
        "recipe-detail", "Another recipe detail request is already running. Please wait a moment."
    )
    with guard:
        reply = llm.generate_text(
            [llm.user_turn(build_detail_prompt(request), FORMAT_INSTRUCTION)],
            temperature=0.55,
            top_k=40,
            top_p=0.9,
            busy_message="Gemini is busy writing the instructions. Please try again shortly.",
            empty_message="Gemini did not return recipe instructions.",
        )
    return extract_json(reply, "object")


@router.post(f"{API_PREFIX}/recipes/detail")
def recipe_detail(payload: Any = Body(None)):
    request = normalize_recipe_detail_request(payload)
    try:
        return {"detail": request_recipe_detail(request)}
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Recipe detail error: %s", exc, exc_info=True)
        raise RootsError("Unexpected error while retrieving recipe instructions.")

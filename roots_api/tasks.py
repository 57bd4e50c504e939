import base64
import binascii
import logging
import re
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from . import llm, storage
from .config import API_PREFIX
from .errors import InvalidRequestError, NotFoundError, RootsError
from .normalize import as_mapping, text_field
from .points import award_points
from .reply_parser import extract_json
from .session import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()

TASK_POINTS = {"recipe": 10, "location": 15}
DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,")
DEFAULT_MIME_TYPE = "image/jpeg"


class TaskRequest(BaseModel):
    type: Literal["recipe", "location"]
    title: str
    location: str = ""
    country: str = ""
    beforeImage: str = ""
    afterImage: str


def normalize_task_request(body: Any) -> TaskRequest:
    raw = as_mapping(body)
    task_type = text_field(raw, "type").lower()
    title = text_field(raw, "title")
    if not task_type or not title:
        raise InvalidRequestError("Type and title are required.")
    if task_type not in TASK_POINTS:
        raise InvalidRequestError("Type must be either recipe or location.")
    before_image = text_field(raw, "beforeImage")
    after_image = text_field(raw, "afterImage")
    if task_type == "recipe" and (not before_image or not after_image):
        raise InvalidRequestError("Both before and after images are required for recipe verification.")
    if task_type == "location" and not after_image:
        raise InvalidRequestError("Location photo is required.")
    return TaskRequest(
        type=task_type,
        title=title,
        location=text_field(raw, "location"),
        country=text_field(raw, "country"),
        beforeImage=before_image,
        afterImage=after_image,
    )


def decode_image(data_url: str) -> tuple[bytes, str]:
    """Split a base64 data URL (or bare base64) into bytes and MIME type."""
    match = DATA_URL_RE.match(data_url)
    mime_type = match.group(1) if match else DEFAULT_MIME_TYPE
    encoded = data_url[match.end():] if match else data_url.split(",")[-1]
    try:
        return base64.b64decode(encoded, validate=True), mime_type
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError("Images must be base64 encoded.") from exc


def build_verification_prompt(request: TaskRequest) -> str:
    if request.type == "recipe":
        return (
            f'Analyze these two images to verify if someone cooked the recipe "{request.title}".\n\n'
            "Image 1 is the BEFORE photo (ingredients or cooking process).\n"
            "Image 2 is the AFTER photo (finished dish).\n\n"
            "Respond with ONLY a JSON object:\n"
            '{"verified": true or false, "confidence": 0-100 (percentage), '
            '"reasoning": "Brief explanation of why verified or not", '
            '"dishIdentified": "What dish you see in the after photo"}\n\n'
            "Verify true if:\n"
            "- After photo shows a completed dish\n"
            f'- The dish appears to match "{request.title}" or similar cooking\n'
            "- Photos show progression from preparation to finished meal\n\n"
            "Return ONLY the JSON, no other text."
        )
    place = request.location or request.title
    return (
        f'Analyze this image to verify the location "{place}".\n\n'
        f"Expected location: {place}, {request.country}\n\n"
        "Respond with ONLY a JSON object:\n"
        '{"verified": true or false, "confidence": 0-100 (percentage), '
        '"reasoning": "Brief explanation", '
        '"locationIdentified": "What location/landmark you see"}\n\n'
        "Verify true if:\n"
        "- Image shows recognizable landmarks or features from the specified location\n"
        "- Scene matches the described location\n\n"
        "Return ONLY the JSON, no other text."
    )


def verify_task_photos(request: TaskRequest, guard: Optional[llm.InFlightGuard] = None) -> dict[str, Any]:
    images = [request.beforeImage, request.afterImage] if request.type == "recipe" else [request.afterImage]
    parts = [llm.image_part(*decode_image(image)) for image in images]
    contents = [llm.user_turn(build_verification_prompt(request), *parts)]
    logger.info("Verifying %s task with %d image(s)", request.type, len(parts))
    guard = guard or llm.guard_for("task-verification")
    with guard:
        reply = llm.generate_text(
            contents,
            temperature=0.4,
            top_k=32,
            top_p=1.0,
            max_output_tokens=1024,
            busy_message="Gemini is busy verifying photos. Please try again shortly.",
            empty_message="No response from Gemini API",
        )
    verification = extract_json(reply, "object")
    verification["verified"] = verification.get("verified") is True
    return verification


@router.get(f"{API_PREFIX}/tasks")
def list_tasks(user_id: str = Depends(current_user_id)):
    try:
        tasks = storage.find_many(storage.TASKS, {"userId": user_id}, order_by="createdAt", descending=True)
    except Exception as exc:
        logger.error("Tasks GET error: %s", exc, exc_info=True)
        raise RootsError("Unable to load tasks.")
    return {"tasks": tasks}


@router.post(f"{API_PREFIX}/tasks")
def submit_task(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    request = normalize_task_request(payload)
    try:
        verification = verify_task_photos(request)
        points_earned = TASK_POINTS[request.type] if verification["verified"] else 0
        task = dict(
            request.model_dump(),
            userId=user_id,
            verification=verification,
            pointsEarned=points_earned,
            createdAt=storage.utcnow_iso(),
        )
        task_id = storage.insert_document(storage.TASKS, task)
        if points_earned > 0:
            award_points(user_id, points_earned)
            logger.info("Awarded %d points to %s for task %s", points_earned, user_id, task_id)
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Tasks POST error: %s", exc, exc_info=True)
        raise RootsError("Unable to verify task. Please try again.")
    return {"success": True, "taskId": task_id, "verification": verification, "pointsEarned": points_earned}


@router.delete(f"{API_PREFIX}/tasks")
def delete_task(task_id: Optional[str] = Query(None, alias="id"), user_id: str = Depends(current_user_id)):
    if not task_id or not task_id.strip():
        raise InvalidRequestError("Invalid task ID.")
    task = storage.get_document(storage.TASKS, task_id.strip())
    if not task or task.get("userId") != user_id:
        raise NotFoundError("Task not found.")
    storage.delete_document(storage.TASKS, task["id"])
    return {"success": True}

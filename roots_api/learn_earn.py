import logging
from typing import Any, Optional

from fastapi import APIRouter, Body
from pydantic import BaseModel

from . import llm
from .config import API_PREFIX
from .errors import InvalidRequestError, NoContentError, RootsError
from .normalize import as_mapping, text_field
from .quiz import QuizQuestion, parse_question
from .reply_parser import extract_json

logger = logging.getLogger(__name__)

router = APIRouter()

QUIZ_LENGTH = 10
MIN_READING_PARAGRAPHS = 3


class LearnModule(BaseModel):
    country: str
    summary: str
    reading: list[str]
    quiz: list[QuizQuestion]


def normalize_learn_request(body: Any) -> str:
    country = text_field(as_mapping(body), "country")
    if not country:
        raise InvalidRequestError("Please provide a country name.")
    return country


def build_learn_prompt(country: str) -> str:
    return (
        f'Create a concise "Learn & Earn" cultural module for travelers who want to understand {country}. '
        "Return ONLY valid JSON with this shape:\n"
        "{\n"
        f'  "country": "{country}",\n'
        '  "summary": "One sentence describing the tradition or theme",\n'
        '  "reading": ["Paragraph 1", "Paragraph 2", "Paragraph 3", "Paragraph 4"],\n'
        '  "quiz": [{"id": "quiz-1", "question": "Question text", "options": ["A", "B", "C", "D"], '
        '"answer": 0, "explanation": "Why the answer is correct"}]\n'
        "}\n"
        "Requirements:\n"
        f"- reading should highlight cultural rituals, etiquette, or creative scenes tied to {country}. "
        "3-5 short paragraphs, each under 80 words.\n"
        f"- quiz must contain exactly {QUIZ_LENGTH} questions.\n"
        '- each question needs 4 distinct options and "answer" is the zero-based index of the correct option.\n'
        "- explanations should be one sentence reinforcing the paragraph details.\n"
        "- Keep tone factual and travel-focused.\n"
        "Return ONLY the JSON (no markdown, no commentary)."
    )


def validate_module(payload: Any, country: str) -> LearnModule:
    if not isinstance(payload, dict):
        raise NoContentError("Gemini did not return a learning module.")

    quiz = payload.get("quiz")
    if not isinstance(quiz, list) or len(quiz) != QUIZ_LENGTH:
        raise NoContentError(f"Gemini did not return {QUIZ_LENGTH} quiz questions")
    questions = []
    for index, item in enumerate(quiz):
        question = parse_question(item, index)
        if question is None:
            raise NoContentError(f"Invalid quiz question returned at index {index}")
        questions.append(question)

    reading = payload.get("reading")
    paragraphs = [p.strip() for p in reading if isinstance(p, str) and p.strip()] if isinstance(reading, list) else []
    if len(paragraphs) < MIN_READING_PARAGRAPHS:
        raise NoContentError("Gemini did not return enough reading paragraphs")

    name = payload.get("country")
    summary = payload.get("summary")
    return LearnModule(
        country=name.strip() if isinstance(name, str) and name.strip() else country,
        summary=summary.strip() if isinstance(summary, str) and summary.strip() else f"Cultural insights from {country}",
        reading=paragraphs,
        quiz=questions,
    )


def request_learn_module(country: str, guard: Optional[llm.InFlightGuard] = None) -> LearnModule:
    guard = guard or llm.guard_for("learn-earn")
    with guard:
        reply = llm.generate_text(
            [llm.user_turn(build_learn_prompt(country))],
            temperature=0.7,
            top_k=40,
            top_p=0.95,
            max_output_tokens=2048,
            empty_message="Gemini returned an empty response",
        )
    return validate_module(extract_json(reply, "object"), country)


@router.post(f"{API_PREFIX}/games/learn-earn")
def learn_earn(payload: Any = Body(None)):
    country = normalize_learn_request(payload)
    try:
        module = request_learn_module(country)
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Learn & Earn generator error: %s", exc, exc_info=True)
        raise RootsError("Unable to generate the module.")
    return {"module": module.model_dump(exclude_none=True)}

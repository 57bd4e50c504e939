import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body
from pydantic import BaseModel

from . import llm
from .config import API_PREFIX
from .errors import (
    InvalidRequestError,
    NoContentError,
    ReplyParseError,
    RootsError,
    UpstreamBusyError,
    UpstreamError,
)
from .normalize import as_mapping, bounded_int, optional_text, text_field
from .reply_parser import extract_json

logger = logging.getLogger(__name__)

router = APIRouter()

QuizType = Literal["cultural", "geography", "tradition", "language", "history", "speed"]
Difficulty = Literal["easy", "medium", "hard"]

QUIZ_TYPES = ("cultural", "geography", "tradition", "language", "history", "speed")
DIFFICULTIES = ("easy", "medium", "hard")
DEFAULT_QUESTION_COUNT = 5
MAX_QUESTION_COUNT = 10

TYPE_BRIEFS = {
    "cultural": "customs, etiquette, festivals and everyday cultural life around the world",
    "geography": "capitals, landmarks, rivers, mountains and where places sit on the map",
    "tradition": "traditional crafts, ceremonies, clothing and food rituals",
    "language": "greetings, common phrases and which languages are spoken where",
    "history": "historic sites, civilizations and turning points that shaped travel destinations",
    "speed": "quick-fire general travel trivia that can be answered in a few seconds",
}

# Recoverable provider failures answered from the static bank.
FALLBACK_ERRORS = (UpstreamBusyError, UpstreamError, NoContentError, ReplyParseError)


class QuizRequest(BaseModel):
    type: QuizType = "cultural"
    difficulty: Difficulty = "medium"
    questionCount: int = DEFAULT_QUESTION_COUNT
    region: Optional[str] = None


class QuizQuestion(BaseModel):
    id: str
    question: str
    options: list[str]
    answer: int
    explanation: Optional[str] = None


def _choice(raw: dict[str, Any], key: str, allowed: tuple[str, ...], default: str) -> str:
    value = text_field(raw, key).lower()
    if not value:
        return default
    if value not in allowed:
        raise InvalidRequestError(f"{key} must be one of: {', '.join(allowed)}.")
    return value


def normalize_quiz_request(body: Any) -> QuizRequest:
    raw = as_mapping(body)
    return QuizRequest(
        type=_choice(raw, "type", QUIZ_TYPES, "cultural"),
        difficulty=_choice(raw, "difficulty", DIFFICULTIES, "medium"),
        questionCount=bounded_int(raw, "questionCount", DEFAULT_QUESTION_COUNT, 1, MAX_QUESTION_COUNT),
        region=optional_text(raw, "region"),
    )


def build_quiz_prompt(request: QuizRequest) -> str:
    focus = f" Focus on {request.region}." if request.region else ""
    return (
        f"Write {request.questionCount} {request.difficulty} multiple-choice questions for Roots' "
        f"{request.type} quiz about {TYPE_BRIEFS[request.type]}.{focus}\n"
        "Return ONLY valid JSON with this shape:\n"
        '{"questions": [{"id": "q-1", "question": "Question text", '
        '"options": ["A", "B", "C", "D"], "answer": 0, '
        '"explanation": "One sentence on why the answer is correct"}]}\n'
        "Requirements:\n"
        f"- exactly {request.questionCount} questions.\n"
        '- each question has 4 distinct options and "answer" is the zero-based index of the correct option.\n'
        "- keep questions factual and travel-focused.\n"
        "Return ONLY the JSON (no markdown, no commentary)."
    )


def parse_question(item: Any, index: int) -> Optional[QuizQuestion]:
    if not isinstance(item, dict):
        return None
    question = item.get("question")
    options = item.get("options")
    answer = item.get("answer")
    if not isinstance(question, str) or not question.strip():
        return None
    if not isinstance(options, list) or len(options) != 4 or not all(isinstance(o, str) for o in options):
        return None
    if isinstance(answer, bool) or not isinstance(answer, int) or not 0 <= answer <= 3:
        return None
    explanation = item.get("explanation")
    return QuizQuestion(
        id=str(item.get("id") or f"q-{index + 1}"),
        question=question.strip(),
        options=[option.strip() for option in options],
        answer=answer,
        explanation=explanation.strip() if isinstance(explanation, str) else None,
    )


def request_quiz(request: QuizRequest, guard: Optional[llm.InFlightGuard] = None) -> list[QuizQuestion]:
    guard = guard or llm.guard_for("quiz")
    with guard:
        reply = llm.generate_text(
            [llm.user_turn(build_quiz_prompt(request))],
            temperature=0.7,
            top_k=40,
            top_p=0.95,
            busy_message="Gemini is busy writing quiz questions. Please try again shortly.",
            empty_message="Gemini did not return any quiz questions.",
        )
    payload = extract_json(reply)
    items = payload.get("questions") if isinstance(payload, dict) else payload
    questions = [
        question
        for index, item in enumerate(items if isinstance(items, list) else [])
        if (question := parse_question(item, index)) is not None
    ]
    if not questions:
        raise ReplyParseError("Gemini did not return any valid quiz questions.")
    return questions[: request.questionCount]


QUESTION_BANK: dict[str, list[dict[str, Any]]] = {
    "cultural": [
        {
            "question": "In Japan, what is customary before entering a traditional home?",
            "options": ["Bowing twice", "Removing your shoes", "Ringing a bell", "Washing your hands"],
            "answer": 1,
            "explanation": "Shoes are left at the genkan entrance to keep living spaces clean.",
        },
        {
            "question": "Which festival of lights is celebrated across India each autumn?",
            "options": ["Holi", "Onam", "Diwali", "Pongal"],
            "answer": 2,
            "explanation": "Diwali celebrates the victory of light over darkness with lamps and fireworks.",
        },
        {
            "question": "What does a thumbs-up gesture commonly signal in Brazil?",
            "options": ["Approval", "An insult", "A request for the bill", "Goodbye"],
            "answer": 0,
            "explanation": "Brazilians use the thumbs-up constantly to say everything is fine.",
        },
        {
            "question": "In Spain, at what time is dinner traditionally served?",
            "options": ["17:00", "18:30", "19:00", "21:30"],
            "answer": 3,
            "explanation": "Spanish dinners usually start late in the evening, often after 21:00.",
        },
    ],
    "geography": [
        {
            "question": "What is the capital of Australia?",
            "options": ["Sydney", "Melbourne", "Canberra", "Perth"],
            "answer": 2,
            "explanation": "Canberra was purpose-built as the capital as a compromise between Sydney and Melbourne.",
        },
        {
            "question": "Which river flows through Budapest?",
            "options": ["Danube", "Rhine", "Vltava", "Elbe"],
            "answer": 0,
            "explanation": "The Danube separates Buda from Pest.",
        },
        {
            "question": "Mount Kilimanjaro is located in which country?",
            "options": ["Kenya", "Tanzania", "Uganda", "Ethiopia"],
            "answer": 1,
            "explanation": "Kilimanjaro rises in northern Tanzania near the Kenyan border.",
        },
        {
            "question": "Which country has the most islands?",
            "options": ["Indonesia", "Philippines", "Sweden", "Canada"],
            "answer": 2,
            "explanation": "Sweden counts more than 260,000 islands along its coasts and lakes.",
        },
    ],
    "tradition": [
        {
            "question": "Which country is home to the tea ceremony known as chanoyu?",
            "options": ["China", "Korea", "Japan", "Vietnam"],
            "answer": 2,
            "explanation": "Chanoyu is the Japanese ritual preparation of matcha.",
        },
        {
            "question": "The haka is a ceremonial dance of which people?",
            "options": ["Maori", "Inuit", "Sami", "Zulu"],
            "answer": 0,
            "explanation": "The haka is a Maori challenge dance from New Zealand.",
        },
        {
            "question": "Dia de los Muertos is most closely associated with which country?",
            "options": ["Peru", "Mexico", "Chile", "Cuba"],
            "answer": 1,
            "explanation": "Mexican families honor their departed with altars called ofrendas.",
        },
        {
            "question": "Which traditional garment is worn in Scotland?",
            "options": ["Hanbok", "Dirndl", "Kilt", "Sari"],
            "answer": 2,
            "explanation": "The tartan kilt is a symbol of Scottish Highland dress.",
        },
    ],
    "language": [
        {
            "question": "How do you say 'thank you' in Italian?",
            "options": ["Merci", "Grazie", "Danke", "Obrigado"],
            "answer": 1,
            "explanation": "Grazie is the Italian word for thank you.",
        },
        {
            "question": "Which language is most widely spoken in Brazil?",
            "options": ["Spanish", "Portuguese", "French", "English"],
            "answer": 1,
            "explanation": "Brazil is the largest Portuguese-speaking country in the world.",
        },
        {
            "question": "'Jambo' is a greeting in which language?",
            "options": ["Swahili", "Amharic", "Zulu", "Hausa"],
            "answer": 0,
            "explanation": "Jambo is a common Swahili hello in East Africa.",
        },
        {
            "question": "How many official languages does Switzerland have?",
            "options": ["One", "Two", "Three", "Four"],
            "answer": 3,
            "explanation": "German, French, Italian and Romansh are all official in Switzerland.",
        },
    ],
    "history": [
        {
            "question": "Machu Picchu was built by which civilization?",
            "options": ["Aztec", "Maya", "Inca", "Olmec"],
            "answer": 2,
            "explanation": "The Inca built Machu Picchu in the 15th century.",
        },
        {
            "question": "In which city was the Colosseum built?",
            "options": ["Athens", "Rome", "Istanbul", "Alexandria"],
            "answer": 1,
            "explanation": "The Flavian Amphitheatre opened in Rome in 80 AD.",
        },
        {
            "question": "The ancient city of Petra lies in which modern country?",
            "options": ["Jordan", "Egypt", "Syria", "Lebanon"],
            "answer": 0,
            "explanation": "Petra was carved by the Nabataeans in southern Jordan.",
        },
        {
            "question": "The Berlin Wall fell in which year?",
            "options": ["1961", "1975", "1989", "1991"],
            "answer": 2,
            "explanation": "The wall opened on 9 November 1989.",
        },
    ],
    "speed": [
        {
            "question": "Which city is nicknamed the Big Apple?",
            "options": ["Chicago", "New York", "Boston", "Los Angeles"],
            "answer": 1,
            "explanation": "New York City has been called the Big Apple since the 1920s.",
        },
        {
            "question": "Paella comes from which country?",
            "options": ["Portugal", "Italy", "Spain", "Greece"],
            "answer": 2,
            "explanation": "Paella originated in Valencia, Spain.",
        },
        {
            "question": "What currency is used in Japan?",
            "options": ["Won", "Yuan", "Yen", "Baht"],
            "answer": 2,
            "explanation": "Japan uses the yen.",
        },
        {
            "question": "Which ocean lies between Africa and Australia?",
            "options": ["Atlantic", "Indian", "Pacific", "Arctic"],
            "answer": 1,
            "explanation": "The Indian Ocean separates the two continents.",
        },
    ],
}


def fallback_questions(request: QuizRequest) -> list[QuizQuestion]:
    bank = QUESTION_BANK[request.type]
    return [
        QuizQuestion(id=f"{request.type}-{index + 1}", **item)
        for index, item in enumerate(bank[: request.questionCount])
    ]


@router.post(f"{API_PREFIX}/games/quiz")
def generate_quiz(payload: Any = Body(None)):
    request = normalize_quiz_request(payload)
    fallback = False
    try:
        questions = request_quiz(request)
    except FALLBACK_ERRORS as exc:
        logger.warning("Serving %s quiz from the question bank: %s", request.type, exc.message)
        questions = fallback_questions(request)
        fallback = True
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Quiz generation failed: %s", exc, exc_info=True)
        raise RootsError("Unable to generate the quiz.")
    return {"questions": [q.model_dump(exclude_none=True) for q in questions], "fallback": fallback}

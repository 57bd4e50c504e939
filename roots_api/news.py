import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends

from . import llm, storage
from .config import API_PREFIX
from .errors import RootsError
from .reply_parser import extract_json
from .session import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()

CACHE_DURATION = timedelta(hours=24)
DEFAULT_LOCATION = "World"
DEFAULT_HOME_COUNTRY = "United States"


def build_news_prompt(location: str, home_country: str, today: str) -> str:
    return (
        f'You are a travel news curator for "{location}". Generate today\'s cultural and entertainment '
        f'news, plus important legal differences for travelers from "{home_country}".\n\n'
        "Return a JSON object with this structure:\n"
        "{\n"
        f'  "location": "{location}",\n'
        f'  "date": "{today}",\n'
        '  "culturalNews": [{"title": "News headline", "summary": "Brief summary", '
        '"category": "culture|entertainment|festival|art", "date": "Today\'s date", '
        '"source": "Simulated news source"}],\n'
        '  "importantLaws": [{"title": "Law title", "description": "What travelers need to know", '
        f'"severity": "critical|important|good-to-know", "comparison": "How this differs from {home_country}"}}],\n'
        '  "culturalTips": ["Quick cultural tip or etiquette note"]\n'
        "}\n\n"
        "Include 4-6 cultural/entertainment news items and 3-5 important laws. Focus on:\n"
        "- Current cultural events, festivals, exhibitions\n"
        "- Entertainment and arts scene\n"
        "- Laws about behavior, customs, prohibited items, driving, etc.\n"
        f"- Only laws that significantly differ from {home_country}"
    )


def request_travel_news(
    location: str, home_country: str, guard: Optional[llm.InFlightGuard] = None
) -> dict[str, Any]:
    guard = guard or llm.guard_for("news")
    with guard:
        reply = llm.generate_text(
            [llm.user_turn(build_news_prompt(location, home_country, storage.utcnow_iso()))],
            temperature=0.7,
            top_k=40,
            top_p=0.95,
            max_output_tokens=2048,
            busy_message="Gemini is busy gathering news. Please try again shortly.",
        )
    return extract_json(reply, "object")


def find_cached_news(location: str, home_country: str, now: datetime) -> Optional[dict[str, Any]]:
    threshold = (now - CACHE_DURATION).isoformat()
    entries = storage.find_many(
        storage.CACHED_NEWS,
        {"location": location, "homeCountry": home_country},
        order_by="createdAt",
        descending=True,
    )
    for entry in entries:
        if (entry.get("createdAt") or "") >= threshold:
            return entry
    return None


@router.get(f"{API_PREFIX}/news")
def travel_news(user_id: str = Depends(current_user_id)):
    try:
        profile = storage.get_document(storage.PROFILES, user_id) or {}
        location = (profile.get("location") or "").strip() or DEFAULT_LOCATION
        home_country = (profile.get("homeCountry") or "").strip() or DEFAULT_HOME_COUNTRY

        cached = find_cached_news(location, home_country, datetime.now(timezone.utc))
        if cached:
            logger.info("Serving cached news for %s / %s", location, home_country)
            return {"news": cached.get("data"), "cached": True, "location": location, "homeCountry": home_country}

        news = request_travel_news(location, home_country)
        storage.insert_document(
            storage.CACHED_NEWS,
            {"location": location, "homeCountry": home_country, "data": news, "createdAt": storage.utcnow_iso()},
        )
    except RootsError:
        raise
    except Exception as exc:
        logger.error("News API error: %s", exc, exc_info=True)
        raise RootsError("Unable to fetch news.")
    return {"news": news, "cached": False, "location": location, "homeCountry": home_country}

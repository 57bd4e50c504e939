import os

from dotenv import load_dotenv

load_dotenv()

API_PREFIX = "/api"

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "").strip() or "gemini-2.5-flash"
GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID", "").strip()
GCP_LOCATION = os.getenv("GCP_LOCATION", "global")

FIRESTORE_PROJECT = os.getenv("FIRESTORE_PROJECT") or GCP_PROJECT_ID or None
FIRESTORE_DATABASE = os.getenv("FIRESTORE_DATABASE", "(default)")

TTS_LANGUAGE_CODE = os.getenv("TTS_LANGUAGE_CODE", "en-US")
TTS_VOICE_NAME = os.getenv("TTS_VOICE_NAME", "en-US-Neural2-F")

MAPBOX_ACCESS_TOKEN = os.getenv("MAPBOX_ACCESS_TOKEN", "").strip()
OVERPASS_URL = os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
RESTCOUNTRIES_URL = os.getenv("RESTCOUNTRIES_URL", "https://restcountries.com/v3.1")

AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "roots_user")
AUTH_COOKIE_MAX_AGE = int(os.getenv("AUTH_COOKIE_MAX_AGE", str(60 * 60 * 24 * 30)))  # 30 days
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"

CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

UA = "roots-api/1.0 (+https://roots.travel)"
HTTP_TIMEOUT = 20.0

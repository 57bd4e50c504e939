import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import (
    attraction_planner,
    auth,
    chat,
    city_attractions,
    coupons,
    directions,
    favorites,
    learn_earn,
    logs,
    nearby,
    news,
    points,
    profile,
    quiz,
    recipe_detail,
    recipe_planner,
    speech,
    tasks,
)
from .config import API_PREFIX, CORS_ALLOW_ORIGINS
from .errors import RootsError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Roots API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RootsError)
async def handle_roots_error(request: Request, exc: RootsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse({"error": "Internal server error."}, status_code=500)


app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(points.router)
app.include_router(favorites.router)
app.include_router(attraction_planner.router)
app.include_router(city_attractions.router)
app.include_router(nearby.router)
app.include_router(directions.router)
app.include_router(recipe_planner.router)
app.include_router(recipe_detail.router)
app.include_router(speech.router)
app.include_router(quiz.router)
app.include_router(learn_earn.router)
app.include_router(news.router)
app.include_router(chat.router)
app.include_router(logs.router)
app.include_router(coupons.router)
app.include_router(tasks.router)


@app.get(f"{API_PREFIX}/health")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}

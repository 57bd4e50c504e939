import json
from types import SimpleNamespace

import pytest

from roots_api import llm, speech
from roots_api.errors import UpstreamBusyError, UpstreamError
from roots_api.recipe_planner import RecipeRequest, build_fallback_recipe_payload

SUGGEST_BODY = {"country": "Morocco", "zone": "Fez", "limit": 2}


def test_suggest_returns_raw_reply(client, gemini):
    gemini.queue('{"intro": "Hi", "recipes": []}')
    response = client.post("/api/recipes/suggest", json=SUGGEST_BODY)
    assert response.status_code == 200
    assert response.json() == {"reply": '{"intro": "Hi", "recipes": []}'}
    prompt = gemini.calls[0]["contents"][0].parts[0].text
    assert "Suggest 2 traditional or modern dishes from Fez in Morocco" in prompt


def test_suggest_validates_before_calling_gemini(client, gemini):
    response = client.post("/api/recipes/suggest", json={"country": "Morocco"})
    assert response.status_code == 400
    assert gemini.calls == []


@pytest.mark.parametrize("status", [429, 503])
def test_suggest_falls_back_when_gemini_is_busy(client, gemini, status):
    gemini.queue(UpstreamBusyError("busy", status))
    response = client.post("/api/recipes/suggest", json=SUGGEST_BODY)
    assert response.status_code == 200
    body = response.json()
    assert body["fallback"] is True
    payload = json.loads(body["reply"])
    assert [r["name"] for r in payload["recipes"]] == ["Fez Market Mezze", "Fez Hearth Stew"]


def test_suggest_does_not_fall_back_on_other_errors(client, gemini):
    gemini.queue(UpstreamError("Gemini request failed (400): bad", upstream_status=400))
    response = client.post("/api/recipes/suggest", json=SUGGEST_BODY)
    assert response.status_code == 500
    assert "fallback" not in response.json()


def test_suggest_in_flight_is_not_replaced_by_fallback(client, gemini):
    with llm.guard_for("recipes"):
        response = client.post("/api/recipes/suggest", json=SUGGEST_BODY)
    assert response.status_code == 429
    assert response.json() == {"error": "Another recipe request is already in progress. Please wait a moment."}
    assert gemini.calls == []


def test_fallback_payload_shape():
    payload = json.loads(build_fallback_recipe_payload(RecipeRequest(country="Côte d'Ivoire", zone="Abidjan", limit=5)))
    assert len(payload["recipes"]) == 5
    assert payload["intro"].startswith("Gemini is taking a moment")
    assert payload["closing"]
    link = payload["recipes"][0]["mapLink"]
    assert link.startswith("https://www.google.com/maps/search/?api=1&query=")
    assert " " not in link
    assert all(r["region"] == "Abidjan" for r in payload["recipes"])
    assert "Côte d'Ivoire" in payload["recipes"][0]["description"]


def test_detail_parses_fenced_json(client, gemini):
    gemini.queue('Here you go:\n```json\n{"name": "Pastilla", "steps": ["Fold",],}\n```')
    response = client.post(
        "/api/recipes/detail", json={"country": "Morocco", "zone": "Fez", "recipeName": "Pastilla"}
    )
    assert response.status_code == 200
    assert response.json() == {"detail": {"name": "Pastilla", "steps": ["Fold"]}}


def test_detail_unparseable_reply_is_502(client, gemini):
    gemini.queue("Sorry, no recipe today.")
    response = client.post(
        "/api/recipes/detail", json={"country": "Morocco", "zone": "Fez", "recipeName": "Pastilla"}
    )
    assert response.status_code == 502


def test_chat_maps_history(client, gemini):
    gemini.queue("Try harissa.")
    response = client.post(
        "/api/recipes/chat",
        json={"messages": [{"role": "user", "content": "Spicy?"}, {"role": "assistant", "content": "Yes"}, {"content": "More"}]},
    )
    assert response.json() == {"response": "Try harissa."}
    roles = [content.role for content in gemini.calls[0]["contents"]]
    assert roles == ["user", "model", "user"]
    assert client.post("/api/recipes/chat", json={"messages": []}).status_code == 400


class FakeTTS:
    def __init__(self, audio=b"ID3audio"):
        self.audio = audio
        self.requests = []

    def synthesize_speech(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(audio_content=self.audio)


def test_speak_returns_mp3(client, monkeypatch):
    tts = FakeTTS()
    monkeypatch.setattr(speech, "_tts", lambda: tts)
    response = client.post("/api/recipes/speak", json={"text": "Hello " * 1000})
    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.headers["cache-control"] == "no-store"
    assert response.content == b"ID3audio"
    assert len(tts.requests[0]["input"].text) == speech.MAX_SPEECH_CHARS


def test_speak_requires_text_and_audio(client, monkeypatch):
    monkeypatch.setattr(speech, "_tts", lambda: FakeTTS(audio=b""))
    assert client.post("/api/recipes/speak", json={"text": "  "}).status_code == 400
    assert client.post("/api/recipes/speak", json={"text": "Hi"}).status_code == 502

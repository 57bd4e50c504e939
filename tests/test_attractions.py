from types import SimpleNamespace

import httpx
import pytest

from roots_api import directions, llm, nearby
from roots_api.errors import NoContentError, UpstreamBusyError

PLAN_BODY = {
    "location": "Mexico City",
    "budget": "$$",
    "messages": [{"role": "user", "content": "Museums please"}, {"role": "assistant", "content": "Sure"}],
}


def test_plan_returns_reply_and_maps_history(client, gemini):
    gemini.queue('{"intro": "Hola"}')
    response = client.post("/api/attractions/plan", json=PLAN_BODY)
    assert response.status_code == 200
    assert response.json() == {"reply": '{"intro": "Hola"}'}
    contents = gemini.calls[0]["contents"]
    assert [c.role for c in contents] == ["user", "user", "model"]
    assert "Mexico City" in contents[0].parts[0].text
    assert gemini.calls[0]["temperature"] == 0.8


def test_plan_passes_busy_status_through(client, gemini):
    gemini.queue(UpstreamBusyError("Gemini is handling a high volume of requests.", 503))
    response = client.post("/api/attractions/plan", json=PLAN_BODY)
    assert response.status_code == 503


def test_plan_in_flight(client, gemini):
    with llm.guard_for("planner"):
        assert client.post("/api/attractions/plan", json=PLAN_BODY).status_code == 429


def test_plan_needs_messages(client, gemini):
    response = client.post("/api/attractions/plan", json={"location": "Rome", "budget": "$", "messages": []})
    assert response.status_code == 400
    assert gemini.calls == []


def test_city_attractions_drop_items_without_coordinates(client, gemini):
    gemini.queue(
        '{"attractions": ['
        '{"title": " Zocalo ", "latitude": 19.43, "longitude": -99.13},'
        '{"title": "Nowhere", "latitude": "north", "longitude": -99.1},'
        '{"latitude": 19.4, "longitude": -99.2}'
        "]}"
    )
    response = client.post("/api/attractions/city", json={"city": "Mexico City", "limit": 3})
    assert response.status_code == 200
    attractions = response.json()["attractions"]
    assert [a["title"] for a in attractions] == ["Zocalo", "Unnamed attraction"]
    assert attractions[0] == {"title": "Zocalo", "latitude": 19.43, "longitude": -99.13}


def test_city_attractions_none_usable_is_502(client, gemini):
    gemini.queue('{"attractions": [{"title": "x"}]}')
    response = client.post("/api/attractions/city", json={"city": "Mexico City"})
    assert response.status_code == 502
    assert response.json() == {"error": "Gemini did not return any attractions."}


def test_city_attractions_empty_reply(client, gemini):
    gemini.queue(NoContentError("Gemini reply was empty."))
    assert client.post("/api/attractions/city", json={"city": "Lima"}).status_code == 502


def test_haversine_known_distance():
    # Paris to London is roughly 344 km.
    assert nearby.haversine_m(48.8566, 2.3522, 51.5074, -0.1278) == pytest.approx(343_500, rel=0.01)


def test_nearby_sorted_by_distance(client, monkeypatch):
    elements = [
        {"id": 2, "lat": 41.91, "lon": 12.5, "tags": {"name": "Far Museum", "tourism": "museum", "wikipedia": "en:Far"}},
        {"id": 1, "lat": 41.9001, "lon": 12.5, "tags": {"name": "Near Ruins", "historic": "archaeological_site"}},
        {"id": 3, "lat": 41.9, "lon": 12.5, "tags": {"tourism": "artwork"}},
    ]
    monkeypatch.setattr(nearby, "fetch_overpass_elements", lambda lat, lon, radius: elements)
    monkeypatch.setattr(nearby, "wikipedia_thumbnail", lambda tag: "https://img/far.jpg")
    response = client.get("/api/attractions/nearby", params={"lat": "41.9", "lon": "12.5"})
    assert response.status_code == 200
    attractions = response.json()["attractions"]
    assert [a["title"] for a in attractions] == ["Near Ruins", "Far Museum"]
    assert attractions[0]["category"] == "Archaeological site"
    assert attractions[0]["image"] == nearby.CATEGORY_IMAGES["archaeological_site"]
    assert attractions[1]["image"] == "https://img/far.jpg"
    assert attractions[0]["distance"] < attractions[1]["distance"]


def test_nearby_falls_back_when_overpass_fails(client, monkeypatch):
    def _fail(lat, lon, radius):
        raise httpx.ConnectError("down")

    monkeypatch.setattr(nearby, "fetch_overpass_elements", _fail)
    response = client.get("/api/attractions/nearby", params={"lat": "10", "lon": "20"})
    attractions = response.json()["attractions"]
    assert len(attractions) == 6
    for item in attractions:
        assert abs(item["coordinates"]["lat"] - 10) < 0.1
        assert abs(item["coordinates"]["lon"] - 20) < 0.1


def test_nearby_requires_coordinates(client):
    assert client.get("/api/attractions/nearby", params={"lat": "10"}).status_code == 400
    assert client.get("/api/attractions/nearby", params={"lat": "abc", "lon": "1"}).status_code == 400
    assert client.get("/api/attractions/nearby", params={"lat": "1", "lon": "1", "radius": "far"}).status_code == 400


def test_directions(client, monkeypatch):
    captured = {}

    def _get(url, params=None, timeout=None):
        captured["url"] = url
        return SimpleNamespace(
            status_code=200,
            ok=True,
            json=lambda: {"routes": [{"distance": 1500, "duration": 900, "geometry": {"coordinates": [[2.0, 1.0], [2.5, 1.5]]}}]},
        )

    monkeypatch.setattr(directions, "MAPBOX_ACCESS_TOKEN", "token")
    monkeypatch.setattr(directions.requests, "get", _get)
    response = client.get("/api/directions", params={"start": "1,2", "end": "1.5,2.5"})
    assert response.status_code == 200
    assert response.json() == {
        "coordinates": [[1.0, 2.0], [1.5, 2.5]],
        "distanceKm": 1.5,
        "durationMinutes": 15.0,
        "bounds": [[1.0, 2.0], [1.5, 2.5]],
    }
    assert captured["url"].endswith("/walking/2.0,1.0;2.5,1.5")


def test_directions_validation(client, monkeypatch):
    monkeypatch.setattr(directions, "MAPBOX_ACCESS_TOKEN", "")
    assert client.get("/api/directions", params={"start": "1", "end": "1,2"}).status_code == 400
    assert client.get("/api/directions", params={"start": "1,2", "end": "1,2", "profile": "flying"}).status_code == 400
    assert client.get("/api/directions", params={"start": "1,2", "end": "1,2"}).status_code == 500

import pytest

from roots_api.attraction_planner import normalize_planner_request
from roots_api.city_attractions import normalize_city_attraction_request
from roots_api.errors import InvalidRequestError
from roots_api.learn_earn import normalize_learn_request
from roots_api.logs import normalize_travel_log
from roots_api.profile import normalize_saved_attraction
from roots_api.quiz import normalize_quiz_request
from roots_api.recipe_detail import normalize_recipe_detail_request
from roots_api.recipe_planner import normalize_recipe_request
from roots_api.speech import MAX_SPEECH_CHARS, normalize_speech_text
from roots_api.tasks import normalize_task_request


def test_planner_trims_and_filters_messages():
    request = normalize_planner_request(
        {
            "location": "  Lisbon ",
            "budget": " $$ ",
            "interests": "  ",
            "messages": [
                {"role": "assistant", "content": " Hello "},
                {"role": "system", "content": "ideas?"},
                {"role": "user", "content": "   "},
            ],
        }
    )
    assert request.location == "Lisbon"
    assert request.budget == "$$"
    assert request.interests is None
    assert [(m.role, m.content) for m in request.messages] == [("assistant", "Hello"), ("user", "ideas?")]


@pytest.mark.parametrize(
    "body",
    [
        None,
        [],
        {"location": "Lisbon", "budget": "$$", "messages": []},
        {"location": "Lisbon", "budget": "$$", "messages": [{"role": "user", "content": " "}]},
        {"location": " ", "budget": "$$", "messages": [{"content": "hi"}]},
    ],
)
def test_planner_rejects_incomplete_requests(body):
    with pytest.raises(InvalidRequestError) as info:
        normalize_planner_request(body)
    assert info.value.status_code == 400


@pytest.mark.parametrize("raw, expected", [(None, 3), (0, 1), (2.9, 2), (99, 5), ("4", 4)])
def test_recipe_limit_is_floored_and_clamped(raw, expected):
    body = {"country": "Italy", "zone": "Sicily"}
    if raw is not None:
        body["limit"] = raw
    assert normalize_recipe_request(body).limit == expected


@pytest.mark.parametrize("raw", ["many", float("inf"), True])
def test_recipe_limit_rejects_non_numbers(raw):
    with pytest.raises(InvalidRequestError):
        normalize_recipe_request({"country": "Italy", "zone": "Sicily", "limit": raw})


def test_recipe_requires_country_and_zone():
    with pytest.raises(InvalidRequestError):
        normalize_recipe_request({"country": "Italy"})


def test_recipe_detail_requires_name():
    with pytest.raises(InvalidRequestError):
        normalize_recipe_detail_request({"country": "Italy", "zone": "Sicily", "recipeName": " "})
    request = normalize_recipe_detail_request(
        {"country": "Italy", "zone": "Sicily", "recipeName": "Caponata", "notes": " vegan "}
    )
    assert request.notes == "vegan"
    assert request.region is None


@pytest.mark.parametrize("raw, expected", [(None, 8), (0, 1), (40, 12), (5, 5)])
def test_city_limit(raw, expected):
    body = {"city": "Kyoto"}
    if raw is not None:
        body["limit"] = raw
    assert normalize_city_attraction_request(body).limit == expected


def test_city_required():
    with pytest.raises(InvalidRequestError):
        normalize_city_attraction_request({"country": "Japan"})


def test_quiz_defaults_and_clamp():
    request = normalize_quiz_request({})
    assert (request.type, request.difficulty, request.questionCount) == ("cultural", "medium", 5)
    request = normalize_quiz_request({"type": "History", "difficulty": "hard", "questionCount": 50})
    assert (request.type, request.difficulty, request.questionCount) == ("history", "hard", 10)


def test_quiz_rejects_unknown_type():
    with pytest.raises(InvalidRequestError):
        normalize_quiz_request({"type": "sports"})


def test_learn_requires_country():
    with pytest.raises(InvalidRequestError):
        normalize_learn_request({"country": "  "})
    assert normalize_learn_request({"country": " Peru "}) == "Peru"


def test_speech_text_is_clipped():
    assert len(normalize_speech_text({"text": "a" * 5000})) == MAX_SPEECH_CHARS
    with pytest.raises(InvalidRequestError):
        normalize_speech_text({"text": ""})


def test_task_image_requirements():
    with pytest.raises(InvalidRequestError):
        normalize_task_request({"type": "recipe", "title": "Pho", "afterImage": "abc"})
    with pytest.raises(InvalidRequestError):
        normalize_task_request({"type": "location", "title": "Louvre"})
    with pytest.raises(InvalidRequestError):
        normalize_task_request({"type": "museum", "title": "Louvre", "afterImage": "abc"})
    request = normalize_task_request({"type": "Location", "title": "Louvre", "afterImage": "abc"})
    assert request.type == "location"


def test_travel_log_rating_is_clamped():
    assert normalize_travel_log({"type": "attraction", "title": "Alhambra", "rating": 9}).rating == 5
    assert normalize_travel_log({"type": "attraction", "title": "Alhambra", "rating": 0}).rating == 1
    assert normalize_travel_log({"type": "recipe", "title": "Paella"}).rating is None
    with pytest.raises(InvalidRequestError):
        normalize_travel_log({"type": "recipe"})


def test_saved_attraction_bounds_and_label():
    attraction = normalize_saved_attraction({"latitude": 41.9, "longitude": 12.5, "label": "x" * 200})
    assert len(attraction.label) == 120
    attraction = normalize_saved_attraction({"latitude": "41.9", "longitude": 12.5})
    assert attraction.label == "Pinned destination (41.900, 12.500)"
    for bad in ({"latitude": 91, "longitude": 0}, {"latitude": 0, "longitude": -181}, {"latitude": "north", "longitude": 0}):
        with pytest.raises(InvalidRequestError):
            normalize_saved_attraction(bad)


@pytest.mark.parametrize("raw, expected", [(2.5, 3), (3.5, 4), (1.49, 1), ("4.5", 5)])
def test_travel_log_rating_rounds_half_up(raw, expected):
    assert normalize_travel_log({"type": "recipe", "title": "Paella", "rating": raw}).rating == expected

from types import SimpleNamespace

import pytest
from google.genai import errors

from roots_api import llm
from roots_api.errors import (
    NoContentError,
    NotConfiguredError,
    RequestInFlightError,
    UpstreamBusyError,
    UpstreamError,
)


class FakeModels:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def fake_client(monkeypatch):
    def _install(outcome):
        client = SimpleNamespace(models=FakeModels(outcome))
        monkeypatch.setattr(llm, "_get_client", lambda: client)
        return client

    return _install


def _api_error(cls, code, message):
    return cls(code, {"error": {"code": code, "message": message, "status": "X"}})


def test_reply_text_is_joined_from_candidates(fake_client):
    part = SimpleNamespace(text="{\"a\": ")
    tail = SimpleNamespace(text="1}")
    response = SimpleNamespace(text=None, candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part, tail]))])
    client = fake_client(response)
    assert llm.generate_text("hello") == '{"a": 1}'
    assert len(client.models.calls) == 1


@pytest.mark.parametrize("cls, code", [(errors.ClientError, 429), (errors.ServerError, 503)])
def test_retryable_statuses_map_to_busy(fake_client, cls, code):
    fake_client(_api_error(cls, code, "slow down"))
    with pytest.raises(UpstreamBusyError) as info:
        llm.generate_text("hello", busy_message="Busy now.")
    assert info.value.status_code == code
    assert info.value.message == "Busy now."


def test_other_statuses_map_to_upstream_error(fake_client):
    fake_client(_api_error(errors.ClientError, 400, "bad prompt"))
    with pytest.raises(UpstreamError) as info:
        llm.generate_text("hello")
    assert info.value.status_code == 500
    assert info.value.upstream_status == 400
    assert "bad prompt" in info.value.message


def test_empty_reply_is_no_content(fake_client):
    fake_client(SimpleNamespace(text="", candidates=[]))
    with pytest.raises(NoContentError) as info:
        llm.generate_text("hello", empty_message="Nothing came back.")
    assert info.value.status_code == 502
    assert info.value.message == "Nothing came back."


def test_missing_credentials(monkeypatch):
    monkeypatch.setattr(llm, "_client", None)
    monkeypatch.setattr(llm, "GEMINI_API_KEY", "")
    monkeypatch.setattr(llm, "GCP_PROJECT_ID", "")
    with pytest.raises(NotConfiguredError) as info:
        llm.generate_text("hello")
    assert info.value.status_code == 500


def test_guard_rejects_second_caller_and_releases():
    guard = llm.InFlightGuard("demo")
    with guard:
        assert guard.busy
        with pytest.raises(RequestInFlightError) as info:
            with guard:
                pass
        assert info.value.status_code == 429
        assert "Please wait a moment" in info.value.message
    assert not guard.busy


def test_guard_released_after_error():
    guard = llm.InFlightGuard("demo")
    with pytest.raises(ValueError):
        with guard:
            raise ValueError("boom")
    with guard:
        assert guard.busy


def test_guard_for_returns_one_guard_per_feature():
    assert llm.guard_for("feature-x") is llm.guard_for("feature-x")
    assert llm.guard_for("feature-x") is not llm.guard_for("feature-y")


def test_upstream_failure_mapping():
    assert isinstance(llm.upstream_failure(503, "", "busy"), UpstreamBusyError)
    failure = llm.upstream_failure(404, "", "busy", model="m")
    assert isinstance(failure, UpstreamError)
    assert "m (404)" in failure.message

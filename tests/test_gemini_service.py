from types import SimpleNamespace

import pytest

from papergen.errors import ConfigurationError, GeneratorError
from papergen.services import gemini_service
from papergen.services.gemini_service import GeminiService


class ScriptedModel:
    """Plays back one outcome per generate_content call: an exception or the response text"""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def generate_content(self, prompt, generation_config=None, request_options=None):
        self.calls.append((prompt, generation_config, request_options))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


@pytest.fixture
def sleeps(monkeypatch):
    waits = []
    monkeypatch.setattr(gemini_service.time, "sleep", waits.append)
    return waits


@pytest.fixture
def client(monkeypatch, sleeps):
    def build(outcomes, **kwargs):
        model = ScriptedModel(outcomes)
        monkeypatch.setattr(gemini_service.genai, "configure", lambda **_: None)
        monkeypatch.setattr(gemini_service.genai, "GenerativeModel", lambda name: model)
        return GeminiService("test-key", **kwargs)

    return build


def test_missing_api_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        GeminiService(None)
    with pytest.raises(ConfigurationError):
        GeminiService("")


def test_returns_response_text_and_passes_options(client, sleeps):
    service = client(['{"title": "Physics"}'], timeout=30)
    assert service.generate("prompt", temperature=0.2) == '{"title": "Physics"}'
    assert service.model.calls == [("prompt", {"temperature": 0.2}, {"timeout": 30})]
    assert sleeps == []


def test_busy_errors_are_retried_with_growing_backoff(client, sleeps):
    service = client(
        [Exception("503 UNAVAILABLE"), Exception("429 RESOURCE_EXHAUSTED"), "ok"],
        max_retries=3, initial_delay=2.0,
    )
    assert service.generate("prompt") == "ok"
    assert len(service.model.calls) == 3
    assert len(sleeps) == 2
    assert 2.0 <= sleeps[0] <= 3.0
    assert 4.0 <= sleeps[1] <= 5.0


def test_gives_up_after_max_retries(client, sleeps):
    service = client([Exception("503 UNAVAILABLE")] * 2, max_retries=2)
    with pytest.raises(GeneratorError, match="503"):
        service.generate("prompt")
    assert len(service.model.calls) == 2
    assert len(sleeps) == 1


def test_other_errors_are_not_retried(client, sleeps):
    service = client([ValueError("malformed request"), "never reached"])
    with pytest.raises(GeneratorError, match="malformed request"):
        service.generate("prompt")
    assert len(service.model.calls) == 1
    assert sleeps == []


@pytest.mark.parametrize("message, expected", [
    ("400 API key not valid. Please pass a valid API key.", "GEMINI_API_KEY is invalid"),
    ("Quota exceeded for this project", "quota exceeded"),
])
def test_auth_and_quota_errors_get_readable_messages(client, message, expected):
    service = client([ValueError(message)])
    with pytest.raises(GeneratorError, match=expected):
        service.generate("prompt")


@pytest.mark.parametrize("text", ["", "   \n"])
def test_empty_response_is_an_error(client, sleeps, text):
    service = client([text, "not retried"])
    with pytest.raises(GeneratorError, match="empty response"):
        service.generate("prompt")
    assert len(service.model.calls) == 1

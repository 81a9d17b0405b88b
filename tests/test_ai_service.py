import pytest
import requests

import ai_service
from ai_service import (
    AIService,
    ConfigurationError,
    UnsupportedProviderError,
    parse_analysis,
    provider_error_hint,
)
from config import Settings


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error: Unauthorized for url")


class Recorder:
    def __init__(self, payload, status_code=200):
        self.response = FakeResponse(payload, status_code)
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        return self.response

    @property
    def last(self):
        return self.calls[-1]


OPENAI_REPLY = {
    "model": "gpt-3.5-turbo-0125",
    "choices": [{"message": {"role": "assistant", "content": "Hi there"}}],
    "usage": {"total_tokens": 42},
}


@pytest.fixture
def service(settings):
    return AIService(settings)


def patch_post(monkeypatch, payload, status_code=200):
    recorder = Recorder(payload, status_code)
    monkeypatch.setattr(requests, "post", recorder)
    return recorder


def test_openai_defaults_and_normalizes(monkeypatch, service):
    post = patch_post(monkeypatch, OPENAI_REPLY)
    result = service.send_message("openai", [{"role": "user", "content": "hello"}])

    assert post.last["url"] == "https://api.openai.com/v1/chat/completions"
    assert post.last["json"]["model"] == "gpt-3.5-turbo"
    assert post.last["headers"]["Authorization"] == "Bearer sk-test"
    assert result == {
        "content": "Hi there",
        "metadata": {"model": "gpt-3.5-turbo-0125", "tokens": 42, "provider": "openai"},
    }


def test_claude_lifts_system_prompt(monkeypatch, service):
    post = patch_post(monkeypatch, {
        "model": "claude-3-5-sonnet-20241022",
        "content": [{"type": "text", "text": "Bonjour"}],
        "usage": {"input_tokens": 10, "output_tokens": 5},
    })
    messages = [
        {"role": "system", "content": "Answer in French."},
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "salut"},
        {"role": "user", "content": "again"},
    ]
    result = service.send_message("claude", messages)

    body = post.last["json"]
    assert post.last["url"] == "https://api.anthropic.com/v1/messages"
    assert post.last["headers"]["x-api-key"] == "sk-ant-test"
    assert body["system"] == "Answer in French."
    assert body["model"] == "claude-3-5-sonnet-20241022"
    assert body["max_tokens"] == 4096
    assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
    assert result["content"] == "Bonjour"
    assert result["metadata"] == {
        "model": "claude-3-5-sonnet-20241022", "tokens": 15, "provider": "claude",
    }


def test_gemini_renames_roles_and_reports_zero_tokens(monkeypatch, service):
    post = patch_post(monkeypatch, {
        "candidates": [{"content": {"role": "model", "parts": [{"text": "Sure"}]}}],
        "usageMetadata": {"totalTokenCount": 99},
    })
    messages = [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "help"},
    ]
    result = service.send_message("gemini", messages)

    assert post.last["url"].endswith("/models/gemini-2.0-flash:generateContent")
    assert post.last["params"] == {"key": "g-test"}
    contents = post.last["json"]["contents"]
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[2]["parts"] == [{"text": "help"}]
    assert result["metadata"] == {"model": "gemini-2.0-flash", "tokens": 0, "provider": "gemini"}


def test_gemini_replaces_openai_model_names(monkeypatch, service):
    post = patch_post(monkeypatch, {
        "candidates": [{"content": {"parts": [{"text": "ok"}]}}],
    })
    result = service.send_message("gemini", [{"role": "user", "content": "hi"}], "gpt-4o")
    assert "gemini-2.0-flash:generateContent" in post.last["url"]
    assert result["metadata"]["model"] == "gemini-2.0-flash"


def test_gemini_keeps_its_own_model_names(monkeypatch, service):
    post = patch_post(monkeypatch, {
        "candidates": [{"content": {"parts": [{"text": "ok"}]}}],
    })
    service.send_message("gemini", [{"role": "user", "content": "hi"}], "gemini-1.5-pro")
    assert "gemini-1.5-pro:generateContent" in post.last["url"]


def test_lmstudio_needs_no_key(monkeypatch):
    service = AIService(Settings(lm_studio_url="http://localhost:1234/v1/"))
    post = patch_post(monkeypatch, {
        "choices": [{"message": {"content": "local answer"}}],
    })
    result = service.send_message("lmstudio", [{"role": "user", "content": "hi"}])

    assert post.last["url"] == "http://localhost:1234/v1/chat/completions"
    assert post.last["json"]["model"] == "local-model"
    assert result["metadata"] == {"model": "local-model", "tokens": 0, "provider": "lmstudio"}


def test_unknown_provider(service):
    with pytest.raises(UnsupportedProviderError, match="Unsupported AI provider: watson"):
        service.send_message("watson", [{"role": "user", "content": "hi"}])


@pytest.mark.parametrize("provider, message", [
    ("openai", "OpenAI API key not configured"),
    ("claude", "Anthropic API key not configured"),
    ("gemini", "Google API key not configured"),
])
def test_missing_credentials(provider, message):
    service = AIService(Settings())
    with pytest.raises(ConfigurationError, match=message):
        service.send_message(provider, [{"role": "user", "content": "hi"}])


def test_transport_errors_propagate(monkeypatch, service):
    patch_post(monkeypatch, {"error": "bad key"}, status_code=401)
    with pytest.raises(requests.HTTPError):
        service.send_message("openai", [{"role": "user", "content": "hi"}])


def test_summary_prompt(monkeypatch, service):
    post = patch_post(monkeypatch, OPENAI_REPLY)
    summary = service.generate_summary("openai", [
        {"role": "user", "content": "what is 2+2"},
        {"role": "assistant", "content": "4"},
    ])

    sent = post.last["json"]["messages"]
    assert summary == "Hi there"
    assert sent[0] == {"role": "system", "content": ai_service.SUMMARY_SYSTEM_PROMPT}
    assert sent[1]["content"].endswith("user: what is 2+2\n\nassistant: 4")


def test_analysis_extracts_json_from_chatter(monkeypatch, service):
    reply = dict(OPENAI_REPLY, choices=[{"message": {"content": (
        'Here you go:\n{"main_topics": ["math"], "sentiment": "neutral", '
        '"key_points": [], "suggested_tags": ["math"]}\nThanks!'
    )}}])
    patch_post(monkeypatch, reply)
    analysis = service.analyze_conversation("openai", [{"role": "user", "content": "2+2"}])
    assert analysis["suggested_tags"] == ["math"]
    assert analysis["sentiment"] == "neutral"


def test_parse_analysis_falls_back_to_raw_text():
    assert parse_analysis("no json here") == {"raw_analysis": "no json here"}
    assert parse_analysis("{not: valid}") == {"raw_analysis": "{not: valid}"}


def test_query_history_previews_are_bounded(monkeypatch, service):
    post = patch_post(monkeypatch, OPENAI_REPLY)
    long_text = "y" * 300
    conversations = [
        {"title": "Cooking", "messages": [{"role": "user", "content": long_text}] * 8},
        {"title": "Travel", "messages": [{"role": "user", "content": "Lisbon trip"}]},
    ]
    answer = service.query_history("openai", "Where did I plan to go?", conversations)

    prompt = post.last["json"]["messages"][1]["content"]
    assert answer == "Hi there"
    assert "Conversation 1 (Cooking):" in prompt
    assert "Conversation 2 (Travel):" in prompt
    assert prompt.count("user: " + "y" * 100) == 5
    assert "y" * 101 not in prompt
    assert prompt.endswith("Question: Where did I plan to go?")


@pytest.mark.parametrize("text, expected", [
    ("OpenAI API key not configured", "Please configure your API keys"),
    ("You exceeded your current quota", "API quota or rate limit exceeded"),
    ("401 Client Error: Unauthorized", "Authentication failed"),
    ("The model `foo` does not exist", "Model error"),
    ("connection reset", "connection reset"),
])
def test_provider_error_hint(text, expected):
    assert expected in provider_error_hint(Exception(text))

import threading

import pytest

from output_engine import AnthropicBackend, BackendConfigError, BackendError, CancellationToken, MockBackend, OpenAIBackend


class DummyResponse:
    def __init__(self, payload):
        self._payload = payload

    def json(self):
        return self._payload


MESSAGES = [
    {"role": "system", "content": "You are a structured data generator."},
    {"role": "user", "content": "Generate JSON"},
]


# ==================== MOCK ====================

def test_mock_returns_responses_in_order_then_fails():
    backend = MockBackend(['{"a": 1}', '{"a": 2}'])

    assert backend.call(MESSAGES, {}) == '{"a": 1}'
    assert backend.call(MESSAGES, {}) == '{"a": 2}'
    with pytest.raises(BackendError) as excinfo:
        backend.call(MESSAGES, {})
    assert excinfo.value.reason == "no_more_responses"
    assert backend.call_count == 3


def test_mock_raises_listed_exceptions():
    backend = MockBackend([BackendError("rate_limited"), "ok"])

    with pytest.raises(BackendError):
        backend.call(MESSAGES, {})
    assert backend.call(MESSAGES, {}) == "ok"


def test_mock_always_and_always_fail():
    always = MockBackend.always("{}")
    failing = MockBackend.always_fail("auth_failed")

    assert [always.call(MESSAGES, {}) for _ in range(3)] == ["{}"] * 3
    for _ in range(2):
        with pytest.raises(BackendError) as excinfo:
            failing.call(MESSAGES, {})
        assert excinfo.value.reason == "auth_failed"


def test_mock_records_calls():
    backend = MockBackend.always("{}")

    backend.call(MESSAGES, {})

    assert backend.calls == [MESSAGES]


def test_mock_cursor_is_thread_safe():
    backend = MockBackend([str(i) for i in range(200)])
    seen = []
    lock = threading.Lock()

    def worker():
        for _ in range(20):
            value = backend.call(MESSAGES, {})
            with lock:
                seen.append(value)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(seen, key=int) == [str(i) for i in range(200)]
    assert backend.call_count == 200


def test_mock_delay_is_interrupted_by_cancel_token():
    backend = MockBackend.always("{}", delay=5.0)
    token = CancellationToken()
    token.cancel()

    with pytest.raises(BackendError) as excinfo:
        backend.call(MESSAGES, {"cancel_token": token})
    assert excinfo.value.reason == "cancelled"


# ==================== OPENAI ====================

def test_openai_builds_payload_and_parses_response():
    captured = {}

    def transport(url, headers, payload):
        captured["url"] = url
        captured["headers"] = headers
        captured["payload"] = payload
        return DummyResponse({"choices": [{"message": {"content": '{"ok": true}'}}]})

    backend = OpenAIBackend(api_key="k", model="gpt-4o-mini", transport=transport)
    result = backend.call(MESSAGES, {"temperature": 0.5})

    assert result == '{"ok": true}'
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["headers"]["authorization"] == "Bearer k"
    assert captured["payload"]["model"] == "gpt-4o-mini"
    assert captured["payload"]["messages"] == MESSAGES
    assert captured["payload"]["temperature"] == 0.5
    assert captured["payload"]["max_tokens"] == 1000


def test_openai_reads_key_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    captured = {}

    def transport(url, headers, payload):
        captured["headers"] = headers
        return DummyResponse({"choices": [{"message": {"content": "{}"}}]})

    OpenAIBackend(model="m", transport=transport).call(MESSAGES, {})

    assert captured["headers"]["authorization"] == "Bearer env-key"


@pytest.mark.parametrize(
    "kwargs,options,reason",
    [
        ({"model": "m"}, {}, "missing_api_key"),
        ({"api_key": "k"}, {}, "missing_model"),
        ({"api_key": "k", "model": "m"}, {"temperature": 2.5}, "invalid_temperature"),
        ({"api_key": "k", "model": "m"}, {"max_tokens": 0}, "invalid_max_tokens"),
    ],
)
def test_openai_config_errors(monkeypatch, kwargs, options, reason):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    backend = OpenAIBackend(transport=lambda *a: pytest.fail("transport must not be called"), **kwargs)

    with pytest.raises(BackendConfigError) as excinfo:
        backend.call(MESSAGES, options)
    assert excinfo.value.reason == reason


def test_openai_api_error():
    backend = OpenAIBackend(
        api_key="k",
        model="m",
        transport=lambda *a: DummyResponse({"error": {"message": "bad key", "type": "auth"}}),
    )

    with pytest.raises(BackendError) as excinfo:
        backend.call(MESSAGES, {})
    assert excinfo.value.reason == "api_error"
    assert excinfo.value.message == "bad key"


def test_openai_malformed_response():
    backend = OpenAIBackend(api_key="k", model="m", transport=lambda *a: DummyResponse({"choices": []}))

    with pytest.raises(BackendError) as excinfo:
        backend.call(MESSAGES, {})
    assert excinfo.value.reason == "invalid_response"


def test_openai_per_call_timeout_reaches_requests(monkeypatch):
    import requests

    captured = {}

    class PostedResponse(DummyResponse):
        def raise_for_status(self):
            return None

    def fake_post(url, headers=None, json=None, timeout=None):
        captured["timeout"] = timeout
        return PostedResponse({"choices": [{"message": {"content": "{}"}}]})

    monkeypatch.setattr(requests, "post", fake_post)
    backend = OpenAIBackend(api_key="k", model="m")

    backend.call(MESSAGES, {})
    assert captured["timeout"] == 60.0

    backend.call(MESSAGES, {"timeout": 5})
    assert captured["timeout"] == 5


def test_http_backend_reports_cancellation_after_request_returns():
    token = CancellationToken()

    def transport(url, headers, payload):
        token.cancel()
        return DummyResponse({"choices": [{"message": {"content": "{}"}}]})

    backend = OpenAIBackend(api_key="k", model="m", transport=transport)

    with pytest.raises(BackendError) as excinfo:
        backend.call(MESSAGES, {"cancel_token": token})
    assert excinfo.value.reason == "cancelled"


# ==================== ANTHROPIC ====================

def test_anthropic_lifts_system_message():
    captured = {}

    def transport(url, headers, payload):
        captured["headers"] = headers
        captured["payload"] = payload
        return DummyResponse({"content": [{"type": "text", "text": '{"a": 1}'}]})

    backend = AnthropicBackend(api_key="k", transport=transport)
    result = backend.call(MESSAGES, {})

    assert result == '{"a": 1}'
    assert captured["headers"]["x-api-key"] == "k"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"
    assert captured["payload"]["model"] == "claude-sonnet-4-5-20250929"
    assert captured["payload"]["max_tokens"] == 1024
    assert captured["payload"]["system"] == "You are a structured data generator."
    assert captured["payload"]["messages"] == [{"role": "user", "content": "Generate JSON"}]


def test_anthropic_temperature_range(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    backend = AnthropicBackend(api_key="k", transport=lambda *a: pytest.fail("transport must not be called"))

    with pytest.raises(BackendConfigError) as excinfo:
        backend.call(MESSAGES, {"temperature": 1.5})
    assert excinfo.value.reason == "invalid_temperature"


def test_anthropic_api_error():
    backend = AnthropicBackend(
        api_key="k",
        transport=lambda *a: DummyResponse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}),
    )

    with pytest.raises(BackendError) as excinfo:
        backend.call(MESSAGES, {})
    assert excinfo.value.reason == "api_error"

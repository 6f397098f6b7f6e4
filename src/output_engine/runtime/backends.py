"""Backends: turn a message list into raw model text.

Every backend exposes ``call(messages, options) -> str`` and raises
``BackendError`` on failure. HTTP backends take an injectable
``transport(url, headers, payload)`` so tests never touch the network.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Type

from pydantic import Field, ValidationError

from output_engine.exceptions import BackendConfigError, BackendError
from output_engine.schemas import SchemaBase

logger = logging.getLogger(__name__)

Message = Dict[str, str]
Transport = Callable[[str, Dict[str, str], Dict[str, Any]], Any]


class Backend(Protocol):
    """Protocol for interchangeable generation backends."""

    def call(self, messages: List[Message], options: Dict[str, Any]) -> str:
        ...


class MockBackend:
    """Deterministic backend for tests and offline runs.

    Responses are handed out in order; exception instances in the list are
    raised instead of returned. The cursor advances under a lock, so one
    instance can drive a retry sequence even when shared between threads.
    """

    name = "mock"

    def __init__(self, responses: Iterable[Any] = (), delay: float = 0.0, repeat_last: bool = False):
        self._responses = list(responses)
        self._cursor = 0
        self._lock = threading.Lock()
        self.delay = delay
        self.repeat_last = repeat_last
        self.call_count = 0
        self.calls: List[List[Message]] = []

    @classmethod
    def always(cls, response: Any, delay: float = 0.0) -> "MockBackend":
        return cls([response], delay=delay, repeat_last=True)

    @classmethod
    def always_fail(cls, reason: str = "mock_failure", message: Optional[str] = None) -> "MockBackend":
        return cls([BackendError(reason, message)], repeat_last=True)

    def _next_response(self) -> Any:
        if self._cursor < len(self._responses):
            response = self._responses[self._cursor]
            self._cursor += 1
            return response
        if self.repeat_last and self._responses:
            return self._responses[-1]
        return BackendError("no_more_responses", "mock backend has no responses left")

    def call(self, messages: List[Message], options: Dict[str, Any]) -> str:
        with self._lock:
            self.call_count += 1
            self.calls.append([dict(message) for message in messages])
            response = self._next_response()

        if self.delay:
            token = options.get("cancel_token")
            if token is None:
                time.sleep(self.delay)
            elif token.wait(self.delay):
                raise BackendError("cancelled", "call cancelled while waiting for the mock response")

        if isinstance(response, BaseException):
            raise response
        return response


class _HTTPConfig(SchemaBase):
    api_key: str = Field(min_length=1)
    model: str = Field(min_length=1)
    base_url: str = Field(min_length=1)
    temperature: float = Field(ge=0.0, le=2.0)
    max_tokens: int = Field(gt=0, strict=True)
    timeout: float = Field(default=60.0, gt=0)


class _AnthropicConfig(_HTTPConfig):
    temperature: float = Field(ge=0.0, le=1.0)
    api_version: str = Field(default="2023-06-01", min_length=1)


_CONFIG_REASONS = {
    "api_key": "missing_api_key",
    "model": "missing_model",
    "base_url": "missing_base_url",
    "temperature": "invalid_temperature",
    "max_tokens": "invalid_max_tokens",
    "timeout": "invalid_timeout",
    "api_version": "invalid_api_version",
}


class _HTTPBackend:
    """Shared config resolution and transport for JSON-over-HTTP backends."""

    config_model: Type[_HTTPConfig] = _HTTPConfig

    def __init__(self, transport: Optional[Transport] = None, **defaults: Any) -> None:
        self.defaults = {key: value for key, value in defaults.items() if value is not None}
        self.transport = transport

    def resolve_config(self, options: Optional[Dict[str, Any]] = None) -> _HTTPConfig:
        """Merge per-call options over constructor defaults and validate."""
        known = self.config_model.model_fields
        merged = dict(self.defaults)
        merged.update({key: value for key, value in (options or {}).items() if key in known and value is not None})
        try:
            return self.config_model.model_validate(merged)
        except ValidationError as exc:
            first = exc.errors()[0]
            field_name = str(first["loc"][0]) if first["loc"] else ""
            reason = _CONFIG_REASONS.get(field_name, "invalid_config")
            raise BackendConfigError(reason, first["msg"], {"field": field_name}) from exc

    def _post(
        self,
        config: _HTTPConfig,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        cancel_token: Any = None,
    ) -> Dict[str, Any]:
        logger.debug("POST %s model=%s timeout=%s", config.base_url, config.model, config.timeout)
        if self.transport is None:
            response = self._requests_transport(config.base_url, headers, payload, config.timeout)
        else:
            response = self.transport(config.base_url, headers, payload)
        if cancel_token is not None and cancel_token.is_cancelled:
            raise BackendError("cancelled", "call cancelled while the request was in flight")
        try:
            body = response.json()
        except ValueError as exc:
            raise BackendError("invalid_response", "response body is not JSON") from exc
        if not isinstance(body, dict):
            raise BackendError("invalid_response", "response body is not a JSON object")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise BackendError("api_error", message, {"error": error})
        return body

    def _requests_transport(self, url: str, headers: Dict[str, str], payload: Dict[str, Any], timeout: float) -> Any:
        import requests

        try:
            resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
            resp.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            reason = "rate_limited" if status == 429 else "http_error"
            raise BackendError(reason, str(exc), {"status_code": status}) from exc
        except requests.RequestException as exc:
            raise BackendError("request_failed", str(exc)) from exc
        return resp


class OpenAIBackend(_HTTPBackend):
    """OpenAI-compatible Chat Completions backend.

    Works with any endpoint speaking the same protocol (OpenAI, Azure proxies,
    vLLM, LM Studio). The API key defaults to ``OPENAI_API_KEY``.

    The HTTP request itself is not interruptible: a cancelled call returns
    only once the transport does, bounded by ``timeout``.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1/chat/completions",
        temperature: float = 0.0,
        max_tokens: int = 1000,
        timeout: float = 60.0,
        organization: Optional[str] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        super().__init__(
            transport=transport,
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            model=model,
            base_url=base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.organization = organization

    def call(self, messages: List[Message], options: Dict[str, Any]) -> str:
        config = self.resolve_config(options)
        payload: Dict[str, Any] = {
            "model": config.model,
            "messages": list(messages),
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        headers = {
            "authorization": f"Bearer {config.api_key}",
            "content-type": "application/json",
        }
        if self.organization:
            headers["OpenAI-Organization"] = self.organization

        body = self._post(config, headers, payload, (options or {}).get("cancel_token"))
        try:
            return body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise BackendError("invalid_response", "missing choices[0].message.content", {"body": body}) from exc


class AnthropicBackend(_HTTPBackend):
    """Anthropic Messages API backend. The API key defaults to ``ANTHROPIC_API_KEY``.

    Like OpenAIBackend, cancellation is observed after the request returns,
    so an in-flight call holds its batch slot for up to ``timeout`` seconds.
    """

    name = "anthropic"
    config_model = _AnthropicConfig

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5-20250929",
        base_url: str = "https://api.anthropic.com/v1/messages",
        temperature: float = 0.0,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        api_version: str = "2023-06-01",
        transport: Optional[Transport] = None,
    ) -> None:
        super().__init__(
            transport=transport,
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY"),
            model=model,
            base_url=base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            api_version=api_version,
        )

    def call(self, messages: List[Message], options: Dict[str, Any]) -> str:
        config = self.resolve_config(options)
        # the Messages API takes system prompts as a top-level field
        system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
        payload: Dict[str, Any] = {
            "model": config.model,
            "messages": [m for m in messages if m.get("role") != "system"],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if system:
            payload["system"] = system
        headers = {
            "x-api-key": config.api_key,
            "anthropic-version": config.api_version,
            "content-type": "application/json",
        }

        body = self._post(config, headers, payload, (options or {}).get("cancel_token"))
        try:
            return body["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise BackendError("invalid_response", "missing content[0].text", {"body": body}) from exc

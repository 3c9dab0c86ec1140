"""Provider adapters: one small class per LLM vendor.

Each adapter knows how to build the HTTP request, where the reply text
lives in the vendor's JSON, and how to turn a non-2xx reply into a
typed error. The orchestrator only ever talks to this interface.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from tubescript.errors import AuthError, LLMError, NotFoundError, ProviderError, RateLimitError
from tubescript.models import LLMProviderConfig, ProviderKind

TEMPERATURE = 0.3

DEFAULT_MODELS = {
    ProviderKind.OPENAI: "gpt-4o-mini",
    ProviderKind.GEMINI: "gemini-2.0-flash",
    ProviderKind.CLAUDE: "claude-sonnet-4-20250514",
}

DISPLAY_NAMES = {
    ProviderKind.OPENAI: "OpenAI",
    ProviderKind.GEMINI: "Gemini",
    ProviderKind.CLAUDE: "Claude",
    ProviderKind.CUSTOM: "Custom provider",
}

# Checked in order; the first non-empty one wins
API_KEY_ENV = {
    ProviderKind.OPENAI: ("OPENAI_API_KEY",),
    ProviderKind.GEMINI: ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    ProviderKind.CLAUDE: ("ANTHROPIC_API_KEY",),
    ProviderKind.CUSTOM: ("TUBESCRIPT_CUSTOM_API_KEY",),
}


@dataclass(frozen=True)
class ProviderRequest:
    """A fully built provider call, ready for httpx."""

    url: str
    json: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)


class LLMProviderAdapter(ABC):
    """Common contract for all provider adapters."""

    kind: ProviderKind
    default_endpoint: str = ""

    def __init__(self, config: LLMProviderConfig) -> None:
        self._config = config

    @property
    def config(self) -> LLMProviderConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.display_name or DISPLAY_NAMES[self.kind]

    @property
    def model(self) -> str:
        return self._config.model or DEFAULT_MODELS.get(self.kind, "")

    @property
    def endpoint(self) -> str:
        return self._config.endpoint or self.default_endpoint

    @property
    def timeout_seconds(self) -> float:
        minutes = self._config.timeout_minutes if self._config.timeout_minutes > 0 else 1.0
        return minutes * 60.0

    @abstractmethod
    def build_request(self, prompt: str) -> ProviderRequest:
        """Build the request carrying ``prompt`` as a single user message."""

    @abstractmethod
    def extract_text(self, payload: dict[str, Any]) -> str | None:
        """Pull the reply text out of a successful response body."""

    def classify_error(self, response: httpx.Response) -> LLMError:
        """Map a non-2xx response to a typed error."""
        status = response.status_code
        if status in (401, 403):
            return AuthError(
                f"{self.name} API authentication error ({status}): Invalid API key. "
                "Please check your API key in settings.",
                self.name,
                status_code=status,
            )
        if status == 404:
            return NotFoundError(
                f'{self.name} API error (404): Model "{self.model}" or endpoint not found. '
                "Please check your model selection in settings.",
                self.name,
                status_code=status,
            )
        if status == 429:
            retry_after = response.headers.get("retry-after")
            return RateLimitError(self.rate_limit_message(response, retry_after), self.name, retry_after)

        body = response.text or ""
        return ProviderError(
            f"{self.name} API error: {status} - {_error_detail(response) or 'Unknown error'}",
            self.name,
            status_code=status,
            body=body[:200],
        )

    def rate_limit_message(self, response: httpx.Response, retry_after: str | None) -> str:
        message = f"{self.name} rate limit exceeded (429). You've made too many requests too quickly."
        if retry_after:
            return message + f" Please wait {retry_after} seconds before retrying."
        return message + " Please wait a few minutes before retrying."

    def _chat_body(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": TEMPERATURE,
        }


class OpenAIAdapter(LLMProviderAdapter):
    kind = ProviderKind.OPENAI
    default_endpoint = "https://api.openai.com/v1/chat/completions"

    def build_request(self, prompt: str) -> ProviderRequest:
        return ProviderRequest(
            url=self.endpoint,
            json=self._chat_body(prompt),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._config.api_key.strip()}",
                **self._config.extra_headers,
            },
        )

    def extract_text(self, payload: dict[str, Any]) -> str | None:
        return _chat_text(payload)

    def rate_limit_message(self, response: httpx.Response, retry_after: str | None) -> str:
        headers = response.headers
        if headers.get("x-ratelimit-remaining-requests") == "0":
            reason = (
                "You have exceeded your request limit. Please wait "
                f"{headers.get('x-ratelimit-reset-requests', 'a while')} before making new requests."
            )
        elif headers.get("x-ratelimit-remaining-tokens") == "0":
            reason = (
                "You have exceeded your token limit. The limit will reset in "
                f"{headers.get('x-ratelimit-reset-tokens', 'a while')}."
            )
        else:
            return super().rate_limit_message(response, retry_after)
        return f"{self.name} API Error (429): {reason}"


class GeminiAdapter(LLMProviderAdapter):
    kind = ProviderKind.GEMINI
    default_endpoint = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def build_request(self, prompt: str) -> ProviderRequest:
        return ProviderRequest(
            url=self.endpoint.replace("{model}", self.model),
            json={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": TEMPERATURE},
            },
            headers={"Content-Type": "application/json", **self._config.extra_headers},
            params={"key": self._config.api_key.strip()},
        )

    def extract_text(self, payload: dict[str, Any]) -> str | None:
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        return text or None


class ClaudeAdapter(LLMProviderAdapter):
    kind = ProviderKind.CLAUDE
    default_endpoint = "https://api.anthropic.com/v1/messages"

    _API_VERSION = "2023-06-01"
    _MAX_TOKENS = 4096

    def build_request(self, prompt: str) -> ProviderRequest:
        body = self._chat_body(prompt)
        body["max_tokens"] = self._MAX_TOKENS
        return ProviderRequest(
            url=self.endpoint,
            json=body,
            headers={
                "Content-Type": "application/json",
                "x-api-key": self._config.api_key.strip(),
                "anthropic-version": self._API_VERSION,
                **self._config.extra_headers,
            },
        )

    def extract_text(self, payload: dict[str, Any]) -> str | None:
        blocks = payload.get("content") or []
        text = "".join(
            b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type", "text") == "text"
        )
        return text or None


class CustomAdapter(LLMProviderAdapter):
    """Any OpenAI-compatible chat endpoint, configured entirely by the caller."""

    kind = ProviderKind.CUSTOM

    def build_request(self, prompt: str) -> ProviderRequest:
        if not self.endpoint:
            raise ProviderError(f"{self.name} has no endpoint configured", self.name)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key.strip()}",
        }
        headers.update(self._config.extra_headers)
        return ProviderRequest(url=self.endpoint, json=self._chat_body(prompt), headers=headers)

    def extract_text(self, payload: dict[str, Any]) -> str | None:
        return _chat_text(payload)

    def classify_error(self, response: httpx.Response) -> LLMError:
        if response.status_code == 404:
            return NotFoundError(
                f"{self.name} API error (404): Endpoint or model not found. "
                "Please check your configuration in settings.",
                self.name,
                status_code=404,
            )
        return super().classify_error(response)


_ADAPTERS: dict[ProviderKind, type[LLMProviderAdapter]] = {
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.GEMINI: GeminiAdapter,
    ProviderKind.CLAUDE: ClaudeAdapter,
    ProviderKind.CUSTOM: CustomAdapter,
}


def get_adapter(config: LLMProviderConfig) -> LLMProviderAdapter:
    """Select the adapter for ``config.kind``."""
    return _ADAPTERS[ProviderKind(config.kind)](config)


def api_key_from_env(kind: ProviderKind) -> str:
    for var in API_KEY_ENV[kind]:
        value = os.environ.get(var, "").strip()
        if value:
            return value
    return ""


def provider_config(
    kind: ProviderKind | str,
    *,
    api_key: str | None = None,
    model: str | None = None,
    endpoint: str = "",
    timeout_minutes: float = 1.0,
    extra_headers: dict[str, str] | None = None,
    display_name: str | None = None,
) -> LLMProviderConfig:
    """Build a provider config, reading the API key from the environment when not given."""
    kind = ProviderKind(kind)
    return LLMProviderConfig(
        id=kind.value,
        display_name=display_name or DISPLAY_NAMES[kind],
        kind=kind,
        endpoint=endpoint,
        api_key=api_key if api_key is not None else api_key_from_env(kind),
        model=model or DEFAULT_MODELS.get(kind, ""),
        timeout_minutes=timeout_minutes,
        extra_headers=extra_headers or {},
    )


def _chat_text(payload: dict[str, Any]) -> str | None:
    choices = payload.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("message") or {}).get("content")


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return (response.text or "")[:200]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return (response.text or "")[:200]

"""Model discovery for the built-in providers."""

import logging
from dataclasses import dataclass

import httpx

from tubescript.errors import AuthError, ProviderError
from tubescript.models import ProviderKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    id: str
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.id


# Shown before (or instead of) fetching from the provider
DEFAULT_MODEL_LISTS: dict[ProviderKind, list[ModelInfo]] = {
    ProviderKind.OPENAI: [
        ModelInfo("gpt-4o-mini", "GPT-4o Mini (fast, cost-effective)"),
        ModelInfo("gpt-4o", "GPT-4o (high quality)"),
        ModelInfo("gpt-4-turbo", "GPT-4 Turbo"),
        ModelInfo("gpt-4", "GPT-4"),
        ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo"),
    ],
    ProviderKind.GEMINI: [
        ModelInfo("gemini-2.5-pro", "Gemini 2.5 Pro"),
        ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash"),
        ModelInfo("gemini-2.0-flash", "Gemini 2.0 Flash"),
    ],
    ProviderKind.CLAUDE: [
        ModelInfo("claude-opus-4-1-20250805", "Claude Opus 4.1"),
        ModelInfo("claude-sonnet-4-20250514", "Claude Sonnet 4"),
        ModelInfo("claude-haiku-4-5-20251001", "Claude Haiku 4.5"),
    ],
}

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
GEMINI_MODELS_URL = "https://generativelanguage.googleapis.com/v1beta/models"

_OPENAI_CHAT_PREFIXES = ("gpt-", "o1-", "o3-")


async def fetch_models(kind: ProviderKind | str, api_key: str, client: httpx.AsyncClient) -> list[ModelInfo]:
    """List chat-capable models from the provider's API.

    Claude has no listing endpoint here and returns the static list.

    Raises:
        AuthError: If the key is missing or rejected.
        ProviderError: On any other failure.
    """
    kind = ProviderKind(kind)
    if kind is ProviderKind.CLAUDE:
        return list(DEFAULT_MODEL_LISTS[kind])
    if kind is ProviderKind.CUSTOM:
        raise ProviderError("Model listing is not supported for custom providers", kind.value)
    if not api_key or not api_key.strip():
        raise AuthError(f"{kind.value} API key is required", kind.value)

    if kind is ProviderKind.OPENAI:
        data = await _get_json(
            client, OPENAI_MODELS_URL, kind, headers={"Authorization": f"Bearer {api_key.strip()}"}
        )
        models = [
            ModelInfo(m["id"].strip(), (m.get("displayName") or "").strip())
            for m in data.get("data") or []
            if isinstance(m.get("id"), str) and m["id"].strip().startswith(_OPENAI_CHAT_PREFIXES)
        ]
    else:
        data = await _get_json(client, GEMINI_MODELS_URL, kind, params={"key": api_key.strip()})
        models = [
            ModelInfo(m["name"].replace("models/", "").strip(), (m.get("displayName") or "").strip())
            for m in data.get("models") or []
            if isinstance(m.get("name"), str)
            and "generateContent" in (m.get("supportedGenerationMethods") or [])
        ]

    return _dedupe_sorted(models)


def _dedupe_sorted(models: list[ModelInfo]) -> list[ModelInfo]:
    seen: dict[str, ModelInfo] = {}
    for model in models:
        if model.id and model.id not in seen:
            seen[model.id] = model
    return sorted(seen.values(), key=lambda m: (m.label, m.id))


async def _get_json(client: httpx.AsyncClient, url: str, kind: ProviderKind, **kwargs) -> dict:
    try:
        response = await client.get(url, **kwargs)
    except httpx.HTTPError as e:
        raise ProviderError(f"Failed to fetch {kind.value} models: {e}", kind.value) from e

    if response.status_code in (401, 403):
        raise AuthError(f"Invalid {kind.value} API key", kind.value, status_code=response.status_code)
    if not response.is_success:
        raise ProviderError(
            f"{kind.value} API error: {response.status_code} - {response.text[:200] or 'Unknown error'}",
            kind.value,
            status_code=response.status_code,
            body=response.text[:200],
        )
    logger.debug("Fetched model list from %s", url)
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(
            f"{kind.value} returned a non-JSON model list",
            kind.value,
            status_code=response.status_code,
            body=response.text[:200],
        ) from e
    if not isinstance(data, dict):
        raise ProviderError(f"Unexpected {kind.value} model list format", kind.value)
    return data

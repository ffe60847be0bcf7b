"""Factory for creating LLM provider instances from a logical model identifier."""

from enum import Enum

import httpx

import config
from errors import UnknownModelError
from .base import BaseLLMProvider
from .anthropic_provider import AnthropicProvider
from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


# Checked in order; the first matching prefix wins.
MODEL_PREFIXES: tuple[tuple[str, ProviderKind], ...] = (
    ("gpt-", ProviderKind.OPENAI),
    ("chatgpt-", ProviderKind.OPENAI),
    ("o1", ProviderKind.OPENAI),
    ("o3", ProviderKind.OPENAI),
    ("o4", ProviderKind.OPENAI),
    ("claude-", ProviderKind.ANTHROPIC),
    ("gemini-", ProviderKind.GOOGLE),
)

PROVIDER_MAP: dict[ProviderKind, type[BaseLLMProvider]] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.GOOGLE: GoogleProvider,
}


def classify_model(model_id: str) -> ProviderKind:
    """Return the provider family a model identifier belongs to."""
    normalized = (model_id or "").strip().lower()
    for prefix, kind in MODEL_PREFIXES:
        if normalized.startswith(prefix):
            return kind
    raise UnknownModelError(model_id)


def _credentials_for(kind: ProviderKind) -> tuple[str | None, str | None]:
    if kind is ProviderKind.OPENAI:
        return config.OPENAI_API_KEY, config.OPENAI_BASE_URL
    if kind is ProviderKind.ANTHROPIC:
        return config.ANTHROPIC_API_KEY, config.ANTHROPIC_BASE_URL
    if kind is ProviderKind.GOOGLE:
        return config.GOOGLE_API_KEY, config.GOOGLE_BASE_URL
    raise UnknownModelError(kind.value)


def create_provider(
    model_id: str,
    api_key: str | None = None,
    base_url: str | None = None,
    provider_config: dict | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseLLMProvider:
    """Create a provider instance for a model identifier.

    Credentials default to the environment for the model's provider family.
    """
    kind = classify_model(model_id)
    provider_cls = PROVIDER_MAP[kind]
    env_key, env_url = _credentials_for(kind)

    return provider_cls(
        api_key=api_key or env_key,
        base_url=base_url or env_url,
        model_id=model_id,
        config=provider_config,
        transport=transport,
    )

import pytest

import config
from errors import ModelError, UnknownModelError
from llm.anthropic_provider import AnthropicProvider
from llm.google_provider import GoogleProvider
from llm.openai_provider import OpenAIProvider
from llm.provider_factory import PROVIDER_MAP, ProviderKind, classify_model, create_provider


@pytest.mark.parametrize("model_id, kind", [
    ("gpt-4o", ProviderKind.OPENAI),
    ("gpt-4.1-mini", ProviderKind.OPENAI),
    ("chatgpt-4o-latest", ProviderKind.OPENAI),
    ("o1-preview", ProviderKind.OPENAI),
    ("o3-mini", ProviderKind.OPENAI),
    ("o4-mini", ProviderKind.OPENAI),
    ("claude-sonnet-4-0", ProviderKind.ANTHROPIC),
    ("claude-3-5-haiku-latest", ProviderKind.ANTHROPIC),
    ("gemini-2.0-flash", ProviderKind.GOOGLE),
    ("  Claude-Opus-4-1  ", ProviderKind.ANTHROPIC),
])
def test_classify_model_by_prefix(model_id, kind):
    assert classify_model(model_id) is kind


@pytest.mark.parametrize("model_id", ["llama3", "mistral-large", "", "claude", "text-davinci-003"])
def test_unknown_models_are_rejected(model_id):
    with pytest.raises(UnknownModelError) as exc:
        classify_model(model_id)
    assert isinstance(exc.value, ModelError)
    assert exc.value.model_id == model_id


def test_every_provider_kind_has_an_implementation():
    assert set(PROVIDER_MAP) == set(ProviderKind)


@pytest.mark.parametrize("model_id, cls", [
    ("gpt-4o", OpenAIProvider),
    ("claude-sonnet-4-0", AnthropicProvider),
    ("gemini-2.0-flash", GoogleProvider),
])
def test_create_provider_returns_matching_class(model_id, cls):
    provider = create_provider(model_id, api_key="k")
    assert type(provider) is cls
    assert provider.model_id == model_id
    assert provider.api_key == "k"


def test_create_provider_reads_credentials_from_config(monkeypatch):
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "env-key")
    monkeypatch.setattr(config, "ANTHROPIC_BASE_URL", "https://proxy.internal/v1/")

    provider = create_provider("claude-sonnet-4-0", provider_config={"max_tokens": 512})

    assert provider.api_key == "env-key"
    assert provider.base_url == "https://proxy.internal/v1"
    assert provider.config == {"max_tokens": 512}


def test_create_provider_rejects_unknown_model():
    with pytest.raises(UnknownModelError):
        create_provider("llama3")

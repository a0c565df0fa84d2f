"""
Adapter factory with environment-based defaults.

Module: adapters/llm/factory.py

Resolution order for provider, model and API key: explicit arguments, then
environment variables (a ``.env`` file is loaded on import), then built-in
defaults.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Type, Union

from dotenv import find_dotenv, load_dotenv

from .base import LLMAdapter
from .gemini import GeminiAdapter
from .mock import MockLLMAdapter
from .openai import OpenAIAdapter

logger = logging.getLogger(__name__)

# Existing environment variables win over .env entries
load_dotenv(find_dotenv(usecwd=True), override=False)


class LLMProvider(str, Enum):
    """Supported model providers."""

    GEMINI = "gemini"
    OPENAI = "openai"
    MOCK = "mock"


class ProviderDefaults(NamedTuple):
    adapter: Type[LLMAdapter]
    api_key_env: Optional[str]
    model_env: Optional[str]
    default_model: str


PROVIDERS: Dict[LLMProvider, ProviderDefaults] = {
    LLMProvider.GEMINI: ProviderDefaults(
        GeminiAdapter, "GEMINI_API_KEY", "GEMINI_MODEL", GeminiAdapter.DEFAULT_MODEL
    ),
    LLMProvider.OPENAI: ProviderDefaults(
        OpenAIAdapter, "OPENAI_API_KEY", "OPENAI_MODEL", OpenAIAdapter.DEFAULT_MODEL
    ),
    LLMProvider.MOCK: ProviderDefaults(MockLLMAdapter, None, None, "mock-model"),
}

# Model name prefix -> provider
MODEL_PREFIXES = (
    ("gemini-", LLMProvider.GEMINI),
    ("gpt-", LLMProvider.OPENAI),
    ("o1", LLMProvider.OPENAI),
    ("o3", LLMProvider.OPENAI),
    ("o4", LLMProvider.OPENAI),
    ("mock", LLMProvider.MOCK),
)


def detect_provider(model: str) -> LLMProvider:
    """Infer the provider from a model name, defaulting to Gemini."""
    model_lower = model.lower()
    for prefix, provider in MODEL_PREFIXES:
        if model_lower.startswith(prefix):
            return provider

    logger.warning(f"Could not detect provider for model '{model}', defaulting to Gemini")
    return LLMProvider.GEMINI


def get_default_provider() -> LLMProvider:
    """
    Provider used when none is requested.

    ``LLM_PROVIDER`` if set and valid, otherwise the first provider whose API
    key is present, otherwise Gemini.
    """
    explicit = os.getenv("LLM_PROVIDER", "").strip().lower()
    if explicit:
        try:
            return LLMProvider(explicit)
        except ValueError:
            logger.warning(f"Invalid LLM_PROVIDER '{explicit}', detecting from API keys")

    for provider, defaults in PROVIDERS.items():
        if defaults.api_key_env and os.getenv(defaults.api_key_env):
            return provider
    return LLMProvider.GEMINI


def get_default_model(provider: LLMProvider) -> str:
    defaults = PROVIDERS[provider]
    env_model = os.getenv(defaults.model_env) if defaults.model_env else None
    return env_model.strip() if env_model else defaults.default_model


def create_adapter(
    provider: Optional[Union[str, LLMProvider]] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    **kwargs: Any,
) -> LLMAdapter:
    """
    Create a model adapter.

    Args:
        provider: gemini, openai or mock (detected if omitted)
        model: Model identifier (provider default if omitted)
        api_key: API key (read from the provider's env var if omitted)
        **kwargs: Adapter options such as ``temperature`` or ``default_timeout``

    Raises:
        ValueError: For an unknown provider or a missing API key

    Example:
        adapter = create_adapter(provider="mock", responses=["0.95"])
    """
    if provider is None:
        provider = detect_provider(model) if model else get_default_provider()
    elif not isinstance(provider, LLMProvider):
        provider = LLMProvider(provider.lower())

    defaults = PROVIDERS[provider]
    model = model or get_default_model(provider)
    if api_key is None and defaults.api_key_env:
        api_key = os.getenv(defaults.api_key_env)

    logger.info(f"Creating {provider.value} adapter with model: {model}")
    return defaults.adapter(model=model, api_key=api_key, **kwargs)

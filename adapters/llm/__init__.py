"""
Model service adapters used by leaf agents and supervisor planners.

Supported adapters:
- GeminiAdapter: Google Gemini API (default)
- OpenAIAdapter: OpenAI chat completions
- MockLLMAdapter: Scriptable mock for tests and offline runs

Use create_adapter() to build one from .env defaults.
"""

from adapters.llm.base import (
    HTTPLLMAdapter,
    LLMAdapter,
    LLMError,
    LLMMessage,
    LLMResponse,
    MessageRole,
)
from adapters.llm.gemini import GeminiAdapter
from adapters.llm.openai import OpenAIAdapter
from adapters.llm.mock import MockLLMAdapter
from adapters.llm.factory import (
    LLMProvider,
    create_adapter,
    detect_provider,
    get_default_model,
    get_default_provider,
)

__all__ = [
    # Base classes
    "LLMAdapter",
    "HTTPLLMAdapter",
    "LLMError",
    "LLMResponse",
    "LLMMessage",
    "MessageRole",
    # Adapters
    "GeminiAdapter",
    "OpenAIAdapter",
    "MockLLMAdapter",
    # Factory
    "LLMProvider",
    "create_adapter",
    "detect_provider",
    "get_default_model",
    "get_default_provider",
]

"""
OpenAI adapter for the chat completions API.
"""

import os
from typing import Any, Dict, List, Optional

from .base import HTTPLLMAdapter, LLMError, LLMMessage, LLMResponse


class OpenAIAdapter(HTTPLLMAdapter):
    """Adapter for GPT-4o, GPT-4.1 and o-series models."""

    provider_name = "openai"
    display_name = "OpenAI"

    API_BASE_URL = "https://api.openai.com/v1"
    API_KEY_ENV = "OPENAI_API_KEY"
    DEFAULT_MODEL = "gpt-4o-mini"

    # Reasoning models take max_completion_tokens instead of max_tokens
    COMPLETION_TOKEN_PREFIXES = ("o1", "o3", "o4", "gpt-5")

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        organization: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        api_key = api_key or os.getenv(self.API_KEY_ENV)
        organization = organization or os.getenv("OPENAI_ORGANIZATION")

        headers = {"Authorization": f"Bearer {api_key}"}
        if organization:
            headers["OpenAI-Organization"] = organization

        super().__init__(model, api_key, headers=headers, **kwargs)
        self.organization = organization

    @property
    def endpoint(self) -> str:
        return "/chat/completions"

    def _convert_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        return [{"role": msg.role, "content": msg.content} for msg in messages]

    def build_payload(
        self, messages: List[LLMMessage], temperature: float, max_tokens: Optional[int]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": temperature,
        }
        if max_tokens:
            key = (
                "max_completion_tokens"
                if self.model.startswith(self.COMPLETION_TOKEN_PREFIXES)
                else "max_tokens"
            )
            payload[key] = max_tokens
        return payload

    def parse_reply(self, data: Dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("OpenAI returned no choices", provider=self.provider_name)

        choice = choices[0]
        usage = data.get("usage", {})
        return LLMResponse(
            content=choice.get("message", {}).get("content") or "",
            finish_reason=choice.get("finish_reason", "unknown"),
            model=data.get("model", self.model),
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            },
        )

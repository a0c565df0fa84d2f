"""
Google Gemini adapter.

Talks to the ``generateContent`` REST endpoint; Gemini is the default model
service for the reference workflows.
"""

import os
from typing import Any, Dict, List, Optional, Tuple

from .base import HTTPLLMAdapter, LLMError, LLMMessage, LLMResponse, MessageRole


class GeminiAdapter(HTTPLLMAdapter):
    """Adapter for Gemini 2.x models."""

    provider_name = "gemini"
    display_name = "Gemini"

    API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/"
    API_KEY_ENV = "GEMINI_API_KEY"
    DEFAULT_MODEL = "gemini-2.5-flash-lite"
    DEFAULT_MAX_TOKENS = 4096

    def __init__(self, model: str = DEFAULT_MODEL, api_key: Optional[str] = None, **kwargs: Any) -> None:
        api_key = api_key or os.getenv(self.API_KEY_ENV)
        super().__init__(
            model,
            api_key,
            headers={"x-goog-api-key": api_key or ""},
            **kwargs,
        )

    @property
    def endpoint(self) -> str:
        return f"models/{self.model}:generateContent"

    def _convert_messages(
        self, messages: List[LLMMessage]
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """Split out the system instruction; Gemini calls the assistant role ``model``."""
        system_prompt: Optional[str] = None
        contents: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM.value:
                system_prompt = msg.content
                continue
            role = "user" if msg.role == MessageRole.USER.value else "model"
            contents.append({"role": role, "parts": [{"text": msg.content}]})

        return system_prompt, contents

    def build_payload(
        self, messages: List[LLMMessage], temperature: float, max_tokens: Optional[int]
    ) -> Dict[str, Any]:
        system_prompt, contents = self._convert_messages(messages)
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens or self.DEFAULT_MAX_TOKENS,
                "topP": self.config.get("top_p", 0.95),
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    def parse_reply(self, data: Dict[str, Any]) -> LLMResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback", {}).get("blockReason")
            detail = f" (blocked: {feedback})" if feedback else ""
            raise LLMError(f"Gemini returned no candidates{detail}", provider=self.provider_name)

        candidate = candidates[0]
        parts = candidate.get("content", {}).get("parts", [])
        usage = data.get("usageMetadata", {})

        return LLMResponse(
            content="".join(part.get("text", "") for part in parts),
            finish_reason=str(candidate.get("finishReason", "STOP")).lower(),
            model=data.get("modelVersion", self.model),
            usage={
                "prompt_tokens": usage.get("promptTokenCount", 0),
                "completion_tokens": usage.get("candidatesTokenCount", 0),
                "total_tokens": usage.get("totalTokenCount", 0),
            },
        )

"""
Model service contract.

Leaf agents and supervisor planners only ever call ``LLMAdapter.chat``: one
rendered prompt in, one text reply out. Provider adapters implement
``complete``; HTTP providers share request handling through ``HTTPLLMAdapter``.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_SECONDS = 60.0


class MessageRole(str, Enum):
    """Message role in LLM conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class LLMMessage(BaseModel):
    """A message in an LLM conversation."""

    model_config = ConfigDict(use_enum_values=True)

    role: MessageRole
    content: str


class LLMResponse(BaseModel):
    """Reply text plus provider metadata."""

    content: str
    finish_reason: str = "stop"
    model: str
    usage: Dict[str, int] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class LLMError(Exception):
    """Raised when a provider rejects a request or returns an unusable reply."""

    def __init__(self, message: str, provider: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.provider = provider
        self.original_error = original_error


class LLMAdapter(ABC):
    """
    Abstract base class for model providers.

    Keyword options given at construction are kept in ``config``; the
    ``temperature`` option is the default for ``chat``.
    """

    provider_name: str = "unknown"

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs: Any) -> None:
        self.model = model
        self.api_key = api_key
        self.config = kwargs

    @property
    def default_temperature(self) -> float:
        return float(self.config.get("temperature", DEFAULT_TEMPERATURE))

    @abstractmethod
    async def complete(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate a completion for a conversation.

        Raises:
            LLMError: If the provider rejects the request
            TimeoutError: If the request times out
        """

    async def chat(
        self,
        prompt: str,
        system_message: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Send one rendered prompt and return the raw reply text.

        Args:
            prompt: Fully rendered user prompt
            system_message: Optional system instruction
            temperature: Sampling temperature (adapter default if None)
            timeout: Request timeout in seconds
        """
        messages = [LLMMessage(role=MessageRole.USER, content=prompt)]
        if system_message:
            messages.insert(0, LLMMessage(role=MessageRole.SYSTEM, content=system_message))

        response = await self.complete(
            messages,
            temperature=self.default_temperature if temperature is None else temperature,
            timeout=timeout,
        )
        return response.content

    async def close(self) -> None:
        """Release resources held by the adapter."""
        return None


class HTTPLLMAdapter(LLMAdapter):
    """
    Base for providers reached over a JSON HTTP API.

    Subclasses supply the endpoint, the request payload and the reply parser;
    transport failures are mapped here so every provider fails the same way.
    """

    API_BASE_URL: str = ""
    API_KEY_ENV: str = ""
    display_name: str = "LLM"

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> None:
        if not api_key:
            raise ValueError(
                f"{self.display_name} API key required "
                f"(set {self.API_KEY_ENV} env var)"
            )
        super().__init__(model, api_key, **kwargs)
        self.default_timeout = float(kwargs.get("default_timeout", DEFAULT_TIMEOUT_SECONDS))
        self.client = httpx.AsyncClient(
            base_url=self.API_BASE_URL,
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=self.default_timeout,
        )

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Path of the completion endpoint, relative to ``API_BASE_URL``."""

    @abstractmethod
    def build_payload(
        self, messages: List[LLMMessage], temperature: float, max_tokens: Optional[int]
    ) -> Dict[str, Any]:
        """Translate a conversation into the provider's request body."""

    @abstractmethod
    def parse_reply(self, data: Dict[str, Any]) -> LLMResponse:
        """
        Extract the reply from the provider's response body.

        Raises:
            LLMError: If the body holds no usable reply
        """

    async def complete(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        payload = self.build_payload(messages, temperature, max_tokens)
        request_timeout = timeout or self.default_timeout
        name = self.display_name

        logger.debug(f"POST {self.endpoint} ({self.model}, timeout={request_timeout}s)")
        try:
            response = await self.client.post(self.endpoint, json=payload, timeout=request_timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise TimeoutError(f"{name} request timed out after {request_timeout}s: {e}")
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"{name} API error ({e.response.status_code}): {e.response.text}",
                provider=self.provider_name,
                original_error=e,
            )
        except httpx.HTTPError as e:
            raise LLMError(
                f"{name} transport error: {e}",
                provider=self.provider_name,
                original_error=e,
            )

        return self.parse_reply(data)

    async def close(self) -> None:
        await self.client.aclose()

"""
Mock model adapter for tests and offline development.

Replies can be scripted, computed from the prompt, or templated, so workflow
runs are deterministic without network access.
"""

from typing import Any, Callable, Iterable, List, Optional

import anyio

from .base import DEFAULT_TEMPERATURE, LLMAdapter, LLMError, LLMMessage, LLMResponse, MessageRole

Responder = Callable[[str], str]


class MockLLMAdapter(LLMAdapter):
    """
    Scriptable stand-in for a model provider.

    Reply selection, in priority order:

    1. ``responder(prompt)`` if given
    2. the next item of ``responses`` (an exhausted script raises ``LLMError``)
    3. ``response_template.format(prompt=...)``

    Every user prompt received is recorded in ``prompts``.
    """

    provider_name = "mock"

    def __init__(
        self,
        model: str = "mock-model",
        api_key: Optional[str] = None,
        response_template: str = "Mock response to: {prompt}",
        responses: Optional[Iterable[str]] = None,
        responder: Optional[Responder] = None,
        delay_ms: int = 10,
        **kwargs: Any,
    ) -> None:
        """
        Initialize mock adapter.

        Args:
            model: Reported model identifier
            api_key: Ignored
            response_template: Template with a ``{prompt}`` placeholder
            responses: Scripted replies returned one per call
            responder: Callable computing a reply from the user prompt
            delay_ms: Simulated latency in milliseconds
        """
        super().__init__(model, api_key, **kwargs)
        self.response_template = response_template
        self.responses: Optional[List[str]] = list(responses) if responses is not None else None
        self.responder = responder
        self.delay_ms = delay_ms
        self.call_count = 0
        self.prompts: List[str] = []

    def _reply(self, prompt: str) -> str:
        if self.responder is not None:
            return self.responder(prompt)
        if self.responses is not None:
            if not self.responses:
                raise LLMError("Mock response script exhausted", provider=self.provider_name)
            return self.responses.pop(0)
        return self.response_template.format(prompt=prompt[:50])

    async def complete(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        if self.delay_ms:
            await anyio.sleep(self.delay_ms / 1000.0)

        self.call_count += 1
        user_messages = [msg.content for msg in messages if msg.role == MessageRole.USER.value]
        prompt = user_messages[-1] if user_messages else ""
        self.prompts.append(prompt)

        content = self._reply(prompt)
        # Rough estimate: ~4 characters per token
        prompt_tokens = sum(len(msg.content) for msg in messages) // 4
        return LLMResponse(
            content=content,
            model=self.model,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": len(content) // 4,
                "total_tokens": prompt_tokens + len(content) // 4,
            },
        )

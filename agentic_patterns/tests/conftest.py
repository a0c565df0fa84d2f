"""
Shared fixtures for the composition engine tests.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

import anyio
import pytest

from adapters.llm import MockLLMAdapter
from agentic_patterns.service.agents import Agent
from agentic_patterns.service.prompts import PromptLibrary
from agentic_patterns.service.scope import Scope


class ScriptedAgent(Agent):
    """
    Leaf agent computing its output from the scope without a model call.

    Records every invocation in ``calls`` and tracks how many instances run
    at once through the shared ``gauge``.
    """

    def __init__(
        self,
        name: str,
        output_key: str,
        input_keys: Sequence[str] = (),
        compute: Optional[Callable[[Scope], Any]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        calls: Optional[List[str]] = None,
        gauge: Optional[Dict[str, int]] = None,
    ) -> None:
        super().__init__(name, output_key, input_keys)
        self.compute = compute
        self.error = error
        self.delay = delay
        self.calls = calls if calls is not None else []
        self.gauge = gauge
        self.seen: List[Dict[str, Any]] = []

    async def invoke(self, scope: Scope) -> Any:
        self._instrument(scope)
        self.calls.append(self.name)
        self.seen.append(scope.snapshot())

        if self.gauge is not None:
            self.gauge["current"] += 1
            self.gauge["peak"] = max(self.gauge["peak"], self.gauge["current"])
        try:
            if self.delay:
                await anyio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            value = self.compute(scope) if self.compute else f"{self.name} output"
        finally:
            if self.gauge is not None:
                self.gauge["current"] -= 1

        scope.write_state(self.output_key, value)
        return value


@pytest.fixture
def make_agent() -> Callable[..., ScriptedAgent]:
    """Factory for scripted leaf agents."""
    return ScriptedAgent


@pytest.fixture
def calls() -> List[str]:
    """Shared invocation log."""
    return []


@pytest.fixture
def prompts() -> PromptLibrary:
    """Packaged prompt library."""
    return PromptLibrary.load()


@pytest.fixture
def mock_llm() -> MockLLMAdapter:
    """Mock adapter echoing the first line of each prompt."""
    return MockLLMAdapter(responder=lambda prompt: f"reply: {prompt.splitlines()[0]}", delay_ms=0)

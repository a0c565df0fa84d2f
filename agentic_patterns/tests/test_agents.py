"""
Tests for leaf agents: prompt rendering, model calls, coercion and hooks.
"""

from enum import Enum
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from adapters.llm import LLMError, MockLLMAdapter
from agentic_patterns.service.agents import (
    HumanInputAgent,
    LLMAgent,
    PromptTemplate,
    coerce_result,
    log_agent_request,
)
from agentic_patterns.service.errors import (
    CompositionError,
    FeedbackTimeoutError,
    MissingInputError,
    ModelInvocationError,
    ResultParseError,
)
from agentic_patterns.service.feedback import FeedbackManager, StaticFeedbackChannel
from agentic_patterns.service.scope import Scope


class Mood(str, Enum):
    HAPPY = "happy"
    SAD = "sad"


# ============================================================================
# Prompt Templates
# ============================================================================


class TestPromptTemplate:
    def test_fields_in_declaration_order_without_duplicates(self) -> None:
        template = PromptTemplate("{b} then {a} and {b} again, literal {{x}}")

        assert template.fields == ("b", "a")

    def test_render_formats_values_as_text(self) -> None:
        template = PromptTemplate("Score: {score} Mood: {mood}")

        assert template.render({"score": 0.5, "mood": Mood.SAD}) == "Score: 0.5 Mood: SAD"

    def test_attribute_placeholders_rejected(self) -> None:
        with pytest.raises(CompositionError):
            PromptTemplate("{user.name}")


# ============================================================================
# Result Coercion
# ============================================================================


class TestCoerceResult:
    def test_str_is_stripped(self) -> None:
        assert coerce_result("  hello \n", str) == "hello"

    def test_float_accepts_bare_literal_with_whitespace(self) -> None:
        assert coerce_result(" 0.85\n", float) == 0.85
        assert coerce_result("1", float) == 1.0

    @pytest.mark.parametrize("raw", ["Score: 0.8", "0.8 because", "", "high", "nan"])
    def test_float_rejects_anything_else(self, raw: str) -> None:
        with pytest.raises(ResultParseError) as exc_info:
            coerce_result(raw, float, "Scorer")

        assert exc_info.value.agent_id == "Scorer"
        assert exc_info.value.raw == raw

    def test_int(self) -> None:
        assert coerce_result(" 7 ", int) == 7
        with pytest.raises(ResultParseError):
            coerce_result("7.5", int)

    def test_bool(self) -> None:
        assert coerce_result("TRUE", bool) is True
        assert coerce_result("false", bool) is False
        with pytest.raises(ResultParseError):
            coerce_result("yes", bool)

    def test_enum_matches_name_or_value_case_insensitively(self) -> None:
        assert coerce_result("happy", Mood) is Mood.HAPPY
        assert coerce_result(" 'SAD' \n", Mood) is Mood.SAD
        assert coerce_result('"Happy"', Mood) is Mood.HAPPY

    def test_enum_unknown_member_fails(self) -> None:
        with pytest.raises(ResultParseError):
            coerce_result("angry", Mood)


# ============================================================================
# LLMAgent
# ============================================================================


class TestLLMAgent:
    @pytest.mark.asyncio
    async def test_renders_prompt_and_writes_output(self) -> None:
        llm = MockLLMAdapter(responses=["Pasta, basil"], delay_ms=0)
        agent = LLMAgent(
            "IngredientCurator",
            llm,
            "Cuisine: {cuisine}\nDiet: {dietary}",
            output_key="ingredients",
        )
        scope = Scope({"cuisine": "Italian", "dietary": "vegetarian"})

        value = await agent.invoke(scope)

        assert value == "Pasta, basil"
        assert scope.read_state("ingredients") == "Pasta, basil"
        assert llm.prompts == ["Cuisine: Italian\nDiet: vegetarian"]
        assert agent.input_keys == ("cuisine", "dietary")
        assert scope.invoked_agents() == ["IngredientCurator"]

    @pytest.mark.asyncio
    async def test_system_message_and_options_passed_to_model(self) -> None:
        llm = MagicMock()
        llm.chat = AsyncMock(return_value="ok")
        agent = LLMAgent(
            "Coach",
            llm,
            "{question}",
            output_key="feedback",
            system_message="Be constructive",
            temperature=0.2,
            timeout=5.0,
        )

        await agent.invoke(Scope({"question": "Why?"}))

        llm.chat.assert_awaited_once_with(
            "Why?", system_message="Be constructive", temperature=0.2, timeout=5.0
        )

    @pytest.mark.asyncio
    async def test_missing_input_fails_before_model_call(self) -> None:
        llm = MockLLMAdapter(responses=["unused"], delay_ms=0)
        agent = LLMAgent("Editor", llm, "{content} {score}", output_key="content")

        with pytest.raises(MissingInputError) as exc_info:
            await agent.invoke(Scope({"content": "draft"}))

        assert exc_info.value.key == "score"
        assert exc_info.value.agent_id == "Editor"
        assert exc_info.value.kind == "missing_input"
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_declared_default_fills_missing_input(self) -> None:
        llm = MockLLMAdapter(responder=lambda prompt: prompt, delay_ms=0)
        agent = LLMAgent(
            "Editor",
            llm,
            "{content} ({score})",
            output_key="content",
            defaults={"score": 0.0},
        )

        assert await agent.invoke(Scope({"content": "draft"})) == "draft (0.0)"

    @pytest.mark.asyncio
    async def test_model_failure_wrapped_without_retry(self) -> None:
        llm = MagicMock()
        llm.chat = AsyncMock(side_effect=LLMError("quota exceeded", provider="gemini"))
        agent = LLMAgent("Writer", llm, "{topic}", output_key="content")
        scope = Scope({"topic": "AI"})

        with pytest.raises(ModelInvocationError) as exc_info:
            await agent.invoke(scope)

        assert exc_info.value.agent_id == "Writer"
        assert isinstance(exc_info.value.original_error, LLMError)
        assert llm.chat.await_count == 1
        assert not scope.has_state("content")

    @pytest.mark.asyncio
    async def test_timeout_wrapped(self) -> None:
        llm = MagicMock()
        llm.chat = AsyncMock(side_effect=TimeoutError("slow"))
        agent = LLMAgent("Writer", llm, "{topic}", output_key="content")

        with pytest.raises(ModelInvocationError):
            await agent.invoke(Scope({"topic": "AI"}))

    @pytest.mark.asyncio
    async def test_parse_failure_leaves_output_unwritten(self) -> None:
        llm = MockLLMAdapter(responses=["The score is 0.8"], delay_ms=0)
        agent = LLMAgent("Scorer", llm, "{content}", output_key="score", result_type=float)
        scope = Scope({"content": "text"})

        with pytest.raises(ResultParseError):
            await agent.invoke(scope)

        assert not scope.has_state("score")

    def test_template_using_undeclared_input_rejected(self) -> None:
        with pytest.raises(CompositionError):
            LLMAgent(
                "Bad",
                MockLLMAdapter(),
                "{a} {b}",
                output_key="out",
                input_keys=["a"],
            )

    def test_unsupported_result_type_rejected(self) -> None:
        with pytest.raises(CompositionError):
            LLMAgent("Bad", MockLLMAdapter(), "{a}", output_key="out", result_type=list)

    def test_capability_describes_agent(self) -> None:
        agent = LLMAgent(
            "Coach",
            MockLLMAdapter(),
            "{position} {question}",
            output_key="coachFeedback",
            description="Interview coach",
        )

        capability = agent.capability()

        assert capability.name == "Coach"
        assert capability.input_keys == ["position", "question"]
        assert capability.output_key == "coachFeedback"
        assert capability.description == "Interview coach"


# ============================================================================
# Instrumentation Hooks
# ============================================================================


class TestInstrumentationHooks:
    @pytest.mark.asyncio
    async def test_hook_called_with_agent_id_before_model(self) -> None:
        events: List[str] = []
        llm = MockLLMAdapter(responder=lambda prompt: events.append("model") or "ok", delay_ms=0)
        agent = LLMAgent(
            "Router",
            llm,
            "{request}",
            output_key="category",
            before_invocation=lambda agent_id: events.append(f"hook:{agent_id}"),
        )

        await agent.invoke(Scope({"request": "hi"}))

        assert events == ["hook:Router", "model"]

    @pytest.mark.asyncio
    async def test_failing_hook_is_swallowed(self) -> None:
        def broken_hook(agent_id: str) -> None:
            raise RuntimeError("sink down")

        agent = LLMAgent(
            "Router",
            MockLLMAdapter(responses=["ok"], delay_ms=0),
            "{request}",
            output_key="answer",
            before_invocation=[broken_hook, log_agent_request],
        )
        scope = Scope({"request": "hi"})

        assert await agent.invoke(scope) == "ok"
        assert scope.read_state("answer") == "ok"

    def test_default_hook_logs_agent_id(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("INFO"):
            log_agent_request("CategoryRouter")

        assert "Received request for agent: CategoryRouter" in caplog.text


# ============================================================================
# HumanInputAgent
# ============================================================================


class TestHumanInputAgent:
    @pytest.mark.asyncio
    async def test_collects_response_from_channel(self) -> None:
        channel = StaticFeedbackChannel("Strong answer")
        agent = HumanInputAgent(
            "HumanFeedback", channel, prompt_template="Rate {candidate}"
        )
        scope = Scope({"candidate": "Ada"})

        value = await agent.invoke(scope)

        assert value == "Strong answer"
        assert scope.read_state("humanFeedback") == "Strong answer"
        assert channel.prompts == ["Rate Ada"]

    @pytest.mark.asyncio
    async def test_configured_timeout_raises(self) -> None:
        manager = FeedbackManager()
        agent = HumanInputAgent("HumanFeedback", manager, timeout=0.05)

        with pytest.raises(FeedbackTimeoutError) as exc_info:
            await agent.invoke(Scope({"request": "Anything to add?"}))

        assert exc_info.value.agent_id == "HumanFeedback"
        assert await manager.list_pending() == []

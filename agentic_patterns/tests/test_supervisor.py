"""
Tests for the supervisor composer: planning, validation, execution and replay.
"""

import json
from typing import Any, Dict, List, Optional

import pytest

from adapters.llm import MockLLMAdapter
from agentic_patterns.service.errors import (
    AgentError,
    CompositionError,
    ModelInvocationError,
    PlanValidationError,
)
from agentic_patterns.service.scope import Scope
from agentic_patterns.service.supervisor import (
    SupervisorComposer,
    SupervisorPlan,
    extract_json,
)


def _plan(*steps: Dict[str, Any], final_agent: Optional[str] = None) -> str:
    payload: Dict[str, Any] = {"steps": list(steps)}
    if final_agent:
        payload["final_agent"] = final_agent
    return json.dumps(payload)


@pytest.fixture
def interview_agents(make_agent, calls):
    return [
        make_agent("Coach", "coachFeedback", ["question", "answer"], calls=calls,
                   compute=lambda s: f"coach on {s.read_state('answer')}"),
        make_agent("Human", "humanFeedback", ["feedbackRequest"], calls=calls,
                   compute=lambda s: "human ok"),
        make_agent("Assessor", "assessment", ["coachFeedback", "humanFeedback"], calls=calls,
                   compute=lambda s: f"{s.read_state('coachFeedback')} + {s.read_state('humanFeedback')}"),
    ]


def _supervisor(agents, llm, **kwargs) -> SupervisorComposer:
    return SupervisorComposer(
        "InterviewSupervisor",
        llm,
        agents,
        instruction="Assess the candidate",
        output_key="result",
        **kwargs,
    )


# ============================================================================
# Plan Parsing and Validation
# ============================================================================


class TestPlanValidation:
    def test_extract_json_unwraps_code_fence(self) -> None:
        reply = 'Here you go:\n```json\n{"steps": []}\n```\nThanks'

        assert extract_json(reply) == '{"steps": []}'
        assert extract_json('  {"a": 1} ') == '{"a": 1}'

    def test_valid_plan_defaults_final_agent_to_last_step(self, interview_agents) -> None:
        supervisor = _supervisor(interview_agents, MockLLMAdapter())

        plan = supervisor.parse_plan(
            _plan({"agent": "Coach", "arguments": {"answer": "I like teams"}}, {"agent": "Assessor"})
        )

        assert [step.agent for step in plan.steps] == ["Coach", "Assessor"]
        assert plan.final_agent == "Assessor"

    @pytest.mark.parametrize(
        "raw, fragment",
        [
            ("not json at all", "not valid JSON"),
            (_plan(), "no steps"),
            (_plan({"agent": "Hacker"}), "unknown agent"),
            (_plan({"agent": "Coach", "arguments": {"salary": 1}}), "does not read"),
            (_plan({"agent": "Coach"}, final_agent="Assessor"), "not part of the plan"),
            (
                _plan(
                    {"agent": "Coach", "arguments": {"answer": "a"}},
                    {"agent": "Assessor", "arguments": {"coachFeedback": "{coachFeedback}"}},
                ),
                "overwrites output of 'Coach'",
            ),
        ],
    )
    def test_invalid_plans_rejected(self, interview_agents, raw: str, fragment: str) -> None:
        supervisor = _supervisor(interview_agents, MockLLMAdapter())

        with pytest.raises(PlanValidationError) as exc_info:
            supervisor.parse_plan(raw)

        assert fragment in str(exc_info.value)
        assert exc_info.value.agent_id == "InterviewSupervisor"

    def test_plan_longer_than_max_steps_rejected(self, interview_agents) -> None:
        supervisor = _supervisor(interview_agents, MockLLMAdapter(), max_steps=2)

        with pytest.raises(PlanValidationError, match="limit is 2"):
            supervisor.parse_plan(_plan({"agent": "Coach"}, {"agent": "Human"}, {"agent": "Assessor"}))

    def test_planning_prompt_lists_capabilities(self, interview_agents) -> None:
        supervisor = _supervisor(interview_agents, MockLLMAdapter())

        prompt = supervisor.planning_prompt(Scope({"request": "Senior engineer interview"}))

        assert "Assess the candidate" in prompt
        assert "request: Senior engineer interview" in prompt
        assert '"name": "Coach"' in prompt
        assert '"output_key": "assessment"' in prompt

    def test_build_errors(self, make_agent) -> None:
        with pytest.raises(CompositionError):
            _supervisor([], MockLLMAdapter())
        with pytest.raises(CompositionError):
            _supervisor([make_agent("A", "a"), make_agent("A", "b")], MockLLMAdapter())
        with pytest.raises(CompositionError):
            _supervisor([make_agent("A", "a")], MockLLMAdapter(), max_steps=0)


# ============================================================================
# Execution
# ============================================================================


class TestSupervisorExecution:
    @pytest.mark.asyncio
    async def test_runs_planned_agents_in_order(self, interview_agents, calls) -> None:
        reply = "```json\n" + _plan(
            {"agent": "Coach", "arguments": {"question": "Why us?", "answer": "Growth"}},
            {"agent": "Human", "arguments": {"feedbackRequest": "Thoughts?"}},
            {"agent": "Assessor"},
        ) + "\n```"
        llm = MockLLMAdapter(responses=[reply], delay_ms=0)
        supervisor = _supervisor(interview_agents, llm)
        scope = Scope({"request": "Assess Ada"})

        value = await supervisor.invoke(scope)

        assert calls == ["Coach", "Human", "Assessor"]
        assert value == "coach on Growth + human ok"
        assert scope.read_state("result") == value
        assert scope.read_state("question") == "Why us?"
        assert scope.invoked_agents() == ["InterviewSupervisor", "Coach", "Human", "Assessor"]

        stored = scope.read_state(supervisor.plan_key)
        assert [step["agent"] for step in stored["steps"]] == ["Coach", "Human", "Assessor"]

    @pytest.mark.asyncio
    async def test_final_agent_selects_result(self, interview_agents, calls) -> None:
        reply = _plan(
            {"agent": "Coach", "arguments": {"question": "q", "answer": "a"}},
            {"agent": "Human", "arguments": {"feedbackRequest": "r"}},
            final_agent="Coach",
        )
        supervisor = _supervisor(interview_agents, MockLLMAdapter(responses=[reply], delay_ms=0))

        assert await supervisor.invoke(Scope({"request": "x"})) == "coach on a"

    @pytest.mark.asyncio
    async def test_invalid_plan_runs_nothing(self, interview_agents, calls) -> None:
        supervisor = _supervisor(
            interview_agents, MockLLMAdapter(responses=[_plan({"agent": "Ghost"})], delay_ms=0)
        )

        with pytest.raises(PlanValidationError):
            await supervisor.invoke(Scope({"request": "x"}))

        assert calls == []

    @pytest.mark.asyncio
    async def test_plan_cannot_rebind_earlier_output(self, interview_agents, calls) -> None:
        reply = _plan(
            {"agent": "Coach", "arguments": {"question": "q", "answer": "a"}},
            {"agent": "Human", "arguments": {"feedbackRequest": "r"}},
            {"agent": "Assessor", "arguments": {"coachFeedback": "placeholder"}},
        )
        supervisor = _supervisor(interview_agents, MockLLMAdapter(responses=[reply], delay_ms=0))
        scope = Scope({"request": "x"})

        with pytest.raises(PlanValidationError, match="coachFeedback"):
            await supervisor.invoke(scope)

        assert calls == []
        assert not scope.has_state(supervisor.plan_key)

    @pytest.mark.asyncio
    async def test_sub_agent_failure_aborts_plan(self, make_agent, calls) -> None:
        agents = [
            make_agent("First", "first", calls=calls, error=AgentError("nope", "First")),
            make_agent("Second", "second", calls=calls),
        ]
        reply = _plan({"agent": "First"}, {"agent": "Second"})
        supervisor = _supervisor(agents, MockLLMAdapter(responses=[reply], delay_ms=0))

        with pytest.raises(AgentError) as exc_info:
            await supervisor.invoke(Scope({"request": "x"}))

        assert exc_info.value.agent_id == "First"
        assert calls == ["First"]

    @pytest.mark.asyncio
    async def test_planning_failure_wrapped(self, interview_agents) -> None:
        supervisor = _supervisor(interview_agents, MockLLMAdapter(responses=[], delay_ms=0))

        with pytest.raises(ModelInvocationError) as exc_info:
            await supervisor.invoke(Scope({"request": "x"}))

        assert exc_info.value.agent_id == "InterviewSupervisor"

    @pytest.mark.asyncio
    async def test_replay_skips_planning(self, interview_agents, calls) -> None:
        reply = _plan(
            {"agent": "Coach", "arguments": {"question": "q", "answer": "a"}},
            {"agent": "Human", "arguments": {"feedbackRequest": "r"}},
            {"agent": "Assessor"},
        )
        llm = MockLLMAdapter(responses=[reply], delay_ms=0)
        supervisor = _supervisor(interview_agents, llm)
        first = Scope({"request": "x"})
        await supervisor.invoke(first)
        calls.clear()

        second = Scope()
        value = await supervisor.replay(second, first.read_state(supervisor.plan_key))

        assert llm.call_count == 1
        assert calls == ["Coach", "Human", "Assessor"]
        assert value == "coach on a + human ok"

    @pytest.mark.asyncio
    async def test_replay_validates_stored_plan(self, interview_agents) -> None:
        supervisor = _supervisor(interview_agents, MockLLMAdapter())

        with pytest.raises(PlanValidationError):
            await supervisor.replay(Scope(), SupervisorPlan(steps=[]))
        with pytest.raises(PlanValidationError):
            await supervisor.replay(Scope(), {"steps": "not a list"})

    @pytest.mark.asyncio
    async def test_hooks_cover_planning_and_sub_agents(self, interview_agents) -> None:
        fired: List[str] = []
        reply = _plan(
            {"agent": "Coach", "arguments": {"question": "q", "answer": "a"}},
        )
        supervisor = _supervisor(interview_agents, MockLLMAdapter(responses=[reply], delay_ms=0))
        supervisor.add_before_invocation(fired.append)

        await supervisor.invoke(Scope({"request": "x"}))

        assert fired == ["InterviewSupervisor", "Coach"]

"""
Supervisor composer.

The supervisor asks the model for a plan over an explicit capability table,
validates the plan against that table, then runs the chosen sub-agents in
order against the shared scope. Non-determinism is limited to which plan the
model returns; every plan that runs has already been checked.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field, ValidationError

from adapters.llm import LLMAdapter

from .agents import Agent, AgentCapability, BeforeInvocationHook, as_text
from .errors import CompositionError, ModelInvocationError, PlanValidationError
from .scope import Scope

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)

PLANNER_SYSTEM_MESSAGE = (
    "You are a workflow planner. You decide which agents to call, in which order, "
    "and with which arguments. You answer with JSON only."
)

PLANNER_PROMPT = """Objective:
{instruction}

Request:
{request}

Available agents (JSON):
{capabilities}

Produce a plan that fulfils the objective using only the agents above.
Each step names one agent and may bind values for that agent's input keys.
Values produced by earlier steps are available to later steps automatically;
do not bind a key that an earlier step produces.
Use at most {max_steps} steps.

Answer with a single JSON object of this shape and nothing else:
{{"steps": [{{"agent": "<agent name>", "arguments": {{"<input key>": "<value>"}}}}], "final_agent": "<agent name>"}}
"""


class PlanStep(BaseModel):
    """One planned sub-agent invocation."""

    agent: str = Field(..., min_length=1, description="Name of the agent to invoke")
    arguments: Dict[str, Any] = Field(
        default_factory=dict, description="Scope values bound before the call"
    )


class SupervisorPlan(BaseModel):
    """Ordered, replayable list of sub-agent invocations."""

    steps: List[PlanStep] = Field(default_factory=list)
    final_agent: Optional[str] = Field(
        None, description="Agent whose output becomes the supervisor's result"
    )


def extract_json(text: str) -> str:
    """Return the JSON payload of a reply, unwrapping a Markdown code fence if present."""
    match = _CODE_FENCE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


class SupervisorComposer(Agent):
    """
    Dynamically sequences a fixed registry of sub-agents.

    The validated plan is stored in the scope under ``<name>.plan``.
    """

    def __init__(
        self,
        name: str,
        llm: LLMAdapter,
        agents: Sequence[Agent],
        instruction: str,
        output_key: str,
        input_keys: Sequence[str] = ("request",),
        max_steps: int = 8,
        description: str = "",
        temperature: Optional[float] = 0.0,
        timeout: Optional[float] = None,
        before_invocation: Optional[
            Union[BeforeInvocationHook, Sequence[BeforeInvocationHook]]
        ] = None,
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            name: Supervisor identity
            llm: Model adapter used for the planning call
            agents: Registry of sub-agents the plan may use
            instruction: Natural-language objective
            output_key: Scope key receiving the final agent's result
            input_keys: Scope keys rendered into the planning request
            max_steps: Upper bound on plan length
            description: Capability summary
            temperature: Sampling temperature for planning
            timeout: Planning request timeout in seconds
            before_invocation: Hook(s) fired before the planning call
        """
        agents = list(agents)
        if not agents:
            raise CompositionError(f"Supervisor '{name}' needs at least one sub-agent")
        if max_steps < 1:
            raise CompositionError(f"Supervisor '{name}' max_steps must be >= 1")

        self.registry: Dict[str, Agent] = {}
        for agent in agents:
            if agent.name in self.registry:
                raise CompositionError(f"Supervisor '{name}' registers '{agent.name}' twice")
            self.registry[agent.name] = agent

        super().__init__(name, output_key, input_keys, description, before_invocation)
        self.llm = llm
        self.instruction = instruction
        self.max_steps = max_steps
        self.temperature = temperature
        self.timeout = timeout
        self.capabilities: List[AgentCapability] = [agent.capability() for agent in agents]

    @property
    def plan_key(self) -> str:
        return f"{self.name}.plan"

    def sub_agents(self) -> List[Agent]:
        return list(self.registry.values())

    def add_before_invocation(self, hook: BeforeInvocationHook) -> "Agent":
        # The planning call is a model call of its own, so it is instrumented too.
        self.before_invocation.append(hook)
        return super().add_before_invocation(hook)

    def planning_prompt(self, scope: Scope) -> str:
        request = "\n".join(
            f"{key}: {as_text(scope.read_state(key))}" for key in self.input_keys
        )
        capabilities = json.dumps(
            [capability.model_dump() for capability in self.capabilities], indent=2
        )
        return PLANNER_PROMPT.format(
            instruction=self.instruction,
            request=request,
            capabilities=capabilities,
            max_steps=self.max_steps,
        )

    def parse_plan(self, raw: str) -> SupervisorPlan:
        """
        Parse and validate a plan against the capability table.

        Raises:
            PlanValidationError: If the plan is malformed or references
                anything outside the registry
        """
        payload = extract_json(raw)
        try:
            plan = SupervisorPlan.model_validate_json(payload)
        except ValidationError as e:
            logger.error(f"Supervisor '{self.name}' returned an unparseable plan: {raw!r}")
            raise PlanValidationError(f"Plan is not valid JSON of the expected shape: {e}", self.name)

        self.validate_plan(plan)
        return plan

    def validate_plan(self, plan: SupervisorPlan) -> SupervisorPlan:
        if not plan.steps:
            raise PlanValidationError("Plan has no steps", self.name)
        if len(plan.steps) > self.max_steps:
            raise PlanValidationError(
                f"Plan has {len(plan.steps)} steps, limit is {self.max_steps}", self.name
            )

        produced: Dict[str, str] = {}
        for index, step in enumerate(plan.steps):
            agent = self.registry.get(step.agent)
            if agent is None:
                raise PlanValidationError(
                    f"Step {index} names unknown agent '{step.agent}'", self.name
                )
            undeclared = [key for key in step.arguments if key not in agent.input_keys]
            if undeclared:
                raise PlanValidationError(
                    f"Step {index} binds {undeclared}, which '{step.agent}' does not read",
                    self.name,
                )
            # Outputs of earlier steps are read from the scope, never rebound.
            shadowed = [key for key in step.arguments if key in produced]
            if shadowed:
                raise PlanValidationError(
                    f"Step {index} binds {shadowed}, which overwrites output of "
                    f"'{produced[shadowed[0]]}'",
                    self.name,
                )
            produced[agent.output_key] = agent.name

        planned = [step.agent for step in plan.steps]
        if plan.final_agent is None:
            plan.final_agent = planned[-1]
        elif plan.final_agent not in planned:
            raise PlanValidationError(
                f"Final agent '{plan.final_agent}' is not part of the plan", self.name
            )
        return plan

    async def plan(self, scope: Scope) -> SupervisorPlan:
        self._instrument(scope)
        prompt = self.planning_prompt(scope)
        try:
            raw = await self.llm.chat(
                prompt,
                system_message=PLANNER_SYSTEM_MESSAGE,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Planning call failed for supervisor '{self.name}': {e}")
            raise ModelInvocationError(f"Planning call failed: {e}", self.name, e) from e

        return self.parse_plan(raw)

    async def execute_plan(self, scope: Scope, plan: SupervisorPlan) -> Any:
        """Run an already validated plan; any sub-agent failure aborts the run."""
        scope.write_state(self.plan_key, plan.model_dump())

        for index, step in enumerate(plan.steps):
            scope.raise_if_cancelled(self.name)
            agent = self.registry[step.agent]
            for key, value in step.arguments.items():
                scope.write_state(key, value)

            logger.info(f"Supervisor '{self.name}' step {index}: {agent.name}")
            await agent.invoke(scope)

        final_agent = self.registry[plan.final_agent or plan.steps[-1].agent]
        value = scope.read_state(final_agent.output_key)
        scope.write_state(self.output_key, value)
        return value

    async def invoke(self, scope: Scope) -> Any:
        plan = await self.plan(scope)
        logger.info(
            f"Supervisor '{self.name}' plan: "
            f"{' -> '.join(step.agent for step in plan.steps)}"
        )
        return await self.execute_plan(scope, plan)

    async def replay(self, scope: Scope, plan: Union[SupervisorPlan, Dict[str, Any]]) -> Any:
        """Re-run a stored plan without a planning call."""
        if not isinstance(plan, SupervisorPlan):
            try:
                plan = SupervisorPlan.model_validate(plan)
            except ValidationError as e:
                raise PlanValidationError(f"Stored plan is malformed: {e}", self.name)
        self.validate_plan(plan)
        return await self.execute_plan(scope, plan)

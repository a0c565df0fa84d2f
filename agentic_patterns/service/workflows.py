"""
Reference workflows.

Five workflows, one per composition pattern, built once at startup from a
shared model adapter and the packaged prompt library:

- expert router: sequence of a classifier and an enum-driven conditional
- recipe developer: three-stage sequence
- content refiner: sequence of a creator and a score-driven loop
- startup pitcher: parallel block with a formatting combiner
- interview supervisor: supervisor over two LLM agents and a human reviewer
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from adapters.llm import LLMAdapter

from .agents import Agent, BeforeInvocationHook, HumanInputAgent, LLMAgent, log_agent_request
from .composers import (
    ConditionalComposer,
    LoopComposer,
    ParallelComposer,
    ScoreThreshold,
    SequenceComposer,
)
from .feedback import FeedbackChannel
from .prompts import PromptLibrary
from .scope import Scope
from .supervisor import SupervisorComposer

logger = logging.getLogger(__name__)

EXPERT_ROUTER = "expert_router"
RECIPE_DEVELOPER = "recipe_developer"
CONTENT_REFINER = "content_refiner"
STARTUP_PITCHER = "startup_pitcher"
INTERVIEW_SUPERVISOR = "interview_supervisor"

DEFAULT_FEEDBACK_REQUEST = "Please share your feedback on the candidate's response."

_RULE = "─" * 59
_DOUBLE_RULE = "═" * 59


class RequestCategory(str, Enum):
    """Query categories produced by the category router."""

    CREATIVE = "creative"
    FINANCIAL = "financial"
    WELLNESS = "wellness"
    CAREER = "career"
    UNKNOWN = "unknown"


class Workflow:
    """
    Top-level entry point wrapping a composed agent.

    Every call gets a fresh ``Scope`` seeded with the call's arguments.
    """

    def __init__(self, name: str, agent: Agent, arguments: Sequence[str]) -> None:
        self.name = name
        self.agent = agent
        self.arguments = tuple(arguments)

    @property
    def output_key(self) -> str:
        return self.agent.output_key

    def new_scope(self, **arguments: Any) -> Scope:
        unexpected = [key for key in arguments if key not in self.arguments]
        if unexpected:
            raise TypeError(f"Workflow '{self.name}' got unexpected arguments {unexpected}")
        return Scope(arguments)

    async def run(self, scope: Scope) -> Any:
        logger.info(f"Workflow '{self.name}' invocation {scope.invocation_id} started")
        value = await self.agent.invoke(scope)
        logger.info(f"Workflow '{self.name}' invocation {scope.invocation_id} completed")
        return value

    async def execute(self, **arguments: Any) -> Scope:
        """Run the workflow and return its final scope."""
        scope = self.new_scope(**arguments)
        await self.run(scope)
        return scope

    async def invoke(self, **arguments: Any) -> Any:
        """Run the workflow and return the value of its output key."""
        scope = await self.execute(**arguments)
        return scope.read_state(self.output_key)


def _llm_agent(
    llm: LLMAdapter,
    prompts: PromptLibrary,
    workflow: str,
    prompt_name: str,
    name: str,
    output_key: str,
    **kwargs: Any,
) -> LLMAgent:
    spec = prompts.get(workflow, prompt_name)
    return LLMAgent(
        name=name,
        llm=llm,
        prompt_template=spec.template,
        output_key=output_key,
        system_message=spec.system_message,
        description=spec.description,
        **kwargs,
    )


def _instrument(agent: Agent, hook: Optional[BeforeInvocationHook]) -> Agent:
    if hook is not None:
        agent.add_before_invocation(hook)
    return agent


def build_expert_router(
    llm: LLMAdapter,
    prompts: PromptLibrary,
    hook: Optional[BeforeInvocationHook] = log_agent_request,
    timeout: Optional[float] = None,
) -> Workflow:
    """Classify a request, then route it to exactly one expert."""

    def expert(prompt_name: str, name: str) -> LLMAgent:
        return _llm_agent(llm, prompts, EXPERT_ROUTER, prompt_name, name, "response", timeout=timeout)

    router = _llm_agent(
        llm,
        prompts,
        EXPERT_ROUTER,
        "category_router",
        "CategoryRouter",
        "category",
        result_type=RequestCategory,
        timeout=timeout,
    )
    experts = ConditionalComposer.on_enum(
        "ExpertsAgent",
        discriminant_key="category",
        enum_type=RequestCategory,
        table={
            RequestCategory.CREATIVE: expert("creative_expert", "CreativeExpert"),
            RequestCategory.FINANCIAL: expert("financial_advisor", "FinancialAdvisor"),
            RequestCategory.WELLNESS: expert("wellness_coach", "WellnessCoach"),
            RequestCategory.CAREER: expert("career_mentor", "CareerMentor"),
        },
        default=expert("general_assistant", "GeneralAssistant"),
        output_key="response",
    )
    agent = SequenceComposer("ExpertRouterAgent", [router, experts], output_key="response")
    return Workflow(EXPERT_ROUTER, _instrument(agent, hook), ["request"])


def build_recipe_developer(
    llm: LLMAdapter,
    prompts: PromptLibrary,
    hook: Optional[BeforeInvocationHook] = log_agent_request,
    timeout: Optional[float] = None,
) -> Workflow:
    """Ingredients, then cooking method, then nutrition analysis."""
    stages = [
        _llm_agent(
            llm, prompts, RECIPE_DEVELOPER, "ingredient_curator",
            "IngredientCurator", "ingredients", timeout=timeout,
        ),
        _llm_agent(
            llm, prompts, RECIPE_DEVELOPER, "cooking_method_designer",
            "CookingMethodDesigner", "recipe", timeout=timeout,
        ),
        _llm_agent(
            llm, prompts, RECIPE_DEVELOPER, "nutritional_analyst",
            "NutritionalAnalyst", "nutritionalInfo", timeout=timeout,
        ),
    ]
    agent = SequenceComposer("RecipeDeveloper", stages, output_key="nutritionalInfo")
    return Workflow(RECIPE_DEVELOPER, _instrument(agent, hook), ["cuisine", "dietary", "mealType"])


def build_content_refiner(
    llm: LLMAdapter,
    prompts: PromptLibrary,
    max_iterations: int = 5,
    quality_threshold: float = 0.9,
    hook: Optional[BeforeInvocationHook] = log_agent_request,
    timeout: Optional[float] = None,
) -> Workflow:
    """Create content, then score and edit it until it is good enough."""
    creator = _llm_agent(
        llm, prompts, CONTENT_REFINER, "content_creator", "ContentCreator", "content", timeout=timeout
    )
    scorer = _llm_agent(
        llm, prompts, CONTENT_REFINER, "quality_scorer", "QualityScorer", "score",
        result_type=float, timeout=timeout,
    )
    editor = _llm_agent(
        llm, prompts, CONTENT_REFINER, "content_editor", "ContentEditor", "content", timeout=timeout
    )
    refinement = LoopComposer(
        "RefinementLoop",
        [scorer, editor],
        exit_predicate=ScoreThreshold("score", quality_threshold),
        max_iterations=max_iterations,
        output_key="content",
    )
    agent = SequenceComposer("ContentRefiner", [creator, refinement], output_key="content")
    return Workflow(CONTENT_REFINER, _instrument(agent, hook), ["topic", "style"])


def format_pitch(scope: Scope) -> str:
    """Combine the three pitch sections into one document."""
    sections = [
        ("EXECUTIVE SUMMARY", scope.read_state("executiveSummary", "")),
        ("MARKET ANALYSIS", scope.read_state("marketAnalysis", "")),
        ("RISK ASSESSMENT & MITIGATION", scope.read_state("riskAssessment", "")),
    ]

    lines = [_DOUBLE_RULE, " " * 20 + "STARTUP PITCH DOCUMENT", _DOUBLE_RULE, ""]
    for title, body in sections:
        lines.extend([title, _RULE, body, ""])
    return "\n".join(lines)


def build_startup_pitcher(
    llm: LLMAdapter,
    prompts: PromptLibrary,
    max_workers: int = 3,
    acquire_timeout: Optional[float] = None,
    hook: Optional[BeforeInvocationHook] = log_agent_request,
    timeout: Optional[float] = None,
) -> Workflow:
    """Summary, market analysis and risk assessment in parallel, then one document."""
    sections = [
        _llm_agent(
            llm, prompts, STARTUP_PITCHER, "executive_summary_generator",
            "ExecutiveSummaryGenerator", "executiveSummary", timeout=timeout,
        ),
        _llm_agent(
            llm, prompts, STARTUP_PITCHER, "market_analyzer",
            "MarketAnalyzer", "marketAnalysis", timeout=timeout,
        ),
        _llm_agent(
            llm, prompts, STARTUP_PITCHER, "risk_assessor",
            "RiskAssessor", "riskAssessment", timeout=timeout,
        ),
    ]
    agent = ParallelComposer(
        "StartupPitcher",
        sections,
        combiner=format_pitch,
        output_key="pitch",
        max_workers=max_workers,
        acquire_timeout=acquire_timeout,
    )
    return Workflow(
        STARTUP_PITCHER, _instrument(agent, hook), ["startupName", "idea", "targetMarket"]
    )


def build_interview_supervisor(
    llm: LLMAdapter,
    prompts: PromptLibrary,
    channel: FeedbackChannel,
    max_steps: int = 8,
    feedback_timeout: Optional[float] = None,
    hook: Optional[BeforeInvocationHook] = log_agent_request,
    timeout: Optional[float] = None,
) -> Workflow:
    """Coach, human reviewer and assessor, sequenced by a planning supervisor."""
    coach = _llm_agent(
        llm, prompts, INTERVIEW_SUPERVISOR, "interview_coach",
        "InterviewCoach", "coachFeedback", timeout=timeout,
    )
    human_spec = prompts.get(INTERVIEW_SUPERVISOR, "human_feedback")
    human = HumanInputAgent(
        "HumanFeedback",
        channel,
        output_key="humanFeedback",
        prompt_template=human_spec.template,
        defaults={"feedbackRequest": DEFAULT_FEEDBACK_REQUEST},
        description=human_spec.description,
        timeout=feedback_timeout,
    )
    assessor = _llm_agent(
        llm, prompts, INTERVIEW_SUPERVISOR, "interview_assessor",
        "InterviewAssessor", "assessment", timeout=timeout,
    )

    supervisor_spec = prompts.get(INTERVIEW_SUPERVISOR, "supervisor")
    agent = SupervisorComposer(
        "InterviewSupervisor",
        llm,
        [coach, human, assessor],
        instruction=supervisor_spec.template.strip(),
        output_key="assessment",
        input_keys=["request"],
        max_steps=max_steps,
        description=supervisor_spec.description,
        timeout=timeout,
    )
    return Workflow(INTERVIEW_SUPERVISOR, _instrument(agent, hook), ["request"])


def build_workflows(
    llm: LLMAdapter,
    channel: FeedbackChannel,
    prompts: Optional[PromptLibrary] = None,
    parallel_max_workers: int = 3,
    parallel_acquire_timeout: Optional[float] = None,
    loop_max_iterations: int = 5,
    loop_quality_threshold: float = 0.9,
    supervisor_max_steps: int = 8,
    feedback_timeout: Optional[float] = None,
    llm_timeout: Optional[float] = None,
    hook: Optional[BeforeInvocationHook] = log_agent_request,
) -> Dict[str, Workflow]:
    """Build every reference workflow, keyed by workflow name."""
    prompts = prompts or PromptLibrary.load()

    workflows = [
        build_expert_router(llm, prompts, hook=hook, timeout=llm_timeout),
        build_recipe_developer(llm, prompts, hook=hook, timeout=llm_timeout),
        build_content_refiner(
            llm,
            prompts,
            max_iterations=loop_max_iterations,
            quality_threshold=loop_quality_threshold,
            hook=hook,
            timeout=llm_timeout,
        ),
        build_startup_pitcher(
            llm,
            prompts,
            max_workers=parallel_max_workers,
            acquire_timeout=parallel_acquire_timeout,
            hook=hook,
            timeout=llm_timeout,
        ),
        build_interview_supervisor(
            llm,
            prompts,
            channel,
            max_steps=supervisor_max_steps,
            feedback_timeout=feedback_timeout,
            hook=hook,
            timeout=llm_timeout,
        ),
    ]

    logger.info(f"Built {len(workflows)} workflows")
    return {workflow.name: workflow for workflow in workflows}

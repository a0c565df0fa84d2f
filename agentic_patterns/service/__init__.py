"""
Agentic Patterns service implementation.

Contains the composition engine, the reference workflows and the FastAPI
application (``agentic_patterns.service.main``).
"""

from .agents import AgentCapability, HumanInputAgent, LLMAgent
from .composers import ConditionalComposer, LoopComposer, ParallelComposer, SequenceComposer
from .config import PatternsConfig
from .errors import (
    AgentError,
    CompositionError,
    FeedbackCancelledError,
    FeedbackTimeoutError,
    MissingInputError,
    ModelInvocationError,
    NoMatchingBranchError,
    PlanValidationError,
    ResultParseError,
    WorkerPoolExhaustionError,
    WorkflowCancelledError,
)
from .feedback import ConsoleFeedbackChannel, FeedbackManager, StaticFeedbackChannel
from .scope import Scope
from .supervisor import SupervisorComposer, SupervisorPlan

__all__ = [
    "AgentCapability",
    "LLMAgent",
    "HumanInputAgent",
    "SequenceComposer",
    "ConditionalComposer",
    "LoopComposer",
    "ParallelComposer",
    "SupervisorComposer",
    "SupervisorPlan",
    "PatternsConfig",
    "Scope",
    "ConsoleFeedbackChannel",
    "FeedbackManager",
    "StaticFeedbackChannel",
    "AgentError",
    "CompositionError",
    "MissingInputError",
    "ModelInvocationError",
    "ResultParseError",
    "NoMatchingBranchError",
    "WorkerPoolExhaustionError",
    "PlanValidationError",
    "FeedbackTimeoutError",
    "FeedbackCancelledError",
    "WorkflowCancelledError",
]

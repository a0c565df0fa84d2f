"""
Agentic Patterns: composition engine for LLM-backed agents.

This package provides:
- A shared per-invocation Scope and the Agent contract
- Sequence, conditional, loop, parallel and supervisor composers
- Human-in-the-loop feedback channels
- Five reference workflows exposed over a FastAPI service

Composers are themselves agents, so workflows nest arbitrarily.
"""

__version__ = "1.0.0"
__author__ = "Agentic Framework Team"

from .service.agents import Agent, HumanInputAgent, LLMAgent, log_agent_request
from .service.composers import (
    ConditionalComposer,
    LoopComposer,
    ParallelComposer,
    ScoreThreshold,
    SequenceComposer,
)
from .service.errors import AgentError, CompositionError
from .service.scope import Scope
from .service.supervisor import SupervisorComposer
from .service.workflows import Workflow, build_workflows

__all__ = [
    "Agent",
    "LLMAgent",
    "HumanInputAgent",
    "log_agent_request",
    "SequenceComposer",
    "ConditionalComposer",
    "LoopComposer",
    "ParallelComposer",
    "ScoreThreshold",
    "SupervisorComposer",
    "AgentError",
    "CompositionError",
    "Scope",
    "Workflow",
    "build_workflows",
]

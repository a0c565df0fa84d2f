"""
Error taxonomy for the composition engine.

Runtime failures derive from ``AgentError`` and carry the id of the failing
agent plus a machine-readable ``kind``. Wiring mistakes detected while a
composition is being built raise ``CompositionError`` instead.
"""

from typing import Optional


class AgentError(Exception):
    """Base exception for failures raised while invoking an agent."""

    kind: str = "agent_error"

    def __init__(self, message: str, agent_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.agent_id = agent_id

    def __str__(self) -> str:
        if self.agent_id:
            return f"[{self.agent_id}] {self.message}"
        return self.message


class MissingInputError(AgentError):
    """Raised when a required Scope key is absent and no default is declared."""

    kind = "missing_input"

    def __init__(self, key: str, agent_id: Optional[str] = None) -> None:
        super().__init__(f"Required input '{key}' not found in scope", agent_id)
        self.key = key


class ModelInvocationError(AgentError):
    """Raised when the external language-model service fails."""

    kind = "model_invocation"

    def __init__(
        self,
        message: str,
        agent_id: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, agent_id)
        self.original_error = original_error


class ResultParseError(AgentError):
    """Raised when a leaf agent's raw output fails its type coercion."""

    kind = "result_parse"

    def __init__(self, raw: str, expected: str, agent_id: Optional[str] = None) -> None:
        super().__init__(f"Cannot parse {raw!r} as {expected}", agent_id)
        self.raw = raw
        self.expected = expected


class NoMatchingBranchError(AgentError):
    """Raised when a conditional composer finds no matching branch and has no default."""

    kind = "no_matching_branch"


class WorkerPoolExhaustionError(AgentError):
    """Raised when a parallel sub-agent cannot obtain a worker in time."""

    kind = "worker_pool_exhaustion"


class PlanValidationError(AgentError):
    """Raised when a supervisor plan does not match the capability table."""

    kind = "plan_validation"


class FeedbackTimeoutError(AgentError):
    """Raised when a configured human-input timeout elapses."""

    kind = "feedback_timeout"


class FeedbackCancelledError(AgentError):
    """Raised when a pending human-input request is cancelled."""

    kind = "feedback_cancelled"


class WorkflowCancelledError(AgentError):
    """Raised when a workflow invocation is cancelled between agent invocations."""

    kind = "cancelled"


class CompositionError(Exception):
    """Raised at build time when a composition is wired incorrectly."""

    pass

"""
Shared per-invocation state for agent compositions.

A ``Scope`` is created at the start of one workflow invocation, passed by
reference to every composer and agent, and discarded (or handed back to the
caller) when the invocation ends. Scopes are never shared across invocations.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .errors import WorkflowCancelledError

logger = logging.getLogger(__name__)


class AgentInvocation(BaseModel):
    """One entry of the per-scope invocation trace."""

    sequence: int = Field(..., ge=0, description="Order of the invocation within the scope")
    agent_id: str = Field(..., description="ID of the invoked leaf agent")
    invoked_at: datetime = Field(default_factory=datetime.utcnow)


def _matches_default_type(value: Any, default: Any) -> bool:
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, type(default))


class Scope:
    """
    Key/value store shared by all agents of a single workflow invocation.

    Reads are permissive: ``read_state`` falls back to the supplied default when
    a key is absent or holds a value of a different type, and never raises.
    Writes are last-writer-wins.
    """

    def __init__(
        self,
        initial: Optional[Mapping[str, Any]] = None,
        invocation_id: Optional[str] = None,
    ) -> None:
        """
        Initialize a scope.

        Args:
            initial: Initial state, typically the workflow's call-time arguments
            invocation_id: Identifier of the workflow invocation (generated if omitted)
        """
        self.invocation_id = invocation_id or str(uuid4())
        self._state: Dict[str, Any] = dict(initial or {})
        self.trace: List[AgentInvocation] = []
        self._cancelled = False

    def read_state(self, key: str, default: Any = None) -> Any:
        """
        Read a value from the scope.

        Args:
            key: State key
            default: Value returned when the key is absent or of a mismatched type

        Returns:
            The stored value, or ``default``
        """
        if key not in self._state:
            return default

        value = self._state[key]
        if default is None or _matches_default_type(value, default):
            if isinstance(default, float) and isinstance(value, int):
                return float(value)
            return value

        logger.debug(
            f"Scope {self.invocation_id}: '{key}' holds {type(value).__name__}, "
            f"expected {type(default).__name__}; returning default"
        )
        return default

    def write_state(self, key: str, value: Any) -> None:
        """Write a value into the scope, replacing any previous value."""
        self._state[key] = value

    def has_state(self, key: str) -> bool:
        """Return True if the key is present (even if its value is None)."""
        return key in self._state

    def snapshot(self) -> Dict[str, Any]:
        """Return a shallow copy of the current state."""
        return dict(self._state)

    def record_invocation(self, agent_id: str) -> AgentInvocation:
        """Append a leaf invocation to the trace."""
        entry = AgentInvocation(sequence=len(self.trace), agent_id=agent_id)
        self.trace.append(entry)
        return entry

    def invoked_agents(self) -> List[str]:
        """Agent ids in invocation order."""
        return [entry.agent_id for entry in self.trace]

    def cancel(self) -> None:
        """Request cancellation; honoured at the next agent boundary."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, agent_id: Optional[str] = None) -> None:
        if self._cancelled:
            raise WorkflowCancelledError(
                f"Invocation {self.invocation_id} was cancelled", agent_id
            )

    def __contains__(self, key: object) -> bool:
        return key in self._state

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._state))

    def __len__(self) -> int:
        return len(self._state)

    def __repr__(self) -> str:
        return f"Scope(invocation_id={self.invocation_id!r}, keys={sorted(self._state)})"

"""
Control-flow composers.

Each composer is itself an ``Agent``, so compositions nest freely: a loop body
may contain a parallel block, a conditional branch may be a sequence, and so
on. Wiring mistakes are rejected in the constructors with ``CompositionError``;
runtime failures propagate fail-fast as ``AgentError`` with no retries.
"""

import logging
from enum import Enum
from typing import (
    Any,
    Callable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
)

import anyio

from .agents import Agent
from .errors import (
    AgentError,
    CompositionError,
    NoMatchingBranchError,
    WorkerPoolExhaustionError,
)
from .scope import Scope

logger = logging.getLogger(__name__)

Predicate = Callable[[Scope], bool]
Combiner = Callable[[Scope], Any]


def external_inputs(agents: Iterable[Agent]) -> Tuple[str, ...]:
    """Inputs of a chain that are not produced by an earlier member of the chain."""
    produced: Set[str] = set()
    inputs: List[str] = []
    for agent in agents:
        for key in agent.input_keys:
            if key not in produced and key not in inputs:
                inputs.append(key)
        produced.add(agent.output_key)
    return tuple(inputs)


def _require_agents(name: str, agents: Sequence[Agent]) -> List[Agent]:
    agents = list(agents)
    if not agents:
        raise CompositionError(f"Composer '{name}' needs at least one sub-agent")
    return agents


class ScoreThreshold:
    """Exit predicate: the numeric value under ``key`` is at least ``threshold``."""

    def __init__(self, key: str, threshold: float, default: float = 0.0) -> None:
        self.key = key
        self.threshold = threshold
        self.default = default

    @property
    def keys(self) -> Tuple[str, ...]:
        return (self.key,)

    def __call__(self, scope: Scope) -> bool:
        return scope.read_state(self.key, self.default) >= self.threshold

    def __repr__(self) -> str:
        return f"ScoreThreshold({self.key!r} >= {self.threshold})"


class SequenceComposer(Agent):
    """
    Runs sub-agents in declared order against one scope, stopping at the
    first failure.

    The composer's result is read from ``result_key`` (the last sub-agent's
    output key by default) and aliased to its own ``output_key``.
    """

    def __init__(
        self,
        name: str,
        agents: Sequence[Agent],
        output_key: Optional[str] = None,
        result_key: Optional[str] = None,
        description: str = "",
    ) -> None:
        self.agents = _require_agents(name, agents)
        self.result_key = result_key or self.agents[-1].output_key

        produced = {agent.output_key for agent in self.agents}
        if self.result_key not in produced:
            raise CompositionError(
                f"Sequence '{name}' result key '{self.result_key}' is not written by any sub-agent"
            )

        super().__init__(
            name,
            output_key or self.result_key,
            external_inputs(self.agents),
            description,
        )

    def sub_agents(self) -> List[Agent]:
        return list(self.agents)

    async def invoke(self, scope: Scope) -> Any:
        logger.info(f"Sequence '{self.name}' starting ({len(self.agents)} agents)")

        for index, agent in enumerate(self.agents):
            scope.raise_if_cancelled(self.name)
            logger.debug(f"Sequence '{self.name}' step {index}: {agent.name}")
            await agent.invoke(scope)

        value = scope.read_state(self.result_key)
        if self.output_key != self.result_key:
            scope.write_state(self.output_key, value)

        logger.info(f"Sequence '{self.name}' completed")
        return value


class ConditionalComposer(Agent):
    """
    Dispatches to exactly one branch: the first whose predicate holds, else
    the default branch, else ``NoMatchingBranchError``.
    """

    def __init__(
        self,
        name: str,
        branches: Sequence[Tuple[Predicate, Agent]],
        output_key: str,
        default: Optional[Agent] = None,
        input_keys: Sequence[str] = (),
        description: str = "",
    ) -> None:
        self.branches: List[Tuple[Predicate, Agent]] = list(branches)
        self.default = default
        if not self.branches and default is None:
            raise CompositionError(f"Conditional '{name}' has no branches")

        # Branches are alternatives; no branch sees another branch's output.
        inputs = list(input_keys)
        for agent in self._branch_agents():
            for key in agent.input_keys:
                if key not in inputs:
                    inputs.append(key)

        super().__init__(name, output_key, inputs, description)

    @classmethod
    def on_enum(
        cls,
        name: str,
        discriminant_key: str,
        enum_type: Type[Enum],
        table: Mapping[Enum, Agent],
        output_key: str,
        default: Optional[Agent] = None,
        description: str = "",
    ) -> "ConditionalComposer":
        """
        Build a conditional over an enumerated discriminant.

        The table must cover every member of ``enum_type`` unless a default
        branch is given; members are tried in enum declaration order.
        """
        foreign = [key for key in table if not isinstance(key, enum_type)]
        if foreign:
            raise CompositionError(
                f"Conditional '{name}' table has keys outside {enum_type.__name__}: {foreign}"
            )

        missing = [member.name for member in enum_type if member not in table]
        if missing and default is None:
            raise CompositionError(
                f"Conditional '{name}' does not cover {enum_type.__name__} "
                f"members {missing} and has no default branch"
            )

        def matches(member: Enum) -> Predicate:
            return lambda scope: _as_member(scope.read_state(discriminant_key), enum_type) is member

        branches = [(matches(member), table[member]) for member in enum_type if member in table]
        return cls(
            name,
            branches,
            output_key,
            default=default,
            input_keys=[discriminant_key],
            description=description,
        )

    def _branch_agents(self) -> List[Agent]:
        agents = [agent for _, agent in self.branches]
        if self.default is not None:
            agents.append(self.default)
        return agents

    def sub_agents(self) -> List[Agent]:
        return self._branch_agents()

    def select(self, scope: Scope) -> Optional[Agent]:
        for predicate, agent in self.branches:
            if predicate(scope):
                return agent
        return self.default

    async def invoke(self, scope: Scope) -> Any:
        branch = self.select(scope)
        if branch is None:
            logger.error(f"Conditional '{self.name}' found no matching branch")
            raise NoMatchingBranchError("No branch matched and no default is configured", self.name)

        logger.info(f"Conditional '{self.name}' dispatching to '{branch.name}'")
        value = await branch.invoke(scope)

        if branch.output_key != self.output_key:
            scope.write_state(self.output_key, value)
        return value


def _as_member(value: Any, enum_type: Type[Enum]) -> Optional[Enum]:
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        candidate = value.strip().lower()
        for member in enum_type:
            if candidate in (member.name.lower(), str(member.value).lower()):
                return member
    return None


class LoopComposer(Agent):
    """
    Repeats a body sequence until the exit predicate holds or
    ``max_iterations`` bodies have run.

    Reaching the ceiling is success; the last computed state stands. The
    number of completed iterations is written under ``<name>.iterations``.
    """

    def __init__(
        self,
        name: str,
        body: Sequence[Agent],
        exit_predicate: Predicate,
        max_iterations: int,
        output_key: Optional[str] = None,
        result_key: Optional[str] = None,
        description: str = "",
    ) -> None:
        self.body = _require_agents(name, body)
        if max_iterations < 1:
            raise CompositionError(f"Loop '{name}' max_iterations must be >= 1, got {max_iterations}")

        produced = {agent.output_key for agent in self.body}
        # A predicate over keys the body never writes cannot change between iterations.
        unwritten = [key for key in getattr(exit_predicate, "keys", ()) if key not in produced]
        if unwritten:
            raise CompositionError(
                f"Loop '{name}' exit predicate reads {unwritten}, which no body agent writes"
            )

        self.exit_predicate = exit_predicate
        self.max_iterations = max_iterations
        self.result_key = result_key or self.body[-1].output_key
        if self.result_key not in produced:
            raise CompositionError(
                f"Loop '{name}' result key '{self.result_key}' is not written by any body agent"
            )

        super().__init__(
            name,
            output_key or self.result_key,
            external_inputs(self.body),
            description,
        )

    @property
    def iterations_key(self) -> str:
        return f"{self.name}.iterations"

    def sub_agents(self) -> List[Agent]:
        return list(self.body)

    async def invoke(self, scope: Scope) -> Any:
        iteration = 0
        while iteration < self.max_iterations:
            iteration += 1
            logger.info(f"Loop '{self.name}' iteration {iteration}/{self.max_iterations}")

            for agent in self.body:
                scope.raise_if_cancelled(self.name)
                await agent.invoke(scope)
            scope.write_state(self.iterations_key, iteration)

            if self.exit_predicate(scope):
                logger.info(f"Loop '{self.name}' exit condition met after {iteration} iterations")
                break
        else:
            logger.warning(
                f"Loop '{self.name}' reached max iterations ({self.max_iterations}) "
                f"without meeting exit condition"
            )

        value = scope.read_state(self.result_key)
        if self.output_key != self.result_key:
            scope.write_state(self.output_key, value)
        return value


class ParallelComposer(Agent):
    """
    Fork/join block: runs independent sub-agents concurrently, waits for all
    of them, then reduces the scope with ``combiner``.

    At most ``max_workers`` sub-agents run at once; the limiter is owned by
    the composer and shared by every concurrent invocation of it. A failing
    sub-agent does not cancel its siblings. After the barrier the first
    failure in declared order is raised and the combiner does not run.
    """

    def __init__(
        self,
        name: str,
        agents: Sequence[Agent],
        combiner: Combiner,
        output_key: str,
        max_workers: Optional[int] = None,
        acquire_timeout: Optional[float] = None,
        description: str = "",
    ) -> None:
        """
        Initialize a parallel block.

        Args:
            name: Composer identity
            agents: Sub-agents with disjoint output keys
            combiner: Builds the block's result from the populated scope
            output_key: Scope key receiving the combined result
            max_workers: Worker pool size (defaults to the number of sub-agents)
            acquire_timeout: Seconds to wait for a free worker (None = unbounded)
            description: Capability summary
        """
        self.agents = _require_agents(name, agents)

        output_keys = [agent.output_key for agent in self.agents]
        duplicates = sorted({key for key in output_keys if output_keys.count(key) > 1})
        if duplicates:
            raise CompositionError(f"Parallel '{name}' sub-agents share output keys {duplicates}")

        for agent in self.agents:
            dependencies = [
                key for key in agent.input_keys
                if key in output_keys and key != agent.output_key
            ]
            if dependencies:
                raise CompositionError(
                    f"Parallel '{name}' sub-agent '{agent.name}' reads sibling outputs {dependencies}"
                )

        if output_key in output_keys:
            raise CompositionError(
                f"Parallel '{name}' output key '{output_key}' collides with a sub-agent output"
            )

        self.max_workers = max_workers if max_workers is not None else len(self.agents)
        if self.max_workers < 1:
            raise CompositionError(f"Parallel '{name}' max_workers must be >= 1")

        self.combiner = combiner
        self.acquire_timeout = acquire_timeout
        self._limiter: Optional[anyio.CapacityLimiter] = None

        inputs: List[str] = []
        for agent in self.agents:
            inputs.extend(key for key in agent.input_keys if key not in inputs)
        super().__init__(name, output_key, inputs, description)

    def sub_agents(self) -> List[Agent]:
        return list(self.agents)

    @property
    def limiter(self) -> anyio.CapacityLimiter:
        # Created on first use so it binds to a running event loop.
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self.max_workers)
        return self._limiter

    async def _acquire(self, agent: Agent) -> None:
        if self.acquire_timeout is None:
            await self.limiter.acquire()
            return
        try:
            with anyio.fail_after(self.acquire_timeout):
                await self.limiter.acquire()
        except TimeoutError:
            raise WorkerPoolExhaustionError(
                f"No worker available within {self.acquire_timeout}s "
                f"(pool size {self.max_workers})",
                agent.name,
            )

    async def invoke(self, scope: Scope) -> Any:
        failures: List[Optional[Exception]] = [None] * len(self.agents)

        async def run(index: int, agent: Agent) -> None:
            try:
                await self._acquire(agent)
                try:
                    await agent.invoke(scope)
                finally:
                    self.limiter.release()
            except Exception as e:
                logger.warning(f"Parallel '{self.name}' sub-agent '{agent.name}' failed: {e}")
                failures[index] = e

        logger.info(
            f"Parallel '{self.name}' dispatching {len(self.agents)} agents "
            f"(max_workers={self.max_workers})"
        )
        async with anyio.create_task_group() as tg:
            for index, agent in enumerate(self.agents):
                tg.start_soon(run, index, agent)

        for error in failures:
            if error is not None:
                logger.error(f"Parallel '{self.name}' failed, combiner skipped")
                raise error

        try:
            value = self.combiner(scope)
        except Exception as e:
            logger.error(f"Parallel '{self.name}' combiner failed: {e}")
            raise AgentError(f"Combiner failed: {e}", self.name) from e

        scope.write_state(self.output_key, value)
        logger.info(f"Parallel '{self.name}' completed")
        return value

"""
Agent contract and leaf agents.

Every unit of work, leaf or composite, is an ``Agent``: it reads declared input
keys from a ``Scope`` and, on success, writes exactly one output key. Leaf
agents are the only ones that reach external collaborators (the language-model
service or a human-feedback channel) and the only ones that fire
``before_invocation`` hooks.
"""

import logging
import re
import string
from abc import ABC, abstractmethod
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

import anyio
from pydantic import BaseModel, Field

from adapters.llm import LLMAdapter

from .errors import (
    AgentError,
    CompositionError,
    FeedbackTimeoutError,
    MissingInputError,
    ModelInvocationError,
    ResultParseError,
)
from .scope import Scope

if TYPE_CHECKING:
    from .feedback import FeedbackChannel

logger = logging.getLogger(__name__)

BeforeInvocationHook = Callable[[str], None]
ResultType = Union[Type[str], Type[int], Type[float], Type[bool], Type[Enum]]

_NUMBER_LITERAL = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INTEGER_LITERAL = re.compile(r"^[+-]?\d+$")


def log_agent_request(agent_id: str) -> None:
    """Default instrumentation hook: log every leaf invocation."""
    logger.info(f"Received request for agent: {agent_id}")


class AgentCapability(BaseModel):
    """Declared capabilities of an agent, as shown to a supervisor planner."""

    name: str = Field(..., description="Agent name, used as the plan step identifier")
    description: str = Field(..., description="What the agent does")
    input_keys: List[str] = Field(default_factory=list, description="Scope keys it reads")
    output_key: str = Field(..., description="Scope key it writes")


class PromptTemplate:
    """
    Static prompt text with ``str.format`` style named placeholders.

    Literal braces are written doubled (``{{`` / ``}}``).
    """

    def __init__(self, template: str) -> None:
        self.template = template
        self.fields: Tuple[str, ...] = self._parse_fields(template)

    @staticmethod
    def _parse_fields(template: str) -> Tuple[str, ...]:
        fields: List[str] = []
        try:
            parsed = list(string.Formatter().parse(template))
        except ValueError as e:
            raise CompositionError(f"Malformed prompt template: {e}")

        for _, field_name, _, _ in parsed:
            if field_name is None:
                continue
            if not field_name.isidentifier():
                raise CompositionError(
                    f"Prompt placeholder '{{{field_name}}}' must be a plain name"
                )
            if field_name not in fields:
                fields.append(field_name)
        return tuple(fields)

    def render(self, values: Mapping[str, Any]) -> str:
        return self.template.format(**{key: as_text(values[key]) for key in self.fields})


def as_text(value: Any) -> str:
    """Render a scope value for inclusion in a prompt."""
    if isinstance(value, Enum):
        return value.name
    if value is None:
        return ""
    return str(value)


def coerce_result(raw: str, result_type: ResultType, agent_id: Optional[str] = None) -> Any:
    """
    Coerce a model's raw text into the agent's declared result type.

    Numeric types expect a bare literal; only surrounding whitespace is
    tolerated. Enums match a member name or value, case-insensitively.

    Raises:
        ResultParseError: If the text cannot be coerced
    """
    text = (raw or "").strip()

    if result_type is str:
        return text

    if result_type is bool:
        lowered = text.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        logger.error(f"Agent '{agent_id}' returned non-boolean literal: {raw!r}")
        raise ResultParseError(raw, "bool", agent_id)

    if result_type is int:
        if _INTEGER_LITERAL.match(text):
            return int(text)
        logger.error(f"Agent '{agent_id}' returned non-integer literal: {raw!r}")
        raise ResultParseError(raw, "int", agent_id)

    if result_type is float:
        if _NUMBER_LITERAL.match(text):
            return float(text)
        logger.error(f"Agent '{agent_id}' returned non-numeric literal: {raw!r}")
        raise ResultParseError(raw, "float", agent_id)

    if isinstance(result_type, type) and issubclass(result_type, Enum):
        candidate = text.strip("'\"`").strip().lower()
        for member in result_type:
            if candidate == member.name.lower() or candidate == str(member.value).lower():
                return member
        logger.error(f"Agent '{agent_id}' returned unknown {result_type.__name__}: {raw!r}")
        raise ResultParseError(raw, result_type.__name__, agent_id)

    raise CompositionError(f"Unsupported result type: {result_type!r}")


def _as_hook_list(
    hooks: Optional[Union[BeforeInvocationHook, Sequence[BeforeInvocationHook]]],
) -> List[BeforeInvocationHook]:
    if hooks is None:
        return []
    if callable(hooks):
        return [hooks]
    return list(hooks)


class Agent(ABC):
    """
    Abstract base class for leaf agents and composers.

    Subclasses implement ``invoke``: on success the value written under
    ``output_key`` is returned; on failure an ``AgentError`` is raised.
    """

    def __init__(
        self,
        name: str,
        output_key: str,
        input_keys: Sequence[str] = (),
        description: str = "",
        before_invocation: Optional[
            Union[BeforeInvocationHook, Sequence[BeforeInvocationHook]]
        ] = None,
    ) -> None:
        """
        Initialize the agent.

        Args:
            name: Stable identity used for instrumentation and logging
            output_key: Scope key written on success
            input_keys: Scope keys read, in declaration order
            description: Human-readable capability summary
            before_invocation: Hook(s) called with the agent id before each leaf call
        """
        if not name:
            raise CompositionError("Agent name must not be empty")
        if not output_key:
            raise CompositionError(f"Agent '{name}' must declare an output key")

        self.name = name
        self.output_key = output_key
        self.input_keys: Tuple[str, ...] = tuple(input_keys)
        self.description = description or name
        self.before_invocation = _as_hook_list(before_invocation)

    @property
    def agent_id(self) -> str:
        return self.name

    @abstractmethod
    async def invoke(self, scope: Scope) -> Any:
        """
        Run the agent against a scope.

        Returns:
            The value written under ``output_key``

        Raises:
            AgentError: On any failure
        """

    def sub_agents(self) -> List["Agent"]:
        return []

    def iter_leaves(self) -> Iterator["Agent"]:
        children = self.sub_agents()
        if not children:
            yield self
            return
        for child in children:
            yield from child.iter_leaves()

    def add_before_invocation(self, hook: BeforeInvocationHook) -> "Agent":
        """Attach a hook to this agent, or to every leaf below a composer."""
        for leaf in self.iter_leaves():
            leaf.before_invocation.append(hook)
        return self

    def capability(self) -> AgentCapability:
        return AgentCapability(
            name=self.name,
            description=self.description,
            input_keys=list(self.input_keys),
            output_key=self.output_key,
        )

    def _instrument(self, scope: Scope) -> None:
        """Fire hooks and record the invocation; hook failures never abort the call."""
        for hook in self.before_invocation:
            try:
                hook(self.name)
            except Exception as e:
                logger.warning(f"Instrumentation hook failed for agent '{self.name}': {e}")
        scope.record_invocation(self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, output_key={self.output_key!r})"


class LeafAgent(Agent):
    """Agent with a prompt template rendered from declared scope inputs."""

    def __init__(
        self,
        name: str,
        prompt_template: str,
        output_key: str,
        input_keys: Optional[Sequence[str]] = None,
        defaults: Optional[Mapping[str, Any]] = None,
        description: str = "",
        before_invocation: Optional[
            Union[BeforeInvocationHook, Sequence[BeforeInvocationHook]]
        ] = None,
    ) -> None:
        self.prompt = PromptTemplate(prompt_template)
        declared = tuple(input_keys) if input_keys is not None else self.prompt.fields

        undeclared = [key for key in self.prompt.fields if key not in declared]
        if undeclared:
            raise CompositionError(
                f"Agent '{name}' template uses undeclared inputs: {undeclared}"
            )

        super().__init__(name, output_key, declared, description, before_invocation)
        self.defaults: Dict[str, Any] = dict(defaults or {})

    def resolve_inputs(self, scope: Scope) -> Dict[str, Any]:
        """
        Collect declared inputs from the scope.

        Raises:
            MissingInputError: If a key is absent and has no declared default
        """
        values: Dict[str, Any] = {}
        for key in self.input_keys:
            value = scope.read_state(key)
            if value is not None:
                values[key] = value
            elif key in self.defaults:
                values[key] = self.defaults[key]
            else:
                logger.error(f"Agent '{self.name}' missing required input '{key}'")
                raise MissingInputError(key, self.name)
        return values

    def render(self, scope: Scope) -> str:
        return self.prompt.render(self.resolve_inputs(scope))


class LLMAgent(LeafAgent):
    """
    Leaf agent backed by the language-model service.

    Renders its prompt, sends it to the model once (no retries), coerces the
    reply to ``result_type`` and writes it under ``output_key``.
    """

    def __init__(
        self,
        name: str,
        llm: LLMAdapter,
        prompt_template: str,
        output_key: str,
        result_type: ResultType = str,
        input_keys: Optional[Sequence[str]] = None,
        system_message: Optional[str] = None,
        defaults: Optional[Mapping[str, Any]] = None,
        description: str = "",
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        before_invocation: Optional[
            Union[BeforeInvocationHook, Sequence[BeforeInvocationHook]]
        ] = None,
    ) -> None:
        """
        Initialize an LLM-backed agent.

        Args:
            name: Agent identity
            llm: Model adapter used for the single chat call
            prompt_template: Template with ``{name}`` placeholders
            output_key: Scope key receiving the coerced reply
            result_type: str, int, float, bool or an Enum subclass
            input_keys: Inputs to read (derived from the template if omitted)
            system_message: Optional system instruction sent with the prompt
            defaults: Values used for inputs absent from the scope
            description: Capability summary shown to supervisors
            temperature: Sampling temperature override
            timeout: Model request timeout in seconds
            before_invocation: Instrumentation hook(s)
        """
        super().__init__(
            name,
            prompt_template,
            output_key,
            input_keys=input_keys,
            defaults=defaults,
            description=description,
            before_invocation=before_invocation,
        )
        if not (
            result_type in (str, int, float, bool)
            or (isinstance(result_type, type) and issubclass(result_type, Enum))
        ):
            raise CompositionError(f"Agent '{name}' has unsupported result type {result_type!r}")

        self.llm = llm
        self.result_type = result_type
        self.system_message = system_message
        self.temperature = temperature
        self.timeout = timeout

    async def invoke(self, scope: Scope) -> Any:
        self._instrument(scope)
        prompt = self.render(scope)

        logger.debug(f"Agent '{self.name}' prompt ({len(prompt)} chars)")
        try:
            raw = await self.llm.chat(
                prompt,
                system_message=self.system_message,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Model invocation failed for agent '{self.name}': {e}")
            raise ModelInvocationError(f"Model invocation failed: {e}", self.name, e) from e

        value = coerce_result(raw, self.result_type, self.name)
        scope.write_state(self.output_key, value)
        return value


class HumanInputAgent(LeafAgent):
    """
    Leaf agent that blocks until a human answers through a feedback channel.

    No timeout applies unless ``timeout`` is configured.
    """

    def __init__(
        self,
        name: str,
        channel: "FeedbackChannel",
        output_key: str = "humanFeedback",
        prompt_template: str = "{request}",
        input_keys: Optional[Sequence[str]] = None,
        defaults: Optional[Mapping[str, Any]] = None,
        description: str = "Collects feedback from a human reviewer",
        timeout: Optional[float] = None,
        before_invocation: Optional[
            Union[BeforeInvocationHook, Sequence[BeforeInvocationHook]]
        ] = None,
    ) -> None:
        super().__init__(
            name,
            prompt_template,
            output_key,
            input_keys=input_keys,
            defaults=defaults,
            description=description,
            before_invocation=before_invocation,
        )
        self.channel = channel
        self.timeout = timeout

    async def invoke(self, scope: Scope) -> Any:
        self._instrument(scope)
        prompt = self.render(scope)

        ticket = await self.channel.request(prompt, scope.invocation_id)
        logger.info(f"Agent '{self.name}' waiting for human input (ticket {ticket})")

        try:
            if self.timeout is None:
                response = await self.channel.await_response(ticket)
            else:
                with anyio.fail_after(self.timeout):
                    response = await self.channel.await_response(ticket)
        except TimeoutError:
            await self.channel.abandon(ticket)
            raise FeedbackTimeoutError(
                f"No human input received within {self.timeout}s", self.name
            )
        except AgentError as e:
            if e.agent_id is None:
                e.agent_id = self.name
            raise

        value = (response or "").strip()
        scope.write_state(self.output_key, value)
        return value

import dataclasses
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from context_budget.exceptions.config import ValidationError

# --- 0. Roles & Call Styles ---


class Role(str, Enum):
    """Message author roles, valued with the label the provider bills."""

    USER = "user"
    ASSISTANT = "assistant"
    DEVELOPER = "developer"
    SYSTEM = "system"
    TOOL = "tool"  # tool-call result
    FUNCTION = "function"  # legacy function-call result


class CallType(str, Enum):
    """
    Which call style a model supports.
    Closed set: descriptors are costed as functions, as tools, or not at all.
    """

    NONE = "none"
    FUNCTIONS = "functions"
    TOOLS = "tools"


# --- 1. Message Parts ---


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class FilePart:
    """Non-text content (image, audio, document). Not costed by the counter."""

    uri: str
    content_type: str = "image"


MessagePart = Union[TextPart, FilePart]


def _arguments_to_text(arguments: Union[str, Mapping[str, Any], None]) -> str:
    if arguments is None:
        return ""
    if isinstance(arguments, str):
        stripped = arguments.strip()
        return "" if stripped in ("", "{}") else arguments
    if not arguments:
        return ""
    return json.dumps(dict(arguments), separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class FunctionCall:
    """Legacy single function call carried by an assistant message."""

    name: str
    arguments: Union[str, Mapping[str, Any], None] = None

    @property
    def arguments_text(self) -> str:
        return _arguments_to_text(self.arguments)


@dataclass(frozen=True)
class ToolCall:
    """One entry of a parallel tool-call message. The id is never billed."""

    id: str
    name: str
    arguments: Union[str, Mapping[str, Any], None] = None
    type: str = "function"

    @property
    def arguments_text(self) -> str:
        return _arguments_to_text(self.arguments)

    @property
    def has_arguments(self) -> bool:
        return bool(self.arguments_text)


@dataclass(frozen=True)
class ToolCallResult:
    tool_call_id: str
    result: str


# --- 2. Messages ---


@dataclass(frozen=True)
class Message:
    """
    Atomic conversation unit. Immutable once constructed.

    Attributes:
        role: Who authored the message.
        parts: Content parts; only text parts are billed.
        name: Optional participant name.
        tool_calls: Parallel tool calls (assistant only).
        function_call: Legacy function call (assistant only).
        tool_call_results: Results answering earlier tool calls.
    """

    role: Role
    parts: Tuple[MessagePart, ...] = ()
    name: Optional[str] = None
    tool_calls: Tuple[ToolCall, ...] = ()
    function_call: Optional[FunctionCall] = None
    tool_call_results: Tuple[ToolCallResult, ...] = ()

    @classmethod
    def of(cls, role: Union[Role, str], text: Optional[str] = None, **kwargs) -> "Message":
        parts = (TextPart(text),) if text is not None else ()
        return cls(role=Role(role), parts=parts, **kwargs)

    @property
    def text(self) -> Optional[str]:
        """Concatenated text parts, or None for a message with no text."""
        texts = [p.text for p in self.parts if isinstance(p, TextPart)]
        if not texts:
            return None
        return "".join(texts)

    @property
    def is_tool_result(self) -> bool:
        return self.role == Role.TOOL or bool(self.tool_call_results)

    @property
    def has_calls(self) -> bool:
        return bool(self.tool_calls) or self.function_call is not None


@dataclass(frozen=True)
class ToolDescriptor:
    """
    Tool/function description sent along with a request.

    `parameters` is a JSON-schema style object whose `properties` map
    parameter names to their `type`, `description` and `enum` metadata.
    """

    name: str
    description: Optional[str] = None
    parameters: Optional[Mapping[str, Any]] = None

    @property
    def properties(self) -> Dict[str, Mapping[str, Any]]:
        if not self.parameters:
            return {}
        return dict(self.parameters.get("properties") or {})


# --- 3. Limits & Budgets ---


@dataclass(frozen=True)
class ConversationLimits:
    """
    Per-conversation ceilings.

    max_conversation_tokens of None means unbounded (the counter is then
    never invoked while trimming).
    """

    max_conversation_steps: int = 2**31 - 1
    max_conversation_tokens: Optional[int] = None
    max_history_length: int = 1000

    def __post_init__(self):
        if self.max_conversation_steps < 1:
            raise ValidationError(
                "Must keep at least 1 message.",
                field_name="max_conversation_steps",
                invalid_value=self.max_conversation_steps,
            )
        if self.max_conversation_tokens is not None and self.max_conversation_tokens < 1:
            raise ValidationError(
                "Must keep at least 1 token.",
                field_name="max_conversation_tokens",
                invalid_value=self.max_conversation_tokens,
            )
        if self.max_history_length < 0:
            raise ValidationError(
                "History length cannot be negative.",
                field_name="max_history_length",
                invalid_value=self.max_history_length,
            )


@dataclass(frozen=True)
class Budget:
    model_context_size: int
    reserved_output_tokens: int = 0

    @property
    def available_prompt_tokens(self) -> int:
        return max(0, self.model_context_size - self.reserved_output_tokens)


# --- 4. Retrieval ---


@dataclass(frozen=True)
class RetrievedPassage:
    text: str
    source_ref: str
    score: float = 0.0


@dataclass(frozen=True)
class PackedPassage:
    passage: RetrievedPassage
    relevance: Optional[float] = None


@dataclass(frozen=True)
class PackedContext:
    """Passages actually committed to a prompt, in commit (or relevance) order."""

    text: str = ""
    passages: Tuple[PackedPassage, ...] = ()
    strong_threshold: float = 0.85

    @property
    def is_empty(self) -> bool:
        return not self.passages

    def strong_references(self) -> Tuple[PackedPassage, ...]:
        return tuple(
            p
            for p in self.passages
            if p.relevance is not None and p.relevance > self.strong_threshold
        )

    def relevance_by_source(self) -> Dict[str, float]:
        """Weights keyed by source, for the caller to persist for citations."""
        return {
            p.passage.source_ref: p.relevance
            for p in self.passages
            if p.relevance is not None
        }


# --- 5. Generation ---


@dataclass(frozen=True)
class GenerationRequest:
    """
    One call to the external Generate capability.

    `tool_form` says how `tools` are billed; it normally follows the
    model's supported call type.
    """

    model: str
    messages: Tuple[Message, ...]
    tools: Tuple[ToolDescriptor, ...] = ()
    tool_form: CallType = CallType.TOOLS
    max_output_tokens: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)


def lower(request: GenerationRequest, new_cap: int) -> GenerationRequest:
    """Return a copy of `request` whose output cap is `new_cap`."""
    return dataclasses.replace(request, max_output_tokens=new_cap)


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int
    completion_tokens: int = 0


@dataclass(frozen=True)
class GenerationResponse:
    message: Message
    usage: Optional[Usage] = None
    finish_reason: str = "completed"

    @property
    def text(self) -> str:
        return self.message.text or ""


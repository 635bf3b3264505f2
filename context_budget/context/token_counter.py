"""
Token Counter
=============
Exact billed token count for structured chat payloads.

The provider does not document how it bills roles, participant names, tool
calls and tool descriptors. The constants below were measured against the
usage it reports and must be kept exactly as they are: simplifying the
formula breaks the count for the affected model families.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

from context_budget.model_manager.catalog import DEFAULT_CATALOG, ModelCatalog
from context_budget.structs import (
    CallType,
    GenerationRequest,
    Message,
    Role,
    ToolDescriptor,
)
from context_budget.utils.encoders import Encoder

logger = logging.getLogger(__name__)

REQUEST_EPILOGUE_TOKENS = 3


@dataclass(frozen=True)
class FamilyCorrection:
    """
    Per-family adjustments to a message cost.

    `*_first` applies to the first message of the counted list, `*_rest`
    to every other one; `assistant` is added to assistant messages and
    `positive_total` to a non-zero list total.
    """

    prefix: str
    named_first: int = 0
    named_rest: int = 0
    unnamed_first: int = 0
    unnamed_rest: int = 0
    assistant: int = 0
    positive_total: int = 0


NO_CORRECTION = FamilyCorrection(prefix="")

FAMILY_CORRECTIONS = (
    FamilyCorrection(
        "o1-mini",
        named_first=-6 + 11,
        named_rest=11,
        unnamed_first=2,
        unnamed_rest=8,
        positive_total=-1,
    ),
    FamilyCorrection(
        "o1-preview",
        named_first=-7 + 11,
        named_rest=11,
        unnamed_first=1,
        unnamed_rest=8,
    ),
    FamilyCorrection("o1", named_first=-1, unnamed_first=-1),
    FamilyCorrection("o3-mini", named_first=-1, unnamed_first=-1),
    FamilyCorrection("o3", named_first=-1, unnamed_first=-1, assistant=2),
    FamilyCorrection("o4-mini", named_first=-1, unnamed_first=-1, assistant=2),
)


def correction_for(model: str) -> FamilyCorrection:
    """Most specific family prefix matching `model`, or no correction."""
    best = NO_CORRECTION
    for family in FAMILY_CORRECTIONS:
        if model.startswith(family.prefix) and len(family.prefix) > len(best.prefix):
            best = family
    return best


def _json_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class TokenCounter:
    """
    Counts tokens the way the provider bills them, for one model.

    Stateless once built: safe to share across threads and calls.
    """

    # Older snapshots with their own quirks.
    LEGACY_FUNCTIONS_MODEL = "gpt-3.5-turbo"
    PER_MESSAGE_BONUS_MODEL = "gpt-3.5-turbo-0301"

    def __init__(self, model: str, encoder: Encoder, call_type: CallType = CallType.TOOLS):
        self.model = model
        self.encoder = encoder
        self.call_type = call_type
        self.correction = correction_for(model)

    @classmethod
    def for_model(
        cls,
        model: str,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        default_encoder: Optional[Encoder] = None,
    ) -> "TokenCounter":
        """
        Build a counter from catalog metadata.

        Raises:
            ConfigurationError: if the model is unknown and no default encoder
                was supplied.
        """
        encoder = catalog.encoder(model, default_encoder)
        call_type = catalog.call_type(model, CallType.TOOLS)
        return cls(model, encoder, call_type)

    # === Text ===

    def count_text(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return self.encoder.count_tokens(text)

    # === Messages ===

    def count_messages(self, messages: Sequence[Message]) -> int:
        """Tokens billed for a list of messages (no request epilogue)."""
        total = 0
        for index, msg in enumerate(_expand_tool_results(messages)):
            total += self._count_message(msg, first=(index == 0))

        if self.correction.positive_total and total > 0:
            total += self.correction.positive_total
        return total

    def count(
        self,
        messages: Sequence[Message],
        tools: Optional[Sequence[ToolDescriptor]] = None,
        tool_form: Optional[CallType] = None,
    ) -> int:
        """
        Tokens billed for a whole request: messages, descriptors and the
        fixed request epilogue.
        """
        total = self.count_messages(messages)
        if tools:
            total += self.count_descriptors(tools, tool_form or self.default_tool_form())
        return total + REQUEST_EPILOGUE_TOKENS

    def count_request(self, request: GenerationRequest) -> int:
        return self.count(request.messages, request.tools, request.tool_form)

    def _count_message(self, msg: Message, first: bool) -> int:
        role = msg.role.value
        fix = self.correction

        n = 1 if self.model == self.PER_MESSAGE_BONUS_MODEL else 0
        n += 2 if msg.role == Role.FUNCTION else 3
        n += self.count_text(role)

        text = msg.text
        if text is not None:
            n += self.count_text(text)

        if msg.name is not None:
            n += self.count_text(msg.name) + 3
            n += fix.named_first if first else fix.named_rest
        else:
            n += fix.unnamed_first if first else fix.unnamed_rest
        if msg.role == Role.ASSISTANT:
            n += fix.assistant

        if msg.function_call is not None:
            n += 5 if self.model == self.LEGACY_FUNCTIONS_MODEL else 3
            n += self.count_text(msg.function_call.name)
            n += self.count_text(msg.function_call.arguments_text)

        if msg.tool_calls:
            n += self._count_tool_calls(msg)

        return n

    def _count_tool_calls(self, msg: Message) -> int:
        calls = msg.tool_calls
        n = 21 if len(calls) > 1 else 3

        all_without_arguments = True
        for call in calls:
            # The call id is not billed.
            n += 2
            n += self.count_text(call.type)
            n += self.count_text(call.name)
            n += self.count_text(call.arguments_text)
            if call.has_arguments:
                all_without_arguments = False
            else:
                n += 1

        if all_without_arguments:
            n += 1 if len(calls) > 1 else -1
        return n

    # === Descriptors ===

    def count_descriptors(self, tools: Sequence[ToolDescriptor], form: CallType) -> int:
        if form == CallType.FUNCTIONS:
            return self._count_functions_form(tools)
        if form == CallType.TOOLS:
            return self._count_tools_form(tools)
        logger.debug(f"Model {self.model} takes no tools; {len(tools)} descriptors not billed")
        return 0

    def default_tool_form(self) -> CallType:
        """How descriptors are billed when the request does not say."""
        return self.call_type

    def _count_enum(self, values: Iterable[Any]) -> int:
        n = -3
        for value in values:
            n += 3 + self.count_text(_json_text(value))
        return n

    def _count_functions_form(self, tools: Sequence[ToolDescriptor]) -> int:
        n = 8 if self.model == self.LEGACY_FUNCTIONS_MODEL else 4

        for tool in tools:
            n += self.count_text(tool.name)
            if tool.description is not None:
                n += 1 + self.count_text(tool.description)

            if tool.parameters is not None:
                n += 3
                for prop_name, prop in tool.properties.items():
                    n += self.count_text(prop_name)
                    n += self._count_function_property(prop)
            n += 6

        return n + 12

    def _count_function_property(self, prop: Mapping[str, Any]) -> int:
        n = 0
        has_description = False
        enum_or_int = False
        for key, value in prop.items():
            if key == "type":
                n += 2 + self.count_text(_json_text(value))
                if value == "integer":
                    enum_or_int = True
            elif key == "description":
                n += 1 + self.count_text(_json_text(value))
                has_description = True
            elif key == "enum":
                n += self._count_enum(value)
                enum_or_int = True

        if has_description and enum_or_int:
            n += 1
        return n

    def _count_tools_form(self, tools: Sequence[ToolDescriptor]) -> int:
        n = 0

        for tool in tools:
            n += self.count_text(tool.name)
            if tool.description is not None:
                n += 1 + self.count_text(tool.description)

            properties = tool.properties
            if properties:
                n += 3
            for prop_name, prop in properties.items():
                n += self.count_text(prop_name)
                n += self._count_tool_property(prop)
            n += 11

        return n + 16

    def _count_tool_property(self, prop: Mapping[str, Any]) -> int:
        n = 0
        has_description = False
        is_number = False
        for key, value in prop.items():
            if key == "type":
                n += 2 + self.count_text(_json_text(value))
                if value == "number":
                    is_number = True
            elif key == "description":
                n += 2 + self.count_text(_json_text(value))
                has_description = True
            elif key == "enum":
                n += self._count_enum(value)

        if has_description and is_number:
            n -= 1
        return n

    def __repr__(self) -> str:
        return f"TokenCounter(model={self.model!r}, encoder={self.encoder!r})"


def _expand_tool_results(messages: Iterable[Message]) -> Iterator[Message]:
    """A message carrying N tool-call results is billed as N tool messages."""
    for msg in messages:
        if not msg.tool_call_results:
            yield msg
            continue
        for result in msg.tool_call_results:
            yield Message.of(Role.TOOL, result.result)

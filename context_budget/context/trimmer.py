#!/usr/bin/env python3
"""
History Trimmer
===============
Selects the suffix of a conversation that fits the step and token limits.

The window never starts with a tool result whose call is gone: such
results are stripped before the scan and again after it. The newest
messages are always preferred; the persona is prepended after selection
and is not counted against the limits.
"""

import logging
from typing import List, Optional, Sequence

from context_budget.context.store import ConversationStore
from context_budget.context.token_counter import TokenCounter
from context_budget.exceptions import ContextTooSmallError, InvalidStateError
from context_budget.protocol import EventBus, EventTypes
from context_budget.structs import ConversationLimits, Message, Role


def strip_orphan_tool_results(messages: Sequence[Message]) -> List[Message]:
    """Drop leading tool results; their originating call is not in the window."""
    start = 0
    while start < len(messages) and messages[start].is_tool_result:
        start += 1
    return list(messages[start:])


class HistoryTrimmer:
    """Builds the message window for the next model call."""

    def __init__(
        self,
        counter: TokenCounter,
        persona: Optional[str] = None,
        store: Optional[ConversationStore] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.counter = counter
        self.persona = persona
        self.store = store if store is not None else ConversationStore()
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def trim(
        self,
        history: Sequence[Message],
        new_messages: Sequence[Message],
        limits: ConversationLimits,
    ) -> List[Message]:
        """
        Return the newest suffix of `history + new_messages` within `limits`,
        with the persona (if any) prepended.

        Raises:
            InvalidStateError: if nothing remains after orphan stripping.
            ContextTooSmallError: if not even the newest message fits, or the
                limits keep only tool results whose call was trimmed.
        """
        combined = list(history) + list(new_messages)
        messages = strip_orphan_tool_results(combined)

        stripped = len(combined) - len(messages)
        if stripped:
            self.logger.debug(f"Stripped {stripped} orphan tool result(s) from window head")
            self._emit(EventTypes.ORPHAN_TOOL_RESULTS_STRIPPED, {"count": stripped})

        if not messages:
            raise InvalidStateError(
                "Conversation consists only of tool results with no originating call.",
                stripped_count=stripped,
            )

        kept = self._select_suffix(messages, limits)
        window = messages[len(messages) - kept:]

        # The scan may cut between a tool call and its results.
        exposed = kept - len(strip_orphan_tool_results(window))
        if exposed:
            window = window[exposed:]
            kept -= exposed
            self.logger.debug(f"Stripped {exposed} tool result(s) left without their call by trimming")
            self._emit(EventTypes.ORPHAN_TOOL_RESULTS_STRIPPED, {"count": exposed})
            if not window:
                raise ContextTooSmallError(
                    "Limits keep only tool results whose originating call was trimmed.",
                    max_tokens=limits.max_conversation_tokens,
                )

        dropped = len(messages) - kept
        if dropped:
            self.logger.info(
                f"Trimmed history: kept {kept} of {len(messages)} messages "
                f"(steps<={limits.max_conversation_steps}, tokens<={limits.max_conversation_tokens})"
            )
            self._emit(
                EventTypes.HISTORY_TRIMMED,
                {"kept": kept, "dropped": dropped},
            )

        if self.persona is not None:
            window.insert(0, Message.of(Role.DEVELOPER, self.persona))
        return window

    def _select_suffix(self, messages: Sequence[Message], limits: ConversationLimits) -> int:
        max_tokens = limits.max_conversation_tokens
        steps = 0
        tokens = 0

        for i in range(len(messages) - 1, -1, -1):
            if steps >= limits.max_conversation_steps:
                break
            if max_tokens is not None:
                candidate = self.counter.count_messages(messages[i:])
                if candidate > max_tokens:
                    break
                tokens = candidate
            steps += 1

        if steps == 0:
            raise ContextTooSmallError(
                "Newest message alone exceeds the conversation token limit.",
                current_tokens=self.counter.count_messages(messages[-1:]),
                max_tokens=max_tokens,
            )

        self.logger.debug(f"Selected {steps} message(s), {tokens} tokens counted")
        return steps

    def record(self, messages: Sequence[Message], limits: ConversationLimits) -> None:
        """Append a finished turn to the history ring buffer."""
        self.store.resize(limits.max_history_length)
        self.store.extend(messages)

    def _emit(self, event_type: EventTypes, data: dict) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event_type, data)

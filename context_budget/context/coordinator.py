#!/usr/bin/env python3
"""
Conversation Session
====================
High-level facade over the budget subsystem.

A caller talks only to this: it trims the history, packs retrieved context,
and sends requests through overflow recovery. One session owns one
conversation and is not safe for concurrent use.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from context_budget.config.settings import BudgetSettings
from context_budget.context.overflow import Generate, OverflowRecoverer
from context_budget.context.store import ConversationStore
from context_budget.context.token_counter import TokenCounter
from context_budget.context.trimmer import HistoryTrimmer
from context_budget.model_manager.catalog import DEFAULT_CATALOG, ModelCatalog
from context_budget.protocol import EventBus
from context_budget.retrieval.packer import ContextPacker, Embed, Retrieve
from context_budget.structs import (
    Budget,
    ConversationLimits,
    GenerationRequest,
    GenerationResponse,
    Message,
    PackedContext,
    RetrievedPassage,
    Role,
    ToolDescriptor,
)
from context_budget.utils.encoders import Encoder

logger = logging.getLogger(__name__)

NO_ANSWER = "I do not know."

ANSWER_INSTRUCTIONS = (
    "Answer the question truthfully, strictly using only the information in the context. "
    f'If the answer cannot be found in the context, reply with "{NO_ANSWER}".'
)


@dataclass(frozen=True)
class ContextAnswer:
    """Answer to a question, with the context it was generated from."""

    question: str
    response: GenerationResponse
    context: PackedContext

    @property
    def text(self) -> str:
        return self.response.text


class ConversationSession:
    """Stateful chat over one model, within its context-window budget."""

    def __init__(
        self,
        model: str,
        generate: Generate,
        counter: TokenCounter,
        limits: Optional[ConversationLimits] = None,
        persona: Optional[str] = None,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        packer: Optional[ContextPacker] = None,
        max_output_tokens: Optional[int] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.model = model
        self.counter = counter
        self.limits = limits or ConversationLimits()
        self.catalog = catalog
        self.packer = packer or ContextPacker(counter, event_bus=event_bus)
        self.max_output_tokens = max_output_tokens

        store = ConversationStore(self.limits.max_history_length)
        self.trimmer = HistoryTrimmer(counter, persona=persona, store=store, event_bus=event_bus)
        self.recoverer = OverflowRecoverer(generate, catalog=catalog, counter=counter, event_bus=event_bus)

    @classmethod
    def from_settings(
        cls,
        settings: BudgetSettings,
        generate: Generate,
        model: Optional[str] = None,
        encoder: Optional[Encoder] = None,
        embed: Optional[Embed] = None,
        retrieve: Optional[Retrieve] = None,
        event_bus: Optional[EventBus] = None,
    ) -> "ConversationSession":
        """
        Build a session from settings.

        Raises:
            ConfigurationError: if the model is unknown and no encoder is given.
        """
        model = model or settings.default_model
        catalog = settings.catalog()
        counter = TokenCounter.for_model(model, catalog, default_encoder=encoder)
        packer = ContextPacker(
            counter,
            embed=embed,
            retrieve=retrieve,
            safety_margin=settings.packer_safety_margin,
            strong_threshold=settings.strong_reference_threshold,
            event_bus=event_bus,
        )
        data = catalog.get(model)
        return cls(
            model,
            generate,
            counter,
            limits=settings.limits(),
            persona=settings.persona,
            catalog=catalog,
            packer=packer,
            max_output_tokens=data.max_new_tokens if data is not None else None,
            event_bus=event_bus,
        )

    # === Properties ===

    @property
    def persona(self) -> Optional[str]:
        return self.trimmer.persona

    @property
    def history(self) -> List[Message]:
        return self.trimmer.store.get_history()

    def clear_history(self) -> None:
        self.trimmer.store.clear()

    # === Chat ===

    def chat(
        self,
        message: Union[str, Message, Sequence[Message]],
        tools: Sequence[ToolDescriptor] = (),
    ) -> GenerationResponse:
        """
        Continue the conversation: trim history plus the new turn, send it,
        then record the turn and the reply.
        """
        new_messages = _as_messages(message)
        window = self.trimmer.trim(self.history, new_messages, self.limits)
        response = self.recoverer.send(self._request(window, tools))
        self.trimmer.record(new_messages + [response.message], self.limits)
        return response

    def complete(
        self,
        message: Union[str, Message, Sequence[Message]],
        tools: Sequence[ToolDescriptor] = (),
    ) -> GenerationResponse:
        """One-shot call; the history is neither used nor updated."""
        window = self.trimmer.trim([], _as_messages(message), self.limits)
        return self.recoverer.send(self._request(window, tools))

    # === Retrieval-augmented answers ===

    def context_budget(self, question: str) -> int:
        """
        Tokens left for context once the instructions, question and reply cap are in.

        Raises:
            ConfigurationError: if the model context size is unknown.
        """
        budget = Budget(
            self.catalog.context_size(self.model),
            reserved_output_tokens=self.max_output_tokens or 0,
        )
        overhead = self.counter.count(_answer_prompt(question, ""))
        return max(0, budget.available_prompt_tokens - overhead)

    def answer_with_context(
        self,
        question: str,
        passages: Optional[Sequence[RetrievedPassage]] = None,
        k: int = 10,
        token_budget: Optional[int] = None,
    ) -> ContextAnswer:
        """
        Answer `question` using ranked passages, or the top `k` retrieved ones.

        With no passage committed the question is sent without context. The
        returned context is reranked by relevance to the answer when the
        packer can embed text.

        Raises:
            ConfigurationError: if no `token_budget` is given and the model
                context size is unknown.
        """
        if token_budget is None:
            token_budget = self.context_budget(question)

        if passages is None:
            packed = self.packer.retrieve_and_pack(question, k, token_budget)
        else:
            packed = self.packer.pack(passages, token_budget)

        if packed.is_empty:
            logger.info("No context fits the budget; answering ungrounded")
            response = self.recoverer.send(self._request([Message.of(Role.USER, question)]))
            return ContextAnswer(question, response, packed)

        response = self.recoverer.send(self._request(_answer_prompt(question, packed.text)))
        if self.packer.embed is not None:
            packed = self.packer.rerank(packed, response.text)
        return ContextAnswer(question, response, packed)

    def _request(self, messages: Sequence[Message], tools: Sequence[ToolDescriptor] = ()) -> GenerationRequest:
        return GenerationRequest(
            model=self.model,
            messages=tuple(messages),
            tools=tuple(tools),
            tool_form=self.counter.default_tool_form(),
            max_output_tokens=self.max_output_tokens,
        )


def _as_messages(message: Union[str, Message, Sequence[Message]]) -> List[Message]:
    if isinstance(message, str):
        return [Message.of(Role.USER, message)]
    if isinstance(message, Message):
        return [message]
    return list(message)


def _answer_prompt(question: str, context: str) -> List[Message]:
    return [
        Message.of(Role.DEVELOPER, ANSWER_INSTRUCTIONS),
        Message.of(Role.USER, f"Context:\n{context}\nQuestion: {question}"),
    ]

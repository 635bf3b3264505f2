#!/usr/bin/env python3
"""
Context Packer
==============
Fills a prompt budget with ranked passages, and after generation tells which
of the committed passages the output actually relied on.

Selection is a greedy prefix of the ranked list: the first passage that does
not fit stops packing, even if a later (shorter) one would have fit. A
passage is never truncated.
"""

import logging
import re
from typing import Callable, List, Optional, Sequence

import numpy as np

from context_budget.context.token_counter import TokenCounter
from context_budget.exceptions import ConfigurationError, ValidationError
from context_budget.protocol import EventBus, EventTypes
from context_budget.structs import PackedContext, PackedPassage, RetrievedPassage

# External capabilities.
Embed = Callable[[str], Sequence[float]]
Retrieve = Callable[[str, int], List[RetrievedPassage]]

DEFAULT_STRONG_THRESHOLD = 0.85
PASSAGE_SEPARATOR = "\n"

_CITATION_MARKER = re.compile(r"\[\^?\d+\]")
_BLANK_LINES = re.compile(r"\n{2,}")


def normalize_passage(text: str) -> str:
    """Strip citation markers like [12] or [^3] and collapse blank-line runs."""
    text = _CITATION_MARKER.sub("", text)
    return _BLANK_LINES.sub("\n", text)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 if either is zero or they mismatch."""
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.size == 0 or a.shape != b.shape:
        return 0.0
    den = np.linalg.norm(a) * np.linalg.norm(b)
    if den == 0.0:
        return 0.0
    return float(np.dot(a, b) / den)


class ContextPacker:
    """Greedy-prefix passage packing with post-hoc relevance scoring."""

    def __init__(
        self,
        counter: TokenCounter,
        embed: Optional[Embed] = None,
        retrieve: Optional[Retrieve] = None,
        safety_margin: int = 0,
        strong_threshold: float = DEFAULT_STRONG_THRESHOLD,
        event_bus: Optional[EventBus] = None,
    ):
        if safety_margin < 0:
            raise ValidationError(
                "Safety margin cannot be negative.",
                field_name="safety_margin",
                invalid_value=safety_margin,
            )
        self.counter = counter
        self.embed = embed
        self.retrieve = retrieve
        self.safety_margin = safety_margin
        self.strong_threshold = strong_threshold
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def pack(self, passages: Sequence[RetrievedPassage], token_budget: int) -> PackedContext:
        """
        Commit passages in rank order while the joined text fits `token_budget`.

        The cost of each candidate is the count of the whole concatenation so
        far plus the safety margin. Packing stops at the first passage that
        does not fit.
        """
        texts: List[str] = []
        committed: List[PackedPassage] = []
        tokens = 0

        for passage in passages:
            candidate = texts + [normalize_passage(passage.text)]
            cost = self.counter.count_text(PASSAGE_SEPARATOR.join(candidate)) + self.safety_margin
            if cost > token_budget:
                break
            texts = candidate
            committed.append(PackedPassage(passage))
            tokens = cost

        if passages and not committed:
            self.logger.warning(
                f"Top-ranked passage from {passages[0].source_ref} does not fit a budget of "
                f"{token_budget} tokens; packed context is empty"
            )
        else:
            self.logger.debug(
                f"Packed {len(committed)} of {len(passages)} passages ({tokens} tokens)"
            )

        self._emit(
            EventTypes.CONTEXT_PACKED,
            {"committed": len(committed), "offered": len(passages), "tokens": tokens},
        )
        return PackedContext(
            text=PASSAGE_SEPARATOR.join(texts),
            passages=tuple(committed),
            strong_threshold=self.strong_threshold,
        )

    def rerank(self, packed: PackedContext, generated_text: str) -> PackedContext:
        """
        Score committed passages by cosine similarity with `generated_text`
        and return them sorted by descending relevance.
        """
        if self.embed is None:
            raise ConfigurationError("Reranking requires an embedding capability.")
        if packed.is_empty:
            return packed

        output_vector = self.embed(generated_text)
        scored = [
            PackedPassage(
                p.passage,
                cosine_similarity(output_vector, self.embed(normalize_passage(p.passage.text))),
            )
            for p in packed.passages
        ]
        scored.sort(key=lambda p: p.relevance, reverse=True)

        strong = sum(1 for p in scored if p.relevance > self.strong_threshold)
        self.logger.debug(f"Reranked {len(scored)} passages, {strong} strong reference(s)")
        return PackedContext(
            text=packed.text,
            passages=tuple(scored),
            strong_threshold=self.strong_threshold,
        )

    def retrieve_and_pack(self, query: str, k: int, token_budget: int) -> PackedContext:
        """Fetch the top `k` passages for `query` and pack them."""
        if self.retrieve is None:
            raise ConfigurationError("Packing a query requires a retrieval capability.")
        return self.pack(self.retrieve(query, k), token_budget)

    def _emit(self, event_type: EventTypes, data: dict) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event_type, data)

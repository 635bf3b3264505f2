#!/usr/bin/env python3
"""
Encoder adapters.

The budget subsystem never tokenizes text itself: it only needs an object
with `count_tokens(text) -> int`. TiktokenEncoder adapts `tiktoken` to that
capability for OpenAI-compatible models.
"""

import logging
from functools import lru_cache
from typing import Optional, Protocol, runtime_checkable

import tiktoken
from tiktoken.model import encoding_name_for_model as _tiktoken_encoding_name

from context_budget.exceptions.config import ConfigurationError
from context_budget.exceptions.context import TokenEstimationError

logger = logging.getLogger(__name__)

# Fallbacks for model ids tiktoken does not know yet (newer snapshots).
# Longest prefix wins.
MODEL_PREFIX_TO_ENCODING = {
    "gpt-5": "o200k_base",
    "gpt-4.1": "o200k_base",
    "gpt-4o": "o200k_base",
    "chatgpt-4o-": "o200k_base",
    "gpt-4-": "cl100k_base",
    "gpt-4": "cl100k_base",
    "gpt-3.5-turbo": "cl100k_base",
    "gpt-35-turbo": "cl100k_base",
    "o1": "o200k_base",
    "o3": "o200k_base",
    "o4-mini": "o200k_base",
    "codex-": "o200k_base",
}


@runtime_checkable
class Encoder(Protocol):
    """External capability: count the tokens of a plain string."""

    def count_tokens(self, text: str) -> int: ...


@lru_cache(maxsize=None)
def _load_encoding(encoding_name: str) -> "tiktoken.Encoding":
    return tiktoken.get_encoding(encoding_name)


def encoding_name_for_model(model: str) -> Optional[str]:
    """Resolve the tiktoken encoding name for a model id, or None if unknown."""
    try:
        return _tiktoken_encoding_name(model)
    except KeyError:
        pass

    for prefix in sorted(MODEL_PREFIX_TO_ENCODING, key=len, reverse=True):
        if model.startswith(prefix):
            return MODEL_PREFIX_TO_ENCODING[prefix]
    return None


class TiktokenEncoder:
    """Encoder backed by a named tiktoken encoding (e.g. 'o200k_base')."""

    def __init__(self, encoding_name: str):
        self.encoding_name = encoding_name

    @classmethod
    def for_model(cls, model: str) -> "TiktokenEncoder":
        name = encoding_name_for_model(model)
        if name is None:
            raise ConfigurationError(
                f"No encoding found for model: {model}", model_name=model
            )
        return cls(name)

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        try:
            encoding = _load_encoding(self.encoding_name)
            # Special-token text is billed as plain text.
            return len(encoding.encode(text, disallowed_special=()))
        except Exception as e:
            logger.error(f"Token counting failed with {self.encoding_name}: {e}")
            raise TokenEstimationError(
                f"Encoder '{self.encoding_name}' failed to count tokens",
                encoder_name=self.encoding_name,
                failed_text=text[:200],
                original_error=e,
            ) from e

    def __repr__(self) -> str:
        return f"TiktokenEncoder({self.encoding_name!r})"

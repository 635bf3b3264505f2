"""
Helpers turning provider error text into typed exceptions.
"""

import re
from typing import Optional

from context_budget.exceptions.model import ContextLengthExceededError

# Full report: context size, prompt length and requested completion.
_FULL_REPORT = re.compile(
    r"This model's maximum context length is ([0-9]+) tokens(\. However,|, however) "
    r"you requested ([0-9]+) tokens \(([0-9]+) (in the messages,|in your prompt;) "
    r"([0-9]+) (in|for) the completion\)\."
)
# Requested completion above the model's own output limit.
_COMPLETION_LIMIT = re.compile(
    r"This model supports at most ([0-9]+) completion tokens, whereas you provided ([0-9]+)"
)
# Must be tried after _FULL_REPORT, which it also matches.
_CONTEXT_ONLY = re.compile(r"This model's maximum context length is ([0-9]+)")
_CONFIGURED_LIMIT = re.compile(r"Input tokens exceed the configured limit of ([0-9]+) tokens")


def parse_context_length_error(message: str) -> Optional[ContextLengthExceededError]:
    """
    Build a ContextLengthExceededError from a provider error message.

    Returns None when the message is not about context length. Sizes the
    message does not report are left at -1.
    """
    if not message:
        return None

    m = _FULL_REPORT.search(message)
    if m:
        return ContextLengthExceededError(
            message,
            model_context_size=int(m.group(1)),
            prompt_token_length=int(m.group(4)),
            requested_output_tokens=int(m.group(6)),
        )

    m = _COMPLETION_LIMIT.search(message)
    if m:
        return ContextLengthExceededError(
            message,
            requested_output_tokens=int(m.group(2)),
            details={"max_new_tokens": int(m.group(1))},
        )

    m = _CONTEXT_ONLY.search(message) or _CONFIGURED_LIMIT.search(message)
    if m:
        return ContextLengthExceededError(message, model_context_size=int(m.group(1)))

    return None

"""
Retry utility for recovering from context-length overflows.
"""

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from context_budget.exceptions.model import ContextLengthExceededError

# The original call plus one retry with a lowered output cap.
MAX_OVERFLOW_ATTEMPTS = 2


def overflow_retrying() -> Retrying:
    """
    Retry controller for overflow recovery.

    Retries only on ContextLengthExceededError, without waiting. Any other
    exception, and the last overflow, are re-raised as they are.
    """
    return Retrying(
        stop=stop_after_attempt(MAX_OVERFLOW_ATTEMPTS),
        retry=retry_if_exception_type(ContextLengthExceededError),
        reraise=True,
    )

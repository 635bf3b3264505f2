"""
Context Exception Definitions

All context-related exceptions inherit from BudgetBaseError.
"""

from context_budget.exceptions.base import BudgetBaseError


class ContextError(BudgetBaseError):
    """Base exception for context management errors."""

    pass


class InvalidStateError(ContextError):
    """Raised when a conversation holds only tool results without matching calls."""

    def __init__(self, message, stripped_count=None):
        super().__init__(message)
        self.stripped_count = stripped_count


class ContextTooSmallError(ContextError):
    """Raised when not even the most recent message fits the token limit."""

    def __init__(self, message, current_tokens=None, max_tokens=None):
        super().__init__(message)
        self.current_tokens = current_tokens
        self.max_tokens = max_tokens


class TokenEstimationError(ContextError):
    """Raised when token counting fails due to encoder issues."""

    def __init__(
        self,
        message: str,
        encoder_name: str = None,
        failed_text: str = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error=original_error)
        self.encoder_name = encoder_name
        self.failed_text = failed_text

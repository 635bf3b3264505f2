#!/usr/bin/env python3
"""
Model Exception Definitions

All errors reported by (or about) the remote generation call inherit from
ModelError.
"""

from context_budget.exceptions.base import BudgetBaseError


class ModelError(BudgetBaseError):
    """Base exception for model-related errors."""

    pass


class ContextLengthExceededError(ModelError):
    """
    Raised by a Generate capability when the prompt plus requested output
    does not fit the model context window.

    Sizes are -1 when the remote error did not report them.
    """

    def __init__(
        self,
        message,
        model_context_size=-1,
        prompt_token_length=-1,
        requested_output_tokens=-1,
        details=None,
    ):
        super().__init__(message, details=details)
        self.model_context_size = model_context_size
        self.prompt_token_length = prompt_token_length
        self.requested_output_tokens = requested_output_tokens


class FatalOverflowError(ModelError):
    """Raised when the prompt cannot fit even after lowering the output cap."""

    def __init__(self, message, model_context_size=None, prompt_token_length=None, original_error=None):
        super().__init__(message, original_error=original_error)
        self.model_context_size = model_context_size
        self.prompt_token_length = prompt_token_length
        self.user_hint = (
            "The prompt is too long for this model. "
            "Lower the conversation limits or shorten the input."
        )


class TransientRemoteError(ModelError):
    """Any other remote failure. Never retried by this package."""

    def __init__(self, message, status_code=None, original_error=None, details=None):
        super().__init__(message, original_error=original_error, details=details)
        self.status_code = status_code

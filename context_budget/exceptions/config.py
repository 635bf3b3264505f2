#!/usr/bin/env python3
"""
Configuration Exception Definitions

All configuration-related exceptions inherit from BudgetBaseError.
"""

from context_budget.exceptions.base import BudgetBaseError


class ConfigurationError(BudgetBaseError):
    """Raised when a model has no known metadata or encoder."""

    def __init__(self, message, model_name=None, original_error=None):
        super().__init__(message, original_error=original_error)
        self.model_name = model_name
        self.user_hint = (
            "Unknown model. Register its metadata in the model catalog "
            "or supply a default."
        )


class ValidationError(BudgetBaseError):
    """Raised when configuration validation fails."""

    def __init__(self, message, field_name=None, invalid_value=None):
        super().__init__(message)
        self.field_name = field_name
        self.invalid_value = invalid_value

#!/usr/bin/env python3
"""
Base Exception Contract for context_budget

Provides the single source of truth for the error contract.
All domain-specific exceptions must inherit from BudgetBaseError.
"""

from typing import Optional


class BudgetBaseError(Exception):
    """
    The Base Contract for all context_budget errors.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        user_hint: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.user_hint = user_hint or "An internal error occurred."
        self.details = details or {}

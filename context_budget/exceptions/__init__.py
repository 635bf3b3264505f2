#!/usr/bin/env python3
"""
context_budget Exceptions Package

Unified exception hierarchy for the context budget subsystem.
"""

# Base exceptions
from .base import BudgetBaseError

# Config exceptions
from .config import ConfigurationError, ValidationError

# Context exceptions
from .context import (
    ContextError,
    ContextTooSmallError,
    InvalidStateError,
    TokenEstimationError,
)

# Model exceptions
from .model import (
    ContextLengthExceededError,
    FatalOverflowError,
    ModelError,
    TransientRemoteError,
)


__all__ = [
    # Base
    "BudgetBaseError",
    # Config
    "ConfigurationError",
    "ValidationError",
    # Context
    "ContextError",
    "ContextTooSmallError",
    "InvalidStateError",
    "TokenEstimationError",
    # Model
    "ModelError",
    "ContextLengthExceededError",
    "FatalOverflowError",
    "TransientRemoteError",
]

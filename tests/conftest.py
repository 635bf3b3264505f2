# Shared fixtures for the context budget test suite

import pytest

from context_budget.context.token_counter import TokenCounter
from context_budget.structs import GenerationResponse, Message, Role


class FakeEncoder:
    """Deterministic encoder: one token per whitespace-separated word."""

    def __init__(self):
        self.calls = 0

    def count_tokens(self, text):
        self.calls += 1
        return len(text.split())

    def __repr__(self):
        return "FakeEncoder()"


class FakeGenerate:
    """Records requests; raises queued errors before answering."""

    def __init__(self, *errors, reply="ok"):
        self.errors = list(errors)
        self.reply = reply
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.errors:
            raise self.errors.pop(0)
        return GenerationResponse(Message.of(Role.ASSISTANT, self.reply))


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def counter(encoder):
    """Counter for a model with no family correction."""
    return TokenCounter("gpt-4o", encoder)


@pytest.fixture
def make_generate():
    """Factory for FakeGenerate instances."""
    return FakeGenerate

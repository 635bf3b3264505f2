# Test suite for context-overflow recovery

import logging

import pytest

from context_budget.context.overflow import OverflowRecoverer
from context_budget.exceptions import (
    ContextLengthExceededError,
    FatalOverflowError,
    TransientRemoteError,
)
from context_budget.protocol import EventBus, EventTypes
from context_budget.structs import GenerationRequest, Message, Role, lower
from context_budget.utils.error_parsing import parse_context_length_error


def _overflow(context_size=1000, prompt=950):
    return ContextLengthExceededError(
        "context length exceeded",
        model_context_size=context_size,
        prompt_token_length=prompt,
    )


class TestOverflowRecoverer:
    """Test suite for OverflowRecoverer.send"""

    @pytest.fixture
    def request_(self):
        return GenerationRequest(
            model="gpt-4o",
            messages=(Message.of(Role.USER, "hello"),),
            max_output_tokens=4096,
        )

    def test_success_passthrough(self, make_generate, request_):
        """Test that a successful call is made once, unchanged"""
        generate = make_generate()
        response = OverflowRecoverer(generate).send(request_)
        assert response.text == "ok"
        assert generate.requests == [request_]

    def test_retry_with_lowered_cap(self, make_generate, request_, caplog):
        """Test that context 1000 and prompt 950 retry with a cap of 49"""
        generate = make_generate(_overflow(1000, 950))
        with caplog.at_level(logging.WARNING, logger="context_budget"):
            response = OverflowRecoverer(generate).send(request_)

        assert response.text == "ok"
        assert len(generate.requests) == 2
        assert generate.requests[1].max_output_tokens == 49
        assert generate.requests[1].messages == request_.messages
        # The caller's request is untouched.
        assert request_.max_output_tokens == 4096
        assert any("49" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)

    def test_second_overflow_is_fatal(self, make_generate, request_):
        """Test that at most two calls are made"""
        generate = make_generate(_overflow(), _overflow(), _overflow())
        with pytest.raises(FatalOverflowError) as exc_info:
            OverflowRecoverer(generate).send(request_)
        assert len(generate.requests) == 2
        assert isinstance(exc_info.value.original_error, ContextLengthExceededError)

    def test_no_room_for_output(self, make_generate, request_):
        """Test that a non-positive cap fails without retrying"""
        generate = make_generate(_overflow(1000, 999))
        with pytest.raises(FatalOverflowError) as exc_info:
            OverflowRecoverer(generate).send(request_)
        assert len(generate.requests) == 1
        assert exc_info.value.model_context_size == 1000
        assert exc_info.value.prompt_token_length == 999

    def test_other_errors_propagate(self, make_generate, request_):
        """Test that non-overflow errors are not retried or wrapped"""
        error = TransientRemoteError("bad gateway", status_code=502)
        generate = make_generate(error)
        with pytest.raises(TransientRemoteError) as exc_info:
            OverflowRecoverer(generate).send(request_)
        assert exc_info.value is error
        assert len(generate.requests) == 1

    def test_context_size_from_catalog(self, make_generate, request_):
        """Test that a missing context size falls back to catalog metadata"""
        generate = make_generate(_overflow(-1, 127_000))
        OverflowRecoverer(generate).send(request_)
        assert generate.requests[1].max_output_tokens == 128_000 - 127_000 - 1

    def test_prompt_length_from_counter(self, make_generate, request_, counter):
        """Test that a missing prompt length is counted locally"""
        generate = make_generate(_overflow(100, -1))
        OverflowRecoverer(generate, counter=counter).send(request_)
        # 3 + role 1 + text 1 + epilogue 3
        assert generate.requests[1].max_output_tokens == 100 - 8 - 1

    def test_unknown_sizes_are_fatal(self, make_generate, request_):
        """Test that an overflow without a prompt length cannot be recovered"""
        generate = make_generate(_overflow(1000, -1))
        with pytest.raises(FatalOverflowError):
            OverflowRecoverer(generate).send(request_)
        assert len(generate.requests) == 1

    def test_events(self, make_generate, request_):
        """Test that overflow and cap lowering are published"""
        bus = EventBus()
        received = []
        bus.subscribe(EventTypes.CONTEXT_OVERFLOW, lambda d: received.append(("overflow", d)))
        bus.subscribe(EventTypes.OUTPUT_CAP_LOWERED, lambda d: received.append(("lowered", d)))

        OverflowRecoverer(make_generate(_overflow()), event_bus=bus).send(request_)

        assert received == [
            ("overflow", {"model": "gpt-4o", "attempt": 1}),
            ("lowered", {"model": "gpt-4o", "from": 4096, "to": 49}),
        ]

    def test_unknown_model_without_sizes(self, make_generate):
        """Test that catalog lookup for an unknown model does not mask the overflow"""
        request = GenerationRequest(model="mystery", messages=(Message.of(Role.USER, "x"),))
        generate = make_generate(_overflow(-1, 10))
        with pytest.raises(FatalOverflowError):
            OverflowRecoverer(generate).send(request)


class TestLower:
    """Test suite for the request lowering function"""

    def test_lower_returns_new_request(self):
        """Test that lower() does not mutate its input"""
        request = GenerationRequest(model="m", messages=(), max_output_tokens=100)
        lowered = lower(request, 10)
        assert lowered.max_output_tokens == 10
        assert request.max_output_tokens == 100
        assert lowered.model == "m"


class TestParseContextLengthError:
    """Test suite for provider error-message parsing"""

    def test_full_report(self):
        """Test the message reporting all sizes"""
        error = parse_context_length_error(
            "This model's maximum context length is 4097 tokens. However, you requested "
            "4400 tokens (400 in the messages, 4000 in the completion). Please reduce the length."
        )
        assert error.model_context_size == 4097
        assert error.prompt_token_length == 400
        assert error.requested_output_tokens == 4000

    def test_full_report_variant(self):
        """Test the older wording"""
        error = parse_context_length_error(
            "This model's maximum context length is 8192 tokens, however you requested "
            "9000 tokens (1000 in your prompt; 8000 for the completion)."
        )
        assert error.model_context_size == 8192
        assert error.prompt_token_length == 1000
        assert error.requested_output_tokens == 8000

    def test_context_only(self):
        """Test a message reporting just the context size"""
        error = parse_context_length_error(
            "This model's maximum context length is 8192 tokens. Your messages resulted in 9000 tokens."
        )
        assert error.model_context_size == 8192
        assert error.prompt_token_length == -1

    def test_configured_limit(self):
        """Test the configured-limit wording"""
        error = parse_context_length_error("Input tokens exceed the configured limit of 272000 tokens.")
        assert error.model_context_size == 272000

    def test_completion_limit(self):
        """Test the completion-limit wording"""
        error = parse_context_length_error(
            "This model supports at most 4096 completion tokens, whereas you provided 5000."
        )
        assert error.requested_output_tokens == 5000
        assert error.details == {"max_new_tokens": 4096}

    def test_unrelated_message(self):
        """Test that other errors are not recognized"""
        assert parse_context_length_error("Rate limit reached") is None
        assert parse_context_length_error("") is None

#!/usr/bin/env python3
"""
Overflow Recoverer
==================
Wraps one generation call. When the remote service reports that prompt plus
requested output exceed the model context, the output cap is lowered to what
is left and the call is retried exactly once.
"""

import logging
from typing import Callable, Optional

from context_budget.context.token_counter import TokenCounter
from context_budget.exceptions import ContextLengthExceededError, FatalOverflowError
from context_budget.model_manager.catalog import DEFAULT_CATALOG, ModelCatalog
from context_budget.protocol import EventBus, EventTypes
from context_budget.structs import GenerationRequest, GenerationResponse, lower
from context_budget.utils.retry import overflow_retrying

# External capability: issue one remote generation call.
Generate = Callable[[GenerationRequest], GenerationResponse]


class OverflowRecoverer:
    """Sends requests through `generate`, recovering once from context overflow."""

    def __init__(
        self,
        generate: Generate,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        counter: Optional[TokenCounter] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.generate = generate
        self.catalog = catalog
        self.counter = counter
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def send(self, request: GenerationRequest) -> GenerationResponse:
        """
        Issue `request`; on overflow retry once with a lowered output cap.

        `request` itself is never modified. At most two calls are made.

        Raises:
            FatalOverflowError: if no positive cap fits, or the retry overflows too.
            Any other exception from `generate`, unchanged.
        """
        current = request
        for attempt in overflow_retrying():
            with attempt:
                try:
                    return self.generate(current)
                except ContextLengthExceededError as e:
                    attempt_number = attempt.retry_state.attempt_number
                    self._emit(
                        EventTypes.CONTEXT_OVERFLOW,
                        {"model": request.model, "attempt": attempt_number},
                    )
                    if attempt_number > 1:
                        raise FatalOverflowError(
                            f"Context overflow for {request.model} persisted with output cap "
                            f"{current.max_output_tokens}",
                            model_context_size=e.model_context_size,
                            prompt_token_length=e.prompt_token_length,
                            original_error=e,
                        ) from e
                    current = self._lowered(request, e)
                    raise

    def optimal_cap(self, request: GenerationRequest, error: ContextLengthExceededError) -> int:
        """Output tokens left once the prompt is in: context - prompt - 1."""
        context_size = error.model_context_size
        if context_size <= 0:
            context_size = self.catalog.context_size(request.model, -1)

        prompt_length = error.prompt_token_length
        if prompt_length <= 0 and self.counter is not None:
            prompt_length = self.counter.count_request(request)

        if context_size <= 0 or prompt_length <= 0:
            return -1
        return context_size - prompt_length - 1

    def _lowered(self, request: GenerationRequest, error: ContextLengthExceededError) -> GenerationRequest:
        cap = self.optimal_cap(request, error)
        if cap <= 0:
            raise FatalOverflowError(
                f"Prompt for {request.model} leaves no room for output "
                f"(context={error.model_context_size}, prompt={error.prompt_token_length})",
                model_context_size=error.model_context_size,
                prompt_token_length=error.prompt_token_length,
                original_error=error,
            ) from error

        self.logger.warning(
            f"Reducing reply length for {request.model} from "
            f"{request.max_output_tokens if request.max_output_tokens is not None else -1} to {cap}"
        )
        self._emit(
            EventTypes.OUTPUT_CAP_LOWERED,
            {"model": request.model, "from": request.max_output_tokens, "to": cap},
        )
        return lower(request, cap)

    def _emit(self, event_type: EventTypes, data: dict) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event_type, data)

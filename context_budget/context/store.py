from collections import deque
from typing import Deque, Iterable, List

from context_budget.exceptions.config import ValidationError
from context_budget.structs import Message


class ConversationStore:
    """
    Passive ring buffer of past turns.

    Holds at most `max_length` messages; appending past capacity evicts the
    oldest ones. This is an audit record of the conversation, distinct from
    the trimmed window sent to the model.
    """

    def __init__(self, max_length: int = 1000):
        self._messages: Deque[Message] = deque(maxlen=self._check(max_length))

    @staticmethod
    def _check(max_length: int) -> int:
        if max_length < 0:
            raise ValidationError(
                "History length cannot be negative.",
                field_name="max_history_length",
                invalid_value=max_length,
            )
        return max_length

    @property
    def max_length(self) -> int:
        return self._messages.maxlen

    def add(self, message: Message) -> None:
        """Appends a message, evicting the oldest one when full."""
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)

    def resize(self, max_length: int) -> None:
        """Changes the capacity, keeping the most recent messages."""
        if max_length == self._messages.maxlen:
            return
        self._messages = deque(self._messages, maxlen=self._check(max_length))

    def clear(self) -> None:
        self._messages.clear()

    def get_history(self) -> List[Message]:
        """Returns the retained messages, oldest first."""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

from .coordinator import ContextAnswer, ConversationSession
from .overflow import OverflowRecoverer
from .store import ConversationStore
from .token_counter import TokenCounter, correction_for
from .trimmer import HistoryTrimmer, strip_orphan_tool_results

__all__ = [
    "ContextAnswer",
    "ConversationSession",
    "ConversationStore",
    "HistoryTrimmer",
    "OverflowRecoverer",
    "TokenCounter",
    "correction_for",
    "strip_orphan_tool_results",
]

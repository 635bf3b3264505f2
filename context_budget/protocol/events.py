from enum import Enum


class EventTypes(str, Enum):
    """
    Canonical names of the events the budget subsystem emits.
    Using an Enum prevents typo bugs (e.g., 'cap_lowered' vs 'output_cap_lowered').
    """

    # 1. Trimming
    HISTORY_TRIMMED = "history_trimmed"
    ORPHAN_TOOL_RESULTS_STRIPPED = "orphan_tool_results_stripped"

    # 2. Overflow recovery
    CONTEXT_OVERFLOW = "context_overflow"
    OUTPUT_CAP_LOWERED = "output_cap_lowered"

    # 3. Retrieval
    CONTEXT_PACKED = "context_packed"

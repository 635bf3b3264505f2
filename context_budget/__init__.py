"""
context_budget: keeps chat requests inside a model's context window.

Exact token counting, history trimming, one-shot overflow recovery and
retrieval-context packing for OpenAI-style chat payloads.
"""

from .config import BudgetSettings
from .context import (
    ContextAnswer,
    ConversationSession,
    ConversationStore,
    HistoryTrimmer,
    OverflowRecoverer,
    TokenCounter,
)
from .exceptions import (
    BudgetBaseError,
    ConfigurationError,
    ContextLengthExceededError,
    ContextTooSmallError,
    FatalOverflowError,
    InvalidStateError,
    TransientRemoteError,
)
from .model_manager import DEFAULT_CATALOG, ModelCatalog, ModelMetaData
from .protocol import EventBus, EventTypes
from .retrieval import ContextPacker
from .structs import (
    Budget,
    CallType,
    ConversationLimits,
    GenerationRequest,
    GenerationResponse,
    Message,
    PackedContext,
    RetrievedPassage,
    Role,
    ToolCall,
    ToolCallResult,
    ToolDescriptor,
    lower,
)

__version__ = "0.1.0"

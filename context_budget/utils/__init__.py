from .encoders import Encoder, TiktokenEncoder, encoding_name_for_model
from .error_parsing import parse_context_length_error
from .logger import EventLogger, configure_logging

__all__ = [
    "Encoder",
    "TiktokenEncoder",
    "encoding_name_for_model",
    "parse_context_length_error",
    "EventLogger",
    "configure_logging",
]

from .bus import EventBus
from .events import EventTypes

__all__ = ["EventBus", "EventTypes"]

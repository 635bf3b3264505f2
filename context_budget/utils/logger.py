import logging
import sys
from pathlib import Path
from typing import Any, Optional, Union

from context_budget.protocol.bus import EventBus
from context_budget.protocol.events import EventTypes

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Union[str, int] = "INFO", log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Install a stderr handler (and a file handler when `log_file` is set) on
    the package logger. Safe to call more than once.
    """
    logger = logging.getLogger("context_budget")
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_path), mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


class EventLogger:
    """
    Bridges budget events to the standard logger.

    Trims and packing are recorded at INFO, overflow handling at WARNING.
    """

    def __init__(self, bus: EventBus, logger: Optional[logging.Logger] = None):
        self._bus = bus
        self._logger = logger or logging.getLogger("context_budget.events")

    def start(self) -> None:
        """Subscribe to every budget event."""
        self._bus.subscribe(EventTypes.HISTORY_TRIMMED, self._log_trimmed)
        self._bus.subscribe(EventTypes.ORPHAN_TOOL_RESULTS_STRIPPED, self._log_stripped)
        self._bus.subscribe(EventTypes.CONTEXT_OVERFLOW, self._log_overflow)
        self._bus.subscribe(EventTypes.OUTPUT_CAP_LOWERED, self._log_cap_lowered)
        self._bus.subscribe(EventTypes.CONTEXT_PACKED, self._log_packed)

    def stop(self) -> None:
        self._bus.unsubscribe(EventTypes.HISTORY_TRIMMED, self._log_trimmed)
        self._bus.unsubscribe(EventTypes.ORPHAN_TOOL_RESULTS_STRIPPED, self._log_stripped)
        self._bus.unsubscribe(EventTypes.CONTEXT_OVERFLOW, self._log_overflow)
        self._bus.unsubscribe(EventTypes.OUTPUT_CAP_LOWERED, self._log_cap_lowered)
        self._bus.unsubscribe(EventTypes.CONTEXT_PACKED, self._log_packed)

    def _log_trimmed(self, data: Any) -> None:
        self._logger.info(f"[TRIM] kept={data.get('kept')} dropped={data.get('dropped')}")

    def _log_stripped(self, data: Any) -> None:
        self._logger.info(f"[TRIM] orphan tool results stripped: {data.get('count')}")

    def _log_overflow(self, data: Any) -> None:
        self._logger.warning(
            f"[OVERFLOW] {data.get('model')} attempt {data.get('attempt')}"
        )

    def _log_cap_lowered(self, data: Any) -> None:
        self._logger.warning(
            f"[OVERFLOW] {data.get('model')} output cap {data.get('from')} -> {data.get('to')}"
        )

    def _log_packed(self, data: Any) -> None:
        self._logger.info(
            f"[PACK] {data.get('committed')}/{data.get('offered')} passages, {data.get('tokens')} tokens"
        )

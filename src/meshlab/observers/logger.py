# src/meshlab/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent, ReconcileFinished, RunAborted

# carried by every event; the log file header already has them
_CONTEXT_KEYS = ("ts", "run_id", "direction", "context")


class LoggerObserver:
    """Mirrors events into the run log. Failures go to WARNING, the rest to DEBUG."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _CONTEXT_KEYS)
        level = logging.DEBUG
        if isinstance(event, RunAborted) or (isinstance(event, ReconcileFinished) and event.error):
            level = logging.WARNING
        self.logger.log(level, "[EVENT] %s: %s", type(event).__name__, fields)

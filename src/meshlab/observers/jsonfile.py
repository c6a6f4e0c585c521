# src/meshlab/observers/jsonfile.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from .events import BaseEvent
from .interface import Observer


class JsonFileObserver(Observer):
    """One JSON object per event, appended to `~/.meshlab/logs/<run_id>.jsonl`."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def notify(self, event: BaseEvent) -> None:
        record = {"type": type(event).__name__, **event.dict()}
        with self.path.open("a", encoding="utf-8") as f:
            # paths and enums in payloads are written as strings
            f.write(json.dumps(record, default=str) + "\n")


def read_events(path: str | Path) -> List[Dict[str, Any]]:
    """Load a run's event log back, skipping blank lines."""
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines if line.strip()]

# src/meshlab/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str                  # ISO timestamp
    run_id: str              # correlates all events in a single invocation
    direction: str           # converge / diverge
    context: Optional[str]   # kube-context

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(direction: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "direction": direction,
        "context": context,
    }


# ---------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PreflightCheckCompleted(BaseEvent):
    name: str
    status: str
    detail: str

@dataclass(frozen=True)
class PreflightFinished(BaseEvent):
    fatal: bool
    failed: List[str]
    warnings: List[str]


# ---------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    order: List[str]


# ---------------------------------------------------------------------
# Reconcile lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ReconcileStarted(BaseEvent):
    kind: str
    name: str
    namespace: Optional[str]
    desired: str

@dataclass(frozen=True)
class ReconcileFinished(BaseEvent):
    kind: str
    name: str
    namespace: Optional[str]
    action: str
    detail: str = ""
    error: Optional[str] = None
    fatal: bool = False

@dataclass(frozen=True)
class FallbackAttempted(BaseEvent):
    group: str
    kind: str
    name: str
    namespace: Optional[str]
    action: str


# ---------------------------------------------------------------------
# Run end
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunAborted(BaseEvent):
    stage: str
    step: str
    error: str
    output: str = ""
    hint: str = ""

@dataclass(frozen=True)
class RunSummary(BaseEvent):
    state: str
    exit_code: int
    counts: Dict[str, int]

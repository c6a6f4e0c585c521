# src/meshlab/reconcile/base.py

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from meshlab.config.models import MeshConfig
from meshlab.utils.shell import CommandResult

from .models import Action, Presence, ReconcileFailure, ReconcileOutcome, ResourceKind, ResourceSpec
from .probe import ClusterProbe

log = logging.getLogger("meshlab")


class Reconciler(ABC):
    """
    Drives one resource kind toward the spec's desired presence.

    Each reconciler re-probes the cluster right before acting and decides
    for itself whether a failure is fatal: required resources abort the run,
    resources marked optional only record the failure.
    """

    kind: ResourceKind

    def __init__(self, *, probe: ClusterProbe, cfg: MeshConfig):
        self.probe = probe
        self.cfg = cfg

    def reconcile(self, spec: ResourceSpec) -> ReconcileOutcome:
        if spec.kind is not self.kind:
            raise ValueError(f"{type(self).__name__} cannot reconcile {spec.ref}")
        if spec.desired is Presence.PRESENT:
            return self.converge(spec)
        return self.diverge(spec)

    @abstractmethod
    def converge(self, spec: ResourceSpec) -> ReconcileOutcome: ...

    @abstractmethod
    def diverge(self, spec: ResourceSpec) -> ReconcileOutcome: ...

    # ------------------------- helpers -------------------------

    @staticmethod
    def done(spec: ResourceSpec, action: Action, detail: str = "") -> ReconcileOutcome:
        log.debug("[reconcile] %s -> %s %s", spec.ref, action.value, detail)
        return ReconcileOutcome(spec=spec, action=action, detail=detail)

    @staticmethod
    def failed(
        spec: ResourceSpec,
        step: str,
        result: Optional[CommandResult] = None,
        *,
        output: str = "",
        hint: str = "",
    ) -> ReconcileOutcome:
        raw = result.output() if result is not None else output
        fatal = not spec.optional
        level = logging.ERROR if fatal else logging.WARNING
        log.log(level, "[reconcile] %s failed at %r: %s", spec.ref, step, raw or "(no output)")
        return ReconcileOutcome(
            spec=spec,
            action=Action.SKIPPED,
            error=ReconcileFailure(step=step, output=raw, hint=hint),
            fatal=fatal,
        )

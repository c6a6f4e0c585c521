# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/deploy/executor.py

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..components.policies import GROUPS
from ..config.models import MeshConfig
from ..helm.cli_runner import HelmCliRunner
from ..kube.kubectl import KubectlRunner
from ..preflight.gate import PreflightGate
from ..preflight.models import PreflightResult
from ..reconcile import build_reconcilers
from ..reconcile.base import Reconciler
from ..reconcile.fallback import BestEffortCleanup
from ..reconcile.models import ReconcileOutcome, ResourceKind, ResourceSpec
from ..reconcile.probe import ClusterProbe, ClusterUnreachableError
from ..utils.shell import CommandError
from .planner import PLANNERS, Direction, RunPlan

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    FallbackAttempted,
    PlanComputed,
    PreflightCheckCompleted,
    PreflightFinished,
    ReconcileFinished,
    ReconcileStarted,
    RunAborted,
    RunSummary,
    new_ctx,
)

log = logging.getLogger("meshlab")


class RunState(str, Enum):
    INIT = "INIT"
    PREFLIGHT = "PREFLIGHT"
    PLAN = "PLAN"
    RECONCILE = "RECONCILE"
    VERIFY = "VERIFY"
    DONE = "DONE"
    ABORTED = "ABORTED"


@dataclass
class RunReport:
    direction: Direction
    state: RunState = RunState.INIT
    preflight: Optional[PreflightResult] = None
    plan: Optional[RunPlan] = None
    outcomes: List[ReconcileOutcome] = field(default_factory=list)
    verification: List[str] = field(default_factory=list)
    abort_reason: Optional[str] = None

    def add(self, outcome: ReconcileOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def exit_code(self) -> int:
        return 0 if self.state is RunState.DONE else 1

    def counts(self) -> Dict[str, int]:
        c = Counter(o.action.value for o in self.outcomes)
        failed = sum(1 for o in self.outcomes if o.failed)
        if failed:
            c["failed"] = failed
        return dict(c)

    def summary(self) -> str:
        counts = " ".join(f"{k}={v}" for k, v in sorted(self.counts().items()))
        return f"{self.direction.value} {self.state.value} {counts}".strip()


class Driver:
    """
    Runs one direction end to end:

        INIT -> PREFLIGHT -> PLAN -> RECONCILE -> VERIFY -> DONE
                    |                    |
                    +----> ABORTED <-----+

    Reconcilers decide whether a failure is fatal; the driver only stops on
    their say-so (or when the cluster stops answering). Verification is
    informational and never changes the exit code.
    """

    def __init__(
        self,
        *,
        direction: Direction,
        cfg: MeshConfig,
        probe: ClusterProbe,
        gate: PreflightGate,
        reconcilers: Dict[ResourceKind, Reconciler],
        fallback: BestEffortCleanup,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
    ):
        self.direction = direction
        self.cfg = cfg
        self.probe = probe
        self.gate = gate
        self.reconcilers = reconcilers
        self.fallback = fallback
        self.bus = bus or EventBus()
        self.run_id = new_ctx(direction.value, cfg.kube_context, run_id)["run_id"]

    def _ctx(self) -> dict:
        return new_ctx(self.direction.value, self.cfg.kube_context, self.run_id)

    # ------------------------- stages -------------------------

    def run(self) -> RunReport:
        report = RunReport(direction=self.direction)

        report.state = RunState.PREFLIGHT
        if not self._preflight(report):
            return self._finish(report)

        report.state = RunState.PLAN
        report.plan = PLANNERS[self.direction](self.cfg)
        self.bus.emit(PlanComputed(order=report.plan.describe(), **self._ctx()))
        log.info("[plan] %s: %d step(s)", self.direction.value, len(report.plan))

        if self.cfg.dry_run:
            log.info("[plan] dry run; no changes made")
            report.state = RunState.DONE
            return self._finish(report)

        report.state = RunState.RECONCILE
        if not self._reconcile(report):
            return self._finish(report)

        report.state = RunState.VERIFY
        report.verification = self.verify()

        report.state = RunState.DONE
        return self._finish(report)

    def _preflight(self, report: RunReport) -> bool:
        result = self.gate.run()
        report.preflight = result

        for c in result.checks:
            self.bus.emit(PreflightCheckCompleted(name=c.name, status=c.status.value, detail=c.detail, **self._ctx()))
        self.bus.emit(
            PreflightFinished(
                fatal=result.fatal,
                failed=[c.name for c in result.failed],
                warnings=[c.name for c in result.warnings],
                **self._ctx(),
            )
        )

        if result.fatal:
            failed = result.failed
            self._abort(
                report,
                stage="preflight",
                step=", ".join(c.name for c in failed),
                error="; ".join(c.detail for c in failed),
            )
            return False
        return True

    def _reconcile(self, report: RunReport) -> bool:
        fallback_done: set[str] = set()

        for spec in report.plan.steps:
            self.bus.emit(
                ReconcileStarted(
                    kind=spec.kind.value,
                    name=spec.name,
                    namespace=spec.namespace,
                    desired=spec.desired.value,
                    **self._ctx(),
                )
            )
            log.info("[reconcile] %s", spec)

            try:
                outcome = self.reconcilers[spec.kind].reconcile(spec)
            except ClusterUnreachableError as e:
                self._abort(
                    report,
                    stage="reconcile",
                    step=str(spec),
                    error=str(e),
                    output=e.output,
                    hint="the cluster stopped answering; check it is running and re-run, completed steps are no-ops",
                )
                return False
            except CommandError as e:
                self._abort(report, stage="reconcile", step=str(spec), error=str(e), output=e.output)
                return False

            report.add(outcome)
            self._emit_outcome(outcome)

            if outcome.needs_fallback and spec.name not in fallback_done:
                fallback_done.add(spec.name)
                self._run_fallback(report, spec)

            if outcome.fatal:
                err = outcome.error
                self._abort(
                    report,
                    stage="reconcile",
                    step=err.step if err else str(spec),
                    error=f"{spec.ref} failed",
                    output=err.output if err else "",
                    hint=err.hint if err else "",
                )
                return False

        return True

    def _run_fallback(self, report: RunReport, spec: ResourceSpec) -> None:
        group = GROUPS.get(spec.name)
        if group is None:
            log.warning("[best-effort] no known resources for manifest group %s", spec.name)
            return

        outcomes = self.fallback.remove_known(spec, group.known_resources)
        for (kind, name), outcome in zip(group.known_resources, outcomes):
            report.add(outcome)
            self.bus.emit(
                FallbackAttempted(
                    group=group.name,
                    kind=kind,
                    name=name,
                    namespace=spec.namespace,
                    action=outcome.action.value,
                    **self._ctx(),
                )
            )

    def verify(self) -> List[str]:
        """Read-only status snapshot for the log; failures only warn."""
        ns = self.cfg.istio_namespace
        lines: List[str] = []
        try:
            res = self.probe.helm.list_releases(ns)
            if res.ok:
                releases = HelmCliRunner.parse_list(res)
                names = ", ".join(f"{r.get('name')} ({r.get('status')})" for r in releases) or "none"
                lines.append(f"helm releases in {ns}: {names}")

            if self.direction is Direction.CONVERGE:
                version = self.probe.installed_version(ns)
                lines.append(f"mesh version: {version or 'unknown'}")
                pods = self.probe.kubectl.describe_pods(ns)
                if pods.ok:
                    lines.append(pods.stdout.rstrip())
        except CommandError as e:
            log.warning("[verify] status snapshot incomplete: %s", e)

        for line in lines:
            log.info("[verify] %s", line)
        return lines

    # ------------------------- end of run -------------------------

    def _emit_outcome(self, outcome: ReconcileOutcome) -> None:
        spec = outcome.spec
        self.bus.emit(
            ReconcileFinished(
                kind=spec.kind.value,
                name=spec.name,
                namespace=spec.namespace,
                action=outcome.action.value,
                detail=outcome.detail,
                error=(outcome.error.output or outcome.error.step) if outcome.error else None,
                fatal=outcome.fatal,
                **self._ctx(),
            )
        )

    def _abort(self, report: RunReport, *, stage: str, step: str, error: str, output: str = "", hint: str = "") -> None:
        report.state = RunState.ABORTED
        report.abort_reason = f"{stage}: {step}: {error}"
        log.error("[abort] %s", report.abort_reason)
        self.bus.emit(RunAborted(stage=stage, step=step, error=error, output=output, hint=hint, **self._ctx()))

    def _finish(self, report: RunReport) -> RunReport:
        log.info("[summary] %s", report.summary())
        self.bus.emit(
            RunSummary(
                state=report.state.value,
                exit_code=report.exit_code,
                counts=report.counts(),
                **self._ctx(),
            )
        )
        return report


# ---------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------
def build_driver(
    direction: Direction,
    cfg: MeshConfig,
    *,
    bus: Optional[EventBus] = None,
    run_id: Optional[str] = None,
) -> Driver:
    kubectl = KubectlRunner(context=cfg.kube_context)
    helm = HelmCliRunner(kube_context=cfg.kube_context, debug=cfg.debug)
    probe = ClusterProbe(kubectl=kubectl, helm=helm)
    return Driver(
        direction=direction,
        cfg=cfg,
        probe=probe,
        gate=PreflightGate(probe=probe, cfg=cfg),
        reconcilers=build_reconcilers(cfg=cfg, probe=probe, kubectl=kubectl, helm=helm),
        fallback=BestEffortCleanup(kubectl=kubectl),
        bus=bus,
        run_id=run_id,
    )


def converge(cfg: MeshConfig, *, bus: Optional[EventBus] = None, run_id: Optional[str] = None) -> RunReport:
    return build_driver(Direction.CONVERGE, cfg, bus=bus, run_id=run_id).run()


def diverge(cfg: MeshConfig, *, bus: Optional[EventBus] = None, run_id: Optional[str] = None) -> RunReport:
    return build_driver(Direction.DIVERGE, cfg, bus=bus, run_id=run_id).run()

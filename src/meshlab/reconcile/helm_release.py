# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/reconcile/helm_release.py

from __future__ import annotations

import logging

from meshlab.config.models import ChartRef, ReleaseSpec
from meshlab.helm.charts import resolve_chart
from meshlab.helm.cli_runner import HelmCliRunner
from meshlab.helm.errors import HelmError

from .base import Reconciler
from .models import Action, ReconcileOutcome, ResourceKind, ResourceSpec
from .versions import normalize_version

log = logging.getLogger("meshlab")


class HelmReleaseReconciler(Reconciler):
    kind = ResourceKind.HELM_RELEASE

    def __init__(self, *, helm: HelmCliRunner, **kw):
        super().__init__(**kw)
        self.helm = helm
        self._repos_added: set[str] = set()

    def _ensure_repo(self, ref: ChartRef) -> None:
        if ref.repo_name in self._repos_added:
            return
        self.helm.add_repo(ref.repo_name, str(ref.repo_url))
        self._repos_added.add(ref.repo_name)

    def converge(self, spec: ResourceSpec) -> ReconcileOutcome:
        ref = spec.source
        if not isinstance(ref, ChartRef):
            raise TypeError(f"{spec.ref}: source must be a ChartRef, got {type(ref).__name__}")

        observed = self.probe.observe(spec)
        unchanged = (
            observed.exists
            and observed.version == normalize_version(ref.version)
            and self.probe.release_values(spec.name, spec.namespace) == dict(spec.values or {})
        )
        chart = resolve_chart(ref, self.cfg.charts_dir)

        rel = ReleaseSpec(
            name=spec.name,
            namespace=spec.namespace,
            chart=chart.chart,
            version=chart.version,
            values=dict(spec.values or {}),
            timeout_seconds=self.cfg.helm_timeout,
        )

        source = "vendored archive" if chart.local else f"{ref.remote}@{ref.version}"
        log.info("[helm] upgrade --install %s/%s from %s", spec.namespace, spec.name, source)

        # upgrade regardless; the outcome reports what differed beforehand
        try:
            if not chart.local:
                self._ensure_repo(ref)
            self.helm.upgrade_install(rel)
        except HelmError as e:
            return self.failed(
                spec,
                f"helm upgrade --install {spec.name}",
                e.result,
                output=str(e),
                hint=(
                    f"inspect with `helm status {spec.name} -n {spec.namespace}`; "
                    f"vendor charts with `meshlab vendor-charts` when offline"
                ),
            )

        if not observed.exists:
            return self.done(spec, Action.CREATED, source)
        if unchanged:
            return self.done(spec, Action.NOOP, f"{source} already deployed")
        return self.done(spec, Action.UPDATED, source)

    def diverge(self, spec: ResourceSpec) -> ReconcileOutcome:
        if not self.probe.helm_release_exists(spec.name, spec.namespace):
            return self.done(spec, Action.NOOP, "release not installed")

        try:
            self.helm.uninstall(spec.name, spec.namespace, timeout_seconds=self.cfg.helm_timeout)
        except HelmError as e:
            if e.result is not None and e.result.not_found:
                # removed by another actor after the probe
                return self.done(spec, Action.NOOP, "release not installed")
            return self.failed(
                spec,
                f"helm uninstall {spec.name}",
                e.result,
                output=str(e),
                hint=f"inspect with `helm status {spec.name} -n {spec.namespace}`",
            )

        return self.done(spec, Action.DELETED)

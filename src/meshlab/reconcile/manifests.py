# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/reconcile/manifests.py

from __future__ import annotations

import logging
from pathlib import Path

from jinja2 import TemplateError

from meshlab.kube.kubectl import KubectlRunner
from meshlab.utils.template_renderer import TemplateRenderer

from .base import Reconciler
from .models import Action, ReconcileOutcome, ResourceKind, ResourceSpec

log = logging.getLogger("meshlab")

MANIFEST_SUFFIXES = (".yaml", ".yml")


def manifest_files(path: Path) -> list[Path]:
    if path.is_file():
        return [path]
    if path.is_dir():
        return sorted(p for p in path.iterdir() if p.is_file() and p.suffix in MANIFEST_SUFFIXES)
    return []


def summarize_apply(stdout: str) -> Action:
    """
    Fold `kubectl apply` per-object lines ("<kind>/<name> created") into a
    single action.
    """
    verbs = [line.rsplit(" ", 1)[-1] for line in stdout.splitlines() if line.strip()]
    if any(v == "created" for v in verbs):
        return Action.CREATED
    if any(v in ("configured", "serverside-applied") for v in verbs):
        return Action.UPDATED
    return Action.NOOP


class ManifestReconciler(Reconciler):
    """
    Applies / deletes a manifest file or every manifest in a directory,
    rendered through Jinja2 so namespace names follow the run's config.
    `spec.name` is the manifest group; `spec.source` the path.
    """

    kind = ResourceKind.MANIFEST

    def __init__(self, *, kubectl: KubectlRunner, **kw):
        super().__init__(**kw)
        self.kubectl = kubectl

    def _context(self, spec: ResourceSpec) -> dict:
        return {
            "namespace": spec.namespace,
            "istio_namespace": self.cfg.istio_namespace,
            "platform_namespace": self.cfg.platform_namespace,
            "dashboard_namespace": self.cfg.dashboard_namespace,
            "mesh_version": self.cfg.pinned_mesh_version,
        }

    def render(self, spec: ResourceSpec, files: list[Path]) -> str:
        ctx = self._context(spec)
        docs = [TemplateRenderer(f.parent).render(f.name, ctx).strip() for f in files]
        return "\n---\n".join(d for d in docs if d) + "\n"

    def converge(self, spec: ResourceSpec) -> ReconcileOutcome:
        path = Path(spec.source)
        files = manifest_files(path)
        if not files:
            problem = f"no *.yaml manifests under {path}" if path.exists() else f"{path} does not exist"
            if spec.optional:
                log.warning("[manifests] %s: %s; skipping", spec.name, problem)
                return self.done(spec, Action.SKIPPED, problem)
            return self.failed(
                spec,
                f"read manifests {path}",
                output=problem,
                hint="the security and network-policy manifests are required; restore the manifests directory",
            )

        try:
            content = self.render(spec, files)
        except TemplateError as e:
            return self.failed(spec, f"render {path}", output=str(e))

        log.info("[manifests] applying %d file(s) from %s to %s", len(files), path, spec.namespace)
        res = self.kubectl.apply_content(content, namespace=spec.namespace)
        if not res.ok:
            return self.failed(
                spec,
                f"kubectl apply {path}",
                res,
                hint="policy kinds need the Istio CRDs; check that istio-base installed",
            )
        return self.done(spec, summarize_apply(res.stdout), f"{len(files)} file(s)")

    def diverge(self, spec: ResourceSpec) -> ReconcileOutcome:
        path = Path(spec.source)
        files = manifest_files(path)
        if not files:
            log.warning("[manifests] %s: %s missing; falling back to known resource names", spec.name, path)
            return ReconcileOutcome(
                spec=spec,
                action=Action.SKIPPED,
                detail=f"{path} not found",
                needs_fallback=True,
            )

        try:
            content = self.render(spec, files)
        except TemplateError as e:
            return self.failed(spec, f"render {path}", output=str(e))

        res = self.kubectl.delete_content(content, namespace=spec.namespace)
        if res.not_found:
            # kinds already gone with their CRDs
            return self.done(spec, Action.NOOP, "already absent")
        if not res.ok:
            return self.failed(spec, f"kubectl delete {path}", res)

        deleted = any(line.rstrip().endswith("deleted") for line in res.stdout.splitlines())
        return self.done(spec, Action.DELETED if deleted else Action.NOOP)

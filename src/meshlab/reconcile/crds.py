# src/meshlab/reconcile/crds.py

from __future__ import annotations

import logging

from meshlab.kube.kubectl import KubectlRunner

from .base import Reconciler
from .models import Action, ReconcileOutcome, ResourceKind, ResourceSpec

log = logging.getLogger("meshlab")


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


class CrdSetReconciler(Reconciler):
    """
    Cluster-scoped CRD sets.

    `spec.source` is either a manifest URL (with `spec.name` a CRD from it
    used as the presence marker) or a bare API group such as `istio.io`,
    meaning every CRD in that group. Removal only ever appears in a plan
    when the operator asked for it.
    """

    kind = ResourceKind.CRD_SET

    def __init__(self, *, kubectl: KubectlRunner, **kw):
        super().__init__(**kw)
        self.kubectl = kubectl

    def converge(self, spec: ResourceSpec) -> ReconcileOutcome:
        source = str(spec.source)
        if not _is_url(source):
            raise ValueError(f"{spec.ref}: installing needs a manifest URL, got {source!r}")

        # CRDs are additive; an installed set is left alone
        if self.probe.crd_installed(spec.name):
            return self.done(spec, Action.NOOP, f"{spec.name} present")

        log.info("[crds] installing %s", source)
        res = self.kubectl.apply_url(source)
        if not res.ok:
            return self.failed(
                spec,
                f"kubectl apply --server-side -f {source}",
                res,
                hint="CRD manifests are fetched from the network; check connectivity or pin another version",
            )
        return self.done(spec, Action.CREATED, source)

    def diverge(self, spec: ResourceSpec) -> ReconcileOutcome:
        source = str(spec.source)

        if _is_url(source):
            if not self.probe.crd_installed(spec.name):
                return self.done(spec, Action.NOOP, "not installed")
            log.warning("[crds] removing cluster-wide CRDs from %s", source)
            res = self.kubectl.delete_url(source)
            step = f"kubectl delete -f {source}"
        else:
            names = self.probe.crds_in_group(source)
            if not names:
                return self.done(spec, Action.NOOP, f"no *.{source} CRDs")
            log.warning("[crds] removing %d cluster-wide CRD(s) in group %s: %s", len(names), source, ", ".join(names))
            res = self.kubectl.delete("crd", names)
            step = f"kubectl delete crd (*.{source})"

        if not res.ok and not res.not_found:
            return self.failed(spec, step, res)
        return self.done(spec, Action.DELETED, source)

# src/meshlab/reconcile/namespace.py

from __future__ import annotations

import logging

from meshlab.kube.kubectl import KubectlRunner

from .base import Reconciler
from .models import Action, ReconcileOutcome, ResourceKind, ResourceSpec

log = logging.getLogger("meshlab")


class NamespaceReconciler(Reconciler):
    kind = ResourceKind.NAMESPACE

    def __init__(self, *, kubectl: KubectlRunner, **kw):
        super().__init__(**kw)
        self.kubectl = kubectl

    def converge(self, spec: ResourceSpec) -> ReconcileOutcome:
        if self.probe.namespace_exists(spec.name):
            return self.done(spec, Action.NOOP, "already exists")

        res = self.kubectl.create_namespace(spec.name)
        if res.ok:
            return self.done(spec, Action.CREATED)
        if "AlreadyExists" in res.stderr:
            # created by someone else between probe and create
            return self.done(spec, Action.NOOP, "already exists")
        return self.failed(
            spec,
            f"kubectl create namespace {spec.name}",
            res,
            hint="check RBAC for namespace creation on this context",
        )

    def diverge(self, spec: ResourceSpec) -> ReconcileOutcome:
        if not self.cfg.acknowledge_destruction:
            return self.done(spec, Action.SKIPPED, "namespace deletion not acknowledged")

        if not self.probe.namespace_exists(spec.name):
            return self.done(spec, Action.NOOP, "already absent")

        res = self.kubectl.delete("namespace", [spec.name], wait=False)
        if not res.ok and not res.not_found:
            return self.failed(spec, f"kubectl delete namespace {spec.name}", res)

        timeout = self.cfg.namespace_delete_timeout
        log.info("[namespace] waiting up to %ds for %s to be removed", timeout, spec.name)
        waited = self.kubectl.wait_for_deletion("namespace", spec.name, timeout_seconds=timeout)
        if waited.ok or waited.not_found:
            return self.done(spec, Action.DELETED)

        # finalizers may legitimately outlive this run
        log.warning(
            "[namespace] %s still terminating after %ds: %s",
            spec.name, timeout, waited.output() or "timed out",
        )
        return self.done(spec, Action.DELETED, "deletion requested but not confirmed")

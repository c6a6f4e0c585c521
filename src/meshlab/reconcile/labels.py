# src/meshlab/reconcile/labels.py

from __future__ import annotations

import logging
from typing import Iterable

from meshlab.kube.kubectl import KubectlError, KubectlRunner

from .base import Reconciler
from .models import Action, ReconcileOutcome, ResourceKind, ResourceSpec

log = logging.getLogger("meshlab")

SIDECAR_LABEL = ("istio-injection", "enabled")
AMBIENT_LABEL = ("istio.io/dataplane-mode", "ambient")

# a namespace is enrolled in at most one dataplane mode
DATAPLANE_LABEL_KEYS = (SIDECAR_LABEL[0], AMBIENT_LABEL[0])


class LabelReconciler(Reconciler):
    """
    Namespace labels, with `spec.name` as the label key and `spec.source` as
    the value. Setting one key of `exclusive_keys` clears the others.
    """

    kind = ResourceKind.LABEL

    def __init__(self, *, kubectl: KubectlRunner, exclusive_keys: Iterable[str] = DATAPLANE_LABEL_KEYS, **kw):
        super().__init__(**kw)
        self.kubectl = kubectl
        self.exclusive_keys = tuple(exclusive_keys)

    def converge(self, spec: ResourceSpec) -> ReconcileOutcome:
        return self.set_exclusive(spec)

    def diverge(self, spec: ResourceSpec) -> ReconcileOutcome:
        try:
            removed = self.clear(spec.namespace, spec.name)
        except KubectlError as e:
            return self.failed(spec, f"kubectl label namespace {spec.namespace} {spec.name}-", e.result)
        if removed:
            return self.done(spec, Action.DELETED)
        return self.done(spec, Action.NOOP, "label already absent")

    def set_exclusive(self, spec: ResourceSpec) -> ReconcileOutcome:
        value = str(spec.source)
        current = self.probe.observe(spec)

        cleared = []
        if spec.name in self.exclusive_keys:
            for other in self.exclusive_keys:
                if other == spec.name:
                    continue
                try:
                    if self.clear(spec.namespace, other):
                        cleared.append(other)
                except KubectlError as e:
                    return self.failed(spec, f"kubectl label namespace {spec.namespace} {other}-", e.result)

        suffix = f"; cleared {', '.join(cleared)}" if cleared else ""

        if current.exists and current.version == value:
            if cleared:
                return self.done(spec, Action.UPDATED, f"{spec.name}={value}{suffix}")
            return self.done(spec, Action.NOOP, f"{spec.name}={value}")

        # --overwrite makes this safe whatever the previous value was
        res = self.kubectl.label("namespace", spec.namespace, spec.name, value)
        if not res.ok:
            return self.failed(
                spec,
                f"kubectl label namespace {spec.namespace} {spec.name}={value}",
                res,
                hint=f"the namespace {spec.namespace!r} must exist before it can be labelled",
            )

        action = Action.UPDATED if current.exists else Action.CREATED
        return self.done(spec, action, f"{spec.name}={value}{suffix}")

    def clear(self, namespace: str, key: str) -> bool:
        """
        Remove `key` from the namespace. Returns True when a label was
        actually removed. An absent label or namespace is the desired end
        state, not an error; any other failure raises KubectlError.
        """
        if self.probe.label_value(namespace, key) is None:
            return False

        res = self.kubectl.unlabel("namespace", namespace, key)
        if res.not_found:
            return False
        if not res.ok:
            raise KubectlError(f"could not remove label {key} from {namespace}", res)

        log.info("[labels] cleared %s on namespace %s", key, namespace)
        return True

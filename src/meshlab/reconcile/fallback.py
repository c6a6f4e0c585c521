# src/meshlab/reconcile/fallback.py

from __future__ import annotations

import logging
from typing import Iterable, Tuple

from meshlab.kube.kubectl import KubectlRunner

from .models import Action, ReconcileOutcome, ResourceSpec

log = logging.getLogger("meshlab")


class BestEffortCleanup:
    """
    Degraded-mode teardown for manifest groups whose files are gone.

    Deletes a fixed list of resource names bootstrap is known to create.
    It cannot see local customisations, so every attempted name is logged
    for the operator to audit. Nothing here is ever fatal.
    """

    def __init__(self, *, kubectl: KubectlRunner):
        self.kubectl = kubectl

    def remove_known(
        self,
        spec: ResourceSpec,
        known: Iterable[Tuple[str, str]],
    ) -> list[ReconcileOutcome]:
        outcomes = []
        for kind, name in known:
            log.warning(
                "[best-effort] %s: deleting %s/%s in %s (manifest missing)",
                spec.name, kind, name, spec.namespace,
            )
            res = self.kubectl.delete(kind, [name], namespace=spec.namespace)

            if res.ok and res.stdout.strip():
                action, detail = Action.DELETED, f"{kind}/{name}"
            elif res.ok or res.not_found:
                action, detail = Action.NOOP, f"{kind}/{name} not present"
            else:
                log.warning("[best-effort] %s/%s: %s", kind, name, res.output())
                action, detail = Action.SKIPPED, f"{kind}/{name}: {res.output() or 'delete failed'}"

            outcomes.append(ReconcileOutcome(spec=spec, action=action, detail=detail))
        return outcomes

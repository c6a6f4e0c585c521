# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/preflight/gate.py

from __future__ import annotations

import fnmatch
import logging
import shutil
from typing import Callable, Optional

from meshlab.config.models import MeshConfig
from meshlab.reconcile.probe import ClusterProbe, ClusterUnreachableError
from meshlab.reconcile.versions import normalize_version
from meshlab.utils.shell import CommandError

from .models import CheckResult, CheckStatus, PreflightResult

log = logging.getLogger("meshlab")

REQUIRED_TOOLS = ("kubectl", "helm")


class PreflightGate:
    """
    Environment and safety checks run before anything touches the cluster.

    Every check runs and is reported, so one invocation tells the operator
    everything that is wrong. Any FAIL makes the result fatal. `--force`
    downgrades the context and version checks to warnings; nothing
    downgrades the destructive-options check.
    """

    def __init__(
        self,
        *,
        probe: ClusterProbe,
        cfg: MeshConfig,
        which: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.probe = probe
        self.cfg = cfg
        self.which = which or shutil.which
        self._tools_ok = False
        self._reachable = False

    def run(self) -> PreflightResult:
        result = PreflightResult()
        for check in (
            self.check_tools,
            self.check_cluster,
            self.check_context,
            self.check_storage,
            self.check_mesh_version,
            self.check_destructive,
        ):
            r = result.add(check())
            log.debug("[preflight] %s", r)
        return result

    def _forceable(self, name: str, detail: str) -> CheckResult:
        if self.cfg.force:
            return CheckResult(name, CheckStatus.WARN, f"{detail} (continuing because of --force)")
        return CheckResult(name, CheckStatus.FAIL, f"{detail}; re-run with --force to override")

    # ------------------------- checks -------------------------

    def check_tools(self) -> CheckResult:
        missing = [t for t in REQUIRED_TOOLS if not self.which(t)]
        self._tools_ok = "kubectl" not in missing
        if missing:
            return CheckResult("tools", CheckStatus.FAIL, f"not on PATH: {', '.join(missing)}")
        return CheckResult("tools", CheckStatus.PASS, "kubectl and helm found")

    def check_cluster(self) -> CheckResult:
        if not self._tools_ok:
            return CheckResult("cluster", CheckStatus.SKIP, "kubectl not available")
        self._reachable = self.probe.cluster_reachable()
        if not self._reachable:
            return CheckResult(
                "cluster",
                CheckStatus.FAIL,
                "API server did not answer /readyz; is the local cluster running?",
            )
        return CheckResult("cluster", CheckStatus.PASS, "API server ready")

    def check_context(self) -> CheckResult:
        if not self._tools_ok:
            return CheckResult("context", CheckStatus.SKIP, "kubectl not available")

        ctx = self.probe.current_context()
        if not ctx:
            return CheckResult("context", CheckStatus.FAIL, "no current kube context; pass --context")

        if any(fnmatch.fnmatch(ctx, pattern) for pattern in self.cfg.allowed_contexts):
            return CheckResult("context", CheckStatus.PASS, ctx)

        allowed = ", ".join(self.cfg.allowed_contexts)
        return self._forceable("context", f"context {ctx!r} is not a known local cluster ({allowed})")

    def check_storage(self) -> CheckResult:
        if not self._reachable:
            return CheckResult("storage", CheckStatus.SKIP, "cluster unreachable")
        try:
            name = self.probe.default_storage_class()
        except ClusterUnreachableError:
            return CheckResult("storage", CheckStatus.SKIP, "cluster unreachable")
        except CommandError as e:
            return CheckResult("storage", CheckStatus.WARN, f"could not list storage classes: {e.output or e}")
        if not name:
            return CheckResult("storage", CheckStatus.WARN, "no default StorageClass; PVC-backed workloads will stay Pending")
        return CheckResult("storage", CheckStatus.PASS, name)

    def check_mesh_version(self) -> CheckResult:
        if not self._reachable:
            return CheckResult("mesh-version", CheckStatus.SKIP, "cluster unreachable")
        try:
            installed = self.probe.installed_version(self.cfg.istio_namespace)
        except ClusterUnreachableError as e:
            return CheckResult("mesh-version", CheckStatus.FAIL, str(e))
        except CommandError as e:
            return CheckResult("mesh-version", CheckStatus.FAIL, f"could not determine installed version: {e}")

        pinned = normalize_version(self.cfg.pinned_mesh_version)
        if installed is None:
            return CheckResult("mesh-version", CheckStatus.PASS, f"no mesh installed; will use {pinned}")
        if installed == pinned:
            return CheckResult("mesh-version", CheckStatus.PASS, installed)
        return self._forceable("mesh-version", f"installed mesh {installed} differs from pinned {pinned}")

    def check_destructive(self) -> CheckResult:
        if not self.cfg.destructive:
            return CheckResult("destructive", CheckStatus.PASS, "no destructive options")

        asked = [
            flag
            for flag, on in (
                ("--delete-namespaces", self.cfg.delete_namespaces),
                ("--remove-cluster-crds", self.cfg.remove_cluster_crds),
            )
            if on
        ]
        if self.cfg.acknowledge_destruction:
            return CheckResult("destructive", CheckStatus.PASS, f"acknowledged: {' '.join(asked)}")
        return CheckResult(
            "destructive",
            CheckStatus.FAIL,
            f"{' '.join(asked)} requires --acknowledge-destruction",
        )

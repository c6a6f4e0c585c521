# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/reconcile/__init__.py

from __future__ import annotations

from typing import Dict

from meshlab.config.models import MeshConfig
from meshlab.helm.cli_runner import HelmCliRunner
from meshlab.kube.kubectl import KubectlRunner

from .base import Reconciler
from .crds import CrdSetReconciler
from .helm_release import HelmReleaseReconciler
from .labels import LabelReconciler
from .manifests import ManifestReconciler
from .models import ResourceKind
from .namespace import NamespaceReconciler
from .probe import ClusterProbe


def build_reconcilers(
    *,
    cfg: MeshConfig,
    probe: ClusterProbe,
    kubectl: KubectlRunner,
    helm: HelmCliRunner,
) -> Dict[ResourceKind, Reconciler]:
    """One reconciler per resource kind, all sharing the run's probe and config."""
    common = {"probe": probe, "cfg": cfg}
    return {
        ResourceKind.NAMESPACE: NamespaceReconciler(kubectl=kubectl, **common),
        ResourceKind.HELM_RELEASE: HelmReleaseReconciler(helm=helm, **common),
        ResourceKind.LABEL: LabelReconciler(kubectl=kubectl, **common),
        ResourceKind.MANIFEST: ManifestReconciler(kubectl=kubectl, **common),
        ResourceKind.CRD_SET: CrdSetReconciler(kubectl=kubectl, **common),
    }


__all__ = ["build_reconcilers", "ClusterProbe", "Reconciler"]

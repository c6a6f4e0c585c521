# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/components/istio.py
from __future__ import annotations

from typing import List

from meshlab.config.models import DataplaneMode, MeshConfig
from meshlab.reconcile.models import Presence, ResourceKind, ResourceSpec

# representative CRD used to tell whether the Gateway API set is installed
GATEWAY_API_MARKER_CRD = "gateways.gateway.networking.k8s.io"
ISTIO_CRD_GROUP = "istio.io"

ISTIO_BASE = "istio-base"
ISTIOD = "istiod"
ISTIO_CNI = "istio-cni"
ZTUNNEL = "ztunnel"
INGRESS_GATEWAY = "istio-ingressgateway"
DASHBOARD = "kubernetes-dashboard"


def _release(cfg: MeshConfig, name: str, chart: str, *, desired=Presence.PRESENT, values=None, optional=False):
    return ResourceSpec(
        kind=ResourceKind.HELM_RELEASE,
        name=name,
        namespace=cfg.istio_namespace,
        desired=desired,
        source=cfg.istio_chart(chart),
        optional=optional,
        values=values,
    )


def gateway_api_crds(cfg: MeshConfig, desired: Presence = Presence.PRESENT) -> ResourceSpec:
    return ResourceSpec(
        kind=ResourceKind.CRD_SET,
        name=GATEWAY_API_MARKER_CRD,
        desired=desired,
        source=cfg.gateway_api_crds_url,
    )


def istio_crds(desired: Presence = Presence.ABSENT) -> ResourceSpec:
    return ResourceSpec(
        kind=ResourceKind.CRD_SET,
        name="istio-crds",
        desired=desired,
        source=ISTIO_CRD_GROUP,
    )


def build_istio_releases(cfg: MeshConfig, desired: Presence = Presence.PRESENT) -> List[ResourceSpec]:
    """
    Istio Helm releases in install order.

    - base + istiod always
    - istio-cni + ztunnel for the ambient dataplane
    - the ingress gateway when requested

    For removal every release is listed whatever the current flags say:
    the cluster may hold leftovers from a run with other flags, and absent
    releases are a no-op.
    """
    removing = desired is Presence.ABSENT
    ambient = cfg.dataplane_mode is DataplaneMode.AMBIENT
    profile = {"profile": "ambient"} if ambient and not removing else None

    releases: List[ResourceSpec] = [
        _release(cfg, ISTIO_BASE, "base", desired=desired),
        _release(cfg, ISTIOD, "istiod", desired=desired, values=profile),
    ]

    if ambient or removing:
        releases.append(_release(cfg, ISTIO_CNI, "cni", desired=desired, values=profile))
        releases.append(_release(cfg, ZTUNNEL, "ztunnel", desired=desired))

    if cfg.install_ingress_gateway or removing:
        releases.append(_release(cfg, INGRESS_GATEWAY, "gateway", desired=desired, optional=True))

    return releases


def dashboard_release(cfg: MeshConfig, desired: Presence = Presence.PRESENT) -> ResourceSpec:
    return ResourceSpec(
        kind=ResourceKind.HELM_RELEASE,
        name=DASHBOARD,
        namespace=cfg.dashboard_namespace,
        desired=desired,
        source=cfg.dashboard_chart(),
        optional=True,
    )


def vendored_charts(cfg: MeshConfig):
    """Every chart a bootstrap with these pins may install."""
    return [cfg.istio_chart(c) for c in ("base", "istiod", "cni", "ztunnel", "gateway")] + [
        cfg.dashboard_chart()
    ]

# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/deploy/planner.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from ..components.istio import (
    build_istio_releases,
    dashboard_release,
    gateway_api_crds,
    istio_crds,
)
from ..components.policies import INTERNET_EGRESS, NETWORK_POLICY, SECURITY, WAYPOINT, ManifestGroup
from ..config.models import DataplaneMode, MeshConfig
from ..reconcile.labels import AMBIENT_LABEL, SIDECAR_LABEL
from ..reconcile.models import Presence, ResourceKind, ResourceSpec


class Direction(str, Enum):
    CONVERGE = "converge"
    DIVERGE = "diverge"


@dataclass(frozen=True)
class RunPlan:
    direction: Direction
    steps: Tuple[ResourceSpec, ...]

    def describe(self) -> List[str]:
        return [str(s) for s in self.steps]

    def __len__(self) -> int:
        return len(self.steps)


def _namespace(name: str, desired: Presence) -> ResourceSpec:
    return ResourceSpec(kind=ResourceKind.NAMESPACE, name=name, desired=desired)


def _label(cfg: MeshConfig, key: str, value: str, desired: Presence) -> ResourceSpec:
    return ResourceSpec(
        kind=ResourceKind.LABEL,
        name=key,
        namespace=cfg.platform_namespace,
        desired=desired,
        source=value,
    )


def _manifests(cfg: MeshConfig, group: ManifestGroup, desired: Presence) -> ResourceSpec:
    return ResourceSpec(
        kind=ResourceKind.MANIFEST,
        name=group.name,
        namespace=cfg.platform_namespace,
        desired=desired,
        source=group.path(cfg.manifests_dir),
        optional=group.optional,
    )


def dataplane_labels(cfg: MeshConfig) -> List[ResourceSpec]:
    """
    The enrollment label for the configured mode. The label reconciler
    clears the other key when it sets one; mode `none` clears both.
    """
    if cfg.dataplane_mode is DataplaneMode.SIDECAR:
        return [_label(cfg, *SIDECAR_LABEL, Presence.PRESENT)]
    if cfg.dataplane_mode is DataplaneMode.AMBIENT:
        return [_label(cfg, *AMBIENT_LABEL, Presence.PRESENT)]
    return [
        _label(cfg, *SIDECAR_LABEL, Presence.ABSENT),
        _label(cfg, *AMBIENT_LABEL, Presence.ABSENT),
    ]


def plan_converge(cfg: MeshConfig) -> RunPlan:
    up = Presence.PRESENT
    steps: List[ResourceSpec] = [gateway_api_crds(cfg, up)]

    steps.append(_namespace(cfg.istio_namespace, up))
    steps.append(_namespace(cfg.platform_namespace, up))
    if cfg.install_dashboard:
        steps.append(_namespace(cfg.dashboard_namespace, up))

    steps += build_istio_releases(cfg, up)
    if cfg.install_dashboard:
        steps.append(dashboard_release(cfg, up))

    steps += dataplane_labels(cfg)

    steps.append(_manifests(cfg, SECURITY, up))
    steps.append(_manifests(cfg, NETWORK_POLICY, up))
    if cfg.allow_internet_egress:
        steps.append(_manifests(cfg, INTERNET_EGRESS, up))
    if cfg.dataplane_mode is DataplaneMode.AMBIENT:
        steps.append(_manifests(cfg, WAYPOINT, up))

    return RunPlan(direction=Direction.CONVERGE, steps=tuple(steps))


def plan_diverge(cfg: MeshConfig) -> RunPlan:
    """
    Reverse dependency order. Everything bootstrap may have created is
    listed regardless of the current flags; absent resources are no-ops.
    """
    down = Presence.ABSENT
    steps: List[ResourceSpec] = [
        _manifests(cfg, g, down) for g in (WAYPOINT, INTERNET_EGRESS, NETWORK_POLICY, SECURITY)
    ]

    steps.append(_label(cfg, *SIDECAR_LABEL, down))
    steps.append(_label(cfg, *AMBIENT_LABEL, down))

    steps.append(dashboard_release(cfg, down))
    steps += list(reversed(build_istio_releases(cfg, down)))

    if cfg.delete_namespaces:
        steps += [
            _namespace(cfg.dashboard_namespace, down),
            _namespace(cfg.platform_namespace, down),
            _namespace(cfg.istio_namespace, down),
        ]

    if cfg.remove_cluster_crds:
        steps.append(gateway_api_crds(cfg, down))
        steps.append(istio_crds(down))

    return RunPlan(direction=Direction.DIVERGE, steps=tuple(steps))


PLANNERS = {
    Direction.CONVERGE: plan_converge,
    Direction.DIVERGE: plan_diverge,
}

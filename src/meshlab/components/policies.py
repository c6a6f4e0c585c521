# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/components/policies.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


@dataclass(frozen=True)
class ManifestGroup:
    """
    A directory (or file) of policy manifests under the manifests root,
    plus the names bootstrap is known to create from it. The names are
    only used to clean up when the manifests themselves are gone.
    """

    name: str
    relpath: str
    known_resources: Tuple[Tuple[str, str], ...]   # (kind, name)
    optional: bool = False

    def path(self, manifests_dir: Path) -> Path:
        return manifests_dir / self.relpath


SECURITY = ManifestGroup(
    name="security",
    relpath="security",
    known_resources=(
        ("peerauthentication.security.istio.io", "default"),
        ("authorizationpolicy.security.istio.io", "deny-all"),
        ("authorizationpolicy.security.istio.io", "allow-same-namespace"),
    ),
)

NETWORK_POLICY = ManifestGroup(
    name="network-policy",
    relpath="network-policy",
    known_resources=(
        ("networkpolicy", "default-deny-all"),
        ("networkpolicy", "allow-dns"),
        ("networkpolicy", "allow-same-namespace"),
        ("networkpolicy", "allow-istio-control-plane"),
        ("networkpolicy", "allow-hbone"),
    ),
)

INTERNET_EGRESS = ManifestGroup(
    name="internet-egress",
    relpath="egress/allow-internet-egress.yaml",
    known_resources=(("networkpolicy", "allow-internet-egress"),),
    optional=True,
)

WAYPOINT = ManifestGroup(
    name="waypoint",
    relpath="ambient/waypoint.yaml",
    known_resources=(("gateway.gateway.networking.k8s.io", "waypoint"),),
    optional=True,
)

GROUPS = {g.name: g for g in (SECURITY, NETWORK_POLICY, INTERNET_EGRESS, WAYPOINT)}

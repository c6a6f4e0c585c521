# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/reconcile/probe.py

from __future__ import annotations

import json
import logging
from typing import Optional

from meshlab.helm.cli_runner import HelmCliRunner
from meshlab.helm.errors import HelmError
from meshlab.kube.kubectl import KubectlRunner
from meshlab.utils.shell import CommandError, CommandResult

from .models import ObservedState, ResourceKind, ResourceSpec
from .versions import normalize_version, parse_chart_identifier

log = logging.getLogger("meshlab")

# label the istiod chart stamps on its Deployment
VERSION_LABEL = "app.kubernetes.io/version"
CONTROL_PLANE_DEPLOYMENT = "istiod"
CONTROL_PLANE_CHART = "istiod"
# charts whose version is the mesh version; anything else in the namespace is ignored
MESH_CHARTS = ("istiod", "base", "cni", "ztunnel", "gateway")
DEFAULT_CLASS_ANNOTATIONS = (
    "storageclass.kubernetes.io/is-default-class",
    "storageclass.beta.kubernetes.io/is-default-class",
)


class ClusterUnreachableError(CommandError):
    """The API server (or Helm's view of it) did not answer."""


class ClusterProbe:
    """
    Read-only questions about the live cluster.

    "Does not exist" is an answer (False / None); "could not ask" raises
    ClusterUnreachableError. Nothing here is cached: each call hits the cluster.
    """

    def __init__(self, *, kubectl: KubectlRunner, helm: HelmCliRunner):
        self.kubectl = kubectl
        self.helm = helm

    @staticmethod
    def _guard(res: CommandResult) -> CommandResult:
        if res.unreachable:
            raise ClusterUnreachableError(f"cluster unreachable while running {res.command!r}", res)
        return res

    # ------------------------- existence -------------------------

    def namespace_exists(self, name: str) -> bool:
        return self._guard(self.kubectl.exists("namespace", name)).ok

    def helm_release_exists(self, name: str, namespace: str) -> bool:
        return self._guard(self.helm.status(name, namespace)).ok

    def crd_installed(self, name: str) -> bool:
        return self._guard(self.kubectl.exists("crd", name)).ok

    def crds_in_group(self, group: str) -> list[str]:
        res = self._guard(self.kubectl.get_names("crd"))
        if not res.ok:
            return []
        names = []
        for line in res.stdout.splitlines():
            crd = line.strip().rsplit("/", 1)[-1]
            if crd.endswith(f".{group}"):
                names.append(crd)
        return sorted(names)

    def label_value(self, namespace: str, key: str) -> Optional[str]:
        res = self._guard(self.kubectl.get_object("namespace", namespace))
        if not res.ok:
            return None
        labels = json.loads(res.stdout or "{}").get("metadata", {}).get("labels") or {}
        return labels.get(key)

    # ------------------------- versions -------------------------

    def installed_version(self, namespace: str) -> Optional[str]:
        """
        Mesh control-plane version in `namespace`, or None when unknown.

        The Deployment label is read first; partially-initialised installs
        may lack it while the Helm release metadata still carries the chart
        version, so that is the fallback. Only releases of the mesh's own
        charts count; istiod wins over the others.
        """
        res = self._guard(self.kubectl.get_object("deployment", CONTROL_PLANE_DEPLOYMENT, namespace))
        if res.ok:
            labels = json.loads(res.stdout or "{}").get("metadata", {}).get("labels") or {}
            version = normalize_version(labels.get(VERSION_LABEL))
            if version:
                return version
            log.debug("[probe] %s has no %s label; checking helm releases", CONTROL_PLANE_DEPLOYMENT, VERSION_LABEL)

        res = self._guard(self.helm.list_releases(namespace))
        if not res.ok:
            return None

        parsed = [parse_chart_identifier(r.get("chart")) for r in HelmCliRunner.parse_list(res)]
        mesh = {p.name: p.version for p in parsed if p is not None and p.name in MESH_CHARTS}
        for chart in MESH_CHARTS:
            if chart in mesh:
                return normalize_version(mesh[chart])
        return None

    def release_chart_version(self, name: str, namespace: str) -> Optional[str]:
        """Chart version of release `name` from `helm list`, None when absent or unparseable."""
        res = self._guard(self.helm.list_releases(namespace))
        if not res.ok:
            return None
        for r in HelmCliRunner.parse_list(res):
            if r.get("name") == name:
                ident = parse_chart_identifier(r.get("chart"))
                return normalize_version(ident.version) if ident else None
        return None

    def release_values(self, name: str, namespace: str) -> dict:
        res = self._guard(self.helm.get_values(name, namespace))
        if not res.ok:
            return {}
        try:
            return json.loads(res.stdout or "null") or {}
        except json.JSONDecodeError as e:
            raise HelmError(f"Failed to parse helm get values output as JSON: {e}", res)

    # ------------------------- cluster -------------------------

    def current_context(self) -> Optional[str]:
        if self.kubectl.context:
            return self.kubectl.context
        res = self.kubectl.current_context()
        if not res.ok:
            return None
        return res.stdout.strip() or None

    def cluster_reachable(self) -> bool:
        return self.kubectl.readyz().ok

    def default_storage_class(self) -> Optional[str]:
        try:
            classes = self.kubectl.storage_classes()
        except CommandError as e:
            if e.result is not None and e.result.unreachable:
                raise ClusterUnreachableError(str(e), e.result) from e
            raise
        for sc in classes:
            annotations = sc.get("metadata", {}).get("annotations") or {}
            if any(annotations.get(a) == "true" for a in DEFAULT_CLASS_ANNOTATIONS):
                return sc.get("metadata", {}).get("name")
        return None

    # ------------------------- specs -------------------------

    def observe(self, spec: ResourceSpec) -> ObservedState:
        if spec.kind is ResourceKind.NAMESPACE:
            return ObservedState(exists=self.namespace_exists(spec.name))

        if spec.kind is ResourceKind.HELM_RELEASE:
            if not self.helm_release_exists(spec.name, spec.namespace):
                return ObservedState(exists=False)
            return ObservedState(exists=True, version=self.release_chart_version(spec.name, spec.namespace))

        if spec.kind is ResourceKind.LABEL:
            value = self.label_value(spec.namespace, spec.name)
            return ObservedState(exists=value is not None, version=value)

        if spec.kind is ResourceKind.CRD_SET:
            source = str(spec.source or "")
            if source.startswith(("http://", "https://")):
                return ObservedState(exists=self.crd_installed(spec.name))
            return ObservedState(exists=bool(self.crds_in_group(source)))

        raise ValueError(f"cannot observe {spec.kind.value} resources")

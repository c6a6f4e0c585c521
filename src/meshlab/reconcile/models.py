# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/reconcile/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from meshlab.config.models import ChartRef


class ResourceKind(str, Enum):
    NAMESPACE = "namespace"
    HELM_RELEASE = "helm-release"
    LABEL = "label"
    MANIFEST = "manifest"
    CRD_SET = "crd-set"

    @property
    def namespaced(self) -> bool:
        return self in (ResourceKind.HELM_RELEASE, ResourceKind.LABEL, ResourceKind.MANIFEST)


class Presence(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


class Action(str, Enum):
    NOOP = "noop"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    SKIPPED = "skipped"


# a chart for releases, a file/dir for manifests, a label value, a CRD url or api group
Source = Union[ChartRef, Path, str, None]


@dataclass(frozen=True)
class ResourceSpec:
    kind: ResourceKind
    name: str
    namespace: Optional[str] = None
    desired: Presence = Presence.PRESENT
    source: Source = None
    optional: bool = False
    values: Optional[dict] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError(f"{self.kind.value}: name must not be empty")
        if self.kind.namespaced and not self.namespace:
            raise ValueError(f"{self.kind.value} {self.name!r} requires a namespace")
        if not self.kind.namespaced and self.namespace is not None:
            raise ValueError(f"{self.kind.value} {self.name!r} is cluster-scoped; namespace must be unset")

    @property
    def ref(self) -> str:
        where = f"{self.namespace}/" if self.namespace else ""
        return f"{self.kind.value}:{where}{self.name}"

    def __str__(self) -> str:
        verb = "ensure" if self.desired is Presence.PRESENT else "remove"
        opt = " (optional)" if self.optional else ""
        return f"{verb} {self.ref}{opt}"


@dataclass(frozen=True)
class ObservedState:
    exists: bool
    version: Optional[str] = None


@dataclass(frozen=True)
class ReconcileFailure:
    step: str
    output: str = ""
    hint: str = ""


@dataclass(frozen=True)
class ReconcileOutcome:
    spec: ResourceSpec
    action: Action
    detail: str = ""
    error: Optional[ReconcileFailure] = None
    fatal: bool = False
    needs_fallback: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None

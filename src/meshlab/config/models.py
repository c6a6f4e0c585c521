# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/config/models.py

from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

# policy templates ship inside the package
BUNDLED_MANIFESTS_DIR = Path(__file__).resolve().parents[1] / "manifests"


def default_charts_dir() -> Path:
    return Path.home() / ".meshlab" / "charts"


class DataplaneMode(str, Enum):
    SIDECAR = "sidecar"
    AMBIENT = "ambient"
    NONE = "none"


class ChartRef(BaseModel):
    """A Helm chart pinned to one version, resolvable locally or from its repo."""

    model_config = ConfigDict(frozen=True)

    repo_name: str
    repo_url: HttpUrl
    chart: str
    version: str

    @property
    def remote(self) -> str:
        return f"{self.repo_name}/{self.chart}"

    @property
    def archive_name(self) -> str:
        # the file name `helm pull` writes
        return f"{self.chart}-{self.version}.tgz"


class ReleaseSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str                        # helm release name
    namespace: str                   # target ns
    chart: str                       # local archive path or repo/chart
    version: Optional[str] = None
    values: Dict = Field(default_factory=dict)
    wait: bool = True
    timeout_seconds: int = 300


class MeshConfig(BaseModel):
    """
    Everything one bootstrap / teardown run needs, built once at start-up
    and handed to the gate, the reconcilers and the driver.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # operator overrides
    force: bool = False
    debug: bool = False
    dry_run: bool = False

    # bootstrap
    dataplane_mode: DataplaneMode = DataplaneMode.SIDECAR
    install_ingress_gateway: bool = False
    install_dashboard: bool = False
    allow_internet_egress: bool = False

    # teardown
    delete_namespaces: bool = False
    acknowledge_destruction: bool = False
    remove_cluster_crds: bool = False

    # namespaces
    istio_namespace: str = "istio-system"
    platform_namespace: str = "platform"
    dashboard_namespace: str = "kubernetes-dashboard"

    # pins
    pinned_mesh_version: str = "1.28.2"
    istio_repo_name: str = "istio"
    istio_repo_url: HttpUrl = Field(
        default="https://istio-release.storage.googleapis.com/charts", validate_default=True
    )
    gateway_api_version: str = "v1.4.0"
    dashboard_repo_name: str = "kubernetes-dashboard"
    dashboard_repo_url: HttpUrl = Field(
        default="https://kubernetes.github.io/dashboard/", validate_default=True
    )
    dashboard_chart_version: str = "7.14.0"

    # cluster
    kube_context: Optional[str] = None
    allowed_contexts: Tuple[str, ...] = (
        "docker-desktop",
        "kind-*",
        "minikube",
        "k3d-*",
        "rancher-desktop",
        "orbstack",
        "colima*",
    )

    # local layout
    charts_dir: Path = Field(default_factory=default_charts_dir)
    manifests_dir: Path = BUNDLED_MANIFESTS_DIR

    # waits
    namespace_delete_timeout: int = Field(default=180, gt=0)
    helm_timeout: int = Field(default=300, gt=0)

    @property
    def destructive(self) -> bool:
        return self.delete_namespaces or self.remove_cluster_crds

    @property
    def gateway_api_crds_url(self) -> str:
        return (
            "https://github.com/kubernetes-sigs/gateway-api/releases/download/"
            f"{self.gateway_api_version}/standard-install.yaml"
        )

    def istio_chart(self, chart: str) -> ChartRef:
        return ChartRef(
            repo_name=self.istio_repo_name,
            repo_url=self.istio_repo_url,
            chart=chart,
            version=self.pinned_mesh_version,
        )

    def dashboard_chart(self) -> ChartRef:
        return ChartRef(
            repo_name=self.dashboard_repo_name,
            repo_url=self.dashboard_repo_url,
            chart="kubernetes-dashboard",
            version=self.dashboard_chart_version,
        )

    def resolve_paths(self, root: Path) -> "MeshConfig":
        """Expand `~` and anchor relative chart / manifest dirs at `root`."""
        updates = {}
        for key in ("charts_dir", "manifests_dir"):
            value: Path = getattr(self, key)
            resolved = value.expanduser()
            if not resolved.is_absolute():
                resolved = root / resolved
            if resolved != value:
                updates[key] = resolved
        return self.model_copy(update=updates) if updates else self

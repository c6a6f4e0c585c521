import json
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest
import yaml

from meshlab.config.models import BUNDLED_MANIFESTS_DIR, MeshConfig
from meshlab.deploy.executor import build_driver
from meshlab.deploy.planner import Direction
from meshlab.helm.cli_runner import HelmCliRunner
from meshlab.kube.kubectl import KubectlRunner
from meshlab.observers.dispatcher import EventBus
from meshlab.reconcile import build_reconcilers
from meshlab.reconcile.probe import ClusterProbe


UNREACHABLE = "Unable to connect to the server: dial tcp 127.0.0.1:6443: connect: connection refused"
HELM_UNREACHABLE = "Error: Kubernetes cluster unreachable: Get \"https://127.0.0.1:6443/version\": dial tcp: connection refused"

ISTIO_CRDS = (
    "authorizationpolicies.security.istio.io",
    "peerauthentications.security.istio.io",
    "virtualservices.networking.istio.io",
)
GATEWAY_API_CRDS = (
    "gatewayclasses.gateway.networking.k8s.io",
    "gateways.gateway.networking.k8s.io",
    "httproutes.gateway.networking.k8s.io",
)

# kind -> (resource name used on the CLI, CRD it needs or None for built-ins)
KINDS = {
    "PeerAuthentication": ("peerauthentication.security.istio.io", "peerauthentications.security.istio.io"),
    "AuthorizationPolicy": ("authorizationpolicy.security.istio.io", "authorizationpolicies.security.istio.io"),
    "NetworkPolicy": ("networkpolicy", None),
    "Gateway": ("gateway.gateway.networking.k8s.io", "gateways.gateway.networking.k8s.io"),
}

MUTATING = {
    "kubectl": {"create", "delete", "label", "apply"},
    "helm": {"upgrade", "uninstall"},
}


class DummyCP:
    def __init__(self, rc=0, out="", err=""):
        self.returncode = rc
        self.stdout = out
        self.stderr = err


def _opt(args: List[str], flag: str) -> Optional[str]:
    if flag in args:
        i = args.index(flag)
        if i + 1 < len(args):
            return args[i + 1]
    return None


def _positional(args: List[str]) -> List[str]:
    out = []
    for a in args:
        if a.startswith("-"):
            break
        out.append(a)
    return out


class FakeCluster:
    """
    Just enough kubectl / helm behaviour for the reconcilers, installed in
    place of subprocess.run. State lives in plain dicts so tests can seed
    and inspect it directly.
    """

    def __init__(self):
        self.reachable = True
        self.context: Optional[str] = "kind-mesh"
        self.namespaces: Dict[str, Dict[str, str]] = {"default": {}, "kube-system": {}}
        self.releases: Dict[Tuple[str, str], dict] = {}          # (ns, name) -> release
        self.crds: Set[str] = set()
        self.objects: Dict[Tuple[str, str, str], dict] = {}        # (ns, kind, name) -> doc
        self.deployments: Dict[Tuple[str, str], Dict[str, str]] = {}  # (ns, name) -> labels
        self.storage_classes: List[dict] = [
            {
                "metadata": {
                    "name": "standard",
                    "annotations": {"storageclass.kubernetes.io/is-default-class": "true"},
                }
            }
        ]
        self.repos: Dict[str, str] = {}
        self.stuck_namespaces: Set[str] = set()
        self.stamp_version_label = True
        self.calls: List[List[str]] = []
        self._failures: List[Tuple[List[str], int, str]] = []

    # ------------------------- test helpers -------------------------

    def fail_on(self, prefix: List[str], *, rc: int = 1, stderr: str = "Error: boom") -> None:
        """Fail any call whose normalised argv starts with `prefix`."""
        self._failures.append((list(prefix), rc, stderr))

    def install_mesh(self, version: str = "1.28.2", namespace: str = "istio-system") -> None:
        self.namespaces.setdefault(namespace, {})
        self.releases[(namespace, "istio-base")] = self._release("istio-base", namespace, f"base-{version}", version)
        self.releases[(namespace, "istiod")] = self._release("istiod", namespace, f"istiod-{version}", version)
        self.deployments[(namespace, "istiod")] = {"app": "istiod", "app.kubernetes.io/version": version}
        self.crds.update(ISTIO_CRDS)

    def mutations(self) -> List[List[str]]:
        out = []
        for argv in self.calls:
            tool, rest = self._normalise(argv)
            if rest and rest[0] in MUTATING.get(tool, set()):
                out.append([tool] + rest)
        return out

    def commands(self) -> List[str]:
        return [" ".join([t] + r) for t, r in (self._normalise(a) for a in self.calls)]

    # ------------------------- subprocess.run -------------------------

    def __call__(self, argv, check=False, text=False, capture_output=False, input=None, env=None, timeout=None):
        argv = list(argv)
        self.calls.append(argv)
        tool, rest = self._normalise(argv)

        for prefix, rc, err in self._failures:
            if ([tool] + rest)[: len(prefix)] == prefix:
                return DummyCP(rc, "", err)

        if tool == "kubectl":
            return self._kubectl(rest, input)
        if tool == "helm":
            return self._helm(rest)
        raise FileNotFoundError(2, "No such file or directory", tool)

    @staticmethod
    def _normalise(argv: List[str]) -> Tuple[str, List[str]]:
        tool, rest = argv[0], list(argv[1:])
        if rest[:1] in (["--context"], ["--kube-context"]):
            rest = rest[2:]
        if "--debug" in rest:
            rest.remove("--debug")
        return tool, rest

    # ------------------------- kubectl -------------------------

    def _kubectl(self, rest: List[str], stdin: Optional[str]) -> DummyCP:
        verb = rest[0]

        if verb == "config":
            if self.context:
                return DummyCP(0, self.context + "\n")
            return DummyCP(1, "", "error: current-context is not set")

        if not self.reachable:
            return DummyCP(1, "", UNREACHABLE)

        handler = getattr(self, f"_k_{verb}", None)
        if handler is None:
            return DummyCP(1, "", f"error: unknown command {verb!r} for kubectl")
        return handler(rest, stdin)

    @staticmethod
    def _not_found(resource: str, name: str) -> DummyCP:
        return DummyCP(1, "", f'Error from server (NotFound): {resource} "{name}" not found')

    def _k_get(self, rest, stdin):
        if rest[1] == "--raw":
            return DummyCP(0, "ok")

        kind = rest[1]
        pos = _positional(rest[2:])
        name = pos[0] if pos else None
        output = _opt(rest, "-o")
        ns = _opt(rest, "-n")

        if kind == "storageclass":
            return DummyCP(0, json.dumps({"items": self.storage_classes}))

        if kind == "namespace":
            if name not in self.namespaces:
                return self._not_found("namespaces", name)
            if output == "name":
                return DummyCP(0, f"namespace/{name}\n")
            return DummyCP(0, json.dumps({"metadata": {"name": name, "labels": dict(self.namespaces[name])}}))

        if kind == "deployment":
            labels = self.deployments.get((ns, name))
            if labels is None:
                return self._not_found("deployments.apps", name)
            return DummyCP(0, json.dumps({"metadata": {"name": name, "namespace": ns, "labels": labels}}))

        if kind == "crd":
            prefix = "customresourcedefinition.apiextensions.k8s.io/"
            if name is None:
                return DummyCP(0, "".join(f"{prefix}{c}\n" for c in sorted(self.crds)))
            if name not in self.crds:
                return self._not_found("customresourcedefinitions.apiextensions.k8s.io", name)
            return DummyCP(0, f"{prefix}{name}\n")

        if kind == "pods":
            lines = ["NAME                      READY   STATUS    RESTARTS   AGE"]
            lines += [f"{n}-5d9c7b8f4-abcde   1/1     Running   0          1m" for (d_ns, n) in self.deployments if d_ns == ns]
            return DummyCP(0, "\n".join(lines) + "\n")

        return DummyCP(1, "", f'error: the server doesn\'t have a resource type "{kind}"')

    def _k_create(self, rest, stdin):
        name = rest[2]
        if name in self.namespaces:
            return DummyCP(1, "", f'Error from server (AlreadyExists): namespaces "{name}" already exists')
        self.namespaces[name] = {}
        return DummyCP(0, f"namespace/{name} created\n")

    def _k_label(self, rest, stdin):
        name, change = rest[2], rest[3]
        if name not in self.namespaces:
            return self._not_found("namespaces", name)
        labels = self.namespaces[name]
        if change.endswith("-"):
            key = change[:-1]
            if key not in labels:
                return DummyCP(0, f'label "{key}" not found.\nnamespace/{name} not labeled\n')
            del labels[key]
            return DummyCP(0, f"namespace/{name} unlabeled\n")
        key, value = change.split("=", 1)
        labels[key] = value
        return DummyCP(0, f"namespace/{name} labeled\n")

    def _k_wait(self, rest, stdin):
        target = rest[2]
        kind, name = target.split("/", 1)
        if name in self.stuck_namespaces:
            return DummyCP(1, "", f"error: timed out waiting for the condition on namespaces/{name}")
        return DummyCP(0, "")

    def _k_apply(self, rest, stdin):
        source = _opt(rest, "-f")
        if source != "-":
            for crd in GATEWAY_API_CRDS:
                self.crds.add(crd)
            lines = [f"customresourcedefinition.apiextensions.k8s.io/{c} serverside-applied" for c in GATEWAY_API_CRDS]
            return DummyCP(0, "\n".join(lines) + "\n")

        default_ns = _opt(rest, "-n")
        docs = [d for d in yaml.safe_load_all(stdin or "") if d]
        lines = []
        for doc in docs:
            resource, crd = KINDS[doc["kind"]]
            name = doc["metadata"]["name"]
            ns = doc["metadata"].get("namespace") or default_ns
            if crd and crd not in self.crds:
                return DummyCP(
                    1,
                    "\n".join(lines),
                    f'error: resource mapping not found for name: "{name}" namespace: "{ns}" from "STDIN": '
                    f'no matches for kind "{doc["kind"]}" in version "{doc["apiVersion"]}"',
                )
            if ns not in self.namespaces:
                return DummyCP(1, "", f'Error from server (NotFound): error when creating "STDIN": namespaces "{ns}" not found')

            key = (ns, resource, name)
            previous = self.objects.get(key)
            self.objects[key] = doc
            if previous is None:
                verb = "created"
            elif previous == doc:
                verb = "unchanged"
            else:
                verb = "configured"
            lines.append(f"{resource}/{name} {verb}")
        return DummyCP(0, "\n".join(lines) + "\n")

    def _k_delete(self, rest, stdin):
        source = _opt(rest, "-f")
        ns = _opt(rest, "-n")

        if source == "-":
            lines = []
            for doc in (d for d in yaml.safe_load_all(stdin or "") if d):
                resource, crd = KINDS[doc["kind"]]
                name = doc["metadata"]["name"]
                if crd and crd not in self.crds:
                    return DummyCP(
                        1,
                        "\n".join(lines),
                        f'error: resource mapping not found for name: "{name}" namespace: "{ns}" from "STDIN": '
                        f'no matches for kind "{doc["kind"]}" in version "{doc["apiVersion"]}"\n'
                        "ensure CRDs are installed first",
                    )
                key = (doc["metadata"].get("namespace") or ns, resource, name)
                if self.objects.pop(key, None) is not None:
                    lines.append(f'{resource} "{name}" deleted')
            return DummyCP(0, "\n".join(lines) + ("\n" if lines else ""))

        if source is not None:
            removed = [c for c in GATEWAY_API_CRDS if c in self.crds]
            for c in removed:
                self.crds.discard(c)
            return DummyCP(0, "".join(f'customresourcedefinition.apiextensions.k8s.io "{c}" deleted\n' for c in removed))

        kind = rest[1]
        names = _positional(rest[2:])
        lines = []

        if kind == "namespace":
            for name in names:
                if name not in self.namespaces:
                    continue
                if name not in self.stuck_namespaces:
                    del self.namespaces[name]
                    self.objects = {k: v for k, v in self.objects.items() if k[0] != name}
                    self.releases = {k: v for k, v in self.releases.items() if k[0] != name}
                lines.append(f'namespace "{name}" deleted')

        elif kind == "crd":
            for name in names:
                if name in self.crds:
                    self.crds.discard(name)
                    lines.append(f'customresourcedefinition.apiextensions.k8s.io "{name}" deleted')

        else:
            for name in names:
                if self.objects.pop((ns, kind, name), None) is not None:
                    lines.append(f'{kind} "{name}" deleted')

        return DummyCP(0, "\n".join(lines) + ("\n" if lines else ""))

    # ------------------------- helm -------------------------

    @staticmethod
    def _release(name, ns, chart_id, version, values=None):
        return {
            "name": name,
            "namespace": ns,
            "chart": chart_id,
            "app_version": version,
            "status": "deployed",
            "values": values or {},
        }

    def _helm(self, rest: List[str]) -> DummyCP:
        verb = rest[0]

        if verb == "repo":
            self.repos[rest[2]] = rest[3]
            return DummyCP(0, f'"{rest[2]}" has been added to your repositories\n')

        if verb == "pull":
            chart, version, dest = rest[1], _opt(rest, "--version"), _opt(rest, "--destination")
            archive = Path(dest) / f"{chart.split('/')[-1]}-{version}.tgz"
            archive.write_bytes(b"chart")
            return DummyCP(0, "")

        if not self.reachable:
            return DummyCP(1, "", HELM_UNREACHABLE)

        ns = _opt(rest, "-n")

        if verb == "status":
            rel = self.releases.get((ns, rest[1]))
            if rel is None:
                return DummyCP(1, "", "Error: release: not found")
            return DummyCP(0, f"NAME: {rest[1]}\nNAMESPACE: {ns}\nSTATUS: deployed\n")

        if verb == "get":
            rel = self.releases.get((ns, rest[2]))
            if rel is None:
                return DummyCP(1, "", "Error: release: not found")
            return DummyCP(0, json.dumps(rel["values"] or None))

        if verb == "list":
            items = [
                {k: r[k] for k in ("name", "namespace", "chart", "app_version", "status")}
                for (r_ns, _), r in sorted(self.releases.items())
                if r_ns == ns
            ]
            return DummyCP(0, json.dumps(items))

        if verb == "upgrade":
            name, chart = rest[2], rest[3]
            if ns not in self.namespaces:
                return DummyCP(1, "", f'Error: INSTALLATION FAILED: create: failed to create: namespaces "{ns}" not found')

            version = _opt(rest, "--version")
            if chart.endswith(".tgz"):
                chart_id = Path(chart).name[: -len(".tgz")]
                chart_name, version = chart_id.rsplit("-", 1)
            else:
                chart_name = chart.split("/")[-1]
                chart_id = f"{chart_name}-{version}"

            values_file = _opt(rest, "-f")
            values = yaml.safe_load(Path(values_file).read_text()) if values_file else {}

            self.releases[(ns, name)] = self._release(name, ns, chart_id, version, values)
            if chart_name == "base":
                self.crds.update(ISTIO_CRDS)
            if chart_name == "istiod":
                labels = {"app": "istiod"}
                if self.stamp_version_label:
                    labels["app.kubernetes.io/version"] = version
                self.deployments[(ns, "istiod")] = labels
            return DummyCP(0, f'Release "{name}" has been upgraded. Happy Helming!\n')

        if verb == "uninstall":
            name = rest[1]
            if self.releases.pop((ns, name), None) is None:
                return DummyCP(1, "", f"Error: uninstall: Release not loaded: {name}: release: not found")
            if name == "istiod":
                self.deployments.pop((ns, "istiod"), None)
            return DummyCP(0, f'release "{name}" uninstalled\n')

        return DummyCP(1, "", f"Error: unknown command {verb!r} for helm")


# ---------------------------------------------------------------------
# fixtures
# ---------------------------------------------------------------------
@pytest.fixture
def cluster(monkeypatch):
    fake = FakeCluster()
    monkeypatch.setattr(subprocess, "run", fake)
    monkeypatch.setattr(shutil, "which", lambda name: f"/usr/local/bin/{name}")
    return fake


@pytest.fixture
def make_cfg(tmp_path):
    def _make(**overrides) -> MeshConfig:
        data = {
            "charts_dir": tmp_path / "charts",
            "manifests_dir": BUNDLED_MANIFESTS_DIR,
        }
        data.update(overrides)
        return MeshConfig.model_validate(data)

    return _make


class Capture:
    def __init__(self):
        self.events = []

    def notify(self, ev):
        self.events.append(ev)

    def of(self, cls):
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def run_direction(cluster, make_cfg, capture):
    """Run one driver end to end against the fake cluster."""

    def _run(direction: Direction, cfg: Optional[MeshConfig] = None, **overrides):
        cfg = cfg or make_cfg(**overrides)
        return build_driver(direction, cfg, bus=EventBus([capture])).run()

    return _run


@pytest.fixture
def make_reconcilers(cluster, make_cfg):
    """Reconcilers keyed by ResourceKind, wired to the fake cluster."""

    def _make(**overrides):
        cfg = make_cfg(**overrides)
        kubectl = KubectlRunner()
        helm = HelmCliRunner()
        probe = ClusterProbe(kubectl=kubectl, helm=helm)
        return build_reconcilers(cfg=cfg, probe=probe, kubectl=kubectl, helm=helm)

    return _make

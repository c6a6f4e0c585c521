import shutil

from meshlab.config.models import BUNDLED_MANIFESTS_DIR
from meshlab.deploy.executor import RunState
from meshlab.deploy.planner import Direction
from meshlab.reconcile.models import Action, ResourceKind


def _outcome(report, kind, name):
    return next(o for o in report.outcomes if o.spec.kind is kind and o.spec.name == name)


def test_ambient_bootstrap_on_fresh_cluster(cluster, run_direction, tmp_path):
    manifests = tmp_path / "manifests"
    shutil.copytree(BUNDLED_MANIFESTS_DIR / "security", manifests / "security")
    shutil.copytree(BUNDLED_MANIFESTS_DIR / "network-policy", manifests / "network-policy")

    report = run_direction(Direction.CONVERGE, dataplane_mode="ambient", manifests_dir=manifests)

    assert report.state is RunState.DONE
    assert report.exit_code == 0

    assert _outcome(report, ResourceKind.CRD_SET, "gateways.gateway.networking.k8s.io").action is Action.CREATED
    created_ns = [o.spec.name for o in report.outcomes if o.spec.kind is ResourceKind.NAMESPACE]
    assert created_ns == ["istio-system", "platform"]

    releases = {name for (_, name) in cluster.releases}
    assert releases == {"istio-base", "istiod", "istio-cni", "ztunnel"}
    assert cluster.releases[("istio-system", "istiod")]["values"] == {"profile": "ambient"}

    assert cluster.namespaces["platform"] == {"istio.io/dataplane-mode": "ambient"}
    assert _outcome(report, ResourceKind.MANIFEST, "security").action is Action.CREATED
    assert _outcome(report, ResourceKind.MANIFEST, "network-policy").action is Action.CREATED

    waypoint = _outcome(report, ResourceKind.MANIFEST, "waypoint")
    assert waypoint.action is Action.SKIPPED
    assert not waypoint.failed


def test_teardown_keeps_namespaces(cluster, run_direction):
    run_direction(Direction.CONVERGE, install_ingress_gateway=True)
    assert cluster.releases

    report = run_direction(Direction.DIVERGE)

    assert report.exit_code == 0
    assert cluster.releases == {}
    assert {"istio-system", "platform"} <= set(cluster.namespaces)
    assert cluster.namespaces["platform"] == {}
    assert not [k for k in cluster.objects if k[0] == "platform"]

    uninstalls = [m[2] for m in cluster.mutations() if m[:2] == ["helm", "uninstall"]]
    assert uninstalls == ["istio-ingressgateway", "istiod", "istio-base"]
    assert not any(m[:3] == ["kubectl", "delete", "namespace"] for m in cluster.mutations())


def test_full_destructive_teardown(cluster, run_direction):
    run_direction(Direction.CONVERGE, dataplane_mode="ambient", install_dashboard=True)

    report = run_direction(
        Direction.DIVERGE,
        delete_namespaces=True,
        remove_cluster_crds=True,
        acknowledge_destruction=True,
    )

    assert report.exit_code == 0
    for ns in ("istio-system", "platform", "kubernetes-dashboard"):
        assert ns not in cluster.namespaces
    assert cluster.crds == set()


def test_destructive_teardown_without_acknowledgement_changes_nothing(cluster, run_direction):
    run_direction(Direction.CONVERGE)
    before = len(cluster.mutations())

    report = run_direction(Direction.DIVERGE, delete_namespaces=True)

    assert report.exit_code == 1
    assert report.preflight.get("destructive").status.value == "FAIL"
    assert len(cluster.mutations()) == before


def test_version_mismatch_blocks_bootstrap_unless_forced(cluster, run_direction):
    cluster.install_mesh("1.27.3")

    blocked = run_direction(Direction.CONVERGE)
    assert blocked.exit_code == 1
    assert cluster.mutations() == []

    forced = run_direction(Direction.CONVERGE, force=True)
    assert forced.exit_code == 0
    assert cluster.releases[("istio-system", "istiod")]["chart"] == "istiod-1.28.2"


def test_switching_dataplane_mode_keeps_labels_exclusive(cluster, run_direction):
    run_direction(Direction.CONVERGE)
    assert cluster.namespaces["platform"] == {"istio-injection": "enabled"}

    run_direction(Direction.CONVERGE, dataplane_mode="ambient")
    assert cluster.namespaces["platform"] == {"istio.io/dataplane-mode": "ambient"}

    run_direction(Direction.CONVERGE, dataplane_mode="none")
    assert cluster.namespaces["platform"] == {}

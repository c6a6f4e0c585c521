from pathlib import Path
import textwrap

import pytest

from meshlab.config.loader import ConfigError, load_config
from meshlab.config.models import BUNDLED_MANIFESTS_DIR, DataplaneMode


def test_defaults_without_file():
    cfg = load_config()
    assert cfg.istio_namespace == "istio-system"
    assert cfg.platform_namespace == "platform"
    assert cfg.dataplane_mode is DataplaneMode.SIDECAR
    assert cfg.namespace_delete_timeout == 180
    assert not cfg.destructive


def test_load_config_minimal_ok(tmp_path: Path):
    cfg_text = textwrap.dedent("""
        dataplane-mode: ambient
        platform_namespace: apps
        install_dashboard: true
    """)
    f = tmp_path / "mesh.yaml"
    f.write_text(cfg_text)
    cfg = load_config(f)
    assert cfg.dataplane_mode is DataplaneMode.AMBIENT
    assert cfg.platform_namespace == "apps"
    assert cfg.install_dashboard


def test_env_vars_are_expanded(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("MESH_CONTEXT", "kind-dev")
    f = tmp_path / "mesh.yaml"
    f.write_text("kube_context: ${MESH_CONTEXT}\n")
    assert load_config(f).kube_context == "kind-dev"


def test_overrides_win_but_none_is_ignored(tmp_path: Path):
    f = tmp_path / "mesh.yaml"
    f.write_text("pinned_mesh_version: 1.27.0\nistio_namespace: mesh\n")
    cfg = load_config(f, {"pinned_mesh_version": "1.28.2", "istio_namespace": None})
    assert cfg.pinned_mesh_version == "1.28.2"
    assert cfg.istio_namespace == "mesh"


def test_unknown_key_is_a_config_error(tmp_path: Path):
    f = tmp_path / "mesh.yaml"
    f.write_text("dataplane: ambient\n")
    with pytest.raises(ConfigError):
        load_config(f)


def test_bad_mode_is_a_config_error():
    with pytest.raises(ConfigError):
        load_config(overrides={"dataplane_mode": "sidecarless"})


def test_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml")


def test_top_level_must_be_mapping(tmp_path: Path):
    f = tmp_path / "mesh.yaml"
    f.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(f)


def test_config_is_frozen():
    cfg = load_config()
    with pytest.raises(Exception):
        cfg.force = True


def test_default_manifests_ship_with_the_package():
    cfg = load_config()
    assert cfg.manifests_dir == BUNDLED_MANIFESTS_DIR
    assert cfg.manifests_dir.is_absolute()
    assert cfg.manifests_dir.parent.name == "meshlab"
    assert (cfg.manifests_dir / "security" / "peer-authentication.yaml").is_file()
    assert (cfg.manifests_dir / "network-policy" / "default-deny.yaml").is_file()


def test_default_charts_dir_is_per_user(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert load_config().charts_dir == tmp_path / ".meshlab" / "charts"


def test_relative_overrides_resolve_against_root(tmp_path: Path):
    cfg = load_config(overrides={"charts_dir": "charts", "manifests_dir": "policies"}).resolve_paths(tmp_path)
    assert cfg.charts_dir == tmp_path / "charts"
    assert cfg.manifests_dir == tmp_path / "policies"

    absolute = load_config(overrides={"charts_dir": "/srv/charts"}).resolve_paths(tmp_path)
    assert absolute.charts_dir == Path("/srv/charts")
    assert absolute.manifests_dir == BUNDLED_MANIFESTS_DIR


def test_relative_dirs_in_file_follow_the_file(tmp_path: Path):
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    f = conf_dir / "mesh.yaml"
    f.write_text("manifests_dir: policies\ncharts_dir: ../charts\n")

    cfg = load_config(f).resolve_paths(tmp_path / "elsewhere")

    assert cfg.manifests_dir == conf_dir.resolve() / "policies"
    assert cfg.charts_dir == conf_dir.resolve() / ".." / "charts"


def test_chart_refs_follow_pins():
    cfg = load_config(overrides={"pinned_mesh_version": "1.29.0"})
    ref = cfg.istio_chart("istiod")
    assert ref.remote == "istio/istiod"
    assert ref.archive_name == "istiod-1.29.0.tgz"
    assert cfg.dashboard_chart().version == "7.14.0"
    assert cfg.gateway_api_crds_url.endswith("/v1.4.0/standard-install.yaml")

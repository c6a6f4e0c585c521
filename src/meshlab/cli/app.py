# src/meshlab/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import typer

from meshlab import __version__
from meshlab.components.istio import vendored_charts
from meshlab.config.loader import ConfigError, load_config
from meshlab.config.models import DataplaneMode, MeshConfig
from meshlab.deploy.executor import converge, diverge
from meshlab.helm.charts import vendor_charts
from meshlab.helm.cli_runner import HelmCliRunner
from meshlab.helm.errors import HelmError
from meshlab.logging.log import init_logging, log_dir
from meshlab.observers.console import ConsoleObserver
from meshlab.observers.dispatcher import EventBus
from meshlab.observers.jsonfile import JsonFileObserver
from meshlab.observers.logger import LoggerObserver


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Bootstrap and tear down an Istio mesh on a local Kubernetes cluster")


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _on(flag: bool) -> Optional[bool]:
    # flags only switch things on; an unset flag leaves the config file value
    return True if flag else None


def _build_config(config: Optional[Path], overrides: Dict[str, Any]) -> MeshConfig:
    try:
        return load_config(config, overrides).resolve_paths(Path.cwd())
    except ConfigError as e:
        typer.secho(f"[config] {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _start(title: str, cfg: MeshConfig):
    logger, run_id, log_path = init_logging(verbose=cfg.debug)

    typer.echo("")
    typer.secho(title, bold=True)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Context  : {cfg.kube_context or '(current)'}")
    typer.echo(f"  Mesh     : istio {cfg.pinned_mesh_version} ({cfg.dataplane_mode.value})")
    typer.echo(f"  Log file : {log_path}")
    if cfg.dry_run:
        typer.secho("  Dry run  : no changes will be made", fg=typer.colors.YELLOW)
    typer.echo("")

    bus = EventBus(
        observers=[
            ConsoleObserver(),
            LoggerObserver(logger),
            JsonFileObserver(log_dir() / f"{run_id}.jsonl"),
        ]
    )
    return bus, run_id


def _shared(
    *,
    force: bool,
    context: Optional[str],
    istio_namespace: Optional[str],
    platform_namespace: Optional[str],
    dashboard_namespace: Optional[str],
    pinned_mesh_version: Optional[str],
    debug: bool,
    dry_run: bool,
) -> Dict[str, Any]:
    return {
        "force": _on(force),
        "kube_context": context,
        "istio_namespace": istio_namespace,
        "platform_namespace": platform_namespace,
        "dashboard_namespace": dashboard_namespace,
        "pinned_mesh_version": pinned_mesh_version,
        "debug": _on(debug),
        "dry_run": _on(dry_run),
    }


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def bootstrap(
    config: Optional[Path] = typer.Option(None, "--config", help="YAML config file (${VAR} expanded)"),
    force: bool = typer.Option(False, "--force", help="Continue past context / version mismatches"),
    dataplane_mode: Optional[DataplaneMode] = typer.Option(
        None, "--dataplane-mode", case_sensitive=False, help="sidecar, ambient or none"
    ),
    install_ingress_gateway: bool = typer.Option(False, "--install-ingress-gateway"),
    install_dashboard: bool = typer.Option(False, "--install-dashboard"),
    allow_internet_egress: bool = typer.Option(False, "--allow-internet-egress"),
    context: Optional[str] = typer.Option(None, "--context", help="kube context (default: current)"),
    istio_namespace: Optional[str] = typer.Option(None, "--istio-namespace"),
    platform_namespace: Optional[str] = typer.Option(None, "--platform-namespace"),
    dashboard_namespace: Optional[str] = typer.Option(None, "--dashboard-namespace"),
    pinned_mesh_version: Optional[str] = typer.Option(None, "--pinned-mesh-version"),
    debug: bool = typer.Option(False, "--debug"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Run preflight and print the plan only"),
):
    """Install or converge the mesh, its policies and optional add-ons."""
    overrides = _shared(
        force=force,
        context=context,
        istio_namespace=istio_namespace,
        platform_namespace=platform_namespace,
        dashboard_namespace=dashboard_namespace,
        pinned_mesh_version=pinned_mesh_version,
        debug=debug,
        dry_run=dry_run,
    )
    overrides.update(
        {
            "dataplane_mode": dataplane_mode,
            "install_ingress_gateway": _on(install_ingress_gateway),
            "install_dashboard": _on(install_dashboard),
            "allow_internet_egress": _on(allow_internet_egress),
        }
    )
    cfg = _build_config(config, overrides)

    bus, run_id = _start("meshlab bootstrap", cfg)
    report = converge(cfg, bus=bus, run_id=run_id)
    raise typer.Exit(code=report.exit_code)


@app.command()
def teardown(
    config: Optional[Path] = typer.Option(None, "--config", help="YAML config file (${VAR} expanded)"),
    force: bool = typer.Option(False, "--force", help="Continue past context / version mismatches"),
    delete_namespaces: bool = typer.Option(False, "--delete-namespaces"),
    acknowledge_destruction: bool = typer.Option(
        False, "--acknowledge-destruction", help="Required with --delete-namespaces or --remove-cluster-crds"
    ),
    remove_cluster_crds: bool = typer.Option(False, "--remove-cluster-crds"),
    context: Optional[str] = typer.Option(None, "--context", help="kube context (default: current)"),
    istio_namespace: Optional[str] = typer.Option(None, "--istio-namespace"),
    platform_namespace: Optional[str] = typer.Option(None, "--platform-namespace"),
    dashboard_namespace: Optional[str] = typer.Option(None, "--dashboard-namespace"),
    pinned_mesh_version: Optional[str] = typer.Option(None, "--pinned-mesh-version"),
    debug: bool = typer.Option(False, "--debug"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Run preflight and print the plan only"),
):
    """Remove what bootstrap installed, in reverse order."""
    overrides = _shared(
        force=force,
        context=context,
        istio_namespace=istio_namespace,
        platform_namespace=platform_namespace,
        dashboard_namespace=dashboard_namespace,
        pinned_mesh_version=pinned_mesh_version,
        debug=debug,
        dry_run=dry_run,
    )
    overrides.update(
        {
            "delete_namespaces": _on(delete_namespaces),
            "acknowledge_destruction": _on(acknowledge_destruction),
            "remove_cluster_crds": _on(remove_cluster_crds),
        }
    )
    cfg = _build_config(config, overrides)

    bus, run_id = _start("meshlab teardown", cfg)
    report = diverge(cfg, bus=bus, run_id=run_id)
    raise typer.Exit(code=report.exit_code)


@app.command("vendor-charts")
def vendor_charts_cmd(
    config: Optional[Path] = typer.Option(None, "--config", help="YAML config file (${VAR} expanded)"),
    charts_dir: Optional[Path] = typer.Option(None, "--charts-dir", help="Where to store chart archives"),
    pinned_mesh_version: Optional[str] = typer.Option(None, "--pinned-mesh-version"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Pull every pinned chart into the charts directory for offline bootstraps."""
    cfg = _build_config(
        config,
        {"charts_dir": charts_dir, "pinned_mesh_version": pinned_mesh_version, "debug": _on(debug)},
    )
    init_logging(verbose=cfg.debug)

    helm = HelmCliRunner(debug=cfg.debug)
    try:
        archives = vendor_charts(helm, vendored_charts(cfg), cfg.charts_dir)
    except HelmError as e:
        typer.secho(f"[vendor-charts] {e}", fg=typer.colors.RED, err=True)
        if e.output:
            typer.echo(e.output, err=True)
        raise typer.Exit(code=1)

    for archive in archives:
        typer.echo(f"  {archive}")
    typer.secho(f"{len(archives)} chart(s) in {cfg.charts_dir}", fg=typer.colors.GREEN)


@app.command()
def version():
    """Print the meshlab version."""
    typer.echo(__version__)


def main():
    app()


if __name__ == "__main__":
    main()

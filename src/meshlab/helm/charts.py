# src/meshlab/helm/charts.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from meshlab.config.models import ChartRef

log = logging.getLogger("meshlab")


@dataclass(frozen=True)
class ChartSource:
    """What `helm upgrade --install` is pointed at."""

    chart: str
    version: Optional[str]       # None for a local archive, the pin otherwise
    local: bool


def resolve_chart(ref: ChartRef, charts_dir: Path) -> ChartSource:
    """
    Prefer a vendored archive `<charts_dir>/<chart>-<version>.tgz` so a
    bootstrap works offline once charts were pulled; fall back to the
    named remote chart with an explicit pinned version.
    """
    archive = charts_dir / ref.archive_name
    if archive.is_file():
        log.debug("[charts] using vendored %s", archive)
        return ChartSource(chart=str(archive), version=None, local=True)

    return ChartSource(chart=ref.remote, version=ref.version, local=False)


def vendor_charts(helm, refs: Iterable[ChartRef], charts_dir: Path) -> list[Path]:
    """
    Pull every chart into charts_dir, skipping archives already present.
    Returns the archive paths.
    """
    charts_dir.mkdir(parents=True, exist_ok=True)
    repos_added: set[str] = set()
    archives: list[Path] = []

    for ref in refs:
        archive = charts_dir / ref.archive_name
        if archive.is_file():
            log.info("[charts] %s already vendored", archive.name)
            archives.append(archive)
            continue

        if ref.repo_name not in repos_added:
            helm.add_repo(ref.repo_name, str(ref.repo_url))
            repos_added.add(ref.repo_name)

        helm.pull(ref.remote, ref.version, charts_dir)
        log.info("[charts] pulled %s", archive.name)
        archives.append(archive)

    return archives

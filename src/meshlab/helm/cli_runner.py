# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/helm/cli_runner.py

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Optional

import yaml

from meshlab.config.models import ReleaseSpec
from meshlab.utils.shell import CommandResult, run_command

from .errors import HelmError, HelmPullError

log = logging.getLogger("meshlab")


class HelmCliRunner:
    """
    A pragmatic wrapper around the `helm` CLI.
    - Mirrors human CLI usage: 'repo add', 'upgrade --install', 'uninstall', 'status', 'list', 'pull'.
    - Mutating calls raise HelmError; queries return the CommandResult.
    - Testable by mocking subprocess.run.
    """

    def __init__(self, kube_context: str | None = None, debug: bool = False):
        self.kube_context = kube_context
        self.debug = debug

    # ------------------------- internal helpers -------------------------

    def _base(self) -> list[str]:
        cmd = ["helm"]
        if self.kube_context:
            cmd += ["--kube-context", self.kube_context]
        return cmd

    def _run(self, argv: list[str], *, timeout: Optional[int] = None) -> CommandResult:
        if self.debug:
            argv = argv + ["--debug"]
        return run_command(argv, timeout=timeout)

    def _check(self, cp: CommandResult) -> CommandResult:
        if not cp.ok:
            raise HelmError(f"helm failed (rc={cp.returncode}) for {cp.command!r}", cp)
        return cp

    @staticmethod
    def _write_values(rel: ReleaseSpec) -> Optional[Path]:
        if not rel.values:
            return None
        # inline values → temp file for `-f`; the caller removes it
        with tempfile.NamedTemporaryFile("w", suffix=".yaml", prefix=f"{rel.name}-", delete=False) as tf:
            yaml.safe_dump(rel.values, tf, sort_keys=False)
        return Path(tf.name)

    # ------------------------- queries -------------------------

    def status(self, name: str, namespace: str) -> CommandResult:
        return self._run(self._base() + ["status", name, "-n", namespace])

    def list_releases(self, namespace: str) -> CommandResult:
        return self._run(self._base() + ["list", "-n", namespace, "-o", "json"])

    def get_values(self, name: str, namespace: str) -> CommandResult:
        """User-supplied values of a release (`null` when none were given)."""
        return self._run(self._base() + ["get", "values", name, "-n", namespace, "-o", "json"])

    @staticmethod
    def parse_list(cp: CommandResult) -> list[dict]:
        try:
            data = json.loads(cp.stdout or "[]")
        except json.JSONDecodeError as e:
            raise HelmError(f"Failed to parse helm list output as JSON: {e}", cp)
        return data or []

    # ------------------------- mutations -------------------------

    def add_repo(self, name: str, url: str) -> None:
        self._check(self._run(self._base() + ["repo", "add", name, url, "--force-update"]))

    def upgrade_install(self, rel: ReleaseSpec) -> CommandResult:
        argv = self._base() + ["upgrade", "--install", rel.name, rel.chart, "-n", rel.namespace]
        values_file = self._write_values(rel)
        if values_file is not None:
            argv += ["-f", str(values_file)]
        if rel.version:
            argv += ["--version", rel.version]
        if rel.wait:
            argv += ["--wait", "--timeout", f"{rel.timeout_seconds}s"]

        try:
            return self._check(self._run(argv, timeout=rel.timeout_seconds + 60))
        finally:
            if values_file is not None:
                values_file.unlink(missing_ok=True)

    def uninstall(self, release_name: str, namespace: str, *, timeout_seconds: int = 300) -> CommandResult:
        argv = self._base() + [
            "uninstall", release_name, "-n", namespace,
            "--wait", "--timeout", f"{timeout_seconds}s",
        ]
        return self._check(self._run(argv, timeout=timeout_seconds + 60))

    def pull(self, chart: str, version: str, destination: Path) -> Path:
        destination.mkdir(parents=True, exist_ok=True)
        cp = self._run(
            ["helm", "pull", chart, "--version", version, "--destination", str(destination)]
        )
        if not cp.ok:
            raise HelmPullError(f"helm pull {chart}@{version} failed", cp)
        return destination

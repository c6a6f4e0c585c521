# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/kube/kubectl.py

from __future__ import annotations

import json
from typing import Iterable, Optional

from meshlab.utils.shell import CommandError, CommandResult, run_command


class KubectlError(CommandError):
    pass


class KubectlRunner:
    """
    Thin wrapper around the local `kubectl` binary.

    Query methods return the raw CommandResult so callers can tell
    "not found" from "failed"; the JSON helpers raise KubectlError.
    """

    def __init__(self, *, context: Optional[str] = None, request_timeout: str = "15s"):
        self.context = context
        self.request_timeout = request_timeout

    def _base(self) -> list[str]:
        cmd = ["kubectl"]
        if self.context:
            cmd += ["--context", self.context]
        return cmd

    def run(
        self,
        args: Iterable[str],
        *,
        input_text: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        return run_command(self._base() + list(args), input_text=input_text, timeout=timeout)

    def _json(self, args: list[str]) -> dict:
        res = self.run(args + ["-o", "json"])
        if not res.ok:
            raise KubectlError(f"kubectl {' '.join(args)} failed", res)
        try:
            return json.loads(res.stdout or "{}")
        except json.JSONDecodeError as e:
            raise KubectlError(f"Failed to parse kubectl output as JSON: {e}", res)

    # ------------------------- cluster -------------------------

    def current_context(self) -> CommandResult:
        return self.run(["config", "current-context"])

    def readyz(self) -> CommandResult:
        return self.run(["get", "--raw", "/readyz", "--request-timeout", self.request_timeout])

    def storage_classes(self) -> list[dict]:
        return self._json(["get", "storageclass"]).get("items", [])

    # ------------------------- generic objects -------------------------

    def get_object(self, kind: str, name: str, namespace: Optional[str] = None) -> CommandResult:
        cmd = ["get", kind, name, "-o", "json"]
        if namespace:
            cmd += ["-n", namespace]
        return self.run(cmd)

    def exists(self, kind: str, name: str, namespace: Optional[str] = None) -> CommandResult:
        cmd = ["get", kind, name, "-o", "name"]
        if namespace:
            cmd += ["-n", namespace]
        return self.run(cmd)

    def get_names(self, kind: str, namespace: Optional[str] = None) -> CommandResult:
        cmd = ["get", kind, "-o", "name"]
        if namespace:
            cmd += ["-n", namespace]
        return self.run(cmd)

    def delete(
        self,
        kind: str,
        names: Iterable[str],
        *,
        namespace: Optional[str] = None,
        wait: bool = True,
    ) -> CommandResult:
        cmd = ["delete", kind, *names, "--ignore-not-found"]
        if namespace:
            cmd += ["-n", namespace]
        if not wait:
            cmd.append("--wait=false")
        return self.run(cmd)

    def wait_for_deletion(self, kind: str, name: str, *, timeout_seconds: int) -> CommandResult:
        return self.run(
            ["wait", "--for=delete", f"{kind}/{name}", f"--timeout={timeout_seconds}s"],
            timeout=timeout_seconds + 30,
        )

    # ------------------------- namespaces -------------------------

    def create_namespace(self, name: str) -> CommandResult:
        return self.run(["create", "namespace", name])

    def label(self, kind: str, name: str, key: str, value: str) -> CommandResult:
        return self.run(["label", kind, name, f"{key}={value}", "--overwrite"])

    def unlabel(self, kind: str, name: str, key: str) -> CommandResult:
        return self.run(["label", kind, name, f"{key}-"])

    # ------------------------- manifests -------------------------

    def apply_content(self, content: str, *, namespace: Optional[str] = None) -> CommandResult:
        cmd = ["apply"]
        if namespace:
            cmd += ["-n", namespace]
        return self.run(cmd + ["-f", "-"], input_text=content)

    def delete_content(self, content: str, *, namespace: Optional[str] = None) -> CommandResult:
        cmd = ["delete", "--ignore-not-found"]
        if namespace:
            cmd += ["-n", namespace]
        return self.run(cmd + ["-f", "-"], input_text=content)

    def apply_url(self, url: str, *, server_side: bool = True) -> CommandResult:
        """
        Server-side apply avoids the last-applied-configuration annotation,
        which large CRDs overflow.
        """
        cmd = ["apply"]
        if server_side:
            cmd.append("--server-side")
        return self.run(cmd + ["-f", url])

    def delete_url(self, url: str) -> CommandResult:
        return self.run(["delete", "--ignore-not-found", "-f", url])

    # ------------------------- reporting -------------------------

    def describe_pods(self, namespace: str) -> CommandResult:
        return self.run(["get", "pods", "-n", namespace, "-o", "wide"])

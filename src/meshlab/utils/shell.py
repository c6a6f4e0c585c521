# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/utils/shell.py

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

log = logging.getLogger("meshlab")


# stderr forms kubectl / helm print when the target object is missing
NOT_FOUND_MARKERS = (
    "(NotFound)",
    "release: not found",
    "Release not loaded",
    "resource mapping not found",
)

# follow-up lines kubectl adds under a mapping error
BENIGN_LINES = ("ensure CRDs are installed first",)

# stderr fragments that mean the API server never answered
UNREACHABLE_MARKERS = (
    "Unable to connect to the server",
    "Kubernetes cluster unreachable",
    "connection refused",
    "no such host",
    "i/o timeout",
    "context deadline exceeded",
    "TLS handshake timeout",
)


class CallStatus(str, Enum):
    SUCCEEDED = "succeeded"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one external CLI call.

    `status` is the tri-state view callers branch on; the raw returncode and
    output are kept for error reporting.
    """

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    status: CallStatus

    @property
    def ok(self) -> bool:
        return self.status is CallStatus.SUCCEEDED

    @property
    def not_found(self) -> bool:
        return self.status is CallStatus.NOT_FOUND

    @property
    def unreachable(self) -> bool:
        if self.status is not CallStatus.FAILED:
            return False
        return any(m in self.stderr for m in UNREACHABLE_MARKERS)

    @property
    def command(self) -> str:
        return " ".join(self.argv)

    def output(self) -> str:
        """Combined raw output, stderr first since that is where tools complain."""
        parts = [p.strip() for p in (self.stderr, self.stdout) if p and p.strip()]
        return "\n".join(parts)


class CommandError(RuntimeError):
    """Base class for a failed kubectl / helm invocation."""

    def __init__(self, message: str, result: Optional[CommandResult] = None):
        super().__init__(message)
        self.result = result

    @property
    def output(self) -> str:
        return self.result.output() if self.result else ""


def classify(returncode: int, stderr: str) -> CallStatus:
    if returncode == 0:
        return CallStatus.SUCCEEDED
    if any(m in stderr for m in UNREACHABLE_MARKERS):
        return CallStatus.FAILED
    # a multi-document call is only NotFound when every error line is one
    lines = [
        line.strip()
        for line in stderr.splitlines()
        if line.strip() and not any(b in line for b in BENIGN_LINES)
    ]
    if lines and all(any(m in line for m in NOT_FOUND_MARKERS) for line in lines):
        return CallStatus.NOT_FOUND
    return CallStatus.FAILED


def run_command(
    argv: Sequence[str],
    *,
    input_text: Optional[str] = None,
    env: Optional[dict] = None,
    timeout: Optional[int] = None,
) -> CommandResult:
    """
    Run a local command and capture its output.

    Never raises for a non-zero exit; a missing binary or a timeout is folded
    into a FAILED result so callers only ever branch on `CommandResult.status`.
    """
    argv = [str(a) for a in argv]
    log.debug("$ %s", " ".join(argv))

    try:
        cp = subprocess.run(
            argv,
            check=False,
            text=True,
            capture_output=True,
            input=input_text,
            env=env,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        return CommandResult(tuple(argv), 127, "", str(exc), CallStatus.FAILED)
    except subprocess.TimeoutExpired:
        return CommandResult(
            tuple(argv), 124, "", f"command timed out after {timeout}s", CallStatus.FAILED
        )

    stdout = cp.stdout or ""
    stderr = cp.stderr or ""
    status = classify(cp.returncode, stderr)

    if status is not CallStatus.SUCCEEDED:
        log.debug("[rc=%d %s] %s", cp.returncode, status.value, stderr.strip())

    return CommandResult(tuple(argv), cp.returncode, stdout, stderr, status)

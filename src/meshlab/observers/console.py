# src/meshlab/observers/console.py
from __future__ import annotations

import typer

from .events import (
    BaseEvent,
    FallbackAttempted,
    PlanComputed,
    PreflightCheckCompleted,
    PreflightFinished,
    ReconcileFinished,
    RunAborted,
    RunSummary,
)

_STATUS_COLORS = {
    "PASS": typer.colors.GREEN,
    "WARN": typer.colors.YELLOW,
    "FAIL": typer.colors.RED,
    "SKIP": typer.colors.BRIGHT_BLACK,
}

_ACTION_COLORS = {
    "created": typer.colors.GREEN,
    "updated": typer.colors.CYAN,
    "deleted": typer.colors.MAGENTA,
    "noop": typer.colors.BRIGHT_BLACK,
    "skipped": typer.colors.YELLOW,
}


class ConsoleObserver:
    """Operator-facing status lines; everything else goes to the log file."""

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, PreflightCheckCompleted):
            color = _STATUS_COLORS.get(event.status)
            typer.secho(f"  [{event.status}] {event.name}: {event.detail}", fg=color)

        elif isinstance(event, PreflightFinished):
            if event.fatal:
                typer.secho(
                    f"[preflight] refusing to continue: {', '.join(event.failed)}",
                    fg=typer.colors.RED,
                    bold=True,
                )

        elif isinstance(event, PlanComputed):
            typer.echo(f"[plan] {len(event.order)} step(s)")
            for i, step in enumerate(event.order, start=1):
                typer.echo(f"  {i:>2}. {step}")

        elif isinstance(event, ReconcileFinished):
            where = f"{event.namespace}/" if event.namespace else ""
            label = f"{event.kind} {where}{event.name}"
            if event.error:
                typer.secho(f"  [error] {label}: {event.error}", fg=typer.colors.RED)
                return
            color = _ACTION_COLORS.get(event.action)
            suffix = f" ({event.detail})" if event.detail else ""
            typer.secho(f"  [{event.action}] {label}{suffix}", fg=color)

        elif isinstance(event, FallbackAttempted):
            where = f"{event.namespace}/" if event.namespace else ""
            typer.secho(
                f"  [best-effort:{event.group}] {event.kind} {where}{event.name} -> {event.action}",
                fg=typer.colors.YELLOW,
            )

        elif isinstance(event, RunAborted):
            typer.secho(f"\n[aborted] {event.stage}: {event.step}", fg=typer.colors.RED, bold=True)
            typer.secho(f"  {event.error}", fg=typer.colors.RED)
            if event.output:
                typer.echo("  --- tool output ---")
                for line in event.output.splitlines():
                    typer.echo(f"  {line}")
            if event.hint:
                typer.secho(f"  hint: {event.hint}", fg=typer.colors.YELLOW)

        elif isinstance(event, RunSummary):
            counts = " ".join(f"{k}={v}" for k, v in sorted(event.counts.items()))
            color = typer.colors.GREEN if event.exit_code == 0 else typer.colors.RED
            typer.secho(f"\n[{event.direction}] {event.state} {counts}", fg=color, bold=True)

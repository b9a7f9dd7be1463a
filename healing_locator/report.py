"""End-of-run execution report rendered with rich."""
from __future__ import annotations

import io
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from healing_locator.action_result import ExecutionResult, ExecutionStep


def _status(step: ExecutionStep) -> Text:
    if step.outcome is None:
        return Text("not run", style="dim")
    if step.success:
        return Text("✅ passed", style="green")
    return Text("❌ failed", style="bold red")


def _strategy(step: ExecutionStep) -> str:
    outcome = step.outcome
    if outcome is None or outcome.strategy_used is None:
        return "-"
    label = outcome.strategy_used.value
    if outcome.success and outcome.deterministic_error is not None:
        label += " (healed)"
    return label


def build_report_table(result: ExecutionResult) -> Table:
    """One row per step; failed steps list the error of every strategy tried."""
    status = "PASSED" if result.success else "FAILED"
    table = Table(
        title=f"Execution report: {status} ({result.steps_executed}/{result.total_steps} steps, "
              f"{result.escalations_used} vision escalations)",
        show_lines=True,
    )
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Action", style="magenta", no_wrap=True)
    table.add_column("Description")
    table.add_column("Strategy", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Errors", style="red")

    for step in result.steps:
        errors = "\n".join(step.outcome.error_messages()) if step.outcome is not None and not step.success else ""
        table.add_row(
            str(step.index),
            step.action,
            step.description,
            _strategy(step),
            _status(step),
            errors,
        )

    # Failures recorded without a step row (e.g. scenario timeout before the step started).
    indexed = {step.index for step in result.steps}
    for error in result.errors:
        if error.get("step") not in indexed:
            table.add_row(str(error.get("step", "-")), "-", error.get("description", ""), "-",
                          Text("❌ aborted", style="bold red"), error.get("error", ""))
    return table


def format_report(result: ExecutionResult, width: int = 120) -> str:
    """Render the report to plain text."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, force_terminal=False, color_system=None)
    console.print(build_report_table(result))
    if result.screenshots:
        console.print(f"Screenshots: {', '.join(result.screenshots)}")
    if result.video:
        console.print(f"Video: {result.video}")
    return buffer.getvalue()


def print_report(result: ExecutionResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print(build_report_table(result))
    for error in result.errors:
        console.print(f"[red]Step {error['step']}[/red] {error['description']}: {error['error']}")
    if result.video:
        console.print(f"Video: {result.video}")


__all__ = ["build_report_table", "format_report", "print_report"]

"""Console reporter for terminal output."""

from __future__ import annotations

from itertools import groupby

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from quickrest.core.graph import OperationGraph
from quickrest.core.invocation import Sequence
from quickrest.core.result import ExplorerState, Report

_STATUS_STYLE = {
    ExplorerState.FOUND: "bold green",
    ExplorerState.EXHAUSTED: "bold yellow",
    ExplorerState.ABORTED: "bold red",
}


def collapse_path(operations: list[str]) -> str:
    """Collapse repeated consecutive operations.

    Example: ['a', 'b', 'b', 'b', 'c'] -> 'a → b ×3 → c'
    """
    collapsed = []
    for op, group in groupby(operations):
        count = len(list(group))
        collapsed.append(f"{op} ×{count}" if count > 1 else op)
    return " → ".join(collapsed)


class ConsoleReporter:
    """Renders a Report with rich.

    Shows the outcome header, a one-line summary, the minimized sequence as
    a table with the response each call got, and the operations the search
    never reached.
    """

    def __init__(
        self,
        console: Console | None = None,
        graph: OperationGraph | None = None,
        show_candidates: bool = False,
    ) -> None:
        self.console = console or Console()
        self.graph = graph
        self.show_candidates = show_candidates

    def report(self, report: Report) -> None:
        console = self.console
        style = _STATUS_STYLE.get(report.status, "bold")
        console.print()
        console.print(
            f"[{style}]{report.status.value.upper()}[/{style}] "
            f"[bold]{report.objective.name}[/bold] ({report.verdict.value})"
        )

        coverage = report.coverage_percent
        color = "green" if coverage >= 80 else ("yellow" if coverage >= 50 else "red")
        parts = [
            f"{report.attempts} attempts",
            f"{report.dispatched} calls",
            f"[{color}]{coverage:.0f}% coverage[/{color}]",
            f"{report.duration_ms:.0f}ms",
        ]
        if report.transport_errors:
            parts.append(f"[yellow]{report.transport_errors} transport errors[/yellow]")
        console.print(f"[bold]Summary:[/bold] {' │ '.join(parts)}")

        if report.found and report.sequence is not None:
            original = len(report.original_sequence) if report.original_sequence else 0
            console.print(
                f"[dim]Shrunk {original} → {len(report.sequence)} invocations "
                f"in {report.shrink_steps} steps[/dim]"
            )
            console.print(self._sequence_table(report))
            console.print(
                Panel(
                    collapse_path(report.sequence.operation_ids()),
                    title="Reproduction path",
                    expand=False,
                )
            )

        if report.uncovered_operations:
            console.print(
                f"[dim]Never invoked: {', '.join(report.uncovered_operations)}[/dim]"
            )

        if self.show_candidates and report.candidates:
            console.print(self._candidate_table(report))
        console.print()

    def _describe(self, sequence: Sequence, index: int, request_line: str) -> str:
        if request_line:
            return request_line
        invocation = sequence[index]
        if self.graph is not None:
            op = self.graph.get(invocation.operation_id)
            if op is not None:
                return op.describe(invocation.arguments)
        return invocation.operation_id

    def _sequence_table(self, report: Report) -> Table:
        table = Table(title="Minimized sequence", show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Request")
        table.add_column("Bindings", style="cyan")
        table.add_column("Status", justify="right")

        assert report.sequence is not None
        trace = report.trace
        for index, invocation in enumerate(report.sequence):
            result = trace[index] if trace is not None and index < len(trace) else None
            request_line = result.request_line if result is not None else ""
            bindings = ", ".join(f"{name}←{handle}" for name, handle in invocation.bindings.items())
            if result is None or result.status is None:
                status = "-"
            elif result.status >= 500:
                status = f"[red]{result.status}[/red]"
            elif result.status >= 400:
                status = f"[yellow]{result.status}[/yellow]"
            else:
                status = f"[green]{result.status}[/green]"
            table.add_row(
                str(index),
                self._describe(report.sequence, index, request_line),
                bindings,
                status,
            )
        return table

    def _candidate_table(self, report: Report) -> Table:
        table = Table(title="Candidates")
        table.add_column("Phase")
        table.add_column("Attempt", justify="right")
        table.add_column("Length", justify="right")
        table.add_column("Verdict")
        table.add_column("Accepted")
        table.add_column("Reason", style="dim")
        for candidate in report.candidates:
            table.add_row(
                candidate.phase,
                "" if candidate.attempt is None else str(candidate.attempt),
                str(len(candidate.sequence)),
                candidate.verdict.value,
                "[green]yes[/green]" if candidate.accepted else "no",
                candidate.reason,
            )
        return table

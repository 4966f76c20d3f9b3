"""CLI commands for QuickREST."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from quickrest.adapters import Executor, HttpExecutor, StubExecutor
from quickrest.agent import Explorer, ReplayCase, replay
from quickrest.config import ExplorationSettings, load_config
from quickrest.core.behaviours import BEHAVIOURS, resolve_objective
from quickrest.core.graph import OperationGraph
from quickrest.errors import QuickRESTError, ReplayMismatch
from quickrest.generators import load_openapi_spec, parse_operations
from quickrest.reporters import ConsoleReporter, JSONReporter

EXIT_FOUND = 0
EXIT_NOT_FOUND = 1
EXIT_ERROR = 2

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _fail(error: Exception) -> None:
    if isinstance(error, QuickRESTError):
        err_console.print(error.format_verbose(), style="red", markup=False)
    else:
        err_console.print(f"[red]Invalid configuration:[/red] {escape(str(error))}")
    sys.exit(EXIT_ERROR)


def _parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep:
            raise click.BadParameter(f"expected 'Name: value', got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


def _executor(
    graph: OperationGraph,
    settings: ExplorationSettings,
    dry_run: bool,
    headers: dict[str, str],
) -> Executor:
    if dry_run:
        return StubExecutor(graph=graph)
    return HttpExecutor(graph, settings.base_url, timeout=settings.invocation_timeout, headers=headers)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """QuickREST - property-based exploration of REST APIs."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@cli.command()
@click.argument("spec_file", type=click.Path(dir_okay=False))
@click.option(
    "--objective",
    "objective_name",
    default="server-error",
    show_default=True,
    help="Built-in behaviour name or path to an objective file",
)
@click.option("--operation", help="Restrict the behaviour to one operation id")
@click.option("--max-attempts", type=int, help="Number of sequences to try")
@click.option("--min-length", type=int, help="Shortest sequence length")
@click.option("--max-length", type=int, help="Longest sequence length")
@click.option("--seed", type=int, help="Random seed for a reproducible search")
@click.option("--workers", type=int, help="Parallel search workers")
@click.option("--base-url", "-u", help="Base URL of the API under test")
@click.option("--header", "-H", "header_values", multiple=True, help="Extra header 'Name: value'")
@click.option("--include", multiple=True, help="Only operations whose path matches this glob")
@click.option("--exclude", multiple=True, help="Skip operations whose path matches this glob")
@click.option("--no-shrink", is_flag=True, help="Report the sequence as found, unminimized")
@click.option("--dry-run", is_flag=True, help="Answer every call with a canned 200 response")
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False),
    help="Directory for the replay case and JSON report [default: report_dir setting]",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["console", "json"]),
    default="console",
    help="Output format",
)
@click.pass_context
def explore(
    ctx: click.Context,
    spec_file: str,
    objective_name: str,
    operation: str | None,
    max_attempts: int | None,
    min_length: int | None,
    max_length: int | None,
    seed: int | None,
    workers: int | None,
    base_url: str | None,
    header_values: tuple[str, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    no_shrink: bool,
    dry_run: bool,
    output: str | None,
    output_format: str,
) -> None:
    """Search SPEC_FILE's API for a call sequence exhibiting a behaviour.

    Exits 0 when a sequence was found, 1 when the search ended without one.
    """
    headers = _parse_headers(header_values)
    try:
        settings = load_config(
            ctx.obj["config_path"],
            max_attempts=max_attempts,
            min_length=min_length,
            max_length=max_length,
            seed=seed,
            workers=workers,
            base_url=base_url,
            shrink=False if no_shrink else None,
        )
        operations = parse_operations(
            load_openapi_spec(spec_file),
            include_patterns=list(include) or None,
            exclude_patterns=list(exclude) or None,
        )
        graph = OperationGraph(operations)
        if operation is not None:
            graph.require(operation)
        objective = resolve_objective(objective_name, operation)
    except (QuickRESTError, ValidationError) as e:
        _fail(e)
        return

    executor = _executor(graph, settings, dry_run, headers)
    try:
        report = Explorer(graph, objective, executor, settings, focus=operation).explore()
    except QuickRESTError as e:
        _fail(e)
        return
    finally:
        if isinstance(executor, HttpExecutor):
            executor.close()

    if output_format == "json":
        click.echo(JSONReporter().report(report))
    else:
        ConsoleReporter(console=console, graph=graph).report(report)

    directory = Path(output or settings.report_dir)
    JSONReporter().save(report, directory / f"{objective.name}.report.json")
    if report.found:
        path = ReplayCase.from_report(report, graph).save(directory / f"{objective.name}.json")
        if output_format == "console":
            console.print(f"Replay case written to [bold]{escape(str(path))}[/bold]")

    sys.exit(EXIT_FOUND if report.found else EXIT_NOT_FOUND)


@cli.command("test")
@click.argument("case_files", nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.option("--base-url", "-u", help="Base URL of the API under test")
@click.option("--header", "-H", "header_values", multiple=True, help="Extra header 'Name: value'")
@click.option("--dry-run", is_flag=True, help="Answer every call with a canned 200 response")
@click.pass_context
def test_cases(
    ctx: click.Context,
    case_files: tuple[str, ...],
    base_url: str | None,
    header_values: tuple[str, ...],
    dry_run: bool,
) -> None:
    """Replay persisted sequences and check each reproduces its verdict.

    Exits 0 when all reproduce, 1 on any mismatch, 2 when a case cannot run.
    """
    headers = _parse_headers(header_values)
    try:
        settings = load_config(ctx.obj["config_path"], base_url=base_url)
    except (QuickRESTError, ValidationError) as e:
        _fail(e)
        return

    mismatches = 0
    errors = 0
    for case_file in case_files:
        try:
            case = ReplayCase.load(case_file)
            graph = case.graph()
            executor = _executor(graph, settings, dry_run, headers)
            try:
                outcome = replay(case, executor)
            finally:
                if isinstance(executor, HttpExecutor):
                    executor.close()
        except ReplayMismatch as e:
            mismatches += 1
            console.print(f"[red]✗ MISMATCH[/red] {escape(case_file)}: {escape(e.message)}")
            continue
        except QuickRESTError as e:
            errors += 1
            err_console.print(f"[red]✗ ERROR[/red] {escape(case_file)}: {escape(str(e))}")
            continue
        console.print(
            f"[green]✓ PASS[/green] {escape(case_file)} "
            f"({outcome.verdict.value}, {len(case.sequence)} invocations)"
        )

    total = len(case_files)
    console.print(
        f"\n{total - mismatches - errors}/{total} reproduced"
        + (f", {mismatches} mismatched" if mismatches else "")
        + (f", {errors} errors" if errors else "")
    )
    if errors:
        sys.exit(EXIT_ERROR)
    sys.exit(EXIT_NOT_FOUND if mismatches else EXIT_FOUND)


@cli.command()
def behaviours() -> None:
    """List the built-in behaviours usable with --objective."""
    table = Table(title="Built-in behaviours")
    table.add_column("Name", style="bold")
    table.add_column("Finds")
    for name, factory in BEHAVIOURS.items():
        table.add_row(name, factory(None).description)
    console.print(table)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()

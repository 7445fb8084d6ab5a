"""Typer-based CLI for CompileGraph recompilation analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from . import __version__, config
from .closure import is_guaranteed
from .config_manager import load_settings, save_settings
from .errors import CompileGraphError
from .graph_export import export_dot, export_html
from .models import DependencyKind, ExplanationEntry, RecompileDependency, RecompileReason
from .session import AnalysisSession

app = typer.Typer(
    help="CompileGraph CLI: explain why Elixir source files recompile.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def _manifest_option():
    return typer.Option(
        None, "--manifest", "-m", exists=True, dir_okay=False,
        help="JSON manifest of compiled units (default: scan the project sources).",
    )


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"CompileGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log analysis progress."),
):
    """CompileGraph CLI: compile, exports and runtime dependencies of a project."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _open_session(project_path: Path, manifest: Optional[Path]) -> AnalysisSession:
    try:
        return AnalysisSession.for_project(project_path, manifest, load_settings())
    except CompileGraphError as exc:
        raise typer.BadParameter(str(exc))


def _require_unit(session: AnalysisSession, unit_id: str) -> None:
    if unit_id not in session.graph:
        raise typer.BadParameter(f"Unknown unit '{unit_id}'. Run 'compilegraph summary' to list units.")


def _parse_reason(value: str) -> RecompileReason:
    try:
        return RecompileReason(value)
    except ValueError:
        choices = ", ".join(r.value for r in RecompileReason)
        raise typer.BadParameter(f"Reason must be one of: {choices}")


def _parse_kind(value: str) -> DependencyKind:
    try:
        return DependencyKind(value)
    except ValueError:
        choices = ", ".join(k.value for k in DependencyKind)
        raise typer.BadParameter(f"Kind must be one of: {choices}")


def _format_chain(dependency: RecompileDependency) -> str:
    if not dependency.path:
        return dependency.unit_id
    parts = [dependency.path[0].src]
    for hop in dependency.path:
        parts.append(f"-{hop.kind.value}-> {hop.dst}")
    return " ".join(parts)


@app.command("summary")
def summary(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the project."),
    manifest: Optional[Path] = _manifest_option(),
    as_json: bool = typer.Option(False, "--json", help="Print the full summary as JSON."),
):
    """List units with their edges and recompile dependency counts."""
    session = _open_session(project_path, manifest)
    summaries = session.build_graph_summary(background=False)

    if as_json:
        typer.echo(json.dumps([s.to_dict() for s in summaries], indent=2))
        return

    if not summaries:
        typer.echo("No compiled units found.")
        raise typer.Exit(code=0)

    table = Table(title="Compile graph", show_header=True)
    table.add_column("Unit", style="cyan", no_wrap=True)
    table.add_column("Modules")
    table.add_column("Compile", justify="right")
    table.add_column("Exports", justify="right")
    table.add_column("Runtime", justify="right")
    table.add_column("Guaranteed", justify="right", style="red")
    table.add_column("Conditional", justify="right", style="yellow")

    for item in summaries:
        counts = {kind: 0 for kind in DependencyKind}
        for edge in item.out_edges:
            counts[edge.kind] += 1
        guaranteed = sum(1 for d in item.recompile_dependencies if is_guaranteed(d.reason))
        table.add_row(
            item.unit_id,
            ", ".join(session.graph.unit(item.unit_id).modules),
            str(counts[DependencyKind.COMPILE]),
            str(counts[DependencyKind.EXPORTS]),
            str(counts[DependencyKind.RUNTIME]),
            str(guaranteed),
            str(len(item.recompile_dependencies) - guaranteed),
        )
    console.print(table)


@app.command("deps")
def deps(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the project."),
    unit: str = typer.Argument(..., help="Unit id, e.g. lib/app/user.ex."),
    manifest: Optional[Path] = _manifest_option(),
):
    """Show which units force UNIT to recompile, grouped by reason."""
    session = _open_session(project_path, manifest)
    _require_unit(session, unit)

    dependencies = session.recompile_dependencies(unit)
    if not dependencies:
        typer.echo(f"Nothing forces {unit} to recompile.")
        return

    for reason in RecompileReason:
        group = [d for d in dependencies if d.reason is reason]
        if not group:
            continue
        label = "guaranteed" if reason.guaranteed else "conditional"
        console.print(f"\n[bold]{reason.value}[/bold] ({label}, {len(group)})")
        for dependency in group:
            console.print(f"  • [cyan]{dependency.unit_id}[/cyan]")
            console.print(f"    {_format_chain(dependency)}", style="dim", highlight=False)


def _print_entry(entry: ExplanationEntry) -> None:
    if entry.type is DependencyKind.RUNTIME:
        via = f" via {', '.join(entry.intermediates)}" if entry.intermediates else ""
        console.print(f"[dim]runtime: {entry.source} → {entry.sink}{via}[/dim]")
        return

    header = f"[bold]{entry.type.value}[/bold]: {entry.source} → {entry.sink}"
    if not entry.snippets:
        console.print(header + " [dim](no matching source found)[/dim]")
        return
    for snippet in entry.snippets:
        first, last = snippet.lines_span
        code = Syntax(
            snippet.content.rstrip("\n"),
            "elixir",
            line_numbers=True,
            start_line=first,
            highlight_lines=set(range(snippet.highlight[0], snippet.highlight[1] + 1)),
        )
        console.print(Panel(code, title=header, subtitle=f"lines {first}-{last}"))


@app.command("explain")
def explain_cmd(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the project."),
    sink: str = typer.Argument(..., help="Unit that recompiles."),
    source: str = typer.Argument(..., help="Unit whose change causes the recompilation."),
    reason: str = typer.Argument(..., help="compile, exports_then_compile, exports or compile_then_runtime."),
    manifest: Optional[Path] = _manifest_option(),
    as_json: bool = typer.Option(False, "--json", help="Print the explanation as JSON."),
):
    """Explain, hop by hop, why SINK recompiles when SOURCE changes."""
    parsed = _parse_reason(reason)
    session = _open_session(project_path, manifest)
    _require_unit(session, sink)
    _require_unit(session, source)

    entries: List[ExplanationEntry] = session.explain_dependency(source, sink, parsed)
    if as_json:
        typer.echo(json.dumps([e.to_dict() for e in entries], indent=2))
        return
    if not entries:
        typer.echo(f"No '{parsed.value}' dependency of {sink} on {source}.", err=True)
        raise typer.Exit(code=1)

    for entry in entries:
        _print_entry(entry)


@app.command("causes")
def causes(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the project."),
    source: str = typer.Argument(..., help="Unit that depends on SINK."),
    sink: str = typer.Argument(..., help="Unit SOURCE depends on."),
    kind: str = typer.Argument(..., help="compile, exports or runtime."),
    manifest: Optional[Path] = _manifest_option(),
):
    """List the expressions in SOURCE that create a KIND edge to SINK."""
    parsed = _parse_kind(kind)
    session = _open_session(project_path, manifest)
    _require_unit(session, source)
    _require_unit(session, sink)

    found = session.dependency_causes(source, sink, parsed)
    if not found:
        typer.echo(f"No {parsed.value} causes from {source} to {sink}.")
        return

    table = Table(show_header=True)
    table.add_column("Cause", style="cyan")
    table.add_column("File")
    table.add_column("Lines", justify="right")
    for cause in found:
        start, end = cause.lines_span
        table.add_row(cause.kind.value, cause.origin_file, str(start) if start == end else f"{start}-{end}")
    console.print(table)


@app.command("export-graph")
def export_graph(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the project."),
    fmt: str = typer.Option("html", "--format", "-f", help="Export format: html or dot."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    focus: str = typer.Option("", "--focus", help="Only units whose id contains this text, plus neighbours."),
    manifest: Optional[Path] = _manifest_option(),
):
    """Export the typed dependency graph to standalone HTML or Graphviz DOT."""
    fmt = fmt.lower()
    if fmt not in {"html", "dot"}:
        raise typer.BadParameter("Format must be one of: html, dot")

    session = _open_session(project_path, manifest)
    if output is None:
        output = Path.cwd() / f"{project_path.resolve().name}_compile_graph.{fmt}"

    if fmt == "html":
        export_html(session.graph, output, focus=focus)
    else:
        export_dot(session.graph, output, focus=focus)

    typer.echo(f"Exported graph to {output}")


@app.command("show-config")
def show_config():
    """Print the effective analysis settings."""
    settings = load_settings()
    console.print(f"[bold]Config file:[/bold] {config.CONFIG_FILE}")
    for key, value in settings.to_dict().items():
        console.print(f"  {key} = {value}")
    if settings.max_path_depth is None:
        console.print("  max_path_depth = (number of units)")


@app.command("set-config")
def set_config(
    snippet_padding: Optional[int] = typer.Option(None, "--snippet-padding", min=0, help="Context lines around each cause."),
    max_path_depth: Optional[int] = typer.Option(None, "--max-path-depth", min=1, help="Longest recompile path searched."),
    max_paths: Optional[int] = typer.Option(None, "--max-paths", min=1, help="Search expansions allowed per unit."),
    background_cache: Optional[bool] = typer.Option(
        None, "--background-cache/--no-background-cache", help="Fill the path cache on a background thread.",
    ),
):
    """Update the analysis settings stored in the config file."""
    settings = load_settings()
    if snippet_padding is not None:
        settings.snippet_padding = snippet_padding
    if max_path_depth is not None:
        settings.max_path_depth = max_path_depth
    if max_paths is not None:
        settings.max_paths = max_paths
    if background_cache is not None:
        settings.background_cache = background_cache

    if not save_settings(settings):
        console.print(f"[red]Failed to write {config.CONFIG_FILE}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Saved analysis settings to {config.CONFIG_FILE}[/green]")


if __name__ == "__main__":
    app()

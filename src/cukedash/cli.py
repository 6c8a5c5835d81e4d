"""Typer CLI entry point for Cukedash.

Bridges the synchronous Typer world to the async coordinator via asyncio.run().
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cukedash import __version__
from cukedash.config import ConfigProvider
from cukedash.coordinator import IndexCoordinator
from cukedash.exceptions import CukeDashError
from cukedash.indexer.index import WorkspaceIndex
from cukedash.indexer.scanner import LocalWorkspace
from cukedash.models import MatchMode, StepDefinition

app = typer.Typer(
    name="cukedash",
    help="Cukedash: find undefined, ambiguous and unused Cucumber steps.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

_CONFIG_TEMPLATE = """\
# Cukedash project configuration
# feature_globs = ["features/**/*.feature", "**/*.feature"]
# step_def_globs = ["**/*.{steps,step,stepdefs}.{ts,js}", "**/*steps*/**/*.{ts,js}"]
# exclude_globs = ["**/node_modules/**", "**/dist/**", "**/build/**", "**/.git/**"]
# enable_diagnostics = true
# match_mode = "both"  # both | regex | expression
"""


def _error_exit(message: str, hint: str | None = None) -> None:
    """Print a styled error and exit."""
    console.print(f"[bold red]Error:[/bold red] {message}")
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"cukedash {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """Cross-reference Gherkin steps with their step definitions."""


@app.command()
def init() -> None:
    """Create .cukedash/config.toml for this project."""
    config_dir = Path.cwd().resolve() / ".cukedash"
    config_path = config_dir / "config.toml"

    if config_path.is_file():
        console.print(f"[yellow]Already initialized:[/yellow] {config_path} exists")
        raise typer.Exit(code=0)

    config_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_CONFIG_TEMPLATE, encoding="utf-8")
    console.print(f"[green]Initialized Cukedash[/green] in [bold]{config_dir}[/bold]")


@app.command()
def check(
    mode: Annotated[
        str | None,
        typer.Option("--mode", "-m", help="Match mode: both, regex or expression"),
    ] = None,
    strict: Annotated[
        bool, typer.Option("--strict", help="Exit 1 if any step is undefined or ambiguous")
    ] = False,
) -> None:
    """Index the project and report undefined, ambiguous and unused steps."""
    try:
        index = _build_index(Path.cwd(), mode)
    except CukeDashError as exc:
        _error_exit(str(exc))
        return

    stats = index.get_stats()
    table = Table(title="Cukedash", border_style="cyan", header_style="bold cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Features", str(stats.total_features))
    table.add_row("Scenarios", str(stats.total_scenarios))
    table.add_row("Steps", str(stats.total_steps))
    table.add_row("Undefined steps", _count(stats.undefined_steps, "red"))
    table.add_row("Ambiguous steps", _count(stats.ambiguous_steps, "yellow"))
    table.add_row("Unused definitions", _count(stats.unused_definitions, "yellow"))
    console.print()
    console.print(table)

    root = Path.cwd().resolve()
    undefined = index.get_undefined_steps()
    if undefined:
        steps = Table(title="Undefined steps", border_style="red", header_style="bold red")
        steps.add_column("Location")
        steps.add_column("Step")
        steps.add_column("Scenario", style="dim")
        for result in undefined:
            step = result.step
            steps.add_row(
                f"{_relative(step.source, root)}:{step.line}",
                f"{step.keyword.value} {step.text}",
                step.scenario_name,
            )
        console.print(steps)

    ambiguous = index.get_ambiguous_steps()
    if ambiguous:
        amb = Table(title="Ambiguous steps", border_style="yellow", header_style="bold yellow")
        amb.add_column("Location")
        amb.add_column("Step")
        amb.add_column("Matching definitions")
        for result in ambiguous:
            step = result.step
            amb.add_row(
                f"{_relative(step.source, root)}:{step.line}",
                f"{step.keyword.value} {step.text}",
                "\n".join(_describe(d, root) for d in result.matches),
            )
        console.print(amb)

    unused = index.get_unused_definitions()
    if unused:
        defs = Table(title="Unused definitions", border_style="yellow", header_style="bold yellow")
        defs.add_column("Definition")
        for definition in unused:
            defs.add_row(_describe(definition, root))
        console.print(defs)

    if strict and (stats.undefined_steps or stats.ambiguous_steps):
        raise typer.Exit(code=1)


@app.command()
def definitions() -> None:
    """List step definitions grouped by file."""
    try:
        index = _build_index(Path.cwd(), None)
    except CukeDashError as exc:
        _error_exit(str(exc))
        return

    root = Path.cwd().resolve()
    by_file = index.get_step_definitions_by_file()
    if not by_file:
        console.print("[dim]No step definitions found.[/dim]")
        return

    for source, defs in by_file.items():
        table = Table(title=str(_relative(source, root)), border_style="cyan", header_style="bold")
        table.add_column("Line", justify="right")
        table.add_column("Keyword")
        table.add_column("Pattern")
        for definition in defs:
            table.add_row(
                str(definition.span.start_line + 1),
                definition.function_name,
                definition.display_pattern,
            )
        console.print(table)


def _build_index(project_dir: Path, mode: str | None) -> WorkspaceIndex:
    """Run one full reindex of ``project_dir`` and return the resulting index."""
    workspace = LocalWorkspace(project_dir)
    provider = ConfigProvider(workspace.root)
    if mode is not None:
        provider.update(match_mode=MatchMode.parse(mode))
    coordinator = IndexCoordinator(provider, workspace, workspace)

    console.print(Panel(
        f"[bold]Project:[/bold] {workspace.root}\n"
        f"[bold]Match mode:[/bold] {provider.config.match_mode.value}",
        title=f"[bold cyan]Cukedash[/bold cyan] v{__version__}",
        border_style="cyan",
    ))
    try:
        asyncio.run(coordinator.reindex())
    finally:
        coordinator.dispose()
    return coordinator.index


def _count(value: int, color: str) -> str:
    return f"[{color}]{value}[/{color}]" if value else "[green]0[/green]"


def _relative(path: Path, root: Path) -> Path:
    try:
        return path.relative_to(root)
    except ValueError:
        return path


def _describe(definition: StepDefinition, root: Path) -> str:
    location = f"{_relative(definition.source, root)}:{definition.span.start_line + 1}"
    return f"{definition.function_name}({definition.display_pattern})  [dim]{location}[/dim]"

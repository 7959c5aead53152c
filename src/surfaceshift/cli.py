"""Command-line interface for surfaceshift."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from surfaceshift import __version__
from surfaceshift.config import CONFIG_FILENAMES, SurfaceshiftConfig, find_config_file, generate_example_config, load_config
from surfaceshift.core.models import ChangeKind, MigrationPlan, PhaseName, ResolutionResult, Severity
from surfaceshift.utils.logging import configure_logging, get_logger, set_console_level

app = typer.Typer(
    name="surfaceshift",
    help="Compare two versions of a component library, classify breaking changes and plan the migration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

console = Console()
stderr_console = Console(stderr=True)
logger = get_logger(__name__)

OldSource = Annotated[
    Path,
    typer.Argument(help="Declarations of the current version (directory or file).", exists=True, readable=True),
]
NewSource = Annotated[
    Path,
    typer.Argument(help="Declarations of the target version (directory or file).", exists=True, readable=True),
]
FromVersion = Annotated[str, typer.Option("--from", help="Current version id.")]
ToVersion = Annotated[str, typer.Option("--to", help="Target version id.")]
HintsOption = Annotated[
    Path | None,
    typer.Option("--hints", help="YAML/JSON file of explicit rename hints.", exists=True, dir_okay=False),
]
CatalogOption = Annotated[
    Path | None,
    typer.Option("--catalog", help="Rewrite-rule catalog (YAML/JSON).", exists=True, dir_okay=False),
]
FormatOption = Annotated[str, typer.Option("--format", "-f", help="Output format (table, json).")]
OutputOption = Annotated[Path | None, typer.Option("--output", "-o", help="Write JSON results to file.")]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"surfaceshift version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            help="Also write debug logs to this file.",
            dir_okay=False,
        ),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """surfaceshift - Know what an upgrade breaks and how to migrate."""
    log_level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    configure_logging(level=log_level, log_file=log_file)
    # Explicit flags win over the configured log_level.
    ctx.obj = {"config_path": config, "level_forced": verbose or quiet}

    if config:
        logger.debug("Using configuration file: %s", config)


def _handle_cli_error(error: Exception) -> None:
    """Handle exceptions and display user-friendly error messages.

    Args:
        error: The exception to handle.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    from surfaceshift.errors import SurfaceshiftError

    if isinstance(error, SurfaceshiftError):
        stderr_console.print(f"[bold red]Error:[/bold red] {error.message}")
        if error.hint:
            stderr_console.print(f"[yellow]Hint:[/yellow] {error.hint}")
    else:
        stderr_console.print(f"[red]Error: {error}[/red]")
        logger.exception("Command failed")

    raise typer.Exit(code=1)


def _load_config(ctx: typer.Context) -> SurfaceshiftConfig:
    options = ctx.obj or {}
    config = load_config(options.get("config_path"))
    if not options.get("level_forced"):
        set_console_level(config.log_level)
    return config


def _check_format(format: str) -> None:
    if format not in ("table", "json"):
        stderr_console.print(f"[red]Unknown format: {format}[/red] (use table or json)")
        raise typer.Exit(code=1)


def _emit_json(data: Any, output: Path | None) -> None:
    text = json.dumps(data, indent=2)
    if output:
        output.write_text(text)
        stderr_console.print(f"Results written to: {output}")
    else:
        # Plain print keeps stdout clean for piping
        print(text)


def _severity_color(severity: Severity) -> str:
    """Get color for severity level."""
    return {
        Severity.CRITICAL: "red bold",
        Severity.MAJOR: "red",
        Severity.MINOR: "yellow",
        Severity.DEPRECATION: "dim",
    }.get(severity, "white")


def _change_kind_color(kind: ChangeKind) -> str:
    """Get color for change kind."""
    return {
        ChangeKind.REMOVED: "red",
        ChangeKind.RENAMED: "yellow",
        ChangeKind.SIGNATURE_CHANGED: "yellow",
        ChangeKind.VISIBILITY_CHANGED: "yellow",
        ChangeKind.DEFAULT_CHANGED: "cyan",
        ChangeKind.DEPRECATED: "dim",
        ChangeKind.ADDED: "green",
    }.get(kind, "white")


def _print_plan(plan: MigrationPlan) -> None:
    table = Table(title=f"Migration plan {plan.package} {plan.from_version} -> {plan.to_version}".strip())
    table.add_column("Phase", style="cyan")
    table.add_column("Change")
    table.add_column("Severity")
    table.add_column("Impact", justify="right")
    table.add_column("Automated")

    for phase in plan.phases:
        if phase.name == PhaseName.PREPARATION:
            for conflict in phase.conflicts:
                table.add_row(phase.name.value, f"resolve {conflict.package}", "-", "-", conflict.reason.value)
            continue
        if phase.name == PhaseName.VALIDATION:
            table.add_row(phase.name.value, f"verify {len(phase.verifications)} transformations", "-", "-", "-")
            continue
        for entry in phase.entries:
            severity = entry.classified.severity
            table.add_row(
                phase.name.value,
                entry.classified.change_id,
                f"[{_severity_color(severity)}]{severity.value}[/{_severity_color(severity)}]",
                str(entry.classified.impact_score),
                "Yes" if entry.automated else "[red]No[/red]",
            )

    console.print(table)

    if plan.manual_only:
        console.print("\n[bold]Manual migration required:[/bold]")
        for manual in plan.manual_only:
            console.print(f"  - {manual.change_id}: {manual.reason}")


def _print_resolution(result: ResolutionResult) -> None:
    if not result.conflicts:
        console.print("[green]No version conflicts.[/green]")
    for conflict in result.conflicts:
        console.print(f"\n[bold red]Conflict:[/bold red] {conflict.package} ({conflict.reason.value})")
        for source in conflict.sources:
            console.print(f"  {source.range:<16} required by {' > '.join(source.chain)}")
        for resolution in conflict.resolutions:
            console.print(f"  [cyan]{resolution.strategy.value}:[/cyan] {resolution.description}")
    for warning in result.warnings:
        stderr_console.print(f"[yellow]Warning:[/yellow] {warning}")


@app.command()
def diff(
    ctx: typer.Context,
    old: OldSource,
    new: NewSource,
    from_version: FromVersion = "old",
    to_version: ToVersion = "new",
    hints: HintsOption = None,
    catalog: CatalogOption = None,
    format: FormatOption = "table",
    output: OutputOption = None,
) -> None:
    """Diff the public API surface of two versions.

    Complexity weights come from the rewrite catalog (``--catalog`` or the
    configured one). Changes no rule automates score as manual work.
    """
    from surfaceshift.analysis.impact_calculator import ImpactCalculator
    from surfaceshift.core.diagnostics import Diagnostics
    from surfaceshift.core.pipeline import MigrationEngine, load_rename_hints
    from surfaceshift.transforms.generator import TransformationGenerator

    _check_format(format)
    try:
        config = _load_config(ctx)
        engine = MigrationEngine(config)
        diagnostics = Diagnostics()
        rename_hints = load_rename_hints(hints) if hints else []
        _, _, changes = engine.diff(old, new, from_version, to_version, rename_hints, diagnostics)
        generator = TransformationGenerator(engine.load_catalog(catalog), config.generation)
        complexities = {change.change_id: generator.complexity_for(change) for change in changes}
        classified = ImpactCalculator(config.scoring, config.diff).classify_all(changes, None, complexities)
    except Exception as e:
        _handle_cli_error(e)
        return

    if format == "json":
        _emit_json(
            {
                "changes": [c.model_dump(mode="json") for c in classified],
                "warnings": diagnostics.warnings,
            },
            output,
        )
        return

    table = Table(title=f"API changes {from_version} -> {to_version}")
    table.add_column("Module", style="cyan")
    table.add_column("Entity")
    table.add_column("Change")
    table.add_column("Severity")
    table.add_column("Rule", style="dim")

    for item in sorted(classified, key=lambda c: (c.severity.rank, c.change.module_path, c.change.name)):
        kind_color = _change_kind_color(item.change.kind)
        severity_color = _severity_color(item.severity)
        table.add_row(
            item.change.module_path,
            item.change.name,
            f"[{kind_color}]{item.change.kind.value}[/{kind_color}]",
            f"[{severity_color}]{item.severity.value}[/{severity_color}]",
            item.rule,
        )

    console.print(table)
    for warning in diagnostics.warnings:
        stderr_console.print(f"[yellow]Warning:[/yellow] {warning}")


@app.command()
def plan(
    ctx: typer.Context,
    old: OldSource,
    new: NewSource,
    from_version: FromVersion = "old",
    to_version: ToVersion = "new",
    package: Annotated[str, typer.Option("--package", "-p", help="Package name.")] = "",
    catalog: CatalogOption = None,
    manifest: Annotated[
        Path | None,
        typer.Option("--manifest", "-m", help="Dependency manifest or package-lock.json.", exists=True),
    ] = None,
    corpus: Annotated[
        Path | None,
        typer.Option("--corpus", help="Consumer source directory for prevalence.", exists=True, file_okay=False),
    ] = None,
    hints: HintsOption = None,
    format: FormatOption = "table",
    output: OutputOption = None,
) -> None:
    """Classify changes, resolve conflicts and build a phased migration plan."""
    from surfaceshift.core.pipeline import MigrationEngine, load_rename_hints

    _check_format(format)
    status_console = stderr_console if format == "json" else console
    status_console.print(f"Analyzing {package or 'package'} {from_version} -> {to_version}...")

    try:
        engine = MigrationEngine(_load_config(ctx))
        report = engine.run(
            old,
            new,
            from_version,
            to_version,
            package=package,
            catalog=catalog,
            manifest=manifest,
            corpus=corpus,
            rename_hints=load_rename_hints(hints) if hints else [],
        )
    except Exception as e:
        _handle_cli_error(e)
        return

    if format == "json":
        _emit_json(report.model_dump(mode="json"), output)
        return

    summary = report.summary
    console.print(
        f"Found {summary['changes']} changes: "
        f"[red]{summary['by_severity']['critical']} critical[/red], "
        f"{summary['by_severity']['major']} major, "
        f"{summary['by_severity']['minor']} minor, "
        f"{summary['by_severity']['deprecation']} deprecations"
    )
    _print_plan(report.plan)
    for error in report.errors:
        stderr_console.print(f"[red]Error:[/red] {error}")


@app.command()
def resolve(
    ctx: typer.Context,
    manifest: Annotated[
        Path,
        typer.Argument(help="Dependency manifest or package-lock.json.", exists=True, dir_okay=False),
    ],
    include_dev: Annotated[bool, typer.Option("--dev/--no-dev", help="Include dev dependencies.")] = True,
    format: FormatOption = "table",
    output: OutputOption = None,
) -> None:
    """Resolve dependency-version ranges and report conflicts."""
    from surfaceshift.core.pipeline import MigrationEngine

    _check_format(format)
    try:
        result = MigrationEngine(_load_config(ctx)).resolve(manifest, include_dev=include_dev)
    except Exception as e:
        _handle_cli_error(e)
        return

    if format == "json":
        _emit_json(result.model_dump(mode="json"), output)
    else:
        table = Table(title="Selected versions")
        table.add_column("Package", style="cyan")
        table.add_column("Version", style="green")
        for package, version in sorted(result.selected_versions.items()):
            table.add_row(package, version if version is not None else "[red]conflict[/red]")
        console.print(table)
        _print_resolution(result)

    if result.conflicts:
        raise typer.Exit(code=2)


@app.command()
def codemod(
    ctx: typer.Context,
    old: OldSource,
    new: NewSource,
    target: Annotated[
        Path,
        typer.Argument(help="Consumer source directory (or file) to rewrite.", exists=True),
    ],
    catalog: Annotated[
        Path,
        typer.Option("--catalog", help="Rewrite-rule catalog (YAML/JSON).", exists=True, dir_okay=False),
    ],
    from_version: FromVersion = "old",
    to_version: ToVersion = "new",
    package: Annotated[str, typer.Option("--package", "-p", help="Package name.")] = "",
    hints: HintsOption = None,
    apply: Annotated[bool, typer.Option("--apply", help="Rewrite files instead of printing diffs.")] = False,
    format: FormatOption = "table",
    output: OutputOption = None,
) -> None:
    """Preview (default) or apply the generated transformations."""
    from surfaceshift.core.pipeline import MigrationEngine, load_rename_hints
    from surfaceshift.planning.migration_planner import MigrationPlanner
    from surfaceshift.transforms.codemod import CodemodRunner

    _check_format(format)
    try:
        engine = MigrationEngine(_load_config(ctx))
        report = engine.run(
            old,
            new,
            from_version,
            to_version,
            package=package,
            catalog=catalog,
            rename_hints=load_rename_hints(hints) if hints else [],
        )
        runner = CodemodRunner(
            report.generation.transformations,
            max_workers=engine.config.corpus.max_workers,
            exclude_patterns=engine.config.corpus.exclude_patterns,
        )
        preview = runner.dry_run(target)
        result = runner.apply(target, preview.expectations()) if apply else preview
    except Exception as e:
        _handle_cli_error(e)
        return

    migration_plan = MigrationPlanner().demote(report.plan, result.failed_transformation_ids())

    if format == "json":
        _emit_json(
            {
                "applied": result.applied,
                "files_scanned": result.files_scanned,
                "diffs": result.diffs(),
                "failures": [vars(failure) for failure in result.failures],
                "plan": migration_plan.model_dump(mode="json"),
            },
            output,
        )
        return

    if not apply:
        for diff_text in result.diffs().values():
            console.print(diff_text, markup=False, highlight=False)
    verb = "Rewrote" if apply else "Would rewrite"
    console.print(f"{verb} {len(result.changed_files)} of {result.files_scanned} files")
    for failure in result.failures:
        stderr_console.print(f"[red]Failed:[/red] {failure.reason}")
    if migration_plan.manual_only:
        console.print(f"{len({m.change_id for m in migration_plan.manual_only})} changes need manual migration")


@config_app.command("init")
def config_init(
    path: Annotated[
        Path,
        typer.Argument(
            help="Directory to create configuration file in.",
        ),
    ] = Path(),
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing configuration file.",
        ),
    ] = False,
) -> None:
    """Initialize a new configuration file."""
    config_path = path / CONFIG_FILENAMES[0]

    if config_path.exists() and not force:
        console.print(f"[yellow]Configuration file already exists: {config_path}[/yellow]")
        console.print("Use --force to overwrite.")
        raise typer.Exit(code=1)

    config_path.write_text(generate_example_config())
    console.print(f"Created configuration file: {config_path}")


@config_app.command("validate")
def config_validate(
    config: Annotated[
        Path,
        typer.Argument(
            help="Path to configuration file to validate.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
) -> None:
    """Validate a configuration file."""
    console.print(f"Validating configuration file: {config}...")

    try:
        load_config(config)
    except Exception as e:
        _handle_cli_error(e)
        return

    console.print("[green]Configuration is valid.[/green]")


@config_app.command("show")
def config_show(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
) -> None:
    """Show the effective configuration."""
    config_path = config or find_config_file()
    if config_path is None:
        console.print("[yellow]No configuration file found; showing defaults.[/yellow]")
        console.print("Run 'surfaceshift config init' to create one.")
    else:
        console.print(f"Configuration file: {config_path}\n")

    try:
        data = load_config(config_path).model_dump(mode="json")
    except Exception as e:
        _handle_cli_error(e)
        return

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    def flatten_dict(d: dict, prefix: str = "") -> list:
        items = []
        for key, value in d.items():
            full_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                items.extend(flatten_dict(value, full_key))
            elif isinstance(value, list):
                items.append((full_key, ", ".join(str(v) for v in value) or "(empty)"))
            else:
                items.append((full_key, str(value)))
        return items

    for key, value in flatten_dict(data):
        table.add_row(key, value)

    console.print(table)


if __name__ == "__main__":
    app()

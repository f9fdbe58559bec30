"""CLI for the metricgraph agent.

Usage:
    metricgraph schema --models myapp.models:Base --database-url sqlite:///app.db
    metricgraph metrics instructions.yaml --models myapp.models:Base
    metricgraph path LineItem Customer --snapshot snapshot.yaml
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.table import Table as RichTable
from sqlalchemy import create_engine

from metricgraph.core.config import get_settings
from metricgraph.core.logging import configure_logging
from metricgraph.entities.provider import (
    MetadataLoadError,
    MetadataProvider,
    SQLAlchemyMetadataProvider,
    StaticMetadataProvider,
    load_registry,
)
from metricgraph.query.execution import SQLAlchemyQueryExecutor
from metricgraph.service import compute_metrics, describe_schema, find_join_path

app = typer.Typer(
    name="metricgraph",
    help="Entity relationship graph and metric query planning.",
    no_args_is_help=True,
)
console = Console()

ModelsOption = Annotated[
    str | None,
    typer.Option(
        "--models",
        "-m",
        help="Declarative base or registry as 'module:attribute' (default: METRICGRAPH_MODELS)",
    ),
]
DatabaseUrlOption = Annotated[
    str | None,
    typer.Option(
        "--database-url",
        "-d",
        help="SQLAlchemy URL (default: METRICGRAPH_DATABASE_URL)",
    ),
]
SnapshotOption = Annotated[
    Path | None,
    typer.Option(
        "--snapshot",
        "-s",
        help="JSON/YAML metadata snapshot used instead of a model registry (metadata only)",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Print raw JSON")]


@app.callback()
def main(
    debug: Annotated[bool, typer.Option("--debug", help="Verbose logging")] = False,
) -> None:
    settings = get_settings()
    level = "DEBUG" if debug else settings.effective_log_level
    configure_logging(log_level=level, log_format=settings.log_format)


def _provider(
    models: str | None, database_url: str | None, snapshot: Path | None
) -> MetadataProvider:
    settings = get_settings()
    try:
        if snapshot is not None:
            return StaticMetadataProvider.from_file(snapshot)
        import_path = models or settings.models
        if not import_path:
            console.print("[red]Pass --models or --snapshot (or set METRICGRAPH_MODELS)[/red]")
            raise typer.Exit(2)
        engine = create_engine(database_url or settings.database_url)
        return SQLAlchemyMetadataProvider(load_registry(import_path), engine)
    except MetadataLoadError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def _print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


@app.command()
def schema(
    models: ModelsOption = None,
    database_url: DatabaseUrlOption = None,
    snapshot: SnapshotOption = None,
    as_json: JsonOption = False,
) -> None:
    """List entities by importance with their associations."""
    result = describe_schema(_provider(models, database_url, snapshot))
    if not result.success or result.value is None:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(1)

    response = result.value
    if as_json:
        _print_json(response.model_dump(mode="json"))
        return

    for warning in result.warnings:
        console.print(f"[yellow]{warning}[/yellow]")

    table = RichTable(show_header=True, header_style="bold")
    table.add_column("Entity")
    table.add_column("Table")
    table.add_column("Rank", justify="right")
    table.add_column("Associations")

    for entity in response.entities:
        associations = ", ".join(
            f"{a.name} ({a.kind}{' -> ' + a.target_entity if a.target_entity else ''})"
            for a in entity.associations
        )
        rank = f"{entity.rank:.4f}" if entity.rank is not None else "-"
        table.add_row(entity.name, entity.table_name, rank, associations)

    console.print(table)
    if response.schema_version:
        console.print(f"Schema version: {response.schema_version}")


@app.command()
def metrics(
    instructions_file: Annotated[
        Path,
        typer.Argument(
            help="JSON/YAML list of metric instructions",
            exists=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    models: ModelsOption = None,
    database_url: DatabaseUrlOption = None,
    snapshot: SnapshotOption = None,
    timeout_ms: Annotated[
        int | None,
        typer.Option("--timeout-ms", help="Per-query time bound in milliseconds"),
    ] = None,
    as_json: JsonOption = False,
) -> None:
    """Compile and run metric instructions."""
    settings = get_settings()
    url_configured = database_url is not None or "database_url" in settings.model_fields_set
    if snapshot is not None and not url_configured:
        console.print(
            "[red]--snapshot only replaces the metadata; pass --database-url "
            "(or set METRICGRAPH_DATABASE_URL) for the queries[/red]"
        )
        raise typer.Exit(2)
    try:
        instructions = yaml.safe_load(instructions_file.read_text())
    except yaml.YAMLError as e:
        console.print(f"[red]Invalid instructions file: {e}[/red]")
        raise typer.Exit(1) from e
    if isinstance(instructions, dict):
        instructions = instructions.get("instructions")
    if not isinstance(instructions, list):
        console.print("[red]Instructions file must contain a list of instructions[/red]")
        raise typer.Exit(1)

    engine = create_engine(database_url or settings.database_url)
    executor = SQLAlchemyQueryExecutor(engine, timeout_ms or settings.statement_timeout_ms)
    result = compute_metrics(_provider(models, database_url, snapshot), executor, instructions)
    if not result.success or result.value is None:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(1)

    if as_json:
        _print_json(result.value.model_dump(mode="json"))
        return

    for metric in result.value.results:
        if metric.error:
            console.print(
                f"[red]{metric.metric_configuration_id}: {metric.error}[/red] {metric.message}"
            )
            continue
        console.print(f"[cyan]{metric.metric_configuration_id}[/cyan]")
        if not metric.rows:
            console.print("  (no rows)")
            continue
        table = RichTable(show_header=True, header_style="bold")
        for key in metric.rows[0]:
            table.add_column(str(key))
        for row in metric.rows:
            table.add_row(*(str(v) for v in row.values()))
        console.print(table)


@app.command()
def path(
    source: Annotated[str, typer.Argument(help="Counted entity")],
    pivot: Annotated[str, typer.Argument(help="Pivot entity")],
    models: ModelsOption = None,
    database_url: DatabaseUrlOption = None,
    snapshot: SnapshotOption = None,
) -> None:
    """Show the join path from an entity to a pivot."""
    result = find_join_path(_provider(models, database_url, snapshot), source, pivot)
    if not result.success or result.value is None:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(1)

    if not result.value:
        console.print(f"{source} is {pivot} (no joins)")
        return
    console.print(" -> ".join([source, *result.value]))


if __name__ == "__main__":
    app()

"""
QueryMesh CLI

Command-line interface for asking questions across registered data sources.

Usage:
    querymesh ask "How many donations last month?" --workspace ws_charity
    querymesh ask "..." --workspace ws_charity --sources sources.yaml --json
    querymesh sources --workspace ws_charity        # List registered sources
    querymesh keygen                                # Print a new credentials key
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from querymesh.config import get_settings
from querymesh.models.query import Query
from querymesh.models.response import ResponseEnvelope
from querymesh.pipeline import create_pipeline
from querymesh.services.encryption import FernetCredentialCipher
from querymesh.services.registry import InMemorySourceRegistry

console = Console()

DEFAULT_SOURCES_FILE = "sources.yaml"


def configure_cli_logging(verbose: bool) -> None:
    if verbose:
        return
    for logger_name in ("querymesh", "httpx", "openai", "anthropic", "asyncio"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def load_registry(path: str) -> InMemorySourceRegistry:
    sources_path = Path(path)
    if not sources_path.exists():
        raise click.ClickException(f"Sources file not found: {sources_path}")
    cipher = FernetCredentialCipher(get_settings().credentials_key)
    return InMemorySourceRegistry.from_yaml(sources_path, cipher)


# ============================================================================
# Output Formatting
# ============================================================================


def format_envelope(envelope: ResponseEnvelope, show_metrics: bool) -> None:
    """Render a response envelope to the console."""
    console.print(
        Panel(
            Markdown(envelope.content),
            title=f"[bold green]Answer[/bold green] [dim]({envelope.status})[/dim]",
        )
    )

    for sql in envelope.sql_queries:
        console.print(Panel(sql, title="SQL", border_style="cyan", highlight=True))

    visualization = envelope.visualization
    if visualization is not None and visualization.spec is not None:
        _print_chart_data(visualization.spec.title, visualization.spec.data)

    follow_ups = envelope.metadata.follow_up_questions
    if follow_ups:
        console.print("[bold]You might also ask:[/bold]")
        for question in follow_ups:
            console.print(f"- {question}")
        console.print()

    if show_metrics:
        metrics = Table(show_header=False, box=None)
        metrics.add_row("Latency:", f"{envelope.processing_time_ms:.0f}ms")
        metrics.add_row("Sources:", ", ".join(envelope.metadata.data_sources_used) or "-")
        metrics.add_row("Tokens:", f"{envelope.tokens_used} ({envelope.tokens_rounded} billed)")
        metrics.add_row("Credits:", str(envelope.credits_used))
        metrics.add_row("Confidence:", f"{envelope.metadata.confidence_score:.2f}")
        console.print(metrics)


def _print_chart_data(title: str, rows: list[dict[str, Any]]) -> None:
    if not rows:
        return
    table = Table(title=title or None, show_header=True, header_style="bold cyan")
    columns = list(rows[0].keys())
    for column in columns:
        table.add_column(column)
    for row in rows[:20]:
        table.add_row(*[str(row.get(column, "")) for column in columns])
    console.print(table)


# ============================================================================
# Commands
# ============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="QueryMesh")
@click.option("--verbose", is_flag=True, help="Show pipeline logs.")
def cli(verbose: bool):
    """QueryMesh - ask questions across your connected data sources."""
    configure_cli_logging(verbose)


@cli.command()
@click.argument("question")
@click.option("--workspace", "-w", required=True, help="Workspace that owns the sources.")
@click.option(
    "--sources",
    "sources_file",
    default=DEFAULT_SOURCES_FILE,
    show_default=True,
    help="YAML file describing the workspace's data sources.",
)
@click.option("--agent", "agent_id", default=None, help="Agent answering the question.")
@click.option("--json", "as_json", is_flag=True, help="Print the raw response envelope.")
@click.option("--metrics", is_flag=True, help="Show latency, tokens and credits.")
def ask(
    question: str,
    workspace: str,
    sources_file: str,
    agent_id: str | None,
    as_json: bool,
    metrics: bool,
):
    """Ask a single question and exit."""
    registry = load_registry(sources_file)
    query = Query(text=question, workspace_id=workspace, agent_id=agent_id)

    async def run_query() -> ResponseEnvelope:
        pipeline = create_pipeline(registry=registry)
        return await pipeline.run(query)

    try:
        if as_json:
            envelope = asyncio.run(run_query())
        else:
            with console.status("[cyan]Processing query...[/cyan]", spinner="dots"):
                envelope = asyncio.run(run_query())
    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(envelope.model_dump(mode="json"), indent=2))
    else:
        format_envelope(envelope, show_metrics=metrics)

    if envelope.status == "failed":
        sys.exit(1)


@cli.command()
@click.option("--workspace", "-w", required=True, help="Workspace to list.")
@click.option(
    "--sources",
    "sources_file",
    default=DEFAULT_SOURCES_FILE,
    show_default=True,
    help="YAML file describing the workspace's data sources.",
)
def sources(workspace: str, sources_file: str):
    """List the data sources registered to a workspace."""
    registry = load_registry(sources_file)
    registered = asyncio.run(registry.list_sources(workspace))
    if not registered:
        console.print(f"[yellow]No sources registered for {workspace}.[/yellow]")
        return

    table = Table(title=f"Sources in {workspace}", show_header=True, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Tables")
    for source in registered:
        schema = source.captured_schema
        tables = ", ".join(schema.table_names) if schema is not None else ""
        table.add_row(source.id, source.name, source.kind, source.status, tables)
    console.print(table)


@cli.command()
def keygen():
    """Print a new key for QUERYMESH_CREDENTIALS_KEY."""
    click.echo(FernetCredentialCipher.generate_key())


# ============================================================================
# Entry Point
# ============================================================================


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

"""Command line interface for vaultsearch."""

from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from vaultsearch.config import ConfigError, Limits
from vaultsearch.context import VaultContext, open_vault
from vaultsearch.tools import handle_tool_call

console = Console()
err_console = Console(stderr=True)
app = typer.Typer(help="vaultsearch - read-only semantic search over Smart Connections vaults")

VAULT_OPTION = typer.Option(
    None, "--vault", envvar="VAULT_PATH", help="Vault root directory (or set VAULT_PATH)"
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _open(vault: Optional[str], *, strict_model: bool = False, max_content_bytes: int | None = None) -> VaultContext:
    limits = Limits(max_content_bytes=max_content_bytes) if max_content_bytes else None
    try:
        return open_vault(vault, limits=limits, strict_model=strict_model)
    except ConfigError as exc:
        err_console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


def _call(ctx: VaultContext, name: str, arguments: dict) -> dict:
    result = handle_tool_call(name, arguments, ctx)
    if result.is_error:
        err_console.print(f"[red]{escape(result.error)}[/red]")
        raise typer.Exit(code=1)
    return result.payload or {}


@app.command()
def serve(
    vault: Optional[str] = VAULT_OPTION,
    strict_model: bool = typer.Option(
        False, "--strict-model", help="Refuse to start when the embedding model is unknown"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Serve the vault tools to an MCP client over stdio."""
    _setup_logging(verbose)
    ctx = _open(vault, strict_model=strict_model)

    from vaultsearch.server import run_stdio

    run_stdio(ctx)


@app.command()
def info(
    vault: Optional[str] = VAULT_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the embedding model used by the vault."""
    _setup_logging(verbose)
    ctx = _open(vault)
    payload = _call(ctx, "get_model_info", {})

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Model")
    table.add_column("Dimensions")
    table.add_column("Adapter")
    table.add_column("Indexed notes")
    table.add_row(payload["modelKey"], str(payload["dimensions"]), payload["adapter"], str(len(ctx.index)))
    console.print(table)


@app.command(name="list")
def list_notes(
    pattern: Optional[str] = typer.Argument(None, help="Path prefix filter"),
    vault: Optional[str] = VAULT_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """List indexed notes."""
    _setup_logging(verbose)
    ctx = _open(vault)
    payload = _call(ctx, "list_indexed", {"pattern": pattern})

    if not payload["notes"]:
        console.print("[yellow]No indexed notes found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Note")
    table.add_column("Title")
    for note in payload["notes"]:
        table.add_row(escape(note["path"]), escape(note["title"]))
    console.print(table)
    console.print(f"{payload['count']} notes")


@app.command()
def similar(
    note: str = typer.Argument(..., help="Note path relative to the vault root"),
    vault: Optional[str] = VAULT_OPTION,
    limit: int = typer.Option(10, help="Number of results to display"),
    threshold: float = typer.Option(0.3, help="Minimum similarity score"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Find notes similar to an indexed note."""
    _setup_logging(verbose)
    ctx = _open(vault)
    payload = _call(ctx, "search_similar", {"notePath": note, "limit": limit, "threshold": threshold})

    if not payload["results"]:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Note")
    table.add_column("Title")
    for hit in payload["results"]:
        table.add_row(f"{hit['score']:.3f}", escape(hit["path"]), escape(hit["title"]))
    console.print(table)


@app.command()
def show(
    note: str = typer.Argument(..., help="Note path relative to the vault root"),
    vault: Optional[str] = VAULT_OPTION,
    max_bytes: Optional[int] = typer.Option(None, "--max-bytes", min=1, help="Content size cap in bytes"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Print the content of a note."""
    _setup_logging(verbose)
    ctx = _open(vault, max_content_bytes=max_bytes)
    payload = _call(ctx, "get_note", {"notePath": note})
    console.print(f"[bold]{escape(payload['title'])}[/bold]")
    console.print(payload["content"], markup=False, highlight=False)


if __name__ == "__main__":  # pragma: no cover
    app()

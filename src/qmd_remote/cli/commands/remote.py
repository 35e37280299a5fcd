"""Command module for managing remote inference endpoints."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from qmd_remote.cli.app import app
from qmd_remote.config import ConfigStore, RemoteLLMConfig, get_settings
from qmd_remote.llm.http import build_timeout
from qmd_remote.llm.remote import RemoteLLM

console = Console()

remote_app = typer.Typer(help="Configure and check remote embed/rerank/generate servers")
app.add_typer(remote_app, name="remote")


def _store() -> ConfigStore:
    return ConfigStore(get_settings().config_dir)


@remote_app.command("set")
def set_remote(
    embed_url: Optional[str] = typer.Option(None, "--embed-url", help="Embedding server base URL"),
    rerank_url: Optional[str] = typer.Option(None, "--rerank-url", help="Rerank server base URL"),
    generate_url: Optional[str] = typer.Option(
        None, "--generate-url", help="Completion server base URL"
    ),
) -> None:
    """Save endpoint URLs. Options left out keep their saved value."""
    if not (embed_url or rerank_url or generate_url):
        console.print("[red]Error: pass at least one of --embed-url, --rerank-url, --generate-url[/red]")
        raise typer.Exit(1)

    store = _store()
    updated = RemoteLLMConfig(
        embed_url=embed_url, rerank_url=rerank_url, generate_url=generate_url
    ).merged_over(store.load())
    store.save(updated)
    console.print(f"[green]Remote config saved to {store.config_file}[/green]")


@remote_app.command("show")
def show_remote() -> None:
    """Show saved endpoint URLs."""
    config = _store().load()

    table = Table(title="Remote Endpoints")
    table.add_column("Capability", style="cyan")
    table.add_column("URL", style="green")
    table.add_row("embed", config.embed_url or "-")
    table.add_row("rerank", config.rerank_url or "-")
    table.add_row("generate", config.generate_url or "-")
    console.print(table)


@remote_app.command("clear")
def clear_remote() -> None:
    """Remove saved endpoint URLs, leaving the rest of the config file alone."""
    _store().clear()
    console.print("[green]Remote config cleared[/green]")


@remote_app.command("health")
def remote_health() -> None:
    """Check whether each configured endpoint answers on /health."""
    settings = get_settings()
    llm = RemoteLLM(
        settings.remote_overrides(),
        store=_store(),
        timeout=build_timeout(settings.connect_timeout, settings.request_timeout),
    )
    status = asyncio.run(llm.check_health())
    config = llm.get_config()

    table = Table(title="Remote Endpoint Health")
    table.add_column("Capability", style="cyan")
    table.add_column("URL", style="green")
    table.add_column("Status")

    unhealthy = False
    for name, url, healthy in (
        ("embed", config.embed_url, status.embed),
        ("rerank", config.rerank_url, status.rerank),
        ("generate", config.generate_url, status.generate),
    ):
        if not url:
            table.add_row(name, "-", "[dim]not configured[/dim]")
        elif healthy:
            table.add_row(name, url, "[green]ok[/green]")
        else:
            unhealthy = True
            table.add_row(name, url, "[red]unreachable[/red]")

    console.print(table)
    if unhealthy:
        raise typer.Exit(1)

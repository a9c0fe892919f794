"""Command-line interface for renewing the text and images of HTML documents."""

import asyncio
import contextlib
import json
import logging
import os
import signal
from pathlib import Path

import click
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from doc_renew.budget import GenerationBudget
from doc_renew.config import CONFIG_DIR, ENV_FILE, RenewConfig
from doc_renew.errors import ParseError
from doc_renew.parser import load_html
from doc_renew.pipeline import DocumentPipeline, RunSummary, discover_documents, renew_documents
from doc_renew.walker import count_candidates

console = Console()


def _setup_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG with --verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    # Keep HTTP client chatter out of --verbose output.
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


@click.group()
def cli():
    """Doc Renew: rewrite the text and images of HTML documents with AI."""
    if ENV_FILE.exists():
        load_dotenv(ENV_FILE, override=False)


@cli.group()
def config():
    """Manage Doc Renew configuration."""


def _read_env_entries() -> dict[str, str]:
    """Return the KEY=VALUE pairs stored in the config file, skipping comments."""
    entries: dict[str, str] = {}
    if not ENV_FILE.exists():
        return entries
    for line in ENV_FILE.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, value = line.split("=", 1)
            entries[key.strip()] = value.strip()
    return entries


def _mask(value: str) -> str:
    return value[:4] + "****" if len(value) > 4 else "****"


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key, value):
    """Store a KEY=VALUE pair in ~/.doc_renew/.env."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    entries = _read_env_entries()
    entries[key] = value
    ENV_FILE.write_text("".join(f"{k}={v}\n" for k, v in entries.items()))
    ENV_FILE.chmod(0o600)
    console.print(f"[green]✓[/green] Saved {key} to {ENV_FILE}")


@config.command("show")
def config_show():
    """Print stored config keys with masked values."""
    if not ENV_FILE.exists():
        console.print("[dim]No config file found.[/dim]")
        return

    table = Table(title="Config", show_header=True, border_style="dim")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in _read_env_entries().items():
        table.add_row(key, _mask(value))
    console.print(table)


@cli.command()
@click.argument("workspace", default=".", type=click.Path(exists=True, file_okay=False))
@click.option("--include", default=None, help="Glob selecting documents. [default: **/*.html]")
def scan(workspace, include):
    """List documents in WORKSPACE and how many nodes each would renew."""
    workspace = Path(workspace)
    try:
        config = RenewConfig.from_env(include=include)
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    paths = discover_documents(workspace, include=config.include, exclude=config.exclude)
    if not paths:
        console.print("[dim]No documents found.[/dim]")
        return

    table = Table(title="Documents", border_style="dim")
    table.add_column("Document", style="cyan")
    table.add_column("Text", justify="right")
    table.add_column("Images", justify="right")
    table.add_column("External images", justify="right")

    for path in paths:
        name = str(path.relative_to(workspace))
        try:
            counts = count_candidates(load_html(path.read_bytes().decode("utf-8")), config.image_tags)
        except (ParseError, UnicodeDecodeError) as e:
            table.add_row(name, "[red]error[/red]", "", str(e))
            continue
        table.add_row(name, str(counts["text"]), str(counts["image"]), str(counts["external"]))

    console.print(table)


async def _run(paths, config: RenewConfig, workspace: Path, budget: GenerationBudget) -> RunSummary:
    """Run the pipeline with Ctrl-C wired to the cancellation event."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        installed = True
    try:
        pipeline = DocumentPipeline.from_config(config, workspace, cancel_event=cancel_event)
        return await renew_documents(paths, pipeline, budget)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _print_summary(summary: RunSummary, config: RenewConfig) -> None:
    table = Table(title="Renew Summary", border_style="dim")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Model", config.model)
    table.add_row("Documents processed", str(summary.processed))
    table.add_row("Documents changed", str(summary.changed))
    table.add_row("Documents failed", str(summary.failed))
    table.add_row("Text nodes replaced", str(summary.totals.text_replaced))
    table.add_row("Images replaced", str(summary.totals.images_replaced))
    for kind, state in summary.budget.items():
        status = "exhausted" if state["exhausted"] else "available"
        table.add_row(f"{kind.capitalize()} budget", f"{state['used']}/{state['limit']} ({status})")
    table.add_row("Cancelled", "yes" if summary.cancelled else "no")
    table.add_row("Total time", f"{round(summary.elapsed_ms, 2)}ms")
    console.print(table)

    if summary.totals.skipped:
        skipped = Table(title="Skipped Nodes", border_style="dim")
        skipped.add_column("Reason", style="cyan")
        skipped.add_column("Count", justify="right")
        for reason, count in sorted(summary.totals.skipped.items()):
            skipped.add_row(reason, str(count))
        console.print(skipped)

    for doc in summary.documents:
        if doc["status"] == "failed":
            console.print(f"[red]✗[/red] {doc['path']}: {doc['error']}")


@cli.command()
@click.argument("workspace", default=".", type=click.Path(exists=True, file_okay=False))
@click.option("--text-limit", type=click.IntRange(min=0), default=None, help="Maximum text nodes to rephrase. [default: 30]")
@click.option("--image-limit", type=click.IntRange(min=0), default=None, help="Maximum images to regenerate. [default: 0]")
@click.option("--model", default=None, help="Chat model used to rephrase text. [default: gpt-4o-mini]")
@click.option("--image-model", default=None, help="Image model used for variations. [default: dall-e-2]")
@click.option("--include", default=None, help="Glob selecting documents. [default: **/*.html]")
@click.option("--summary-file", default=None, type=click.Path(dir_okay=False), help="Write the run summary as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Log every rewrite.")
def redesign(workspace, text_limit, image_limit, model, image_model, include, summary_file, verbose):
    """Rewrite the text (and optionally images) of every document in WORKSPACE."""
    _setup_logging(verbose)
    workspace = Path(workspace).resolve()

    try:
        config = RenewConfig.from_env(
            text_limit=text_limit, image_limit=image_limit,
            model=model, image_model=image_model, include=include,
        )
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    if not os.environ.get("OPENAI_API_KEY"):
        raise click.ClickException(
            "OPENAI_API_KEY is not set. Add it with `doc-renew config set OPENAI_API_KEY <key>`."
        )

    paths = discover_documents(workspace, include=config.include, exclude=config.exclude)
    if not paths:
        console.print("[dim]No documents found.[/dim]")
        return

    budget = GenerationBudget(text_limit=config.text_limit, image_limit=config.image_limit)
    with console.status(f"Renew: redesigning {len(paths)} document(s)...", spinner="dots"):
        summary = asyncio.run(_run(paths, config, workspace, budget))

    if summary_file:
        Path(summary_file).write_text(json.dumps(summary.to_dict(), indent=2))

    _print_summary(summary, config)
    if summary.failed:
        raise SystemExit(1)
    console.print("\n[green]✓[/green] Renew: redesign is complete")

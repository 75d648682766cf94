"""CLI entry points: `ghostcell serve`, `inspect`, `replay` and `add-token`."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ghostcell.completion.client import NOTICE_MESSAGES, CompletionClient, EnvCredentials, Notice
from ghostcell.completion.pipeline import CompletionPipeline
from ghostcell.completion.session import CompletionSession
from ghostcell.config import load_config, save_config
from ghostcell.core import StructureError
from ghostcell.page.adapters import adapter_for, detect_variant
from ghostcell.page.dom import HtmlDocument
from ghostcell.page.model import NotebookSnapshot
from ghostcell.page.observer import Observation, ObservationLoop
from ghostcell.page.replay import SnapshotReplay

app = typer.Typer(name="ghostcell", help="Inline code completion for web notebooks.")
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


class ConsoleNotifier:
    """Prints pipeline notices to the terminal."""

    _STYLES = {
        Notice.SIGN_IN_REQUIRED: "yellow",
        Notice.RATE_LIMITED: "cyan",
        Notice.UNEXPECTED_ERROR: "red",
    }

    def notify(self, notice: Notice) -> None:
        console.print(f"[{self._STYLES[notice]}]{NOTICE_MESSAGES[notice]}[/{self._STYLES[notice]}]")


def _print_observation(observation: Observation) -> None:
    t = Table(title=f"{observation.variant} notebook", show_lines=False)
    t.add_column("#", justify="right")
    t.add_column("Kind", style="cyan")
    t.add_column("Text")
    for cell in observation.snapshot.cells:
        t.add_row(str(cell.index), cell.kind, cell.text)
    console.print(t)

    caret = observation.caret
    if caret is None:
        console.print("[dim]No caret[/dim]")
    else:
        console.print(
            f"Caret: cell {caret.focused_cell_index} ({caret.focused_cell_kind}), "
            f"line {caret.line}, offset {caret.offset}, at line end: {caret.is_at_line_end}"
        )


def _print_completion(completion: str | None) -> None:
    if completion is not None:
        console.print(f"[green]Completion:[/green] {completion!r}")


@app.command()
def inspect(
    snapshot: Path = typer.Argument(help="HTML snapshot of a notebook page", exists=True, dir_okay=False),
    url: str = typer.Option("", "--url", "-u", help="URL the snapshot was taken from"),
) -> None:
    """Print the cells and caret extracted from one page snapshot."""
    document = HtmlDocument(snapshot.read_text(encoding="utf-8"), url=url)
    variant = detect_variant(document)
    if variant is None:
        console.print("[red]Not a recognised notebook page.[/red] Pass [bold]--url[/bold] for Colab snapshots.")
        raise typer.Exit(1)

    adapter = adapter_for(variant)
    try:
        cells = adapter.extract_cells(document)
        caret = adapter.extract_caret(document, cells)
    except StructureError as e:
        console.print(f"[red]Unrecognised {variant} markup:[/red] {e}")
        raise typer.Exit(1) from e

    _print_observation(Observation(variant=variant, snapshot=NotebookSnapshot(cells=tuple(cells)), caret=caret))


@app.command()
def replay(
    snapshots: list[Path] = typer.Argument(help="HTML snapshots, in order", exists=True, dir_okay=False),
    url: str = typer.Option("", "--url", "-u", help="URL the snapshots were taken from"),
    endpoint: str | None = typer.Option(None, "--endpoint", "-e", help="Completion endpoint URL"),
    delay: float = typer.Option(0.0, "--delay", "-d", help="Seconds between snapshots"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Replay page snapshots through observation, prompting and completion."""
    _configure_logging(verbose)
    asyncio.run(_replay(snapshots, url, endpoint, delay))


async def _replay(snapshots: list[Path], url: str, endpoint: str | None, delay: float) -> None:
    config = load_config().client
    source = SnapshotReplay(snapshots, url=url, delay_seconds=delay)
    loop = ObservationLoop(source)

    async with CompletionClient(endpoint or config.endpoint_url, timeout_seconds=config.timeout_seconds) as client:
        pipeline = CompletionPipeline(
            client,
            EnvCredentials(config.token_env),
            ConsoleNotifier(),
            debounce_seconds=config.debounce_ms / 1000,
        )
        session = CompletionSession(loop, pipeline)
        session.start()
        loop.subscribe(_print_observation)
        loop.subscribe(lambda _: console.print(f"[bold]Prompt:[/bold] {pipeline.prompt!r}"))
        pipeline.subscribe(_print_completion)

        try:
            await loop.run(source)
        except StructureError as e:
            console.print(f"[red]Unrecognised notebook markup, stopping:[/red] {e}")
            raise typer.Exit(1) from e
        finally:
            await pipeline.drain()
            session.stop()

    if loop.variant is None:
        console.print("[yellow]No notebook detected in any snapshot.[/yellow]")
    console.print(
        f"[dim]{len(snapshots)} snapshots, {pipeline.requests_issued} requests, "
        f"{pipeline.short_circuits} short-circuited[/dim]"
    )


@app.command("add-token")
def add_token(
    token: str = typer.Argument(help="Bearer token clients will send"),
    user: str = typer.Argument(help="User id the token belongs to"),
) -> None:
    """Register a bearer token for the completion proxy."""
    config = load_config()
    config.proxy.tokens[token] = user
    save_config(config)
    console.print(f"[green]Token registered for [bold]{user}[/bold].[/green]")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to serve on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
) -> None:
    """Start the completion proxy."""
    import uvicorn

    _configure_logging(False)

    config = load_config()
    if not config.proxy.tokens:
        console.print("[yellow]No tokens registered; every request will be rejected. Run [bold]ghostcell add-token[/bold].[/yellow]")

    console.print(f"[bold]Starting ghostcell proxy on {host}:{port}...[/bold]")
    uvicorn.run("ghostcell.server:app", host=host, port=port, reload=False)


def main() -> None:
    app()

"""Command-line interface for Homestock."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Optional

import typer
import uvicorn

from homestock.config import get_settings
from homestock.db.inventory import list_low_stock
from homestock.errors import HomestockError
from homestock.logging_utils import configure_logging
from homestock.reconcile import ReconciliationEngine, ReconciliationSweeper

app = typer.Typer(help="Homestock household inventory commands.")


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format, [settings.api_token or ""])


def _fail(exc: HomestockError) -> None:
    typer.secho(f"Error: {exc.message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command()
def reconcile(
    entry_id: int = typer.Argument(..., help="Shopping list entry ID to reconcile."),
    user: str = typer.Option(..., "--user", help="Acting household member's user ID."),
    pretty: bool = typer.Option(False, "--pretty", help="Pretty-print output JSON."),
) -> None:
    """
    Merge a bought, added-to-inventory entry into the household inventory.
    """
    _setup_logging()
    try:
        result = ReconciliationEngine.from_settings().reconcile(entry_id, user)
    except HomestockError as exc:
        _fail(exc)
        return
    payload = result.model_dump(mode="json")
    typer.echo(json.dumps(payload, indent=2 if pretty else None, sort_keys=pretty))


@app.command()
def sweep(
    once: bool = typer.Option(True, "--once/--loop", help="Run a single pass, or keep sweeping."),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override poll interval (seconds).",
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Override batch size."),
) -> None:
    """Reconcile ready entries and entries whose processing guard went stale."""

    _setup_logging()
    settings = get_settings()
    sweeper = ReconciliationSweeper(
        engine=ReconciliationEngine.from_settings(),
        poll_interval=poll_interval or settings.reconcile_sweep_interval,
        batch_size=limit or settings.reconcile_sweep_batch_size,
    )

    if once:
        merged = sweeper.poll_once()
        typer.echo(f"Reconciled {merged} entr(ies).")
        return

    typer.echo("Starting reconciliation sweeper. Press Ctrl+C to stop.")
    sweeper.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        typer.echo("Stopping sweeper…")
        sweeper.stop()


@app.command("low-stock")
def low_stock(
    user: str = typer.Option(..., "--user", help="Household member's user ID."),
) -> None:
    """List inventory items below their minimum stock."""

    try:
        items = list_low_stock(user)
    except HomestockError as exc:
        _fail(exc)
        return
    if not items:
        typer.echo("Nothing is running low.")
        return
    for item in items:
        typer.echo(f"{item.id}\t{item.name}\t{item.quantity:g}/{item.min_stock:g} {item.unit}")


async def _serve_with_duration(server: uvicorn.Server, duration: float) -> None:
    """Run the server and shut it down after the specified duration."""

    async def _shutdown() -> None:
        await asyncio.sleep(duration)
        server.should_exit = True

    asyncio.create_task(_shutdown())
    await server.serve()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", envvar="HOMESTOCK_SERVER_HOST"),
    port: int = typer.Option(8000, "--port", envvar="HOMESTOCK_SERVER_PORT"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes."),
    duration: Optional[float] = typer.Option(
        None,
        "--duration",
        envvar="HOMESTOCK_SERVER_DURATION",
        min=0.1,
        help="Stop the server after this many seconds.",
    ),
) -> None:
    """Run the HTTP API with uvicorn."""

    if reload and duration is not None:
        raise typer.BadParameter("--reload cannot be combined with --duration")

    if reload:
        uvicorn.run("homestock.server.app:app", host=host, port=port, reload=True)
        return

    server = uvicorn.Server(uvicorn.Config("homestock.server.app:app", host=host, port=port))
    if duration is not None:
        asyncio.run(_serve_with_duration(server, duration))
        return
    server.run()


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for `python -m homestock`."""
    app(prog_name="homestock", args=argv)


if __name__ == "__main__":
    main()

"""Rain display poller — console front end.

Polls the aggregator and prints the rain view after every update.

Usage:
    python -m services.poller.main            # poll until Ctrl+C
    python -m services.poller.main --once     # one status fetch
    python -m services.poller.main --url http://raspberrypi:4000
"""

from __future__ import annotations

import argparse
import asyncio

import structlog
from rich.console import Console
from rich.table import Table

from services.poller.poller import DisplayPoller
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.models.rain import ViewState

log = structlog.get_logger(__name__)
console = Console()


def render_view(view: ViewState) -> None:
    """Print one view as a rich table."""
    if view.loading:
        console.print("[dim]Loading…[/dim]")
        return

    status = "[blue]Raining[/blue]" if view.is_raining else "[green]Dry[/green]"
    table = Table(title="Rain Monitor", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Status", status)
    table.add_row("Current intensity", f"{view.intensity:g}%")
    table.add_row("Current duration", view.duration)
    table.add_row("Average intensity", f"{view.average_intensity:.1f}%")
    table.add_row("Readings", str(len(view.readings)))
    if view.start_time is not None:
        table.add_row("Started", view.start_time.isoformat(timespec="seconds"))
    if view.prediction is not None:
        table.add_row("Predicted remaining", f"{view.prediction.predicted_remaining_minutes:g} minutes")
        table.add_row("Confidence", view.prediction.confidence)
    console.print(table)


async def _main(url: str, once: bool) -> None:
    settings = get_settings()
    async with DisplayPoller(
        url,
        poll_interval_s=settings.POLL_INTERVAL_S,
        prediction_interval_s=settings.PREDICTION_INTERVAL_S,
        timeout_s=settings.POLLER_HTTP_TIMEOUT_S,
        on_update=render_view,
    ) as poller:
        if once:
            await poller.refresh_once()
            return
        poller.start()
        # Runs until cancelled (Ctrl+C); the context manager tears both tasks down.
        await asyncio.Event().wait()


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Poll the rain aggregator and show the current view")
    parser.add_argument("--url", default=settings.AGGREGATOR_URL, help="aggregator base URL")
    parser.add_argument("--once", action="store_true", help="fetch the status once and exit")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    try:
        asyncio.run(_main(args.url, args.once))
    except KeyboardInterrupt:
        log.info("poller_interrupted")


if __name__ == "__main__":
    main()

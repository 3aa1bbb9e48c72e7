"""
Command line driver.

``run`` keeps a connection open and sends a numbered message at a fixed
interval until reconnection is exhausted, the connection is closed for
good, or ``--count`` messages were sent.
"""

import asyncio
import json
from typing import Optional

import typer
from loguru import logger

from .config import ConfigLoader, SocketOptions
from .events import MessageEvent
from .exceptions import BaseError
from .logger_config import setup_logging
from .manager import ConnectionManager
from .utils import parse_message

cli = typer.Typer(
    name="resocket",
    help="Resilient socket client with reconnection and heartbeats"
)


def _log_message(event: MessageEvent) -> None:
    logger.info(f"Server response: {parse_message(event.data)!r}")


async def drive(
    url: str,
    options: SocketOptions,
    interval: float = 1.0,
    count: Optional[int] = None
) -> int:
    """Send ``client message N`` every ``interval`` seconds.

    Returns:
        Number of messages handed to the manager
    """
    sent = 0
    async with ConnectionManager(url, options) as manager:
        while count is None or sent < count:
            if manager.is_reconnect_exhausted or manager.state.is_terminal:
                logger.info("Connection will not recover, client stops sending")
                break
            sent += 1
            manager.send(f"client message {sent}")
            logger.debug("Sent mock data")
            await asyncio.sleep(interval)
    return sent


@cli.command()
def run(
    url: Optional[str] = typer.Argument(
        None, help="Server address, e.g. ws://localhost:9547/"
    ),
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path (YAML or JSON)"
    ),
    interval: float = typer.Option(
        1.0, "--interval", "-i", help="Seconds between messages"
    ),
    count: Optional[int] = typer.Option(
        None, "--count", "-n", help="Stop after this many messages"
    ),
    max_reconnect: Optional[int] = typer.Option(
        None, "--max-reconnect", help="Maximum reconnect attempts"
    ),
    no_reconnect: bool = typer.Option(
        False, "--no-reconnect", help="Disable automatic reconnection"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    ),
    log_dir: Optional[str] = typer.Option(
        None, "--log-dir", help="Write log files to this directory"
    )
) -> None:
    """Connect and send a message every interval."""
    try:
        settings = ConfigLoader().load_settings(config_file)
        options = settings.options.merged(
            on_message=_log_message,
            max_reconnect_attempts=max_reconnect,
            reconnect_enabled=False if no_reconnect else None,
        )
    except BaseError as e:
        typer.echo(f"Configuration error: {e.message}", err=True)
        raise typer.Exit(1)

    target = url or settings.url
    if not target:
        typer.echo("A server address is required (argument or RESOCKET_URL)", err=True)
        raise typer.Exit(1)

    setup_logging(log_level or settings.log_level, log_dir)
    logger.info(f"Connecting to {target}")

    try:
        sent = asyncio.run(drive(target, options, interval, count))
    except KeyboardInterrupt:
        logger.info("Client interrupted by user")
        return
    except BaseError as e:
        logger.error(f"Client failed: {e.message}")
        raise typer.Exit(1)

    logger.info(f"Client finished after {sent} message(s)")


@cli.command()
def info(
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path (YAML or JSON)"
    )
) -> None:
    """Print the effective client options."""
    try:
        settings = ConfigLoader().load_settings(config_file)
    except BaseError as e:
        typer.echo(f"Configuration error: {e.message}", err=True)
        raise typer.Exit(1)

    data = {"url": settings.url, "log_level": settings.log_level}
    data.update(settings.options.to_dict())
    typer.echo(json.dumps(data, indent=2))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

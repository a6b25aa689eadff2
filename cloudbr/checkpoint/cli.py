# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr-checkpoint - Standalone checkpoint reporting daemon.

Runs the checkpoint loop until SIGINT or SIGTERM. Logs are written as
JSON lines to the file given by --log-file, opened at startup and closed
on shutdown. Any setup or reporting error exits with status 1.
"""

import asyncio
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

import structlog
import typer

from cloudbr import __version__
from cloudbr.checkpoint.api import CheckpointAPI
from cloudbr.checkpoint.reporter import CheckpointSettings, run_checkpoint_loop
from cloudbr.exceptions import CloudBRError

logger = structlog.get_logger()

app = typer.Typer(
    name="cloudbr-checkpoint",
    help="Report backup checkpoints of a cloud cluster to the control plane.",
    add_completion=False,
)


def configure_logging(sink: IO[str], level: int = logging.INFO) -> None:
    """Route structlog output to sink as JSON lines."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sink),
        cache_logger_on_first_use=False,
    )


@contextmanager
def log_sink(sink: IO[str]) -> Iterator[IO[str]]:
    """Send structlog output to sink for the duration of the block, then close it."""
    with sink:
        configure_logging(sink)
        try:
            yield sink
        finally:
            structlog.reset_defaults()


async def _serve(api_url: str, settings: CheckpointSettings) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        async with CheckpointAPI(api_url) as api:
            return await run_checkpoint_loop(api, settings, stop_event)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cloudbr-checkpoint version {__version__}")
        raise typer.Exit()


@app.command()
def run(
    cluster_id: str = typer.Option(
        ...,
        "--cluster-id",
        help="The cluster to report checkpoints for.",
    ),
    auth_key: str = typer.Option(
        ...,
        "--auth-key",
        envvar="CLOUDBR_AUTH_KEY",
        help="The auth key of your account.",
    ),
    checkpoint_interval: float = typer.Option(
        60.0,
        "--checkpoint-interval",
        help="Seconds between checkpoints.",
    ),
    url: str = typer.Option(
        "s3://pcloud2021/backups",
        "--url",
        help="Storage URL reported in each checkpoint.",
    ),
    api_url: str = typer.Option(
        ...,
        "--api-url",
        envvar="CLOUDBR_API_URL",
        help="Base URL of the control plane API.",
    ),
    backup_size: int = typer.Option(
        0,
        "--backup-size",
        help="Backup size reported in each checkpoint.",
    ),
    log_file: Path = typer.Option(
        Path("./log.txt"),
        "--log-file",
        help="File that receives the daemon's JSON logs.",
    ),
    version: bool | None = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Run the checkpoint reporter until interrupted."""
    try:
        settings = CheckpointSettings(
            cluster_id=cluster_id,
            auth_key=auth_key,
            interval=checkpoint_interval,
            url=url,
            backup_size=backup_size,
        )
    except CloudBRError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = log_file.open("a", encoding="utf-8")
    except OSError as e:
        typer.echo(f"Error: cannot open log file {log_file}: {e}", err=True)
        raise typer.Exit(1) from None

    with log_sink(sink):
        try:
            created = asyncio.run(_serve(api_url, settings))
        except CloudBRError as e:
            logger.error("checkpoint_reporter_failed", error=str(e))
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None

    typer.echo(f"Stopped after {created} checkpoint(s).")


def main() -> None:
    app()


if __name__ == "__main__":
    main()

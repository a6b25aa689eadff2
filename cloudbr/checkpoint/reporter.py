# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Checkpoint Reporter - Periodic checkpoint submission loop.

On every tick the loop asks the control plane whether the cluster has
finished setup. Ticks before that are skipped. Once ready, each tick
submits one checkpoint. A stop request always wins over a due tick,
and no checkpoint is submitted after the stop was requested.

Reporting errors are not retried; they end the loop.
"""

import asyncio
import time
from dataclasses import dataclass

import structlog

from cloudbr.checkpoint.api import CheckpointAPI, CreateCheckpointRequest
from cloudbr.exceptions import ConfigurationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CheckpointSettings:
    """What the reporter sends, and how often."""

    cluster_id: str
    auth_key: str
    interval: float = 60.0  # Seconds between ticks
    url: str = "s3://pcloud2021/backups"
    backup_size: int = 0
    operator: str = "pingcap"

    def __post_init__(self) -> None:
        errors = []
        if not self.cluster_id:
            errors.append("cluster_id is required")
        if not self.auth_key:
            errors.append("auth_key is required")
        if self.interval <= 0:
            errors.append(f"interval must be positive, got {self.interval}")
        if self.backup_size < 0:
            errors.append(f"backup_size must be non-negative, got {self.backup_size}")
        if errors:
            raise ConfigurationError(
                "Invalid checkpoint settings",
                details={"errors": errors},
            )


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


async def _wait_for_tick(stop_event: asyncio.Event, interval: float) -> bool:
    """Sleep one interval. Returns False if a stop was requested instead."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        return not stop_event.is_set()
    return False


async def run_checkpoint_loop(
    api: CheckpointAPI,
    settings: CheckpointSettings,
    stop_event: asyncio.Event,
) -> int:
    """
    Report checkpoints until stop_event is set.

    Args:
        api: Control plane client
        settings: Reporter settings
        stop_event: Set to stop the loop

    Returns:
        Number of checkpoints created

    Raises:
        CheckpointError: If the control plane cannot be queried or
            rejects a checkpoint
    """
    created = 0
    logger.info(
        "checkpoint_reporter_started",
        cluster_id=settings.cluster_id,
        interval=settings.interval,
        url=settings.url,
    )

    while await _wait_for_tick(stop_event, settings.interval):
        status = await api.get_cluster(settings.cluster_id, settings.auth_key)
        if not status.ready:
            logger.debug(
                "cluster_not_ready",
                cluster_id=settings.cluster_id,
                setup_status=status.setup_status,
            )
            continue

        if stop_event.is_set():
            break

        response = await api.create_checkpoint(
            CreateCheckpointRequest(
                auth_key=settings.auth_key,
                cluster_id=settings.cluster_id,
                checkpoint_time=_epoch_millis(),
                url=settings.url,
                backup_size=settings.backup_size,
                operator=settings.operator,
            )
        )
        created += 1
        logger.info(
            "checkpoint_created",
            cluster_id=settings.cluster_id,
            checkpoint=str(response),
        )

    logger.info("checkpoint_reporter_stopped", cluster_id=settings.cluster_id, created=created)
    return created

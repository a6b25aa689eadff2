# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Core - Orchestrator for cloud backup and restore workflows.

This module sequences the external tools for the two workflows:

backup_to_cloud():
    1. Validate the cluster name
    2. Resolve topology (a cdc node and a pd address are required)
    3. Generate a session id
    4. Full backup to <session>/full
    5. Start the changefeed to <session>/inc, unless it already exists
    6. Return (and record) the session id

restore_from_cloud():
    1. Validate the cluster name and resolve the pd address
    2. Full restore from <session>/full
    3. Log restore from <session>/inc, only after the full restore succeeded

Each step must finish before the next starts, and a failure stops the
workflow. Completed steps are never rolled back.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Dict, Iterator, List, Set, TypedDict

import aiosqlite
import structlog
from ulid import ULID

from cloudbr.components import ComponentResolver
from cloudbr.config import OrchestratorConfig, build_tool_environment
from cloudbr.errors import explain_missing_role
from cloudbr.exceptions import (
    ChangefeedExistsError,
    PreconditionError,
    WorkflowInProgressError,
)
from cloudbr.ledger import (
    STATUS_COMPLETED,
    STATUS_FULL_BACKUP_DONE,
    complete_restore,
    complete_session,
    get_session,
    init_ledger_db,
    mark_step,
    record_restore,
    record_session,
)
from cloudbr.storage import StorageTarget, session_targets, validate_session_id
from cloudbr.tools.br import BackupRestoreTool, ProgressCallback
from cloudbr.tools.cdc import ChangefeedControl, cdc_binary_beside
from cloudbr.tools.command import ToolBinary
from cloudbr.topology import (
    ROLE_CDC,
    ClusterMetadata,
    TopologyProvider,
    validate_cluster_name,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class BackupSession:
    """One backup lifecycle: its id, its cluster and the tools it runs."""

    session_id: str  # ULID, also the changefeed id
    cluster: str
    pd_addr: str
    br: ToolBinary
    cdc: ToolBinary


@dataclass
class BackupResult:
    """Result of a cloud backup workflow."""

    session_id: str
    cluster: str
    full_target: str  # Redacted URI
    inc_target: str  # Redacted URI
    changefeed_id: str
    full_backup_skipped: bool
    duration_seconds: float


@dataclass
class RestoreResult:
    """Result of a cloud restore workflow."""

    session_id: str
    cluster: str
    steps_completed: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class OrchestratorMetrics:
    """Counters for orchestrated workflows."""

    total_backups: int
    total_restores: int
    total_failures: int
    active_clusters: List[str]
    last_run_at: datetime | None
    last_error: str | None


class OrchestratorState(TypedDict):
    """Runtime state shared by workflow calls."""

    topology: TopologyProvider
    components: ComponentResolver
    tool_env: Dict[str, str]
    ledger_path: Path
    on_progress: ProgressCallback | None
    active_clusters: Set[str]
    closed: bool
    last_run_at: datetime | None
    total_backups: int
    total_restores: int
    total_failures: int
    last_error: str | None


async def initialize_orchestrator_state(
    config: OrchestratorConfig,
    topology: TopologyProvider,
    components: ComponentResolver,
    on_progress: ProgressCallback | None = None,
) -> OrchestratorState:
    """
    Initialize runtime state for workflows.

    Creates the session ledger and derives the child-process environment
    from the configuration.

    Args:
        config: Orchestrator configuration
        topology: Cluster topology provider
        components: Tool binary resolver
        on_progress: Optional async callback receiving (step, ProgressState)

    Returns:
        Initialized OrchestratorState dictionary
    """
    await init_ledger_db(config.ledger_path)

    return OrchestratorState(
        topology=topology,
        components=components,
        tool_env=build_tool_environment(config),
        ledger_path=config.ledger_path,
        on_progress=on_progress,
        active_clusters=set(),
        closed=False,
        last_run_at=None,
        total_backups=0,
        total_restores=0,
        total_failures=0,
        last_error=None,
    )


@contextmanager
def _single_flight(state: OrchestratorState, cluster: str) -> Iterator[None]:
    """Allow at most one workflow per cluster at a time."""
    if state["closed"]:
        raise PreconditionError("Orchestrator has been shut down")
    if cluster in state["active_clusters"]:
        raise WorkflowInProgressError(
            f"Another backup or restore workflow is running for cluster '{cluster}'",
            details={"cluster": cluster},
        )
    state["active_clusters"].add(cluster)
    try:
        yield
    finally:
        state["active_clusters"].discard(cluster)


def _resolve_pd_addr(metadata: ClusterMetadata) -> str:
    pd_addr = metadata.control_plane_address()
    if not pd_addr:
        raise PreconditionError(
            explain_missing_role(metadata.name, "pd"),
            details={"cluster": metadata.name},
        )
    return pd_addr


def _resolve_br(config: OrchestratorConfig, state: OrchestratorState, version: str) -> ToolBinary:
    binary = state["components"].resolve(config.br_component, version)
    logger.info("tool_resolved", component=config.br_component, version=binary.version)
    return binary


def _record_failure(state: OrchestratorState, error: Exception) -> None:
    state["total_failures"] += 1
    state["last_error"] = str(error)


async def _note_session_error(state: OrchestratorState, session_id: str, error: Exception) -> None:
    try:
        async with aiosqlite.connect(state["ledger_path"]) as db:
            await complete_session(db, session_id, error=str(error))
    except Exception as e:
        logger.warning("ledger_update_failed", session_id=session_id, error=str(e))


async def backup_to_cloud(
    config: OrchestratorConfig,
    state: OrchestratorState,
    cluster_name: str,
    *,
    session_id: str | None = None,
) -> BackupResult:
    """
    Run a full backup and start the incremental stream for a cluster.

    Passing the session_id of an earlier session re-runs only the steps
    that session has not completed: a recorded full backup is not
    repeated. The changefeed existence check always runs.

    Args:
        config: Orchestrator configuration
        state: Runtime state
        cluster_name: Name of the cluster to back up
        session_id: Existing session to continue (optional)

    Returns:
        BackupResult carrying the session id needed for restore

    Raises:
        PreconditionError: Invalid name, missing cdc node or pd address
        WorkflowInProgressError: Another workflow runs for the cluster
        ToolLaunchError: A tool binary is missing or not executable
        ToolExecutionError: A tool step failed
        ChangefeedExistsError: Backup to cloud is already enabled
    """
    validate_cluster_name(cluster_name)

    with _single_flight(state, cluster_name):
        start_time = datetime.now(UTC)
        metadata = state["topology"].get_cluster(cluster_name)
        pd_addr = _resolve_pd_addr(metadata)
        if not metadata.instances_by_role(ROLE_CDC):
            raise PreconditionError(
                explain_missing_role(cluster_name, ROLE_CDC),
                details={"cluster": cluster_name},
            )

        resumed = session_id is not None
        session_id = validate_session_id(session_id) if resumed else str(ULID())
        full_target, inc_target = session_targets(config, session_id)

        ctl = state["components"].resolve(config.ctl_component, metadata.version)
        session = BackupSession(
            session_id=session_id,
            cluster=cluster_name,
            pd_addr=pd_addr,
            br=_resolve_br(config, state, metadata.version),
            cdc=cdc_binary_beside(ctl),
        )

        logger.info(
            "cloud_backup_started",
            session_id=session_id,
            cluster=cluster_name,
            pd_addr=pd_addr,
            resumed=resumed,
        )

        async with aiosqlite.connect(state["ledger_path"]) as db:
            record = await get_session(db, session_id)
            if record is None:
                await record_session(
                    db, session_id, cluster_name, pd_addr, full_target.uri, inc_target.uri
                )
            elif record["cluster"] != cluster_name:
                raise PreconditionError(
                    f"Session {session_id} belongs to cluster '{record['cluster']}'",
                    details={"session_id": session_id, "cluster": cluster_name},
                )

        skip_full = record is not None and record["status"] in (
            STATUS_FULL_BACKUP_DONE,
            STATUS_COMPLETED,
        )

        try:
            if skip_full:
                logger.info("full_backup_already_done", session_id=session_id)
            else:
                br = BackupRestoreTool(
                    session.br,
                    state["tool_env"],
                    timeout=config.tool_timeout,
                    on_progress=state["on_progress"],
                )
                await br.backup_full(pd_addr, full_target)
                async with aiosqlite.connect(state["ledger_path"]) as db:
                    await mark_step(db, session_id, STATUS_FULL_BACKUP_DONE)

            await _start_incremental_backup(config, state, session, inc_target)

        except Exception as e:
            _record_failure(state, e)
            await _note_session_error(state, session_id, e)
            logger.error(
                "cloud_backup_failed",
                session_id=session_id,
                cluster=cluster_name,
                error=str(e),
            )
            raise

        async with aiosqlite.connect(state["ledger_path"]) as db:
            await complete_session(db, session_id)

        duration = (datetime.now(UTC) - start_time).total_seconds()
        state["total_backups"] += 1
        state["last_run_at"] = datetime.now(UTC)

        logger.info(
            "cloud_backup_completed",
            session_id=session_id,
            cluster=cluster_name,
            duration=duration,
        )

        return BackupResult(
            session_id=session_id,
            cluster=cluster_name,
            full_target=str(full_target),
            inc_target=str(inc_target),
            changefeed_id=session_id,
            full_backup_skipped=skip_full,
            duration_seconds=duration,
        )


async def _start_incremental_backup(
    config: OrchestratorConfig,
    state: OrchestratorState,
    session: BackupSession,
    inc_target: StorageTarget,
) -> None:
    """Create the session's changefeed unless it already exists."""
    control = ChangefeedControl(session.cdc, state["tool_env"], timeout=config.tool_timeout)

    if await control.changefeed_exists(session.pd_addr, session.session_id):
        raise ChangefeedExistsError(
            "backup to cloud is enabled already",
            details={"changefeed_id": session.session_id, "cluster": session.cluster},
        )

    await control.create_changefeed(session.pd_addr, session.session_id, inc_target)


async def restore_from_cloud(
    config: OrchestratorConfig,
    state: OrchestratorState,
    cluster_name: str,
    session_id: str,
) -> RestoreResult:
    """
    Restore a cluster from a backup session.

    The full restore runs first; the log restore runs only if it
    succeeded. A failure leaves whatever the tool already restored in
    place.

    Args:
        config: Orchestrator configuration
        state: Runtime state
        cluster_name: Name of the cluster to restore into
        session_id: Session id returned by backup_to_cloud()

    Returns:
        RestoreResult listing the completed steps

    Raises:
        PreconditionError: Invalid name or session id, missing pd address,
            or a session whose full backup never completed
        WorkflowInProgressError: Another workflow runs for the cluster
        ToolLaunchError: The backup tool binary is missing
        ToolExecutionError: A restore step failed
    """
    validate_cluster_name(cluster_name)
    validate_session_id(session_id)

    with _single_flight(state, cluster_name):
        start_time = datetime.now(UTC)
        metadata = state["topology"].get_cluster(cluster_name)
        pd_addr = _resolve_pd_addr(metadata)
        full_target, inc_target = session_targets(config, session_id)

        async with aiosqlite.connect(state["ledger_path"]) as db:
            record = await get_session(db, session_id)
            if record is None:
                logger.warning("session_not_in_ledger", session_id=session_id)
            elif record["status"] not in (STATUS_FULL_BACKUP_DONE, STATUS_COMPLETED):
                raise PreconditionError(
                    f"Session {session_id} has no completed full backup",
                    details={"session_id": session_id, "status": record["status"]},
                )
            restore_id = await record_restore(db, session_id, cluster_name)

        result = RestoreResult(session_id=session_id, cluster=cluster_name)

        logger.info(
            "cloud_restore_started",
            session_id=session_id,
            cluster=cluster_name,
            pd_addr=pd_addr,
        )

        try:
            br = BackupRestoreTool(
                _resolve_br(config, state, metadata.version),
                state["tool_env"],
                timeout=config.tool_timeout,
                on_progress=state["on_progress"],
            )
            await br.restore_full(pd_addr, full_target)
            result.steps_completed.append("full restore")
            await br.restore_log(pd_addr, inc_target)
            result.steps_completed.append("log restore")
        except Exception as e:
            _record_failure(state, e)
            async with aiosqlite.connect(state["ledger_path"]) as db:
                await complete_restore(db, restore_id, error=str(e))
            logger.error(
                "cloud_restore_failed",
                session_id=session_id,
                cluster=cluster_name,
                completed=result.steps_completed,
                error=str(e),
            )
            raise

        async with aiosqlite.connect(state["ledger_path"]) as db:
            await complete_restore(db, restore_id)

        result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
        state["total_restores"] += 1
        state["last_run_at"] = datetime.now(UTC)

        logger.info(
            "cloud_restore_completed",
            session_id=session_id,
            cluster=cluster_name,
            duration=result.duration_seconds,
        )
        return result


def get_metrics(state: OrchestratorState) -> OrchestratorMetrics:
    """Get current workflow metrics."""
    return OrchestratorMetrics(
        total_backups=state["total_backups"],
        total_restores=state["total_restores"],
        total_failures=state["total_failures"],
        active_clusters=sorted(state["active_clusters"]),
        last_run_at=state["last_run_at"],
        last_error=state["last_error"],
    )


async def shutdown_orchestrator_state(state: OrchestratorState) -> None:
    """Reject new workflows; running ones finish on their own."""
    state["closed"] = True
    if state["active_clusters"]:
        logger.warning(
            "shutdown_with_active_workflows",
            clusters=sorted(state["active_clusters"]),
        )
    logger.info(
        "orchestrator_state_shutdown_complete",
        total_backups=state["total_backups"],
        total_restores=state["total_restores"],
        total_failures=state["total_failures"],
    )

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the process runner and the backup tool adapter.

Guarantees covered:
1. Children receive exactly the environment passed in
2. A missing binary fails before any handle exists
3. Progress is delivered while the process runs; bad lines are skipped
4. Deadlines and fatal records terminate the child
"""

import asyncio
import json

import pytest

from cloudbr.builder import create_config
from cloudbr.config import BackupKind, build_tool_environment
from cloudbr.exceptions import ToolExecutionError, ToolLaunchError
from cloudbr.storage import storage_target
from cloudbr.tools.br import BackupRestoreTool
from cloudbr.tools.command import ToolBinary, new_backup, new_changefeed_query
from cloudbr.tools.runner import check_result, redact_args, run_captured, start_tool

from conftest import child_env, progress_line

PD = "http://10.0.0.1:2379"
SESSION = "01HZY3V2J8Q4W6T9KX5MB7N3CD"


@pytest.fixture
def config(temp_dir):
    return create_config(bucket="cluster-backups", access_key="AKID", secret_key="S3CR3T")


@pytest.fixture
def full_target(config):
    return storage_target(config, SESSION, BackupKind.FULL)


@pytest.mark.asyncio
async def test_child_environment_is_bounded(fake_tools, config, full_target, leak_sentinel):
    env = build_tool_environment(config)
    invocation = new_backup(PD).set_storage(full_target).build(fake_tools.binary("br"))

    process = await start_tool(invocation, env)
    result = await process.wait()

    assert result.succeeded
    seen = child_env(fake_tools.calls()[0])
    assert seen == {"AWS_ACCESS_KEY": "AKID", "AWS_SECRET_KEY": "S3CR3T", "BR_LOG_TO_TERM": "1"}
    assert leak_sentinel not in seen
    assert "PATH" not in seen


@pytest.mark.asyncio
async def test_cancelled_wait_terminates_child(fake_tools, full_target):
    fake_tools.set_behavior("backup full", stdout=[progress_line("Full Backup", "1%")], sleep=60)
    invocation = new_backup(PD).set_storage(full_target).build(fake_tools.binary("br"))

    process = await start_tool(invocation, {})
    waiter = asyncio.create_task(process.wait())
    await asyncio.sleep(0.2)
    waiter.cancel()

    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert process.returncode is not None


@pytest.mark.asyncio
async def test_missing_binary_raises_launch_error(temp_dir, full_target):
    missing = ToolBinary(path=str(temp_dir / "nope" / "br"), version="v5.0.0")
    invocation = new_backup(PD).set_storage(full_target).build(missing)

    with pytest.raises(ToolLaunchError) as exc_info:
        await start_tool(invocation, {})

    assert exc_info.value.details["binary"] == missing.path


@pytest.mark.asyncio
async def test_updates_skip_malformed_lines(fake_tools, full_target):
    fake_tools.set_behavior(
        "backup full",
        stdout=[
            progress_line("Full Backup", "50%"),
            "this is not json",
            json.dumps({"level": "ERROR", "message": "backup failed"}),
        ],
        exit=1,
    )
    invocation = new_backup(PD).set_storage(full_target).build(fake_tools.binary("br"))

    process = await start_tool(invocation, {})
    states = [state async for state in process.updates()]
    result = await process.wait()

    assert len(states) == 2
    assert result.returncode == 1
    assert result.failure is not None
    assert not result.succeeded
    assert process.tracer.skipped_lines == 1


@pytest.mark.asyncio
async def test_run_captured_returns_output(fake_tools):
    fake_tools.set_behavior("changefeed query", stdout=['{"state": "normal"}'])
    invocation = new_changefeed_query(SESSION, PD).build(fake_tools.binary("cdc"))

    captured = await run_captured(invocation, {})

    assert captured.returncode == 0
    assert json.loads(captured.text) == {"state": "normal"}


@pytest.mark.asyncio
async def test_run_captured_nonzero_exit(fake_tools):
    fake_tools.set_behavior("changefeed query", stdout=["partial"], stderr="boom", exit=3)
    invocation = new_changefeed_query(SESSION, PD).build(fake_tools.binary("cdc"))

    with pytest.raises(ToolExecutionError) as exc_info:
        await run_captured(invocation, {})

    error = exc_info.value
    assert error.returncode == 3
    assert error.output.strip() == b"partial"
    assert error.details["stderr"] == "boom"


def test_check_result_prefers_fatal_record():
    from cloudbr.tools.progress import parse_record
    from cloudbr.tools.runner import ToolResult

    failure = parse_record(json.dumps({"level": "FATAL", "message": "disk full"}))

    with pytest.raises(ToolExecutionError, match="disk full"):
        check_result("full backup", ToolResult(returncode=0, last_state=failure, failure=failure))
    with pytest.raises(ToolExecutionError, match="exited with code 2"):
        check_result("full backup", ToolResult(returncode=2, last_state=None, failure=None))


def test_redact_args_masks_uri_credentials(full_target):
    redacted = redact_args(["-u", PD, "-s", full_target.uri])

    assert "S3CR3T" not in " ".join(redacted)
    assert redacted[1] == PD


# ============================================================================
# Backup tool adapter
# ============================================================================

@pytest.mark.asyncio
async def test_backup_step_reports_progress(fake_tools, full_target):
    fake_tools.set_behavior(
        "backup full",
        stdout=[progress_line("Full Backup", "30%"), progress_line("Full Backup", "100%")],
    )
    seen = []

    async def on_progress(step, state):
        seen.append((step, state.percent))

    tool = BackupRestoreTool(fake_tools.binary("br"), {}, on_progress=on_progress)
    result = await tool.backup_full(PD, full_target)

    assert result.succeeded
    assert seen == [("full backup", 30.0), ("full backup", 100.0)]


@pytest.mark.asyncio
async def test_backup_step_deadline_terminates_child(fake_tools, full_target):
    fake_tools.set_behavior("backup full", stdout=[progress_line("Full Backup", "1%")], sleep=60)
    tool = BackupRestoreTool(fake_tools.binary("br"), {}, timeout=0.5)

    with pytest.raises(ToolExecutionError, match="exceeded its deadline"):
        await tool.backup_full(PD, full_target)


@pytest.mark.asyncio
async def test_fatal_record_fails_step_without_waiting(fake_tools, full_target):
    fake_tools.set_behavior(
        "backup full",
        stdout=[json.dumps({"level": "FATAL", "message": "region unavailable"})],
        sleep=60,
    )
    tool = BackupRestoreTool(fake_tools.binary("br"), {}, timeout=30)

    with pytest.raises(ToolExecutionError, match="region unavailable") as exc_info:
        await tool.backup_full(PD, full_target)

    assert exc_info.value.step == "full backup"


@pytest.mark.asyncio
async def test_nonzero_exit_fails_step(fake_tools, full_target):
    fake_tools.set_behavior("backup full", exit=1)
    tool = BackupRestoreTool(fake_tools.binary("br"), {})

    with pytest.raises(ToolExecutionError, match="exited with code 1"):
        await tool.backup_full(PD, full_target)


@pytest.mark.asyncio
async def test_failure_without_fail_fast_reads_output_to_the_end(fake_tools, full_target):
    fake_tools.set_behavior(
        "backup full",
        stdout=[
            json.dumps({"level": "ERROR", "message": "checksum mismatch"}),
            progress_line("Full Backup", "60%"),
            progress_line("Full Backup", "90%"),
        ],
        exit=1,
    )
    seen = []

    async def on_progress(step, state):
        seen.append(state)

    tool = BackupRestoreTool(fake_tools.binary("br"), {}, timeout=30, on_progress=on_progress, fail_fast=False)

    with pytest.raises(ToolExecutionError, match="checksum mismatch"):
        await tool.backup_full(PD, full_target)

    assert len(seen) == 3
    assert seen[0].failed
    assert seen[-1].percent == 90.0

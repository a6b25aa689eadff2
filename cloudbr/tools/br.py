# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup/restore tool adapter.

Each step builds its invocation, starts the tool, follows its progress
log and waits for exit. A step fails on a non-zero exit code or on an
error-level log record; in the latter case the child is terminated
without waiting for it to give up on its own.
"""

import asyncio
from typing import Awaitable, Callable, Mapping

import structlog

from cloudbr.exceptions import ToolExecutionError
from cloudbr.storage import StorageTarget
from cloudbr.tools.command import (
    BRCommandBuilder,
    ToolBinary,
    new_backup,
    new_log_restore,
    new_restore,
)
from cloudbr.tools.progress import ProgressState
from cloudbr.tools.runner import ToolProcess, ToolResult, check_result, start_tool

logger = structlog.get_logger()

ProgressCallback = Callable[[str, ProgressState], Awaitable[None]]


class BackupRestoreTool:
    """Runs full backup, full restore and log restore steps."""

    def __init__(
        self,
        binary: ToolBinary,
        env: Mapping[str, str],
        *,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
        fail_fast: bool = True,
    ) -> None:
        self.binary = binary
        self.env = dict(env)
        self.timeout = timeout
        self.on_progress = on_progress
        self.fail_fast = fail_fast

    async def backup_full(self, pd_addr: str, target: StorageTarget) -> ToolResult:
        return await self._run_step("full backup", new_backup(pd_addr), target)

    async def restore_full(self, pd_addr: str, target: StorageTarget) -> ToolResult:
        return await self._run_step("full restore", new_restore(pd_addr), target)

    async def restore_log(self, pd_addr: str, target: StorageTarget) -> ToolResult:
        return await self._run_step("log restore", new_log_restore(pd_addr), target)

    async def _run_step(
        self,
        step: str,
        builder: BRCommandBuilder,
        target: StorageTarget,
    ) -> ToolResult:
        invocation = builder.set_storage(target).build(self.binary)
        process = await start_tool(invocation, self.env)
        logger.info("tool_step_started", step=step, pid=process.pid, target=str(target))

        try:
            result = await asyncio.wait_for(self._follow(step, process), self.timeout)
        except asyncio.TimeoutError:
            await process.terminate()
            raise ToolExecutionError(
                f"{step} exceeded its deadline of {self.timeout}s",
                step=step,
                returncode=process.returncode,
            ) from None
        except BaseException:
            await process.terminate()
            raise

        check_result(step, result)
        logger.info("tool_step_finished", step=step, pid=process.pid)
        return result

    async def _follow(self, step: str, process: ToolProcess) -> ToolResult:
        last_logged: float | None = None
        async for state in process.updates():
            if self.on_progress is not None:
                await self.on_progress(step, state)
            if state.failed:
                if self.fail_fast:
                    await process.terminate()
                continue
            if state.percent is not None and state.percent != last_logged:
                last_logged = state.percent
                logger.info(
                    "tool_step_progress",
                    step=step,
                    phase=state.phase,
                    percent=state.percent,
                )
        return await process.wait()

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Process Runner - Launch external tools as child processes.

Two modes are provided:

- start_tool(): non-blocking launch for long-running backup/restore
  steps. Standard output is drained continuously into a ProgressTracer so
  the child never blocks on a full pipe; standard error goes straight to
  the orchestrator's own stderr.
- run_captured(): blocking launch for short control queries whose answer
  is the exact output text.

Children receive only the environment passed in; nothing is inherited.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, List, Mapping

import structlog

from cloudbr.exceptions import ToolExecutionError, ToolLaunchError
from cloudbr.storage import redact_uri
from cloudbr.tools.command import ToolInvocation
from cloudbr.tools.progress import ProgressState, ProgressTracer

logger = structlog.get_logger()

# JSON log records can be long (stack traces, region dumps)
_STREAM_LIMIT = 4 * 1024 * 1024

# Seconds a terminated child gets before it is killed
TERMINATE_GRACE_SECONDS = 5.0


@dataclass(frozen=True)
class ToolResult:
    """Terminal outcome of a long-running tool process."""

    returncode: int
    last_state: ProgressState | None
    failure: ProgressState | None

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and self.failure is None


@dataclass(frozen=True)
class CapturedOutput:
    """Output of a short, synchronously awaited tool process."""

    stdout: bytes
    stderr: bytes
    returncode: int

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


def redact_args(args: List[str] | tuple) -> List[str]:
    """Redact credentials embedded in storage URIs before logging an argument vector."""
    return [redact_uri(arg) if "://" in arg else arg for arg in args]


class ToolProcess:
    """
    Handle to a running tool.

    Progress is observed opportunistically through updates(); correctness
    only depends on wait().
    """

    def __init__(
        self,
        invocation: ToolInvocation,
        process: asyncio.subprocess.Process,
    ) -> None:
        self.invocation = invocation
        self._process = process
        self.tracer = ProgressTracer(process.stdout)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._drain_task = asyncio.create_task(self._drain())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def _drain(self) -> None:
        try:
            async for state in self.tracer:
                self._queue.put_nowait(state)
                if state.failed:
                    logger.warning(
                        "tool_reported_failure",
                        operation=self.invocation.operation.value,
                        pid=self.pid,
                        message=state.message,
                    )
        finally:
            self._queue.put_nowait(None)

    async def updates(self) -> AsyncIterator[ProgressState]:
        """Yield progress states until the tool closes its output."""
        while True:
            state = await self._queue.get()
            if state is None:
                # Keep the end marker for any other consumer
                self._queue.put_nowait(None)
                return
            yield state

    async def wait(self) -> ToolResult:
        """
        Wait for the process to exit.

        Deadlines belong to the caller: wrap the call in asyncio.wait_for
        and terminate() on expiry.

        Returns:
            ToolResult with exit code and the last/failed progress states

        Raises:
            asyncio.CancelledError: If the waiting task is cancelled; the
                child is terminated first
        """
        try:
            await self._process.wait()
        except asyncio.CancelledError:
            await asyncio.shield(self.terminate())
            raise

        await self._drain_task
        return ToolResult(
            returncode=self._process.returncode,
            last_state=self.tracer.last_state,
            failure=self.tracer.failure,
        )

    async def terminate(self, grace: float = TERMINATE_GRACE_SECONDS) -> None:
        """Terminate the child, killing it if it outlives the grace period."""
        if self._process.returncode is None:
            logger.warning(
                "tool_terminating",
                operation=self.invocation.operation.value,
                pid=self.pid,
            )
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), grace)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()

        # Grandchildren may keep the pipe open after the child is gone
        try:
            await asyncio.wait_for(asyncio.shield(self._drain_task), grace)
        except asyncio.TimeoutError:
            self._drain_task.cancel()


async def _spawn(
    invocation: ToolInvocation,
    env: Mapping[str, str] | None,
    *,
    stderr: int | None,
) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(
            *invocation.argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=stderr,
            env=dict(env or {}),
            limit=_STREAM_LIMIT,
        )
    except OSError as e:
        raise ToolLaunchError(
            f"Failed to launch {invocation.binary.path}: {e}",
            details={
                "operation": invocation.operation.value,
                "binary": invocation.binary.path,
                "version": invocation.binary.version,
            },
        ) from e


async def start_tool(
    invocation: ToolInvocation,
    env: Mapping[str, str] | None = None,
) -> ToolProcess:
    """
    Launch a long-running tool without waiting for it.

    Args:
        invocation: Built tool invocation
        env: Complete child environment (not merged with os.environ)

    Returns:
        ToolProcess handle; the caller must await wait()

    Raises:
        ToolLaunchError: If the binary is missing or not executable
    """
    logger.info(
        "tool_starting",
        operation=invocation.operation.value,
        binary=invocation.binary.path,
        version=invocation.binary.version,
        args=redact_args(invocation.args),
    )
    process = await _spawn(invocation, env, stderr=None)
    return ToolProcess(invocation, process)


async def run_captured(
    invocation: ToolInvocation,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> CapturedOutput:
    """
    Run a short tool invocation to completion and capture its output.

    Args:
        invocation: Built tool invocation
        env: Complete child environment (not merged with os.environ)
        timeout: Optional deadline in seconds

    Returns:
        CapturedOutput for a zero exit code

    Raises:
        ToolLaunchError: If the binary is missing or not executable
        ToolExecutionError: On non-zero exit or deadline; carries the
            captured stdout (and stderr in details)
    """
    step = invocation.operation.value
    logger.debug(
        "tool_running",
        operation=step,
        binary=invocation.binary.path,
        args=redact_args(invocation.args),
    )
    process = await _spawn(invocation, env, stderr=asyncio.subprocess.PIPE)
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ToolExecutionError(
            f"{step} exceeded its deadline of {timeout}s",
            step=step,
        )
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    if process.returncode != 0:
        raise ToolExecutionError(
            f"{step} exited with code {process.returncode}",
            step=step,
            returncode=process.returncode,
            output=stdout,
            details={"stderr": stderr.decode("utf-8", errors="replace").strip()[-2000:]},
        )
    return CapturedOutput(stdout=stdout, stderr=stderr, returncode=process.returncode)


def check_result(step: str, result: ToolResult) -> ToolResult:
    """
    Turn an unsuccessful ToolResult into a ToolExecutionError for a step.

    Raises:
        ToolExecutionError: On non-zero exit or an observed fatal record
    """
    if result.failure is not None:
        raise ToolExecutionError(
            f"{step} failed: {result.failure.message or 'fatal log record'}",
            step=step,
            returncode=result.returncode,
            details={"phase": result.failure.phase},
        )
    if result.returncode != 0:
        raise ToolExecutionError(
            f"{step} exited with code {result.returncode}",
            step=step,
            returncode=result.returncode,
        )
    return result

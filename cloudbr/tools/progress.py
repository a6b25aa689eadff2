# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Progress Tracer - Structured progress from a tool's JSON log stream.

The backup tool runs with ``--log-format json`` and writes one JSON
object per line, e.g.:

    {"level":"INFO","message":"progress","step":"Full Backup","progress":"42.50%"}
    {"level":"ERROR","message":"backup failed","error":"context canceled"}

Each line is parsed independently. Lines that are not JSON objects are
skipped; they never abort the trace. Records at error/fatal/panic level
are reported as failures so a caller can react before the process exits.
"""

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Protocol

import structlog

logger = structlog.get_logger()

FAILURE_LEVELS = frozenset({"error", "fatal", "panic", "dpanic"})


class LineSource(Protocol):
    """Anything that reads newline-terminated chunks, such as asyncio.StreamReader."""

    async def readline(self) -> bytes:
        ...


@dataclass(frozen=True)
class ProgressState:
    """One observed state of a running tool."""

    phase: str
    percent: float | None
    level: str
    message: str
    failed: bool = False
    record: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _parse_percent(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return max(0.0, min(100.0, number))


def parse_record(line: bytes | str, previous: ProgressState | None = None) -> ProgressState | None:
    """
    Parse one log line into a progress state.

    Args:
        line: Raw log line
        previous: Last state of the same process, used to keep the phase
            and to hold the percentage steady within a phase

    Returns:
        ProgressState, or None if the line is not a JSON object
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None

    try:
        record = json.loads(line)
    except ValueError:
        return None
    if not isinstance(record, dict):
        return None

    level = str(record.get("level", "info")).lower()
    message = str(record.get("message", record.get("msg", "")))
    step = record.get("step")

    if step:
        phase = str(step)
    elif previous is not None:
        phase = previous.phase
    else:
        phase = message

    percent = _parse_percent(record.get("progress"))
    if previous is not None and previous.phase == phase and previous.percent is not None:
        # Within a phase the percentage only moves forward
        percent = previous.percent if percent is None else max(previous.percent, percent)

    return ProgressState(
        phase=phase,
        percent=percent,
        level=level,
        message=message,
        failed=level in FAILURE_LEVELS,
        record=record,
    )


class ProgressTracer:
    """
    Lazily converts a live log stream into ProgressState updates.

    A tracer belongs to one process. It can be iterated once; the stream
    is live, so updates are not replayed. Iteration ends when the stream
    reaches end-of-file.
    """

    def __init__(self, source: LineSource) -> None:
        self._source = source
        self._started = False
        self.last_state: ProgressState | None = None
        self.failure: ProgressState | None = None
        self.skipped_lines = 0
        self.closed = False

    def __aiter__(self) -> AsyncIterator[ProgressState]:
        if self._started:
            raise RuntimeError("progress trace already consumed")
        self._started = True
        return self._trace()

    async def _trace(self) -> AsyncIterator[ProgressState]:
        try:
            while True:
                try:
                    line = await self._source.readline()
                except ValueError:
                    # Oversized line; the reader has already discarded it
                    self.skipped_lines += 1
                    continue
                if not line:
                    break
                state = parse_record(line, self.last_state)
                if state is None:
                    self.skipped_lines += 1
                    logger.debug("unstructured_tool_line", line=_shorten(line))
                    continue
                self.last_state = state
                if state.failed and self.failure is None:
                    self.failure = state
                yield state
        finally:
            self.closed = True


def _shorten(line: bytes, limit: int = 200) -> str:
    text = line.decode("utf-8", errors="replace").rstrip()
    return text if len(text) <= limit else text[:limit] + "..."

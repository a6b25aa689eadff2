# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for JSON log parsing and progress tracing.
"""

import json

import pytest

from cloudbr.tools.progress import ProgressTracer, parse_record

from conftest import progress_line


class LinesSource:
    """Feeds fixed lines to a tracer, then end-of-file."""

    def __init__(self, lines):
        self._lines = [line.encode() + b"\n" if isinstance(line, str) else line for line in lines]

    async def readline(self) -> bytes:
        if not self._lines:
            return b""
        line = self._lines.pop(0)
        if isinstance(line, Exception):
            raise line
        return line


def test_parse_progress_record():
    state = parse_record(progress_line("Full Backup", "42.50%"))

    assert state.phase == "Full Backup"
    assert state.percent == 42.5
    assert state.level == "info"
    assert not state.failed


@pytest.mark.parametrize("line", ["", "not json", "[1, 2, 3]", '"a string"', "{broken"])
def test_non_object_lines_are_ignored(line):
    assert parse_record(line) is None


@pytest.mark.parametrize("level", ["ERROR", "fatal", "Panic"])
def test_failure_levels(level):
    state = parse_record(json.dumps({"level": level, "message": "backup failed"}))

    assert state.failed
    assert state.message == "backup failed"


def test_percent_never_decreases_within_a_phase():
    first = parse_record(progress_line("Full Backup", "60%"))
    second = parse_record(progress_line("Full Backup", "55%"), first)
    third = parse_record(json.dumps({"level": "INFO", "message": "flush"}), second)

    assert second.percent == 60.0
    assert third.phase == "Full Backup"
    assert third.percent == 60.0


def test_new_phase_resets_percent():
    first = parse_record(progress_line("Full Backup", "100%"))
    second = parse_record(progress_line("Checksum", "5%"), first)

    assert second.percent == 5.0


def test_percent_is_clamped():
    assert parse_record(progress_line("x", "250%")).percent == 100.0
    assert parse_record(json.dumps({"step": "x", "progress": -3})).percent == 0.0
    assert parse_record(json.dumps({"step": "x", "progress": "n/a"})).percent is None


@pytest.mark.asyncio
async def test_malformed_line_between_records_is_skipped():
    tracer = ProgressTracer(
        LinesSource(
            [
                progress_line("Full Backup", "10%"),
                "panic: runtime error: this is not json",
                json.dumps({"level": "ERROR", "message": "backup failed"}),
            ]
        )
    )

    states = [state async for state in tracer]

    assert len(states) == 2
    assert states[0].percent == 10.0
    assert states[1].failed
    assert tracer.failure is states[1]
    assert tracer.last_state is states[1]
    assert tracer.skipped_lines == 1
    assert tracer.closed


@pytest.mark.asyncio
async def test_oversized_line_does_not_end_the_trace():
    tracer = ProgressTracer(
        LinesSource([ValueError("Separator is not found, and chunk exceed the limit"),
                     progress_line("Full Backup", "20%")])
    )

    states = [state async for state in tracer]

    assert [s.percent for s in states] == [20.0]
    assert tracer.skipped_lines == 1


@pytest.mark.asyncio
async def test_tracer_iterates_once():
    tracer = ProgressTracer(LinesSource([]))
    _ = [state async for state in tracer]

    with pytest.raises(RuntimeError):
        tracer.__aiter__()

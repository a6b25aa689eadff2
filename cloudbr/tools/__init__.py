# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tool Layer - Command building, process running and progress tracing for
the external backup/restore and changefeed control tools.
"""

from cloudbr.tools.command import (
    BRCommandBuilder,
    CdcCtlCommandBuilder,
    OperationKind,
    ToolBinary,
    ToolInvocation,
    builder_for,
    new_backup,
    new_changefeed_create,
    new_changefeed_query,
    new_log_restore,
    new_restore,
)

from cloudbr.tools.progress import (
    ProgressState,
    ProgressTracer,
    parse_record,
)

from cloudbr.tools.runner import (
    CapturedOutput,
    ToolProcess,
    ToolResult,
    check_result,
    run_captured,
    start_tool,
)

__all__ = [
    # Command builder
    "BRCommandBuilder",
    "CdcCtlCommandBuilder",
    "OperationKind",
    "ToolBinary",
    "ToolInvocation",
    "builder_for",
    "new_backup",
    "new_changefeed_create",
    "new_changefeed_query",
    "new_log_restore",
    "new_restore",
    # Progress
    "ProgressState",
    "ProgressTracer",
    "parse_record",
    # Runner
    "CapturedOutput",
    "ToolProcess",
    "ToolResult",
    "check_result",
    "run_captured",
    "start_tool",
]

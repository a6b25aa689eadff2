# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Exceptions - Custom exceptions for the cloudbr package.

The hierarchy mirrors the failure categories of a backup workflow:
preconditions, tool launch, tool execution, idempotency conflicts and
remote checkpoint reporting.
"""


class CloudBRError(Exception):
    """Base exception for all cloudbr errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(CloudBRError):
    """Raised when configuration or a tool invocation is invalid."""

    pass


class PreconditionError(CloudBRError):
    """Raised when a workflow precondition does not hold."""

    pass


class WorkflowInProgressError(PreconditionError):
    """Raised when a workflow is already running for the same cluster."""

    pass


class ToolLaunchError(CloudBRError):
    """Raised when an external tool cannot be started."""

    pass


class ToolExecutionError(CloudBRError):
    """
    Raised when an external tool exits non-zero or logs a fatal record.

    Attributes:
        step: Name of the workflow step that ran the tool
        returncode: Process exit code, if the process exited
        output: Captured standard output, if any was captured
    """

    def __init__(
        self,
        message: str,
        *,
        step: str,
        returncode: int | None = None,
        output: bytes = b"",
        details: dict | None = None,
    ):
        self.step = step
        self.returncode = returncode
        self.output = output
        merged = {"step": step}
        if returncode is not None:
            merged["returncode"] = returncode
        merged.update(details or {})
        super().__init__(message, details=merged)


class ChangefeedExistsError(CloudBRError):
    """Raised when the incremental stream for a session is already running."""

    pass


class ChangefeedNotFoundError(CloudBRError):
    """Raised when a changefeed query reports that the changefeed does not exist."""

    pass


class CheckpointError(CloudBRError):
    """Raised when the remote checkpoint API fails."""

    pass


class LedgerError(CloudBRError):
    """Raised when session ledger operations fail."""

    pass

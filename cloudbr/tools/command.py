# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command Builder - Argument vectors for the external tools.

Two independent builder families exist, one per tool:

- BRCommandBuilder: backup/restore tool, storage flag ``-s``
- CdcCtlCommandBuilder: changefeed control tool, storage flag ``--sink-uri``

A builder is seeded with the fixed subcommand and control-plane flags for
its operation, accepts the storage target once via set_storage(), and
yields an immutable ToolInvocation from build().
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from cloudbr.exceptions import ConfigurationError
from cloudbr.storage import StorageTarget


class OperationKind(str, Enum):
    """Operation modes the tools are invoked in."""

    FULL_BACKUP = "full_backup"
    FULL_RESTORE = "full_restore"
    LOG_RESTORE = "log_restore"
    CHANGEFEED_CREATE = "changefeed_create"
    CHANGEFEED_QUERY = "changefeed_query"


# Operations that never write, and so may be built without a storage target
READ_ONLY_OPERATIONS = frozenset({OperationKind.CHANGEFEED_QUERY})


@dataclass(frozen=True)
class ToolBinary:
    """A resolved tool executable."""

    path: str
    version: str


@dataclass(frozen=True)
class ToolInvocation:
    """Immutable snapshot of one tool invocation."""

    binary: ToolBinary
    operation: OperationKind
    args: Tuple[str, ...]

    @property
    def argv(self) -> List[str]:
        return [self.binary.path, *self.args]


class _CommandBuilder:
    """Shared mechanics; subclasses fix the operation family and storage flag."""

    storage_flag: str = ""
    operations: frozenset = frozenset()

    def __init__(self, operation: OperationKind, seed: List[str]) -> None:
        operation = OperationKind(operation)
        if operation not in self.operations:
            raise ConfigurationError(
                f"{type(self).__name__} cannot build a {operation.value} invocation",
                details={"operation": operation.value},
            )
        self.operation = operation
        self._args: List[str] = list(seed)
        self._storage: StorageTarget | None = None

    def set_storage(self, target: StorageTarget) -> "_CommandBuilder":
        """
        Append the storage flag for this tool.

        Raises:
            ConfigurationError: For read-only operations, or when storage
                was already set
        """
        if self.operation in READ_ONLY_OPERATIONS:
            raise ConfigurationError(
                f"{self.operation.value} does not take a storage target",
                details={"operation": self.operation.value},
            )
        if self._storage is not None:
            raise ConfigurationError(
                "storage target already set",
                details={"operation": self.operation.value},
            )
        self._storage = target
        self._args.extend([self.storage_flag, target.uri])
        return self

    def build(self, binary: ToolBinary) -> ToolInvocation:
        """
        Snapshot the argument vector.

        Raises:
            ConfigurationError: If a writing operation has no storage target
        """
        if self._storage is None and self.operation not in READ_ONLY_OPERATIONS:
            raise ConfigurationError(
                f"storage target is required for {self.operation.value}",
                details={"operation": self.operation.value},
            )
        return ToolInvocation(binary=binary, operation=self.operation, args=tuple(self._args))


class BRCommandBuilder(_CommandBuilder):
    """Builder for the backup/restore tool."""

    storage_flag = "-s"
    operations = frozenset(
        {OperationKind.FULL_BACKUP, OperationKind.FULL_RESTORE, OperationKind.LOG_RESTORE}
    )

    _SUBCOMMANDS = {
        OperationKind.FULL_BACKUP: ["backup", "full"],
        OperationKind.FULL_RESTORE: ["restore", "full"],
        OperationKind.LOG_RESTORE: ["restore", "cdclog"],
    }

    def __init__(self, operation: OperationKind, pd_addr: str) -> None:
        operation = OperationKind(operation)
        seed = [*self._SUBCOMMANDS.get(operation, []), "-u", pd_addr, "--log-format", "json"]
        super().__init__(operation, seed)


class CdcCtlCommandBuilder(_CommandBuilder):
    """Builder for the changefeed control tool."""

    storage_flag = "--sink-uri"
    operations = frozenset({OperationKind.CHANGEFEED_CREATE, OperationKind.CHANGEFEED_QUERY})

    _SUBCOMMANDS = {
        OperationKind.CHANGEFEED_CREATE: "create",
        OperationKind.CHANGEFEED_QUERY: "query",
    }

    def __init__(self, operation: OperationKind, pd_addr: str, changefeed_id: str) -> None:
        operation = OperationKind(operation)
        seed = [
            "cli",
            "changefeed",
            self._SUBCOMMANDS.get(operation, ""),
            "--pd",
            pd_addr,
            "--changefeed-id",
            changefeed_id,
        ]
        super().__init__(operation, seed)


def new_backup(pd_addr: str) -> BRCommandBuilder:
    return BRCommandBuilder(OperationKind.FULL_BACKUP, pd_addr)


def new_restore(pd_addr: str) -> BRCommandBuilder:
    return BRCommandBuilder(OperationKind.FULL_RESTORE, pd_addr)


def new_log_restore(pd_addr: str) -> BRCommandBuilder:
    return BRCommandBuilder(OperationKind.LOG_RESTORE, pd_addr)


def new_changefeed_create(changefeed_id: str, pd_addr: str) -> CdcCtlCommandBuilder:
    return CdcCtlCommandBuilder(OperationKind.CHANGEFEED_CREATE, pd_addr, changefeed_id)


def new_changefeed_query(changefeed_id: str, pd_addr: str) -> CdcCtlCommandBuilder:
    return CdcCtlCommandBuilder(OperationKind.CHANGEFEED_QUERY, pd_addr, changefeed_id)


def builder_for(
    operation: OperationKind | str,
    pd_addr: str,
    changefeed_id: str | None = None,
) -> _CommandBuilder:
    """
    Return a seeded builder for any operation kind.

    Args:
        operation: Operation kind
        pd_addr: Control-plane address
        changefeed_id: Changefeed id, required for changefeed operations

    Returns:
        Builder of the family that owns the operation
    """
    operation = OperationKind(operation)
    if operation in BRCommandBuilder.operations:
        return BRCommandBuilder(operation, pd_addr)
    if not changefeed_id:
        raise ConfigurationError(
            f"changefeed_id is required for {operation.value}",
            details={"operation": operation.value},
        )
    return CdcCtlCommandBuilder(operation, pd_addr, changefeed_id)

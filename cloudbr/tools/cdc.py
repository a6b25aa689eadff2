# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Changefeed control adapter.

The control tool only reports failures as text. This module is the one
place that text is inspected: classify_cdc_output() maps the known error
signatures to a closed set of kinds, and everything else is treated as
an unknown execution failure.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping

import structlog

from cloudbr.exceptions import (
    ChangefeedExistsError,
    ChangefeedNotFoundError,
    ToolExecutionError,
)
from cloudbr.storage import StorageTarget
from cloudbr.tools.command import (
    ToolBinary,
    new_changefeed_create,
    new_changefeed_query,
)
from cloudbr.tools.runner import run_captured

logger = structlog.get_logger()


class CdcErrorKind(str, Enum):
    """Recognized failure kinds of the changefeed control tool."""

    CHANGEFEED_NOT_FOUND = "changefeed_not_found"
    CHANGEFEED_EXISTS = "changefeed_exists"
    UNKNOWN = "unknown"


_SIGNATURES = (
    ("ErrChangeFeedNotExists", CdcErrorKind.CHANGEFEED_NOT_FOUND),
    ("ErrChangeFeedAlreadyExists", CdcErrorKind.CHANGEFEED_EXISTS),
)


def classify_cdc_output(output: bytes | str) -> CdcErrorKind:
    """
    Map the output of a failed control-tool run to an error kind.

    Args:
        output: Captured output of the failed run

    Returns:
        The matching CdcErrorKind, or UNKNOWN
    """
    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")
    for signature, kind in _SIGNATURES:
        if signature in output:
            return kind
    return CdcErrorKind.UNKNOWN


def _classify_error(error: ToolExecutionError) -> CdcErrorKind:
    stderr = str(error.details.get("stderr", ""))
    return classify_cdc_output(error.output + stderr.encode("utf-8"))


def cdc_binary_beside(ctl_binary: ToolBinary) -> ToolBinary:
    """The changefeed control tool ships in the same directory as the ctl component."""
    return ToolBinary(
        path=str(Path(ctl_binary.path).parent / "cdc"),
        version=ctl_binary.version,
    )


class ChangefeedControl:
    """Queries and creates changefeeds through the control tool."""

    def __init__(
        self,
        binary: ToolBinary,
        env: Mapping[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.binary = binary
        self.env = dict(env or {})
        self.timeout = timeout

    async def query_changefeed(self, pd_addr: str, changefeed_id: str) -> Dict[str, Any]:
        """
        Look up a changefeed.

        Returns:
            Parsed changefeed status (raw text under "output" if not JSON)

        Raises:
            ChangefeedNotFoundError: The changefeed does not exist
            ToolExecutionError: The query failed for any other reason
        """
        invocation = new_changefeed_query(changefeed_id, pd_addr).build(self.binary)
        try:
            captured = await run_captured(invocation, self.env, timeout=self.timeout)
        except ToolExecutionError as e:
            if _classify_error(e) is CdcErrorKind.CHANGEFEED_NOT_FOUND:
                raise ChangefeedNotFoundError(
                    f"Changefeed {changefeed_id} does not exist",
                    details={"changefeed_id": changefeed_id},
                ) from e
            raise ToolExecutionError(
                "run getChangeFeed failed and error not expected",
                step="query changefeed",
                returncode=e.returncode,
                output=e.output,
                details={"changefeed_id": changefeed_id, "cause": e.message},
            ) from e

        try:
            status = json.loads(captured.text)
        except ValueError:
            status = None
        if not isinstance(status, dict):
            status = {"output": captured.text.strip()}
        return status

    async def changefeed_exists(self, pd_addr: str, changefeed_id: str) -> bool:
        """True if the changefeed exists; unknown failures propagate."""
        try:
            await self.query_changefeed(pd_addr, changefeed_id)
        except ChangefeedNotFoundError:
            return False
        return True

    async def create_changefeed(
        self,
        pd_addr: str,
        changefeed_id: str,
        target: StorageTarget,
    ) -> str:
        """
        Create a changefeed writing to the given target.

        Returns:
            Tool output

        Raises:
            ChangefeedExistsError: The tool reports the changefeed already exists
            ToolExecutionError: Creation failed for any other reason
        """
        invocation = (
            new_changefeed_create(changefeed_id, pd_addr).set_storage(target).build(self.binary)
        )
        try:
            captured = await run_captured(invocation, self.env, timeout=self.timeout)
        except ToolExecutionError as e:
            if _classify_error(e) is CdcErrorKind.CHANGEFEED_EXISTS:
                raise ChangefeedExistsError(
                    "backup to cloud is enabled already",
                    details={"changefeed_id": changefeed_id},
                ) from e
            raise ToolExecutionError(
                f"create changefeed failed: {e.message}",
                step="create changefeed",
                returncode=e.returncode,
                output=e.output,
                details={"changefeed_id": changefeed_id},
            ) from e

        logger.info(
            "changefeed_created",
            changefeed_id=changefeed_id,
            target=str(target),
            output=captured.text.strip()[:500],
        )
        return captured.text

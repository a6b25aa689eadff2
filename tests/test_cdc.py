# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for changefeed control: error classification and the adapter.
"""

import pytest

from cloudbr.builder import create_config
from cloudbr.config import BackupKind
from cloudbr.exceptions import (
    ChangefeedExistsError,
    ChangefeedNotFoundError,
    ToolExecutionError,
)
from cloudbr.storage import storage_target
from cloudbr.tools.cdc import (
    CdcErrorKind,
    ChangefeedControl,
    cdc_binary_beside,
    classify_cdc_output,
)
from cloudbr.tools.command import ToolBinary

from conftest import EXISTS_STDERR, NOT_FOUND_STDERR, flag_value

PD = "http://10.0.0.1:2379"
SESSION = "01HZY3V2J8Q4W6T9KX5MB7N3CD"


def test_classify_not_found():
    assert classify_cdc_output(NOT_FOUND_STDERR) is CdcErrorKind.CHANGEFEED_NOT_FOUND
    assert classify_cdc_output(NOT_FOUND_STDERR.encode()) is CdcErrorKind.CHANGEFEED_NOT_FOUND


def test_classify_already_exists():
    assert classify_cdc_output(EXISTS_STDERR) is CdcErrorKind.CHANGEFEED_EXISTS


@pytest.mark.parametrize("output", ["", "dial tcp 10.0.0.1:2379: connection refused", "panic"])
def test_classify_unknown(output):
    assert classify_cdc_output(output) is CdcErrorKind.UNKNOWN


def test_cdc_binary_lives_beside_ctl():
    ctl = ToolBinary(path="/opt/components/ctl/v5.0.0/ctl", version="v5.0.0")

    assert cdc_binary_beside(ctl) == ToolBinary(
        path="/opt/components/ctl/v5.0.0/cdc", version="v5.0.0"
    )


@pytest.mark.asyncio
async def test_query_missing_changefeed(fake_tools):
    control = ChangefeedControl(fake_tools.binary("cdc"))

    with pytest.raises(ChangefeedNotFoundError):
        await control.query_changefeed(PD, SESSION)
    assert await control.changefeed_exists(PD, SESSION) is False


@pytest.mark.asyncio
async def test_query_existing_changefeed_returns_status(fake_tools):
    fake_tools.set_behavior("changefeed query", stdout=['{"info": {"state": "normal"}}'])
    control = ChangefeedControl(fake_tools.binary("cdc"))

    status = await control.query_changefeed(PD, SESSION)

    assert status == {"info": {"state": "normal"}}
    assert await control.changefeed_exists(PD, SESSION) is True
    argv = fake_tools.calls()[0]["argv"]
    assert flag_value(argv, "--changefeed-id") == SESSION
    assert flag_value(argv, "--pd") == PD


@pytest.mark.asyncio
async def test_query_unexpected_error_is_annotated(fake_tools):
    fake_tools.set_behavior("changefeed query", stderr="connection refused", exit=1)
    control = ChangefeedControl(fake_tools.binary("cdc"))

    with pytest.raises(ToolExecutionError) as exc_info:
        await control.query_changefeed(PD, SESSION)

    assert exc_info.value.message == "run getChangeFeed failed and error not expected"
    assert exc_info.value.step == "query changefeed"
    assert exc_info.value.returncode == 1


@pytest.mark.asyncio
async def test_create_reports_existing_changefeed(fake_tools):
    fake_tools.set_behavior("changefeed create", stderr=EXISTS_STDERR, exit=1)
    control = ChangefeedControl(fake_tools.binary("cdc"))
    target = storage_target(create_config(bucket="cluster-backups"), SESSION, BackupKind.INCREMENTAL)

    with pytest.raises(ChangefeedExistsError, match="backup to cloud is enabled already"):
        await control.create_changefeed(PD, SESSION, target)


@pytest.mark.asyncio
async def test_create_passes_sink_uri(fake_tools):
    control = ChangefeedControl(fake_tools.binary("cdc"))
    target = storage_target(create_config(bucket="cluster-backups"), SESSION, BackupKind.INCREMENTAL)

    output = await control.create_changefeed(PD, SESSION, target)

    assert "successfully" in output
    assert flag_value(fake_tools.calls()[0]["argv"], "--sink-uri") == target.uri

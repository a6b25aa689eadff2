# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for cloudbr tests.

Provides fake tool executables, topology and configuration helpers.

The fake tools are small Python scripts installed in the component
layout DirectoryComponentResolver expects. Each call appends its argv
and environment to a shared calls log, then follows the behavior
configured for its subcommand: lines to print, stderr text, a delay
and an exit code.
"""

import json
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List

import pytest
import pytest_asyncio

TOOL_VERSION = "v5.0.0"

NOT_FOUND_STDERR = "Error: [CDC:ErrChangeFeedNotExists]changefeed not exists, key: /tidb/cdc/changefeed/info/x"
EXISTS_STDERR = "Error: [CDC:ErrChangeFeedAlreadyExists]changefeed already exists, key: /tidb/cdc/changefeed/info/x"

_SCRIPT = '''#!{python}
import json
import os
import sys
import time

args = sys.argv[1:]
if args[:2] == ["cli", "changefeed"]:
    key = "changefeed " + args[2]
else:
    key = " ".join(args[:2])

with open({log!r}, "a") as log:
    log.write(json.dumps({{"tool": {tool!r}, "key": key, "argv": args, "env": dict(os.environ)}}) + "\\n")

with open({behavior!r}) as f:
    behavior = json.load(f).get(key, {{}})

for line in behavior.get("stdout", []):
    print(line, flush=True)
    time.sleep(behavior.get("line_delay", 0))
if behavior.get("stderr"):
    sys.stderr.write(behavior["stderr"])
    sys.stderr.flush()
time.sleep(behavior.get("sleep", 0))
sys.exit(behavior.get("exit", 0))
'''


def progress_line(step: str, progress: str, level: str = "INFO", message: str = "progress") -> str:
    """A JSON log line in the backup tool's format."""
    return json.dumps({"level": level, "message": message, "step": step, "progress": progress})


class FakeTools:
    """Installs fake br/ctl/cdc executables and records their calls."""

    def __init__(self, root: Path, version: str = TOOL_VERSION) -> None:
        self.root = root
        root.mkdir(parents=True, exist_ok=True)
        self.version = version
        self.log_path = root / "calls.jsonl"
        self.behavior_path = root / "behavior.json"
        self._behavior: Dict[str, Dict[str, Any]] = {
            "backup full": {"stdout": [progress_line("Full Backup", "100%")]},
            "restore full": {"stdout": [progress_line("Full Restore", "100%")]},
            "restore cdclog": {"stdout": [progress_line("Log Restore", "100%")]},
            "changefeed query": {"stderr": NOT_FOUND_STDERR, "exit": 1},
            "changefeed create": {"stdout": ["Create changefeed successfully!"]},
        }
        self._save()

        ctl_dir = root / "ctl" / version
        self.install("br", root / "br" / version / "br")
        self.install("ctl", ctl_dir / "ctl")
        self.install("cdc", ctl_dir / "cdc")

    def install(self, tool: str, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            _SCRIPT.format(
                python=sys.executable,
                log=str(self.log_path),
                tool=tool,
                behavior=str(self.behavior_path),
            )
        )
        path.chmod(0o755)
        return path

    def _save(self) -> None:
        self.behavior_path.write_text(json.dumps(self._behavior))

    def set_behavior(self, key: str, **behavior: Any) -> None:
        """Replace the behavior of a subcommand, e.g. 'backup full' or 'changefeed query'."""
        self._behavior[key] = behavior
        self._save()

    def binary(self, tool: str):
        from cloudbr.tools.command import ToolBinary

        component_dir = "ctl" if tool == "cdc" else tool
        return ToolBinary(
            path=str(self.root / component_dir / self.version / tool),
            version=self.version,
        )

    def calls(self) -> List[Dict[str, Any]]:
        if not self.log_path.exists():
            return []
        return [json.loads(line) for line in self.log_path.read_text().splitlines() if line]

    def keys(self) -> List[str]:
        return [call["key"] for call in self.calls()]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_tools(temp_dir: Path) -> FakeTools:
    """Fake tool executables under <temp_dir>/components."""
    return FakeTools(temp_dir / "components")


@pytest.fixture
def test_config(temp_dir: Path):
    """Create a test configuration."""
    from cloudbr.builder import create_config

    return create_config(
        bucket="cluster-backups",
        access_key="AKIDTEST",
        secret_key="SECRETTEST",
        ledger_path=temp_dir / "ledger.db",
        tool_timeout=30,
    )


@pytest.fixture
def cluster():
    """A cluster with one pd node and one cdc node."""
    from cloudbr.topology import ClusterMetadata, Instance

    return ClusterMetadata(
        name="prod-cluster",
        version=TOOL_VERSION,
        instances=(
            Instance(role="pd", host="10.0.0.1", port=2379),
            Instance(role="tikv", host="10.0.0.3", port=20160),
            Instance(role="cdc", host="10.0.0.2", port=8300),
        ),
    )


@pytest.fixture
def topology(cluster):
    from cloudbr.topology import StaticTopologyProvider

    return StaticTopologyProvider([cluster])


@pytest_asyncio.fixture
async def orchestrator_state(test_config, topology, fake_tools: FakeTools):
    """Create initialized orchestrator state backed by the fake tools."""
    from cloudbr.components import DirectoryComponentResolver
    from cloudbr.core import initialize_orchestrator_state

    state = await initialize_orchestrator_state(
        test_config,
        topology,
        DirectoryComponentResolver(fake_tools.root),
    )
    yield state


@pytest.fixture
def leak_sentinel(monkeypatch) -> str:
    """An orchestrator-side variable that must never reach a child."""
    monkeypatch.setenv("CLOUDBR_TEST_LEAK", "must-not-leak")
    return "CLOUDBR_TEST_LEAK"


def child_env(call: Dict[str, Any]) -> Dict[str, str]:
    """Environment a fake tool saw, minus what the interpreter sets for itself."""
    env = dict(call["env"])
    env.pop("LC_CTYPE", None)
    return env


def flag_value(argv: List[str], flag: str) -> str:
    return argv[argv.index(flag) + 1]



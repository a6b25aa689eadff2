# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while a workflow is running.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List
import re


class BackupKind(str, Enum):
    """Kind of backup artifact stored under a session."""

    FULL = "full"  # Snapshot written by the backup tool
    INCREMENTAL = "inc"  # Change stream written by the changefeed


class StorageScheme(str, Enum):
    """Object storage schemes understood by the external tools."""

    S3 = "s3"
    GCS = "gcs"
    AZBLOB = "azblob"


@dataclass(frozen=True)
class StorageCredentials:
    """Access credentials handed to child processes, never to the orchestrator's own env."""

    access_key: str
    secret_key: str

    def __repr__(self) -> str:
        return f"StorageCredentials(access_key={self.access_key!r}, secret_key='***')"


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate an object storage bucket name.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens, periods
    - Must start and end with letter or number
    - No consecutive periods
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    return True


def _validate_prefix(prefix: str) -> bool:
    """Prefixes are plain path segments: no query, fragment or empty segments."""
    if not prefix:
        return True
    if any(ch in prefix for ch in "?#&= "):
        return False
    return all(segment for segment in prefix.split("/"))


def _validate_endpoint(endpoint: str) -> bool:
    return bool(re.match(r"^https?://[^\s/?#]+(/[^\s?#]*)?$", endpoint))


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Immutable configuration for cloud backup and restore workflows.

    The storage fields describe where session artifacts live; the
    credentials are injected into each tool invocation and nowhere else.
    """

    # Required: bucket holding every session's artifacts
    bucket: str

    # Storage scheme understood by the backup and changefeed tools
    scheme: StorageScheme = StorageScheme.S3

    # Key prefix under which sessions are laid out: <prefix>/<session>/<kind>
    prefix: str = "br-backups"

    # Custom endpoint (MinIO and other S3-compatible stores)
    endpoint: str | None = None

    # Use path-style bucket addressing
    force_path_style: bool = False

    # Storage credentials (both or neither)
    access_key: str = ""
    secret_key: str = field(default="", repr=False)

    # Session ledger location
    ledger_path: Path = field(default_factory=lambda: Path("./cloudbr_ledger.db"))

    # Deadline in seconds for one long-running tool step (None = no deadline)
    tool_timeout: float | None = None

    # Component names used to resolve tool binaries
    br_component: str = "br"
    ctl_component: str = "ctl"

    # Ask the backup tool to log to its terminal stream
    log_to_term: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        try:
            StorageScheme(self.scheme)
        except ValueError:
            errors.append(f"Unsupported storage scheme: {self.scheme}")

        if not _validate_prefix(self.prefix):
            errors.append(f"Invalid storage prefix: {self.prefix!r}")

        if self.endpoint is not None and not _validate_endpoint(self.endpoint):
            errors.append(f"Invalid storage endpoint: {self.endpoint!r}")

        if bool(self.access_key) != bool(self.secret_key):
            errors.append("access_key and secret_key must be set together")

        if self.tool_timeout is not None and self.tool_timeout <= 0:
            errors.append(f"tool_timeout must be > 0, got {self.tool_timeout}")

        for name in ("br_component", "ctl_component"):
            if not getattr(self, name):
                errors.append(f"{name} must not be empty")

        if errors:
            from cloudbr.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def credentials(self) -> StorageCredentials | None:
        if not self.access_key:
            return None
        return StorageCredentials(self.access_key, self.secret_key)

    def with_updates(self, **kwargs) -> "OrchestratorConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return OrchestratorConfig(**current)


def build_tool_environment(config: OrchestratorConfig) -> Dict[str, str]:
    """
    Build the complete environment for a child tool process.

    Only the storage credentials and the log directive are passed; the
    orchestrator's own environment is never inherited.

    Args:
        config: Orchestrator configuration

    Returns:
        Environment mapping for the child process
    """
    env: Dict[str, str] = {}
    credentials = config.credentials
    if credentials is not None:
        env["AWS_ACCESS_KEY"] = credentials.access_key
        env["AWS_SECRET_KEY"] = credentials.secret_key
    if config.log_to_term:
        env["BR_LOG_TO_TERM"] = "1"
    return env

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers and storage profiles.

These helpers are small, convenient wrappers around create_config() and
OrchestratorConfig.with_updates(). They make it easy to:

- Build a configuration from environment variables
- Apply ready-made storage profiles
"""

from __future__ import annotations

import os

from cloudbr.builder import create_config
from cloudbr.config import OrchestratorConfig
from cloudbr.errors import (
    explain_invalid_bool_env,
    explain_invalid_tool_timeout_env,
    explain_missing_bucket_env,
    explain_missing_credentials_env,
)
from cloudbr.exceptions import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str | None, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def _parse_tool_timeout(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_tool_timeout_env(value)) from exc
    if seconds <= 0:
        raise ConfigurationError(explain_invalid_tool_timeout_env(value))
    return seconds


def create_config_from_env(*, require_credentials: bool = True) -> OrchestratorConfig:
    """
    Create an OrchestratorConfig from environment variables.

    Required:
        - CLOUDBR_STORAGE_BUCKET: Bucket holding backup sessions
        - AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: Storage credentials
          (unless require_credentials=False)

    Optional environment variables:
        - CLOUDBR_STORAGE_SCHEME: 's3' | 'gcs' | 'azblob' (default: s3)
        - CLOUDBR_STORAGE_PREFIX: Key prefix (default: br-backups)
        - CLOUDBR_STORAGE_ENDPOINT: S3-compatible endpoint URL
        - CLOUDBR_FORCE_PATH_STYLE: Boolean (default: false)
        - CLOUDBR_LEDGER_PATH: Session ledger path (default: ./cloudbr_ledger.db)
        - CLOUDBR_TOOL_TIMEOUT: Per-step deadline in seconds
    """

    bucket = os.getenv("CLOUDBR_STORAGE_BUCKET")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    access_key = os.getenv("AWS_ACCESS_KEY_ID", "")
    secret_key = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    if require_credentials and not (access_key and secret_key):
        raise ConfigurationError(explain_missing_credentials_env())

    return create_config(
        bucket=bucket,
        scheme=os.getenv("CLOUDBR_STORAGE_SCHEME", "s3"),
        prefix=os.getenv("CLOUDBR_STORAGE_PREFIX"),
        endpoint=os.getenv("CLOUDBR_STORAGE_ENDPOINT"),
        path_style=_parse_bool(
            "CLOUDBR_FORCE_PATH_STYLE", os.getenv("CLOUDBR_FORCE_PATH_STYLE")
        ),
        access_key=access_key,
        secret_key=secret_key,
        ledger_path=os.getenv("CLOUDBR_LEDGER_PATH"),
        tool_timeout=_parse_tool_timeout(os.getenv("CLOUDBR_TOOL_TIMEOUT")),
    )


# ============================================================================
# Profiles
# ============================================================================

def minio_defaults(config: OrchestratorConfig, endpoint: str = "http://127.0.0.1:9000") -> OrchestratorConfig:
    """
    Apply settings for a self-hosted MinIO store.

    - Path-style addressing
    - A local endpoint unless one is already configured
    """

    return config.with_updates(
        force_path_style=True,
        endpoint=config.endpoint or endpoint,
    )

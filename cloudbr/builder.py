# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Builder - Functional builder pattern for configuration.

This module provides pure functions for building OrchestratorConfig
objects. Each function takes a config dict and returns a new dict with
the modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from cloudbr.config import OrchestratorConfig, StorageScheme


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "bucket": "",
        "scheme": StorageScheme.S3,
        "prefix": "br-backups",
        "endpoint": None,
        "force_path_style": False,
        "access_key": "",
        "secret_key": "",
        "ledger_path": Path("./cloudbr_ledger.db"),
        "tool_timeout": None,
        "br_component": "br",
        "ctl_component": "ctl",
        "log_to_term": True,
    }


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """
    Set the storage bucket name.

    Args:
        config: Current configuration dictionary
        bucket_name: Bucket that holds every session's artifacts

    Returns:
        New configuration dictionary with bucket set
    """
    return {**config, "bucket": bucket_name}


def with_scheme(config: ConfigDict, scheme: StorageScheme | str) -> ConfigDict:
    """Set the storage scheme ('s3', 'gcs' or 'azblob')."""
    if isinstance(scheme, str):
        scheme = StorageScheme(scheme.lower())
    return {**config, "scheme": scheme}


def with_prefix(config: ConfigDict, prefix: str) -> ConfigDict:
    """
    Set the key prefix under which sessions are stored.

    Leading and trailing slashes are stripped.
    """
    return {**config, "prefix": prefix.strip("/")}


def with_endpoint(config: ConfigDict, endpoint: str) -> ConfigDict:
    """
    Point the tools at a custom S3-compatible endpoint.

    Args:
        config: Current configuration dictionary
        endpoint: Endpoint URL, e.g. 'http://minio.local:9000'

    Returns:
        New configuration dictionary with endpoint set
    """
    return {**config, "endpoint": endpoint.rstrip("/")}


def force_path_style(config: ConfigDict) -> ConfigDict:
    """Use path-style bucket addressing (required by most MinIO setups)."""
    return {**config, "force_path_style": True}


def with_credentials(config: ConfigDict, access_key: str, secret_key: str) -> ConfigDict:
    """
    Set the storage credentials injected into each tool invocation.

    Args:
        config: Current configuration dictionary
        access_key: Storage access key
        secret_key: Storage secret key

    Returns:
        New configuration dictionary with credentials set
    """
    return {**config, "access_key": access_key, "secret_key": secret_key}


def with_ledger(config: ConfigDict, ledger_path: Path | str) -> ConfigDict:
    """Set the session ledger database path."""
    path = Path(ledger_path) if isinstance(ledger_path, str) else ledger_path
    return {**config, "ledger_path": path}


def with_tool_timeout(config: ConfigDict, seconds: float) -> ConfigDict:
    """
    Set a deadline for each long-running tool step.

    When the deadline passes the child process is terminated and the
    step fails.

    Args:
        config: Current configuration dictionary
        seconds: Deadline in seconds

    Returns:
        New configuration dictionary with the deadline set
    """
    if seconds <= 0:
        raise ValueError(f"tool timeout must be > 0, got {seconds}")
    return {**config, "tool_timeout": float(seconds)}


def with_components(config: ConfigDict, br: str = "br", ctl: str = "ctl") -> ConfigDict:
    """Override the component names used to resolve the tool binaries."""
    return {**config, "br_component": br, "ctl_component": ctl}


def quiet_tool_logs(config: ConfigDict) -> ConfigDict:
    """Do not ask the backup tool to mirror its log to the terminal."""
    return {**config, "log_to_term": False}


def build_config(config_dict: ConfigDict) -> OrchestratorConfig:
    """
    Validate and build an immutable OrchestratorConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable OrchestratorConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("bucket"):
        from cloudbr.exceptions import ConfigurationError

        raise ConfigurationError("bucket is required")

    return OrchestratorConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    This allows a more readable pipeline style:

        config = pipe(
            lambda c: with_bucket(c, "cluster-backups"),
            lambda c: with_endpoint(c, "http://minio.local:9000"),
            force_path_style,
        )(create_empty_config())

    Args:
        *funcs: Builder functions to compose

    Returns:
        A single function that applies all functions in sequence
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> OrchestratorConfig:
    """
    Build config by applying a sequence of builder functions.

    This is a convenience function that combines pipe() and build_config().
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    bucket: str,
    *,
    prefix: str | None = None,
    scheme: str | StorageScheme = "s3",
    endpoint: str | None = None,
    path_style: bool = False,
    access_key: str | None = None,
    secret_key: str | None = None,
    ledger_path: str | Path | None = None,
    tool_timeout: float | None = None,
    **kwargs: Any,
) -> OrchestratorConfig:
    """
    Create cloudbr configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Args:
        bucket: Storage bucket name (required)
        prefix: Key prefix for sessions (default: "br-backups")
        scheme: Storage scheme: "s3", "gcs" or "azblob" (default: "s3")
        endpoint: Custom S3-compatible endpoint URL (optional)
        path_style: Use path-style addressing (default: False)
        access_key: Storage access key (optional, requires secret_key)
        secret_key: Storage secret key (optional, requires access_key)
        ledger_path: Path to the session ledger (default: "./cloudbr_ledger.db")
        tool_timeout: Deadline in seconds for each long-running tool step
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable OrchestratorConfig instance

    Example:
        config = create_config(
            bucket="cluster-backups",
            endpoint="http://minio.local:9000",
            path_style=True,
            access_key=os.environ["AWS_ACCESS_KEY_ID"],
            secret_key=os.environ["AWS_SECRET_ACCESS_KEY"],
        )
    """
    config_dict = create_empty_config()
    config_dict = with_bucket(config_dict, bucket)
    config_dict = with_scheme(config_dict, scheme)

    if prefix is not None:
        config_dict = with_prefix(config_dict, prefix)

    if endpoint:
        config_dict = with_endpoint(config_dict, endpoint)

    if path_style:
        config_dict = force_path_style(config_dict)

    if access_key or secret_key:
        config_dict = with_credentials(config_dict, access_key or "", secret_key or "")

    if ledger_path:
        config_dict = with_ledger(config_dict, ledger_path)

    if tool_timeout is not None:
        config_dict = with_tool_timeout(config_dict, tool_timeout)

    # Apply any additional kwargs
    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)

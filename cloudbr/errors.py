# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for cloudbr.

These helpers centralize wording for common configuration and
precondition errors so that all modules present consistent,
actionable messages.
"""


def explain_missing_bucket_env() -> str:
    """
    Explain that the storage bucket environment variable is missing.
    """

    return (
        "Backup storage bucket is not configured. "
        "Set the CLOUDBR_STORAGE_BUCKET environment variable or pass bucket=... to create_config()."
    )


def explain_missing_credentials_env() -> str:
    """
    Explain that storage credentials are missing from the environment.
    """

    return (
        "Storage credentials are not configured. "
        "Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY, or pass access_key=... and "
        "secret_key=... to create_config()."
    )


def explain_invalid_tool_timeout_env(value: str | None) -> str:
    """
    Explain that CLOUDBR_TOOL_TIMEOUT is invalid.
    """

    return (
        f"Invalid CLOUDBR_TOOL_TIMEOUT value: {value!r}. "
        "It must be a positive number of seconds, or empty for no deadline."
    )


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: 'true', 'false', '1', '0', 'yes', 'no'."
    )


def explain_invalid_cluster_name(name: str) -> str:
    """
    Explain the cluster naming rule.
    """

    return (
        f"Cluster name '{name}' is invalid. "
        "Use only letters, digits, '-', '_' and '.'."
    )


def explain_missing_role(cluster: str, role: str) -> str:
    """
    Explain that the cluster topology lacks a required role.
    """

    if role == "pd":
        return f"Cluster '{cluster}' doesn't have any pd server; cannot resolve the control-plane address."
    return f"Cluster '{cluster}' doesn't have any {role} server."

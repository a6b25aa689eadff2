# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr - Backup-to-cloud and restore-from-cloud orchestration.

Drives the external backup/restore tool and the changefeed control tool
for a deployed cluster: a full backup followed by a continuous
incremental stream, and the matching full-then-log restore. Every
backup session gets an id that names its storage targets and is needed
again for restore. Package name: cloudbr.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from cloudbr.builder import create_config

# Core functions
from cloudbr.core import (
    initialize_orchestrator_state,
    backup_to_cloud,
    restore_from_cloud,
    get_metrics,
    shutdown_orchestrator_state,
)

# Environment-based configuration and profiles (additional helpers)
from cloudbr.env import (
    create_config_from_env,
    minio_defaults,
)

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    "minio_defaults",
    # Core orchestration functions
    "initialize_orchestrator_state",
    "backup_to_cloud",
    "restore_from_cloud",
    "get_metrics",
    "shutdown_orchestrator_state",
]

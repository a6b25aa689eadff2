# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Checkpoint - Periodic checkpoint reporting to the cloud control plane.
"""

from cloudbr.checkpoint.api import (
    CheckpointAPI,
    CheckpointResponse,
    ClusterStatus,
    CreateCheckpointRequest,
)
from cloudbr.checkpoint.reporter import CheckpointSettings, run_checkpoint_loop

__all__ = [
    "CheckpointAPI",
    "CheckpointResponse",
    "CheckpointSettings",
    "ClusterStatus",
    "CreateCheckpointRequest",
    "run_checkpoint_loop",
]

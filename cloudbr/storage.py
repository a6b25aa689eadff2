# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Storage - Storage targets for backup sessions.

Every session writes two artifacts, laid out as:

    <scheme>://<bucket>/<prefix>/<session_id>/<kind>

The URI also carries the routing and credential parameters the external
tools need to reach the bucket directly.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from cloudbr.config import BackupKind, OrchestratorConfig, StorageScheme
from cloudbr.exceptions import PreconditionError

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")
_SECRET_PARAMS = {"access-key", "secret-access-key"}


@dataclass(frozen=True)
class StorageTarget:
    """Remote location of one backup artifact."""

    uri: str
    session_id: str
    kind: BackupKind

    def __str__(self) -> str:
        return redact_uri(self.uri)


def validate_session_id(session_id: str) -> str:
    """
    Check that a session id can be used as a storage path segment.

    Raises:
        PreconditionError: If the id is empty or contains unsafe characters
    """
    if not session_id or not _SESSION_ID_RE.match(session_id):
        raise PreconditionError(
            f"Invalid backup session id: {session_id!r}",
            details={"session_id": session_id},
        )
    return session_id


def _query_params(config: OrchestratorConfig) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = []
    if StorageScheme(config.scheme) is not StorageScheme.S3:
        return params
    if config.access_key:
        params.append(("access-key", config.access_key))
        params.append(("secret-access-key", config.secret_key))
    if config.endpoint:
        params.append(("endpoint", config.endpoint))
    if config.force_path_style:
        params.append(("force-path-style", "true"))
    return params


def storage_target(
    config: OrchestratorConfig,
    session_id: str,
    kind: BackupKind | str,
) -> StorageTarget:
    """
    Build the storage target for one artifact of a session.

    This is a pure function of its inputs: the same config, session id
    and kind always yield the same URI.

    Args:
        config: Orchestrator configuration (bucket, prefix, endpoint, credentials)
        session_id: Backup session identifier
        kind: Artifact kind ('full' or 'inc')

    Returns:
        StorageTarget for the artifact
    """
    validate_session_id(session_id)
    kind = BackupKind(kind)
    scheme = StorageScheme(config.scheme).value

    segments = [segment for segment in config.prefix.split("/") if segment]
    segments.extend([session_id, kind.value])
    path = "/" + "/".join(segments)

    query = urlencode(_query_params(config))
    uri = urlunsplit((scheme, config.bucket, path, query, ""))
    return StorageTarget(uri=uri, session_id=session_id, kind=kind)


def session_targets(config: OrchestratorConfig, session_id: str) -> Tuple[StorageTarget, StorageTarget]:
    """Return the (full, incremental) targets of a session."""
    return (
        storage_target(config, session_id, BackupKind.FULL),
        storage_target(config, session_id, BackupKind.INCREMENTAL),
    )


def redact_uri(uri: str) -> str:
    """Mask credential parameters in a storage URI for logging."""
    parts = urlsplit(uri)
    if not parts.query:
        return uri
    params = [
        (key, "***" if key in _SECRET_PARAMS else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(params, safe="*")))

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Cluster topology boundary.

Topology discovery lives outside cloudbr. Workflows only need the
cluster's base version and its nodes filtered by role, which providers
supply through the TopologyProvider protocol.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Tuple

from cloudbr.errors import explain_invalid_cluster_name
from cloudbr.exceptions import PreconditionError

_CLUSTER_NAME_RE = re.compile(r"^[a-zA-Z0-9\-_\.]+$")

ROLE_PD = "pd"
ROLE_CDC = "cdc"


def validate_cluster_name(name: str) -> str:
    """
    Check a cluster name syntactically.

    Raises:
        PreconditionError: If the name is empty or has forbidden characters
    """
    if not name or not _CLUSTER_NAME_RE.match(name):
        raise PreconditionError(
            explain_invalid_cluster_name(name),
            details={"cluster": name},
        )
    return name


@dataclass(frozen=True)
class Instance:
    """One deployed node of a cluster."""

    role: str
    host: str
    port: int

    @property
    def address(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass(frozen=True)
class ClusterMetadata:
    """What the workflows need to know about a deployed cluster."""

    name: str
    version: str
    instances: Tuple[Instance, ...] = field(default_factory=tuple)

    def instances_by_role(self, role: str) -> List[Instance]:
        """Nodes with the given role, in topology order."""
        return [instance for instance in self.instances if instance.role == role]

    def control_plane_address(self) -> str | None:
        """Address of the first pd node, or None if the cluster has none."""
        pd_nodes = self.instances_by_role(ROLE_PD)
        if not pd_nodes:
            return None
        return pd_nodes[0].address


class TopologyProvider(Protocol):
    """Looks up deployed clusters by name."""

    def get_cluster(self, name: str) -> ClusterMetadata:
        """
        Return the metadata of a cluster.

        Raises:
            PreconditionError: If the cluster is unknown
        """
        ...


class StaticTopologyProvider:
    """In-memory provider, for embedding callers and tests."""

    def __init__(self, clusters: List[ClusterMetadata] | None = None) -> None:
        self._clusters: Dict[str, ClusterMetadata] = {}
        for cluster in clusters or []:
            self.add(cluster)

    def add(self, cluster: ClusterMetadata) -> None:
        self._clusters[cluster.name] = cluster

    def get_cluster(self, name: str) -> ClusterMetadata:
        try:
            return self._clusters[name]
        except KeyError:
            raise PreconditionError(
                f"Cluster '{name}' not found",
                details={"cluster": name},
            ) from None

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Client for the control plane's cluster and checkpoint endpoints.

Endpoints:
    GET  {base_url}/api/v1/clusters/{cluster_id}   cluster setup status
    POST {base_url}/api/v1/checkpoints             create a checkpoint
"""

from typing import Any, Dict

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from cloudbr.exceptions import CheckpointError

logger = structlog.get_logger()

SETUP_FINISHED = "finish"


class ClusterStatus(BaseModel):
    """Setup state of a cloud cluster."""

    id: str = ""
    name: str = ""
    setup_status: str = ""

    @property
    def ready(self) -> bool:
        return self.setup_status == SETUP_FINISHED


class ClusterInfoResponse(BaseModel):
    cluster: ClusterStatus


class CreateCheckpointRequest(BaseModel):
    """A point-in-time backup progress report."""

    auth_key: str
    cluster_id: str
    upload_status: str = SETUP_FINISHED
    upload_progress: int = Field(default=100, ge=0, le=100)
    checkpoint_time: int  # Unix epoch milliseconds
    url: str
    backup_size: int = Field(default=0, ge=0)
    operator: str = "pingcap"


class CheckpointResponse(BaseModel):
    id: str = ""
    cluster_id: str = ""
    checkpoint_time: int | None = None

    def __str__(self) -> str:
        return self.id or f"{self.cluster_id}@{self.checkpoint_time}"


class CheckpointAPI:
    """
    Async client for the control plane.

    Use as an async context manager, or call aclose() when done.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CheckpointAPI":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "checkpoint_api_error",
                path=path,
                status_code=e.response.status_code,
                error=e.response.text[:500],
            )
            raise CheckpointError(
                f"Control plane returned HTTP {e.response.status_code}",
                details={"path": path, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise CheckpointError(
                f"Control plane request failed: {e}",
                details={"path": path},
            ) from e
        except ValueError as e:
            raise CheckpointError(
                "Control plane returned a non-JSON response",
                details={"path": path},
            ) from e

        if not isinstance(payload, dict):
            raise CheckpointError(
                "Control plane returned an unexpected payload",
                details={"path": path},
            )
        return payload

    async def get_cluster(self, cluster_id: str, auth_key: str) -> ClusterStatus:
        """
        Fetch the setup status of a cluster.

        Raises:
            CheckpointError: On transport, HTTP or payload errors
        """
        payload = await self._request(
            "GET",
            f"/api/v1/clusters/{cluster_id}",
            params={"auth_key": auth_key},
        )
        try:
            return ClusterInfoResponse.model_validate(payload).cluster
        except ValidationError as e:
            raise CheckpointError(
                "Malformed cluster status",
                details={"cluster_id": cluster_id, "errors": e.errors()},
            ) from e

    async def create_checkpoint(self, request: CreateCheckpointRequest) -> CheckpointResponse:
        """
        Submit a checkpoint.

        Raises:
            CheckpointError: On transport, HTTP or payload errors
        """
        payload = await self._request(
            "POST",
            "/api/v1/checkpoints",
            json=request.model_dump(),
        )
        try:
            return CheckpointResponse.model_validate(payload)
        except ValidationError as e:
            raise CheckpointError(
                "Malformed checkpoint response",
                details={"cluster_id": request.cluster_id, "errors": e.errors()},
            ) from e

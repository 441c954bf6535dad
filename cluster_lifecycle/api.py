"""Async client for the cluster manager and metadata REST services."""

from typing import Protocol

import httpx

from cluster_lifecycle.exceptions import ApiError
from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.models.cluster import PersistedClusterSnapshot, split_template
from cluster_lifecycle.models.node import NodeSelection

logger = get_logger(__name__)


class ClusterBackend(Protocol):
    """Backend operations the lifecycle controller issues."""

    async def get_cluster(self, name: str) -> PersistedClusterSnapshot: ...

    async def create_cluster(self, cluster_spec: dict) -> None: ...

    async def update_template(self, name: str, template: str) -> None: ...

    async def update_labels(self, name: str, labels: dict[str, str]) -> None: ...

    async def update_nodes(self, name: str, nodes: list[NodeSelection]) -> None: ...

    async def create_or_update_metadata(self, metadata: list[dict]) -> None: ...


def _error_detail(response: httpx.Response) -> str | None:
    """Pull the backend's error message out of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        return body.get("message") or body.get("detail") or None
    return None


class ClusterManagerClient:
    """ClusterBackend implementation over ``httpx.AsyncClient``."""

    def __init__(
        self,
        api_url: str,
        project_name: str,
        metadata_url: str | None = None,
        timeout: float = 30.0,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_url: Base URL of the cluster manager API
            project_name: Project the clusters belong to
            metadata_url: Base URL of the metadata service (defaults to api_url)
            timeout: Request timeout in seconds
            verify: Verify TLS certificates
            transport: Optional transport, used by tests
        """
        self.project_name = project_name
        self._clusters = httpx.AsyncClient(
            base_url=api_url, timeout=timeout, verify=verify, transport=transport
        )
        self._metadata = httpx.AsyncClient(
            base_url=metadata_url or api_url, timeout=timeout, verify=verify, transport=transport
        )

    @classmethod
    def from_config(cls, config, transport: httpx.AsyncBaseTransport | None = None):
        """Build a client from a ConsoleConfig."""
        return cls(
            api_url=config.api_url,
            project_name=config.project_name,
            metadata_url=config.metadata_url,
            timeout=config.timeout,
            verify=config.verify_tls,
            transport=transport,
        )

    async def __aenter__(self) -> "ClusterManagerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._clusters.aclose()
        await self._metadata.aclose()

    def _cluster_path(self, name: str, suffix: str = "") -> str:
        return f"/v2/projects/{self.project_name}/clusters/{name}{suffix}"

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs):
        logger.debug(f"{method} {url}")
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise ApiError(f"Request to {url} failed", str(e))

        if response.is_error:
            detail = _error_detail(response)
            logger.error(f"{method} {url} returned {response.status_code}: {detail}")
            raise ApiError(
                f"{method} {url} returned {response.status_code}",
                detail,
                status_code=response.status_code,
            )
        return response

    async def get_cluster(self, name: str) -> PersistedClusterSnapshot:
        """Fetch the persisted state of a cluster."""
        response = await self._request(self._clusters, "GET", self._cluster_path(name))
        return PersistedClusterSnapshot.from_cluster_detail(response.json())

    async def create_cluster(self, cluster_spec: dict) -> None:
        await self._request(
            self._clusters,
            "POST",
            f"/v2/projects/{self.project_name}/clusters",
            json=cluster_spec,
        )

    async def update_template(self, name: str, template: str) -> None:
        template_name, version = split_template(template)
        await self._request(
            self._clusters,
            "PUT",
            self._cluster_path(name, "/template"),
            json={"name": template_name, "version": version},
        )

    async def update_labels(self, name: str, labels: dict[str, str]) -> None:
        await self._request(
            self._clusters, "PUT", self._cluster_path(name, "/labels"), json={"labels": labels}
        )

    async def update_nodes(self, name: str, nodes: list[NodeSelection]) -> None:
        await self._request(
            self._clusters,
            "PUT",
            self._cluster_path(name, "/nodes"),
            json=[node.to_node_spec() for node in nodes],
        )

    async def create_or_update_metadata(self, metadata: list[dict]) -> None:
        await self._request(
            self._metadata,
            "POST",
            f"/v1/projects/{self.project_name}/metadata",
            json={"metadata": metadata},
        )

"""HTTP client for the IPFS Cluster REST API (add, pin status, unpin)."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from common.logging_config import get_logger
from uploader import config

logger = get_logger(__name__)


class ClusterClient:
    """
    Async client for cluster operations.
    Owns one connection pool for the lifetime of the service.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        """
        Args:
            base_url: Cluster REST API root (default: VAULT_CLUSTER_API)
            transport: Optional transport override (tests)
            timeout: Optional timeout override
        """
        self.base_url = (base_url or config.CLUSTER_API).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout or httpx.Timeout(
                config.CLUSTER_TIMEOUT_SECONDS,
                connect=config.CLUSTER_CONNECT_TIMEOUT_SECONDS,
            ),
        )
        logger.info(f"Initialized ClusterClient [base_url={self.base_url}]")

    async def close(self):
        """Close the connection pool."""
        await self._client.aclose()

    @asynccontextmanager
    async def add(
        self,
        body: AsyncIterator[bytes],
        content_type: str,
        replication_min: int,
        replication_max: int,
    ) -> AsyncIterator[httpx.Response]:
        """
        Stream a multipart body to the add endpoint.

        The response is yielded unread so the caller can consume the
        newline-delimited result records incrementally; it is closed when
        the block exits.

        Args:
            body: Multipart body, produced lazily
            content_type: multipart/form-data content type including boundary
            replication_min: Minimum number of cluster peers to pin on
            replication_max: Maximum number of cluster peers to pin on

        Raises:
            httpx.HTTPError: On transport failure
        """
        params = {
            "recursive": "true",
            "wrap-with-directory": "true",
            "replication-min": str(replication_min),
            "replication-max": str(replication_max),
        }

        async with self._client.stream(
            "POST",
            "/add",
            params=params,
            content=body,
            headers={"Content-Type": content_type},
        ) as response:
            logger.debug(f"Cluster add responded with status {response.status_code}")
            yield response

    async def pin_status(self, cid: str) -> httpx.Response:
        """
        Fetch the cluster pin status for a CID.

        Returns:
            The raw response; callers decide how to treat non-2xx
        """
        return await self._client.get(f"/pins/{cid}")

    async def unpin(self, cid: str) -> bool:
        """
        Ask the cluster to unpin a CID.

        Returns:
            True if the cluster accepted the request

        Raises:
            httpx.HTTPError: On transport failure
        """
        response = await self._client.delete(f"/pins/{cid}")
        if response.is_success:
            logger.info(f"Unpinned {cid} from cluster")
        else:
            logger.warning(f"Cluster refused unpin of {cid}: status={response.status_code}")
        return response.is_success

    async def ping(self) -> bool:
        """
        Check if the cluster API is reachable.

        Returns:
            True if the cluster responds, False otherwise
        """
        try:
            response = await self._client.get("/id", timeout=5)
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning(f"Cluster ping failed: {e}")
            return False

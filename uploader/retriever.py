"""Ordered, failover-aware retrieval of content from IPFS read gateways."""

from typing import AsyncIterator, List, Optional, Sequence

import httpx

from common.logging_config import get_logger
from uploader import config
from uploader.exceptions import AllReplicasUnavailableError
from uploader.types import RetrievedContent

logger = get_logger(__name__)

REJECTED_CONTENT_TYPE = "text/html"


def is_acceptable(response: httpx.Response) -> bool:
    """
    Decide whether a gateway response carries real content.

    A response is accepted iff it has a success status and a Content-Type
    that is present and not exactly "text/html". Gateways answer with their
    own HTML error pages, so an HTML body is treated as a miss. The match is
    exact: "text/html; charset=utf-8" is accepted.
    """
    content_type = response.headers.get("content-type")
    return response.is_success and bool(content_type) and content_type != REJECTED_CONTENT_TYPE


async def _stream_body(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for piece in response.aiter_bytes():
            yield piece
    finally:
        await response.aclose()


class ReplicaRetriever:
    """
    Sequential failover scan over a fixed, ordered list of gateways.

    Each gateway gets exactly one attempt, bounded by the per-attempt
    timeout; there is no retry against the same gateway and no backoff.
    """

    def __init__(
        self,
        gateways: Optional[Sequence[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            gateways: Gateway base URLs in priority order (default: VAULT_IPFS_GATEWAYS)
            transport: Optional transport override (tests)
            timeout_seconds: Per-attempt timeout (default: VAULT_GATEWAY_TIMEOUT)
        """
        self.gateways: List[str] = [g.rstrip("/") for g in (gateways if gateways is not None else config.IPFS_GATEWAYS)]
        timeout = timeout_seconds if timeout_seconds is not None else config.GATEWAY_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(transport=transport, timeout=httpx.Timeout(timeout))

    async def close(self):
        """Close the connection pool."""
        await self._client.aclose()

    async def fetch(
        self,
        cid: str,
        preferred_filename: Optional[str] = None,
        archive_format: Optional[str] = None,
    ) -> RetrievedContent:
        """
        Open a stream of the content for ``cid`` from the first gateway that
        serves acceptable content.

        Args:
            cid: Content identifier to fetch
            preferred_filename: Name for the Content-Disposition hint (default: the CID)
            archive_format: Optional gateway export format ("tar" or "car") for directories

        Returns:
            RetrievedContent whose body streams the accepted response and
            closes it when exhausted or abandoned

        Raises:
            AllReplicasUnavailableError: If every gateway errored or was rejected
        """
        attempts = []
        params = {"format": archive_format} if archive_format else None

        for index, gateway in enumerate(self.gateways):
            url = f"{gateway}/{cid}"
            try:
                request = self._client.build_request("GET", url, params=params)
                response = await self._client.send(request, stream=True)
            except httpx.HTTPError as e:
                logger.warning(f"{gateway} fetch error: {e}")
                attempts.append((gateway, f"error: {e}"))
                continue

            if not is_acceptable(response):
                content_type = response.headers.get("content-type")
                logger.warning(
                    f"{gateway} rejected for {cid}: status={response.status_code} "
                    f"content-type={content_type!r}"
                )
                attempts.append((gateway, f"status={response.status_code} content-type={content_type}"))
                await response.aclose()
                continue

            logger.info(f"Serving {cid} from {gateway} (attempt {index + 1}/{len(self.gateways)})")
            return RetrievedContent(
                cid=cid,
                gateway=gateway,
                filename=preferred_filename or cid,
                content_type=response.headers["content-type"],
                content_length=None if "content-encoding" in response.headers else response.headers.get("content-length"),
                body=_stream_body(response),
            )

        logger.error(f"Download failed from all nodes for {cid}")
        raise AllReplicasUnavailableError(cid, attempts)

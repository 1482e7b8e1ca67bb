"""Lifecycle and injection of long-lived service components."""

from typing import Optional

from fastapi import FastAPI, Request

from common.logging_config import get_logger
from uploader.cluster_client import ClusterClient
from uploader.retriever import ReplicaRetriever
from uploader.services.vault_service import VaultService

logger = get_logger(__name__)


def open_vault_service(app: FastAPI, service: Optional[VaultService] = None) -> VaultService:
    """
    Create the service with its connection pools and attach it to the app.

    Args:
        app: Application whose state holds the service
        service: Prebuilt service (tests); built from config when omitted
    """
    if service is None:
        service = VaultService(
            cluster_client=ClusterClient(),
            retriever=ReplicaRetriever(),
        )
    app.state.vault_service = service
    logger.info(
        f"Vault service ready [cluster={service.cluster_client.base_url}] "
        f"[gateways={len(service.retriever.gateways)}]"
    )
    return service


async def close_vault_service(app: FastAPI) -> None:
    """Close connection pools opened by open_vault_service."""
    service: Optional[VaultService] = getattr(app.state, "vault_service", None)
    if service is None:
        return

    await service.cluster_client.close()
    await service.retriever.close()
    app.state.vault_service = None
    logger.info("Vault service closed")


def get_vault_service(request: Request) -> VaultService:
    """
    FastAPI dependency returning the service bound to the running app.

    Raises:
        RuntimeError: If the app was not started
    """
    service = getattr(request.app.state, "vault_service", None)
    if service is None:
        raise RuntimeError("Vault service not initialized")
    return service

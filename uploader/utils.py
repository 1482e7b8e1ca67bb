"""Utility helper functions for the Uploader."""

import time
import uuid
from typing import Mapping, Optional


def generate_uuid() -> str:
    """
    Generate a new UUID4 string.

    Returns:
        UUID4 string
    """
    return str(uuid.uuid4())


def default_folder_name() -> str:
    """
    Name used when a client uploads without a folder name.

    Returns:
        ``upload-<epoch milliseconds>``
    """
    return f"upload-{int(time.time() * 1000)}"


def get_client_ip(headers: Mapping[str, str], peer_host: Optional[str]) -> str:
    """
    Resolve the originating client address for audit.

    Args:
        headers: Request headers (case-insensitive mapping)
        peer_host: Transport-level peer address, if known

    Returns:
        First X-Forwarded-For hop, else X-Real-IP, else the peer, else "unknown"
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return peer_host or "unknown"

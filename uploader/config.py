"""Configuration settings for the Uploader service."""

import os
from common.constants import (
    DEFAULT_CLUSTER_API,
    DEFAULT_IPFS_GATEWAYS,
    DEFAULT_LIST_LIMIT,
    DEFAULT_REPLICATION_FACTOR,
    DEFAULT_SERVICE_PORT,
    MAX_UPLOAD_BYTES as DEFAULT_MAX_UPLOAD_BYTES,
)


def _split_list(value: str) -> list:
    return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]


DATABASE_PATH = os.environ.get("VAULT_DATABASE_PATH", "/app/data/ipfs-data.db")

UPLOADER_HOST = os.environ.get("VAULT_HOST", "0.0.0.0")

UPLOADER_PORT = int(os.environ.get("VAULT_PORT", str(DEFAULT_SERVICE_PORT)))

CLUSTER_API = os.environ.get("VAULT_CLUSTER_API", DEFAULT_CLUSTER_API).rstrip("/")

IPFS_GATEWAYS = _split_list(os.environ.get("VAULT_IPFS_GATEWAYS", ",".join(DEFAULT_IPFS_GATEWAYS)))

REPLICATION_MIN = int(os.environ.get("VAULT_REPLICATION_MIN", str(DEFAULT_REPLICATION_FACTOR)))
REPLICATION_MAX = int(os.environ.get("VAULT_REPLICATION_MAX", str(DEFAULT_REPLICATION_FACTOR)))

STAGING_DIR = os.environ.get("VAULT_STAGING_DIR", "uploads")

MAX_UPLOAD_BYTES = int(os.environ.get("VAULT_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES)))

# Parts per upload; empty means no limit.
_max_upload_files = os.environ.get("VAULT_MAX_UPLOAD_FILES", "")
MAX_UPLOAD_FILES = int(_max_upload_files) if _max_upload_files else None

# Per-gateway attempt; bounds connect and each read of the streamed body.
GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("VAULT_GATEWAY_TIMEOUT", "30"))

CLUSTER_CONNECT_TIMEOUT_SECONDS = float(os.environ.get("VAULT_CLUSTER_CONNECT_TIMEOUT", "10"))
# Large adds can take a long time; empty means no read timeout.
_cluster_timeout = os.environ.get("VAULT_CLUSTER_TIMEOUT", "")
CLUSTER_TIMEOUT_SECONDS = float(_cluster_timeout) if _cluster_timeout else None

LIST_LIMIT = int(os.environ.get("VAULT_LIST_LIMIT", str(DEFAULT_LIST_LIMIT)))

"""Project-wide constants (streaming piece sizes, default endpoints)."""

STREAM_PIECE_SIZE_BYTES: int = 1024 * 1024  # 1 MiB copy/stream buffer

MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024 * 1024  # 50 GiB

MAX_FORM_FIELD_BYTES: int = 64 * 1024  # non-file form fields (folderName)

DEFAULT_CLUSTER_API = "http://cluster0:9094"

DEFAULT_IPFS_GATEWAYS = (
    "http://ipfs1:8080/ipfs",
    "http://ipfs2:8080/ipfs",
    "http://ipfs3:8080/ipfs",
    "http://ipfs4:8080/ipfs",
)

DEFAULT_REPLICATION_FACTOR: int = 2

DEFAULT_LIST_LIMIT: int = 20
MAX_LIST_LIMIT: int = 100

UPLOAD_FIELD_NAME = "file"

DEFAULT_SERVICE_PORT: int = 3000

"""Custom exception classes for the Uploader."""

from typing import List, Tuple


class VaultException(Exception):
    """
    Base exception class for all upload/retrieval errors.
    """
    pass


class MissingPathError(VaultException):
    """
    Raised when an upload entry carries no usable relative path.
    """
    pass


class InvalidPathError(MissingPathError):
    """
    Raised when a relative path or tree name would escape the staged tree.
    """
    pass


class UploadTooLargeError(VaultException):
    """
    Raised when an upload exceeds the configured size ceiling.
    """
    pass


class MalformedUploadError(VaultException):
    """
    Raised when an upload body cannot be parsed as multipart/form-data.
    """
    pass


class TransportError(VaultException):
    """
    Raised on a generic I/O or network fault.
    """
    pass


class PublishError(VaultException):
    """
    Raised when the cluster add fails or the root CID cannot be resolved.
    """
    pass


class InvalidReplicationError(VaultException):
    """
    Raised when the requested replication range is not 0 < min <= max.
    """
    pass


class NotFoundError(VaultException):
    """
    Raised when a CID has no ledger record.
    """
    pass


class AllReplicasUnavailableError(VaultException):
    """
    Raised when every read gateway rejected the content or errored.
    """

    def __init__(self, cid: str, attempts: List[Tuple[str, str]]):
        self.cid = cid
        self.attempts = attempts
        reasons = "; ".join(f"{gateway}: {reason}" for gateway, reason in attempts)
        super().__init__(f"Download failed from all nodes for {cid} ({reasons or 'no gateways configured'})")

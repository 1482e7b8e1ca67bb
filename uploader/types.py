"""Uploader data type definitions."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Dict, List, Optional, Union
from urllib.parse import quote


@dataclass
class UploadEntry:
    """
    One file of a client upload.

    ``source`` is either a holding file on disk (moved into place) or a
    readable binary stream (copied into place piece by piece).
    """
    relative_path: str
    source: Union[Path, BinaryIO]
    size: Optional[int] = None


@dataclass
class ReceivedUpload:
    """
    Parts of one client upload as they came off the wire.

    File parts are held on disk, one holding file per entry; the remaining
    form fields are kept as text.
    """
    entries: List[UploadEntry] = field(default_factory=list)
    fields: Dict[str, str] = field(default_factory=dict)
    total_size: int = 0


@dataclass
class StagedTree:
    """
    A scratch directory tree owned by exactly one upload.

    ``root`` is ``workdir / name``; removing ``workdir`` removes everything.
    """
    name: str
    root: Path
    workdir: Path
    files: List[str] = field(default_factory=list)
    total_size: int = 0


@dataclass(frozen=True)
class PublishRecord:
    """
    One line of the cluster add response stream.

    ``name`` is None when the record carries no name field.
    """
    name: Optional[str]
    cid: str
    size: Optional[int] = None


@dataclass(frozen=True)
class PinDescriptor:
    """
    Cached description of a published tree, keyed by its root CID.
    """
    folder_name: str
    root_cid: str


@dataclass(frozen=True)
class FileRecord:
    """
    Ledger entry for one successful publish.
    """
    file_id: str
    filename: str
    cid: str
    size: int
    uploaded_at: datetime
    origin_ip: str


@dataclass
class RetrievedContent:
    """
    Content accepted from a read gateway, ready to be streamed to a client.
    """
    cid: str
    gateway: str
    filename: str
    content_type: str
    body: AsyncIterator[bytes]
    content_length: Optional[str] = None

    @property
    def content_disposition(self) -> str:
        safe_name = self.filename.replace('"', "'").replace("\r", "").replace("\n", "")
        try:
            safe_name.encode("latin-1")
        except UnicodeEncodeError:
            fallback = safe_name.encode("ascii", "replace").decode("ascii")
            return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(safe_name)}"
        return f'attachment; filename="{safe_name}"'

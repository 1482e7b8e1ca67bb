"""Utility functions for CLI operations."""

import os
import uuid
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from common.constants import STREAM_PIECE_SIZE_BYTES, UPLOAD_FIELD_NAME


def collect_folder_files(folder: Path) -> List[Tuple[str, Path]]:
    """
    List every regular file under a folder with its slash-separated path
    relative to that folder, in a stable order. Symlinks are not followed.

    Args:
        folder: Directory to upload

    Returns:
        (relative_path, absolute_path) pairs
    """
    collected = []
    for dirpath, dirnames, filenames in os.walk(folder, followlinks=False):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_symlink() or not path.is_file():
                continue
            collected.append((path.relative_to(folder).as_posix(), path))
    return collected


def _quote_form_value(value: str) -> str:
    """Escape a form-data parameter the way browsers do."""
    return value.replace('"', '%22').replace('\r', '%0D').replace('\n', '%0A')


class FolderUploadBody:
    """
    multipart/form-data body for a folder upload, produced lazily.

    Each file is opened only while its own part is being sent, so a folder
    of any size holds at most one file open. The length is known up front
    from the file sizes, so the body is sent with a Content-Length.
    """

    def __init__(self, folder_name: str, files: List[Tuple[str, Path]], boundary: Optional[str] = None):
        """
        Args:
            folder_name: Value of the folderName field
            files: (relative_path, path) pairs, as from collect_folder_files
            boundary: Multipart boundary (random by default)

        Raises:
            OSError: If a file cannot be stat'ed
        """
        self.boundary = boundary or uuid.uuid4().hex
        self.head = (
            f'--{self.boundary}\r\n'
            f'Content-Disposition: form-data; name="folderName"\r\n\r\n'
            f'{folder_name}\r\n'
        ).encode('utf-8')
        self.parts = [
            (self._part_header(relative), path, path.stat().st_size)
            for relative, path in files
        ]
        self.tail = f'--{self.boundary}--\r\n'.encode()

    def _part_header(self, relative_path: str) -> bytes:
        return (
            f'--{self.boundary}\r\n'
            f'Content-Disposition: form-data; name="{UPLOAD_FIELD_NAME}"; '
            f'filename="{_quote_form_value(relative_path)}"\r\n'
            'Content-Type: application/octet-stream\r\n\r\n'
        ).encode('utf-8')

    @property
    def content_type(self) -> str:
        return f'multipart/form-data; boundary={self.boundary}'

    @property
    def total_file_bytes(self) -> int:
        return sum(size for _, _, size in self.parts)

    def __len__(self) -> int:
        return (
            len(self.head)
            + sum(len(header) + size + 2 for header, _, size in self.parts)
            + len(self.tail)
        )

    def __iter__(self) -> Iterator[bytes]:
        yield self.head
        for header, path, _ in self.parts:
            yield header
            with open(path, 'rb') as f:
                while True:
                    piece = f.read(STREAM_PIECE_SIZE_BYTES)
                    if not piece:
                        break
                    yield piece
            yield b'\r\n'
        yield self.tail


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"

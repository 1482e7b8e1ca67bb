"""Stages a flat list of uploaded files into a directory tree on scratch space."""

import asyncio
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Optional, Sequence

from common.constants import STREAM_PIECE_SIZE_BYTES
from common.logging_config import get_logger
from uploader import config
from uploader.exceptions import InvalidPathError, MissingPathError, TransportError, UploadTooLargeError
from uploader.types import StagedTree, UploadEntry

logger = get_logger(__name__)

# Prefix of per-request holding directories for incoming parts.
HOLDING_PREFIX = "incoming"


def validate_tree_name(tree_name: str) -> str:
    """
    Check a tree name is a single, non-special path component.

    Raises:
        InvalidPathError: If the name is empty, '.', '..' or contains a separator
    """
    name = (tree_name or "").strip()
    if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidPathError(f"Invalid folder name: {tree_name!r}")
    return name


def normalize_relative_path(relative_path: str, index: int) -> PurePosixPath:
    """
    Validate a client-supplied relative path.

    Args:
        relative_path: Slash-separated path relative to the tree root
        index: Position of the entry in the upload, for error messages

    Returns:
        The path with empty and '.' segments removed

    Raises:
        MissingPathError: If the path is missing or empty
        InvalidPathError: If the path is absolute or climbs out of the tree
    """
    if not relative_path or not relative_path.strip():
        raise MissingPathError(f"Missing relative path for upload entry #{index}")

    if relative_path.startswith("/") or "\\" in relative_path or "\x00" in relative_path:
        raise InvalidPathError(f"Invalid relative path for upload entry #{index}: {relative_path!r}")

    parts = [part for part in relative_path.split("/") if part not in ("", ".")]
    if not parts or any(part == ".." for part in parts):
        raise InvalidPathError(f"Invalid relative path for upload entry #{index}: {relative_path!r}")

    return PurePosixPath(*parts)


class TreeAssembler:
    """
    Reconstructs uploaded files into a staged tree owned by one request.

    Each call to ``stage`` gets its own workdir, so concurrent uploads that
    share a folder name never touch the same scratch path. Filesystem work
    runs in the default executor so a large tree never stalls the event loop.
    """

    def __init__(self, staging_dir: Optional[str] = None, max_upload_bytes: Optional[int] = None):
        """
        Args:
            staging_dir: Parent directory for per-upload workdirs
            max_upload_bytes: Ceiling on the total staged size
        """
        self.staging_dir = Path(staging_dir or config.STAGING_DIR)
        self.max_upload_bytes = max_upload_bytes if max_upload_bytes is not None else config.MAX_UPLOAD_BYTES

    @asynccontextmanager
    async def holding_area(self) -> AsyncIterator[Path]:
        """
        Scratch directory for incoming parts, on the same filesystem as the
        staged trees so that placing a part is a rename. Removed on exit.
        """
        loop = asyncio.get_running_loop()
        holding = await loop.run_in_executor(None, self._make_workdir, HOLDING_PREFIX)
        try:
            yield holding
        finally:
            await loop.run_in_executor(None, self._cleanup, holding)

    @asynccontextmanager
    async def stage(self, entries: Sequence[UploadEntry], tree_name: str) -> AsyncIterator[StagedTree]:
        """
        Stage entries under a fresh tree and remove it when the block exits.

        Args:
            entries: Uploaded files with their relative paths
            tree_name: Name of the tree root directory

        Yields:
            The populated StagedTree

        Raises:
            MissingPathError: If an entry has no relative path
            InvalidPathError: If a path is unsafe or duplicated
            UploadTooLargeError: If the staged size exceeds the ceiling
            TransportError: On any filesystem failure
        """
        name = validate_tree_name(tree_name)
        relative_paths = self._validate_entries(entries)

        declared = sum(entry.size or 0 for entry in entries)
        if declared > self.max_upload_bytes:
            raise UploadTooLargeError(f"Upload of {declared} bytes exceeds {self.max_upload_bytes} bytes")

        loop = asyncio.get_running_loop()
        workdir = await loop.run_in_executor(None, self._make_workdir, name)

        tree = StagedTree(name=name, root=workdir / name, workdir=workdir)
        logger.info(f"Staging {len(entries)} file(s) for {name} in {workdir}")

        try:
            await loop.run_in_executor(None, self._populate, tree, entries, relative_paths)
            yield tree
        finally:
            await loop.run_in_executor(None, self._cleanup, workdir)

    def _make_workdir(self, prefix: str) -> Path:
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=f"{prefix}-", dir=self.staging_dir))
        except OSError as e:
            raise TransportError(f"Cannot create staging area for {prefix}: {e}") from e

    def _validate_entries(self, entries: Sequence[UploadEntry]):
        relative_paths = []
        seen = set()
        for index, entry in enumerate(entries):
            relative_path = normalize_relative_path(entry.relative_path, index)
            if relative_path in seen:
                raise InvalidPathError(f"Duplicate relative path in upload: {relative_path.as_posix()}")
            seen.add(relative_path)
            relative_paths.append(relative_path)
        return relative_paths

    def _populate(self, tree: StagedTree, entries: Sequence[UploadEntry], relative_paths) -> None:
        try:
            tree.root.mkdir(parents=True, exist_ok=True)
            for entry, relative_path in zip(entries, relative_paths):
                tree.total_size += self._place(entry, tree.root / relative_path)
                tree.files.append(relative_path.as_posix())

                if tree.total_size > self.max_upload_bytes:
                    raise UploadTooLargeError(
                        f"Upload exceeds {self.max_upload_bytes} bytes"
                    )
        except OSError as e:
            raise TransportError(f"Staging failed for {tree.name}: {e}") from e

    def _place(self, entry: UploadEntry, destination: Path) -> int:
        """Move or stream one entry to its destination; returns bytes placed."""
        destination.parent.mkdir(parents=True, exist_ok=True)

        if isinstance(entry.source, Path):
            shutil.move(str(entry.source), str(destination))
            return destination.stat().st_size

        written = 0
        with open(destination, "wb") as out:
            while True:
                piece = entry.source.read(STREAM_PIECE_SIZE_BYTES)
                if not piece:
                    break
                out.write(piece)
                written += len(piece)
        return written

    def _cleanup(self, workdir: Path) -> None:
        try:
            shutil.rmtree(workdir)
            logger.debug(f"Removed staging area {workdir}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Cleanup failed for {workdir}: {e}")

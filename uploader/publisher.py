"""Publishes a staged tree to the cluster and resolves its root CID."""

import asyncio
import json
import os
import uuid
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Iterator, List, Optional, Tuple
from urllib.parse import quote

import httpx

from common.constants import STREAM_PIECE_SIZE_BYTES, UPLOAD_FIELD_NAME
from common.logging_config import get_logger
from uploader.cluster_client import ClusterClient
from uploader.exceptions import InvalidReplicationError, PublishError
from uploader.types import PublishRecord, StagedTree

logger = get_logger(__name__)

ROOT_NAMES = ("", "/")


def walk_tree(root: Path, prefix: str) -> Iterator[Tuple[str, Path]]:
    """
    Depth-first walk yielding every regular file under ``root``.

    Uses an explicit work stack and never follows symlinks, so a link loop
    cannot make the walk diverge. Entries are visited in name order.

    Args:
        root: Directory to walk
        prefix: Path prepended to every yielded relative path

    Yields:
        (``prefix/relative/path``, absolute path) pairs
    """
    stack: List[Tuple[Path, str]] = [(root, prefix)]

    while stack:
        directory, base = stack.pop()
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)

        subdirs = []
        for entry in entries:
            relative = f"{base}/{entry.name}" if base else entry.name
            if entry.is_symlink():
                logger.warning(f"Skipping symlink in staged tree: {relative}")
            elif entry.is_dir(follow_symlinks=False):
                subdirs.append((Path(entry.path), relative))
            elif entry.is_file(follow_symlinks=False):
                yield relative, Path(entry.path)

        stack.extend(reversed(subdirs))


async def iter_multipart_body(
    files: List[Tuple[str, Path]],
    boundary: str,
) -> AsyncIterator[bytes]:
    """
    Encode files as a multipart/form-data body, one piece at a time.

    Each file is opened only while its part is being emitted, and every open
    and read runs in the default executor. The filename of every part carries
    the tree-relative path, which is what lets the cluster rebuild the
    directory structure.
    """
    loop = asyncio.get_running_loop()
    delimiter = f"--{boundary}\r\n".encode()

    for relative_path, path in files:
        header = (
            f'Content-Disposition: form-data; name="{UPLOAD_FIELD_NAME}"; '
            f'filename="{quote(relative_path, safe="")}"\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
        ).encode()
        yield delimiter + header

        f = await loop.run_in_executor(None, open, path, "rb")
        try:
            while True:
                piece = await loop.run_in_executor(None, f.read, STREAM_PIECE_SIZE_BYTES)
                if not piece:
                    break
                yield piece
        finally:
            f.close()

        yield b"\r\n"

    yield f"--{boundary}--\r\n".encode()


def parse_publish_record(line: str) -> PublishRecord:
    """
    Decode one line of the add response.

    The cid may be a plain string or a link object ``{"/": "<cid>"}``.

    Raises:
        PublishError: If the line is not a JSON object with a usable cid
    """
    try:
        obj = json.loads(line)
    except json.JSONDecodeError as e:
        raise PublishError(f"Malformed cluster add record: {line[:200]!r}") from e

    if not isinstance(obj, dict):
        raise PublishError(f"Unexpected cluster add record: {line[:200]!r}")

    cid = obj.get("cid")
    if isinstance(cid, dict):
        cid = cid.get("/")
    if not isinstance(cid, str) or not cid:
        raise PublishError(f"Cluster add record has no cid: {line[:200]!r}")

    size = obj.get("size")
    try:
        size = int(size) if size is not None else None
    except (TypeError, ValueError):
        size = None

    name = obj.get("name")
    if name is not None and not isinstance(name, str):
        name = str(name)

    return PublishRecord(name=name, cid=cid, size=size)


async def iter_publish_records(lines: AsyncIterable[str]) -> AsyncIterator[PublishRecord]:
    """
    Lazily decode a newline-delimited stream of add records.

    Blank lines are skipped. The underlying stream is consumed once.
    """
    async for line in lines:
        line = line.strip()
        if not line:
            continue
        yield parse_publish_record(line)


def is_root_record(record: PublishRecord, tree_name: str) -> bool:
    if record.name is None:
        return False
    return record.name in ROOT_NAMES or record.name == tree_name


async def resolve_root_cid(records: AsyncIterable[PublishRecord], tree_name: str) -> Optional[str]:
    """
    Pick the root CID out of an add record stream.

    The first record named "", "/" or the tree name wins. The stream is
    always read to the end, even once a match is found.

    Returns:
        The root CID, or None if no record matched
    """
    root_cid = None
    count = 0

    async for record in records:
        count += 1
        if root_cid is None and is_root_record(record, tree_name):
            root_cid = record.cid
        elif root_cid is not None and is_root_record(record, tree_name):
            logger.warning(
                f"Additional root candidate ignored for {tree_name}: "
                f"name={record.name!r} cid={record.cid}"
            )

    logger.debug(f"Read {count} add record(s) for {tree_name}")
    return root_cid


class ClusterPublisher:
    """
    Streams staged trees to the cluster add operation.

    Publishing is fail-fast: no retries happen here.
    """

    def __init__(self, cluster_client: ClusterClient):
        self.cluster_client = cluster_client

    async def publish(self, tree: StagedTree, min_replicas: int, max_replicas: int) -> str:
        """
        Add a staged tree to the cluster with the given replication range.

        Args:
            tree: Staged tree to publish
            min_replicas: replication-min for the pin
            max_replicas: replication-max for the pin

        Returns:
            The root CID of the wrapped tree

        Raises:
            InvalidReplicationError: If not 0 < min_replicas <= max_replicas
            PublishError: On a non-success status, transport failure,
                malformed record or unresolved root
        """
        if not 0 < min_replicas <= max_replicas:
            raise InvalidReplicationError(
                f"Invalid replication range: min={min_replicas} max={max_replicas}"
            )

        loop = asyncio.get_running_loop()
        try:
            files = await loop.run_in_executor(None, lambda: list(walk_tree(tree.root, tree.name)))
        except OSError as e:
            raise PublishError(f"Cannot read staged tree {tree.name}: {e}") from e
        if not files:
            raise PublishError(f"Staged tree {tree.name} contains no files")

        boundary = uuid.uuid4().hex
        content_type = f"multipart/form-data; boundary={boundary}"
        logger.info(
            f"Publishing {len(files)} file(s) for {tree.name} "
            f"[replication={min_replicas}..{max_replicas}]"
        )

        try:
            async with self.cluster_client.add(
                iter_multipart_body(files, boundary),
                content_type,
                min_replicas,
                max_replicas,
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise PublishError(
                        f"IPFS Cluster upload failed: status={response.status_code} {body[:500]}".rstrip()
                    )

                root_cid = await resolve_root_cid(
                    iter_publish_records(response.aiter_lines()),
                    tree.name,
                )
        except httpx.HTTPError as e:
            raise PublishError(f"IPFS Cluster upload failed: {e}") from e
        except OSError as e:
            raise PublishError(f"Cannot read staged tree {tree.name}: {e}") from e

        if not root_cid:
            raise PublishError("Root CID not found")

        logger.info(f"Published {tree.name} with root CID {root_cid}")
        return root_cid

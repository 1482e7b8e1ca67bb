"""Streams a multipart folder upload into holding files on disk."""

import asyncio
from pathlib import Path
from typing import AsyncIterable, Dict, List, Optional, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from common.constants import MAX_FORM_FIELD_BYTES, UPLOAD_FIELD_NAME
from common.logging_config import get_logger
from uploader.exceptions import MalformedUploadError, TransportError, UploadTooLargeError
from uploader.types import ReceivedUpload, UploadEntry

logger = get_logger(__name__)

FILE_PART = "file"
FIELD_PART = "field"
SKIPPED_PART = "skip"


class FolderUploadReceiver:
    """
    Incremental multipart/form-data reader for folder uploads.

    Every ``file`` part is written to its own holding file as it arrives, so
    no part is buffered in memory and the assembler can move each one into
    place. Parts without a filename are kept as form fields; file parts under
    any other field name are discarded.

    Parser callbacks only queue events; the queue is drained between chunks
    so that every open and write runs in the default executor.
    """

    def __init__(self, holding_dir: Path, max_upload_bytes: int, max_files: Optional[int] = None):
        """
        Args:
            holding_dir: Directory for holding files, removed by its owner
            max_upload_bytes: Ceiling on the total size of file parts
            max_files: Ceiling on the number of file parts (None: no limit)
        """
        self.holding_dir = holding_dir
        self.max_upload_bytes = max_upload_bytes
        self.max_files = max_files
        self.upload = ReceivedUpload()

        self._events: List[Tuple[str, object]] = []
        self._headers: Dict[bytes, bytes] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()

        self._part_kind: Optional[str] = None
        self._part_name = ""
        self._relative_path = ""
        self._holding_path: Optional[Path] = None
        self._handle = None
        self._written = 0
        self._field_value = bytearray()

    async def receive(self, content_type: str, chunks: AsyncIterable[bytes]) -> ReceivedUpload:
        """
        Read the whole body and return what it carried.

        A body that is not multipart/form-data yields an empty upload.

        Raises:
            MalformedUploadError: If the body cannot be parsed or stops mid-part
            UploadTooLargeError: If a size or file-count ceiling is exceeded
            TransportError: If a holding file cannot be written
        """
        media_type, params = parse_options_header(content_type)
        if media_type != b"multipart/form-data":
            logger.warning(f"Upload body is not multipart/form-data: {content_type!r}")
            return self.upload

        boundary = params.get(b"boundary")
        if not boundary:
            raise MalformedUploadError("Multipart upload has no boundary")

        parser = MultipartParser(boundary, {
            "on_part_begin": self._on_part_begin,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
        })
        loop = asyncio.get_running_loop()

        try:
            async for chunk in chunks:
                if not chunk:
                    continue
                parser.write(chunk)
                await self._drain(loop)
            parser.finalize()
            await self._drain(loop)
        except MultipartParseError as e:
            raise MalformedUploadError(f"Malformed multipart body: {e}") from e
        except OSError as e:
            raise TransportError(f"Cannot hold upload part: {e}") from e
        finally:
            if self._handle is not None:
                await loop.run_in_executor(None, self._handle.close)
                self._handle = None

        if self._part_kind is not None:
            raise MalformedUploadError("Upload body ended in the middle of a part")

        logger.info(
            f"Received {len(self.upload.entries)} file part(s) "
            f"[bytes={self.upload.total_size}] [fields={sorted(self.upload.fields)}]"
        )
        return self.upload

    # parser callbacks

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field = bytearray()
        self._header_value = bytearray()

    def _on_headers_finished(self) -> None:
        self._events.append(("begin", self._headers))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", bytes(data[start:end])))

    def _on_part_end(self) -> None:
        self._events.append(("end", None))

    # event handling

    async def _drain(self, loop: asyncio.AbstractEventLoop) -> None:
        events, self._events = self._events, []
        for kind, payload in events:
            if kind == "begin":
                await self._begin_part(loop, payload)
            elif kind == "data":
                await self._write_part(loop, payload)
            else:
                await self._end_part(loop)

    async def _begin_part(self, loop: asyncio.AbstractEventLoop, headers: Dict[bytes, bytes]) -> None:
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        self._part_name = options.get(b"name", b"").decode("utf-8", errors="replace")
        self._written = 0

        if b"filename" not in options:
            self._part_kind = FIELD_PART
            self._field_value = bytearray()
            return

        if self._part_name != UPLOAD_FIELD_NAME:
            logger.debug(f"Ignoring file part in field {self._part_name!r}")
            self._part_kind = SKIPPED_PART
            return

        if self.max_files is not None and len(self.upload.entries) >= self.max_files:
            raise UploadTooLargeError(f"Upload has more than {self.max_files} files")

        self._part_kind = FILE_PART
        self._relative_path = options[b"filename"].decode("utf-8", errors="replace")
        self._holding_path = self.holding_dir / f"part-{len(self.upload.entries):06d}"
        self._handle = await loop.run_in_executor(None, open, self._holding_path, "wb")

    async def _write_part(self, loop: asyncio.AbstractEventLoop, data: bytes) -> None:
        if self._part_kind == FILE_PART:
            self.upload.total_size += len(data)
            if self.upload.total_size > self.max_upload_bytes:
                raise UploadTooLargeError(f"Upload exceeds {self.max_upload_bytes} bytes")
            await loop.run_in_executor(None, self._handle.write, data)
            self._written += len(data)

        elif self._part_kind == FIELD_PART:
            self._field_value += data
            if len(self._field_value) > MAX_FORM_FIELD_BYTES:
                raise UploadTooLargeError(
                    f"Form field {self._part_name!r} exceeds {MAX_FORM_FIELD_BYTES} bytes"
                )

    async def _end_part(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._part_kind == FILE_PART:
            handle, self._handle = self._handle, None
            await loop.run_in_executor(None, handle.close)
            self.upload.entries.append(UploadEntry(
                relative_path=self._relative_path,
                source=self._holding_path,
                size=self._written,
            ))

        elif self._part_kind == FIELD_PART:
            self.upload.fields[self._part_name] = self._field_value.decode("utf-8", errors="replace")

        self._part_kind = None

"""Tests for reading multipart folder uploads into holding files."""

import httpx
import pytest

from uploader.exceptions import MalformedUploadError, UploadTooLargeError
from uploader.upload_receiver import FolderUploadReceiver


def encode(files, data=None):
    """Encode a form the way an httpx client would send it."""
    request = httpx.Request('POST', 'http://uploader/upload-folder', files=files, data=data)
    return request.headers['content-type'], request.read()


async def chunked(body: bytes, size: int):
    for start in range(0, len(body), size):
        yield body[start:start + size]


@pytest.fixture
def holding(tmp_path):
    path = tmp_path / 'incoming'
    path.mkdir()
    return path


@pytest.fixture
def photos_form():
    return encode(
        files=[
            ('file', ('a.txt', b'alpha', 'text/plain')),
            ('file', ('b/c.txt', b'charlie', 'text/plain')),
        ],
        data={'folderName': 'photos'},
    )


class TestReceive:
    """Test FolderUploadReceiver.receive."""

    @pytest.mark.asyncio
    async def test_file_parts_land_in_holding_files(self, holding, photos_form):
        content_type, body = photos_form

        upload = await FolderUploadReceiver(holding, max_upload_bytes=1024).receive(content_type, chunked(body, 64 * 1024))

        assert [entry.relative_path for entry in upload.entries] == ['a.txt', 'b/c.txt']
        assert [entry.source.read_bytes() for entry in upload.entries] == [b'alpha', b'charlie']
        assert all(entry.source.parent == holding for entry in upload.entries)
        assert [entry.size for entry in upload.entries] == [5, 7]
        assert upload.fields == {'folderName': 'photos'}
        assert upload.total_size == 12

    @pytest.mark.asyncio
    @pytest.mark.parametrize('size', [1, 3, 17])
    async def test_boundaries_split_across_chunks(self, holding, photos_form, size):
        content_type, body = photos_form

        upload = await FolderUploadReceiver(holding, max_upload_bytes=1024).receive(content_type, chunked(body, size))

        assert [entry.source.read_bytes() for entry in upload.entries] == [b'alpha', b'charlie']
        assert upload.fields == {'folderName': 'photos'}

    @pytest.mark.asyncio
    async def test_more_than_a_thousand_parts(self, holding):
        content_type, body = encode(files=[('file', (f'd/f{i}.txt', b'x', 'text/plain')) for i in range(1500)])

        upload = await FolderUploadReceiver(holding, max_upload_bytes=1 << 20).receive(content_type, chunked(body, 8192))

        assert len(upload.entries) == 1500
        assert upload.entries[-1].relative_path == 'd/f1499.txt'
        assert len(list(holding.iterdir())) == 1500

    @pytest.mark.asyncio
    async def test_file_count_ceiling(self, holding):
        content_type, body = encode(files=[('file', (f'f{i}.txt', b'x', 'text/plain')) for i in range(3)])

        with pytest.raises(UploadTooLargeError):
            await FolderUploadReceiver(holding, max_upload_bytes=1024, max_files=2).receive(content_type, chunked(body, 64))

    @pytest.mark.asyncio
    async def test_size_ceiling_while_streaming(self, holding):
        content_type, body = encode(files=[('file', ('big.bin', b'x' * 100, 'application/octet-stream'))])

        with pytest.raises(UploadTooLargeError):
            await FolderUploadReceiver(holding, max_upload_bytes=10).receive(content_type, chunked(body, 16))

    @pytest.mark.asyncio
    async def test_file_parts_under_other_names_ignored(self, holding):
        content_type, body = encode(files=[('attachment', ('a.txt', b'alpha', 'text/plain'))])

        upload = await FolderUploadReceiver(holding, max_upload_bytes=1024).receive(content_type, chunked(body, 64))

        assert upload.entries == []
        assert list(holding.iterdir()) == []

    @pytest.mark.asyncio
    async def test_non_multipart_body_has_no_files(self, holding):
        upload = await FolderUploadReceiver(holding, max_upload_bytes=1024).receive(
            'application/x-www-form-urlencoded',
            chunked(b'folderName=photos', 64),
        )

        assert upload.entries == []
        assert upload.fields == {}

    @pytest.mark.asyncio
    async def test_missing_boundary(self, holding):
        with pytest.raises(MalformedUploadError):
            await FolderUploadReceiver(holding, max_upload_bytes=1024).receive('multipart/form-data', chunked(b'', 64))

    @pytest.mark.asyncio
    async def test_garbage_body(self, holding):
        with pytest.raises(MalformedUploadError):
            await FolderUploadReceiver(holding, max_upload_bytes=1024).receive(
                'multipart/form-data; boundary=BOUNDARY',
                chunked(b'this is not a multipart body', 64),
            )

    @pytest.mark.asyncio
    async def test_body_cut_mid_part(self, holding):
        content_type, body = encode(files=[('file', ('big.bin', b'x' * 1000, 'application/octet-stream'))])

        with pytest.raises(MalformedUploadError):
            await FolderUploadReceiver(holding, max_upload_bytes=4096).receive(content_type, chunked(body[:len(body) // 2], 64))

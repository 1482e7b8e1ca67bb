"""Tests for gateway failover retrieval."""

import httpx
import pytest

from uploader.exceptions import AllReplicasUnavailableError
from uploader.retriever import ReplicaRetriever, is_acceptable
from uploader.types import RetrievedContent

from helpers import GATEWAYS, ROOT_CID, gateway_transport


def octet(data: bytes = b'payload') -> httpx.Response:
    return httpx.Response(200, content=data, headers={'content-type': 'application/octet-stream'})


def html(status: int = 200) -> httpx.Response:
    return httpx.Response(status, content=b'<html>gateway error</html>', headers={'content-type': 'text/html'})


async def read_all(content: RetrievedContent) -> bytes:
    return b''.join([piece async for piece in content.body])


class TestAcceptance:
    """Test the acceptance predicate."""

    def test_success_with_binary_type(self):
        assert is_acceptable(octet())

    def test_html_rejected(self):
        assert not is_acceptable(html())

    def test_missing_content_type_rejected(self):
        assert not is_acceptable(httpx.Response(200, content=b'x'))

    def test_error_status_rejected(self):
        response = httpx.Response(502, content=b'x', headers={'content-type': 'application/octet-stream'})
        assert not is_acceptable(response)

    def test_html_with_charset_accepted(self):
        response = httpx.Response(200, content=b'<p>hi</p>', headers={'content-type': 'text/html; charset=utf-8'})
        assert is_acceptable(response)


class TestFetch:
    """Test ReplicaRetriever.fetch."""

    @pytest.mark.asyncio
    async def test_fails_over_in_order(self):
        transport = gateway_transport({
            'ipfs1': html(),
            'ipfs2': httpx.ConnectError('connection refused'),
            'ipfs3': octet(b'from third'),
            'ipfs4': octet(b'from fourth'),
        })
        retriever = ReplicaRetriever(gateways=GATEWAYS, transport=transport)

        content = await retriever.fetch(ROOT_CID, 'photos')

        assert transport.hosts == ['ipfs1', 'ipfs2', 'ipfs3']
        assert content.gateway == 'http://ipfs3:8080/ipfs'
        assert content.content_type == 'application/octet-stream'
        assert content.content_disposition == 'attachment; filename="photos"'
        assert await read_all(content) == b'from third'
        await retriever.close()

    @pytest.mark.asyncio
    async def test_first_gateway_serves(self):
        transport = gateway_transport({'ipfs1': octet(b'first')})
        retriever = ReplicaRetriever(gateways=GATEWAYS, transport=transport)

        content = await retriever.fetch(ROOT_CID)

        assert transport.hosts == ['ipfs1']
        assert content.filename == ROOT_CID
        assert content.content_length == '5'
        assert await read_all(content) == b'first'
        await retriever.close()

    @pytest.mark.asyncio
    async def test_request_url_and_format(self):
        transport = gateway_transport({'ipfs1': octet()})
        retriever = ReplicaRetriever(gateways=GATEWAYS, transport=transport)

        content = await retriever.fetch(ROOT_CID, 'photos.tar', archive_format='tar')
        await read_all(content)

        request = transport.requests[0]
        assert request.url.path == f'/ipfs/{ROOT_CID}'
        assert request.url.params['format'] == 'tar'
        await retriever.close()

    @pytest.mark.asyncio
    async def test_all_gateways_fail(self):
        transport = gateway_transport({
            'ipfs1': html(),
            'ipfs2': httpx.ReadTimeout('timed out'),
            'ipfs3': httpx.Response(200, content=b'no type'),
            'ipfs4': html(status=504),
        })
        retriever = ReplicaRetriever(gateways=GATEWAYS, transport=transport)

        with pytest.raises(AllReplicasUnavailableError) as exc_info:
            await retriever.fetch(ROOT_CID)
        await retriever.close()

        assert transport.hosts == ['ipfs1', 'ipfs2', 'ipfs3', 'ipfs4']
        assert [gateway for gateway, _ in exc_info.value.attempts] == GATEWAYS
        assert exc_info.value.cid == ROOT_CID

    @pytest.mark.asyncio
    async def test_no_gateways(self):
        retriever = ReplicaRetriever(gateways=[], transport=gateway_transport({}))

        with pytest.raises(AllReplicasUnavailableError):
            await retriever.fetch(ROOT_CID)
        await retriever.close()


class TestContentDisposition:
    """Test download filename rendering."""

    def make(self, filename):
        async def empty():
            yield b''

        return RetrievedContent(
            cid=ROOT_CID,
            gateway=GATEWAYS[0],
            filename=filename,
            content_type='application/octet-stream',
            body=empty(),
        )

    def test_quotes_and_newlines_stripped(self):
        disposition = self.make('bad"name\r\n.txt').content_disposition
        assert disposition == 'attachment; filename="bad\'name.txt"'

    def test_non_latin_name_gets_encoded_form(self):
        disposition = self.make('фото').content_disposition
        assert disposition.startswith('attachment; filename="????"')
        assert "filename*=UTF-8''%D1%84%D0%BE%D1%82%D0%BE" in disposition

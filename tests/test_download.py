"""Tests for download utilities."""

import httpx
import pytest

from genailib.core.exceptions import DownloadError
from genailib.utils.download import Downloader, download_url


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDownloadUrl:
    """Tests for download_url()."""

    @pytest.mark.asyncio
    async def test_returns_body(self) -> None:
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=b"clip-bytes")

        async with _client(handler) as client:
            data = await download_url("https://cdn.test/clip.mp4", client=client)

        assert data == b"clip-bytes"
        assert requested == ["https://cdn.test/clip.mp4"]

    @pytest.mark.asyncio
    async def test_non_200_status(self) -> None:
        async with _client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(DownloadError) as exc_info:
                await download_url("https://cdn.test/missing.mp4", client=client)

        assert exc_info.value.details["status_code"] == 404
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_server_error_is_recoverable(self) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(DownloadError) as exc_info:
                await download_url("https://cdn.test/busy.mp4", client=client)
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(DownloadError, match="Download failed"):
                await download_url("https://cdn.test/clip.mp4", client=client)

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        async with _client(handler) as client:
            with pytest.raises(DownloadError, match="timed out") as exc_info:
                await download_url("https://cdn.test/clip.mp4", client=client)
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["http://127.0.0.1/clip.mp4", "file:///etc/passwd", "not a url"])
    async def test_rejected_urls_are_not_fetched(self, url: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("request should not be sent")

        async with _client(handler) as client:
            with pytest.raises(DownloadError, match="Refusing"):
                await download_url(url, client=client)

    @pytest.mark.asyncio
    async def test_allow_private(self) -> None:
        async with _client(lambda request: httpx.Response(200, content=b"ok")) as client:
            assert await download_url("http://127.0.0.1:9000/a", client=client, allow_private=True) == b"ok"


class TestDownloader:
    """Tests for the Downloader collaborator."""

    @pytest.mark.asyncio
    async def test_uses_bound_client(self) -> None:
        async with _client(lambda request: httpx.Response(200, content=b"song")) as client:
            downloader = Downloader(client=client)
            assert await downloader.download("https://cdn.test/song.mp3") == b"song"

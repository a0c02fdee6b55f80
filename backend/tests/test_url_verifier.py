"""Post-upload URL reachability checks."""
import asyncio

import httpx
import pytest

from services.url_verifier import verify_urls

pytestmark = pytest.mark.asyncio


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_reachable_and_missing_urls():
    def handler(request):
        assert request.method == "HEAD"
        return httpx.Response(200 if request.url.path.endswith("ok.pdf") else 404)

    async with _client(handler) as client:
        results = await verify_urls(
            ["https://files.test/ok.pdf", "https://files.test/gone.pdf"], timeout_seconds=1, client=client
        )
    assert results == {"https://files.test/ok.pdf": True, "https://files.test/gone.pdf": False}


async def test_connection_error_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        results = await verify_urls(["https://files.test/a.pdf"], timeout_seconds=1, client=client)
    assert results == {"https://files.test/a.pdf": False}


async def test_slow_url_times_out():
    async def handler(request):
        await asyncio.sleep(2)
        return httpx.Response(200)

    async with _client(handler) as client:
        results = await verify_urls(["https://files.test/slow.pdf"], timeout_seconds=0.05, client=client)
    assert results == {"https://files.test/slow.pdf": False}


async def test_empty_input():
    assert await verify_urls([]) == {}

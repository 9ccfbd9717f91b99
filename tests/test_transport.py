import asyncio
import socket

import pytest
from aiohttp import web

from smartaudit.client.api import ResilientApiClient
from smartaudit.client.errors import REFUSED, RESET, NetworkError
from smartaudit.client.transport import AiohttpTransport


async def _json(request):
    return web.json_response({"status": "analyzing"})


async def _malformed_json(request):
    return web.Response(text="{not json", content_type="application/json")


async def _html(request):
    return web.Response(text="<html>Bad Gateway</html>", status=502, content_type="text/html")


async def _truncated(request):
    resp = web.StreamResponse(status=200, headers={"Content-Type": "application/json"})
    resp.content_length = 1000
    await resp.prepare(request)
    await resp.write(b'{"status": "pen')
    request.transport.close()
    return resp


def serve(handler, fn):
    """Run ``fn(url)`` against a local server answering every GET with ``handler``."""

    async def main():
        app = web.Application()
        app.router.add_get("/{tail:.*}", handler)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        port = runner.addresses[0][1]
        transport = AiohttpTransport()
        try:
            return await fn(transport, f"http://127.0.0.1:{port}/api/audit/status/s1")
        finally:
            await transport.close()
            await runner.cleanup()

    return asyncio.run(main())


def test_json_body_is_decoded():
    resp = serve(_json, lambda t, url: t("GET", url))
    assert resp.ok
    assert resp.data == {"status": "analyzing"}


def test_malformed_json_becomes_a_message():
    resp = serve(_malformed_json, lambda t, url: t("GET", url))
    assert resp.status == 200
    assert resp.data == {"message": "{not json"}


def test_non_json_error_page_is_returned_not_raised():
    resp = serve(_html, lambda t, url: t("GET", url))
    assert resp.status == 502
    assert resp.data == {"message": "<html>Bad Gateway</html>"}


def test_connection_dropped_mid_body_is_a_reset():
    with pytest.raises(NetworkError) as exc:
        serve(_truncated, lambda t, url: t("GET", url))
    assert exc.value.kind == RESET
    assert exc.value.transient is True


def test_dropped_body_is_retried_by_the_client():
    delays = []

    async def no_wait(delay):
        delays.append(delay)

    async def call(transport, url):
        base = url.split("/api/")[0]
        client = ResilientApiClient(base_url=base, transport=transport, sleep=no_wait, max_retries=2)

        async def fetch():
            return await client.request("GET", "/api/audit/status/s1")

        return await client.retry_with_backoff(fetch, "status")

    with pytest.raises(NetworkError):
        serve(_truncated, call)
    assert delays == [1.0, 2.0]


def test_refused_connection_is_not_transient():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()

    async def main():
        transport = AiohttpTransport()
        try:
            await transport("GET", f"http://127.0.0.1:{port}/healthz", timeout=5)
        finally:
            await transport.close()

    with pytest.raises(NetworkError) as exc:
        asyncio.run(main())
    assert exc.value.kind == REFUSED
    assert exc.value.transient is False

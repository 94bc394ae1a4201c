import asyncio

import httpx
import pytest

from apps.config.settings import Settings
from apps.gateway.main import create_app
from apps.switch.models import Environment


def _app(tmp_path, handler, **overrides):
    settings = Settings(
        CONFIG_PATH=str(tmp_path / "config.json"),
        BLUE_ADDRESS="http://blue.internal:5176",
        GREEN_ADDRESS="http://green.internal:5177/base",
        HEALTH_ENABLE=0,
        **overrides,
    )
    return create_app(settings, transport=httpx.MockTransport(handler))


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://edge.example")


@pytest.mark.asyncio
async def test_forwards_method_path_query_body_to_active(tmp_path):
    captured = {}

    async def upstream(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["method"] = request.method
        captured["body"] = await request.aread()
        captured["headers"] = request.headers
        return httpx.Response(201, json={"ok": True}, headers={"X-Backend": "blue"})

    app = _app(tmp_path, upstream)
    async with _client(app) as client:
        resp = await client.post(
            "/orders/a%20b?x=1&y=2",
            content=b'{"item": 7}',
            headers={"Content-Type": "application/json", "X-Request-Id": "r-1"},
        )

    assert resp.status_code == 201
    assert resp.json() == {"ok": True}
    assert resp.headers["x-backend"] == "blue"
    assert captured["method"] == "POST"
    assert captured["url"] == "http://blue.internal:5176/orders/a%20b?x=1&y=2"
    assert captured["body"] == b'{"item": 7}'
    assert captured["headers"]["host"] == "blue.internal:5176"
    assert captured["headers"]["x-request-id"] == "r-1"
    assert captured["headers"]["x-forwarded-for"] == "127.0.0.1"


@pytest.mark.asyncio
async def test_hop_by_hop_headers_are_not_forwarded(tmp_path):
    captured = {}

    def upstream(request):
        captured["headers"] = request.headers
        return httpx.Response(
            200,
            content=b"hi",
            headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2"), ("Keep-Alive", "timeout=5")],
        )

    app = _app(tmp_path, upstream)
    async with _client(app) as client:
        resp = await client.get("/page", headers={"Connection": "X-Internal", "X-Internal": "secret", "TE": "trailers"})

    assert "x-internal" not in captured["headers"]
    assert "te" not in captured["headers"]
    assert resp.headers.get_list("set-cookie") == ["a=1", "b=2"]
    assert "keep-alive" not in resp.headers
    assert resp.content == b"hi"


@pytest.mark.asyncio
async def test_routes_to_green_after_switch_with_base_path(tmp_path):
    hosts = []

    def upstream(request):
        hosts.append(str(request.url))
        return httpx.Response(200, text=request.url.host)

    app = _app(tmp_path, upstream)
    store = app.state.store
    assert store.try_switch_active(Environment.PRIMARY, Environment.SECONDARY)

    async with _client(app) as client:
        resp = await client.get("/assets/app.js")

    assert resp.text == "green.internal"
    assert hosts == ["http://green.internal:5177/base/assets/app.js"]


@pytest.mark.asyncio
async def test_in_flight_request_keeps_original_target(tmp_path):
    seen = []

    def upstream(request):
        seen.append(request.url.host)
        if request.url.path == "/slow":
            # 응답 도중 전환이 커밋되어도 이 요청은 blue 에서 끝나야 함
            app.state.store.try_switch_active(Environment.PRIMARY, Environment.SECONDARY)
        return httpx.Response(200, text=request.url.host)

    app = _app(tmp_path, upstream)
    async with _client(app) as client:
        first = await client.get("/slow")
        second = await client.get("/next")

    assert first.text == "blue.internal"
    assert second.text == "green.internal"
    assert seen == ["blue.internal", "green.internal"]


@pytest.mark.asyncio
async def test_unreachable_upstream_is_bad_gateway_without_failover(tmp_path):
    seen = []

    def upstream(request):
        seen.append(request.url.host)
        raise httpx.ConnectError("connection refused", request=request)

    app = _app(tmp_path, upstream)
    async with _client(app) as client:
        resp = await client.get("/anything")

    assert resp.status_code == 502
    body = resp.json()
    assert body["status"] == "error"
    assert body["code"] == "upstream_unavailable"
    assert seen == ["blue.internal"]
    assert app.state.store.get_active() is Environment.PRIMARY


@pytest.mark.asyncio
async def test_upstream_timeout_is_gateway_timeout(tmp_path):
    def upstream(request):
        raise httpx.ReadTimeout("slow", request=request)

    app = _app(tmp_path, upstream)
    async with _client(app) as client:
        resp = await client.get("/report")

    assert resp.status_code == 504


@pytest.mark.asyncio
async def test_streamed_body_is_relayed(tmp_path):
    async def chunks():
        for part in (b"alpha-", b"beta-", b"gamma"):
            yield part

    def upstream(request):
        return httpx.Response(200, content=chunks(), headers={"Content-Type": "text/plain"})

    app = _app(tmp_path, upstream)
    async with _client(app) as client:
        async with client.stream("GET", "/feed") as resp:
            body = b"".join([chunk async for chunk in resp.aiter_bytes()])

    assert resp.status_code == 200
    assert body == b"alpha-beta-gamma"


@pytest.mark.asyncio
async def test_non_standard_methods_are_forwarded(tmp_path):
    seen = []

    def upstream(request):
        seen.append((request.method, request.url.path))
        return httpx.Response(207, text="multi-status")

    app = _app(tmp_path, upstream)
    async with _client(app) as client:
        propfind = await client.request("PROPFIND", "/dav/x", headers={"Depth": "1"})
        purge = await client.request("PURGE", "/cache/item")
        admin = await client.request("PROPFIND", "/api/status")

    assert propfind.status_code == 207
    assert propfind.text == "multi-status"
    assert purge.status_code == 207
    assert admin.status_code == 405
    assert seen == [("PROPFIND", "/dav/x"), ("PURGE", "/cache/item")]


class _EndlessStream(httpx.AsyncByteStream):
    def __init__(self):
        self.closed = False

    async def __aiter__(self):
        while True:
            yield b"tick\n"
            await asyncio.sleep(0)

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_client_disconnect_closes_upstream_response(tmp_path):
    stream = _EndlessStream()
    app = _app(tmp_path, lambda request: httpx.Response(200, stream=stream))

    bodies = []
    enough = asyncio.Event()

    async def receive():
        await enough.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.body":
            bodies.append(message["body"])
            if len(bodies) >= 3:
                enough.set()

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/events",
        "raw_path": b"/events",
        "query_string": b"",
        "root_path": "",
        "headers": [(b"host", b"edge.example")],
        "client": ("127.0.0.1", 50000),
        "server": ("edge.example", 80),
    }
    await asyncio.wait_for(app(scope, receive, send), timeout=5)
    await app.state.traffic.aclose()

    assert bodies[0] == b"tick\n"
    assert stream.closed is True

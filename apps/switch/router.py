from __future__ import annotations

import logging
from typing import AsyncIterator, Callable, List, Optional, Tuple
from urllib.parse import quote

import httpx
from starlette.requests import Request
from starlette.responses import StreamingResponse

from apps.switch import metrics
from apps.switch.addressing import DEFAULT_PORT_HOST_TEMPLATE, join_path, resolve_base_url
from apps.switch.errors import UpstreamUnavailable
from apps.switch.models import Environment
from apps.switch.store import EnvironmentStore

log = logging.getLogger("bluegreen.router")

# RFC 7230 6.1
HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


def _strip_hop_by_hop(raw: List[Tuple[bytes, bytes]], extra_drop: Tuple[str, ...] = ()) -> List[Tuple[bytes, bytes]]:
    drop = set(HOP_BY_HOP) | set(extra_drop)
    for name, value in raw:
        if name.lower() == b"connection":
            drop.update(token.strip().lower() for token in value.decode("latin-1").split(",") if token.strip())
    return [(name, value) for name, value in raw if name.decode("latin-1").lower() not in drop]


def build_client(
    *,
    connect_timeout: float = 5.0,
    read_timeout: float = 60.0,
    max_connections: int = 200,
    max_keepalive: int = 100,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    limits = httpx.Limits(max_keepalive_connections=max_keepalive, max_connections=max_connections)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
        limits=limits,
        follow_redirects=False,
        transport=transport,
    )


class ProxyResponse(StreamingResponse):
    """Streaming response that always finalizes its body iterator.

    When the client goes away mid-stream Starlette stops iterating without
    closing the generator; closing it here releases the upstream response.
    """

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.body_iterator.aclose()


class TrafficRouter:
    """Reverse proxy to whichever environment is active when a request arrives.

    The active environment and its address are read once, together, at the
    start of the request. A switch that commits while the request is in flight
    does not affect it. Upstream failures are reported, never retried against
    the other environment.
    """

    def __init__(
        self,
        store: EnvironmentStore,
        *,
        port_host_template: str = DEFAULT_PORT_HOST_TEMPLATE,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self.store = store
        self.port_host_template = port_host_template
        self._client_factory = client_factory or build_client
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def target_for_request(self) -> Tuple[Environment, httpx.URL]:
        config = self.store.get_config()
        env = config.active
        address = config.address_of(env)
        try:
            return env, resolve_base_url(address, self.port_host_template)
        except (ValueError, httpx.InvalidURL) as exc:
            metrics.PROXY_ERRORS.inc(label_value=env.value)
            raise UpstreamUnavailable(env.value, address, "invalid address") from exc

    def _upstream_headers(self, request: Request, url: httpx.URL) -> List[Tuple[bytes, bytes]]:
        headers = _strip_hop_by_hop(list(request.headers.raw), extra_drop=("host",))
        headers.append((b"host", url.netloc))
        if request.client is not None:
            prior = request.headers.get("x-forwarded-for")
            forwarded = f"{prior}, {request.client.host}" if prior else request.client.host
            headers = [(k, v) for k, v in headers if k.lower() != b"x-forwarded-for"]
            headers.append((b"x-forwarded-for", forwarded.encode("latin-1")))
        return headers

    async def forward(self, request: Request) -> StreamingResponse:
        env, base = self.target_for_request()
        raw_path = request.scope.get("raw_path") or quote(request.url.path).encode("ascii")
        url = join_path(base, raw_path.split(b"?", 1)[0], request.scope.get("query_string", b""))

        has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
        client = self._get_client()
        # client.build_request 는 기본 헤더(User-Agent, Accept-Encoding 등)를 섞으므로 직접 생성
        upstream_request = httpx.Request(
            request.method,
            url,
            headers=self._upstream_headers(request, url),
            content=request.stream() if has_body else None,
        )
        metrics.PROXY_REQUESTS.inc(label_value=env.value)
        try:
            upstream = await client.send(upstream_request, stream=True)
        except httpx.TimeoutException as exc:
            metrics.PROXY_ERRORS.inc(label_value=env.value)
            raise UpstreamUnavailable(env.value, str(url), exc.__class__.__name__, timeout=True) from exc
        except httpx.RequestError as exc:
            metrics.PROXY_ERRORS.inc(label_value=env.value)
            raise UpstreamUnavailable(env.value, str(url), exc.__class__.__name__) from exc

        response = ProxyResponse(self._relay(upstream, env), status_code=upstream.status_code)
        response.raw_headers = [(k.lower(), v) for k, v in _strip_hop_by_hop(list(upstream.headers.raw))]
        return response

    async def _relay(self, upstream: httpx.Response, env: Environment) -> AsyncIterator[bytes]:
        try:
            if upstream.is_stream_consumed:
                # transport 가 본문을 이미 메모리에 읽어 둔 경우
                yield upstream.content
                return
            async for chunk in upstream.aiter_raw():
                yield chunk
        except httpx.HTTPError as exc:
            metrics.PROXY_ERRORS.inc(label_value=env.value)
            log.warning("upstream_stream_broken", extra={"env": env.value, "error": exc.__class__.__name__})
            raise
        finally:
            # 클라이언트가 먼저 끊어도 upstream 연결은 반드시 반환
            await upstream.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["HOP_BY_HOP", "ProxyResponse", "TrafficRouter", "build_client"]

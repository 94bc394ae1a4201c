from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.routing import Route

from apps.common.jsonlog import setup_logging
from apps.config.settings import Settings
from apps.gateway.routers.admin import ADMIN_PATHS
from apps.gateway.routers.admin import router as admin_router
from apps.switch.controller import SwitchController
from apps.switch.errors import SwitchError, UpstreamUnavailable
from apps.switch.monitor import HealthMonitor
from apps.switch.persistence import ConfigFile
from apps.switch.router import TrafficRouter, build_client
from apps.switch.store import EnvironmentStore

log = logging.getLogger("bluegreen.gateway")


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Wire store, monitor, switch controller and proxy into one app.

    ``transport`` replaces the network for both probes and proxied requests
    (tests hand in an ``httpx.MockTransport``).
    """
    settings = settings or Settings()
    config_file = ConfigFile(settings.CONFIG_PATH)
    store = EnvironmentStore(settings.merge_persisted(config_file.load()), config_file=config_file)
    monitor = HealthMonitor(
        store,
        interval_sec=settings.HEALTH_INTERVAL_SEC,
        health_timeout_sec=settings.HEALTH_TIMEOUT_SEC,
        version_timeout_sec=settings.VERSION_TIMEOUT_SEC,
        health_path=settings.HEALTH_PATH,
        version_path=settings.VERSION_PATH,
        port_host_template=settings.PORT_HOST_TEMPLATE,
        client_factory=lambda: httpx.AsyncClient(transport=transport, follow_redirects=False),
    )
    traffic = TrafficRouter(
        store,
        port_host_template=settings.PORT_HOST_TEMPLATE,
        client_factory=lambda: build_client(
            connect_timeout=settings.PROXY_CONNECT_TIMEOUT_SEC,
            read_timeout=settings.PROXY_READ_TIMEOUT_SEC,
            max_connections=settings.PROXY_MAX_CONNECTIONS,
            max_keepalive=settings.PROXY_MAX_KEEPALIVE,
            transport=transport,
        ),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config = store.get_config()
        log.info(
            "bluegreen_started",
            extra={"port": settings.PROXY_PORT, "service": config.service_name, "active": config.active.value},
        )
        if settings.HEALTH_ENABLE:
            monitor.start()
        try:
            yield
        finally:
            await monitor.stop()
            await traffic.aclose()

    app = FastAPI(title="Blue-Green Switch", version="1.0.0", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.store = store
    app.state.monitor = monitor
    app.state.controller = SwitchController(store)
    app.state.traffic = traffic

    @app.exception_handler(SwitchError)
    async def _switch_error(request: Request, exc: SwitchError) -> JSONResponse:
        return JSONResponse({"status": "error", "error": str(exc), "code": exc.code}, status_code=exc.status_code)

    @app.exception_handler(UpstreamUnavailable)
    async def _upstream_error(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
        log.warning("upstream_unavailable", extra={"env": exc.target, "url": exc.url, "timeout": exc.timeout})
        return JSONResponse(
            {"status": "error", "error": str(exc), "code": "upstream_unavailable"},
            status_code=exc.status_code,
        )

    app.include_router(admin_router)

    async def proxy(request: Request) -> Response:
        if request.url.path in ADMIN_PATHS:
            return JSONResponse({"status": "error", "error": "Method not allowed"}, status_code=405)
        return await request.app.state.traffic.forward(request)

    # methods 미지정 Starlette Route: PROPFIND, PURGE 등 임의 메서드도 그대로 전달
    app.router.routes.append(Route("/{path:path}", proxy, include_in_schema=False))

    return app


def main() -> None:
    import uvicorn  # type: ignore

    settings = Settings()
    setup_logging(settings.LOG_LEVEL, json_output=bool(settings.LOG_JSON))
    uvicorn.run(create_app(settings), host=settings.LISTEN_HOST, port=settings.PROXY_PORT, log_config=None)


if __name__ == "__main__":
    main()

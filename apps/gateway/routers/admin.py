from __future__ import annotations

import asyncio
import html
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from apps.common.metrics import REG
from apps.switch.controller import SwitchController
from apps.switch.errors import InvalidConfiguration
from apps.switch.models import AddressUpdate, Environment
from apps.switch.store import EnvironmentStore

log = logging.getLogger("bluegreen.admin")

router = APIRouter(tags=["admin"])

# 프록시 대상에서 제외되는 관리 경로
ADMIN_PATHS = frozenset({"/", "/api/switch", "/api/status", "/api/config", "/api/deploy", "/api/metrics"})


def _store(request: Request) -> EnvironmentStore:
    return request.app.state.store


def _controller(request: Request) -> SwitchController:
    return request.app.state.controller


async def _json_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise InvalidConfiguration("Invalid JSON") from exc
    if not isinstance(data, dict):
        raise InvalidConfiguration("JSON body must be an object")
    return data


@router.post("/api/switch")
async def switch(request: Request) -> JSONResponse:
    body = await _json_body(request)
    expected = None
    if body.get("from") is not None:
        try:
            expected = Environment.parse(body["from"])
        except ValueError as exc:
            raise InvalidConfiguration(str(exc)) from exc
    # 설정 파일 쓰기(fsync)가 이벤트 루프를 막지 않도록 스레드에서 실행
    result = await asyncio.to_thread(_controller(request).switch, expected_active=expected)
    return JSONResponse(result.to_dict())


@router.get("/api/status")
async def status(request: Request) -> JSONResponse:
    return JSONResponse(_store(request).snapshot().to_dict())


@router.get("/api/config")
async def get_config(request: Request) -> JSONResponse:
    return JSONResponse(_store(request).get_config().to_public())


@router.post("/api/config")
async def update_config(request: Request) -> JSONResponse:
    update = AddressUpdate.from_payload(await _json_body(request))
    await asyncio.to_thread(_store(request).update_addresses, update.blue_address, update.green_address)
    return JSONResponse({"status": "success", "message": "Configuration updated"})


@router.post("/api/deploy")
async def deploy() -> JSONResponse:
    # 배포 트리거는 외부 CI 몫, 여기서는 응답만 돌려줌
    log.info("deploy_placeholder_called")
    return JSONResponse({"status": "success", "message": "Deployment triggered"})


@router.get("/api/metrics")
async def metrics_text() -> PlainTextResponse:
    return PlainTextResponse(REG.render_text(), media_type="text/plain; version=0.0.4")


@router.get("/")
async def dashboard(request: Request) -> HTMLResponse:
    snap = _store(request).snapshot()
    rows = []
    for env in Environment:
        st = snap.statuses[env]
        rows.append(
            "<tr><td>{name}</td><td>{addr}</td><td>{health}</td><td>{version}</td><td>{role}</td></tr>".format(
                name=env.value,
                addr=html.escape(snap.config.address_of(env)),
                health="Healthy" if st.healthy else "Unhealthy",
                version=html.escape(st.version),
                role="ACTIVE" if env is snap.active else "Standby",
            )
        )
    page = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>Blue-Green Deployment</title></head><body>"
        f"<h1>{html.escape(snap.config.service_name)}</h1>"
        "<table><tr><th>Environment</th><th>Address</th><th>Health</th><th>Version</th><th>Status</th></tr>"
        + "".join(rows)
        + "</table></body></html>"
    )
    return HTMLResponse(page)


__all__ = ["router", "ADMIN_PATHS"]

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from apps.switch import metrics
from apps.switch.addressing import DEFAULT_PORT_HOST_TEMPLATE, join_path, resolve_base_url
from apps.switch.errors import ProbeFailure
from apps.switch.models import UNKNOWN_VERSION, Environment, EnvironmentStatus
from apps.switch.store import EnvironmentStore

log = logging.getLogger("bluegreen.monitor")


class HealthMonitor:
    """
    두 환경의 health/version 을 주기적으로 확인하는 백그라운드 루프.
    - 환경별 probe 는 서로 독립적으로 동시에 실행
    - 모든 요청에 개별 timeout 적용
    - probe 실패는 unhealthy/unknown 으로 기록될 뿐 예외로 전파되지 않음
    """

    def __init__(
        self,
        store: EnvironmentStore,
        *,
        interval_sec: float = 10.0,
        health_timeout_sec: float = 3.0,
        version_timeout_sec: float = 2.0,
        health_path: str = "/health",
        version_path: str = "/version",
        port_host_template: str = DEFAULT_PORT_HOST_TEMPLATE,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.interval = interval_sec
        self.health_timeout = health_timeout_sec
        self.version_timeout = version_timeout_sec
        self.health_path = health_path
        self.version_path = version_path
        self.port_host_template = port_host_template
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(follow_redirects=False))
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None
        self._task: Optional[asyncio.Task] = None
        self._cycles: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------
    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def _get(self, url: httpx.URL, timeout: float) -> httpx.Response:
        # httpx timeout 은 단계별이므로 전체 deadline 을 wait_for 로 한 번 더 건다
        try:
            return await asyncio.wait_for(self._get_client().get(url, timeout=timeout), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProbeFailure(f"{url}: timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ProbeFailure(f"{url}: {exc.__class__.__name__}") from exc

    async def _check_health(self, base: httpx.URL) -> bool:
        url = join_path(base, self.health_path)
        resp = await self._get(url, self.health_timeout)
        if not resp.is_success:
            raise ProbeFailure(f"health {url}: HTTP {resp.status_code}")
        return True

    async def _fetch_version(self, base: httpx.URL) -> str:
        url = join_path(base, self.version_path)
        resp = await self._get(url, self.version_timeout)
        if not resp.is_success:
            raise ProbeFailure(f"version {url}: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProbeFailure(f"version {url}: malformed body") from exc
        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, str) or not version:
            raise ProbeFailure(f"version {url}: missing version field")
        return version

    async def probe(self, env: Environment) -> EnvironmentStatus:
        """Probe one environment and store the result. Never raises ProbeFailure."""
        started = self._clock()
        address = self.store.get_address(env)
        healthy = False
        version = UNKNOWN_VERSION
        try:
            base = resolve_base_url(address, self.port_host_template)
        except (ValueError, httpx.InvalidURL) as exc:
            log.warning("probe_bad_address", extra={"env": env.value, "address": address, "error": str(exc)})
        else:
            health_result, version_result = await asyncio.gather(
                self._check_health(base), self._fetch_version(base), return_exceptions=True
            )
            for result in (health_result, version_result):
                if isinstance(result, ProbeFailure):
                    log.debug("probe_failed", extra={"env": env.value, "error": str(result)})
                elif isinstance(result, Exception):
                    log.warning("probe_error", extra={"env": env.value, "error": repr(result)})
                elif isinstance(result, BaseException):
                    # CancelledError 등은 그대로 전파
                    raise result
            healthy = health_result is True
            if isinstance(version_result, str):
                version = version_result

        status = EnvironmentStatus(healthy=healthy, version=version, last_checked=started)
        previous = self.store.record_check(env, address, status)
        if previous is None:
            # 주소가 바뀌었거나 더 늦게 시작한 probe 의 결과가 이미 기록됨
            log.debug("probe_result_dropped", extra={"env": env.value, "address": address})
            return self.store.get_status(env)
        metrics.ENV_HEALTHY.set(1 if healthy else 0, label_value=env.value)
        if previous.last_checked is None or previous.healthy != healthy:
            log.info(
                "health_changed",
                extra={"env": env.value, "healthy": healthy, "version": version, "address": address},
            )
        return status

    async def run_once(self) -> dict[Environment, EnvironmentStatus]:
        results = await asyncio.gather(*(self.probe(env) for env in Environment))
        return dict(zip(Environment, results))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            # 사이클을 별도 task 로 띄워 느린 probe 가 타이머를 밀지 않게 함
            cycle = asyncio.create_task(self._guarded_cycle())
            self._cycles.add(cycle)
            cycle.add_done_callback(self._cycles.discard)
            next_tick += self.interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def _guarded_cycle(self) -> None:
        started = time.perf_counter()
        try:
            await self.run_once()
        except asyncio.CancelledError:
            raise
        except Exception:  # pragma: no cover
            log.exception("health_cycle_crashed")
            return
        log.debug("health_cycle_done", extra={"elapsed_ms": round((time.perf_counter() - started) * 1000, 2)})

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="bluegreen-health-monitor")
            log.info("monitor_started", extra={"interval_sec": self.interval})
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        tasks = [t for t in [self._task, *self._cycles] if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._cycles.clear()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        log.info("monitor_stopped")


__all__ = ["HealthMonitor"]

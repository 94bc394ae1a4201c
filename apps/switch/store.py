from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import ValidationError

from apps.switch import metrics
from apps.switch.errors import InvalidConfiguration
from apps.switch.models import DeploymentConfig, Environment, EnvironmentStatus
from apps.switch.persistence import ConfigFile

log = logging.getLogger("bluegreen.store")


@dataclass(frozen=True)
class StoreSnapshot:
    config: DeploymentConfig
    statuses: Dict[Environment, EnvironmentStatus]

    @property
    def active(self) -> Environment:
        return self.config.active

    def to_dict(self) -> Dict[str, object]:
        return {
            "config": self.config.to_public(),
            "status": {
                "active": self.config.active.value,
                **{env.value: self.statuses[env].to_dict() for env in Environment},
            },
        }


class EnvironmentStore:
    """Addresses, the active pointer and live status of both environments.

    All state sits behind one short-held lock. Records handed out are
    immutable, so a caller always holds values from a single update. Mutations
    of the persisted part (active pointer, addresses) are written through to
    ``config_file`` before they become visible, under a second lock that
    readers never take.
    """

    def __init__(self, config: DeploymentConfig, config_file: Optional[ConfigFile] = None) -> None:
        self._config = config
        self._statuses: Dict[Environment, EnvironmentStatus] = {env: EnvironmentStatus() for env in Environment}
        self._config_file = config_file
        self._lock = threading.Lock()
        # 설정 변경과 디스크 쓰기를 직렬화. 읽기 경로는 이 락을 기다리지 않음
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_active(self) -> Environment:
        with self._lock:
            return self._config.active

    def get_status(self, env: Environment) -> EnvironmentStatus:
        with self._lock:
            return self._statuses[env]

    def get_address(self, env: Environment) -> str:
        with self._lock:
            return self._config.address_of(env)

    def get_config(self) -> DeploymentConfig:
        with self._lock:
            return self._config

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(config=self._config, statuses=dict(self._statuses))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def set_status(self, env: Environment, status: EnvironmentStatus) -> None:
        with self._lock:
            self._statuses[env] = status

    def record_check(self, env: Environment, address: str, status: EnvironmentStatus) -> Optional[EnvironmentStatus]:
        """Store a probe result taken against ``address``.

        The result is dropped when the address changed while the probe was in
        flight, or when a probe that started later has already been recorded.
        Returns the replaced status, or ``None`` when dropped.
        """
        with self._lock:
            if self._config.address_of(env) != address:
                return None
            previous = self._statuses[env]
            if previous.last_checked is not None and status.last_checked is not None:
                if previous.last_checked > status.last_checked:
                    return None
            self._statuses[env] = status
            return previous

    def try_switch_active(
        self,
        expected_old: Environment,
        new_active: Environment,
        expected_address: Optional[str] = None,
    ) -> bool:
        """Compare-and-set the active pointer; persists before reporting success.

        With ``expected_address`` the switch also fails when the target's
        address changed since the caller checked it. Readers keep seeing the
        previous config until the file write returns.
        """
        with self._write_lock:
            with self._lock:
                if self._config.active is not expected_old:
                    return False
                if expected_address is not None and self._config.address_of(new_active) != expected_address:
                    return False
                updated = self._config.model_copy(update={"active": new_active})
            self._persist(updated)
            with self._lock:
                self._config = updated
            return True

    def update_addresses(self, blue_address: str, green_address: str) -> DeploymentConfig:
        with self._write_lock:
            current = self.get_config()
            try:
                # model_copy는 검증을 건너뛰므로 새로 생성해서 검증
                updated = DeploymentConfig(
                    blue_address=blue_address,
                    green_address=green_address,
                    active=current.active,
                    service_name=current.service_name,
                )
            except ValidationError as exc:
                raise InvalidConfiguration(_first_error(exc)) from exc
            self._persist(updated)
            changed = [env for env in Environment if current.address_of(env) != updated.address_of(env)]
            with self._lock:
                self._config = updated
                # 새 주소는 아직 검사되지 않았으므로 상태 초기화
                for env in changed:
                    self._statuses[env] = EnvironmentStatus()
        for env in changed:
            metrics.ENV_HEALTHY.set(0, label_value=env.value)
        log.info(
            "addresses_updated",
            extra={
                "blue_address": updated.blue_address,
                "green_address": updated.green_address,
                "reset": [env.value for env in changed],
            },
        )
        return updated

    def _persist(self, config: DeploymentConfig) -> None:
        if self._config_file is not None:
            self._config_file.save(config)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid configuration"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc}: {first.get('msg', 'invalid value')}" if loc else first.get("msg", "invalid value")


__all__ = ["EnvironmentStore", "StoreSnapshot"]

import os
import sys

import pytest

repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from apps.switch.models import DeploymentConfig, Environment, EnvironmentStatus  # noqa: E402
from apps.switch.persistence import ConfigFile  # noqa: E402
from apps.switch.store import EnvironmentStore  # noqa: E402

LEGACY_ENV_KEYS = {"BLUE_PORT", "GREEN_PORT", "PROXY_PORT", "SERVICE_NAME"}


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    # 호스트 환경의 BLUEGREEN_* 및 호환용 변수가 테스트에 새지 않도록 제거
    for key in list(os.environ):
        if key.upper().startswith("BLUEGREEN_") or key.upper() in LEGACY_ENV_KEYS:
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def config_file(tmp_path):
    return ConfigFile(tmp_path / "config.json")


@pytest.fixture
def store(config_file):
    cfg = DeploymentConfig(blue_address="http://blue.internal:5176", green_address="http://green.internal:5177")
    return EnvironmentStore(cfg, config_file=config_file)


@pytest.fixture
def mark_healthy():
    def _mark(target_store: EnvironmentStore, env: Environment, version: str = "v2") -> None:
        target_store.set_status(env, EnvironmentStatus(healthy=True, version=version))

    return _mark

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from apps.switch.models import DeploymentConfig

log = logging.getLogger("bluegreen.persistence")

_YAML_SUFFIXES = (".yaml", ".yml")


def _atomic_write(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # 같은 디렉터리에 임시 파일을 만들어야 os.replace가 원자적으로 동작함
    with tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, prefix=f".{path.name}.", encoding="utf-8") as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class ConfigFile:
    """Durable copy of :class:`DeploymentConfig`.

    JSON by default, YAML when the path ends in ``.yaml``/``.yml``. Writers are
    serialized by an in-process mutex and every write replaces the file
    atomically, so a reader never sees a half-written record.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    @property
    def is_yaml(self) -> bool:
        return self.path.suffix.lower() in _YAML_SUFFIXES

    def _dump(self, payload: Dict[str, Any]) -> str:
        if self.is_yaml:
            return yaml.safe_dump(payload, sort_keys=True, allow_unicode=True)
        return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n"

    def _parse(self, raw: str) -> Dict[str, Any]:
        data = yaml.safe_load(raw) if self.is_yaml else json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("config root must be a mapping")
        return data

    def load(self) -> Optional[DeploymentConfig]:
        """Return the persisted record, or None when missing or unreadable."""
        with self._lock:
            if not self.path.exists():
                return None
            try:
                raw = self.path.read_text(encoding="utf-8")
                return DeploymentConfig(**self._parse(raw))
            except (OSError, ValueError, yaml.YAMLError, ValidationError) as exc:
                log.warning("config_load_failed", extra={"path": str(self.path), "error": str(exc)})
                return None

    def save(self, config: DeploymentConfig) -> None:
        payload = config.model_dump(mode="json")
        with self._lock:
            _atomic_write(self.path, self._dump(payload))
        log.debug("config_saved", extra={"path": str(self.path), "active": payload["active"]})


__all__ = ["ConfigFile"]

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

UNKNOWN_VERSION = "unknown"


class Environment(str, Enum):
    """One of the two interchangeable backend environments."""

    PRIMARY = "blue"
    SECONDARY = "green"

    def other(self) -> "Environment":
        return Environment.SECONDARY if self is Environment.PRIMARY else Environment.PRIMARY

    @classmethod
    def parse(cls, value: Any) -> "Environment":
        if isinstance(value, Environment):
            return value
        token = str(value or "").strip().lower()
        for env in cls:
            if token in (env.value, env.name.lower()):
                return env
        raise ValueError(f"unknown environment: {value!r}")


@dataclass(frozen=True)
class EnvironmentStatus:
    """Result of one probe cycle. Replaced whole, never mutated in place."""

    healthy: bool = False
    version: str = UNKNOWN_VERSION
    last_checked: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["last_checked"] = self.last_checked.isoformat() if self.last_checked else None
        return payload


@dataclass(frozen=True)
class SwitchResult:
    old: Environment
    current: Environment
    switched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, str]:
        return {"status": "success", "old": self.old.value, "current": self.current.value}


class DeploymentConfig(BaseModel):
    """Persisted record: both addresses plus the active identity."""

    model_config = ConfigDict(str_strip_whitespace=True)

    blue_address: str
    green_address: str
    active: Environment = Environment.PRIMARY
    service_name: str = "Frontend Application"

    @field_validator("blue_address", "green_address")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("address must not be empty")
        return value

    @field_validator("active", mode="before")
    @classmethod
    def _parse_active(cls, value: Any) -> Environment:
        return Environment.parse(value)

    def address_of(self, env: Environment) -> str:
        return self.blue_address if env is Environment.PRIMARY else self.green_address

    def to_public(self) -> Dict[str, str]:
        return {
            "blue_address": self.blue_address,
            "green_address": self.green_address,
            "active": self.active.value,
            "service_name": self.service_name,
        }


class AddressUpdate(BaseModel):
    """Body of ``POST /api/config``. Legacy ``*_port`` keys are accepted."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    blue_address: str = ""
    green_address: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AddressUpdate":
        data = dict(payload or {})
        for env in ("blue", "green"):
            key = f"{env}_address"
            if not data.get(key) and data.get(f"{env}_port") is not None:
                data[key] = str(data[f"{env}_port"])
        return cls(
            blue_address=str(data.get("blue_address") or ""),
            green_address=str(data.get("green_address") or ""),
        )


__all__ = [
    "UNKNOWN_VERSION",
    "Environment",
    "EnvironmentStatus",
    "SwitchResult",
    "DeploymentConfig",
    "AddressUpdate",
]

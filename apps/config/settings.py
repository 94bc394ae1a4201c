# apps/config/settings.py
"""
Application settings with Pydantic v2 BaseSettings.

Environment variables with BLUEGREEN_ prefix (BLUEGREEN_BLUE_ADDRESS, ...).
"""
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from apps.switch.models import DeploymentConfig, Environment


class Settings(BaseSettings):
    """Blue/green switch settings."""

    model_config = SettingsConfigDict(
        env_prefix="BLUEGREEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Core
    ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    SERVICE_NAME: str = Field(
        default="Frontend Application",
        validation_alias=AliasChoices("BLUEGREEN_SERVICE_NAME", "SERVICE_NAME"),
    )
    LISTEN_HOST: str = "0.0.0.0"
    PROXY_PORT: int = Field(default=8080, validation_alias=AliasChoices("BLUEGREEN_PROXY_PORT", "PROXY_PORT"))

    # Environments
    # 접두사 없는 BLUE_PORT/GREEN_PORT 는 기존 배포 호환용
    BLUE_ADDRESS: str = Field(
        default="5176",
        validation_alias=AliasChoices("BLUEGREEN_BLUE_ADDRESS", "BLUE_PORT"),
        description="Port, host:port or URI of blue",
    )
    GREEN_ADDRESS: str = Field(
        default="5177",
        validation_alias=AliasChoices("BLUEGREEN_GREEN_ADDRESS", "GREEN_PORT"),
        description="Port, host:port or URI of green",
    )
    ACTIVE: str = "blue"
    PORT_HOST_TEMPLATE: str = "app-{port}"
    CONFIG_PATH: str = "var/bluegreen/config.json"

    # Health monitor
    HEALTH_ENABLE: int = 1
    HEALTH_INTERVAL_SEC: float = 10.0
    HEALTH_TIMEOUT_SEC: float = 3.0
    VERSION_TIMEOUT_SEC: float = 2.0
    HEALTH_PATH: str = "/health"
    VERSION_PATH: str = "/version"

    # Proxy
    PROXY_CONNECT_TIMEOUT_SEC: float = 5.0
    PROXY_READ_TIMEOUT_SEC: float = 60.0
    PROXY_MAX_CONNECTIONS: int = 200
    PROXY_MAX_KEEPALIVE: int = 100

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: int = 1

    @field_validator("ACTIVE")
    @classmethod
    def _valid_active(cls, value: str) -> str:
        return Environment.parse(value).value

    @field_validator("HEALTH_INTERVAL_SEC", "HEALTH_TIMEOUT_SEC", "VERSION_TIMEOUT_SEC")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    # Helpers
    def defaults(self) -> DeploymentConfig:
        """Built-in defaults overlaid with whatever the environment provided."""
        return DeploymentConfig(
            blue_address=self.BLUE_ADDRESS,
            green_address=self.GREEN_ADDRESS,
            active=self.ACTIVE,
            service_name=self.SERVICE_NAME,
        )

    def merge_persisted(self, persisted: Optional[DeploymentConfig]) -> DeploymentConfig:
        """Resolve the startup config.

        The persisted active environment always wins so a restart resumes where
        the last switch left off. Addresses and the service name come from the
        persisted file unless set explicitly in the environment.
        """
        if persisted is None:
            return self.defaults()
        explicit = self.model_fields_set
        return DeploymentConfig(
            blue_address=self.BLUE_ADDRESS if "BLUE_ADDRESS" in explicit else persisted.blue_address,
            green_address=self.GREEN_ADDRESS if "GREEN_ADDRESS" in explicit else persisted.green_address,
            active=persisted.active,
            service_name=self.SERVICE_NAME if "SERVICE_NAME" in explicit else persisted.service_name,
        )

    def is_prod(self) -> bool:
        return self.ENV.lower() == "prod"


__all__ = ["Settings"]

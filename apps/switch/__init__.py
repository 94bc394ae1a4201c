"""
Blue/green traffic switch: environment store, health monitor, switch controller, proxy
"""
from .controller import SwitchController
from .errors import ConcurrentModification, InvalidConfiguration, SwitchError, TargetUnhealthy, UpstreamUnavailable
from .models import DeploymentConfig, Environment, EnvironmentStatus, SwitchResult
from .monitor import HealthMonitor
from .router import TrafficRouter
from .store import EnvironmentStore

__all__ = [
    "SwitchController",
    "SwitchError",
    "TargetUnhealthy",
    "ConcurrentModification",
    "InvalidConfiguration",
    "UpstreamUnavailable",
    "DeploymentConfig",
    "Environment",
    "EnvironmentStatus",
    "SwitchResult",
    "HealthMonitor",
    "TrafficRouter",
    "EnvironmentStore",
]

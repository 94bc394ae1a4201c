# apps/switch/metrics.py
from __future__ import annotations

from apps.common.metrics import REG

SWITCH_TOTAL = REG.counter("bluegreen_switch_total", "Committed environment switches")
SWITCH_REFUSED = REG.counter(
    "bluegreen_switch_refused_total", "Refused switch attempts by reason", label="reason"
)
PROXY_REQUESTS = REG.counter("bluegreen_proxy_requests_total", "Proxied requests by target", label="env")
PROXY_ERRORS = REG.counter("bluegreen_proxy_errors_total", "Upstream failures by target", label="env")
ENV_HEALTHY = REG.gauge("bluegreen_env_healthy", "Last probe verdict (1 healthy, 0 not)", label="env")
ACTIVE_IS_GREEN = REG.gauge("bluegreen_active_is_green", "1 when green receives traffic, 0 for blue")


__all__ = [
    "SWITCH_TOTAL",
    "SWITCH_REFUSED",
    "PROXY_REQUESTS",
    "PROXY_ERRORS",
    "ENV_HEALTHY",
    "ACTIVE_IS_GREEN",
]

from __future__ import annotations


class SwitchError(Exception):
    """Base class for administrative operations that were refused."""

    code = "switch_error"
    status_code = 409


class TargetUnhealthy(SwitchError):
    code = "target_unhealthy"

    def __init__(self, target: str, message: str | None = None):
        self.target = target
        super().__init__(message or f"Target environment {target} is not healthy")


class ConcurrentModification(SwitchError):
    code = "concurrent_modification"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        if expected == actual:
            # active 는 그대로지만 대상 주소가 바뀜
            super().__init__(f"target address changed concurrently (active {actual})")
        else:
            super().__init__(f"active environment changed concurrently (expected {expected}, found {actual})")


class InvalidConfiguration(SwitchError):
    code = "invalid_configuration"
    status_code = 400


class UpstreamUnavailable(Exception):
    """The active environment could not be reached while proxying."""

    def __init__(self, target: str, url: str, reason: str, timeout: bool = False):
        self.target = target
        self.url = url
        self.timeout = timeout
        super().__init__(f"upstream {target} unavailable ({url}): {reason}")

    @property
    def status_code(self) -> int:
        return 504 if self.timeout else 502


class ProbeFailure(Exception):
    """Internal to the health monitor; never propagated past it."""

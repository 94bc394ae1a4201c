from __future__ import annotations

import logging
from typing import Optional

from apps.switch import metrics
from apps.switch.errors import ConcurrentModification, TargetUnhealthy
from apps.switch.models import Environment, SwitchResult
from apps.switch.store import EnvironmentStore

log = logging.getLogger("bluegreen.switch")


class SwitchController:
    """Promotes the inactive environment.

    Two states (blue active, green active) and one transition. The health
    precondition is read first and the commit is a compare-and-set on the
    active pointer, so a switch that raced with another one fails instead of
    overwriting it. Nothing is retried here; the caller re-issues.

    There is no automatic switch-back when the active side degrades.
    Demotion is always operator-initiated.
    """

    def __init__(self, store: EnvironmentStore) -> None:
        self.store = store
        metrics.ACTIVE_IS_GREEN.set(1 if store.get_active() is Environment.SECONDARY else 0)

    def switch(self, expected_active: Optional[Environment] = None) -> SwitchResult:
        current = expected_active if expected_active is not None else self.store.get_active()
        target = current.other()

        # 주소를 먼저 읽어야 주소 변경 후 초기화된 상태와 짝이 맞음
        address = self.store.get_address(target)
        status = self.store.get_status(target)
        if not status.healthy:
            metrics.SWITCH_REFUSED.inc(label_value=TargetUnhealthy.code)
            log.warning("switch_refused", extra={"reason": TargetUnhealthy.code, "target": target.value})
            raise TargetUnhealthy(target.value)

        if not self.store.try_switch_active(current, target, expected_address=address):
            actual = self.store.get_active()
            metrics.SWITCH_REFUSED.inc(label_value=ConcurrentModification.code)
            log.warning(
                "switch_refused",
                extra={"reason": ConcurrentModification.code, "expected": current.value, "actual": actual.value},
            )
            raise ConcurrentModification(current.value, actual.value)

        metrics.SWITCH_TOTAL.inc()
        metrics.ACTIVE_IS_GREEN.set(1 if target is Environment.SECONDARY else 0)
        log.info("switched", extra={"old": current.value, "current": target.value, "version": status.version})
        return SwitchResult(old=current, current=target)


__all__ = ["SwitchController"]

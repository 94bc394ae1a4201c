"""Lightweight in-memory Prometheus-compatible metrics registry.

No external dependencies (no prometheus_client).
Thread-safe counters and gauges, optionally keyed by a single label.
"""
from __future__ import annotations

import threading
from typing import Dict, Optional


def _fmt_labels(label: Optional[str], value: Optional[str]) -> str:
    if not label or value is None:
        return ""
    return f'{{{label}="{value}"}}'


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help_text: str = "", label: Optional[str] = None):
        self.name = name
        self.help = help_text
        self.label = label
        self._values: Dict[Optional[str], float] = {}
        self._lock = threading.Lock()

    def get(self, label_value: Optional[str] = None) -> float:
        with self._lock:
            return self._values.get(label_value, 0)

    def samples(self) -> Dict[Optional[str], float]:
        with self._lock:
            return dict(self._values)


class Counter(_Metric):
    kind = "counter"

    def inc(self, amount: int = 1, label_value: Optional[str] = None) -> None:
        with self._lock:
            self._values[label_value] = self._values.get(label_value, 0) + amount


class Gauge(_Metric):
    kind = "gauge"

    def set(self, val: float, label_value: Optional[str] = None) -> None:
        with self._lock:
            self._values[label_value] = val


class Registry:
    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, cls, name: str, help_text: str, label: Optional[str]):
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = cls(name, help_text, label)
                self._metrics[name] = metric
            elif not isinstance(metric, cls):
                raise TypeError(f"metric {name} already registered as {metric.kind}")
            return metric

    def counter(self, name: str, help_text: str = "", label: Optional[str] = None) -> Counter:
        return self._get_or_create(Counter, name, help_text, label)

    def gauge(self, name: str, help_text: str = "", label: Optional[str] = None) -> Gauge:
        return self._get_or_create(Gauge, name, help_text, label)

    def render_text(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        lines = []
        with self._lock:
            metrics = list(self._metrics.values())
        for metric in metrics:
            if metric.help:
                lines.append(f"# HELP {metric.name} {metric.help}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            samples = metric.samples() or {None: 0}
            for label_value, value in sorted(samples.items(), key=lambda kv: kv[0] or ""):
                lines.append(f"{metric.name}{_fmt_labels(metric.label, label_value)} {value:g}")
        return "\n".join(lines) + "\n"


# Global singleton registry
REG = Registry()


__all__ = ["Counter", "Gauge", "Registry", "REG"]

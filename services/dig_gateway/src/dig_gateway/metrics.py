from __future__ import annotations
from typing import Any

# Route all metrics through core_metrics, but hide it behind this stable facade
from core_metrics import counter as _counter, gauge as _gauge, histogram as _histogram

__all__ = ["counter", "histogram", "gauge"]

def counter(name: str, value: float, **attrs: Any) -> None:
    """
    Stable facade for counters. Always injects service='dig_gateway' unless caller overrides.
    """
    attrs.setdefault("service", "dig_gateway")
    _counter(name, value, **attrs)

def histogram(name: str, value: float, **attrs: Any) -> None:
    attrs.setdefault("service", "dig_gateway")
    _histogram(name, value, **attrs)

def gauge(name: str, value: float) -> None:
    # Gauges are process-local; no service label
    _gauge(name, value)

"""
core_metrics – tiny helpers so services can record counters / histograms
without wiring prometheus_client objects through every module. Metrics are
created lazily on first use and exposed at ``/metrics`` by
``core_metrics.fastapi.attach_prometheus_endpoint``.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Tuple

from prometheus_client import (
    REGISTRY as _PROM_REGISTRY,
    Counter as _pCounter,
    Histogram as _pHistogram,
    Gauge as _pGauge,
)

_P_COUNTERS: Dict[str, Tuple[_pCounter, Tuple[str, ...]]] = {}
_P_HISTOS: Dict[str, Tuple[_pHistogram, Tuple[str, ...]]] = {}
_P_GAUGES: Dict[str, _pGauge] = {}
_LOCK = threading.Lock()


def _existing(name: str):
    return _PROM_REGISTRY._names_to_collectors.get(name)  # type: ignore[attr-defined]


def _labelled(metric, labelnames: Tuple[str, ...], attrs: Dict[str, Any]):
    # Label set is fixed by the first observation of a metric name
    if not labelnames:
        return metric
    return metric.labels(**{k: str(attrs.get(k, "")) for k in labelnames})


# --------------------------------------------------------------------------- #
# Public helpers                                                              #
# --------------------------------------------------------------------------- #
def counter(name: str, inc: int | float = 1, **attrs: Any) -> None:
    """Increment *name* by *inc* (default 1)."""
    with _LOCK:
        entry = _P_COUNTERS.get(name)
        if entry is None:
            labelnames = tuple(sorted(attrs))
            existing = _existing(name)
            pc = existing if existing is not None else _pCounter(name, f"Counter for {name}", labelnames)
            entry = (pc, labelnames if existing is None else tuple(getattr(existing, "_labelnames", ())))
            _P_COUNTERS[name] = entry
    pc, labelnames = entry
    _labelled(pc, labelnames, attrs).inc(inc)


def histogram(name: str, value: float, **attrs: Any) -> None:
    """
    Record *value* in histogram *name*.
    """
    with _LOCK:
        entry = _P_HISTOS.get(name)
        if entry is None:
            labelnames = tuple(sorted(attrs))
            existing = _existing(name)
            ph = existing if existing is not None else _pHistogram(name, f"Histogram for {name}", labelnames)
            entry = (ph, labelnames if existing is None else tuple(getattr(existing, "_labelnames", ())))
            _P_HISTOS[name] = entry
    ph, labelnames = entry
    _labelled(ph, labelnames, attrs).observe(value)


def gauge(name: str, value: float) -> None:
    """Record *value* in Prometheus **Gauge** *name*."""
    with _LOCK:
        g = _P_GAUGES.get(name)
        if g is None:
            existing = _existing(name)
            g = existing if existing is not None else _pGauge(name, f"Gauge for {name}")
            _P_GAUGES[name] = g
    g.set(value)


__all__ = ["counter", "histogram", "gauge"]

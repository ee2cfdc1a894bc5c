from __future__ import annotations

import threading
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

_Key = Tuple[str, Tuple[Tuple[str, str], ...]]


def _tag_key(tags: Optional[Dict[str, Any]]) -> Tuple[Tuple[str, str], ...]:
    if not tags:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in tags.items() if v is not None))


def _fmt_key(key: _Key) -> str:
    name, tagt = key
    if not tagt:
        return name
    suffix = ",".join([f"{k}={v}" for k, v in tagt])
    return f"{name}{{{suffix}}}"


class RollingMetrics:
    """
    Thread-safe in-process metrics with bounded memory:
    - counters: int
    - histograms: last N float samples

    Tag values must be identifiers or labels only (never user content).
    """

    def __init__(self, *, max_samples_per_histogram: int = 200):
        self.max_samples_per_histogram = max(10, int(max_samples_per_histogram))
        self._lock = threading.Lock()
        self._counters: Dict[_Key, int] = {}
        self._hist: Dict[_Key, Deque[float]] = {}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._hist.clear()

    def inc(self, name: str, n: int = 1, tags: Optional[Dict[str, Any]] = None) -> None:
        k = (str(name), _tag_key(tags))
        with self._lock:
            self._counters[k] = int(self._counters.get(k, 0)) + int(n)

    def observe(self, name: str, value: float, tags: Optional[Dict[str, Any]] = None) -> None:
        k = (str(name), _tag_key(tags))
        with self._lock:
            if k not in self._hist:
                self._hist[k] = deque(maxlen=self.max_samples_per_histogram)
            self._hist[k].append(float(value))

    def counter(self, name: str, tags: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return int(self._counters.get((str(name), _tag_key(tags)), 0))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            hist = {k: sorted(v) for k, v in self._hist.items()}
        out_h: Dict[str, Dict[str, float]] = {}
        for k, xs in hist.items():
            if not xs:
                out_h[_fmt_key(k)] = {"count": 0.0}
                continue
            out_h[_fmt_key(k)] = {
                "count": float(len(xs)),
                "min": xs[0],
                "max": xs[-1],
                "avg": sum(xs) / len(xs),
                "p50": xs[int((len(xs) - 1) * 0.5)],
                "p95": xs[int((len(xs) - 1) * 0.95)],
            }
        return {"counters": {_fmt_key(k): int(v) for k, v in counters.items()}, "histograms": out_h}

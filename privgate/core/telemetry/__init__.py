from __future__ import annotations

from privgate.core.telemetry.metrics import RollingMetrics

__all__ = ["RollingMetrics"]

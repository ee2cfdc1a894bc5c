from __future__ import annotations

from privgate.core.retention.policy import RetentionPolicy, RetentionRules
from privgate.core.retention.purge import PurgeEngine, PurgeResult

__all__ = ["PurgeEngine", "PurgeResult", "RetentionPolicy", "RetentionRules"]

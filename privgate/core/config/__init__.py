from __future__ import annotations

from privgate.core.config.io import load_config, save_config
from privgate.core.config.models import PrivgateConfig

__all__ = ["PrivgateConfig", "load_config", "save_config"]

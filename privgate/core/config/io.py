from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from privgate.core.config.models import PrivgateConfig
from privgate.core.errors import ConfigError


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None


def read_json_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e}")
    except OSError as e:
        return ReadResult(ok=False, data={}, error=str(e))
    if not isinstance(obj, dict):
        return ReadResult(ok=False, data={}, error="not_object")
    return ReadResult(ok=True, data=obj)


def atomic_write_json(path: str, data: Dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            f.write("\n")
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass


def load_config(path: str) -> PrivgateConfig:
    """
    Load and validate config. Missing file -> defaults; corrupt/invalid -> ConfigError.
    """
    rr = read_json_file(path)
    if not rr.ok:
        if rr.error == "missing":
            return PrivgateConfig()
        raise ConfigError("Configuration file is unreadable.", path=path, error=rr.error)
    try:
        return PrivgateConfig.model_validate(rr.data)
    except ValidationError as e:
        raise ConfigError("Configuration file is invalid.", path=path, errors=e.error_count()) from e


def save_config(path: str, cfg: PrivgateConfig) -> None:
    atomic_write_json(path, cfg.model_dump(mode="json"))

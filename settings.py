from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_HIERARCHY_PATH_ENV = "HIERARCHY_PERSISTENCE_PATH"
_CONVERSION_ARRAY_PATH_ENV = "CONVERSION_ARRAY_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    hierarchy_persistence_path: Optional[str]
    conversion_array_path: Optional[str]
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        hierarchy_persistence_path=_read_optional_env(
            _HIERARCHY_PATH_ENV, "./tmp/hierarchy.json"
        ),
        conversion_array_path=_read_optional_env(
            _CONVERSION_ARRAY_PATH_ENV, "./tmp/conversion_array.json"
        ),
        log_level=_read_log_level("INFO"),
    )

# Copyright 2025 iGenius S.p.A
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

import yaml

from sol_cloud.helpers.logger import setup_logger

from . import get_settings

logger = setup_logger(__name__)

T = TypeVar("T")
_REQUIRED = object()  # sentinel


def _candidate_files() -> list[Path]:
    # Search order (first hit wins)
    s = get_settings()
    candidates = []
    if s.defaults_file:
        candidates.append(Path(s.defaults_file).expanduser())
    candidates.append(Path.cwd() / ".sol-cloud" / "defaults.yaml")
    candidates.append(s.home / "defaults.yaml")
    return candidates


def _find_defaults_file() -> Path | None:
    for p in _candidate_files():
        if p.is_file():
            logger.debug(f"Using defaults file: {p}")
            return p
    return None


@lru_cache(maxsize=1)
def _load_defaults() -> dict[str, Any]:
    p = _find_defaults_file()
    if not p:
        return {}
    data = yaml.safe_load(p.read_text()) or {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {p}: top-level YAML must be a mapping")
        return {}
    return data


def _get_by_dots(d: dict[str, Any], key: str) -> Any:
    cur: Any = d
    for part in key.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return None
    return cur


def get_default(key: str, fallback: T | object = _REQUIRED) -> T:
    """Return defaults.yaml[key]; raise if required and missing/empty."""
    v: Any = _get_by_dots(_load_defaults(), key)
    if v is None or (isinstance(v, str) and not v.strip()):
        if fallback is _REQUIRED:
            raise KeyError(f"Missing required default: {key}")
        return fallback  # type: ignore[return-value]
    return v  # type: ignore[return-value]


def default_for(key: str, fallback: T | object = _REQUIRED) -> Callable[[], T]:
    """Factory for Field(default_factory=...)."""

    def _factory() -> T:
        return get_default(key, fallback)

    return _factory


def reload_defaults_cache() -> None:
    _load_defaults.cache_clear()

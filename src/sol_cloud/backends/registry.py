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

from typing import Any, Callable

from sol_cloud.backends.base import BaseProvider
from sol_cloud.backends.fly import FlyProvider
from sol_cloud.backends.railway import RailwayProvider
from sol_cloud.exceptions import ConfigError

_PROVIDERS: dict[str, Callable[..., BaseProvider]] = {
    "fly": FlyProvider,
    "railway": RailwayProvider,
}


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)


def create_provider(name: str, **kwargs: Any) -> BaseProvider:
    """Instantiate the provider registered under ``name`` (case-insensitive)."""
    key = (name or "").strip().lower()
    try:
        factory = _PROVIDERS[key]
    except KeyError:
        raise ConfigError(
            "provider",
            f"unsupported provider {name!r} (choose from {', '.join(available_providers())})",
        ) from None
    return factory(**kwargs)

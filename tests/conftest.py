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

import json
from typing import Any

import pytest
import requests


class FakeResponse:
    """Just enough of ``requests.Response`` for the API and RPC clients."""

    def __init__(self, status_code: int = 200, payload: Any = None, *, text: str | None = None):
        self.status_code = status_code
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode()
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def json(self) -> Any:
        return json.loads(self.text)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Records every request and answers from a routing function.

    ``handler(method, url, json)`` returns a ``FakeResponse`` or raises a
    ``requests`` exception. ``post`` is routed through the same handler so the
    JSON-RPC client can use it too.
    """

    def __init__(self, handler):
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    def request(self, method, url, *, headers=None, json=None, params=None, timeout=None, stream=False):
        self.calls.append(
            {"method": method, "url": url, "json": json, "params": params, "headers": headers, "timeout": timeout}
        )
        return self.handler(method, url, json)

    def post(self, url, *, json=None, timeout=None, headers=None):
        return self.request("POST", url, json=json, timeout=timeout, headers=headers)

    def urls(self, method: str | None = None) -> list[str]:
        return [c["url"] for c in self.calls if method is None or c["method"] == method]


def gql_ok(data: dict[str, Any]) -> FakeResponse:
    return FakeResponse(200, {"data": data})


def gql_error(*messages: str) -> FakeResponse:
    return FakeResponse(200, {"data": None, "errors": [{"message": m} for m in messages]})


class FakeClock:
    def __init__(self, t0: float = 0.0):
        self.t = t0
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    def sleep(self, dt: float) -> None:
        self.sleeps.append(dt)
        self.t += dt


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def gql():
    return {"ok": gql_ok, "error": gql_error}


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def network_down():
    def _handler(method, url, payload):
        raise requests.ConnectionError(f"no route to {url}")

    return _handler


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point the user config dir at a temp dir and drop provider tokens from the env."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("SOL_CLOUD_CONFIG_DIR", str(config_dir))
    for var in (
        "FLY_ACCESS_TOKEN",
        "FLY_API_TOKEN",
        "SOL_CLOUD_FLY_API_TOKEN",
        "SOL_CLOUD_FLY_ORG",
        "RAILWAY_TOKEN",
        "SOL_CLOUD_RAILWAY_TOKEN",
        "SOL_CLOUD_DEFAULTS_FILE",
        "SOL_CLOUD_ASCII",
        "SOL_CLOUD_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    return config_dir / "sol-cloud"


@pytest.fixture(autouse=True)
def clear_settings_cache_between_tests():
    from sol_cloud.config.defaults import reload_defaults_cache
    from sol_cloud.config.settings import reload_settings_cache

    reload_settings_cache()
    reload_defaults_cache()
    yield
    reload_settings_cache()
    reload_defaults_cache()

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

from datetime import datetime, timezone
import json
import os
import stat

import pytest

from sol_cloud.auth.credentials import (
    DEFAULT_FLY_ORG,
    Credentials,
    CredentialsStore,
    resolve_fly_org,
    resolve_token,
)
from sol_cloud.config.settings import get_settings, reload_settings_cache
from sol_cloud.exceptions import AuthError, ConfigError


@pytest.fixture
def store(tmp_path):
    return CredentialsStore(tmp_path / "creds" / "credentials.json")


def test_missing_file_loads_empty(store):
    creds = store.load()
    assert creds.fly.access_token == ""
    assert creds.railway.workspace_id == ""


def test_default_path_lives_in_config_home(isolated_config):
    assert CredentialsStore().path == isolated_config / "credentials.json"


def test_save_round_trips_with_private_mode(store):
    creds = Credentials()
    creds.fly.access_token = "fo1_abc"
    creds.fly.org_slug = "acme"
    creds.fly.verified_at = datetime(2026, 5, 1, tzinfo=timezone.utc)
    creds.railway.access_token = "rw_xyz"

    path = store.save(creds)

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    loaded = store.load()
    assert loaded.fly.access_token == "fo1_abc"
    assert loaded.fly.org_slug == "acme"
    assert loaded.fly.verified_at == creds.fly.verified_at
    assert loaded.railway.access_token == "rw_xyz"
    assert loaded.railway.verified_at is None
    # no temp files left behind
    assert [p.name for p in path.parent.iterdir()] == ["credentials.json"]


def test_tokens_are_trimmed(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(json.dumps({"fly": {"access_token": "  tok\n"}}))
    assert store.load().fly.access_token == "tok"


def test_corrupt_file_is_config_error(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json")
    with pytest.raises(ConfigError):
        store.load()


def test_empty_file_loads_defaults(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("  \n")
    assert store.load() == Credentials()


def test_resolve_token_precedence(store, monkeypatch):
    creds = Credentials()
    creds.fly.access_token = "saved"
    store.save(creds)

    assert resolve_token("fly", store=store) == "saved"

    monkeypatch.setenv("FLY_API_TOKEN", " from-env ")
    reload_settings_cache()
    assert resolve_token("fly", store=store, settings=get_settings()) == "from-env"

    assert resolve_token("fly", " explicit ", store=store) == "explicit"


def test_resolve_token_prefers_fly_access_token_env(store, monkeypatch):
    monkeypatch.setenv("FLY_ACCESS_TOKEN", "access")
    reload_settings_cache()
    assert resolve_token("fly", store=store) == "access"


def test_railway_token_env(store, monkeypatch):
    monkeypatch.setenv("RAILWAY_TOKEN", "rw-env")
    reload_settings_cache()
    assert resolve_token("railway", store=store) == "rw-env"


def test_blank_sources_are_skipped(store, monkeypatch):
    monkeypatch.setenv("FLY_API_TOKEN", "   ")
    reload_settings_cache()
    with pytest.raises(AuthError) as ei:
        resolve_token("fly", "  ", store=store)
    assert "sol-cloud auth fly" in str(ei.value)


def test_resolve_fly_org(store, monkeypatch):
    assert resolve_fly_org(store=store) == DEFAULT_FLY_ORG

    creds = Credentials()
    creds.fly.org_slug = "saved-org"
    store.save(creds)
    assert resolve_fly_org(store=store) == "saved-org"

    monkeypatch.setenv("SOL_CLOUD_FLY_ORG", "env-org")
    reload_settings_cache()
    assert resolve_fly_org(store=store) == "env-org"
    assert resolve_fly_org("cli-org", store=store) == "cli-org"

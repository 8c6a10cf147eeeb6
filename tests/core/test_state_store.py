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

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from sol_cloud.core.state.state_manager import StateStore
from sol_cloud.exceptions import DeploymentNotFoundError, NoDeploymentsError
from sol_cloud.platform.protocols import Deployment


class _Ticker:
    def __init__(self):
        self.t = datetime(2026, 3, 1, 9, 0, 0)

    def __call__(self) -> datetime:
        self.t += timedelta(minutes=1)
        return self.t


def _dep(name: str, provider: str = "fly", **meta) -> Deployment:
    return Deployment(
        name=name,
        provider=provider,
        rpc_url=f"https://{name}.fly.dev",
        websocket_url=f"wss://{name}.fly.dev",
        artifacts_dir=Path("/tmp") / name,
        region="ord",
        dashboard_url=f"https://fly.io/apps/{name}",
        metadata=meta,
    )


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path, now=_Ticker())


def test_db_lives_under_project_state_dir(tmp_path):
    assert StateStore(tmp_path).db_path == tmp_path.resolve() / ".sol-cloud" / "state.db"


def test_save_and_get_round_trip(store):
    d = _dep("sol-cloud-aaaa1111", org="personal", volume=False)
    store.save(d)
    assert store.get(d.name) == d
    assert store.db_path.is_file()


def test_get_missing_raises(store):
    with pytest.raises(DeploymentNotFoundError, match="nope"):
        store.get("nope")


def test_save_upserts_and_keeps_created_at(store):
    store.save(_dep("alpha-1"))
    first = store.list_all()[0]
    store.save(_dep("alpha-1", volume=True))

    (entry,) = store.list_all()
    assert entry.created_at == first.created_at
    assert entry.updated_at > first.updated_at
    assert entry.deployment.metadata == {"volume": True}


def test_last_pointer_follows_saves(store):
    store.save(_dep("alpha-1"))
    store.save(_dep("bravo-2"))
    assert store.last_name() == "bravo-2"
    store.save(_dep("alpha-1"))
    assert store.last_name() == "alpha-1"


def test_list_orders_newest_first_and_flags_last(store):
    for n in ("alpha-1", "bravo-2", "charlie-3"):
        store.save(_dep(n))
    entries = store.list_all()
    assert [e.deployment.name for e in entries] == ["charlie-3", "bravo-2", "alpha-1"]
    assert [e.is_last for e in entries] == [True, False, False]


def test_removing_last_moves_pointer_to_newest_remaining(store):
    for n in ("alpha-1", "bravo-2", "charlie-3"):
        store.save(_dep(n))
    store.save(_dep("alpha-1"))  # alpha is now newest and last

    assert store.remove("alpha-1") is True
    assert store.last_name() == "charlie-3"


def test_removing_other_keeps_pointer(store):
    store.save(_dep("alpha-1"))
    store.save(_dep("bravo-2"))
    store.remove("alpha-1")
    assert store.last_name() == "bravo-2"


def test_remove_missing_returns_false(store):
    assert store.remove("ghost") is False


def test_removing_everything_clears_pointer(store):
    store.save(_dep("alpha-1"))
    store.remove("alpha-1")
    assert store.last_name() is None
    with pytest.raises(NoDeploymentsError):
        store.resolve()


def test_resolve_by_name_and_last(store):
    store.save(_dep("alpha-1"))
    store.save(_dep("bravo-2"))
    assert store.resolve().name == "bravo-2"
    assert store.resolve("alpha-1").name == "alpha-1"
    with pytest.raises(DeploymentNotFoundError):
        store.resolve("zulu-9")


def test_resolve_empty_state(store):
    with pytest.raises(NoDeploymentsError):
        store.resolve()


def test_resolve_single_entry_without_pointer(store, mocker):
    store.save(_dep("alpha-1"))
    mocker.patch.object(store, "last_name", return_value=None)
    assert store.resolve().name == "alpha-1"


def test_resolve_many_without_pointer(store, mocker):
    store.save(_dep("alpha-1"))
    store.save(_dep("bravo-2"))
    mocker.patch.object(store, "last_name", return_value=None)
    with pytest.raises(NoDeploymentsError, match="pass a name"):
        store.resolve()


def test_state_is_shared_between_instances(tmp_path):
    StateStore(tmp_path).save(_dep("alpha-1"))
    assert StateStore(tmp_path).resolve().name == "alpha-1"

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

from pathlib import Path

import pytest
from typer.testing import CliRunner

import sol_cloud.cli.main as main
from sol_cloud.cli.main import app
from sol_cloud.core.state.state_manager import StateStore
from sol_cloud.exceptions import (
    DeployedButUnhealthyError,
    HealthCheckTimeoutError,
    HTTPStatusError,
    RPCStatusError,
    StageError,
)
from sol_cloud.monitor.watcher import WatchSummary, auto_approve
from sol_cloud.platform.protocols import Deployment, ProviderStatus, RPCMetrics, ValidatorPhase

runner = CliRunner()

NAME = "sol-cloud-cli00001"


def _deployment(name=NAME, provider="fly", **meta) -> Deployment:
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


class _FakeProvider:
    name = "fly"

    def __init__(self):
        self.deployed = []
        self.destroyed = []
        self.deploy_error = None
        self.status_error = None

    def deploy(self, cfg):
        self.deployed.append(cfg)
        if self.deploy_error:
            raise self.deploy_error
        return _deployment(cfg.name, volume=True)

    def destroy(self, name):
        self.destroyed.append(name)

    def status(self, name):
        if self.status_error:
            raise self.status_error
        return ProviderStatus(name=name, phase=ValidatorPhase.RUNNING)

    def restart(self, name, *, timeout_s=None):
        pass


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main.console, "width", 200)
    return tmp_path


@pytest.fixture
def fake_provider(monkeypatch):
    provider = _FakeProvider()
    created = []

    def _create(name, **kwargs):
        created.append((name, kwargs))
        return provider

    monkeypatch.setattr("sol_cloud.cli.main.create_provider", _create)
    provider.created = created
    return provider


def test_cli_version(monkeypatch):
    monkeypatch.setattr("sol_cloud.cli.main.get_version", lambda: "1.2.3")
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "sol-cloud CLI Version: 1.2.3" in result.stdout


def test_cli_version_short(monkeypatch):
    monkeypatch.setattr("sol_cloud.cli.main.get_version", lambda: "1.2.3")
    result = runner.invoke(app, ["version", "--short"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "1.2.3"


def test_deploy_dry_run_renders_artifacts(project):
    result = runner.invoke(app, ["deploy", "--name", "dry-run-1", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Dry run complete" in result.output
    assert "https://dry-run-1.fly.dev" in result.output
    artifacts = project / ".sol-cloud" / "deployments" / "dry-run-1"
    assert (artifacts / "fly.toml").is_file()
    assert StateStore(project).list_all() == []


def test_deploy_records_state(project, fake_provider):
    result = runner.invoke(
        app,
        ["deploy", "--name", NAME, "--region", "ams", "--health-timeout", "60", "--skip-health-check"],
    )

    assert result.exit_code == 0, result.output
    (cfg,) = fake_provider.deployed
    assert cfg.region == "ams"
    assert cfg.health_check_timeout_s == 60
    assert cfg.skip_health_check is True
    assert fake_provider.created[0][0] == "fly"
    assert StateStore(project).resolve().name == NAME
    assert f"solana config set --url https://{NAME}.fly.dev" in result.output


def test_deploy_uses_project_file(project, fake_provider):
    (project / ".sol-cloud.yml").write_text("provider: railway\napp_name: from-file\nregion: fra\n")
    result = runner.invoke(app, ["deploy"])
    assert result.exit_code == 0, result.output
    (cfg,) = fake_provider.deployed
    assert (cfg.name, cfg.provider, cfg.region) == ("from-file", "railway", "fra")


def test_deploy_generates_name(project, fake_provider):
    result = runner.invoke(app, ["deploy"])
    assert result.exit_code == 0, result.output
    assert fake_provider.deployed[0].name.startswith("sol-cloud-")


def test_deploy_unhealthy_still_records(project, fake_provider):
    d = _deployment()
    fake_provider.deploy_error = DeployedButUnhealthyError(d, HealthCheckTimeoutError(d.rpc_url, None))

    result = runner.invoke(app, ["deploy", "--name", NAME])

    assert result.exit_code == 3
    assert "never became healthy" in result.output
    assert "health check failed" in result.output
    assert StateStore(project).get(NAME) == d


def test_deploy_stage_failure_exit_code(project, fake_provider):
    fake_provider.deploy_error = StageError("fly remote deploy", "exit status 1")
    result = runner.invoke(app, ["deploy", "--name", NAME])
    assert result.exit_code == 3
    assert "fly remote deploy failed" in result.output
    assert StateStore(project).list_all() == []


def test_deploy_invalid_name_is_config_error(project):
    result = runner.invoke(app, ["deploy", "--name", "Bad_Name", "--dry-run"])
    assert result.exit_code == 2
    assert "not DNS-label safe" in result.output


def test_deploy_without_token_is_auth_error(project):
    result = runner.invoke(app, ["deploy", "--name", NAME])
    assert result.exit_code == 4
    assert "sol-cloud auth fly" in result.output


def test_destroy(project, fake_provider):
    store = StateStore(project)
    store.save(_deployment("alpha-1"))
    store.save(_deployment(NAME))

    result = runner.invoke(app, ["destroy", "--yes"])

    assert result.exit_code == 0, result.output
    assert fake_provider.destroyed == [NAME]
    assert f"validator destroyed: {NAME}" in result.output
    assert [e.deployment.name for e in store.list_all()] == ["alpha-1"]
    assert store.last_name() == "alpha-1"


def test_destroy_asks_for_confirmation(project, fake_provider):
    StateStore(project).save(_deployment())
    result = runner.invoke(app, ["destroy", NAME], input="n\n")
    assert result.exit_code != 0
    assert fake_provider.destroyed == []
    assert StateStore(project).get(NAME)


def test_destroy_with_empty_state(project, fake_provider):
    result = runner.invoke(app, ["destroy", "--yes"])
    assert result.exit_code == 3
    assert "no deployments" in result.output


def test_status_renders_metrics(project, fake_provider, monkeypatch):
    StateStore(project).save(_deployment())
    monkeypatch.setattr("sol_cloud.cli.main.fetch_metrics", lambda url, timeout: RPCMetrics(slot=4242, tps=12.5))

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0, result.output
    assert "4242" in result.output
    assert "12.50" in result.output
    assert "Running" in result.output


def test_status_survives_provider_and_rpc_failures(project, fake_provider, monkeypatch):
    StateStore(project).save(_deployment(volume=False))
    fake_provider.status_error = HTTPStatusError(404, "app not found", context="fly app lookup")

    def _down(url, timeout):
        raise RPCStatusError(502, "bad gateway")

    monkeypatch.setattr("sol_cloud.cli.main.fetch_metrics", _down)
    result = runner.invoke(app, ["status", NAME])

    assert result.exit_code == 0, result.output
    assert "Provider check warning" in result.output
    assert "bad gateway" in result.output
    assert "ephemeral" in result.output


def test_status_unknown_name_assumes_fly_app(project, fake_provider, monkeypatch):
    seen = []
    monkeypatch.setattr(
        "sol_cloud.cli.main.fetch_metrics",
        lambda url, timeout: seen.append(url) or RPCMetrics(slot=1, tps=0.0),
    )
    result = runner.invoke(app, ["status", "not-recorded"])
    assert result.exit_code == 0, result.output
    assert seen == ["https://not-recorded.fly.dev"]


class _FakeWatcher:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        _FakeWatcher.instances.append(self)

    def run(self):
        return WatchSummary(ticks=5, restarts=1, reason="max_restarts")


def test_watch_builds_watcher_from_flags(project, fake_provider, monkeypatch):
    StateStore(project).save(_deployment())
    _FakeWatcher.instances.clear()
    restored = []
    monkeypatch.setattr("sol_cloud.cli.main.ValidatorWatcher", _FakeWatcher)
    monkeypatch.setattr("sol_cloud.cli.main.install_signal_handlers", lambda w: lambda: restored.append(True))

    result = runner.invoke(
        app,
        [
            "watch",
            "--check-interval", "10",
            "--stuck-threshold", "90",
            "--max-restarts", "3",
            "--restart-cooldown", "60",
            "--auto-restart",
        ],
    )

    assert result.exit_code == 0, result.output
    (w,) = _FakeWatcher.instances
    cfg = w.kwargs["cfg"]
    assert (cfg.check_interval_s, cfg.stuck_threshold_s, cfg.max_restarts, cfg.restart_cooldown_s) == (10, 90, 3, 60)
    assert w.kwargs["name"] == NAME
    assert w.kwargs["rpc_url"] == f"https://{NAME}.fly.dev"
    assert w.kwargs["confirm"] is auto_approve
    assert restored == [True]
    assert "Watching validator" in result.output
    assert "Watcher stopped (max_restarts) after 5 checks, 1 restart(s)." in result.output


def test_watch_rejects_bad_interval(project, fake_provider):
    StateStore(project).save(_deployment())
    result = runner.invoke(app, ["watch", "--check-interval", "0"])
    assert result.exit_code == 2
    assert "check_interval_s" in result.output


def test_list(project):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No deployments found." in result.output

    StateStore(project).save(_deployment("alpha-1"))
    StateStore(project).save(_deployment("bravo-2", provider="railway"))
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0, result.output
    assert "alpha-1" in result.output
    assert "bravo-2 *" in result.output
    assert "RAILWAY" in result.output

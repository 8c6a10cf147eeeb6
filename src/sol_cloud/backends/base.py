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

"""Deploy sequence shared by every provider.

``BaseProvider.deploy`` owns the ordering: stage the program, render the
build context, stop on a dry run, resolve the token, hand over to the
provider-specific ``_provision`` and finally run the health check. The
deploy log is written before any provisioning error propagates.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable

import requests

from sol_cloud.auth.credentials import CredentialsStore, resolve_token
from sol_cloud.backends.http import APIClient
from sol_cloud.config.deployment import DeploymentConfig
from sol_cloud.config.settings import Settings, get_settings
from sol_cloud.deploy.artifacts import render_artifacts, stage_program
from sol_cloud.deploy.exec import run_stage
from sol_cloud.exceptions import DeployedButUnhealthyError, HealthCheckTimeoutError
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.platform.health import wait_healthy
from sol_cloud.platform.protocols import Deployment

logger = setup_logger(__name__)


class DeployLog:
    """Accumulates step markers and command output for ``deploy.log``."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def step(self, line: str) -> None:
        self._parts.append(line.rstrip("\n") + "\n")

    def output(self, header: str, text: str) -> None:
        self._parts.append(f"\n[{header}]\n{text}")
        if text and not text.endswith("\n"):
            self._parts.append("\n")

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def write(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.text)
        except OSError as e:
            logger.warning(f"Could not write deploy log {path}: {e}")


@dataclass
class BaseProvider(ABC):
    settings: Settings = field(default_factory=get_settings)
    store: CredentialsStore | None = None
    session: requests.Session | None = None
    runner: Callable[..., object] = run_stage
    health_check: Callable[..., None] = wait_healthy
    project_dir: Path = field(default_factory=Path.cwd)

    name = "base"
    platform_domain = ""
    log_file_name = "deploy.log"
    include_fly_toml = False

    # --- shared helpers ---
    def _store(self) -> CredentialsStore:
        if self.store is None:
            self.store = CredentialsStore()
        return self.store

    def _token(self, explicit: str | None = None) -> str:
        return resolve_token(self.name, explicit, settings=self.settings, store=self._store())

    def _client(self, token: str, *, base_url: str = "", graphql_url: str = "") -> APIClient:
        return APIClient(
            token,
            base_url=base_url,
            graphql_url=graphql_url,
            timeout=self.settings.http_timeout_s,
            session=self.session,
        )

    def default_host(self, name: str) -> str:
        return f"{name}.{self.platform_domain}"

    def predicted_deployment(self, cfg: DeploymentConfig) -> Deployment:
        host = self.default_host(cfg.name)
        return Deployment(
            name=cfg.name,
            provider=self.name,
            rpc_url=f"https://{host}",
            websocket_url=f"wss://{host}",
            artifacts_dir=cfg.artifacts_dir,
            region=cfg.region,
        )

    # --- lifecycle ---
    def deploy(self, cfg: DeploymentConfig) -> Deployment:
        program = stage_program(cfg)
        render_artifacts(cfg, include_fly_toml=self.include_fly_toml, program=program)
        predicted = self.predicted_deployment(cfg)

        if cfg.dry_run:
            logger.info(f"Dry run: artifacts rendered in {cfg.artifacts_dir}")
            return replace(predicted, metadata={"dry_run": True})

        explicit = cfg.access_token.get_secret_value() if cfg.access_token else None
        token = self._token(explicit)

        log = DeployLog()
        log.step(f"deploy started provider={self.name} name={cfg.name} region={cfg.region}")
        try:
            deployment = self._provision(cfg, token, log, predicted)
        finally:
            log.write(cfg.artifacts_dir / self.log_file_name)

        if cfg.skip_health_check:
            return deployment

        logger.info(f"Waiting for [cyan]{deployment.rpc_url}[/cyan] to report healthy...")
        try:
            self.health_check(
                deployment.rpc_url,
                timeout_s=cfg.health_check_timeout_s,
                interval_s=cfg.health_check_interval_s,
            )
        except HealthCheckTimeoutError as e:
            raise DeployedButUnhealthyError(deployment, e) from e
        return deployment

    @abstractmethod
    def _provision(
        self, cfg: DeploymentConfig, token: str, log: DeployLog, predicted: Deployment
    ) -> Deployment:
        """Remote steps: ensure app, network identity, volume; push; discover the host."""

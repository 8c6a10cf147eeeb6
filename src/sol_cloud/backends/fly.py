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

"""Fly.io provider: Machines REST API + GraphQL, pushed with ``flyctl deploy``."""

from dataclasses import dataclass
import re
from typing import Any

from sol_cloud.auth.credentials import resolve_fly_org
from sol_cloud.auth.verify import Verification, verify_fly_token
from sol_cloud.backends.base import BaseProvider, DeployLog
from sol_cloud.backends.http import APIClient
from sol_cloud.config.deployment import DeploymentConfig
from sol_cloud.deploy.artifacts import render_fly_toml
from sol_cloud.deploy.exec import build_env, require_binary
from sol_cloud.exceptions import (
    GraphQLError,
    HTTPStatusError,
    RemoteAPIError,
    StageError,
)
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.helpers.naming import volume_name_for
from sol_cloud.platform.protocols import Deployment, ProviderStatus, ValidatorPhase

logger = setup_logger(__name__)

FLYCTL_INSTALL_HINT = "install from https://fly.io/docs/flyctl/install/"
FLY_DASHBOARD_URL = "https://fly.io/apps/{name}"
FLY_PUSH_TIMEOUT_S = 20 * 60.0

# App creation answers 409/422 with one of these when the name is ours already.
APP_CONFLICT_MARKERS = (
    "already exists",
    "already taken",
    "already been taken",
    "has already been taken",
    "name is taken",
)
# allocateIpAddress errors meaning the app already has an address of that type.
IP_ALLOCATED_MARKERS = ("already has", "already allocated")
VOLUME_EXISTS_MARKERS = ("already exists",)

FLY_HOST_RE = re.compile(r"([a-zA-Z0-9-]+\.fly\.dev)")

ALLOCATE_IP_MUTATION = """
mutation($input: AllocateIPAddressInput!) {
  allocateIpAddress(input: $input) { ipAddress { id } }
}
"""


def is_app_conflict(status: int, body: str) -> bool:
    if status not in (409, 422):
        return False
    lower = body.lower()
    return any(m in lower for m in APP_CONFLICT_MARKERS)


def is_ip_already_allocated(message: str) -> bool:
    lower = message.lower()
    return any(m in lower for m in IP_ALLOCATED_MARKERS)


def is_volume_conflict(body: str) -> bool:
    lower = body.lower()
    return any(m in lower for m in VOLUME_EXISTS_MARKERS)


def extract_fly_host(output: str) -> str:
    m = FLY_HOST_RE.search(output)
    return m.group(1).lower() if m else ""


def phase_from_machines(machines: list[dict[str, Any]]) -> ValidatorPhase:
    """``started`` anywhere wins; all stopped is stopped; else the first machine decides."""
    if not machines:
        return ValidatorPhase.STOPPED
    states = [str(m.get("state", "")).lower() for m in machines]
    if "started" in states:
        return ValidatorPhase.RUNNING
    if all(s == "stopped" for s in states):
        return ValidatorPhase.STOPPED
    first = states[0]
    if first in ("created", "starting", "replacing", "updating"):
        return ValidatorPhase.STARTING
    if first in ("stopping", "suspended", "destroyed", "destroying", "failed"):
        return ValidatorPhase.STOPPED
    return ValidatorPhase.UNKNOWN


def _decode_list(body: Any, key: str) -> list[dict[str, Any]]:
    if isinstance(body, list):
        return [m for m in body if isinstance(m, dict)]
    if isinstance(body, dict) and isinstance(body.get(key), list):
        return [m for m in body[key] if isinstance(m, dict)]
    raise ValueError(f"unexpected {key} payload")


@dataclass
class FlyProvider(BaseProvider):
    name = "fly"
    platform_domain = "fly.dev"
    log_file_name = "flyctl-deploy.log"
    include_fly_toml = True

    def _machines(self, token: str) -> APIClient:
        return self._client(token, base_url=self.settings.fly_machines_url)

    def _graphql(self, token: str) -> APIClient:
        return self._client(token, graphql_url=self.settings.fly_graphql_url)

    # --- deploy steps ---
    def _provision(
        self, cfg: DeploymentConfig, token: str, log: DeployLog, predicted: Deployment
    ) -> Deployment:
        flyctl = require_binary(self.settings.flyctl_bin, hint=FLYCTL_INSTALL_HINT)
        org = resolve_fly_org(cfg.org, settings=self.settings, store=self._store())
        log.step(f"app={cfg.name} org={org} region={cfg.region}")

        machines = self._machines(token)
        try:
            self.ensure_app(machines, cfg.name, org)
        except RemoteAPIError as e:
            raise StageError("create fly app", e) from e
        log.step("app ensured")

        try:
            self.ensure_networking(self._graphql(token), cfg.name)
        except RemoteAPIError as e:
            raise StageError("allocate fly ip", e) from e
        log.step("networking ensured")

        volume_ok = False
        if not cfg.resources.skip_volume:
            volume_ok = self.ensure_volume(
                machines, cfg.name, cfg.region, cfg.resources.volume_size_gb
            )
            if not volume_ok:
                render_fly_toml(cfg, mount_volume=False)
            log.step(f"volume {'ensured' if volume_ok else 'unavailable; ledger is ephemeral'}")

        env = build_env({"FLY_ACCESS_TOKEN": token, "FLY_ORG": org})
        args = [
            flyctl,
            "deploy",
            "--app",
            cfg.name,
            "--config",
            "fly.toml",
            "--remote-only",
            "--ha=false",
            "--wait-timeout=15m",
            "--yes",
        ]
        logger.info(f"Pushing [cyan]{cfg.name}[/cyan] with flyctl (remote build)...")
        try:
            result = self.runner(
                "fly remote deploy",
                args,
                cwd=cfg.artifacts_dir,
                env=env,
                timeout=FLY_PUSH_TIMEOUT_S,
            )
        except StageError as e:
            log.output("flyctl deploy --remote-only", e.output)
            raise
        log.output("flyctl deploy --remote-only", result.output)

        host = extract_fly_host(result.output) or self.default_host(cfg.name)
        return Deployment(
            name=cfg.name,
            provider=self.name,
            rpc_url=f"https://{host}",
            websocket_url=f"wss://{host}",
            artifacts_dir=cfg.artifacts_dir,
            region=cfg.region,
            dashboard_url=FLY_DASHBOARD_URL.format(name=cfg.name),
            metadata={"org": org, "volume": volume_ok},
        )

    def ensure_app(self, machines: APIClient, name: str, org: str) -> None:
        resp = machines.request("POST", "/apps", json={"app_name": name, "org_slug": org})
        if resp.ok:
            logger.info(f"Created Fly app [cyan]{name}[/cyan] in org {org}")
            return
        if is_app_conflict(resp.status, resp.text):
            logger.debug(f"Fly app {name} already exists")
            return
        raise HTTPStatusError(resp.status, resp.text, context="create app")

    def ensure_networking(self, graphql: APIClient, name: str) -> None:
        for ip_type in ("shared_v4", "v6"):
            try:
                graphql.graphql(
                    ALLOCATE_IP_MUTATION, {"input": {"appId": name, "type": ip_type}}
                )
            except GraphQLError as e:
                if not is_ip_already_allocated(" ".join(e.messages)):
                    raise
                logger.debug(f"{name} already has a {ip_type} address")

    def ensure_volume(self, machines: APIClient, app: str, region: str, size_gb: int) -> bool:
        """List-then-create the ledger volume. Failures are warnings, never fatal."""
        volume = volume_name_for(app)
        try:
            resp = machines.request_ok("GET", f"/apps/{app}/volumes", context="list volumes")
            existing = _decode_list(resp.json(), "volumes")
            for v in existing:
                if v.get("name") == volume and str(v.get("region", region)) == region:
                    logger.debug(f"Volume {volume} already exists in {region}")
                    return True

            resp = machines.request(
                "POST",
                f"/apps/{app}/volumes",
                json={"name": volume, "region": region, "size_gb": size_gb},
            )
            if resp.ok or is_volume_conflict(resp.text):
                logger.info(f"Volume [cyan]{volume}[/cyan] ready ({size_gb} GB, {region})")
                return True
            raise HTTPStatusError(resp.status, resp.text, context="create volume")
        except (RemoteAPIError, ValueError) as e:
            logger.warning(
                f"Volume {volume} could not be created ({e}); "
                "continuing with ephemeral ledger storage, the next deploy retries"
            )
            return False

    # --- other lifecycle ops ---
    def list_machines(self, machines: APIClient, app: str) -> list[dict[str, Any]]:
        resp = machines.request("GET", f"/apps/{app}/machines")
        if resp.status == 404:
            raise HTTPStatusError(404, resp.text, context=f"fly app {app!r} lookup")
        if not resp.ok:
            raise HTTPStatusError(resp.status, resp.text, context="list machines")
        try:
            return _decode_list(resp.json(), "machines")
        except ValueError as e:
            raise HTTPStatusError(resp.status, resp.text, context="decode machines") from e

    def destroy(self, name: str) -> None:
        machines = self._machines(self._token())
        resp = machines.request("DELETE", f"/apps/{name}")
        if resp.status == 404:
            logger.info(f"Fly app {name} is already gone")
            return
        if not resp.ok:
            raise StageError("destroy fly app", HTTPStatusError(resp.status, resp.text))
        logger.info(f"Destroyed Fly app [cyan]{name}[/cyan]")

    def status(self, name: str) -> ProviderStatus:
        machines = self.list_machines(self._machines(self._token()), name)
        return ProviderStatus(
            name=name,
            phase=phase_from_machines(machines),
            detail={"machines": [{"id": m.get("id"), "state": m.get("state")} for m in machines]},
        )

    def restart(self, name: str, *, timeout_s: float | None = None) -> None:
        client = self._machines(self._token())
        try:
            machines = self.list_machines(client, name)
        except RemoteAPIError as e:
            raise StageError("restart fly machines", e) from e
        if not machines:
            raise StageError("restart fly machines", f"no machines found for app {name}")

        for m in machines:
            machine_id = m.get("id")
            if not machine_id:
                continue
            try:
                client.request_ok(
                    "POST",
                    f"/apps/{name}/machines/{machine_id}/restart",
                    context=f"restart machine {machine_id}",
                    timeout=timeout_s,
                )
                if timeout_s:
                    client.request_ok(
                        "GET",
                        f"/apps/{name}/machines/{machine_id}/wait",
                        params={"state": "started", "timeout": int(timeout_s)},
                        context=f"wait for machine {machine_id}",
                        timeout=timeout_s + 5,
                    )
            except RemoteAPIError as e:
                raise StageError("restart fly machines", e) from e
            logger.debug(f"Machine {machine_id} restarted")

    def verify_token(self, token: str) -> Verification:
        return verify_fly_token(self._machines(token), self._graphql(token))

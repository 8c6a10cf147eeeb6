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

"""Railway provider: GraphQL-only API, pushed with ``railway up``.

Railway has no name-addressed resources, so the ids resolved during deploy
(project, service, environment, domain) are written to
``<artifacts>/railway-ids.json`` and read back by destroy/status/restart.
"""

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from sol_cloud.auth.verify import Verification, verify_railway_token
from sol_cloud.backends.base import BaseProvider, DeployLog
from sol_cloud.backends.http import APIClient
from sol_cloud.config.deployment import STATE_DIR_NAME, DeploymentConfig
from sol_cloud.deploy.artifacts import LEDGER_MOUNT_PATH
from sol_cloud.deploy.exec import build_env, require_binary
from sol_cloud.exceptions import (
    AuthError,
    ConfigError,
    GraphQLError,
    HTTPStatusError,
    RemoteAPIError,
    StageError,
    TransportError,
)
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.platform.protocols import Deployment, ProviderStatus, ValidatorPhase

logger = setup_logger(__name__)

RAILWAY_INSTALL_HINT = "install from https://docs.railway.app/guides/cli"
RAILWAY_DASHBOARD_URL = "https://railway.app/project/{project_id}"
RAILWAY_IDS_FILE = "railway-ids.json"
RAILWAY_PUSH_TIMEOUT_S = 20 * 60.0
SERVICE_NAME = "validator"
PROJECT_TOKEN_NAME = "sol-cloud-deploy"
PREFERRED_ENVIRONMENT = "production"

ALREADY_MARKERS = ("already",)
VOLUME_EXISTS_MARKERS = ("already", "exist")
NOT_FOUND_MARKERS = ("not found", "does not exist")

DEPLOYMENT_PHASES = {
    "success": ValidatorPhase.RUNNING,
    "deploying": ValidatorPhase.STARTING,
    "building": ValidatorPhase.STARTING,
    "initializing": ValidatorPhase.STARTING,
    "queued": ValidatorPhase.STARTING,
    "failed": ValidatorPhase.STOPPED,
    "crashed": ValidatorPhase.STOPPED,
    "removed": ValidatorPhase.STOPPED,
}

Q_PROJECTS = "query { projects { edges { node { id name } } } }"
Q_PROJECTS_WITH_TEAM = "query { projects { edges { node { id name teamId } } } }"
Q_ME_FIELD = "query {{ me {{ {field} {{ id name }} }} }}"
M_PROJECT_CREATE = (
    "mutation ProjectCreate($input: ProjectCreateInput!) { projectCreate(input: $input) { id } }"
)
Q_SERVICES = (
    "query Project($id: String!) { project(id: $id) { services { edges { node { id name } } } } }"
)
M_SERVICE_CREATE = (
    "mutation ServiceCreate($input: ServiceCreateInput!) { serviceCreate(input: $input) { id } }"
)
Q_ENVIRONMENTS = (
    "query Project($id: String!) "
    "{ project(id: $id) { environments { edges { node { id name } } } } }"
)
Q_DOMAINS = """
query ServiceDomains($projectId: String!, $serviceId: String!, $environmentId: String!) {
  domains(projectId: $projectId, serviceId: $serviceId, environmentId: $environmentId) {
    serviceDomains { domain }
  }
}
"""
M_DOMAIN_CREATE = """
mutation ServiceDomainCreate($input: ServiceDomainCreateInput!) {
  serviceDomainCreate(input: $input) { domain }
}
"""
Q_VOLUMES = """
query Project($id: String!) {
  project(id: $id) {
    volumes { edges { node { volumeInstances { edges { node { serviceId } } } } } }
  }
}
"""
M_VOLUME_CREATE = (
    "mutation VolumeCreate($input: VolumeCreateInput!) { volumeCreate(input: $input) { id } }"
)
M_PROJECT_TOKEN = (
    "mutation ProjectTokenCreate($input: ProjectTokenCreateInput!) "
    "{ projectTokenCreate(input: $input) }"
)
M_PROJECT_DELETE = "mutation ProjectDelete($id: String!) { projectDelete(id: $id) }"
Q_DEPLOYMENTS = """
query Deployments($input: DeploymentListInput!) {
  deployments(input: $input) { edges { node { status } } }
}
"""
M_REDEPLOY = """
mutation ServiceInstanceRedeploy($environmentId: String!, $serviceId: String!) {
  serviceInstanceRedeploy(environmentId: $environmentId, serviceId: $serviceId)
}
"""


def _contains_any(message: str, markers: tuple[str, ...]) -> bool:
    lower = message.lower()
    return any(m in lower for m in markers)


def is_already_exists(message: str) -> bool:
    return _contains_any(message, ALREADY_MARKERS)


def is_volume_exists(message: str) -> bool:
    return _contains_any(message, VOLUME_EXISTS_MARKERS)


def is_not_found(message: str) -> bool:
    return _contains_any(message, NOT_FOUND_MARKERS)


def _edges(obj: Any, *path: str) -> list[dict[str, Any]]:
    """Walk ``path`` then return the ``node`` of every edge."""
    cur = obj
    for key in path:
        cur = cur.get(key) if isinstance(cur, dict) else None
    edges = (cur or {}).get("edges") if isinstance(cur, dict) else None
    return [e["node"] for e in edges or [] if isinstance(e, dict) and isinstance(e.get("node"), dict)]


def phase_from_deployment_status(status: str | None) -> ValidatorPhase:
    if status is None:
        return ValidatorPhase.STOPPED
    return DEPLOYMENT_PHASES.get(status.strip().lower(), ValidatorPhase.UNKNOWN)


class RailwayIDs(BaseModel):
    project_id: str
    service_id: str
    environment_id: str = ""
    domain: str = ""

    @classmethod
    def read(cls, path: Path) -> "RailwayIDs":
        try:
            return cls.model_validate_json(path.read_text())
        except FileNotFoundError as e:
            raise ConfigError(RAILWAY_IDS_FILE, f"{path} not found; was this deployed with sol-cloud?") from e
        except ValidationError as e:
            raise ConfigError(RAILWAY_IDS_FILE, f"unable to decode {path}: {e}") from e

    def write(self, path: Path) -> None:
        path.write_text(json.dumps(self.model_dump(), indent=2) + "\n")


def list_workspaces(client: APIClient) -> list[dict[str, str]]:
    """Discover workspaces the token can see; empty when nothing answers.

    Tries ``me { teams }``, then ``me { workspaces }``, then the ``teamId`` of
    the first project that has one.
    """
    for field_name in ("teams", "workspaces"):
        try:
            data = client.graphql(Q_ME_FIELD.format(field=field_name))
        except (GraphQLError, HTTPStatusError, TransportError):
            continue
        items = ((data.get("me") or {}).get(field_name)) or []
        found = [
            {"id": str(w.get("id", "")), "name": str(w.get("name") or "")}
            for w in items
            if isinstance(w, dict) and w.get("id")
        ]
        if found:
            return found

    try:
        data = client.graphql(Q_PROJECTS_WITH_TEAM)
    except (GraphQLError, HTTPStatusError, TransportError):
        return []
    for node in _edges(data, "projects"):
        if node.get("teamId"):
            return [{"id": str(node["teamId"]), "name": ""}]
    return []


@dataclass
class RailwayProvider(BaseProvider):
    name = "railway"
    platform_domain = "up.railway.app"
    log_file_name = "deploy.log"
    include_fly_toml = False

    def _gql(self, token: str) -> APIClient:
        return self._client(token, graphql_url=self.settings.railway_graphql_url)

    def ids_path(self, name: str) -> Path:
        return self.project_dir / STATE_DIR_NAME / "deployments" / name / RAILWAY_IDS_FILE

    # --- deploy steps ---
    def _provision(
        self, cfg: DeploymentConfig, token: str, log: DeployLog, predicted: Deployment
    ) -> Deployment:
        railway = require_binary(self.settings.railway_bin, hint=RAILWAY_INSTALL_HINT)
        gql = self._gql(token)
        log.step(f"project={cfg.name} region={cfg.region}")

        try:
            project_id = self.ensure_project(gql, cfg.name, cfg.org)
            log.step(f"project ensured: {project_id}")
            service_id = self.ensure_service(gql, project_id)
            log.step(f"service ensured: {service_id}")
        except RemoteAPIError as e:
            raise StageError("ensure railway project", e) from e

        environment_id = ""
        domain = ""
        volume_ok = False
        cli_token = token
        try:
            environment_id = self.resolve_environment(gql, project_id)
        except (RemoteAPIError, StageError) as e:
            logger.warning(f"Could not resolve Railway environment: {e}")
            log.step(f"warning: could not resolve environment id: {e}")

        if environment_id:
            log.step(f"environment: {environment_id}")
            if cfg.resources.skip_volume:
                log.step("volume skipped")
            else:
                volume_ok = self.ensure_volume(gql, project_id, service_id, environment_id)
                log.step(
                    "volume ensured" if volume_ok else "warning: volume unavailable; ledger is ephemeral"
                )

            try:
                domain = self.ensure_domain(gql, project_id, service_id, environment_id)
            except RemoteAPIError as e:
                logger.warning(f"Could not create Railway domain: {e}")
                log.step(f"warning: could not create domain: {e}")
            log.step(f"domain: {domain}" if domain else "domain not yet assigned")

            try:
                cli_token = self.create_project_token(gql, project_id, environment_id)
                log.step("created project token")
            except RemoteAPIError as e:
                logger.warning(f"Could not create a project token ({e}); using the account token")
                log.step(f"warning: could not create project token ({e}); using account token")

        env = build_env(
            {
                "RAILWAY_TOKEN": cli_token,
                "RAILWAY_PROJECT_ID": project_id,
                "RAILWAY_SERVICE_ID": service_id,
                "RAILWAY_ENVIRONMENT_ID": environment_id,
            }
        )
        logger.info(f"Pushing [cyan]{cfg.name}[/cyan] with railway up...")
        try:
            result = self.runner(
                "railway deploy",
                [railway, "up", "--ci", "--service", service_id],
                cwd=cfg.artifacts_dir,
                env=env,
                timeout=RAILWAY_PUSH_TIMEOUT_S,
            )
        except StageError as e:
            log.output("railway up", e.output)
            raise
        log.output("railway up", result.output)

        if not domain and environment_id:
            try:
                domain = self.ensure_domain(gql, project_id, service_id, environment_id)
            except RemoteAPIError as e:
                logger.debug(f"Post-deploy domain lookup failed: {e}")
            if domain:
                log.step(f"domain (post-deploy): {domain}")

        RailwayIDs(
            project_id=project_id,
            service_id=service_id,
            environment_id=environment_id,
            domain=domain,
        ).write(cfg.artifacts_dir / RAILWAY_IDS_FILE)

        host = domain or self.default_host(cfg.name)
        return Deployment(
            name=cfg.name,
            provider=self.name,
            rpc_url=f"https://{host}",
            websocket_url=f"wss://{host}",
            artifacts_dir=cfg.artifacts_dir,
            region=cfg.region,
            dashboard_url=RAILWAY_DASHBOARD_URL.format(project_id=project_id),
            metadata={
                "project_id": project_id,
                "service_id": service_id,
                "environment_id": environment_id,
                "volume": volume_ok,
            },
        )

    def resolve_workspace(self, gql: APIClient, explicit: str | None) -> str:
        if explicit and explicit.strip():
            return explicit.strip()
        saved = self._store().load().railway.workspace_id.strip()
        if saved:
            return saved
        workspaces = list_workspaces(gql)
        if not workspaces:
            raise AuthError("railway", "could not resolve a Railway workspace")
        return workspaces[0]["id"]

    def ensure_project(self, gql: APIClient, name: str, workspace: str | None) -> str:
        for node in _edges(gql.graphql(Q_PROJECTS), "projects"):
            if node.get("name") == name:
                logger.debug(f"Railway project {name} already exists")
                return str(node["id"])

        workspace_id = self.resolve_workspace(gql, workspace)
        data = gql.graphql(M_PROJECT_CREATE, {"input": {"name": name, "workspaceId": workspace_id}})
        project_id = (data.get("projectCreate") or {}).get("id")
        if not project_id:
            raise StageError("create railway project", "projectCreate returned an empty id")
        logger.info(f"Created Railway project [cyan]{name}[/cyan]")
        return str(project_id)

    def ensure_service(self, gql: APIClient, project_id: str) -> str:
        for node in _edges(gql.graphql(Q_SERVICES, {"id": project_id}), "project", "services"):
            if node.get("name") == SERVICE_NAME:
                return str(node["id"])
        data = gql.graphql(
            M_SERVICE_CREATE, {"input": {"projectId": project_id, "name": SERVICE_NAME}}
        )
        service_id = (data.get("serviceCreate") or {}).get("id")
        if not service_id:
            raise StageError("create railway service", "serviceCreate returned an empty id")
        return str(service_id)

    def resolve_environment(self, gql: APIClient, project_id: str) -> str:
        nodes = _edges(gql.graphql(Q_ENVIRONMENTS, {"id": project_id}), "project", "environments")
        for node in nodes:
            if str(node.get("name", "")).lower() == PREFERRED_ENVIRONMENT:
                return str(node["id"])
        if nodes:
            return str(nodes[0]["id"])
        raise StageError("resolve railway environment", f"no environments in project {project_id}")

    def fetch_domain(self, gql: APIClient, project_id: str, service_id: str, environment_id: str) -> str:
        try:
            data = gql.graphql(
                Q_DOMAINS,
                {"projectId": project_id, "serviceId": service_id, "environmentId": environment_id},
            )
        except RemoteAPIError as e:
            logger.debug(f"Domain lookup failed: {e}")
            return ""
        for sd in (data.get("domains") or {}).get("serviceDomains") or []:
            domain = str((sd or {}).get("domain") or "").strip()
            if domain:
                return domain
        return ""

    def ensure_domain(self, gql: APIClient, project_id: str, service_id: str, environment_id: str) -> str:
        existing = self.fetch_domain(gql, project_id, service_id, environment_id)
        if existing:
            return existing
        try:
            data = gql.graphql(
                M_DOMAIN_CREATE,
                {"input": {"serviceId": service_id, "environmentId": environment_id}},
            )
        except GraphQLError as e:
            if is_already_exists(e.first_message):
                return self.fetch_domain(gql, project_id, service_id, environment_id)
            raise
        return str((data.get("serviceDomainCreate") or {}).get("domain") or "").strip()

    def ensure_volume(self, gql: APIClient, project_id: str, service_id: str, environment_id: str) -> bool:
        """Attach a ledger volume to the service. Failures are warnings, never fatal."""
        try:
            data = gql.graphql(Q_VOLUMES, {"id": project_id})
            for volume in _edges(data, "project", "volumes"):
                for inst in _edges(volume, "volumeInstances"):
                    if inst.get("serviceId") == service_id:
                        logger.debug("Railway volume already attached")
                        return True
        except RemoteAPIError as e:
            logger.debug(f"Volume listing failed, trying to create: {e}")

        try:
            data = gql.graphql(
                M_VOLUME_CREATE,
                {
                    "input": {
                        "projectId": project_id,
                        "mountPath": LEDGER_MOUNT_PATH,
                        "serviceId": service_id,
                        "environmentId": environment_id,
                    }
                },
            )
        except GraphQLError as e:
            if is_volume_exists(e.first_message):
                return True
            logger.warning(f"Could not create Railway volume ({e}); the next deploy retries")
            return False
        except RemoteAPIError as e:
            logger.warning(f"Could not create Railway volume ({e}); the next deploy retries")
            return False
        if not (data.get("volumeCreate") or {}).get("id"):
            logger.warning("volumeCreate returned an empty id; the next deploy retries")
            return False
        logger.info(f"Railway volume attached at {LEDGER_MOUNT_PATH}")
        return True

    def create_project_token(self, gql: APIClient, project_id: str, environment_id: str) -> str:
        data = gql.graphql(
            M_PROJECT_TOKEN,
            {
                "input": {
                    "projectId": project_id,
                    "environmentId": environment_id,
                    "name": PROJECT_TOKEN_NAME,
                }
            },
        )
        token = data.get("projectTokenCreate")
        if not isinstance(token, str) or not token.strip():
            raise GraphQLError(["projectTokenCreate returned an empty token"], data=data)
        return token.strip()

    # --- other lifecycle ops ---
    def destroy(self, name: str) -> None:
        ids = RailwayIDs.read(self.ids_path(name))
        gql = self._gql(self._token())
        try:
            gql.graphql(M_PROJECT_DELETE, {"id": ids.project_id})
        except GraphQLError as e:
            if is_not_found(e.first_message):
                logger.info(f"Railway project for {name} is already gone")
                return
            raise StageError("destroy railway project", e) from e
        except RemoteAPIError as e:
            raise StageError("destroy railway project", e) from e
        logger.info(f"Destroyed Railway project [cyan]{name}[/cyan]")

    def status(self, name: str) -> ProviderStatus:
        ids = RailwayIDs.read(self.ids_path(name))
        data = self._gql(self._token()).graphql(
            Q_DEPLOYMENTS, {"input": {"projectId": ids.project_id, "serviceId": ids.service_id}}
        )
        nodes = _edges(data, "deployments")
        raw = str(nodes[0].get("status") or "") if nodes else None
        return ProviderStatus(
            name=name,
            phase=phase_from_deployment_status(raw),
            detail={"deployment_status": raw, "project_id": ids.project_id},
        )

    def restart(self, name: str, *, timeout_s: float | None = None) -> None:
        ids = RailwayIDs.read(self.ids_path(name))
        gql = self._gql(self._token())
        try:
            environment_id = ids.environment_id or self.resolve_environment(gql, ids.project_id)
            gql.graphql(
                M_REDEPLOY,
                {"environmentId": environment_id, "serviceId": ids.service_id},
                timeout=timeout_s,
            )
        except RemoteAPIError as e:
            raise StageError("restart railway service", e) from e

    def verify_token(self, token: str) -> Verification:
        return verify_railway_token(self._gql(token))

    def discover_workspaces(self, token: str) -> list[dict[str, str]]:
        return list_workspaces(self._gql(token))

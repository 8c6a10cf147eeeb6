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

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from sol_cloud.config.deployment import STATE_DIR_NAME
from sol_cloud.exceptions import DeploymentNotFoundError, NoDeploymentsError
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.platform.protocols import Deployment

from .db import make_session_factory
from .models import DeploymentRecord, StateMeta

logger = setup_logger(__name__)

LAST_DEPLOYMENT_KEY = "last_deployment"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeploymentEntry:
    deployment: Deployment
    created_at: datetime
    updated_at: datetime
    is_last: bool = False


def _to_deployment(rec: DeploymentRecord) -> Deployment:
    return Deployment(
        name=rec.name,
        provider=rec.provider,
        rpc_url=rec.rpc_url,
        websocket_url=rec.websocket_url,
        artifacts_dir=Path(rec.artifacts_dir),
        region=rec.region or "",
        dashboard_url=rec.dashboard_url,
        metadata=dict(rec.meta or {}),
    )


class StateStore:
    """Per-project deployment records in ``<project>/.sol-cloud/state.db``.

    Written by the CLI after a deploy; read by status/watch/destroy. Holds a
    single ``last_deployment`` pointer used when no name is given.
    """

    DB_NAME = "state.db"

    def __init__(self, project_dir: Path | None = None, *, now: Callable[[], datetime] = _utcnow):
        self.project_dir = (project_dir or Path.cwd()).resolve()
        self._now = now
        self._session_factory = None

    # --- path helpers ---
    @property
    def db_path(self) -> Path:
        return self.project_dir / STATE_DIR_NAME / self.DB_NAME

    def _sessions(self):
        if self._session_factory is None:
            self._session_factory = make_session_factory(self.db_path)
        return self._session_factory

    # --- CRUD ---
    def save(self, deployment: Deployment) -> None:
        """Upsert by name and point ``last_deployment`` at it."""
        now = self._now()
        with self._sessions()() as s:
            rec = s.get(DeploymentRecord, deployment.name)
            if rec is None:
                rec = DeploymentRecord(name=deployment.name, created_at=now)
                s.add(rec)
            rec.provider = deployment.provider
            rec.rpc_url = deployment.rpc_url
            rec.websocket_url = deployment.websocket_url
            rec.region = deployment.region
            rec.artifacts_dir = str(deployment.artifacts_dir)
            rec.dashboard_url = deployment.dashboard_url
            rec.meta = dict(deployment.metadata)
            rec.updated_at = now
            s.merge(StateMeta(key=LAST_DEPLOYMENT_KEY, value=deployment.name))
            s.commit()
        logger.debug(f"State saved for deployment {deployment.name}.")

    def get(self, name: str) -> Deployment:
        with self._sessions()() as s:
            rec = s.get(DeploymentRecord, name)
        if rec is None:
            raise DeploymentNotFoundError(name)
        return _to_deployment(rec)

    def remove(self, name: str) -> bool:
        """Delete a record; if it was the last deployment, point at the most recently updated one left."""
        with self._sessions()() as s:
            rec = s.get(DeploymentRecord, name)
            if rec is None:
                return False
            s.delete(rec)
            meta = s.get(StateMeta, LAST_DEPLOYMENT_KEY)
            if meta is not None and meta.value == name:
                s.flush()
                newest = (
                    s.query(DeploymentRecord)
                    .order_by(DeploymentRecord.updated_at.desc(), DeploymentRecord.name)
                    .first()
                )
                meta.value = newest.name if newest else None
            s.commit()
        logger.debug(f"State removed for deployment {name}.")
        return True

    def last_name(self) -> str | None:
        with self._sessions()() as s:
            meta = s.get(StateMeta, LAST_DEPLOYMENT_KEY)
        return meta.value if meta and meta.value else None

    def list_all(self) -> list[DeploymentEntry]:
        last = self.last_name()
        with self._sessions()() as s:
            rows = (
                s.query(DeploymentRecord)
                .order_by(DeploymentRecord.updated_at.desc(), DeploymentRecord.name)
                .all()
            )
        return [
            DeploymentEntry(
                deployment=_to_deployment(r),
                created_at=r.created_at,
                updated_at=r.updated_at,
                is_last=r.name == last,
            )
            for r in rows
        ]

    def resolve(self, name: str | None = None) -> Deployment:
        """Look up ``name``, or fall back to the last (or only) deployment.

        Raises:
            DeploymentNotFoundError: ``name`` is not recorded.
            NoDeploymentsError: nothing is recorded, or no name was given and
                there is neither a last deployment nor a single candidate.
        """
        name = (name or "").strip()
        if name:
            return self.get(name)

        last = self.last_name()
        if last:
            try:
                return self.get(last)
            except DeploymentNotFoundError:
                logger.debug(f"last_deployment points at missing record {last}")

        entries = self.list_all()
        if not entries:
            raise NoDeploymentsError()
        if len(entries) == 1:
            return entries[0].deployment
        raise NoDeploymentsError(
            "multiple deployments found and no last deployment recorded; pass a name"
        )

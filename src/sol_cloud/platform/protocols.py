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

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sol_cloud.auth.verify import Verification
    from sol_cloud.config.deployment import DeploymentConfig


class ValidatorPhase(str, Enum):
    """Normalized provider-side lifecycle phases."""

    UNKNOWN = "UNKNOWN"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


@dataclass(frozen=True)
class Deployment:
    """Resolved identity of a successful deploy.

    Attributes
    ----------
    name: str
        Deployment name; also the app/project name on the provider.
    provider: str
        ``fly`` or ``railway``.
    rpc_url / websocket_url: str
        Public endpoints. Predicted from the name on a dry run.
    artifacts_dir: Path
        Local directory holding the rendered build context and deploy log.
    dashboard_url: str | None
        Provider console link, when the provider has one per deployment.
    metadata: dict[str, Any]
        Provider resource ids and flags (``volume``, ``dry_run``, ...).
    """

    name: str
    provider: str
    rpc_url: str
    websocket_url: str
    artifacts_dir: Path
    region: str = ""
    dashboard_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderStatus:
    name: str
    phase: ValidatorPhase
    detail: dict[str, Any] | None = None


@dataclass
class RPCMetrics:
    slot: int
    tps: float


@runtime_checkable
class Provider(Protocol):
    """Lifecycle operations every hosting platform implements."""

    name: str

    def deploy(self, cfg: "DeploymentConfig") -> Deployment: ...

    def destroy(self, name: str) -> None: ...

    def status(self, name: str) -> ProviderStatus: ...

    def restart(self, name: str, *, timeout_s: float | None = None) -> None: ...

    def verify_token(self, token: str) -> "Verification": ...

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
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from sol_cloud.config.base import ValidatedModel
from sol_cloud.config.defaults import default_for
from sol_cloud.helpers.naming import is_valid_deployment_name, normalize_name

ProviderName = Literal["fly", "railway"]

STATE_DIR_NAME = ".sol-cloud"


class ProgramDeployConfig(BaseModel):
    """Program binary preloaded at validator startup.

    All three paths are set together, or none of them.
    """

    so_path: str = ""
    program_id_keypair: str = ""
    upgrade_authority: str = ""

    @field_validator("so_path", "program_id_keypair", "upgrade_authority", mode="before")
    @classmethod
    def _strip(cls, v: str | None) -> str:
        return (v or "").strip()

    def has_values(self) -> bool:
        return any((self.so_path, self.program_id_keypair, self.upgrade_authority))

    def enabled(self) -> bool:
        return all((self.so_path, self.program_id_keypair, self.upgrade_authority))

    @model_validator(mode="after")
    def _all_or_nothing(self):
        if self.has_values() and not self.enabled():
            raise ValueError(
                "program deploy config is incomplete: so_path, program_id_keypair "
                "and upgrade_authority must all be set"
            )
        return self


class AirdropEntry(BaseModel):
    address: str = Field(min_length=1)
    amount: int = Field(gt=0, description="Amount in SOL")


class ValidatorConfig(BaseModel):
    slots_per_epoch: int = Field(
        default_factory=default_for("validator.slots_per_epoch", 432000), gt=0
    )
    ticks_per_slot: int = Field(default_factory=default_for("validator.ticks_per_slot", 64), gt=0)
    compute_unit_limit: int = Field(
        default_factory=default_for("validator.compute_unit_limit", 200000), gt=0
    )
    ledger_limit_size: int = Field(
        default_factory=default_for("validator.ledger_limit_size", 10000), gt=0
    )
    clone_accounts: list[str] = Field(default_factory=list)
    clone_upgradeable_programs: list[str] = Field(default_factory=list)
    airdrop_accounts: list[AirdropEntry] = Field(default_factory=list)
    program_deploy: ProgramDeployConfig = Field(default_factory=ProgramDeployConfig)

    @field_validator("clone_accounts", "clone_upgradeable_programs", mode="before")
    @classmethod
    def _drop_blanks(cls, v: list[str] | None) -> list[str]:
        return [s.strip() for s in (v or []) if s and s.strip()]


class ResourceConfig(BaseModel):
    cpu_kind: Literal["shared", "performance"] = "shared"
    cpus: int = Field(default_factory=default_for("resources.cpus", 1), gt=0)
    memory_mb: int = Field(default_factory=default_for("resources.memory_mb", 2048), ge=256)
    volume_size_gb: int = Field(default_factory=default_for("resources.volume_size_gb", 10), gt=0)
    skip_volume: bool = False


class DeploymentConfig(ValidatedModel):
    """Immutable per-invocation deploy inputs.

    Built once by the CLI and passed to the provider; a config that fails
    validation never reaches the orchestrator.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    provider: ProviderName = "fly"
    region: str = Field(default_factory=default_for("region", "ord"))
    org: str | None = None
    project_dir: Path = Field(default_factory=Path.cwd)
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    resources: ResourceConfig = Field(default_factory=ResourceConfig)
    access_token: SecretStr | None = Field(
        default=None, description="Explicit token override; beats env and saved credentials"
    )
    dry_run: bool = False
    skip_health_check: bool = False
    health_check_timeout_s: float = Field(default=180.0, gt=0)
    health_check_interval_s: float = Field(default=5.0, gt=0)

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v: str | None) -> str:
        name = normalize_name(v)
        if not name:
            raise ValueError("deployment name is required")
        if not is_valid_deployment_name(name):
            raise ValueError(
                f"{name!r} is not DNS-label safe (lowercase letters, digits and '-', 3-63 chars)"
            )
        return name

    @field_validator("region", mode="before")
    @classmethod
    def _check_region(cls, v: str | None) -> str:
        region = (v or "").strip().lower()
        if not region:
            raise ValueError("region is required")
        return region

    @field_validator("org", mode="before")
    @classmethod
    def _blank_org_is_none(cls, v: str | None) -> str | None:
        return (v or "").strip() or None

    @field_validator("project_dir")
    @classmethod
    def _absolute(cls, v: Path) -> Path:
        return v.expanduser().resolve()

    @property
    def artifacts_dir(self) -> Path:
        return self.project_dir / STATE_DIR_NAME / "deployments" / self.name

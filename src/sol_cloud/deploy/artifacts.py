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

"""Rendering the build context a provider pushes.

The artifacts directory is ``<project>/.sol-cloud/deployments/<name>/`` and
holds ``Dockerfile``, ``nginx.conf``, ``entrypoint.sh``, ``fly.toml`` (Fly
only) and, when a startup program is configured, ``program/``.
"""

from dataclasses import dataclass
from pathlib import Path
import shutil

import jinja2

from sol_cloud.config.deployment import DeploymentConfig, ProgramDeployConfig
from sol_cloud.exceptions import ConfigError, StageError
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.helpers.naming import volume_name_for

logger = setup_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

LEDGER_MOUNT_PATH = "/var/lib/solana/ledger"
RPC_INTERNAL_PORT = 8080
PROGRAM_DIR_NAME = "program"
CONTAINER_PROGRAM_DIR = "/opt/sol-cloud/program"

# (config field, staged file name)
_PROGRAM_FILES = (
    ("so_path", "program.so"),
    ("program_id_keypair", "program-id-keypair.json"),
    ("upgrade_authority", "upgrade-authority.json"),
)

_COMMON_TEMPLATES = ("Dockerfile", "nginx.conf", "entrypoint.sh")
_FLY_TEMPLATES = ("fly.toml",)


@dataclass
class StagedProgram:
    """In-container paths of a staged startup program."""

    so_path: str
    program_id_keypair: str
    upgrade_authority: str


def _environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(TEMPLATES_DIR),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
    )


def _resolve_project_path(project_dir: Path, field: str, value: str) -> Path:
    p = Path(value.strip()).expanduser()
    if not p.is_absolute():
        p = project_dir / p
    p = p.resolve()
    if not p.exists():
        raise ConfigError(f"validator.program_deploy.{field}", f"{p} does not exist")
    if p.is_dir():
        raise ConfigError(f"validator.program_deploy.{field}", f"{p} is a directory")
    return p


def stage_program(cfg: DeploymentConfig) -> StagedProgram | None:
    """Copy the startup program binary and keypairs into the artifacts dir.

    Every source path is resolved (relative paths against ``project_dir``)
    before anything is copied, so a missing file leaves nothing half staged.
    """
    program: ProgramDeployConfig = cfg.validator.program_deploy
    if not program.has_values():
        return None
    if not program.enabled():
        raise ConfigError(
            "validator.program_deploy",
            "so_path, program_id_keypair and upgrade_authority must all be set",
        )

    sources = [
        (_resolve_project_path(cfg.project_dir, field, getattr(program, field)), dest)
        for field, dest in _PROGRAM_FILES
    ]

    program_dir = cfg.artifacts_dir / PROGRAM_DIR_NAME
    program_dir.mkdir(parents=True, exist_ok=True)
    for src, dest in sources:
        try:
            shutil.copy2(src, program_dir / dest)
        except OSError as e:
            raise StageError(f"copy {src.name}", e) from e
    logger.debug(f"Staged startup program into {program_dir}")

    return StagedProgram(
        so_path=f"{CONTAINER_PROGRAM_DIR}/program.so",
        program_id_keypair=f"{CONTAINER_PROGRAM_DIR}/program-id-keypair.json",
        upgrade_authority=f"{CONTAINER_PROGRAM_DIR}/upgrade-authority.json",
    )


def render_artifacts(
    cfg: DeploymentConfig,
    *,
    include_fly_toml: bool,
    program: StagedProgram | None = None,
) -> list[Path]:
    """Render every template into ``cfg.artifacts_dir`` and return the written paths."""
    out_dir = cfg.artifacts_dir
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StageError("create artifacts directory", e) from e

    context = _context(cfg, program)
    names = list(_COMMON_TEMPLATES)
    if include_fly_toml:
        names.extend(_FLY_TEMPLATES)

    written = [_render(name, out_dir, context) for name in names]
    logger.debug(f"Rendered {', '.join(p.name for p in written)} into {out_dir}")
    return written


def render_fly_toml(cfg: DeploymentConfig, *, mount_volume: bool) -> Path:
    """Re-render only ``fly.toml``, e.g. without the ledger mount after a volume failure."""
    context = _context(cfg, None)
    context["mount_volume"] = mount_volume
    return _render("fly.toml", cfg.artifacts_dir, context)


def _context(cfg: DeploymentConfig, program: StagedProgram | None) -> dict:
    return {
        "name": cfg.name,
        "region": cfg.region,
        "validator": cfg.validator,
        "resources": cfg.resources,
        "program": program,
        "ledger_mount_path": LEDGER_MOUNT_PATH,
        "volume_name": volume_name_for(cfg.name),
        "internal_port": RPC_INTERNAL_PORT,
        "has_program_dir": program is not None,
        "mount_volume": not cfg.resources.skip_volume,
    }


def _render(name: str, out_dir: Path, context: dict) -> Path:
    try:
        text = _environment().get_template(f"{name}.j2").render(**context)
    except jinja2.TemplateError as e:
        raise StageError(f"render {name}", e) from e
    dest = out_dir / name
    try:
        dest.write_text(text)
        if name.endswith(".sh"):
            dest.chmod(0o755)
    except OSError as e:
        raise StageError(f"write {name}", e) from e
    return dest

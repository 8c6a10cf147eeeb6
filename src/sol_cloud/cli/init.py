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
from typing import Optional

import typer
from typing_extensions import Annotated

from sol_cloud.cli.errors import handle_errors
from sol_cloud.config.deployment import ProgramDeployConfig, ValidatorConfig
from sol_cloud.config.project import PROJECT_FILE_NAME, ProjectConfig
from sol_cloud.helpers.naming import generate_deployment_name

init_app = typer.Typer(help="Create a .sol-cloud.yml project file.")


# ----------------------- tiny helpers -----------------------


def _prompt_str(label: str, default: Optional[str] = None, allow_empty=False) -> str:
    while True:
        val = typer.prompt(label, default=default if default is not None else "")
        if allow_empty:
            return val.strip()
        if val.strip():
            return val.strip()
        typer.secho("Value cannot be empty.", fg=typer.colors.RED)


def _prompt_int(label: str, default: int, min_v: int = 1) -> int:
    while True:
        val = typer.prompt(label, default=str(default))
        try:
            n = int(val)
        except ValueError:
            typer.secho("Please enter a valid integer.", fg=typer.colors.RED)
            continue
        if n < min_v:
            typer.secho(f"Value must be at least {min_v}.", fg=typer.colors.RED)
            continue
        return n


def _prompt_list(title: str, label: str) -> list[str]:
    """Collect entries until an empty line."""
    typer.secho(f"{title} (empty line to finish)", fg=typer.colors.CYAN)
    items: list[str] = []
    while True:
        val = typer.prompt(label, default="", show_default=False).strip()
        if not val:
            return items
        items.append(val)


# ----------------------- interactive flow -----------------------


def _configure_validator() -> ValidatorConfig:
    cfg = ValidatorConfig()
    if typer.confirm("Customize validator runtime settings?", default=False):
        cfg.slots_per_epoch = _prompt_int("Slots per epoch", cfg.slots_per_epoch)
        cfg.ticks_per_slot = _prompt_int("Ticks per slot", cfg.ticks_per_slot)
        cfg.compute_unit_limit = _prompt_int("Compute unit limit", cfg.compute_unit_limit)
        cfg.ledger_limit_size = _prompt_int("Ledger limit size", cfg.ledger_limit_size)

    cfg.clone_accounts = _prompt_list("Clone account list (optional)", "Clone account")
    cfg.clone_upgradeable_programs = _prompt_list(
        "Clone upgradeable program list (optional)", "Clone upgradeable program"
    )

    if typer.confirm("Configure startup program deploy?", default=False):
        cfg.program_deploy = ProgramDeployConfig(
            so_path=_prompt_str("Program .so path"),
            program_id_keypair=_prompt_str("Program ID keypair path"),
            upgrade_authority=_prompt_str("Upgrade authority keypair path"),
        )
    return cfg


@init_app.callback(invoke_without_command=True)
def init(
    force: Annotated[
        bool, typer.Option("--force", help=f"Overwrite {PROJECT_FILE_NAME} if it already exists")
    ] = False,
    directory: Annotated[
        Path, typer.Option("--dir", help="Project directory", file_okay=False)
    ] = Path("."),
):
    """Run the interactive setup and write ``.sol-cloud.yml``."""
    path = directory / PROJECT_FILE_NAME
    if path.exists() and not force:
        if not typer.confirm(f"{PROJECT_FILE_NAME} already exists. Overwrite it?", default=False):
            typer.echo(f"init cancelled; existing {PROJECT_FILE_NAME} was not changed")
            raise typer.Exit(0)

    typer.secho("Sol-Cloud setup", fg=typer.colors.CYAN, bold=True)
    typer.echo("Press Enter to accept defaults.\n")

    with handle_errors():
        provider = typer.prompt(
            "Provider (fly/railway)", default="fly"
        ).strip().lower()
        app_name = generate_deployment_name()
        typer.echo(f"App name: {app_name}")
        region = _prompt_str("Region", default="ord")
        validator = _configure_validator()

        cfg = ProjectConfig.build(
            provider=provider,
            app_name=app_name,
            region=region,
            validator=validator.model_dump(),
        )
        cfg.save(path)
    typer.secho(f"created {path}", fg=typer.colors.GREEN)

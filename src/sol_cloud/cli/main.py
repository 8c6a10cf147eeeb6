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

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
import requests
import typer
from typing_extensions import Annotated

from sol_cloud.backends.registry import available_providers, create_provider
from sol_cloud.cli.auth import auth_app
from sol_cloud.cli.errors import handle_errors
from sol_cloud.cli.init import init_app
from sol_cloud.cli.tui import (
    ValidatorStatusView,
    render_deployment_list,
    render_validator_status,
    render_watch_banner,
)
from sol_cloud.config.deployment import DeploymentConfig
from sol_cloud.config.project import ProjectConfig
from sol_cloud.config.watch import WatchConfig
from sol_cloud.core.state.state_manager import StateStore
from sol_cloud.exceptions import (
    DeployedButUnhealthyError,
    DeploymentNotFoundError,
    RemoteAPIError,
    RPCError,
    SolCloudError,
    TransportError,
)
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.helpers.naming import generate_deployment_name
from sol_cloud.monitor.watcher import (
    ValidatorWatcher,
    install_signal_handlers,
    select_confirmation,
)
from sol_cloud.platform.protocols import Deployment, ValidatorPhase
from sol_cloud.platform.rpc import fetch_metrics
from sol_cloud.utils.version import get_version

app = typer.Typer(
    name="sol-cloud",
    help="Deploy and watch Solana test validators on Fly.io and Railway.",
    no_args_is_help=True,
)

app.add_typer(auth_app, name="auth", help="Save and verify provider access tokens.")
app.add_typer(
    init_app,
    name="init",
    help="Create a .sol-cloud.yml project config interactively.",
)

console = Console()
logger = setup_logger("sol_cloud.cli", level=logging.INFO, console=console)


def _fallback_deployment(name: str) -> Deployment:
    # Not in local state: assume a Fly app with the default hostname.
    host = f"{name}.fly.dev"
    return Deployment(
        name=name,
        provider="fly",
        rpc_url=f"https://{host}",
        websocket_url=f"wss://{host}",
        artifacts_dir=Path.cwd(),
    )


def _resolve(state: StateStore, name: str | None, *, allow_fallback: bool = False) -> Deployment:
    try:
        return state.resolve(name)
    except DeploymentNotFoundError:
        if not (allow_fallback and name):
            raise
        logger.warning(f"{name!r} is not in local state; assuming a Fly app named {name}")
        return _fallback_deployment(name)


@app.command("version", short_help="Show the version of the sol-cloud CLI")
def version(short: bool = False):
    v = get_version()
    print(v if short else f"sol-cloud CLI Version: {v}")
    raise typer.Exit()


@app.command("deploy", short_help="Deploy a Solana test validator")
def deploy(
    name: Annotated[
        Optional[str],
        typer.Option("--name", "-n", help="Deployment name (generated when omitted)"),
    ] = None,
    region: Annotated[Optional[str], typer.Option("--region", help="Provider region")] = None,
    provider: Annotated[
        Optional[str],
        typer.Option("--provider", "-p", help=f"One of: {', '.join(available_providers())}"),
    ] = None,
    org: Annotated[Optional[str], typer.Option("--org", help="Fly org slug")] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .sol-cloud.yml", dir_okay=False),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Render artifacts without touching the provider")
    ] = False,
    skip_health_check: Annotated[
        bool, typer.Option("--skip-health-check", help="Return as soon as the push finishes")
    ] = False,
    health_timeout: Annotated[
        float, typer.Option("--health-timeout", help="Seconds to wait for a healthy RPC")
    ] = 180.0,
    health_interval: Annotated[
        float, typer.Option("--health-interval", help="Seconds between health probes")
    ] = 5.0,
    token: Annotated[
        Optional[str],
        typer.Option("--token", help="Access token override (beats env and saved credentials)"),
    ] = None,
):
    """Render the build context, provision the app and wait for the RPC to become healthy."""
    with handle_errors():
        project = ProjectConfig.load(config)
        region = region or project.region
        cfg = DeploymentConfig.build(
            {"region": region} if region else None,
            name=name or project.app_name or generate_deployment_name(),
            provider=(provider or project.provider).strip().lower(),
            org=org or project.org,
            validator=project.validator.model_dump(),
            resources=project.resources.model_dump(),
            access_token=token,
            dry_run=dry_run,
            skip_health_check=skip_health_check,
            health_check_timeout_s=health_timeout,
            health_check_interval_s=health_interval,
        )
        backend = create_provider(cfg.provider, project_dir=cfg.project_dir)
        state = StateStore(cfg.project_dir)

        try:
            deployment = backend.deploy(cfg)
        except DeployedButUnhealthyError as e:
            state.save(e.deployment)
            console.print(
                f"[yellow]Deployed {e.deployment.name} but the RPC never became healthy.[/yellow] "
                f"Check [cyan]sol-cloud status {e.deployment.name}[/cyan]."
            )
            raise

        if cfg.dry_run:
            console.print("[bold]Dry run complete.[/bold] Nothing was created.")
        else:
            state.save(deployment)
            console.print("[bold green]Validator deployed.[/bold green]")

    console.print(f"App:       {deployment.name}")
    console.print(f"RPC:       {deployment.rpc_url}")
    console.print(f"WebSocket: {deployment.websocket_url}")
    console.print(f"Artifacts: {deployment.artifacts_dir}")
    if not cfg.dry_run:
        console.print(f"\nTip: solana config set --url {deployment.rpc_url}")


@app.command("destroy", short_help="Tear down a deployed validator")
def destroy(
    name: Annotated[
        Optional[str],
        typer.Argument(help="Deployment name (defaults to the last deployment)"),
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")] = False,
):
    """Delete the provider app/project and forget it locally."""
    with handle_errors():
        state = StateStore()
        deployment = _resolve(state, name)
        if not yes and not typer.confirm(
            f"This will destroy {deployment.name!r} on {deployment.provider}. Continue?",
            default=False,
        ):
            raise typer.Abort()

        create_provider(deployment.provider).destroy(deployment.name)
        state.remove(deployment.name)
    typer.echo(f"validator destroyed: {deployment.name}")


@app.command("status", short_help="Show provider state and RPC metrics")
def status(
    name: Annotated[
        Optional[str],
        typer.Argument(help="Deployment name (defaults to the last deployment)"),
    ] = None,
    timeout: Annotated[
        float, typer.Option("--timeout", help="Seconds allowed for each RPC call")
    ] = 20.0,
) -> None:
    """
    Check the status of a deployed validator.

    Provider-side failures do not stop the command: they are shown as a
    warning next to whatever the RPC endpoint reports.
    """
    with handle_errors():
        deployment = _resolve(StateStore(), name, allow_fallback=True)
        view = ValidatorStatusView(deployment=deployment)

        try:
            view.phase = create_provider(deployment.provider).status(deployment.name).phase
        except SolCloudError as e:
            logger.debug(f"Provider status for {deployment.name} failed: {e}")
            view.phase = ValidatorPhase.UNKNOWN
            view.provider_warning = str(e)

        try:
            metrics = fetch_metrics(deployment.rpc_url, timeout=timeout)
        except TransportError as e:
            view.health = "timeout" if isinstance(e.cause, requests.Timeout) else str(e)
        except (RPCError, RemoteAPIError) as e:
            view.health = str(e)
        else:
            view.health = "ok"
            view.slot = metrics.slot
            view.tps = metrics.tps

    render_validator_status(view, console=console)


@app.command("watch", short_help="Watch a validator and restart it when slots stall")
def watch(
    name: Annotated[
        Optional[str],
        typer.Argument(help="Deployment name (defaults to the last deployment)"),
    ] = None,
    check_interval: Annotated[
        float, typer.Option("--check-interval", help="Seconds between slot checks")
    ] = 30.0,
    stuck_threshold: Annotated[
        float,
        typer.Option("--stuck-threshold", help="Seconds without slot progress before restarting"),
    ] = 180.0,
    max_restarts: Annotated[
        int, typer.Option("--max-restarts", help="Stop after this many restarts (0 = unlimited)")
    ] = 0,
    restart_cooldown: Annotated[
        float, typer.Option("--restart-cooldown", help="Minimum seconds between restarts")
    ] = 120.0,
    auto_restart: Annotated[
        bool, typer.Option("--auto-restart", help="Restart without asking")
    ] = False,
):
    """Poll ``getSlot`` until interrupted, restarting the validator when the slot stops moving."""
    with handle_errors():
        deployment = _resolve(StateStore(), name, allow_fallback=True)
        cfg = WatchConfig.build(
            check_interval_s=check_interval,
            stuck_threshold_s=stuck_threshold,
            max_restarts=max_restarts,
            restart_cooldown_s=restart_cooldown,
            auto_restart=auto_restart,
        )
        render_watch_banner(deployment, cfg, console=console)

        watcher = ValidatorWatcher(
            name=deployment.name,
            rpc_url=deployment.rpc_url,
            provider=create_provider(deployment.provider),
            cfg=cfg,
            confirm=select_confirmation(
                cfg.auto_restart,
                lambda n: typer.confirm(f"Restart validator {n!r}?", default=False),
            ),
        )
        restore = install_signal_handlers(watcher)
        try:
            summary = watcher.run()
        finally:
            restore()

    console.print(
        f"Watcher stopped ({summary.reason}) after {summary.ticks} checks, "
        f"{summary.restarts} restart(s)."
    )


@app.command("list", short_help="List deployments recorded in this project")
def list_deployments():
    with handle_errors():
        entries = StateStore().list_all()
    if not entries:
        typer.echo("No deployments found.")
        return
    render_deployment_list(entries, console=console)


if __name__ == "__main__":
    app()

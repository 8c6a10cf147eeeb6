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

from typing import Optional

from rich.console import Console
import typer
from typing_extensions import Annotated

from sol_cloud.auth.credentials import DEFAULT_FLY_ORG, CredentialsStore, utcnow
from sol_cloud.backends.registry import create_provider
from sol_cloud.cli.errors import handle_errors
from sol_cloud.exceptions import AuthError

auth_app = typer.Typer(help="Manage provider authentication.", no_args_is_help=True)

console = Console()

FLY_TOKEN_URL = "https://fly.io/user/personal_access_tokens"
RAILWAY_TOKEN_URL = "https://railway.app/account/tokens"


def _prompt_token(label: str) -> str:
    token = typer.prompt(label, hide_input=True).strip()
    if not token:
        raise AuthError(label.split()[0].lower(), "an access token is required")
    return token


@auth_app.command("fly", short_help="Connect Fly.io with a personal or org access token")
def auth_fly(
    token: Annotated[
        Optional[str], typer.Option("--token", help="Fly access token (prompts if omitted)")
    ] = None,
    org: Annotated[
        Optional[str],
        typer.Option("--org", help="Default Fly org slug for app creation (e.g. personal)"),
    ] = None,
    skip_verify: Annotated[
        bool, typer.Option("--skip-verify", help="Save the token without contacting Fly")
    ] = False,
):
    """Store a Fly access token (personal or organization) for deploys."""
    with handle_errors():
        store = CredentialsStore()
        creds = store.load()

        token = (token or "").strip()
        if not token:
            console.print("Create a Fly access token (personal or organization):")
            console.print(f"[link={FLY_TOKEN_URL}]{FLY_TOKEN_URL}[/link]\n")
            token = _prompt_token("Fly access token")

        org = (org or "").strip()
        if not org:
            org = typer.prompt(
                "Default Fly org slug", default=creds.fly.org_slug or DEFAULT_FLY_ORG
            ).strip()

        if not skip_verify:
            verification = create_provider("fly", store=store).verify_token(token)
            console.print(f"[green]Token verified[/green] [dim](via {verification.via})[/dim]")

        creds.fly.access_token = token
        creds.fly.org_slug = org
        creds.fly.verified_at = None if skip_verify else utcnow()
        path = store.save(creds)
    console.print(f"Fly authentication saved to [cyan]{path}[/cyan]")


@auth_app.command("railway", short_help="Connect Railway with an API token")
def auth_railway(
    token: Annotated[
        Optional[str], typer.Option("--token", help="Railway API token (prompts if omitted)")
    ] = None,
    workspace: Annotated[
        Optional[str],
        typer.Option("--workspace", help="Railway workspace id (auto-discovered if omitted)"),
    ] = None,
    skip_verify: Annotated[
        bool, typer.Option("--skip-verify", help="Save the token without contacting Railway")
    ] = False,
):
    """Store a Railway API token and the workspace new projects are created in."""
    with handle_errors():
        store = CredentialsStore()
        creds = store.load()

        token = (token or "").strip()
        if not token:
            console.print("Create a Railway API token:")
            console.print(f"[link={RAILWAY_TOKEN_URL}]{RAILWAY_TOKEN_URL}[/link]\n")
            token = _prompt_token("Railway API token")

        provider = create_provider("railway", store=store)
        if not skip_verify:
            verification = provider.verify_token(token)
            console.print(f"[green]Token verified[/green] [dim](via {verification.via})[/dim]")

        workspace_id = (workspace or "").strip()
        if not workspace_id and not skip_verify:
            workspace_id = _choose_workspace(provider.discover_workspaces(token))
        if not workspace_id:
            console.print(
                "Could not auto-discover the workspace. It appears in your dashboard URL: "
                "https://railway.com/workspace/<workspaceId>"
            )
            workspace_id = typer.prompt(
                "Railway workspace ID", default=creds.railway.workspace_id, show_default=True
            ).strip()

        creds.railway.access_token = token
        creds.railway.workspace_id = workspace_id
        creds.railway.verified_at = None if skip_verify else utcnow()
        path = store.save(creds)
    console.print(f"Railway authentication saved to [cyan]{path}[/cyan]")


def _choose_workspace(workspaces: list[dict[str, str]]) -> str:
    if not workspaces:
        return ""
    if len(workspaces) == 1:
        console.print(f"Workspace: {workspaces[0]['name'] or workspaces[0]['id']}")
        return workspaces[0]["id"]

    console.print("Available workspaces:")
    for i, ws in enumerate(workspaces, start=1):
        console.print(f"  {i}. {ws['name'] or '(unnamed)'}  [dim]({ws['id']})[/dim]")
    while True:
        choice = typer.prompt("Workspace", default="1").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(workspaces):
            return workspaces[int(choice) - 1]["id"]
        if any(ws["id"] == choice for ws in workspaces):
            return choice
        typer.secho("Pick a number from the list or paste a workspace id.", fg=typer.colors.RED)

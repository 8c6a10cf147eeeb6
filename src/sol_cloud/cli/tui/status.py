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

from __future__ import annotations

from dataclasses import dataclass

from rich.box import HEAVY
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from sol_cloud.cli.tui.badges import health_badge, phase_badge, status_label
from sol_cloud.cli.tui.tables import _add_if, _kv_table, link
from sol_cloud.platform.protocols import Deployment, ValidatorPhase


@dataclass
class ValidatorStatusView:
    """What ``sol-cloud status`` shows for one deployment."""

    deployment: Deployment
    phase: ValidatorPhase = ValidatorPhase.UNKNOWN
    health: str = "unreachable"
    slot: int | None = None
    tps: float | None = None
    provider_warning: str | None = None


def render_validator_status(view: ValidatorStatusView, *, console: Console | None = None) -> None:
    """Render the status panel for a single validator.

    Shows the provider-side phase, RPC health with slot and TPS, both public
    endpoints and, when the provider lookup failed, the warning it produced.
    A deployment whose ledger volume could not be created is flagged as
    ephemeral.
    """
    console = console or Console()
    d = view.deployment

    banner = Text.assemble(
        ("VALIDATOR ", "bold dim"),
        (d.name, "bold bright_cyan"),
        ("  •  ", "dim"),
        (d.provider.upper(), "bold magenta"),
    )

    info = _kv_table()
    info.add_row("Validator", Text(d.name))
    info.add_row("Provider", Text(d.provider))
    info.add_row("Status", status_label(view.phase.value))
    info.add_row("Health", health_badge(view.health))
    info.add_row("Slot", Text(str(view.slot) if view.slot is not None else "n/a"))
    info.add_row("TPS", Text(f"{view.tps:.2f}" if view.tps is not None else "n/a"))
    info.add_row("RPC", link(d.rpc_url))
    info.add_row("WebSocket", link(d.websocket_url))
    _add_if(info, "Dashboard", link(d.dashboard_url) if d.dashboard_url else None)

    notes = _kv_table()
    _add_if(notes, "Phase", phase_badge(view.phase.value))
    if d.metadata.get("volume") is False:
        notes.add_row("Ledger", Text("ephemeral (volume not created)", style="bold yellow"))
    _add_if(
        notes,
        "Provider check warning",
        Text(view.provider_warning, style="yellow") if view.provider_warning else None,
    )

    body = Group(
        Rule(banner, style="cyan"),
        Text(),  # spacer
        info,
        Text(),  # spacer
        Panel(notes, title="Diagnostics", border_style="dim", padding=(0, 1), box=HEAVY),
    )
    console.print(
        Panel(
            body,
            title=f"[b cyan]{d.name}[/] — [magenta]{d.provider.upper()}[/]",
            border_style="cyan",
            padding=(1, 2),
            box=HEAVY,
            expand=True,
        )
    )

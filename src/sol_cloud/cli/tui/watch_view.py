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

from rich.console import Console
from rich.text import Text

from sol_cloud.config.watch import WatchConfig
from sol_cloud.monitor.slot_history import format_duration
from sol_cloud.platform.protocols import Deployment

from .tables import _kv_table, link


def render_watch_banner(deployment: Deployment, cfg: WatchConfig, *, console: Console) -> None:
    t = _kv_table()
    t.add_row("Watching validator", Text(deployment.name, style="bold bright_cyan"))
    t.add_row("RPC endpoint", link(deployment.rpc_url))
    t.add_row("Check interval", format_duration(cfg.check_interval_s))
    t.add_row("Stuck threshold", format_duration(cfg.stuck_threshold_s))
    t.add_row("Max restarts", str(cfg.max_restarts) if cfg.max_restarts > 0 else "unlimited")
    t.add_row("Restart cooldown", format_duration(cfg.restart_cooldown_s))
    t.add_row(
        "Auto-restart",
        Text("enabled", style="bold green")
        if cfg.auto_restart
        else Text("disabled (manual confirmation required)", style="yellow"),
    )
    console.print(t)
    console.print()
    console.print("[dim]Press Ctrl+C to stop watching[/dim]")
    console.print()

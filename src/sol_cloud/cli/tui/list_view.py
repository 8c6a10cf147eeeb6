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

from collections.abc import Iterable

from rich.console import Console
from rich.padding import Padding
from rich.text import Text

from sol_cloud.core.state.state_manager import DeploymentEntry

from .tables import link, list_table


def render_deployment_list(entries: Iterable[DeploymentEntry], *, console: Console) -> None:
    """
    Render the recorded deployments of the current project.
    The last deployment (the default target of status/watch/destroy) is starred.
    """
    t = list_table(columns=[" Name", "Provider", "Region", "RPC", "Updated"])

    for e in entries:
        d = e.deployment
        label = Text(d.name, style="bold bright_cyan" if e.is_last else "")
        if e.is_last:
            label.append(" *", style="dim")
        t.add_row(
            Padding(label, (0, 0, 0, 1)),
            d.provider.upper(),
            d.region or "—",
            link(d.rpc_url),
            e.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(t)

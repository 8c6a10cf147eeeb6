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

from rich.text import Text

from .theme import check_mark, phase_glyph, phase_style


def phase_badge(phase: str) -> Text:
    t = Text(f"{phase_glyph(phase)} {phase}")
    t.stylize(phase_style(phase))
    return t


def status_label(phase: str) -> Text:
    """``Running ✓`` for a running validator, the bare phase otherwise."""
    p = phase.upper()
    if p == "RUNNING":
        return Text(f"Running {check_mark()}", style="bold green")
    if p == "STARTING":
        return Text("Starting", style="bold yellow")
    if p == "STOPPED":
        return Text("Stopped", style="bold red")
    return Text(phase.capitalize() or "Unknown", style="bold cyan")


def health_badge(health: str) -> Text:
    if health == "ok":
        return Text("ok", style="bold green")
    if health in {"timeout", "unreachable"}:
        return Text(health, style="bold yellow")
    return Text(health, style="bold red")

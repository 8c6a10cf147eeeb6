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

from sol_cloud.config.settings import get_settings

_PHASE_GLYPH = {
    "RUNNING": "●",
    "STARTING": "◔",
    "STOPPED": "■",
    "UNKNOWN": "?",
}

# ASCII fallback (SOL_CLOUD_ASCII=1)
_ASCII_GLYPH = {
    "RUNNING": "*",
    "STARTING": "~",
    "STOPPED": "#",
    "UNKNOWN": "?",
}

PHASE_STYLE = {
    "RUNNING": "bold white on green3",
    "STARTING": "bold black on yellow3",
    "STOPPED": "bold white on grey39",
    "UNKNOWN": "bold white on grey23",
}


def phase_style(s: str) -> str:
    return PHASE_STYLE.get(s.upper(), PHASE_STYLE["UNKNOWN"])


def phase_glyph(s: str) -> str:
    if get_settings().ascii:
        return _ASCII_GLYPH.get(s.upper(), "?")
    return _PHASE_GLYPH.get(s.upper(), "?")


def check_mark() -> str:
    return "OK" if get_settings().ascii else "✓"

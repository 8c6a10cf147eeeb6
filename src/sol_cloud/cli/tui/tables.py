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

from collections.abc import Sequence

from rich.box import SIMPLE_HEAVY
from rich.table import Table
from rich.text import Text


def _kv_table() -> Table:
    """Create a key-value table with grid layout for displaying field-value pairs.

    The table has two columns: a left-justified "Field" column with bold dim
    styling and no wrapping, and a "Value" column that folds long values such
    as endpoint URLs.

    Returns:
        Table: A Rich grid with two columns.
    """
    t = Table.grid(padding=(0, 2))
    t.add_column("Field", style="bold dim", no_wrap=True)
    t.add_column("Value", overflow="fold")
    return t


def list_table(columns: Sequence[str]) -> Table:
    """Compact multi-row table with a header and no outer border."""
    t = Table(box=SIMPLE_HEAVY, show_edge=False, header_style="bold", expand=False)
    for col in columns:
        t.add_column(col, overflow="fold")
    return t


def _add_if(table: Table, label: str, value: Text | str | None) -> None:
    """Add a row only when ``value`` is not None."""
    if value is None:
        return
    table.add_row(label, value if isinstance(value, Text) else Text(str(value)))


def link(url: str | None) -> Text:
    txt = Text(url or "—")
    if url:
        txt.stylize(f"link {url}")
    return txt

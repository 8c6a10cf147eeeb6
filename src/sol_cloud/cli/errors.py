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

from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.markup import escape
import typer

from sol_cloud.exceptions import AuthError, ConfigError, SolCloudError

EXIT_CONFIG = 2
EXIT_FAILURE = 3
EXIT_AUTH = 4

err_console = Console(stderr=True)


def exit_code_for(e: SolCloudError) -> int:
    if isinstance(e, ConfigError):
        return EXIT_CONFIG
    if isinstance(e, AuthError):
        return EXIT_AUTH
    return EXIT_FAILURE


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn a ``SolCloudError`` into one red line on stderr and a typed exit code."""
    try:
        yield
    except SolCloudError as e:
        err_console.print(f"[bold red]error:[/] {escape(str(e))}", markup=True, highlight=False)
        raise typer.Exit(exit_code_for(e)) from e

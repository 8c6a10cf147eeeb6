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
import sys

from rich.console import Console
from rich.logging import RichHandler

_HANDLER_KW = dict(markup=True, show_time=True, show_level=True, show_path=False)


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        from sol_cloud.config.settings import get_settings

        level = get_settings().log_level
    if isinstance(level, str):
        return logging.getLevelName(level.upper()) if level.strip() else logging.INFO
    return level


def setup_logger(
    name: str = "sol_cloud",
    level: int | str | None = None,
    console: Console | None = None,
    to_stderr: bool = False,
) -> logging.Logger:
    """Return a Rich-backed logger, attaching handlers only once.

    INFO and below go to stdout, WARNING and above to stderr. When stdout is
    not a terminal (``sol-cloud watch > watcher.log``) everything goes to
    stderr so piped output stays machine readable.
    """
    resolved = _resolve_level(level)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    to_stderr = to_stderr or not sys.stdout.isatty()

    logger = logging.getLogger(name)
    logger.setLevel(resolved)
    logger.propagate = False

    if logger.handlers:
        return logger

    stderr_console = Console(stderr=True)

    if to_stderr:
        logger.addHandler(
            RichHandler(level=resolved, console=stderr_console, rich_tracebacks=True, **_HANDLER_KW)
        )
        return logger

    stdout_handler = RichHandler(
        level=logging.DEBUG,
        console=console or Console(),
        rich_tracebacks=False,
        **_HANDLER_KW,
    )
    stdout_handler.addFilter(lambda record: record.levelno <= logging.INFO)
    stderr_handler = RichHandler(
        level=logging.WARNING,
        console=stderr_console,
        rich_tracebacks=True,
        **_HANDLER_KW,
    )

    logger.addHandler(stdout_handler)
    logger.addHandler(stderr_handler)
    return logger

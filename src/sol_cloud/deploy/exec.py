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

"""Shelling out to provider CLIs (flyctl, railway)."""

from dataclasses import dataclass
import os
from pathlib import Path
import shutil
import subprocess
from typing import Mapping, Sequence

from sol_cloud.exceptions import StageError
from sol_cloud.helpers.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_COMMAND_TIMEOUT_S = 20 * 60.0


@dataclass
class CommandResult:
    args: list[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def require_binary(binary: str, *, hint: str = "") -> str:
    """Return the absolute path of ``binary`` or raise a ``StageError``."""
    found = shutil.which(binary)
    if found is None:
        msg = f"{binary} not found in PATH"
        if hint:
            msg = f"{msg} ({hint})"
        raise StageError(f"locate {binary}", msg)
    return found


def build_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Current environment plus ``extra``, skipping blank values."""
    env = dict(os.environ)
    for key, value in (extra or {}).items():
        if value is not None and str(value).strip():
            env[key] = str(value)
    return env


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_COMMAND_TIMEOUT_S,
) -> CommandResult:
    """Run ``args`` to completion, capturing stdout and stderr interleaved.

    A non-zero exit is returned, not raised; a timeout kills the child and is
    reported with whatever output was produced so far (returncode -1).
    """
    argv = [str(a) for a in args]
    logger.debug(f"Running {' '.join(argv)} (cwd={cwd})")
    try:
        proc = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.output or ""
        if isinstance(partial, bytes):
            partial = partial.decode("utf-8", errors="replace")
        return CommandResult(argv, -1, f"{partial}\ncommand timed out after {timeout:.0f}s")
    return CommandResult(argv, proc.returncode, proc.stdout or "")


def run_stage(
    stage: str,
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_COMMAND_TIMEOUT_S,
) -> CommandResult:
    """``run_command`` that raises ``StageError`` on a non-zero exit or timeout."""
    try:
        result = run_command(args, cwd=cwd, env=env, timeout=timeout)
    except OSError as e:
        raise StageError(stage, e) from e

    if not result.ok:
        cause = (
            "timed out" if result.returncode == -1 else f"exit status {result.returncode}"
        )
        raise StageError(stage, cause, result.output)
    return result

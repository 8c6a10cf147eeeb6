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

"""Watch loop: poll the slot, detect stalls, restart through the provider.

One tick::

    poll slot ──fail──▶ UNREACHABLE (warning, never counts as stuck)
        │
        ▼
    record ──not stuck──▶ PROGRESSING / WAITING
        │
      stuck
        ▼
    cooldown active? ──yes──▶ COOLDOWN
        │
        ▼
    confirm? ──no──▶ DECLINED
        │
        ▼
    restart ──fail──▶ RESTART_FAILED (loop keeps going)
        │
        ▼
    RESTARTED
"""

from dataclasses import dataclass
from enum import Enum
import signal
import threading
import time
from typing import Callable

from sol_cloud.config.watch import WatchConfig
from sol_cloud.exceptions import RemoteAPIError, RPCError, SolCloudError
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.monitor.slot_history import SlotHistory, StuckInfo, format_duration
from sol_cloud.platform.protocols import Provider
from sol_cloud.platform.rpc import SolanaRPC

logger = setup_logger(__name__)

Confirm = Callable[[str], bool]


def auto_approve(name: str) -> bool:
    return True


def select_confirmation(auto_restart: bool, prompt: Confirm) -> Confirm:
    """Unattended runs approve every restart; interactive runs ask ``prompt``."""
    return auto_approve if auto_restart else prompt


class TickOutcome(str, Enum):
    UNREACHABLE = "unreachable"
    PROGRESSING = "progressing"
    WAITING = "waiting"
    COOLDOWN = "cooldown"
    DECLINED = "declined"
    RESTARTED = "restarted"
    RESTART_FAILED = "restart_failed"


@dataclass
class TickResult:
    outcome: TickOutcome
    slot: int | None = None
    stuck: StuckInfo | None = None
    error: BaseException | None = None


@dataclass
class WatchSummary:
    ticks: int
    restarts: int
    reason: str


class ValidatorWatcher:
    """Single-owner watch loop for one deployment.

    ``run`` blocks until ``stop()`` is called (or a signal arrives through
    ``install_signal_handlers``) or ``max_restarts`` is reached. The wait
    between ticks is ``Event.wait`` so a stop request ends the wait at once;
    a tick already in progress always finishes.
    """

    def __init__(
        self,
        *,
        name: str,
        rpc_url: str,
        provider: Provider,
        cfg: WatchConfig,
        confirm: Confirm,
        history: SlotHistory | None = None,
        get_slot: Callable[[], int] | None = None,
        clock: Callable[[], float] = time.monotonic,
        stop_event: threading.Event | None = None,
    ):
        self.name = name
        self.rpc_url = rpc_url
        self.provider = provider
        self.cfg = cfg
        self.confirm = confirm
        self.history = history if history is not None else SlotHistory(cfg.stuck_threshold_s)
        self._get_slot = get_slot or SolanaRPC(rpc_url, timeout=cfg.rpc_timeout_s).get_slot
        self._clock = clock
        self._stop = stop_event or threading.Event()

        self.restart_count = 0
        self.last_restart_at: float | None = None

    # --- control ---
    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def max_restarts_reached(self) -> bool:
        return self.cfg.max_restarts > 0 and self.restart_count >= self.cfg.max_restarts

    def cooldown_remaining(self) -> float:
        if self.last_restart_at is None:
            return 0.0
        return max(0.0, self.cfg.restart_cooldown_s - (self._clock() - self.last_restart_at))

    # --- loop ---
    def run(self) -> WatchSummary:
        ticks = 0
        while not self._stop.wait(self.cfg.check_interval_s):
            self.tick()
            ticks += 1
            if self.max_restarts_reached():
                logger.warning(f"Max restarts ({self.cfg.max_restarts}) reached, stopping watcher")
                return WatchSummary(ticks, self.restart_count, "max_restarts")
        logger.info("Watcher stopped")
        return WatchSummary(ticks, self.restart_count, "stopped")

    def tick(self) -> TickResult:
        try:
            slot = self._get_slot()
        except (RPCError, RemoteAPIError) as e:
            logger.warning(f"RPC unreachable: {e}")
            return TickResult(TickOutcome.UNREACHABLE, error=e)

        self.history.record(slot)
        stuck, info = self.history.is_stuck()
        if not stuck:
            if self.history.has_progressed():
                logger.info(f"Slot: {slot} [green](progressing)[/green]")
                return TickResult(TickOutcome.PROGRESSING, slot=slot)
            logger.info(f"Slot: {slot} [yellow](waiting for progression)[/yellow]")
            return TickResult(TickOutcome.WAITING, slot=slot)

        logger.warning(f"[bold red]STUCK DETECTED[/bold red]: {info}")

        remaining = self.cooldown_remaining()
        if remaining > 0:
            logger.info(f"Restart cooldown active, waiting {format_duration(remaining)}...")
            return TickResult(TickOutcome.COOLDOWN, slot=slot, stuck=info)

        if not self.confirm(self.name):
            logger.info("Restart skipped by user")
            return TickResult(TickOutcome.DECLINED, slot=slot, stuck=info)

        logger.info(f"Restarting validator [cyan]{self.name}[/cyan]...")
        try:
            self.provider.restart(self.name, timeout_s=self.cfg.restart_timeout_s)
        except SolCloudError as e:
            logger.error(f"Restart failed: {e}")
            return TickResult(TickOutcome.RESTART_FAILED, slot=slot, stuck=info, error=e)

        self.restart_count += 1
        self.last_restart_at = self._clock()
        logger.info(f"Restart successful (restart #{self.restart_count}); waiting for recovery")
        return TickResult(TickOutcome.RESTARTED, slot=slot, stuck=info)


def install_signal_handlers(watcher: ValidatorWatcher) -> Callable[[], None]:
    """Route SIGINT/SIGTERM to ``watcher.stop``. Returns a function restoring the old handlers."""
    previous = {}

    def _handler(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, stopping after the current check")
        watcher.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)

    def _restore() -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return _restore

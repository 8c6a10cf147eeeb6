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
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
import threading
import time
from typing import Callable

DEFAULT_CAPACITY = 20


@dataclass(frozen=True)
class SlotObservation:
    slot: int
    at: datetime
    # monotonic seconds; None when the caller supplied ``at`` itself
    mono: float | None = None


def _span(first: SlotObservation, last: SlotObservation) -> timedelta:
    if first.mono is not None and last.mono is not None:
        return timedelta(seconds=last.mono - first.mono)
    return last.at - first.at


@dataclass(frozen=True)
class StuckInfo:
    slot: int
    first_observed_at: datetime
    last_observed_at: datetime
    observation_count: int
    duration: timedelta

    def __str__(self) -> str:
        return (
            f"Stuck on slot {self.slot} for {format_duration(self.duration)} "
            f"(observed {self.observation_count} times, "
            f"first at {self.first_observed_at:%H:%M:%S})"
        )


def format_duration(d: timedelta | float) -> str:
    """Render a duration as ``1h2m3s`` / ``3m0s`` / ``45s``, rounded to seconds."""
    total = round(d.total_seconds() if isinstance(d, timedelta) else d)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


class SlotHistory:
    """Bounded slot history that detects a stalled validator.

    A validator is stuck when the newest observations all carry the same slot
    and the elapsed time of that run reaches ``stuck_threshold``. Duration,
    not tick count, is what matters: the poll interval is user-configurable.
    Elapsed time comes from ``monotonic`` so a wall-clock step cannot stretch
    or shrink a stall; ``now`` only stamps observations for display.

    ``record`` and ``is_stuck`` may be called from different threads; the lock
    is only held while the buffer is read or written.
    """

    def __init__(
        self,
        stuck_threshold: timedelta | float,
        *,
        capacity: int = DEFAULT_CAPACITY,
        now: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.stuck_threshold = (
            stuck_threshold
            if isinstance(stuck_threshold, timedelta)
            else timedelta(seconds=stuck_threshold)
        )
        self._entries: deque[SlotObservation] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._now = now
        self._monotonic = monotonic

    def record(self, slot: int, at: datetime | None = None) -> None:
        if at is None:
            entry = SlotObservation(slot=slot, at=self._now(), mono=self._monotonic())
        else:
            entry = SlotObservation(slot=slot, at=at)
        with self._lock:
            self._entries.append(entry)

    def observations(self) -> list[SlotObservation]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_stuck(self) -> tuple[bool, StuckInfo | None]:
        with self._lock:
            entries = list(self._entries)

        if len(entries) < 2:
            return False, None

        last = entries[-1]
        first = last
        count = 0
        for entry in reversed(entries):
            if entry.slot != last.slot:
                break
            first = entry
            count += 1

        duration = _span(first, last)
        if count < 2 or duration < self.stuck_threshold:
            return False, None
        return True, StuckInfo(
            slot=last.slot,
            first_observed_at=first.at,
            last_observed_at=last.at,
            observation_count=count,
            duration=duration,
        )

    def has_progressed(self) -> bool:
        """True iff the two newest observations differ."""
        with self._lock:
            if len(self._entries) < 2:
                return False
            return self._entries[-1].slot != self._entries[-2].slot

    def latest_slot(self) -> int | None:
        with self._lock:
            return self._entries[-1].slot if self._entries else None

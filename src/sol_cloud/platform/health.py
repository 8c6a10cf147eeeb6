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
import threading
import time
from typing import Callable

from tenacity import RetryCallState, RetryError, Retrying, before_sleep_log, retry_if_exception_type

from sol_cloud.exceptions import HealthCheckTimeoutError, RemoteAPIError, RPCError
from sol_cloud.helpers.logger import setup_logger
from sol_cloud.platform.rpc import SolanaRPC

logger = setup_logger(__name__)

DEFAULT_TIMEOUT_S = 180.0
DEFAULT_INTERVAL_S = 5.0


def wait_healthy(
    url: str,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    interval_s: float = DEFAULT_INTERVAL_S,
    probe: Callable[[], None] | None = None,
    cancel: threading.Event | None = None,
    now: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] | None = None,
) -> None:
    """Poll ``getHealth`` until it answers ``"ok"`` or ``timeout_s`` elapses.

    Probe failures are retried; only running out of time raises, and the
    raised ``HealthCheckTimeoutError`` wraps the last probe's failure. Waits
    go through ``cancel.wait`` so setting ``cancel`` ends the loop at once
    instead of after the current interval. The last wait is clamped to the
    deadline, so an always-failing endpoint gives up between ``timeout_s``
    and ``timeout_s + interval_s``.
    """
    if timeout_s <= 0 or interval_s <= 0:
        raise ValueError("timeout_s and interval_s must be positive")

    if probe is None:
        rpc = SolanaRPC(url, timeout=min(interval_s, 10.0))
        probe = rpc.get_health

    cancel = cancel or threading.Event()
    started = now()

    def _elapsed() -> float:
        return now() - started

    def _stop(_: RetryCallState) -> bool:
        return cancel.is_set() or _elapsed() >= timeout_s

    def _wait(_: RetryCallState) -> float:
        return max(0.0, min(interval_s, timeout_s - _elapsed()))

    retrying = Retrying(
        stop=_stop,
        wait=_wait,
        sleep=sleep or cancel.wait,
        retry=retry_if_exception_type((RPCError, RemoteAPIError)),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
    )
    try:
        for attempt in retrying:
            with attempt:
                probe()
    except RetryError as e:
        last = e.last_attempt.exception()
        raise HealthCheckTimeoutError(url, last) from last
    logger.debug(f"{url} healthy after {_elapsed():.1f}s")

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

from datetime import datetime, timedelta
import threading

import pytest

from sol_cloud.monitor.slot_history import SlotHistory, format_duration

T0 = datetime(2026, 1, 1, 12, 0, 0)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def test_empty_and_single_observation_are_not_stuck():
    h = SlotHistory(60)
    assert h.is_stuck() == (False, None)

    h.record(10, _at(0))
    assert h.is_stuck() == (False, None)
    assert h.latest_slot() == 10


def test_repeated_slot_past_threshold_is_stuck():
    h = SlotHistory(60)
    h.record(9, _at(0))
    h.record(10, _at(30))
    h.record(10, _at(60))
    h.record(10, _at(90))

    stuck, info = h.is_stuck()
    assert stuck is True
    assert info.slot == 10
    assert info.first_observed_at == _at(30)
    assert info.last_observed_at == _at(90)
    assert info.observation_count == 3
    assert info.duration == timedelta(seconds=60)
    assert "Stuck on slot 10 for 1m0s" in str(info)


def test_repeated_slot_under_threshold_is_not_stuck():
    h = SlotHistory(60)
    for t in (0, 20, 40):
        h.record(5, _at(t))
    assert h.is_stuck() == (False, None)


def test_threshold_is_elapsed_time_not_tick_count():
    # Two samples far apart beat many samples close together.
    slow = SlotHistory(timedelta(minutes=3))
    slow.record(7, _at(0))
    slow.record(7, _at(200))
    assert slow.is_stuck()[0] is True

    fast = SlotHistory(timedelta(minutes=3))
    for i in range(19):
        fast.record(7, _at(i))
    assert fast.is_stuck()[0] is False


def test_progress_resets_the_stuck_run():
    h = SlotHistory(60)
    h.record(10, _at(0))
    h.record(10, _at(120))
    assert h.is_stuck()[0] is True

    h.record(11, _at(150))
    assert h.is_stuck() == (False, None)
    assert h.has_progressed() is True


def test_has_progressed_only_looks_at_two_newest():
    h = SlotHistory(60)
    assert h.has_progressed() is False
    h.record(1, _at(0))
    assert h.has_progressed() is False
    h.record(2, _at(1))
    assert h.has_progressed() is True
    h.record(2, _at(2))
    assert h.has_progressed() is False


def test_capacity_evicts_oldest():
    h = SlotHistory(60, capacity=3)
    for i in range(5):
        h.record(i, _at(i))
    assert [o.slot for o in h.observations()] == [2, 3, 4]
    assert len(h) == 3


def test_stuck_run_is_bounded_by_capacity():
    h = SlotHistory(15, capacity=3)
    for t in range(0, 100, 10):
        h.record(42, _at(t))
    stuck, info = h.is_stuck()
    assert stuck is True
    assert info.observation_count == 3
    assert info.first_observed_at == _at(70)


def test_record_uses_injected_clocks():
    walls = iter([_at(0), _at(90)])
    ticks = iter([100.0, 190.0])
    h = SlotHistory(60, now=lambda: next(walls), monotonic=lambda: next(ticks))
    h.record(3)
    h.record(3)
    stuck, info = h.is_stuck()
    assert stuck is True
    assert info.first_observed_at == _at(0)
    assert info.duration == timedelta(seconds=90)


@pytest.mark.parametrize("wall_jump", [-3600, 3600])
def test_wall_clock_steps_do_not_change_stall_duration(wall_jump):
    walls = iter([_at(0), _at(wall_jump)])
    ticks = iter([0.0, 30.0])
    h = SlotHistory(60, now=lambda: next(walls), monotonic=lambda: next(ticks))
    h.record(8)
    h.record(8)
    assert h.is_stuck() == (False, None)

    h2 = SlotHistory(60, now=lambda: _at(0), monotonic=iter([0.0, 61.0]).__next__)
    h2.record(8)
    h2.record(8)
    stuck, info = h2.is_stuck()
    assert stuck is True
    assert info.duration == timedelta(seconds=61)


def test_capacity_must_hold_two_entries():
    with pytest.raises(ValueError):
        SlotHistory(60, capacity=1)


def test_concurrent_record_and_query():
    h = SlotHistory(60, capacity=20)
    errors = []

    def writer():
        for i in range(500):
            h.record(i, _at(i))

    def reader():
        try:
            for _ in range(500):
                h.is_stuck()
                h.has_progressed()
        except Exception as e:  # pragma: no cover - surfaced by the assert below
            errors.append(e)

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(h) == 20
    assert h.latest_slot() == 499


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, "0s"),
        (45, "45s"),
        (180, "3m0s"),
        (3723, "1h2m3s"),
        (timedelta(seconds=61.4), "1m1s"),
    ],
)
def test_format_duration(value, expected):
    assert format_duration(value) == expected

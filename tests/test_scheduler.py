from __future__ import annotations

from datetime import timedelta

import pytest

from meeting_room.errors import NoParticipantsError
from meeting_room.scheduler import TimeBudget, compute_time_budget, pick_next_speaker, seating_order


def test_pick_next_speaker_round_robin():
    order = seating_order(["c", "a", "b", "a"])
    assert order == ["a", "b", "c"]
    assert pick_next_speaker(order, None) == "a"
    assert pick_next_speaker(order, "a") == "b"
    assert pick_next_speaker(order, "c") == "a"
    assert pick_next_speaker(order, "gone") == "a"
    assert pick_next_speaker(["solo"], "solo") == "solo"


def test_pick_next_speaker_empty():
    with pytest.raises(NoParticipantsError):
        pick_next_speaker([], None)


@pytest.mark.parametrize(
    "real_seconds, expired",
    [(0, False), (299.999, False), (300, True), (301, True)],
)
def test_expiry_boundary(real_seconds, expired):
    assert TimeBudget(30, real_seconds).expired is expired


def test_describe_wrap_up_hints():
    quiet = TimeBudget(30, 60).describe()
    assert "Elapsed: ~6 min (20%)" in quiet
    assert "wrapping" not in quiet and "about to end" not in quiet

    nearing = TimeBudget(30, 230).describe()
    assert "Elapsed: ~23 min (77%)" in nearing
    assert "Time remaining: ~7 minutes" in nearing
    assert "nearing its end" in nearing

    closing = TimeBudget(30, 280).describe()
    assert "Time remaining: ~2 minutes" in closing
    assert "about to end" in closing
    assert "nearing its end" not in closing


def test_compute_time_budget(store, make_room, clock):
    room = make_room("Ada Obi", duration=30)
    assert compute_time_budget(room, clock()) is None

    store.update_room(room.id, started_at=clock())
    clock.advance(minutes=2)
    budget = compute_time_budget(store.require_room(room.id), clock())
    assert budget.simulated_elapsed_minutes == 12


def test_compute_time_budget_pause_stops_clock(store, make_room, clock):
    room = make_room("Ada Obi", duration=30)
    start = clock()
    store.update_room(room.id, started_at=start, paused_seconds=60.0)
    store.update_room(room.id, status="paused", paused_at=start + timedelta(minutes=2))
    clock.advance(minutes=3)
    room = store.require_room(room.id)

    assert compute_time_budget(room, clock()).real_elapsed_seconds == 180
    stopped = compute_time_budget(room, clock(), pause_stops_clock=True)
    assert stopped.real_elapsed_seconds == 60

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .errors import NoParticipantsError
from .states import RoomStatus
from .store import RoomRecord, as_utc


DEFAULT_TIME_MULTIPLIER = 6.0
WRAP_UP_MINUTES = 2
WRAP_UP_PERCENT = 75


@dataclass
class TimeBudget:
    """Accelerated meeting clock: real elapsed seconds scaled by `multiplier`."""

    duration_minutes: int
    real_elapsed_seconds: float
    multiplier: float = DEFAULT_TIME_MULTIPLIER

    @property
    def simulated_elapsed_seconds(self) -> float:
        return self.real_elapsed_seconds * self.multiplier

    @property
    def expired(self) -> bool:
        return self.simulated_elapsed_seconds >= self.duration_minutes * 60

    @property
    def simulated_elapsed_minutes(self) -> int:
        return int(math.floor(self.simulated_elapsed_seconds / 60))

    @property
    def remaining_minutes(self) -> int:
        return max(0, self.duration_minutes - self.simulated_elapsed_minutes)

    @property
    def percent_elapsed(self) -> int:
        return int(math.floor(self.simulated_elapsed_minutes / self.duration_minutes * 100 + 0.5))

    def describe(self) -> str:
        lines = [
            f"- Total meeting duration: {self.duration_minutes} minutes",
            f"- Elapsed: ~{self.simulated_elapsed_minutes} min ({self.percent_elapsed}%)",
            f"- Time remaining: ~{self.remaining_minutes} minutes",
        ]
        if self.remaining_minutes <= WRAP_UP_MINUTES:
            lines.append("- ⚠️ Meeting is about to end! Wrap up your thoughts and offer closing remarks.")
        elif self.percent_elapsed >= WRAP_UP_PERCENT:
            lines.append("- The meeting is nearing its end. Start wrapping up key points.")
        return "\n".join(lines)


def compute_time_budget(
    room: RoomRecord,
    now: datetime,
    multiplier: float = DEFAULT_TIME_MULTIPLIER,
    pause_stops_clock: bool = False,
) -> Optional[TimeBudget]:
    """None when the room never started or has no duration set.

    By default the clock runs against wall time from `started_at`, paused or not.
    With `pause_stops_clock`, completed pauses and the current one are excluded.
    """
    started = as_utc(room.started_at)
    if started is None or not room.duration_minutes:
        return None
    now = as_utc(now)
    elapsed = (now - started).total_seconds()
    if pause_stops_clock:
        elapsed -= room.paused_seconds or 0.0
        paused_at = as_utc(room.paused_at)
        if room.status == RoomStatus.PAUSED.value and paused_at is not None:
            elapsed -= (now - paused_at).total_seconds()
    return TimeBudget(
        duration_minutes=room.duration_minutes,
        real_elapsed_seconds=max(0.0, elapsed),
        multiplier=multiplier,
    )


def seating_order(persona_ids: Iterable[str]) -> List[str]:
    return sorted(set(persona_ids))


def pick_next_speaker(order: List[str], last_speaker_id: Optional[str]) -> str:
    """Round-robin over `order`, continuing after `last_speaker_id`.

    `last_speaker_id` must come from still-seated personas; anything not in
    `order` restarts the round from the first seat.
    """
    if not order:
        raise NoParticipantsError("No participants")
    if last_speaker_id is None or last_speaker_id not in order:
        return order[0]
    return order[(order.index(last_speaker_id) + 1) % len(order)]

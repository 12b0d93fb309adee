"""Resolve which gameweek a job should work on from the bootstrap calendar."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from ..types import Event, NextDeadline
from .utils import FPL_TIMEZONE, format_deadline, parse_fpl_datetime


@dataclass(frozen=True, slots=True)
class GameweekStatus:
    event: Event
    method: str

    @property
    def id(self) -> int:
        return self.event.id

    @property
    def finished(self) -> bool:
        return self.event.finished


def find_current_gameweek(
    events: Sequence[Event], reference_time: datetime
) -> GameweekStatus | None:
    """Return the running gameweek, preferring the API's ``is_current`` flag.

    Without the flag, the current gameweek is the one before the first deadline
    still in the future. Before the season starts there is no current gameweek.
    """

    current_events = [event for event in events if event.is_current]
    if len(current_events) == 1:
        return GameweekStatus(current_events[0], "api_is_current_flag")

    reference_utc = reference_time.astimezone(FPL_TIMEZONE)
    sorted_events = sorted(events, key=lambda item: item.id)
    for index, event in enumerate(sorted_events):
        if not event.deadline_time:
            continue
        if reference_utc < parse_fpl_datetime(event.deadline_time):
            if index == 0:
                return None
            return GameweekStatus(sorted_events[index - 1], "deadline_calculation_current")

    if not sorted_events:
        return None
    return GameweekStatus(sorted_events[-1], "deadline_calculation_last")


def resolve_target_gameweek(events: Sequence[Event]) -> int:
    """Pick the gameweek a generation run targets: current, next, last finished, else 1."""

    for event in events:
        if event.is_current:
            return event.id
    for event in events:
        if event.is_next:
            return event.id
    finished = [event.id for event in events if event.finished]
    if finished:
        return max(finished)
    return 1


def next_deadline(events: Sequence[Event], gameweek: int, local_tz: ZoneInfo) -> NextDeadline:
    """First upcoming (neither finished nor current) deadline, or ``TBA``."""

    for event in events:
        if event.finished or event.is_current or not event.deadline_time:
            continue
        date, time = format_deadline(event.deadline_time, local_tz)
        return NextDeadline(gw=event.id, date=date, time=time)
    return NextDeadline(gw=gameweek + 1, date="TBA", time="TBA")


__all__ = [
    "GameweekStatus",
    "find_current_gameweek",
    "next_deadline",
    "resolve_target_gameweek",
]

"""Expand a date range into shift work units and plan their volume."""

import random
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta

from .constants import (
    SHIFT_CYCLE,
    SHIFT_LENGTH_MINUTES,
    SHIFT_START_HOURS,
    WORKDAYS_PER_BLOCK,
    Shift,
)
from .errors import RequestValidationError
from .models import WorkUnit

ONE_DAY = timedelta(days=1)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def build_schedule(
    start_date: date, end_date: date, shifts: Sequence[Shift] = SHIFT_CYCLE
) -> list[WorkUnit]:
    """Assign rotating shifts to the working days of a date range.

    Working days are taken in blocks of up to five consecutive weekdays. A block
    ends after five assigned days or at the first weekend day, after which the
    walk skips forward to the next weekday and starts a new block. The shift
    pointer advances once per assigned day and never on weekends.

    Args:
        start_date: First day of the range.
        end_date: Last day of the range, inclusive.
        shifts: Shift rotation, morning first by default.

    Returns:
        list[WorkUnit]: Work units in date order; empty if the range has no weekdays.

    Raises:
        RequestValidationError: If the range is reversed or no shifts are given.
    """
    if end_date < start_date:
        raise RequestValidationError("End date must not be before start date")
    if not shifts:
        raise RequestValidationError("At least one shift is required")

    work_units: list[WorkUnit] = []
    shift_index = 0
    current = start_date

    while current <= end_date:
        days_in_block = 0
        while days_in_block < WORKDAYS_PER_BLOCK and current <= end_date:
            if is_weekend(current):
                break
            work_units.append(WorkUnit(date=current, shift=shifts[shift_index]))
            shift_index = (shift_index + 1) % len(shifts)
            days_in_block += 1
            current += ONE_DAY

        while current <= end_date and is_weekend(current):
            current += ONE_DAY

    return work_units


def draw_unit_count(min_per_day: int, max_per_day: int, rng: random.Random) -> int:
    """Draw the number of conversations for one work unit, bounds inclusive."""
    return rng.randint(min_per_day, max_per_day)


def plan_volume(
    work_units: Sequence[WorkUnit],
    min_per_day: int,
    max_per_day: int,
    rng: random.Random,
) -> list[tuple[WorkUnit, int]]:
    """Pair every work unit with an independently drawn conversation count."""
    return [
        (unit, draw_unit_count(min_per_day, max_per_day, rng)) for unit in work_units
    ]


def shift_start(unit: WorkUnit) -> datetime:
    return datetime.combine(unit.date, time(hour=SHIFT_START_HOURS[unit.shift]))


def scheduled_time(unit: WorkUnit, rng: random.Random) -> datetime:
    """Pick a start time uniformly within the unit's six-hour shift window."""
    return shift_start(unit) + timedelta(minutes=rng.randrange(SHIFT_LENGTH_MINUTES))

"""
Allocation calendar arithmetic.

Everything in this module is pure: no database access, no clock reads.
Callers pass ``now`` / ``from_dt`` explicitly so that the same inputs always
produce the same due dates.

All datetimes are handled as UTC-naive (see time_utils.normalize_datetime).
Calendar-date comparisons (the specific_days rule) use the UTC calendar date.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Union

from .constants import (
    FREQ_YEARLY,
    FREQ_TERMLY,
    FREQ_MONTHLY,
    FREQ_WEEKLY,
    FREQ_SPECIFIC_DAYS,
    FREQ_ONCE_PER_TERM,
    ALLOCATION_FREQUENCIES,
    WEEKDAYS,
)
from .errors import ValidationError
from .time_utils import normalize_datetime


DUE_NEVER_GIVEN = "NEVER_GIVEN"
DUE_DUE = "DUE"
DUE_OVERDUE = "OVERDUE"
DUE_NOT_DUE = "NOT_DUE"

# Calendar months added per frequency; weekly and specific_days are day-based
_MONTH_STEPS = {
    FREQ_YEARLY: 12,
    FREQ_TERMLY: 4,
    FREQ_ONCE_PER_TERM: 4,
    FREQ_MONTHLY: 1,
}

SpecificDays = Union[str, Iterable[str], None]


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month (Jan 31 + 1 month = Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def parse_specific_days(value: SpecificDays) -> tuple[int, ...]:
    """
    Parse weekday names into sorted datetime.weekday() indexes.

    Accepts "monday, Wednesday" or ["monday", "wednesday"]. Empty input gives
    an empty tuple; unknown names raise ValidationError.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        names = value.split(",")
    else:
        names = list(value)

    indexes = set()
    for raw in names:
        if not isinstance(raw, str):
            raise ValidationError(f"Invalid weekday: {raw!r}")
        name = raw.strip().lower()
        if not name:
            continue
        if name not in WEEKDAYS:
            raise ValidationError(
                f"Invalid weekday: {raw!r}",
                details={"allowed": list(WEEKDAYS)},
            )
        indexes.add(WEEKDAYS.index(name))
    return tuple(sorted(indexes))


def format_specific_days(days: Iterable[int]) -> str:
    """Canonical storage form: lowercase names in week order, comma-separated."""
    return ",".join(WEEKDAYS[i] for i in sorted(set(days)))


def _require_frequency(frequency: str) -> str:
    if frequency not in ALLOCATION_FREQUENCIES:
        raise ValidationError(
            f"Invalid frequency: {frequency!r}",
            details={"allowed": list(ALLOCATION_FREQUENCIES)},
        )
    return frequency


def calculate_next_due_date(frequency: str, specific_days: SpecificDays, from_dt: datetime) -> datetime:
    """
    Next due date for an allocation given at ``from_dt``.

    yearly +1 year, termly/once_per_term +4 months, monthly +1 month,
    weekly +7 days. specific_days: the first calendar date strictly after
    from_dt whose weekday is allowed, keeping the time of day; an empty
    weekday set falls back to +7 days.
    """
    _require_frequency(frequency)
    from_dt = normalize_datetime(from_dt)

    if frequency in _MONTH_STEPS:
        return add_months(from_dt, _MONTH_STEPS[frequency])

    if frequency == FREQ_WEEKLY:
        return from_dt + timedelta(days=7)

    # FREQ_SPECIFIC_DAYS
    allowed = parse_specific_days(specific_days)
    if allowed:
        for offset in range(1, 8):
            candidate = from_dt + timedelta(days=offset)
            if candidate.weekday() in allowed:
                return candidate
    return from_dt + timedelta(days=7)


@dataclass(frozen=True)
class DueStatus:
    state: str
    reason: str
    days_overdue: int = 0
    due_since: Optional[datetime] = None

    @property
    def is_due(self) -> bool:
        return self.state != DUE_NOT_DUE

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "is_due": self.is_due,
            "reason": self.reason,
            "days_overdue": self.days_overdue,
        }


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def allocation_due_status(allocation, now: datetime) -> DueStatus:
    """
    Classify an allocation against ``now``.

    ``allocation`` needs ``frequency``, ``specific_days`` and ``last_given_at``.

    - never given: NEVER_GIVEN (due)
    - calendar frequencies: DUE once now >= calculate_next_due_date(last_given);
      OVERDUE once a further whole period has also elapsed
    - specific_days: due when today's weekday is allowed and nothing was given
      earlier on the same UTC calendar date; OVERDUE when an allowed day
      between the last fulfillment and today was skipped
    """
    frequency = _require_frequency(allocation.frequency)
    now = normalize_datetime(now)

    if allocation.last_given_at is None:
        return DueStatus(state=DUE_NEVER_GIVEN, reason="First allocation")

    last_given = normalize_datetime(allocation.last_given_at)

    if frequency == FREQ_SPECIFIC_DAYS:
        return _specific_days_status(allocation.specific_days, last_given, now)

    due_at = calculate_next_due_date(frequency, None, last_given)
    if now < due_at:
        return DueStatus(state=DUE_NOT_DUE, reason="Not due yet", due_since=due_at)

    days_overdue = (now - due_at).days
    elapsed = (now - last_given).days
    reason = f"{frequency.replace('_', ' ').capitalize()} allocation due ({_plural(elapsed, 'day')} since last)"
    state = DUE_OVERDUE if now >= calculate_next_due_date(frequency, None, due_at) else DUE_DUE
    return DueStatus(state=state, reason=reason, days_overdue=days_overdue, due_since=due_at)


def _specific_days_status(specific_days: SpecificDays, last_given: datetime, now: datetime) -> DueStatus:
    allowed = parse_specific_days(specific_days)
    today = now.date()
    today_name = WEEKDAYS[now.weekday()]

    if now.weekday() not in allowed:
        return DueStatus(state=DUE_NOT_DUE, reason=f"Not scheduled on {today_name}")
    if last_given.date() >= today:
        return DueStatus(state=DUE_NOT_DUE, reason=f"Already given on {today.isoformat()}")

    first_scheduled = calculate_next_due_date(FREQ_SPECIFIC_DAYS, format_specific_days(allowed), last_given)
    missed_days = (today - first_scheduled.date()).days
    if missed_days > 0:
        return DueStatus(
            state=DUE_OVERDUE,
            reason=f"Scheduled allocation for {today_name} (missed since {first_scheduled.date().isoformat()})",
            days_overdue=missed_days,
            due_since=first_scheduled,
        )
    return DueStatus(state=DUE_DUE, reason=f"Scheduled allocation for {today_name}", due_since=first_scheduled)

"""
Utilities for planning notification fire times.

Uses croniter for daily recurrences and zoneinfo for timezone-aware calculations.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from croniter import croniter

from countdown_push.models.subscription import SubscriptionRecord
from countdown_push.utils.time import parse_time_of_day, resolve_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DailyOccurrence:
    """One recurring reminder: a civil time of day and its next instance."""

    time_of_day: str
    hour: int
    minute: int
    next_at: datetime

    @property
    def cron_expression(self) -> str:
        return f"{self.minute} {self.hour} * * *"


@dataclass(frozen=True, slots=True)
class SchedulePlan:
    subscription_id: str
    timezone: str
    launch_at: datetime | None
    daily: tuple[DailyOccurrence, ...]

    @property
    def trigger_count(self) -> int:
        return len(self.daily) + (1 if self.launch_at is not None else 0)

    @property
    def is_empty(self) -> bool:
        return self.trigger_count == 0


def _aware(now: datetime) -> datetime:
    return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)


def next_daily_occurrence(hour: int, minute: int, now: datetime, tz: ZoneInfo) -> datetime:
    """Return the first ``hour:minute`` in *tz* at or after *now*."""
    local_now = _aware(now).astimezone(tz)
    # croniter is strictly-after; start a minute early so an exact match counts
    base = local_now.replace(second=0, microsecond=0) - timedelta(minutes=1)
    cron = croniter(f"{minute} {hour} * * *", base)
    while True:
        next_local = cron.get_next(datetime)
        # croniter returns a naive datetime in the same tz context; attach the tz
        if next_local.tzinfo is None:
            next_local = next_local.replace(tzinfo=tz)
        if next_local >= local_now:
            return next_local


def launch_passed(record: SubscriptionRecord, now: datetime) -> bool:
    """True once the record's launch time is at or before *now*. Records without a launch never pass."""
    return record.launch_time is not None and record.launch_time <= _aware(now)


def plan(record: SubscriptionRecord, now: datetime, default_timezone: str = "UTC") -> SchedulePlan:
    """
    Compute the concrete future fire times for *record* as seen at *now*.

    - The launch is planned only while it is still in the future. Once it
      has passed the event is over: nothing is planned, neither the missed
      launch alert nor any further daily reminder.
    - Each parseable daily time yields one recurring occurrence in the
      record's timezone. Malformed entries are skipped one by one and
      duplicates collapse, so the rest of the plan always goes ahead.

    Replanning an unchanged record gives the same set of occurrences; only
    ``next_at`` moves forward as *now* crosses an occurrence.
    """
    now = _aware(now)
    tz = resolve_timezone(record.timezone, default_timezone)

    if launch_passed(record, now):
        logger.debug(f"Subscription {record.id}: launch {record.launch_time.isoformat()} passed, nothing to plan")
        return SchedulePlan(subscription_id=record.id, timezone=tz.key, launch_at=None, daily=())

    launch_at = record.launch_time.astimezone(tz) if record.launch_time is not None else None

    daily: list[DailyOccurrence] = []
    seen: set[tuple[int, int]] = set()
    for raw in record.daily_times:
        try:
            hour, minute = parse_time_of_day(raw)
        except ValueError as e:
            logger.warning(f"Subscription {record.id}: skipping daily time: {e}")
            continue
        if (hour, minute) in seen:
            continue
        seen.add((hour, minute))
        daily.append(
            DailyOccurrence(
                time_of_day=f"{hour:02d}:{minute:02d}",
                hour=hour,
                minute=minute,
                next_at=next_daily_occurrence(hour, minute, now, tz),
            )
        )

    return SchedulePlan(
        subscription_id=record.id,
        timezone=tz.key,
        launch_at=launch_at,
        daily=tuple(daily),
    )


def days_until(target: datetime, now: datetime, tz: ZoneInfo) -> int:
    """Whole calendar days from *now* until *target*, counted in *tz*; never negative."""
    target_day = _aware(target).astimezone(tz).date()
    today = _aware(now).astimezone(tz).date()
    return max(0, (target_day - today).days)

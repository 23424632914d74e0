from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, TypedDict
from zoneinfo import ZoneInfo

from countdown_push.tasks.schedule_utils import days_until


class NotificationKind(StrEnum):
    LAUNCH = "launch"
    REMINDER = "reminder"
    MANUAL = "manual"


class CountdownPayload(TypedDict):
    title: str
    body: str
    icon: str
    tag: str
    url: str
    requireInteraction: bool
    customData: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Countdown:
    """Days remaining until the event, as seen from one timezone."""

    days: int
    target: datetime | None
    timezone: str
    passed: bool = False

    @property
    def is_today(self) -> bool:
        return self.target is not None and self.days == 0

    @property
    def target_date_string(self) -> str:
        if self.target is None:
            return ""
        return f"{self.target:%B} {self.target.day}, {self.target.year}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "days": self.days,
            "targetDateISO": self.target.isoformat() if self.target else None,
            "targetDateString": self.target_date_string,
            "isToday": self.is_today,
            "passed": self.passed,
            "timezone": self.timezone,
        }


def get_countdown(target: datetime | None, now: datetime, tz: ZoneInfo) -> Countdown:
    if target is None:
        return Countdown(days=0, target=None, timezone=tz.key)
    local_target = target.astimezone(tz)
    return Countdown(
        days=days_until(local_target, now, tz),
        target=local_target,
        timezone=tz.key,
        passed=local_target <= now,
    )


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "event"


def build_countdown_payload(
    countdown: Countdown,
    event_name: str,
    kind: NotificationKind,
    *,
    icon: str = "/countdown-icon.png",
    launch_icon: str = "/celebration-icon.png",
    url: str = "/",
) -> CountdownPayload:
    """Build the JSON body the service worker turns into a notification."""
    require_interaction = False

    if kind == NotificationKind.LAUNCH or countdown.is_today or countdown.passed:
        title = f"🎉 {event_name} is here!"
        body = f"The day has finally arrived! {event_name} is live."
        icon = launch_icon
        require_interaction = True
    elif countdown.target is None:
        title = f"🔔 {event_name}"
        body = f"Stay tuned, {event_name} is coming soon."
    elif countdown.days == 1:
        title = f"⏰ Tomorrow: {event_name}!"
        body = f"Just 1 more day until {event_name}. Get ready!"
    else:
        title = f"📅 {countdown.days} Days Until {event_name}"
        body = f"Only {countdown.days} days left ({countdown.target_date_string})"

    return CountdownPayload(
        title=title,
        body=body,
        icon=icon,
        tag=f"{_slug(event_name)}-countdown",
        url=url,
        requireInteraction=require_interaction,
        customData={
            "kind": str(kind),
            "daysRemaining": countdown.days,
            "targetDate": countdown.target.isoformat() if countdown.target else None,
        },
    )

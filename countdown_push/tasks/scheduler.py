"""
Live notification triggers.

Provides:
- ScheduleEntry: the armed APScheduler jobs for one subscription
- Delivery: a dispatch result plus whether the record was pruned for it
- JobScheduler: arms/disarms jobs per subscription and handles each fire

Every subscription owns at most one launch job (a one-shot ``DateTrigger``)
and one ``CronTrigger`` per daily time, built from the planner's cron
expression in the subscription's timezone. Daily reminders stop once the
launch has happened. Replanning never diffs: the whole entry is torn down
and rebuilt from the current record, which keeps a subscription from ever
holding two live entries.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from countdown_push.configs.push import PushConfig
from countdown_push.configs.schedule import ScheduleConfig
from countdown_push.core.notification.dispatch import DispatchResult
from countdown_push.core.notification.events import (
    CountdownPayload,
    NotificationKind,
    build_countdown_payload,
    get_countdown,
)
from countdown_push.models.subscription import EndpointDescriptor, SubscriptionRecord
from countdown_push.repos.subscription import SubscriptionStore
from countdown_push.tasks.schedule_utils import SchedulePlan, launch_passed, plan
from countdown_push.utils.time import resolve_timezone

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    async def send(self, descriptor: EndpointDescriptor, payload: dict[str, Any]) -> DispatchResult: ...


def launch_job_id(subscription_id: str) -> str:
    return f"{subscription_id}:launch"


def daily_job_id(subscription_id: str, time_of_day: str) -> str:
    return f"{subscription_id}:daily:{time_of_day}"


@dataclass
class ScheduleEntry:
    subscription_id: str
    plan: SchedulePlan
    launch_job_id: str | None = None
    daily_job_ids: dict[str, str] = field(default_factory=dict)

    @property
    def job_ids(self) -> list[str]:
        ids = list(self.daily_job_ids.values())
        if self.launch_job_id is not None:
            ids.insert(0, self.launch_job_id)
        return ids

    def planned_at(self, job_id: str) -> datetime | None:
        """First fire time the planner computed for *job_id*."""
        if job_id == self.launch_job_id:
            return self.plan.launch_at
        for occurrence in self.plan.daily:
            if self.daily_job_ids.get(occurrence.time_of_day) == job_id:
                return occurrence.next_at
        return None


@dataclass(frozen=True, slots=True)
class Delivery:
    """A dispatch result and whether it cost the subscription its record."""

    result: DispatchResult
    pruned: bool = False

    @property
    def delivered(self) -> bool:
        return self.result.delivered

    @property
    def gone(self) -> bool:
        return self.result.gone


class JobScheduler:
    """Owns the live triggers of every subscription.

    The store and dispatcher are injected, and so is the clock used for
    planning, which lets tests drive fires directly without waiting on
    wall-clock time.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        dispatcher: Dispatcher,
        *,
        schedule_config: ScheduleConfig | None = None,
        push_config: PushConfig | None = None,
        scheduler: AsyncIOScheduler | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.defaults = schedule_config or ScheduleConfig()
        self.push = push_config or PushConfig()
        self.scheduler = scheduler or AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": self.defaults.MisfireGraceSeconds,
            },
        )
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._entries: dict[str, ScheduleEntry] = {}

    # --- Lifecycle --------------------------------------------------------------

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Job scheduler started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Job scheduler stopped")

    # --- Arming -----------------------------------------------------------------

    def schedule(self, subscription_id: str) -> SchedulePlan | None:
        """(Re)arm every trigger for *subscription_id* from its current record.

        Returns the plan that was armed, or None when the record does not exist.
        """
        self._teardown(subscription_id)

        record = self.store.get(subscription_id)
        if record is None:
            logger.debug(f"Subscription {subscription_id} not in store, nothing to schedule")
            return None

        schedule_plan = plan(record, self._now(), self.defaults.DefaultTimezone)
        tz = ZoneInfo(schedule_plan.timezone)
        entry = ScheduleEntry(subscription_id=subscription_id, plan=schedule_plan)

        if schedule_plan.launch_at is not None:
            job = self.scheduler.add_job(
                self._fire_launch,
                DateTrigger(run_date=schedule_plan.launch_at, timezone=tz),
                args=(subscription_id,),
                id=launch_job_id(subscription_id),
                name=f"launch alert ({subscription_id})",
                replace_existing=True,
            )
            entry.launch_job_id = job.id

        for occurrence in schedule_plan.daily:
            job = self.scheduler.add_job(
                self._fire_daily,
                CronTrigger.from_crontab(occurrence.cron_expression, timezone=tz),
                args=(subscription_id, occurrence.time_of_day),
                id=daily_job_id(subscription_id, occurrence.time_of_day),
                name=f"daily reminder {occurrence.time_of_day} ({subscription_id})",
                replace_existing=True,
            )
            entry.daily_job_ids[occurrence.time_of_day] = job.id

        self._entries[subscription_id] = entry
        daily_summary = ", ".join(f"{o.time_of_day} next {o.next_at.isoformat()}" for o in schedule_plan.daily)
        logger.info(
            f"Scheduled subscription {subscription_id}: "
            f"launch={schedule_plan.launch_at.isoformat() if schedule_plan.launch_at else 'none'}, "
            f"daily=[{daily_summary}] ({schedule_plan.timezone})"
        )
        return schedule_plan

    def unschedule(self, subscription_id: str) -> bool:
        """Disarm every trigger for *subscription_id*; the store is left alone."""
        return self._teardown(subscription_id)

    def _teardown(self, subscription_id: str) -> bool:
        entry = self._entries.pop(subscription_id, None)
        if entry is None:
            return False
        for job_id in entry.job_ids:
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                # One-shot launch jobs remove themselves once fired
                pass
        logger.debug(f"Tore down {len(entry.job_ids)} trigger(s) for {subscription_id}")
        return True

    def prune(self, subscription_id: str) -> bool:
        """Forget a subscription whose endpoint is permanently gone."""
        removed = self.store.delete(subscription_id)
        self._teardown(subscription_id)
        if removed is not None:
            logger.info(f"Pruned subscription {subscription_id} ({SubscriptionStore.extract_domain(removed.endpoint)})")
        return removed is not None

    # --- Firing -----------------------------------------------------------------

    async def _fire_launch(self, subscription_id: str) -> Delivery | None:
        entry = self._entries.get(subscription_id)
        delivery = await self._fire(subscription_id, NotificationKind.LAUNCH)
        # The event has happened: daily reminders end with the launch alert,
        # unless the subscription was replanned while the alert was in flight
        if entry is not None and self._entries.get(subscription_id) is entry:
            self._teardown(subscription_id)
        return delivery

    async def _fire_daily(self, subscription_id: str, time_of_day: str) -> Delivery | None:
        logger.debug(f"Daily trigger {time_of_day} fired for {subscription_id}")
        record = self.store.get(subscription_id)
        if record is not None and launch_passed(record, self._now()):
            logger.info(f"Launch for {subscription_id} has passed, retiring its daily reminders")
            self._teardown(subscription_id)
            return None
        return await self._fire(subscription_id, NotificationKind.REMINDER)

    async def _fire(self, subscription_id: str, kind: NotificationKind) -> Delivery | None:
        record = self.store.get(subscription_id)
        if record is None:
            logger.info(f"Subscription {subscription_id} vanished before its {kind} fired, disarming")
            self._teardown(subscription_id)
            return None
        try:
            return await self.deliver(record, kind)
        except Exception:
            logger.exception(f"Unexpected error firing {kind} for {subscription_id}")
            return None

    async def deliver(self, record: SubscriptionRecord, kind: NotificationKind) -> Delivery:
        """Send one notification to *record* and apply the outcome to state."""
        payload = self.build_payload(record, kind)
        result = await self.dispatcher.send(record.endpoint_descriptor, dict(payload))

        current = self.store.get(record.id)
        if current is None or current.endpoint != record.endpoint:
            # Unsubscribed or re-subscribed with a new endpoint while sending
            return Delivery(result)

        if result.gone:
            return Delivery(result, pruned=self.prune(record.id))
        if result.delivered:
            self.store.mark_sent(record.id, self._now())
        return Delivery(result)

    def build_payload(self, record: SubscriptionRecord, kind: NotificationKind) -> CountdownPayload:
        tz = resolve_timezone(record.timezone, self.defaults.DefaultTimezone)
        countdown = get_countdown(record.launch_time, self._now(), tz)
        return build_countdown_payload(
            countdown,
            self.defaults.EventName,
            kind,
            icon=self.push.Icon,
            launch_icon=self.push.LaunchIcon,
            url=self.push.Url,
        )

    # --- Introspection ----------------------------------------------------------

    def get_entry(self, subscription_id: str) -> ScheduleEntry | None:
        return self._entries.get(subscription_id)

    def armed_job_ids(self, subscription_id: str) -> list[str]:
        """Job ids currently registered with APScheduler for *subscription_id*."""
        entry = self._entries.get(subscription_id)
        if entry is None:
            return []
        return [job_id for job_id in entry.job_ids if self.scheduler.get_job(job_id) is not None]

    def status(self) -> list[dict[str, Any]]:
        result = []
        for subscription_id, entry in self._entries.items():
            jobs = []
            for job_id in entry.job_ids:
                job = self.scheduler.get_job(job_id)
                if job is None:
                    continue
                # Jobs added before start() have no next_run_time yet; report the planned instant
                next_run = getattr(job, "next_run_time", None) or entry.planned_at(job_id)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run_time": next_run.isoformat() if next_run else None,
                    }
                )
            result.append(
                {
                    "subscription_id": subscription_id,
                    "timezone": entry.plan.timezone,
                    "launch_at": entry.plan.launch_at.isoformat() if entry.plan.launch_at else None,
                    "daily_times": [o.time_of_day for o in entry.plan.daily],
                    "jobs": jobs,
                }
            )
        return result

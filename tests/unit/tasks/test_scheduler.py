"""Unit tests for JobScheduler arming, firing and pruning."""

import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from countdown_push.core.notification.dispatch import DispatchOutcome
from countdown_push.core.notification.events import NotificationKind
from countdown_push.repos.subscription import SubscriptionStore
from countdown_push.tasks.scheduler import JobScheduler, daily_job_id, launch_job_id
from tests.conftest import NOW, FakeDispatcher, FrozenClock
from tests.factories.subscription import SubscriptionRecordFactory


class TestScheduleArming:
    def test_arms_launch_and_daily_jobs(self, store: SubscriptionStore, job_scheduler: JobScheduler) -> None:
        record = store.add(
            SubscriptionRecordFactory.build(launch_time=NOW + timedelta(days=3), daily_times=["09:00", "18:00"])
        )

        result = job_scheduler.schedule(record.id)

        assert result is not None
        assert job_scheduler.armed_job_ids(record.id) == [
            launch_job_id(record.id),
            daily_job_id(record.id, "09:00"),
            daily_job_id(record.id, "18:00"),
        ]

    def test_schedule_twice_never_duplicates(self, store: SubscriptionStore, job_scheduler: JobScheduler) -> None:
        record = store.add(
            SubscriptionRecordFactory.build(launch_time=NOW + timedelta(hours=1), daily_times=["07:00", "19:30"])
        )

        job_scheduler.schedule(record.id)
        job_scheduler.schedule(record.id)

        jobs = [job for job in job_scheduler.scheduler.get_jobs() if job.id.startswith(record.id)]
        assert len(jobs) == 3
        assert sum(1 for job in jobs if job.id.endswith(":launch")) == 1

    def test_unknown_id_arms_nothing(self, job_scheduler: JobScheduler) -> None:
        assert job_scheduler.schedule("missing") is None
        assert job_scheduler.scheduler.get_jobs() == []

    def test_past_launch_arms_nothing(self, store: SubscriptionStore, job_scheduler: JobScheduler) -> None:
        record = store.add(SubscriptionRecordFactory.build(launch_time=NOW - timedelta(days=1), daily_times=["09:00"]))

        job_scheduler.schedule(record.id)

        assert job_scheduler.armed_job_ids(record.id) == []
        assert record.id in store

    def test_replan_picks_up_record_changes(self, store: SubscriptionStore, job_scheduler: JobScheduler) -> None:
        record = store.add(SubscriptionRecordFactory.build(daily_times=["09:00", "10:00"]))
        job_scheduler.schedule(record.id)

        store.add(record.model_copy(update={"daily_times": ["21:00"]}))
        job_scheduler.schedule(record.id)

        assert job_scheduler.armed_job_ids(record.id) == [daily_job_id(record.id, "21:00")]
        assert job_scheduler.scheduler.get_job(daily_job_id(record.id, "09:00")) is None

    def test_unschedule_leaves_store_alone(self, store: SubscriptionStore, job_scheduler: JobScheduler) -> None:
        record = store.add(SubscriptionRecordFactory.build(daily_times=["09:00", "18:00"]))
        job_scheduler.schedule(record.id)

        assert job_scheduler.unschedule(record.id) is True

        assert job_scheduler.scheduler.get_jobs() == []
        assert record.id in store
        # Idempotent
        assert job_scheduler.unschedule(record.id) is False

    def test_status_lists_entries(self, store: SubscriptionStore, job_scheduler: JobScheduler) -> None:
        record = store.add(SubscriptionRecordFactory.build(daily_times=["09:00"], timezone="Africa/Nairobi"))
        job_scheduler.schedule(record.id)

        (entry,) = job_scheduler.status()

        assert entry["subscription_id"] == record.id
        assert entry["timezone"] == "Africa/Nairobi"
        assert entry["daily_times"] == ["09:00"]
        assert entry["jobs"] == [
            {
                "id": daily_job_id(record.id, "09:00"),
                "name": f"daily reminder 09:00 ({record.id})",
                # Not started yet, so this is the planned instant
                "next_run_time": "2026-10-17T09:00:00+03:00",
            }
        ]

    def test_triggers_evaluate_in_subscription_zone(
        self, store: SubscriptionStore, job_scheduler: JobScheduler
    ) -> None:
        launch = datetime(2026, 12, 13, 0, 0, tzinfo=ZoneInfo("Africa/Nairobi"))
        record = store.add(
            SubscriptionRecordFactory.build(launch_time=launch, daily_times=["09:00"], timezone="Africa/Nairobi")
        )

        schedule_plan = job_scheduler.schedule(record.id)

        (occurrence,) = schedule_plan.daily
        daily_job = job_scheduler.scheduler.get_job(daily_job_id(record.id, "09:00"))
        launch_job = job_scheduler.scheduler.get_job(launch_job_id(record.id))
        # 12:00 UTC is 15:00 in Nairobi, so 09:00 local is tomorrow at 06:00 UTC
        assert occurrence.next_at == datetime(2026, 10, 17, 6, 0, tzinfo=timezone.utc)
        assert daily_job.trigger.get_next_fire_time(None, NOW) == occurrence.next_at
        assert launch_job.trigger.get_next_fire_time(None, NOW) == datetime(2026, 12, 12, 21, 0, tzinfo=timezone.utc)


class TestFiring:
    async def test_daily_fire_delivers_and_stays_armed(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        record = store.add(SubscriptionRecordFactory.build(daily_times=["09:00"]))
        job_scheduler.schedule(record.id)

        result = await job_scheduler._fire_daily(record.id, "09:00")

        assert result is not None and result.delivered
        assert len(dispatcher.calls) == 1
        assert store.get(record.id).last_sent_at == NOW
        assert job_scheduler.armed_job_ids(record.id) == [daily_job_id(record.id, "09:00")]

    async def test_retryable_failure_changes_nothing(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        dispatcher.outcome = DispatchOutcome.RETRYABLE
        record = store.add(SubscriptionRecordFactory.build(daily_times=["09:00"]))
        job_scheduler.schedule(record.id)

        await job_scheduler._fire_daily(record.id, "09:00")

        assert store.get(record.id).last_sent_at is None
        assert job_scheduler.armed_job_ids(record.id) == [daily_job_id(record.id, "09:00")]

    async def test_gone_on_daily_fire_prunes_everything(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        dispatcher.outcome = DispatchOutcome.PERMANENTLY_GONE
        record = store.add(
            SubscriptionRecordFactory.build(launch_time=NOW + timedelta(days=2), daily_times=["09:00", "18:00"])
        )
        job_scheduler.schedule(record.id)

        delivery = await job_scheduler._fire_daily(record.id, "09:00")

        assert delivery is not None and delivery.pruned
        assert record.id not in store
        assert job_scheduler.get_entry(record.id) is None
        assert job_scheduler.scheduler.get_jobs() == []

    async def test_gone_on_launch_deletes_record_and_daily_jobs(
        self, store: SubscriptionStore, store_path, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        dispatcher.outcome = DispatchOutcome.PERMANENTLY_GONE
        record = store.add(
            SubscriptionRecordFactory.build(
                launch_time=NOW + timedelta(seconds=10), daily_times=["09:00"], timezone="UTC"
            )
        )
        job_scheduler.schedule(record.id)
        # APScheduler drops a fired one-shot job on its own
        job_scheduler.scheduler.remove_job(launch_job_id(record.id))

        result = await job_scheduler._fire_launch(record.id)

        assert result is not None and result.gone
        assert record.id not in store
        assert record.id not in SubscriptionStore(store_path).load()
        assert job_scheduler.scheduler.get_job(daily_job_id(record.id, "09:00")) is None

        # A stray fire afterwards sends nothing
        await job_scheduler._fire_daily(record.id, "09:00")
        assert len(dispatcher.calls) == 1

    async def test_launch_payload_is_the_launch_alert(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        record = store.add(SubscriptionRecordFactory.build(launch_time=NOW + timedelta(seconds=10)))
        job_scheduler.schedule(record.id)

        await job_scheduler._fire_launch(record.id)

        (_, payload) = dispatcher.calls[0]
        assert payload["customData"]["kind"] == NotificationKind.LAUNCH
        assert payload["requireInteraction"] is True
        # The event has happened, so its daily reminders are retired too
        assert job_scheduler.get_entry(record.id) is None
        assert job_scheduler.scheduler.get_jobs() == []

    async def test_replan_during_launch_send_keeps_new_entry(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        record = store.add(
            SubscriptionRecordFactory.build(launch_time=NOW + timedelta(seconds=10), daily_times=["09:00"])
        )
        job_scheduler.schedule(record.id)
        job_scheduler.scheduler.remove_job(launch_job_id(record.id))
        release = asyncio.Event()
        send = dispatcher.send

        async def held_send(descriptor, payload):
            await release.wait()
            return await send(descriptor, payload)

        dispatcher.send = held_send
        firing = asyncio.create_task(job_scheduler._fire_launch(record.id))
        await asyncio.sleep(0)

        # The same endpoint re-subscribes with a later launch while the alert is out
        store.add(record.model_copy(update={"launch_time": NOW + timedelta(days=30)}))
        job_scheduler.schedule(record.id)
        release.set()
        delivery = await firing

        assert delivery is not None and delivery.delivered
        assert store.get(record.id).launch_time == NOW + timedelta(days=30)
        assert job_scheduler.armed_job_ids(record.id) == [
            launch_job_id(record.id),
            daily_job_id(record.id, "09:00"),
        ]

    async def test_daily_reminders_stop_after_launch(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher, clock: FrozenClock
    ) -> None:
        record = store.add(
            SubscriptionRecordFactory.build(launch_time=NOW + timedelta(days=1), daily_times=["09:00", "18:00"])
        )
        job_scheduler.schedule(record.id)
        # The launch alert was missed (e.g. the process was down), then a daily trigger fires
        job_scheduler.scheduler.remove_job(launch_job_id(record.id))
        clock.advance(days=30)

        assert await job_scheduler._fire_daily(record.id, "09:00") is None

        assert dispatcher.calls == []
        assert job_scheduler.scheduler.get_jobs() == []
        assert record.id in store

        # Replanning after the event arms nothing either
        assert job_scheduler.schedule(record.id).is_empty

    async def test_fire_for_vanished_record_disarms(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        record = store.add(SubscriptionRecordFactory.build(daily_times=["09:00"]))
        job_scheduler.schedule(record.id)
        store.delete(record.id)

        assert await job_scheduler._fire_daily(record.id, "09:00") is None

        assert dispatcher.calls == []
        assert job_scheduler.scheduler.get_jobs() == []

    async def test_gone_for_one_recipient_leaves_others(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        gone = store.add(SubscriptionRecordFactory.build(daily_times=["09:00"]))
        alive = store.add(SubscriptionRecordFactory.build(daily_times=["09:00"]))
        dispatcher.outcomes[gone.endpoint] = DispatchOutcome.PERMANENTLY_GONE
        job_scheduler.schedule(gone.id)
        job_scheduler.schedule(alive.id)

        await asyncio.gather(
            job_scheduler._fire_daily(gone.id, "09:00"),
            job_scheduler._fire_daily(alive.id, "09:00"),
        )

        assert gone.id not in store
        assert alive.id in store
        assert job_scheduler.armed_job_ids(alive.id) == [daily_job_id(alive.id, "09:00")]

    async def test_unsubscribe_during_send_is_not_a_prune(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, dispatcher: FakeDispatcher
    ) -> None:
        dispatcher.outcome = DispatchOutcome.PERMANENTLY_GONE
        record = store.add(SubscriptionRecordFactory.build(daily_times=["09:00"]))
        job_scheduler.schedule(record.id)
        send = dispatcher.send

        async def send_then_unsubscribe(descriptor, payload):
            job_scheduler.unschedule(record.id)
            store.delete(record.id)
            return await send(descriptor, payload)

        dispatcher.send = send_then_unsubscribe

        delivery = await job_scheduler.deliver(record, NotificationKind.REMINDER)

        assert delivery.gone
        assert delivery.pruned is False

    async def test_countdown_payload_counts_days_in_record_zone(
        self, store: SubscriptionStore, job_scheduler: JobScheduler, clock: FrozenClock
    ) -> None:
        record = store.add(
            SubscriptionRecordFactory.build(launch_time=datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc))
        )

        payload = job_scheduler.build_payload(record, NotificationKind.REMINDER)
        assert payload["customData"]["daysRemaining"] == 3
        assert payload["title"] == "📅 3 Days Until Helalink"

        clock.advance(days=2)
        payload = job_scheduler.build_payload(record, NotificationKind.REMINDER)
        assert payload["title"] == "⏰ Tomorrow: Helalink!"


class TestLiveScheduler:
    """Runs the real AsyncIOScheduler against the wall clock."""

    async def test_launch_fires_once_then_disarms(self, tmp_path) -> None:
        store = SubscriptionStore(tmp_path / "subscriptions.json")
        dispatcher = FakeDispatcher(DispatchOutcome.PERMANENTLY_GONE)
        scheduler = JobScheduler(store, dispatcher)
        record = store.add(
            SubscriptionRecordFactory.build(
                launch_time=datetime.now(timezone.utc) + timedelta(milliseconds=300),
                daily_times=["09:00"],
            )
        )
        scheduler.schedule(record.id)
        scheduler.start()
        try:
            for _ in range(50):
                if dispatcher.calls:
                    break
                await asyncio.sleep(0.1)
            await asyncio.sleep(0.1)
        finally:
            scheduler.shutdown()

        assert len(dispatcher.calls) == 1
        assert record.id not in store
        assert scheduler.scheduler.get_jobs() == []


@pytest.mark.parametrize("outcome", [DispatchOutcome.DELIVERED, DispatchOutcome.RETRYABLE])
async def test_launch_never_rearms(
    outcome: DispatchOutcome,
    store: SubscriptionStore,
    job_scheduler: JobScheduler,
    dispatcher: FakeDispatcher,
) -> None:
    dispatcher.outcome = outcome
    record = store.add(SubscriptionRecordFactory.build(launch_time=NOW + timedelta(minutes=5), daily_times=[]))
    job_scheduler.schedule(record.id)
    job_scheduler.scheduler.remove_job(launch_job_id(record.id))

    await job_scheduler._fire_launch(record.id)

    assert record.id in store
    assert job_scheduler.armed_job_ids(record.id) == []

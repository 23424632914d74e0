"""Scheduler supervisor: boot-time recovery and the subscription lifecycle."""

import asyncio
import logging
from dataclasses import dataclass

from countdown_push.common.exceptions import SubscriptionNotFoundError
from countdown_push.core.notification.events import NotificationKind
from countdown_push.models.subscription import SubscriptionCreate, SubscriptionRecord
from countdown_push.repos.subscription import SubscriptionStore
from countdown_push.tasks.scheduler import JobScheduler

logger = logging.getLogger(__name__)


@dataclass
class DispatchSummary:
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    pruned: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "attempted": self.attempted,
            "delivered": self.delivered,
            "failed": self.failed,
            "pruned": self.pruned,
        }


class SchedulerSupervisor:
    """Entry point used by the request layer.

    All store mutations go through here or through the job scheduler's fire
    handlers, both of which run on the same event loop.
    """

    def __init__(self, store: SubscriptionStore, scheduler: JobScheduler):
        self.store = store
        self.scheduler = scheduler

    def bootstrap(self) -> int:
        """Load persisted subscriptions and arm triggers for each one.

        A record that fails to schedule is logged and skipped; it stays in the
        store. Returns the number of records scheduled.
        """
        records = self.store.load()
        scheduled = 0
        for subscription_id in records:
            try:
                self.scheduler.schedule(subscription_id)
                scheduled += 1
            except Exception:
                logger.exception(f"Failed to schedule subscription {subscription_id}")

        logger.info(f"Recovered {scheduled}/{len(records)} subscription schedule(s)")
        return scheduled

    def add_subscription(self, create: SubscriptionCreate) -> SubscriptionRecord:
        """Store a subscription and arm its triggers.

        Re-subscribing an endpoint that is already stored replaces that
        record's schedule in place and keeps its id.
        """
        record = SubscriptionRecord.from_create(create, self.scheduler.defaults)

        existing = self.store.find_by_endpoint(record.endpoint)
        if existing:
            current = existing[0]
            record = record.model_copy(
                update={
                    "id": current.id,
                    "created_at": current.created_at,
                    "last_sent_at": current.last_sent_at,
                }
            )
            logger.info(f"Subscription already exists, updating schedule: {current.id}")
        else:
            logger.info(f"New subscription stored: {record.id}")

        self.store.add(record)
        self.scheduler.schedule(record.id)
        return record

    def remove_subscription(self, subscription_id: str) -> bool:
        """Disarm and delete *subscription_id*. Unknown ids are a no-op."""
        self.scheduler.unschedule(subscription_id)
        removed = self.store.delete(subscription_id)
        if removed is not None:
            logger.info(f"Unsubscribed: {subscription_id}")
        return removed is not None

    def remove_by_endpoint(self, endpoint: str) -> int:
        removed = 0
        for record in self.store.find_by_endpoint(endpoint):
            if self.remove_subscription(record.id):
                removed += 1
        return removed

    async def dispatch_now(self, subscription_id: str | None = None) -> DispatchSummary:
        """Send an immediate notification to one subscription, or to all of them.

        Goes through the same delivery path as scheduled fires, so gone
        endpoints are pruned here too. Schedules are not touched otherwise.
        """
        if subscription_id is not None:
            record = self.store.get(subscription_id)
            if record is None:
                raise SubscriptionNotFoundError(subscription_id)
            records = [record]
        else:
            records = self.store.all()

        summary = DispatchSummary(attempted=len(records))
        if not records:
            logger.info("No subscriptions to send to.")
            return summary

        logger.info(f"Sending manual notification to {len(records)} subscriber(s)")
        deliveries = await asyncio.gather(
            *(self.scheduler.deliver(record, NotificationKind.MANUAL) for record in records)
        )
        for delivery in deliveries:
            if delivery.delivered:
                summary.delivered += 1
            else:
                summary.failed += 1
            if delivery.pruned:
                summary.pruned += 1

        if summary.pruned:
            logger.info(f"Pruned {summary.pruned} expired subscription(s).")
        return summary

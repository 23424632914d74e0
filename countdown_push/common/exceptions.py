"""Domain exceptions raised by the scheduling core."""


class CountdownPushError(Exception):
    """Base class for errors raised by countdown-push."""


class SubscriptionNotFoundError(CountdownPushError):
    """Raised when an operation targets a subscription id that is not stored."""

    def __init__(self, subscription_id: str) -> None:
        super().__init__(f"Subscription {subscription_id} not found")
        self.subscription_id = subscription_id


class VapidKeysMissingError(CountdownPushError):
    """Raised at startup when no VAPID key pair is configured."""

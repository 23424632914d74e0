from .subscription import SubscriptionStore

__all__ = ["SubscriptionStore"]

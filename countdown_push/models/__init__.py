from .subscription import EndpointDescriptor, EndpointKeys, SubscriptionCreate, SubscriptionRecord

__all__ = ["EndpointDescriptor", "EndpointKeys", "SubscriptionCreate", "SubscriptionRecord"]

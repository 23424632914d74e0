from .dispatch import DispatchClient, DispatchOutcome, DispatchResult
from .events import Countdown, NotificationKind, build_countdown_payload, get_countdown
from .vapid import ensure_vapid_keys, generate_vapid_keys, send_push

__all__ = [
    "Countdown",
    "DispatchClient",
    "DispatchOutcome",
    "DispatchResult",
    "NotificationKind",
    "build_countdown_payload",
    "ensure_vapid_keys",
    "generate_vapid_keys",
    "get_countdown",
    "send_push",
]

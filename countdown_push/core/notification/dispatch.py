"""Dispatch client: one push to one endpoint, with a classified outcome."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import Any

from pywebpush import WebPushException

from countdown_push.configs.push import PushConfig
from countdown_push.core.notification.vapid import send_push
from countdown_push.models.subscription import EndpointDescriptor

logger = logging.getLogger(__name__)

# Push services answer 404/410 once a subscription has been revoked or expired
GONE_STATUS_CODES = frozenset({404, 410})

PushSender = Callable[[dict[str, Any], dict[str, Any]], bool]


class DispatchOutcome(StrEnum):
    DELIVERED = "delivered"
    RETRYABLE = "retryable"
    PERMANENTLY_GONE = "permanently_gone"


@dataclass(frozen=True, slots=True)
class DispatchResult:
    outcome: DispatchOutcome
    status_code: int | None = None
    detail: str = ""

    @property
    def delivered(self) -> bool:
        return self.outcome == DispatchOutcome.DELIVERED

    @property
    def gone(self) -> bool:
        return self.outcome == DispatchOutcome.PERMANENTLY_GONE


def _short(endpoint: str) -> str:
    return endpoint[:60]


class DispatchClient:
    """Sends Web Push messages without touching subscription state.

    The blocking pywebpush call runs in a worker thread, so a slow or hung
    push service only ever delays its own recipient.
    """

    def __init__(self, push: PushConfig, sender: PushSender | None = None):
        self.push = push
        self._sender: PushSender = sender or partial(send_push, push=push)

    async def send(self, descriptor: EndpointDescriptor, payload: dict[str, Any]) -> DispatchResult:
        endpoint = descriptor.endpoint
        try:
            sent = await asyncio.to_thread(self._sender, descriptor.to_subscription_info(), dict(payload))
        except WebPushException as e:
            response = getattr(e, "response", None)
            status_code = getattr(response, "status_code", None)
            if status_code in GONE_STATUS_CODES:
                logger.info("Push subscription gone (%s): %s", status_code, _short(endpoint))
                return DispatchResult(DispatchOutcome.PERMANENTLY_GONE, status_code, str(e))
            logger.warning("Web push failed for %s: %s", _short(endpoint), e)
            return DispatchResult(DispatchOutcome.RETRYABLE, status_code, str(e))
        except Exception as e:
            logger.warning("Unexpected error sending web push to %s: %s", _short(endpoint), e)
            return DispatchResult(DispatchOutcome.RETRYABLE, None, f"{type(e).__name__}: {e}")

        if not sent:
            return DispatchResult(DispatchOutcome.RETRYABLE, None, "VAPID keys not configured")

        logger.debug("Web push delivered to %s", _short(endpoint))
        return DispatchResult(DispatchOutcome.DELIVERED)

"""VAPID key validation, generation and Web Push sending via pywebpush."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid
from pywebpush import webpush

from countdown_push.configs.push import PushConfig

logger = logging.getLogger(__name__)


def ensure_vapid_keys(push: PushConfig) -> bool:
    """Validate that the VAPID key pair is configured.

    Returns True when a key pair is available.
    """
    if push.VapidPublicKey and push.VapidPrivateKey:
        logger.info("VAPID keys ready (public=%s…)", push.VapidPublicKey[:20])
        return True

    logger.warning("VAPID keys not configured, Web Push disabled")
    return False


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_vapid_keys() -> dict[str, str]:
    """Generate a fresh key pair in the formats browsers and pywebpush expect.

    ``public_key`` is the 65-byte uncompressed EC point (the browser's
    ``applicationServerKey``), ``private_key`` the raw 32-byte scalar; both
    URL-safe base64 without padding.
    """
    vapid = Vapid()
    vapid.generate_keys()

    public_bytes = vapid.public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    private_value = vapid.private_key.private_numbers().private_value
    return {
        "public_key": _b64url(public_bytes),
        "private_key": _b64url(private_value.to_bytes(32, "big")),
    }


def send_push(subscription_info: dict[str, Any], payload: dict[str, Any], push: PushConfig) -> bool:
    """Send a single Web Push message.

    *subscription_info* must contain ``endpoint``, ``keys.p256dh``, ``keys.auth``.
    Returns True on success, False when no key pair is configured, and raises
    :class:`WebPushException` when the push service rejects the message so
    callers can inspect the response code (e.g. 410 Gone).
    """
    if not push.VapidPrivateKey or not push.VapidPublicKey:
        logger.debug("VAPID keys not configured, skipping push")
        return False

    webpush(
        subscription_info=subscription_info,
        data=json.dumps(payload, ensure_ascii=False),
        vapid_private_key=push.VapidPrivateKey,
        # pywebpush adds aud/exp to the claims dict, so never share it
        vapid_claims={"sub": push.VapidSubject},
        ttl=push.Ttl,
        timeout=push.RequestTimeout,
    )
    return True

from pydantic import BaseModel, Field


class PushConfig(BaseModel):
    """Web Push (VAPID) configuration.

    The key pair has no default: the service refuses to boot without one.
    Generate a pair with ``countdown-push-vapid`` and export it via
    ``COUNTDOWN_Push_VapidPrivateKey`` / ``COUNTDOWN_Push_VapidPublicKey``.
    """

    VapidPrivateKey: str = Field(
        default="",
        description="VAPID private key (URL-safe base64, 32-byte raw scalar)",
    )
    VapidPublicKey: str = Field(
        default="",
        description="VAPID public key (URL-safe base64, 65-byte uncompressed EC point)",
    )
    VapidSubject: str = Field(
        default="mailto:admin@example.com",
        description="VAPID contact claim (mailto: or https: URL)",
    )
    Ttl: int = Field(default=86400, description="Seconds the push service may hold an undelivered message")
    RequestTimeout: float = Field(default=10.0, description="Transport timeout for a single push request (seconds)")
    Icon: str = Field(default="/countdown-icon.png", description="Notification icon for reminders")
    LaunchIcon: str = Field(default="/celebration-icon.png", description="Notification icon for the launch alert")
    Url: str = Field(default="/", description="URL opened when the notification is clicked")

"""Web Push subscription records."""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from countdown_push.configs.schedule import ScheduleConfig
from countdown_push.utils.time import is_valid_timezone, parse_time_of_day, resolve_timezone


DEFAULT_TIMEZONE = ScheduleConfig.model_fields["DefaultTimezone"].default


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EndpointKeys(BaseModel):
    p256dh: str = Field(min_length=1, description="P-256 ECDH public key")
    auth: str = Field(min_length=1, description="Authentication secret")


class EndpointDescriptor(BaseModel):
    """Browser ``PushSubscription`` JSON, treated as an opaque delivery handle."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    endpoint: str = Field(min_length=1, description="Browser Push Service URL")
    keys: EndpointKeys
    expiration_time: float | None = Field(default=None, alias="expirationTime")

    def to_subscription_info(self) -> dict[str, Any]:
        """Shape expected by ``pywebpush.webpush``."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.keys.p256dh, "auth": self.keys.auth},
        }


class SubscriptionRecord(BaseModel):
    """One recipient and the schedule of notifications they receive.

    ``daily_times`` items are kept exactly as stored, strings or not: a
    hand-edited store may contain entries the planner cannot parse, and
    those must survive load/save. The planner skips them one by one.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    endpoint_descriptor: EndpointDescriptor
    launch_time: datetime | None = None
    daily_times: list[Any] = Field(default_factory=list)
    timezone: str = "UTC"
    created_at: datetime = Field(default_factory=_utcnow)
    last_sent_at: datetime | None = None

    @model_validator(mode="after")
    def _localize_launch_time(self, info: ValidationInfo) -> "SubscriptionRecord":
        # Naive launch times are civil time in the recipient's zone, with the same fallback the planner uses
        if self.launch_time is not None and self.launch_time.tzinfo is None:
            default = (info.context or {}).get("default_timezone", DEFAULT_TIMEZONE)
            self.launch_time = self.launch_time.replace(tzinfo=resolve_timezone(self.timezone, default))
        return self

    @classmethod
    def from_create(cls, create: "SubscriptionCreate", defaults: ScheduleConfig) -> "SubscriptionRecord":
        """Build a record from a subscribe request, filling omitted fields from *defaults*."""
        if create.launch_time is not None:
            launch_time: datetime | None = create.launch_time
        elif defaults.LaunchTime:
            launch_time = datetime.fromisoformat(defaults.LaunchTime)
        else:
            launch_time = None

        return cls.model_validate(
            {
                "endpoint_descriptor": create.endpoint_descriptor,
                "launch_time": launch_time,
                "daily_times": list(create.daily_times if create.daily_times is not None else defaults.DailyTimes),
                "timezone": create.timezone or defaults.DefaultTimezone,
            },
            context={"default_timezone": defaults.DefaultTimezone},
        )

    @property
    def endpoint(self) -> str:
        return self.endpoint_descriptor.endpoint

    @property
    def is_inert(self) -> bool:
        return self.launch_time is None and not self.daily_times


class SubscriptionCreate(BaseModel):
    """Validated subscribe request.

    ``None`` means "not supplied" and is replaced by the configured default;
    an explicit empty ``daily_times`` list opts out of daily reminders.
    """

    model_config = ConfigDict(populate_by_name=True)

    endpoint_descriptor: EndpointDescriptor = Field(alias="subscription")
    launch_time: datetime | None = None
    daily_times: list[str] | None = None
    timezone: str | None = None

    @field_validator("daily_times")
    @classmethod
    def _check_daily_times(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        for item in value:
            parse_time_of_day(item)
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f"Invalid timezone: {value}")
        return value

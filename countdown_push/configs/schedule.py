from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class ScheduleConfig(BaseModel):
    """Defaults applied to subscriptions that omit their own schedule."""

    EventName: str = Field(default="Helalink", description="Name of the event shown in notifications")
    LaunchTime: str = Field(
        default="2026-12-13T00:00:00",
        description="Default launch time (ISO 8601, interpreted in DefaultTimezone when naive); empty for none",
    )
    DefaultTimezone: str = Field(default="Africa/Nairobi", description="IANA timezone for subscriptions without one")
    DailyTimes: list[str] = Field(
        default_factory=lambda: ["09:00"],
        description="Default reminder times of day (HH:MM) for subscriptions without their own",
    )
    MisfireGraceSeconds: int = Field(
        default=300,
        description="How late a trigger may still fire after the loop was busy or the process paused",
    )

    @field_validator("LaunchTime")
    @classmethod
    def _check_launch_time(cls, value: str) -> str:
        if value:
            datetime.fromisoformat(value)
        return value

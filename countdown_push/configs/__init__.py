"""Application configuration.

Every field can be overridden through the environment using the
``COUNTDOWN_`` prefix and ``_`` as the nesting delimiter, e.g.::

    COUNTDOWN_Port=8080
    COUNTDOWN_Push_VapidPublicKey=BEl...
    COUNTDOWN_Schedule_DefaultTimezone=UTC
    COUNTDOWN_Store_Path=/var/lib/countdown/subscriptions.json
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .push import PushConfig
from .schedule import ScheduleConfig
from .store import StoreConfig


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COUNTDOWN_",
        env_nested_delimiter="_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    Host: str = Field(default="127.0.0.1", description="Bind host")
    Port: int = Field(default=3000, description="Bind port")
    Debug: bool = Field(default=False, description="Enable auto-reload and verbose logging")

    Push: PushConfig = Field(default_factory=lambda: PushConfig(), description="Web Push configuration")
    Schedule: ScheduleConfig = Field(default_factory=lambda: ScheduleConfig(), description="Schedule defaults")
    Store: StoreConfig = Field(default_factory=lambda: StoreConfig(), description="Subscription store")


configs = AppConfig()

__all__ = ["AppConfig", "configs"]

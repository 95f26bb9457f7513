"""Application configuration settings.

This module defines the ``Settings`` class using ``pydantic-settings`` to
load configuration from environment variables. It centralises all runtime
configuration for the live engine and the room status service, such as the
clock cadence, the default window length and the upstream institute API.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration values loaded from environment variables.

    Environment variable names map to fields by alias. Every value has a
    default so the engine can be imported and tested without any environment.
    """

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    # Live clock
    tick_seconds: int = Field(
        default=30,
        alias="TICK_SECONDS",
        description="Interval (in seconds) between clock ticks that re-classify windows.",
    )

    # Classification behaviour
    default_window_minutes: int = Field(
        default=90,
        alias="DEFAULT_WINDOW_MINUTES",
        description="Duration assumed for a window that has no end time.",
    )
    warn_threshold_minutes: int = Field(
        default=30,
        alias="WARN_THRESHOLD_MINUTES",
        description="Minutes before a free room's next booking when a warning is raised.",
    )

    # Grading
    pass_ratio: float = Field(
        default=0.5,
        alias="PASS_RATIO",
        description="Fraction of the maximum marks needed to count a score as a pass.",
    )

    # Upstream institute API
    institute_api_url: str = Field(
        default="http://localhost:5000",
        alias="INSTITUTE_API_URL",
        description="Base URL of the institute backend serving timetables and bulk updates.",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        alias="REQUEST_TIMEOUT_SECONDS",
        description="Timeout applied to every request made to the institute API.",
    )

    # Room status service
    refresh_seconds: int = Field(
        default=60,
        alias="REFRESH_SECONDS",
        description="How long fetched timetables are reused before asking the institute API again.",
    )
    cache_max_days: int = Field(
        default=7,
        alias="CACHE_MAX_DAYS",
        description="How many days of timetables the room status service keeps cached.",
    )
    enable_cors: bool = Field(
        default=False,
        alias="ENABLE_CORS",
        description="Allow cross-origin GET requests, for wallboards served from another host.",
    )
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )


# Instantiate settings at module import time. This allows other modules to
# import ``settings`` directly without repeatedly reading environment variables.
settings = Settings()

"""Per-call snapshot of the restaurant being booked."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from reservations.config import Settings, runtime_settings


class EscalationThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    large_group: int = 10
    event: int = 45


class TimeDefaults(BaseModel):
    """Times assumed when the caller only hints at a part of the day."""

    model_config = ConfigDict(frozen=True)

    lunch: str = "13:00:00"
    evening: str = "20:00:00"
    late: str = "22:00:00"
    bare_hour_is_evening: bool = True


class RestaurantContext(BaseModel):
    """Immutable for the lifetime of a call; fetched once and cached."""

    model_config = ConfigDict(frozen=True)

    name: str
    assistant_name: str = "Giulia"
    contact_email: str = ""
    owner_phone: str = ""
    timezone: str = "Europe/Rome"
    default_language: str = "it"
    thresholds: EscalationThresholds = EscalationThresholds()
    time_defaults: TimeDefaults = TimeDefaults()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RestaurantContext":
        """Build the snapshot from settings plus any runtime overrides."""
        return cls(
            name=settings.restaurant_name,
            assistant_name=settings.assistant_name,
            contact_email=settings.restaurant_email,
            owner_phone=settings.owner_phone_number,
            timezone=settings.calendar_timezone,
            default_language=settings.default_language,
            thresholds=EscalationThresholds(
                large_group=settings.large_group_threshold,
                event=settings.event_threshold,
            ),
            time_defaults=TimeDefaults(
                lunch=runtime_settings.get("lunch_time", settings.lunch_time),
                evening=runtime_settings.get("evening_time", settings.evening_time),
                late=runtime_settings.get("late_time", settings.late_time),
                bare_hour_is_evening=bool(
                    runtime_settings.get(
                        "bare_hour_is_evening", settings.bare_hour_is_evening
                    )
                ),
            ),
        )

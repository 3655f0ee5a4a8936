"""
Per-building booking rules, resolved from Building.settings with defaults.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import get_settings
from app.core.exceptions import ValidationFailed
from app.core.timeutils import Interval
from app.models.building import Building

settings = get_settings()

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class BookingRules:
    max_concurrent_bookings: int
    check_in_window_minutes: int
    min_duration_minutes: Optional[int] = None
    max_duration_minutes: Optional[int] = None
    max_advance_days: Optional[int] = None
    business_hours: Optional[dict] = None


def resolve_booking_rules(building: Building) -> BookingRules:
    building_settings = building.settings or {}
    rules = building_settings.get("booking_rules") or {}
    return BookingRules(
        max_concurrent_bookings=rules.get(
            "max_concurrent_bookings", settings.DEFAULT_MAX_CONCURRENT_BOOKINGS
        ),
        check_in_window_minutes=rules.get(
            "check_in_window_minutes", settings.DEFAULT_CHECK_IN_WINDOW_MINUTES
        ),
        min_duration_minutes=rules.get("min_duration_minutes"),
        max_duration_minutes=rules.get("max_duration_minutes"),
        max_advance_days=rules.get("max_advance_days"),
        business_hours=building_settings.get("business_hours"),
    )


def _clock_on(day_of: datetime, value) -> datetime:
    """`value` ("HH:MM") as an instant on the same day as `day_of`."""
    try:
        hours, minutes = str(value).split(":")
        return day_of.replace(hour=int(hours), minute=int(minutes), second=0, microsecond=0)
    except ValueError:
        raise ValidationFailed(f"Invalid business hours time {value!r}, expected HH:MM")


def _check_business_hours(interval: Interval, business_hours: dict) -> None:
    # Hours are configured as wall-clock times and compared in UTC
    day = DAY_NAMES[interval.start.weekday()]
    config = business_hours.get(day)
    if not config or not config.get("enabled", False):
        raise ValidationFailed(f"Reservations are not allowed on {day}")

    # A missing bound leaves that side of the day open
    start, end = config.get("start"), config.get("end")
    if start is not None and interval.start < _clock_on(interval.start, start):
        raise ValidationFailed(f"Reservations on {day} cannot start before {start}")
    if end is not None and interval.end > _clock_on(interval.start, end):
        raise ValidationFailed(f"Reservations on {day} must end by {end}")


def check_booking_rules(rules: BookingRules, interval: Interval, now: datetime) -> None:
    """Optional building rules; each one applies only when configured."""
    if rules.min_duration_minutes is not None and interval.minutes < rules.min_duration_minutes:
        raise ValidationFailed(f"Minimum duration is {rules.min_duration_minutes} minutes")

    if rules.max_duration_minutes is not None and interval.minutes > rules.max_duration_minutes:
        raise ValidationFailed(f"Maximum duration is {rules.max_duration_minutes} minutes")

    if rules.max_advance_days is not None and interval.start > now + timedelta(days=rules.max_advance_days):
        raise ValidationFailed(
            f"Reservations can be made at most {rules.max_advance_days} days in advance"
        )

    if rules.business_hours:
        _check_business_hours(interval, rules.business_hours)

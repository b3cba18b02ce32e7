"""Status and follow-up derivation for a submitted visit.

Customer visits and follow-ups carry an interest selection that decides the
record's status and whether a next visit is scheduled. Every other activity
type is complete as soon as it is logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time

from app.errors import ValidationError
from app.models import ActivityStatus, ActivityType, CLOSED_STATUSES
from app.services.reporting_day import same_day

INTERESTED = "Interested"
NOT_INTERESTED = "Not Interested"
CONVERTED = "Converted"

INTEREST_ALIASES: dict[str, str] = {
    "Interested": INTERESTED,
    "Not Interested": NOT_INTERESTED,
    "Not-Interested": NOT_INTERESTED,
    "Converted": CONVERTED,
}

INTEREST_STATUS: dict[str, ActivityStatus] = {
    INTERESTED: ActivityStatus.IN_PROGRESS,
    NOT_INTERESTED: ActivityStatus.CLOSED,
    CONVERTED: ActivityStatus.CONVERTED,
}

INTEREST_DRIVEN_TYPES = frozenset({ActivityType.CUSTOMER_VISIT.value, ActivityType.FOLLOW_UP.value})


@dataclass(frozen=True, slots=True)
class DerivedStatus:
    status: ActivityStatus
    follow_up_date: date | None = None
    follow_up_time: time | None = None


def normalize_interest(value: str | None) -> str | None:
    if value is None:
        return None
    return INTEREST_ALIASES.get(value.strip())


def retain_follow_up_time(follow_up_date: date | None, follow_up_time: time | None, today: date) -> time | None:
    if follow_up_time is None or not same_day(follow_up_date, today):
        return None
    return follow_up_time


def derive_activity_status(
    activity_type: str,
    interest: str | None,
    *,
    follow_up_date: date | None,
    follow_up_time: time | None,
    today: date,
) -> DerivedStatus:
    if activity_type not in INTEREST_DRIVEN_TYPES:
        return DerivedStatus(status=ActivityStatus.COMPLETED)

    normalized = normalize_interest(interest)
    if normalized is None:
        raise ValidationError(f"invalid interest selection: {interest!r}")

    status = INTEREST_STATUS[normalized]
    if normalized != INTERESTED:
        return DerivedStatus(status=status)

    if follow_up_date is None:
        raise ValidationError("missing follow-up date")
    return DerivedStatus(
        status=status,
        follow_up_date=follow_up_date,
        follow_up_time=retain_follow_up_time(follow_up_date, follow_up_time, today),
    )


def reconcile_follow_up(
    status: ActivityStatus,
    follow_up_date: date | None,
    follow_up_time: time | None,
    today: date,
) -> tuple[date | None, time | None]:
    """Follow-up fields an edited record may keep for the given status."""
    if status in CLOSED_STATUSES:
        return None, None
    return follow_up_date, retain_follow_up_time(follow_up_date, follow_up_time, today)

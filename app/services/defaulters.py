from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ApiError
from app.models import DefaulterLog, StaffActivity, StaffProfile
from app.services.reporting_day import local_day_bounds_utc, local_today
from app.services.visibility import is_global_profile
from app.teams import is_defaulter_exempt, is_filter_set, role_priority, team_priority

logger = logging.getLogger("app.defaulters")


def find_defaulters(
    roster: Iterable[StaffProfile],
    day_activities: Iterable[StaffActivity],
) -> list[StaffProfile]:
    reported_ids = {item.user_id for item in day_activities}
    return [
        profile
        for profile in roster
        if not is_defaulter_exempt(profile.role, profile.team) and profile.id not in reported_ids
    ]


def plan_defaulter_entries(
    defaulters: Iterable[StaffProfile],
    existing_user_ids: Iterable[int],
    day: date,
) -> list[DefaulterLog]:
    already_logged = set(existing_user_ids)
    entries: list[DefaulterLog] = []
    for profile in defaulters:
        if profile.id in already_logged:
            continue
        already_logged.add(profile.id)
        entries.append(
            DefaulterLog(
                user_id=profile.id,
                name=profile.name,
                phone=profile.phone,
                team=profile.team,
                role=profile.role,
                defaulter_date=day,
            )
        )
    return entries


def sync_defaulters(db: Session, day: date, *, tz: ZoneInfo | None = None) -> list[DefaulterLog]:
    """Log every non-exempt profile with no activity on ``day``.

    Only the rows inserted by this call are returned; profiles already logged
    for ``day`` are skipped, so repeated runs are no-ops.
    """
    start_utc, end_utc = local_day_bounds_utc(day, tz)
    roster = list(db.scalars(select(StaffProfile).order_by(StaffProfile.id)).all())
    day_activities = list(
        db.scalars(
            select(StaffActivity).where(
                StaffActivity.created_at >= start_utc,
                StaffActivity.created_at < end_utc,
            )
        ).all()
    )
    existing = list(db.scalars(select(DefaulterLog).where(DefaulterLog.defaulter_date == day)).all())

    defaulters = find_defaulters(roster, day_activities)
    entries = plan_defaulter_entries(defaulters, (item.user_id for item in existing), day)
    if not entries:
        logger.info(
            "defaulter_sync_up_to_date",
            extra={"defaulter_date": day.isoformat(), "existing": len(existing)},
        )
        return []

    db.add_all(entries)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="DEFAULTER_SYNC_CONFLICT",
            message="Defaulter log changed during sync. Please retry.",
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise ApiError(status_code=503, code="DATABASE_ERROR", message="Defaulter sync failed.") from exc

    logger.info(
        "defaulter_sync_completed",
        extra={
            "defaulter_date": day.isoformat(),
            "inserted": len(entries),
            "roster_size": len(roster),
            "reported": len({item.user_id for item in day_activities}),
        },
    )
    return entries


def list_defaulter_logs(
    db: Session,
    *,
    team: str | None = None,
    day: date | None = None,
) -> list[DefaulterLog]:
    stmt = select(DefaulterLog).order_by(DefaulterLog.defaulter_date.desc(), DefaulterLog.id.asc())
    if is_filter_set(team):
        stmt = stmt.where(DefaulterLog.team == team)
    if day is not None:
        stmt = stmt.where(DefaulterLog.defaulter_date == day)
    return list(db.scalars(stmt).all())


def delete_defaulter_log(db: Session, log_id: int) -> None:
    entry = db.get(DefaulterLog, log_id)
    if entry is None:
        raise ApiError(status_code=404, code="DEFAULTER_NOT_FOUND", message="Defaulter record not found.")

    db.delete(entry)
    db.commit()


def sort_for_alert(entries: Iterable[DefaulterLog]) -> list[DefaulterLog]:
    return sorted(entries, key=lambda item: (team_priority(item.team), role_priority(item.role), item.name))


def defaulter_alerts(db: Session, viewer: StaffProfile, *, today: date | None = None) -> list[DefaulterLog]:
    """Entries for the previous reporting day that ``viewer`` should be told about."""
    yesterday = (today or local_today()) - timedelta(days=1)
    stmt = select(DefaulterLog).where(DefaulterLog.defaulter_date == yesterday)
    if not is_global_profile(viewer):
        stmt = stmt.where(DefaulterLog.user_id == viewer.id)
    return sort_for_alert(db.scalars(stmt).all())

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import ApiError
from app.models import LegacyActivity, StaffProfile
from app.schemas import AdminLegacyActivityRead, LegacyActivityCreate, LegacyActivityRead


def _owned_activity(db: Session, owner: StaffProfile, activity_id: int) -> LegacyActivity:
    activity = db.get(LegacyActivity, activity_id)
    # Other users' rows are reported as missing.
    if activity is None or activity.user_id != owner.id:
        raise ApiError(status_code=404, code="ACTIVITY_NOT_FOUND", message="Activity not found.")
    return activity


def list_own_activities(db: Session, owner: StaffProfile) -> list[LegacyActivity]:
    stmt = (
        select(LegacyActivity)
        .where(LegacyActivity.user_id == owner.id)
        .order_by(LegacyActivity.created_at.desc(), LegacyActivity.id.desc())
    )
    return list(db.scalars(stmt).all())


def create_activity(db: Session, owner: StaffProfile, payload: LegacyActivityCreate) -> LegacyActivity:
    activity = LegacyActivity(
        user_id=owner.id,
        team=payload.team,
        contact=payload.contact,
        type=payload.type,
        notes=payload.notes,
        location=payload.location or None,
        latitude=payload.latitude,
        longitude=payload.longitude,
        image_url=payload.image_url or None,
        follow_up_date=payload.follow_up_date,
        is_completed=False,
    )
    db.add(activity)
    db.commit()
    db.refresh(activity)
    return activity


def set_completed(db: Session, owner: StaffProfile, activity_id: int, is_completed: bool) -> LegacyActivity:
    activity = _owned_activity(db, owner, activity_id)
    activity.is_completed = is_completed
    db.commit()
    db.refresh(activity)
    return activity


def delete_activity(db: Session, owner: StaffProfile, activity_id: int) -> None:
    activity = _owned_activity(db, owner, activity_id)
    db.delete(activity)
    db.commit()


def list_all_with_owner(db: Session) -> list[AdminLegacyActivityRead]:
    stmt = (
        select(LegacyActivity, StaffProfile)
        .join(StaffProfile, StaffProfile.id == LegacyActivity.user_id, isouter=True)
        .order_by(LegacyActivity.created_at.desc(), LegacyActivity.id.desc())
    )
    rows: list[AdminLegacyActivityRead] = []
    for activity, owner in db.execute(stmt).all():
        base = LegacyActivityRead.model_validate(activity)
        rows.append(
            AdminLegacyActivityRead(
                **base.model_dump(),
                user_name=owner.name if owner is not None else None,
                user_phone=owner.phone if owner is not None else None,
            )
        )
    return rows

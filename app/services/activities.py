from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, time

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ApiError, ValidationError, validation_api_error
from app.models import (
    CLOSED_STATUSES,
    FOLLOW_UP_STATUSES,
    ActivityStatus,
    ActivityType,
    StaffActivity,
    StaffProfile,
)
from app.schemas import (
    DashboardStatsRead,
    DueFollowUpRead,
    StaffActivityCreate,
    StaffActivityRead,
    StaffActivityUpdate,
)
from app.services.activity_status import derive_activity_status, reconcile_follow_up
from app.services.geocoding import resolve_location
from app.services.reporting_day import local_today, same_day
from app.services.staff import ensure_valid_phone
from app.services.storage import (
    ObjectStorage,
    PhotoTooLargeError,
    PhotoUpload,
    StorageError,
    ensure_photo_sizes,
    upload_photo_batch,
)
from app.services.visibility import effective_owner, filter_visible_activities, is_global_profile, visible_profiles
from app.teams import DEFAULT_ROLE, REGIONAL_MANAGER_ROLE

logger = logging.getLogger("app.activities")


def load_profiles_by_id(db: Session) -> dict[int, StaffProfile]:
    return {item.id: item for item in db.scalars(select(StaffProfile)).all()}


def load_all_activities(db: Session) -> list[StaffActivity]:
    stmt = select(StaffActivity).order_by(StaffActivity.created_at.desc(), StaffActivity.id.desc())
    return list(db.scalars(stmt).all())


def to_activity_read(record: StaffActivity, profiles_by_id: Mapping[int, StaffProfile]) -> StaffActivityRead:
    owner = effective_owner(record, profiles_by_id)
    return StaffActivityRead(
        id=record.id,
        user_id=record.user_id,
        team=record.team,
        role=record.role,
        assigned_by=record.assigned_by,
        effective_team=owner.team,
        effective_role=owner.role,
        client_name=record.client_name,
        phone=record.phone,
        activity_type=record.activity_type,
        display_type=record.display_type,
        customer_type=record.customer_type,
        customer_activity=record.customer_activity,
        status=record.status,
        notes=record.notes,
        location=record.location,
        latitude=record.latitude,
        longitude=record.longitude,
        gallery=list(record.gallery or []),
        image_url=record.image_url,
        follow_up_date=record.follow_up_date,
        follow_up_time=record.follow_up_time,
        created_at=record.created_at,
    )


def list_visible_activities(
    db: Session,
    viewer: StaffProfile,
    *,
    team: str | None = None,
    role: str | None = None,
    day: str | None = None,
) -> tuple[list[StaffActivity], dict[int, StaffProfile]]:
    profiles_by_id = load_profiles_by_id(db)
    records = filter_visible_activities(
        viewer,
        load_all_activities(db),
        profiles_by_id,
        team=team,
        role=role,
        day=day,
    )
    return records, profiles_by_id


def _optional_phone(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    return ensure_valid_phone(raw)


def _load_pending_follow_up(db: Session, owner: StaffProfile, payload: StaffActivityCreate) -> StaffActivity | None:
    if payload.follow_up_of_id is None:
        return None
    if payload.activity_type != ActivityType.FOLLOW_UP.value:
        raise ApiError(
            status_code=422,
            code="VALIDATION_ERROR",
            message="Only Follow-up activities can close a pending record.",
        )
    prior = db.get(StaffActivity, payload.follow_up_of_id)
    if prior is None:
        raise ApiError(status_code=404, code="ACTIVITY_NOT_FOUND", message="Pending activity not found.")
    if prior.user_id != owner.id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Pending activity belongs to another user.")
    if prior.status in CLOSED_STATUSES:
        raise ApiError(
            status_code=409,
            code="FOLLOW_UP_NOT_PENDING",
            message="Pending activity is already closed.",
        )
    return prior


def submit_activity(
    db: Session,
    *,
    owner: StaffProfile,
    payload: StaffActivityCreate,
    photos: list[PhotoUpload],
    storage: ObjectStorage,
    today: date | None = None,
) -> StaffActivity:
    """Create a visit record, optionally closing the pending record it follows up.

    Validation happens before anything is written. Photos are uploaded next;
    any upload failure aborts the submission. The insert and the closure of
    the followed-up record are committed together or not at all.
    """
    current_day = today or local_today()
    try:
        derived = derive_activity_status(
            payload.activity_type,
            payload.interest,
            follow_up_date=payload.follow_up_date,
            follow_up_time=payload.follow_up_time,
            today=current_day,
        )
    except ValidationError as exc:
        raise validation_api_error(exc) from exc

    phone = _optional_phone(payload.phone)
    prior = _load_pending_follow_up(db, owner, payload)
    location = resolve_location(payload.location, payload.latitude, payload.longitude)
    if photos and not location:
        raise ApiError(
            status_code=422,
            code="VALIDATION_ERROR",
            message="Please wait for GPS location to lock before saving.",
        )
    try:
        ensure_photo_sizes(photos)
    except PhotoTooLargeError as exc:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message=str(exc)) from exc

    try:
        uploaded_urls = upload_photo_batch(storage, photos)
    except StorageError as exc:
        raise ApiError(status_code=502, code="PHOTO_UPLOAD_FAILED", message="Photo upload failed.") from exc
    gallery = [*payload.gallery, *uploaded_urls]

    record = StaffActivity(
        user_id=owner.id,
        team=owner.team,
        role=owner.role or DEFAULT_ROLE,
        assigned_by=owner.name or "Self",
        client_name=payload.client_name.strip(),
        phone=phone,
        activity_type=payload.activity_type,
        customer_type=(
            payload.customer_type.value
            if payload.customer_type is not None and payload.activity_type == ActivityType.CUSTOMER_VISIT.value
            else None
        ),
        customer_activity=payload.customer_activity,
        status=derived.status,
        notes=payload.notes,
        location=location,
        latitude=payload.latitude,
        longitude=payload.longitude,
        gallery=gallery,
        image_url=gallery[0] if gallery else None,
        follow_up_date=derived.follow_up_date,
        follow_up_time=derived.follow_up_time,
    )

    try:
        db.add(record)
        db.flush()
        if prior is not None:
            result = db.execute(
                update(StaffActivity)
                .where(
                    StaffActivity.id == prior.id,
                    StaffActivity.status.not_in(list(CLOSED_STATUSES)),
                )
                .values(status=ActivityStatus.COMPLETED, follow_up_date=None, follow_up_time=None)
            )
            if result.rowcount != 1:
                db.rollback()
                raise ApiError(
                    status_code=409,
                    code="FOLLOW_UP_NOT_PENDING",
                    message="Pending activity was closed before this follow-up was saved.",
                )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "activity_submit_failed",
            extra={"user_id": owner.id, "follow_up_of_id": payload.follow_up_of_id},
        )
        raise ApiError(status_code=503, code="DATABASE_ERROR", message="Activity could not be saved.") from exc

    db.refresh(record)
    logger.info(
        "activity_submitted",
        extra={
            "activity_id": record.id,
            "user_id": owner.id,
            "status": record.status.value,
            "photos": len(uploaded_urls),
            "closed_follow_up_id": prior.id if prior is not None else None,
        },
    )
    return record


def update_activity(
    db: Session,
    *,
    actor: StaffProfile,
    activity_id: int,
    payload: StaffActivityUpdate,
    today: date | None = None,
) -> StaffActivity:
    record = db.get(StaffActivity, activity_id)
    if record is None:
        raise ApiError(status_code=404, code="ACTIVITY_NOT_FOUND", message="Activity not found.")
    if record.user_id != actor.id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only the owner can edit this activity.")

    fields = payload.model_dump(exclude_unset=True)
    if "client_name" in fields and payload.client_name is not None:
        record.client_name = payload.client_name.strip()
    if "phone" in fields:
        record.phone = _optional_phone(payload.phone)
    if "customer_activity" in fields:
        record.customer_activity = payload.customer_activity
    if "notes" in fields:
        record.notes = payload.notes
    if "status" in fields and payload.status is not None:
        record.status = payload.status

    follow_up_date = payload.follow_up_date if "follow_up_date" in fields else record.follow_up_date
    follow_up_time = payload.follow_up_time if "follow_up_time" in fields else record.follow_up_time
    record.follow_up_date, record.follow_up_time = reconcile_follow_up(
        record.status,
        follow_up_date,
        follow_up_time,
        today or local_today(),
    )

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise ApiError(status_code=503, code="DATABASE_ERROR", message="Activity could not be saved.") from exc
    db.refresh(record)
    return record


def can_delete_activity(
    actor: StaffProfile,
    record: StaffActivity,
    profiles_by_id: Mapping[int, StaffProfile],
) -> bool:
    if record.user_id == actor.id or is_global_profile(actor):
        return True
    owner = effective_owner(record, profiles_by_id)
    return actor.role == REGIONAL_MANAGER_ROLE and actor.team == owner.team


def delete_activity(db: Session, *, actor: StaffProfile, activity_id: int) -> StaffActivity:
    record = db.get(StaffActivity, activity_id)
    if record is None:
        raise ApiError(status_code=404, code="ACTIVITY_NOT_FOUND", message="Activity not found.")
    owner_profile = db.get(StaffProfile, record.user_id)
    profiles_by_id = {owner_profile.id: owner_profile} if owner_profile is not None else {}
    if not can_delete_activity(actor, record, profiles_by_id):
        raise ApiError(status_code=403, code="FORBIDDEN", message="Not allowed to delete this activity.")

    db.delete(record)
    db.commit()
    return record


def list_pending_follow_ups(db: Session, owner: StaffProfile) -> list[StaffActivity]:
    stmt = (
        select(StaffActivity)
        .where(
            StaffActivity.user_id == owner.id,
            StaffActivity.status.not_in(list(CLOSED_STATUSES)),
        )
        .order_by(StaffActivity.created_at.desc(), StaffActivity.id.desc())
    )
    return list(db.scalars(stmt).all())


def due_follow_ups(
    records: Iterable[StaffActivity],
    viewer: StaffProfile,
    today: date,
) -> list[StaffActivity]:
    global_viewer = is_global_profile(viewer)
    due = [
        item
        for item in records
        if same_day(item.follow_up_date, today)
        and item.status not in CLOSED_STATUSES
        and (global_viewer or item.user_id == viewer.id)
    ]
    due.sort(key=lambda item: (item.follow_up_time is None, item.follow_up_time or time.min))
    return due


def to_due_follow_up_read(record: StaffActivity, profiles_by_id: Mapping[int, StaffProfile]) -> DueFollowUpRead:
    base = to_activity_read(record, profiles_by_id)
    owner = profiles_by_id.get(record.user_id)
    return DueFollowUpRead(
        **base.model_dump(),
        owner_name=owner.name if owner is not None else record.assigned_by,
    )


def dashboard_stats(
    records: Iterable[StaffActivity],
    profiles: Iterable[StaffProfile],
    viewer: StaffProfile,
) -> DashboardStatsRead:
    rows = list(records)
    return DashboardStatsRead(
        total=len(rows),
        follow_up=sum(1 for item in rows if item.status in FOLLOW_UP_STATUSES),
        converted=sum(1 for item in rows if item.status == ActivityStatus.CONVERTED),
        not_interested=sum(1 for item in rows if item.status == ActivityStatus.CLOSED),
        team_members=len(visible_profiles(viewer, profiles)),
    )

from datetime import date

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.audit import audit_request
from app.db import get_db
from app.errors import ApiError
from app.models import StaffProfile
from app.schemas import (
    DashboardResponse,
    DefaulterLogRead,
    DueFollowUpRead,
    GeocodeResponse,
    ProfileRead,
    StaffActivityCreate,
    StaffActivityRead,
    StaffActivityUpdate,
    SuccessResponse,
    TeamMemberRead,
    TeamRolesRead,
    TeamsMetaResponse,
)
from app.security import require_profile
from app.services.activities import (
    dashboard_stats,
    delete_activity,
    due_follow_ups,
    list_pending_follow_ups,
    list_visible_activities,
    load_all_activities,
    load_profiles_by_id,
    submit_activity,
    to_activity_read,
    to_due_follow_up_read,
    update_activity,
)
from app.services.defaulters import defaulter_alerts
from app.services.geocoding import reverse_geocode
from app.services.reporting_day import local_today
from app.services.staff import list_profiles
from app.services.storage import ObjectStorage, PhotoUpload, get_object_storage
from app.services.visibility import available_roles, is_global_profile, visible_profiles
from app.teams import HEADQUARTERS_TEAM, REGIONAL_MANAGER_ROLE, ROLE_PRIORITY, TEAM_ROLES

router = APIRouter(tags=["activities"])


def _parse_submission(raw: str) -> StaffActivityCreate:
    try:
        return StaffActivityCreate.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message=str(exc.errors())) from exc


def _read_photos(photos: list[UploadFile]) -> list[PhotoUpload]:
    items: list[PhotoUpload] = []
    for photo in photos:
        data = photo.file.read()
        if not data:
            continue
        items.append(PhotoUpload(filename=photo.filename or "upload.jpg", content_type=photo.content_type, data=data))
    return items


@router.get("/api/staff-activity", response_model=list[StaffActivityRead])
def list_staff_activity(
    team: str | None = Query(default=None, max_length=64),
    role: str | None = Query(default=None, max_length=64),
    day: date | None = Query(default=None, alias="date"),
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> list[StaffActivityRead]:
    records, profiles_by_id = list_visible_activities(
        db,
        profile,
        team=team,
        role=role,
        day=day.isoformat() if day is not None else None,
    )
    return [to_activity_read(item, profiles_by_id) for item in records]


@router.post(
    "/api/staff-activity",
    response_model=StaffActivityRead,
    status_code=status.HTTP_201_CREATED,
)
def create_staff_activity(
    request: Request,
    payload: str = Form(...),
    photos: list[UploadFile] = File(default=[]),
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
) -> StaffActivityRead:
    submission = _parse_submission(payload)
    record = submit_activity(
        db,
        owner=profile,
        payload=submission,
        photos=_read_photos(photos),
        storage=storage,
    )
    audit_request(
        db,
        request,
        actor=profile,
        action="STAFF_ACTIVITY_CREATED",
        entity_type="staff_activity",
        entity_id=record.id,
        details={
            "status": record.status.value,
            "photos": len(record.gallery or []),
            "follow_up_of_id": submission.follow_up_of_id,
        },
    )
    return to_activity_read(record, {profile.id: profile})


@router.get("/api/staff-activity/pending", response_model=list[StaffActivityRead])
def list_pending_staff_activity(
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> list[StaffActivityRead]:
    return [to_activity_read(item, {profile.id: profile}) for item in list_pending_follow_ups(db, profile)]


@router.patch("/api/staff-activity/{activity_id}", response_model=StaffActivityRead)
def patch_staff_activity(
    activity_id: int,
    payload: StaffActivityUpdate,
    request: Request,
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> StaffActivityRead:
    record = update_activity(db, actor=profile, activity_id=activity_id, payload=payload)
    audit_request(
        db,
        request,
        actor=profile,
        action="STAFF_ACTIVITY_UPDATED",
        entity_type="staff_activity",
        entity_id=record.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return to_activity_read(record, {profile.id: profile})


@router.delete("/api/staff-activity/{activity_id}", response_model=SuccessResponse)
def delete_staff_activity(
    activity_id: int,
    request: Request,
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    record = delete_activity(db, actor=profile, activity_id=activity_id)
    audit_request(
        db,
        request,
        actor=profile,
        action="STAFF_ACTIVITY_DELETED",
        entity_type="staff_activity",
        entity_id=activity_id,
        details={"owner_id": record.user_id},
    )
    return SuccessResponse()


@router.get("/api/follow-ups/due", response_model=list[DueFollowUpRead])
def list_due_follow_ups(
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> list[DueFollowUpRead]:
    profiles_by_id = load_profiles_by_id(db)
    due = due_follow_ups(load_all_activities(db), profile, local_today())
    return [to_due_follow_up_read(item, profiles_by_id) for item in due]


@router.get("/api/dashboard", response_model=DashboardResponse)
def dashboard(
    team: str | None = Query(default=None, max_length=64),
    role: str | None = Query(default=None, max_length=64),
    day: date | None = Query(default=None, alias="date"),
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> DashboardResponse:
    today = local_today()
    records, profiles_by_id = list_visible_activities(
        db,
        profile,
        team=team,
        role=role,
        day=day.isoformat() if day is not None else None,
    )
    due = due_follow_ups(load_all_activities(db), profile, today)
    alerts = defaulter_alerts(db, profile, today=today)
    is_global = is_global_profile(profile)
    # Role filter choices come from the profiles the viewer can see, narrowed to the selected team.
    role_options = available_roles(
        visible_profiles(profile, profiles_by_id.values()),
        team=team if is_global else None,
    )
    return DashboardResponse(
        profile=ProfileRead.model_validate(profile),
        is_global=is_global,
        stats=dashboard_stats(records, profiles_by_id.values(), profile),
        due_follow_ups=[to_due_follow_up_read(item, profiles_by_id) for item in due],
        defaulter_alerts=[DefaulterLogRead.model_validate(item) for item in alerts],
        role_options=role_options,
    )


@router.get("/api/team", response_model=list[TeamMemberRead])
def team_directory(
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> list[TeamMemberRead]:
    show_last_login = is_global_profile(profile) or profile.role == REGIONAL_MANAGER_ROLE
    return [
        TeamMemberRead(
            id=item.id,
            name=item.name,
            phone=item.phone,
            role=item.role,
            team=item.team,
            last_login_at=item.last_login_at if show_last_login else None,
        )
        for item in visible_profiles(profile, list_profiles(db))
    ]


@router.get("/api/meta/teams", response_model=TeamsMetaResponse)
def teams_meta() -> TeamsMetaResponse:
    return TeamsMetaResponse(
        headquarters_team=HEADQUARTERS_TEAM,
        teams=[TeamRolesRead(team=team, roles=list(roles)) for team, roles in TEAM_ROLES.items()],
        role_priority=dict(ROLE_PRIORITY),
    )


@router.get("/api/geocode/reverse", response_model=GeocodeResponse)
def geocode_reverse(
    lat: float = Query(ge=-90, le=90),
    lon: float = Query(ge=-180, le=180),
    _profile: StaffProfile = Depends(require_profile),
) -> GeocodeResponse:
    return GeocodeResponse(lat=lat, lon=lon, location=reverse_geocode(lat, lon))

from datetime import date

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.audit import audit_request
from app.db import get_db
from app.models import StaffProfile
from app.schemas import (
    AdminLegacyActivityRead,
    DefaulterLogRead,
    DefaulterSyncResponse,
    ProfileRead,
    StaffCreateRequest,
    StaffUpdateRequest,
    SuccessResponse,
)
from app.security import SessionStore, get_session_store, require_admin_role, require_global_viewer
from app.services.defaulters import delete_defaulter_log, list_defaulter_logs, sync_defaulters
from app.services.exports import XLSX_MEDIA_TYPE, build_defaulter_log_xlsx_bytes, build_roster_xlsx_bytes
from app.services.legacy_activities import list_all_with_owner
from app.services.reporting_day import local_today
from app.services.staff import create_profile, delete_profile, list_profiles, update_profile
from app.teams import is_filter_set

router = APIRouter(tags=["admin"])


@router.get("/api/admin/users", response_model=list[ProfileRead])
def list_users(
    team: str | None = Query(default=None, max_length=64),
    _admin: StaffProfile = Depends(require_admin_role),
    db: Session = Depends(get_db),
) -> list[ProfileRead]:
    profiles = list_profiles(db, team=team if is_filter_set(team) else None)
    return [ProfileRead.model_validate(item) for item in profiles]


@router.post("/api/admin/users", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: StaffCreateRequest,
    request: Request,
    admin: StaffProfile = Depends(require_admin_role),
    db: Session = Depends(get_db),
) -> ProfileRead:
    profile = create_profile(db, payload)
    audit_request(
        db,
        request,
        actor=admin,
        action="PROFILE_CREATED",
        entity_type="profile",
        entity_id=profile.id,
        details={"team": profile.team, "role": profile.role},
    )
    return ProfileRead.model_validate(profile)


@router.patch("/api/admin/users/{profile_id}", response_model=ProfileRead)
def patch_user(
    profile_id: int,
    payload: StaffUpdateRequest,
    request: Request,
    admin: StaffProfile = Depends(require_admin_role),
    db: Session = Depends(get_db),
) -> ProfileRead:
    profile = update_profile(db, profile_id, payload)
    audit_request(
        db,
        request,
        actor=admin,
        action="PROFILE_UPDATED",
        entity_type="profile",
        entity_id=profile.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return ProfileRead.model_validate(profile)


@router.delete("/api/admin/users/{profile_id}", response_model=SuccessResponse)
def remove_user(
    profile_id: int,
    request: Request,
    admin: StaffProfile = Depends(require_admin_role),
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
) -> SuccessResponse:
    profile = delete_profile(db, profile_id, sessions=sessions)
    audit_request(
        db,
        request,
        actor=admin,
        action="PROFILE_DELETED",
        entity_type="profile",
        entity_id=profile_id,
        details={"phone": profile.phone, "team": profile.team},
    )
    return SuccessResponse()


@router.get("/api/admin/users/export")
def export_users(
    request: Request,
    admin: StaffProfile = Depends(require_admin_role),
    db: Session = Depends(get_db),
) -> Response:
    today = local_today()
    payload = build_roster_xlsx_bytes(list_profiles(db), as_of=today)
    audit_request(db, request, actor=admin, action="ROSTER_EXPORT_XLSX", entity_type="export", entity_id="roster")
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="roster-{today.isoformat()}.xlsx"'},
    )


@router.get("/api/admin/activities", response_model=list[AdminLegacyActivityRead])
def list_all_activities(
    _admin: StaffProfile = Depends(require_admin_role),
    db: Session = Depends(get_db),
) -> list[AdminLegacyActivityRead]:
    return list_all_with_owner(db)


@router.post("/api/admin/defaulters/sync", response_model=DefaulterSyncResponse)
def sync_defaulter_log(
    request: Request,
    day: date | None = Query(default=None, alias="date"),
    viewer: StaffProfile = Depends(require_global_viewer),
    db: Session = Depends(get_db),
) -> DefaulterSyncResponse:
    target_day = day or local_today()
    entries = sync_defaulters(db, target_day)
    audit_request(
        db,
        request,
        actor=viewer,
        action="DEFAULTER_SYNC",
        entity_type="defaulter_log",
        entity_id=target_day.isoformat(),
        details={"inserted": len(entries)},
    )
    return DefaulterSyncResponse(
        defaulter_date=target_day,
        inserted_count=len(entries),
        entries=[DefaulterLogRead.model_validate(item) for item in entries],
    )


@router.get("/api/admin/defaulters", response_model=list[DefaulterLogRead])
def list_defaulters(
    team: str | None = Query(default=None, max_length=64),
    day: date | None = Query(default=None, alias="date"),
    _viewer: StaffProfile = Depends(require_global_viewer),
    db: Session = Depends(get_db),
) -> list[DefaulterLogRead]:
    return [DefaulterLogRead.model_validate(item) for item in list_defaulter_logs(db, team=team, day=day)]


@router.get("/api/admin/defaulters/export")
def export_defaulters(
    request: Request,
    team: str | None = Query(default=None, max_length=64),
    day: date | None = Query(default=None, alias="date"),
    viewer: StaffProfile = Depends(require_global_viewer),
    db: Session = Depends(get_db),
) -> Response:
    entries = list_defaulter_logs(db, team=team, day=day)
    payload = build_defaulter_log_xlsx_bytes(entries, team=team if is_filter_set(team) else None)
    audit_request(
        db,
        request,
        actor=viewer,
        action="DEFAULTER_EXPORT_XLSX",
        entity_type="export",
        entity_id="defaulters",
        details={"team": team, "date": day.isoformat() if day else None, "rows": len(entries)},
    )
    suffix = day.isoformat() if day is not None else local_today().isoformat()
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="defaulters-{suffix}.xlsx"'},
    )


@router.delete("/api/admin/defaulters/{log_id}", response_model=SuccessResponse)
def remove_defaulter(
    log_id: int,
    request: Request,
    viewer: StaffProfile = Depends(require_global_viewer),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    delete_defaulter_log(db, log_id)
    audit_request(
        db,
        request,
        actor=viewer,
        action="DEFAULTER_DELETED",
        entity_type="defaulter_log",
        entity_id=log_id,
    )
    return SuccessResponse()

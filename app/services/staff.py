from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ApiError
from app.models import StaffProfile
from app.schemas import StaffCreateRequest, StaffUpdateRequest
from app.security import SessionStore, is_valid_mobile
from app.teams import TEAM_ROLES, default_role_for, is_valid_team_role


def normalize_phone(raw: str | None) -> str:
    return "".join(ch for ch in (raw or "") if ch.isdigit())


def ensure_valid_phone(raw: str | None) -> str:
    phone = normalize_phone(raw)
    if not is_valid_mobile(phone):
        raise ApiError(status_code=422, code="INVALID_PHONE", message="Invalid Phone Number")
    return phone


def resolve_team_role(team: str, role: str | None) -> tuple[str, str]:
    if team not in TEAM_ROLES:
        raise ApiError(status_code=422, code="INVALID_TEAM_ROLE", message=f"Unknown team: {team}")
    resolved_role = role or default_role_for(team)
    if resolved_role is None or not is_valid_team_role(team, resolved_role):
        raise ApiError(
            status_code=422,
            code="INVALID_TEAM_ROLE",
            message=f"Role {resolved_role!r} is not allowed for team {team}",
        )
    return team, resolved_role


def get_profile_by_phone(db: Session, phone: str) -> StaffProfile | None:
    return db.scalar(select(StaffProfile).where(StaffProfile.phone == phone))


def list_profiles(db: Session, *, team: str | None = None) -> list[StaffProfile]:
    stmt = select(StaffProfile).order_by(StaffProfile.name.asc(), StaffProfile.id.asc())
    if team:
        stmt = stmt.where(StaffProfile.team == team)
    return list(db.scalars(stmt).all())


def _ensure_phone_available(db: Session, phone: str, *, exclude_id: int | None = None) -> None:
    existing = get_profile_by_phone(db, phone)
    if existing is not None and existing.id != exclude_id:
        raise ApiError(
            status_code=409,
            code="PHONE_ALREADY_REGISTERED",
            message="Phone number already registered",
        )


def _commit_profile(db: Session, profile: StaffProfile) -> StaffProfile:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="PHONE_ALREADY_REGISTERED",
            message="Phone number already registered",
        ) from exc
    db.refresh(profile)
    return profile


def create_profile(db: Session, payload: StaffCreateRequest) -> StaffProfile:
    phone = ensure_valid_phone(payload.phone)
    team, role = resolve_team_role(payload.team, payload.role)
    _ensure_phone_available(db, phone)

    profile = StaffProfile(name=payload.name.strip(), phone=phone, team=team, role=role)
    db.add(profile)
    return _commit_profile(db, profile)


def update_profile(db: Session, profile_id: int, payload: StaffUpdateRequest) -> StaffProfile:
    profile = db.get(StaffProfile, profile_id)
    if profile is None:
        raise ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")

    if payload.phone is not None:
        phone = ensure_valid_phone(payload.phone)
        _ensure_phone_available(db, phone, exclude_id=profile.id)
        profile.phone = phone

    if payload.team is not None or payload.role is not None:
        team = payload.team if payload.team is not None else profile.team
        # Changing team without a role falls back to the team's first role when the old one no longer fits.
        role = payload.role
        if role is None and is_valid_team_role(team, profile.role):
            role = profile.role
        profile.team, profile.role = resolve_team_role(team, role)

    if payload.name is not None:
        profile.name = payload.name.strip()

    return _commit_profile(db, profile)


def delete_profile(db: Session, profile_id: int, *, sessions: SessionStore) -> StaffProfile:
    profile = db.get(StaffProfile, profile_id)
    if profile is None:
        raise ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")

    db.delete(profile)
    db.commit()
    sessions.delete_user(profile_id)
    return profile


def record_login(db: Session, profile: StaffProfile) -> None:
    profile.last_login_at = datetime.now(timezone.utc)
    db.commit()

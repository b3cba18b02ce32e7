from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.audit import audit_request, client_ip
from app.db import get_db
from app.errors import ApiError
from app.models import StaffProfile
from app.schemas import AuthUserResponse, LoginRequest, ProfileRead, SuccessResponse
from app.security import (
    SessionStore,
    ensure_login_attempt_allowed,
    get_optional_profile,
    get_session_store,
    open_session,
    register_login_failure,
    register_login_success,
    session_max_age_seconds,
    session_token,
)
from app.services.staff import get_profile_by_phone, normalize_phone, record_login
from app.settings import get_settings

router = APIRouter(tags=["auth"])

UNREGISTERED_PHONE_MESSAGE = "Phone number not registered. Please contact your administrator."


def _is_secure_request(request: Request) -> bool:
    forwarded_proto = (request.headers.get("x-forwarded-proto") or "").strip().lower()
    if forwarded_proto:
        return forwarded_proto.split(",")[0].strip() == "https"
    return request.url.scheme == "https"


@router.post("/api/auth/login", response_model=AuthUserResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
) -> AuthUserResponse:
    ip = client_ip(request)
    request.state.actor = "system"
    request.state.actor_id = "system"
    if ip:
        ensure_login_attempt_allowed(ip)

    phone = normalize_phone(payload.phone)
    profile = get_profile_by_phone(db, phone) if phone else None
    if profile is None:
        if ip:
            register_login_failure(ip)
        audit_request(
            db,
            request,
            actor=None,
            action="STAFF_LOGIN_FAIL",
            success=False,
            details={"reason": "PHONE_NOT_REGISTERED"},
        )
        raise ApiError(status_code=401, code="UNAUTHORIZED", message=UNREGISTERED_PHONE_MESSAGE)

    if ip:
        register_login_success(ip)
    record_login(db, profile)
    token = open_session(sessions, profile.id)
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=session_max_age_seconds(),
        path="/",
        samesite="lax",
        secure=_is_secure_request(request),
        httponly=True,
    )

    request.state.actor = "staff"
    request.state.actor_id = str(profile.id)
    audit_request(db, request, actor=profile, action="STAFF_LOGIN_SUCCESS", entity_type="profile", entity_id=profile.id)
    return AuthUserResponse(user=ProfileRead.model_validate(profile))


@router.get("/api/auth/me", response_model=AuthUserResponse)
def me(profile: StaffProfile | None = Depends(get_optional_profile)) -> AuthUserResponse:
    if profile is None:
        return AuthUserResponse(user=None)
    return AuthUserResponse(user=ProfileRead.model_validate(profile))


@router.post("/api/auth/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    response: Response,
    sessions: SessionStore = Depends(get_session_store),
) -> SuccessResponse:
    token = session_token(request)
    if token is not None:
        sessions.delete(token)
    response.delete_cookie(key=get_settings().session_cookie_name, path="/")
    return SuccessResponse()

from __future__ import annotations

import re
import secrets
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import ApiError
from app.models import StaffProfile
from app.settings import get_settings
from app.teams import ADMIN_ROLE, is_global_viewer

_LOCK = threading.Lock()
_FAILED_ATTEMPTS: dict[str, deque[datetime]] = defaultdict(deque)

_PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_mobile(phone: str | None) -> bool:
    return bool(phone) and _PHONE_PATTERN.fullmatch(phone) is not None


def _attempt_window() -> timedelta:
    return timedelta(minutes=max(1, get_settings().login_attempt_window_minutes))


def _cleanup_attempts(ip: str, now: datetime) -> None:
    queue = _FAILED_ATTEMPTS[ip]
    threshold = now - _attempt_window()
    while queue and queue[0] < threshold:
        queue.popleft()
    if not queue:
        _FAILED_ATTEMPTS.pop(ip, None)


def ensure_login_attempt_allowed(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        queue = _FAILED_ATTEMPTS.get(ip, deque())
        if len(queue) >= get_settings().login_max_attempts:
            raise ApiError(
                status_code=429,
                code="TOO_MANY_ATTEMPTS",
                message="Too many failed login attempts. Please try again later.",
            )


def register_login_failure(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        _FAILED_ATTEMPTS[ip].append(now)


def register_login_success(ip: str) -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.pop(ip, None)


@dataclass(frozen=True, slots=True)
class SessionEntry:
    user_id: int
    expires_at: datetime


class SessionStore(Protocol):
    """Key-value store mapping an opaque session token to a user id."""

    def get(self, token: str) -> SessionEntry | None: ...

    def set(self, token: str, entry: SessionEntry) -> None: ...

    def delete(self, token: str) -> None: ...

    def delete_user(self, user_id: int) -> int: ...


class InMemorySessionStore:
    """Process-local store. Sessions are lost on restart and not shared between workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, SessionEntry] = {}

    def get(self, token: str) -> SessionEntry | None:
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if entry.expires_at <= _utcnow():
                self._entries.pop(token, None)
                return None
            return entry

    def set(self, token: str, entry: SessionEntry) -> None:
        with self._lock:
            now = _utcnow()
            expired = [key for key, item in self._entries.items() if item.expires_at <= now]
            for key in expired:
                del self._entries[key]
            self._entries[token] = entry

    def delete(self, token: str) -> None:
        with self._lock:
            self._entries.pop(token, None)

    def delete_user(self, user_id: int) -> int:
        with self._lock:
            tokens = [token for token, entry in self._entries.items() if entry.user_id == user_id]
            for token in tokens:
                del self._entries[token]
            return len(tokens)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_session_store = InMemorySessionStore()


def get_session_store() -> SessionStore:
    return _default_session_store


def session_max_age_seconds() -> int:
    return max(1, get_settings().session_days) * 24 * 60 * 60


def open_session(store: SessionStore, user_id: int) -> str:
    token = secrets.token_urlsafe(32)
    expires_at = _utcnow() + timedelta(seconds=session_max_age_seconds())
    store.set(token, SessionEntry(user_id=user_id, expires_at=expires_at))
    return token


def session_token(request: Request) -> str | None:
    token = request.cookies.get(get_settings().session_cookie_name)
    return token or None


def resolve_session_user_id(request: Request, store: SessionStore) -> int | None:
    token = session_token(request)
    if token is None:
        return None
    entry = store.get(token)
    return entry.user_id if entry is not None else None


def get_optional_profile(
    request: Request,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> StaffProfile | None:
    user_id = resolve_session_user_id(request, store)
    if user_id is None:
        return None
    profile = db.get(StaffProfile, user_id)
    if profile is not None:
        request.state.actor = "staff"
        request.state.actor_id = str(profile.id)
    return profile


def require_profile(profile: StaffProfile | None = Depends(get_optional_profile)) -> StaffProfile:
    if profile is None:
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Unauthorized")
    return profile


def require_admin_role(
    request: Request,
    profile: StaffProfile = Depends(require_profile),
) -> StaffProfile:
    if profile.role != ADMIN_ROLE:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Access denied. Admin only.")
    request.state.actor = "admin"
    return profile


def require_global_viewer(
    request: Request,
    profile: StaffProfile = Depends(require_profile),
) -> StaffProfile:
    if not is_global_viewer(profile.role, profile.team):
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    request.state.actor = "admin"
    return profile

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from app.models import StaffActivity, StaffProfile
from app.services.reporting_day import local_day, report_timezone
from app.teams import DEFAULT_ROLE, is_filter_set, is_global_viewer, role_priority


@dataclass(frozen=True, slots=True)
class EffectiveOwner:
    team: str | None
    role: str | None


def effective_owner(record: StaffActivity, profiles_by_id: Mapping[int, StaffProfile]) -> EffectiveOwner:
    # Live profile values win over the snapshot taken at submission.
    profile = profiles_by_id.get(record.user_id)
    team = (profile.team if profile is not None else None) or record.team
    role = (profile.role if profile is not None else None) or record.role
    return EffectiveOwner(team=team, role=role)


def is_global_profile(profile: StaffProfile) -> bool:
    return is_global_viewer(profile.role, profile.team)


def filter_visible_activities(
    viewer: StaffProfile,
    records: Iterable[StaffActivity],
    profiles_by_id: Mapping[int, StaffProfile],
    *,
    team: str | None = None,
    role: str | None = None,
    day: str | None = None,
    tz: ZoneInfo | None = None,
) -> list[StaffActivity]:
    zone = tz or report_timezone()
    global_viewer = is_global_profile(viewer)
    visible: list[StaffActivity] = []
    for record in records:
        owner = effective_owner(record, profiles_by_id)

        if not global_viewer:
            if owner.team != viewer.team:
                continue
        elif is_filter_set(team) and owner.team != team:
            continue

        if is_filter_set(role) and owner.role != role:
            continue

        if day and local_day(record.created_at, zone).isoformat() != day:
            continue

        visible.append(record)
    return visible


def visible_profiles(viewer: StaffProfile, profiles: Iterable[StaffProfile]) -> list[StaffProfile]:
    if is_global_profile(viewer):
        rows = list(profiles)
    elif viewer.team:
        rows = [item for item in profiles if item.team == viewer.team]
    else:
        rows = []
    rows.sort(key=lambda item: (role_priority(item.role), item.name or ""))
    return rows


def available_roles(profiles: Iterable[StaffProfile], team: str | None = None) -> list[str]:
    seen: list[str] = []
    for profile in profiles:
        if is_filter_set(team) and profile.team != team:
            continue
        value = profile.role or DEFAULT_ROLE
        if value not in seen:
            seen.append(value)
    return seen

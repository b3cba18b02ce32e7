"""Team and role reference table.

Every team/role rule lives here so that request validation and the
``/api/meta/teams`` endpoint read the same data.
"""

from __future__ import annotations

HEADQUARTERS_TEAM = "NW3"
ALL_FILTER = "ALL"

HEADQUARTERS_ROLES: tuple[str, ...] = ("Admin", "Super Admin")
FIELD_ROLES: tuple[str, ...] = (
    "Regional Manager",
    "CM Credit & NPA",
    "CM Operations",
    "CM D&VAS",
    "Manager NPA",
    "Staff",
)

FIELD_TEAMS: tuple[str, ...] = (
    "R1 Tirupati",
    "R2 Chittoor",
    "R3 Nellore",
    "R4 Gudur",
    "R5 Rajampeta",
    "R1 Kurnool",
    "R2 Nandyal",
    "R3 Ananthapur",
    "R4 Dharmavaram",
    "R5 Kadapa",
)

TEAM_ROLES: dict[str, tuple[str, ...]] = {
    HEADQUARTERS_TEAM: HEADQUARTERS_ROLES,
    **{team: FIELD_ROLES for team in FIELD_TEAMS},
}

TEAMS: tuple[str, ...] = tuple(TEAM_ROLES)

GLOBAL_ROLES = frozenset(HEADQUARTERS_ROLES)
ADMIN_ROLE = "Admin"
REGIONAL_MANAGER_ROLE = "Regional Manager"
DEFAULT_ROLE = "Staff"

ROLE_PRIORITY: dict[str, int] = {
    "Regional Manager": 1,
    "CM Credit & NPA": 2,
    "CM D&VAS": 3,
    "CM Operations": 4,
}

TEAM_PRIORITY: dict[str, int] = {
    "R1 Tirupati": 1,
    "R2 Chittoor": 2,
    "R3 Nellore": 3,
    "R4 Gudur": 4,
    "R5 Rajampeta": 5,
    "R1 Kurnool": 6,
    "R2 Nandyal": 7,
    "R3 Ananthapur": 8,
    "R4 Dharmavaram": 9,
    "R5 Kadapa": 10,
    HEADQUARTERS_TEAM: 99,
}

_UNRANKED = 99


def allowed_roles(team: str) -> tuple[str, ...]:
    return TEAM_ROLES.get(team, ())


def is_valid_team_role(team: str, role: str) -> bool:
    return role in allowed_roles(team)


def default_role_for(team: str) -> str | None:
    roles = allowed_roles(team)
    return roles[0] if roles else None


def is_global_viewer(role: str | None, team: str | None) -> bool:
    return (role or "") in GLOBAL_ROLES or team == HEADQUARTERS_TEAM


def is_defaulter_exempt(role: str | None, team: str | None) -> bool:
    # Headquarters staff and admins never report field activity.
    return is_global_viewer(role, team)


def role_priority(role: str | None) -> int:
    return ROLE_PRIORITY.get(role or "", _UNRANKED)


def team_priority(team: str | None) -> int:
    return TEAM_PRIORITY.get(team or "", _UNRANKED)


def is_filter_set(value: str | None) -> bool:
    return bool(value) and value != ALL_FILTER

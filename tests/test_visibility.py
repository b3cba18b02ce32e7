from __future__ import annotations

import unittest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from app.models import ActivityStatus, StaffActivity, StaffProfile
from app.services.visibility import (
    available_roles,
    effective_owner,
    filter_visible_activities,
    visible_profiles,
)

UTC = ZoneInfo("UTC")
KOLKATA = ZoneInfo("Asia/Kolkata")


def _profile(profile_id: int, *, team: str, role: str = "Staff", name: str | None = None) -> StaffProfile:
    return StaffProfile(
        id=profile_id,
        name=name or f"User {profile_id}",
        phone=f"98765432{profile_id:02d}",
        team=team,
        role=role,
    )


def _activity(activity_id: int, owner: StaffProfile, created_at: datetime, **snapshot) -> StaffActivity:
    return StaffActivity(
        id=activity_id,
        user_id=owner.id,
        team=snapshot.get("team", owner.team),
        role=snapshot.get("role", owner.role),
        client_name=f"Client {activity_id}",
        activity_type="Branch Visit",
        status=ActivityStatus.COMPLETED,
        created_at=created_at,
    )


class VisibilityFilterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tirupati = _profile(1, team="R1 Tirupati")
        self.chittoor = _profile(2, team="R2 Chittoor", role="CM Operations")
        self.admin = _profile(3, team="NW3", role="Admin")
        self.profiles_by_id = {item.id: item for item in (self.tirupati, self.chittoor, self.admin)}
        noon = datetime(2026, 2, 5, 6, 30, tzinfo=timezone.utc)
        self.records = [
            _activity(10, self.tirupati, noon),
            _activity(11, self.chittoor, noon),
        ]

    def test_non_global_viewer_team_filter_is_ignored(self) -> None:
        visible = filter_visible_activities(
            self.tirupati,
            self.records,
            self.profiles_by_id,
            team="R2 Chittoor",
            tz=UTC,
        )
        self.assertEqual([item.id for item in visible], [10])

    def test_global_viewer_sees_all_and_can_narrow_by_team(self) -> None:
        everything = filter_visible_activities(self.admin, self.records, self.profiles_by_id, team="ALL", tz=UTC)
        self.assertEqual([item.id for item in everything], [10, 11])

        narrowed = filter_visible_activities(
            self.admin,
            self.records,
            self.profiles_by_id,
            team="R2 Chittoor",
            tz=UTC,
        )
        self.assertEqual([item.id for item in narrowed], [11])

    def test_headquarters_team_is_global_regardless_of_role(self) -> None:
        hq_staff = _profile(4, team="NW3", role="Super Admin")
        visible = filter_visible_activities(hq_staff, self.records, self.profiles_by_id, tz=UTC)
        self.assertEqual(len(visible), 2)

    def test_role_filter_uses_live_profile_role(self) -> None:
        stale = _activity(12, self.chittoor, self.records[0].created_at, role="Staff")
        visible = filter_visible_activities(
            self.admin,
            [stale],
            self.profiles_by_id,
            role="CM Operations",
            tz=UTC,
        )
        self.assertEqual([item.id for item in visible], [12])

    def test_team_change_moves_history_with_the_profile(self) -> None:
        moved = _activity(13, self.tirupati, self.records[0].created_at, team="R2 Chittoor")
        self.assertEqual(effective_owner(moved, self.profiles_by_id).team, "R1 Tirupati")
        visible = filter_visible_activities(self.tirupati, [moved], self.profiles_by_id, tz=UTC)
        self.assertEqual([item.id for item in visible], [13])

    def test_snapshot_used_when_owner_profile_missing(self) -> None:
        ghost = StaffActivity(
            id=14,
            user_id=99,
            team="R1 Tirupati",
            role="Staff",
            client_name="Client",
            activity_type="Branch Visit",
            status=ActivityStatus.COMPLETED,
            created_at=self.records[0].created_at,
        )
        visible = filter_visible_activities(self.tirupati, [ghost], self.profiles_by_id, tz=UTC)
        self.assertEqual([item.id for item in visible], [14])

    def test_date_filter_compares_local_reporting_day(self) -> None:
        late_evening_utc = _activity(20, self.tirupati, datetime(2026, 2, 4, 23, 50, tzinfo=timezone.utc))
        on_day = _activity(21, self.tirupati, datetime(2026, 2, 5, 12, 0, tzinfo=timezone.utc))
        records = [late_evening_utc, on_day]

        in_utc = filter_visible_activities(self.admin, records, self.profiles_by_id, day="2026-02-05", tz=UTC)
        self.assertEqual([item.id for item in in_utc], [21])

        in_kolkata = filter_visible_activities(
            self.admin,
            records,
            self.profiles_by_id,
            day="2026-02-05",
            tz=KOLKATA,
        )
        self.assertEqual([item.id for item in in_kolkata], [20, 21])


class VisibleProfilesTests(unittest.TestCase):
    def test_non_global_viewer_sees_own_team_sorted_by_role_priority(self) -> None:
        viewer = _profile(1, team="R1 Tirupati", name="Zed")
        manager = _profile(2, team="R1 Tirupati", role="Regional Manager", name="Yara")
        credit = _profile(3, team="R1 Tirupati", role="CM Credit & NPA", name="Xavi")
        other = _profile(4, team="R3 Nellore", role="Regional Manager", name="Adam")

        rows = visible_profiles(viewer, [viewer, other, credit, manager])
        self.assertEqual([item.id for item in rows], [2, 3, 1])

    def test_global_viewer_sees_everyone(self) -> None:
        admin = _profile(1, team="NW3", role="Admin")
        rows = visible_profiles(admin, [admin, _profile(2, team="R5 Kadapa")])
        self.assertEqual(len(rows), 2)

    def test_available_roles_deduplicates_in_order(self) -> None:
        profiles = [
            _profile(1, team="R1 Tirupati", role="Staff"),
            _profile(2, team="R1 Tirupati", role="Regional Manager"),
            _profile(3, team="R2 Chittoor", role="Manager NPA"),
            _profile(4, team="R1 Tirupati", role="Staff"),
        ]
        self.assertEqual(available_roles(profiles), ["Staff", "Regional Manager", "Manager NPA"])
        self.assertEqual(available_roles(profiles, team="R1 Tirupati"), ["Staff", "Regional Manager"])


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import unittest

from app.errors import ApiError
from app.models import StaffProfile
from app.schemas import StaffUpdateRequest
from app.security import is_valid_mobile
from app.services.staff import ensure_valid_phone, resolve_team_role, update_profile
from app.teams import (
    FIELD_TEAMS,
    TEAM_ROLES,
    allowed_roles,
    default_role_for,
    is_defaulter_exempt,
    is_filter_set,
    is_global_viewer,
    role_priority,
    team_priority,
)


class TeamTableTests(unittest.TestCase):
    def test_every_field_team_shares_field_roles(self) -> None:
        self.assertEqual(len(FIELD_TEAMS), 10)
        for team in FIELD_TEAMS:
            with self.subTest(team=team):
                self.assertIn("Regional Manager", allowed_roles(team))
                self.assertNotIn("Admin", allowed_roles(team))
        self.assertEqual(allowed_roles("NW3"), ("Admin", "Super Admin"))
        self.assertEqual(allowed_roles("Unknown"), ())

    def test_default_role_is_first_allowed(self) -> None:
        self.assertEqual(default_role_for("NW3"), "Admin")
        self.assertEqual(default_role_for("R4 Gudur"), "Regional Manager")
        self.assertIsNone(default_role_for("Nowhere"))

    def test_global_viewer_and_exemption(self) -> None:
        self.assertTrue(is_global_viewer("Staff", "NW3"))
        self.assertTrue(is_global_viewer("Super Admin", "R1 Kurnool"))
        self.assertFalse(is_global_viewer("Regional Manager", "R1 Kurnool"))
        self.assertTrue(is_defaulter_exempt("Admin", "R2 Nandyal"))
        self.assertFalse(is_defaulter_exempt(None, "R2 Nandyal"))

    def test_priorities_rank_unknown_last(self) -> None:
        self.assertLess(role_priority("Regional Manager"), role_priority("CM Credit & NPA"))
        self.assertLess(role_priority("CM D&VAS"), role_priority("CM Operations"))
        self.assertEqual(role_priority(None), role_priority("Staff"))
        self.assertLess(team_priority("R5 Kadapa"), team_priority("NW3"))

    def test_all_filter_means_no_filter(self) -> None:
        self.assertFalse(is_filter_set("ALL"))
        self.assertFalse(is_filter_set(""))
        self.assertFalse(is_filter_set(None))
        self.assertTrue(is_filter_set("R3 Nellore"))


class PhoneValidationTests(unittest.TestCase):
    def test_indian_mobile_numbers(self) -> None:
        for phone in ("6000000000", "7999999999", "8123456789", "9876543210"):
            with self.subTest(phone=phone):
                self.assertTrue(is_valid_mobile(phone))
        for phone in ("5123456789", "987654321", "98765432100", "", None):
            with self.subTest(phone=phone):
                self.assertFalse(is_valid_mobile(phone))

    def test_ensure_valid_phone_strips_formatting(self) -> None:
        self.assertEqual(ensure_valid_phone("98765-43210"), "9876543210")
        with self.assertRaises(ApiError) as ctx:
            ensure_valid_phone("+91 98765 43210")
        self.assertEqual(ctx.exception.code, "INVALID_PHONE")


class ResolveTeamRoleTests(unittest.TestCase):
    def test_rejects_role_outside_team(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            resolve_team_role("R1 Tirupati", "Admin")
        self.assertEqual(ctx.exception.code, "INVALID_TEAM_ROLE")

    def test_unknown_team(self) -> None:
        with self.assertRaises(ApiError):
            resolve_team_role("Atlantis", None)

    def test_every_declared_pair_is_accepted(self) -> None:
        for team, roles in TEAM_ROLES.items():
            for role in roles:
                self.assertEqual(resolve_team_role(team, role), (team, role))


class _FakeProfileDB:
    def __init__(self, profile: StaffProfile):
        self.profile = profile
        self.commits = 0

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is StaffProfile and pk == self.profile.id:
            return self.profile
        return None

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        return None

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        return

    def refresh(self, _obj: object) -> None:
        return


class UpdateProfileTests(unittest.TestCase):
    def test_team_move_keeps_role_when_still_allowed(self) -> None:
        profile = StaffProfile(id=1, name="Asha", phone="9876543210", team="R1 Tirupati", role="CM Operations")
        updated = update_profile(_FakeProfileDB(profile), 1, StaffUpdateRequest(team="R3 Nellore"))  # type: ignore[arg-type]
        self.assertEqual((updated.team, updated.role), ("R3 Nellore", "CM Operations"))

    def test_move_to_headquarters_resets_field_role(self) -> None:
        profile = StaffProfile(id=1, name="Asha", phone="9876543210", team="R1 Tirupati", role="Staff")
        updated = update_profile(_FakeProfileDB(profile), 1, StaffUpdateRequest(team="NW3"))  # type: ignore[arg-type]
        self.assertEqual((updated.team, updated.role), ("NW3", "Admin"))


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app import security
from app.db import get_db
from app.main import app
from app.models import StaffProfile
from app.security import InMemorySessionStore, SessionEntry, get_session_store, open_session
from tests.fakes import FakeAppDB, override_get_db


def _profile(profile_id: int, phone: str, *, team: str = "R1 Tirupati", role: str = "Staff") -> StaffProfile:
    return StaffProfile(id=profile_id, name=f"User {profile_id}", phone=phone, team=team, role=role)


class SessionStoreTests(unittest.TestCase):
    def test_expired_entries_are_dropped_on_read(self) -> None:
        store = InMemorySessionStore()
        store.set("old", SessionEntry(user_id=1, expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)))
        self.assertIsNone(store.get("old"))
        self.assertEqual(len(store), 0)

    def test_expired_entries_are_purged_on_write(self) -> None:
        store = InMemorySessionStore()
        now = datetime.now(timezone.utc)
        store.set("stale", SessionEntry(user_id=1, expires_at=now - timedelta(seconds=1)))
        store.set("fresh", SessionEntry(user_id=2, expires_at=now + timedelta(days=1)))

        self.assertEqual(len(store), 1)
        self.assertEqual(store.get("fresh").user_id, 2)  # type: ignore[union-attr]

    def test_delete_user_revokes_every_session(self) -> None:
        store = InMemorySessionStore()
        first = open_session(store, 1)
        open_session(store, 1)
        other = open_session(store, 2)

        self.assertEqual(store.delete_user(1), 2)
        self.assertIsNone(store.get(first))
        self.assertEqual(store.get(other).user_id, 2)  # type: ignore[union-attr]


class ErrorEnvelopeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)

    def test_unknown_route_uses_error_envelope(self) -> None:
        response = self.client.get("/api/does-not-exist", headers={"X-Request-Id": "req-404"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.json(),
            {"error": {"code": "NOT_FOUND", "message": "Not Found", "request_id": "req-404"}},
        )

    def test_wrong_method_uses_error_envelope(self) -> None:
        response = self.client.post("/health")

        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json()["error"]["code"], "METHOD_NOT_ALLOWED")


class AuthEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        security._FAILED_ATTEMPTS.clear()
        self.store = InMemorySessionStore()
        self.staff = _profile(1, "9876543210")
        self.db = FakeAppDB(profiles=[self.staff])
        app.dependency_overrides[get_db] = override_get_db(self.db)
        app.dependency_overrides[get_session_store] = lambda: self.store
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        security._FAILED_ATTEMPTS.clear()

    def test_unregistered_phone_is_rejected(self) -> None:
        response = self.client.post("/api/auth/login", json={"phone": "9123456789"})

        self.assertEqual(response.status_code, 401)
        body = response.json()
        self.assertEqual(body["error"]["code"], "UNAUTHORIZED")
        self.assertEqual(
            body["error"]["message"],
            "Phone number not registered. Please contact your administrator.",
        )
        self.assertEqual(len(self.store), 0)

    def test_login_me_logout_round(self) -> None:
        response = self.client.post("/api/auth/login", json={"phone_number": "98765 43210"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["id"], 1)
        self.assertIn("session_id", response.cookies)
        set_cookie = response.headers["set-cookie"].lower()
        self.assertIn("httponly", set_cookie)
        self.assertIn("samesite=lax", set_cookie)
        self.assertIn("max-age=2592000", set_cookie)
        self.assertEqual(len(self.store), 1)
        self.assertIsNotNone(self.staff.last_login_at)

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.json()["user"]["phone"], "9876543210")

        logout = self.client.post("/api/auth/logout")
        self.assertEqual(logout.json(), {"success": True})
        self.assertEqual(len(self.store), 0)

        self.client.cookies.clear()
        self.assertIsNone(self.client.get("/api/auth/me").json()["user"])

    def test_repeated_failures_are_throttled(self) -> None:
        for _ in range(10):
            self.client.post("/api/auth/login", json={"phone": "9000000000"})
        response = self.client.post("/api/auth/login", json={"phone": "9876543210"})
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["error"]["code"], "TOO_MANY_ATTEMPTS")

    def test_protected_endpoint_requires_session(self) -> None:
        response = self.client.get("/api/staff-activity")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "UNAUTHORIZED")


class AdminAccessTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemorySessionStore()
        self.admin = _profile(1, "9876543210", team="NW3", role="Admin")
        self.super_admin = _profile(2, "9876543211", team="NW3", role="Super Admin")
        self.staff = _profile(3, "9876543212")
        self.db = FakeAppDB(profiles=[self.admin, self.super_admin, self.staff])
        app.dependency_overrides[get_db] = override_get_db(self.db)
        app.dependency_overrides[get_session_store] = lambda: self.store
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _login_as(self, profile: StaffProfile) -> None:
        self.client.cookies.set("session_id", open_session(self.store, profile.id))

    def test_user_directory_is_admin_only(self) -> None:
        for profile in (self.staff, self.super_admin):
            with self.subTest(role=profile.role):
                self._login_as(profile)
                response = self.client.get("/api/admin/users")
                self.assertEqual(response.status_code, 403)
                self.assertEqual(response.json()["error"]["message"], "Access denied. Admin only.")

    def test_admin_lists_and_creates_users(self) -> None:
        self._login_as(self.admin)

        listed = self.client.get("/api/admin/users")
        self.assertEqual(listed.status_code, 200)
        self.assertEqual(len(listed.json()), 3)

        created = self.client.post(
            "/api/admin/users",
            json={"name": "New Staff", "phone_number": "8123456789", "team": "R3 Nellore"},
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["role"], "Regional Manager")
        self.assertTrue(any(isinstance(item, StaffProfile) and item.phone == "8123456789" for item in self.db.added))

    def test_admin_create_rejects_bad_phone_and_team_role(self) -> None:
        self._login_as(self.admin)

        bad_phone = self.client.post(
            "/api/admin/users",
            json={"name": "X", "phone": "5123456789", "team": "R3 Nellore"},
        )
        self.assertEqual(bad_phone.status_code, 422)
        self.assertEqual(bad_phone.json()["error"]["code"], "INVALID_PHONE")

        bad_role = self.client.post(
            "/api/admin/users",
            json={"name": "X", "phone": "8123456789", "team": "NW3", "role": "Staff"},
        )
        self.assertEqual(bad_role.status_code, 422)
        self.assertEqual(bad_role.json()["error"]["code"], "INVALID_TEAM_ROLE")

        duplicate = self.client.post(
            "/api/admin/users",
            json={"name": "X", "phone": self.staff.phone, "team": "R3 Nellore"},
        )
        self.assertEqual(duplicate.status_code, 409)

    def test_deleting_user_revokes_their_sessions(self) -> None:
        victim_token = open_session(self.store, self.staff.id)
        self._login_as(self.admin)

        response = self.client.delete(f"/api/admin/users/{self.staff.id}")
        self.assertEqual(response.status_code, 200)
        self.assertIn(self.staff, self.db.deleted)
        self.assertIsNone(self.store.get(victim_token))

    def test_unknown_user_delete_is_not_found(self) -> None:
        self._login_as(self.admin)
        response = self.client.delete("/api/admin/users/999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "USER_NOT_FOUND")

        patched = self.client.patch("/api/admin/users/999", json={"name": "Nobody"})
        self.assertEqual(patched.status_code, 404)
        self.assertEqual(patched.json()["error"]["code"], "USER_NOT_FOUND")

    def test_unknown_defaulter_delete_is_not_found(self) -> None:
        self._login_as(self.super_admin)
        response = self.client.delete("/api/admin/defaulters/999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "DEFAULTER_NOT_FOUND")

    def test_defaulter_endpoints_accept_any_global_viewer(self) -> None:
        self._login_as(self.super_admin)
        self.assertEqual(self.client.get("/api/admin/defaulters").status_code, 200)

        self._login_as(self.staff)
        self.assertEqual(self.client.get("/api/admin/defaulters").status_code, 403)


if __name__ == "__main__":
    unittest.main()

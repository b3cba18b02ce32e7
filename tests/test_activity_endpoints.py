from __future__ import annotations

import json
import unittest
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from app.db import get_db
from app.main import app
from app.models import ActivityStatus, StaffActivity, StaffProfile
from app.security import InMemorySessionStore, get_session_store, open_session
from app.services.storage import get_object_storage
from tests.fakes import FakeAppDB, FakeStorage, override_get_db


def _profile(profile_id: int, *, team: str, role: str = "Staff") -> StaffProfile:
    return StaffProfile(
        id=profile_id,
        name=f"User {profile_id}",
        phone=f"98765432{profile_id:02d}",
        team=team,
        role=role,
        last_login_at=datetime(2026, 2, 5, 4, 0, tzinfo=timezone.utc),
    )


def _activity(activity_id: int, owner: StaffProfile) -> StaffActivity:
    return StaffActivity(
        id=activity_id,
        user_id=owner.id,
        team=owner.team,
        role=owner.role,
        client_name=f"Client {activity_id}",
        activity_type="Branch Visit",
        status=ActivityStatus.COMPLETED,
        gallery=[],
        created_at=datetime(2026, 2, 5, 6, 0, tzinfo=timezone.utc),
    )


class ActivityEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemorySessionStore()
        self.storage = FakeStorage()
        self.tirupati = _profile(1, team="R1 Tirupati")
        self.manager = _profile(2, team="R1 Tirupati", role="Regional Manager")
        self.chittoor = _profile(3, team="R2 Chittoor")
        self.admin = _profile(4, team="NW3", role="Admin")
        self.db = FakeAppDB(
            profiles=[self.tirupati, self.manager, self.chittoor, self.admin],
            activities=[_activity(10, self.tirupati), _activity(11, self.chittoor)],
        )
        app.dependency_overrides[get_db] = override_get_db(self.db)
        app.dependency_overrides[get_session_store] = lambda: self.store
        app.dependency_overrides[get_object_storage] = lambda: self.storage
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _login_as(self, profile: StaffProfile) -> None:
        self.client.cookies.set("session_id", open_session(self.store, profile.id))

    def test_field_viewer_cannot_widen_team_filter(self) -> None:
        self._login_as(self.tirupati)
        response = self.client.get("/api/staff-activity", params={"team": "R2 Chittoor"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["id"] for item in response.json()], [10])
        self.assertEqual(response.json()[0]["effective_team"], "R1 Tirupati")

    def test_global_viewer_filters_by_team(self) -> None:
        self._login_as(self.admin)
        response = self.client.get("/api/staff-activity", params={"team": "R2 Chittoor"})
        self.assertEqual([item["id"] for item in response.json()], [11])

    def test_invalid_date_filter_is_validation_error(self) -> None:
        self._login_as(self.admin)
        response = self.client.get("/api/staff-activity", params={"date": "05-02-2026"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_multipart_submission_stores_photos(self) -> None:
        self._login_as(self.tirupati)
        payload = {
            "activity_type": "Branch Visit",
            "client_name": "Branch 7",
            "location": "Station Road, Tirupati",
        }

        response = self.client.post(
            "/api/staff-activity",
            data={"payload": json.dumps(payload)},
            files=[
                ("photos", ("front.jpg", b"\xff\xd8front", "image/jpeg")),
                ("photos", ("desk.jpg", b"\xff\xd8desk", "image/jpeg")),
            ],
        )

        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertEqual(body["status"], "Completed")
        self.assertEqual(len(body["gallery"]), 2)
        self.assertEqual(body["image_url"], body["gallery"][0])
        self.assertEqual(len(self.storage.objects), 2)
        self.assertTrue(all(key.startswith("activities/") for key in self.storage.objects))

    def test_malformed_payload_is_rejected_before_upload(self) -> None:
        self._login_as(self.tirupati)
        response = self.client.post(
            "/api/staff-activity",
            data={"payload": "{not json"},
            files=[("photos", ("front.jpg", b"\xff\xd8front", "image/jpeg"))],
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(self.storage.objects, {})

    def test_team_directory_hides_last_login_from_staff(self) -> None:
        self._login_as(self.tirupati)
        staff_view = self.client.get("/api/team").json()
        self.assertEqual([item["id"] for item in staff_view], [2, 1])
        self.assertTrue(all(item["last_login_at"] is None for item in staff_view))

        self._login_as(self.manager)
        manager_view = self.client.get("/api/team").json()
        self.assertTrue(all(item["last_login_at"] is not None for item in manager_view))

    def test_meta_teams_lists_declared_table(self) -> None:
        response = self.client.get("/api/meta/teams")
        body = response.json()
        self.assertEqual(body["headquarters_team"], "NW3")
        self.assertEqual(len(body["teams"]), 11)
        nw3 = next(item for item in body["teams"] if item["team"] == "NW3")
        self.assertEqual(nw3["roles"], ["Admin", "Super Admin"])

    def test_dashboard_counts_visible_records_only(self) -> None:
        self._login_as(self.tirupati)
        response = self.client.get("/api/dashboard")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["is_global"])
        self.assertEqual(body["stats"]["total"], 1)
        self.assertEqual(body["stats"]["team_members"], 2)
        self.assertEqual(body["role_options"], ["Regional Manager", "Staff"])

    def test_dashboard_role_options_follow_team_filter(self) -> None:
        self._login_as(self.admin)
        response = self.client.get("/api/dashboard", params={"team": "R2 Chittoor"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["role_options"], ["Staff"])

        self._login_as(self.tirupati)
        ignored = self.client.get("/api/dashboard", params={"team": "R2 Chittoor"})
        self.assertEqual(ignored.json()["role_options"], ["Regional Manager", "Staff"])

    def test_delete_by_other_team_manager_is_forbidden(self) -> None:
        outsider = _profile(5, team="R3 Nellore", role="Regional Manager")
        self.db.profiles.append(outsider)
        self._login_as(outsider)

        response = self.client.delete("/api/staff-activity/10")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.db.deleted, [])

    def test_same_team_manager_may_delete(self) -> None:
        self._login_as(self.manager)
        response = self.client.delete("/api/staff-activity/10")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([item.id for item in self.db.deleted], [10])


class ImageEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemorySessionStore()
        self.storage = FakeStorage()
        self.staff = _profile(1, team="R4 Gudur")
        app.dependency_overrides[get_db] = override_get_db(FakeAppDB(profiles=[self.staff]))
        app.dependency_overrides[get_session_store] = lambda: self.store
        app.dependency_overrides[get_object_storage] = lambda: self.storage
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_upload_requires_session(self) -> None:
        response = self.client.post("/api/upload-image", files={"file": ("a.jpg", b"data", "image/jpeg")})
        self.assertEqual(response.status_code, 401)

    def test_upload_then_fetch_with_cache_headers(self) -> None:
        self.client.cookies.set("session_id", open_session(self.store, self.staff.id))
        uploaded = self.client.post("/api/upload-image", files={"file": ("shop front.jpg", b"jpeg-bytes", "image/jpeg")})
        self.assertEqual(uploaded.status_code, 200)
        key = uploaded.json()["key"]
        self.assertTrue(key.endswith("shop_front.jpg"))

        fetched = self.client.get(f"/api/images/{key}")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.content, b"jpeg-bytes")
        self.assertEqual(fetched.headers["cache-control"], "public, max-age=31536000")
        etag = fetched.headers["etag"]

        revalidated = self.client.get(f"/api/images/{key}", headers={"If-None-Match": etag})
        self.assertEqual(revalidated.status_code, 304)

    def test_missing_image_is_not_found(self) -> None:
        response = self.client.get("/api/images/activities/nope.jpg")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "IMAGE_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()

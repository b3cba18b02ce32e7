from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone

from app.models import DefaulterLog, LegacyActivity, StaffActivity, StaffProfile
from app.services.storage import StoredObject


def override_get_db(fake_db):
    def _override() -> Generator[object, None, None]:
        yield fake_db

    return _override


def literal_sql(statement) -> str:  # type: ignore[no-untyped-def]
    return str(statement.compile(compile_kwargs={"literal_binds": True}))


class ScalarResult:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return self._rows

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self._rows)


class FakeAppDB:
    """In-memory stand-in for the request session used by the routers."""

    def __init__(
        self,
        profiles: list[StaffProfile] | None = None,
        activities: list[StaffActivity] | None = None,
        defaulter_logs: list[DefaulterLog] | None = None,
        legacy_activities: list[LegacyActivity] | None = None,
    ):
        self.profiles = list(profiles or [])
        self.activities = list(activities or [])
        self.defaulter_logs = list(defaulter_logs or [])
        self.legacy_activities = list(legacy_activities or [])
        self.added: list[object] = []
        self.deleted: list[object] = []
        self.commits = 0
        self._next_id = 1000

    def _table(self, model):  # type: ignore[no-untyped-def]
        if model is StaffProfile:
            return self.profiles
        if model is StaffActivity:
            return self.activities
        if model is LegacyActivity:
            return self.legacy_activities
        if model is DefaulterLog:
            return self.defaulter_logs
        return []

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        for row in self._table(model):
            if row.id == pk:
                return row
        return None

    def scalar(self, statement):  # type: ignore[no-untyped-def]
        sql = literal_sql(statement)
        if "FROM profiles" in sql:
            for profile in self.profiles:
                if f"profiles.phone = '{profile.phone}'" in sql:
                    return profile
        return None

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        sql = str(statement)
        if "FROM defaulter_logs" in sql:
            return ScalarResult(list(self.defaulter_logs))
        if "FROM activities" in sql:
            return ScalarResult(list(self.legacy_activities))
        if "FROM staff_activity" in sql:
            return ScalarResult(list(self.activities))
        if "FROM profiles" in sql:
            return ScalarResult(list(self.profiles))
        return ScalarResult([])

    def execute(self, statement):  # type: ignore[no-untyped-def]
        sql = str(statement)
        if "FROM activities LEFT OUTER JOIN profiles" in sql:
            owners = {item.id: item for item in self.profiles}
            return ScalarResult([(item, owners.get(item.user_id)) for item in self.legacy_activities])
        return ScalarResult([])

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def add_all(self, rows) -> None:  # type: ignore[no-untyped-def]
        self.added.extend(rows)

    def flush(self) -> None:
        # Mimics the primary key and server-side timestamp defaults.
        now = datetime.now(timezone.utc)
        for obj in self.added:
            if not isinstance(obj, (StaffActivity, StaffProfile, LegacyActivity)):
                continue
            if obj.id is None:
                obj.id = self._next_id
                self._next_id += 1
            if obj.created_at is None:
                obj.created_at = now
            if obj.updated_at is None:
                obj.updated_at = now

    def commit(self) -> None:
        self.flush()
        self.commits += 1

    def rollback(self) -> None:
        return

    def refresh(self, _obj: object) -> None:
        return

    def delete(self, obj: object) -> None:
        self.deleted.append(obj)


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, StoredObject] = {}

    def put(self, key: str, data: bytes, content_type: str | None) -> StoredObject:
        stored = StoredObject(key=key, content_type=content_type or "application/octet-stream", data=data)
        self.objects[key] = stored
        return stored

    def get(self, key: str) -> StoredObject | None:
        return self.objects.get(key)

    def public_url(self, key: str) -> str:
        return f"http://testserver/api/images/{key}"

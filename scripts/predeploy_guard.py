#!/usr/bin/env python
from __future__ import annotations

import json
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.services.schema_guard import verify_runtime_schema
from app.settings import get_settings
from app.teams import FIELD_ROLES, TEAM_PRIORITY, TEAM_ROLES

VERSIONS_DIR = ROOT_DIR / "app" / "migrations" / "versions"


@dataclass(slots=True)
class CheckResult:
    name: str
    status: str
    details: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def _extract_revision_ids() -> list[str]:
    revisions: list[str] = []
    pattern = re.compile(r'^\s*revision\s*:\s*str\s*=\s*"([^"]+)"\s*$', re.MULTILINE)
    for path in sorted(VERSIONS_DIR.glob("*.py")):
        if path.name.startswith("__"):
            continue
        content = path.read_text(encoding="utf-8")
        match = pattern.search(content)
        if match:
            revisions.append(match.group(1).strip())
    return revisions


def _check_revision_id_lengths() -> CheckResult:
    revisions = _extract_revision_ids()
    too_long = [revision for revision in revisions if len(revision) > 32]
    return CheckResult(
        name="migration_revision_length",
        status="ok" if not too_long else "fail",
        details={
            "max_len": 32,
            "too_long": too_long,
            "total": len(revisions),
        },
    )


def _check_report_timezone() -> CheckResult:
    name = get_settings().report_timezone
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return CheckResult(name="report_timezone", status="fail", details={"report_timezone": name})
    return CheckResult(name="report_timezone", status="ok", details={"report_timezone": name})


def _check_team_table() -> CheckResult:
    unranked_teams = sorted(team for team in TEAM_ROLES if team not in TEAM_PRIORITY)
    teams_without_roles = sorted(team for team, roles in TEAM_ROLES.items() if not roles)
    status = "ok" if not unranked_teams and not teams_without_roles else "fail"
    return CheckResult(
        name="team_role_table",
        status=status,
        details={
            "teams": len(TEAM_ROLES),
            "field_roles": list(FIELD_ROLES),
            "unranked_teams": unranked_teams,
            "teams_without_roles": teams_without_roles,
        },
    )


def _check_storage_root() -> CheckResult:
    root = Path(get_settings().storage_root)
    if not root.is_absolute():
        root = ROOT_DIR / root
    try:
        root.mkdir(parents=True, exist_ok=True)
        writable = os.access(root, os.W_OK)
    except OSError:
        writable = False
    return CheckResult(
        name="object_storage_root",
        status="ok" if writable else "fail",
        details={"storage_root": str(root), "writable": writable},
    )


def _expected_alembic_heads() -> list[str]:
    config = Config(str(ROOT_DIR / "alembic.ini"))
    script = ScriptDirectory.from_config(config)
    return sorted(script.get_heads())


def _check_database_migration_and_schema() -> CheckResult:
    database_url = (os.getenv("DATABASE_URL") or "").strip()
    if not database_url:
        return CheckResult(
            name="database_schema_guard",
            status="warn",
            details={"reason": "DATABASE_URL_NOT_SET"},
        )

    expected_heads = _expected_alembic_heads()
    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        with engine.connect() as connection:
            current_versions = [
                str(row[0]).strip()
                for row in connection.execute(text("SELECT version_num FROM alembic_version")).fetchall()
                if row and row[0] is not None
            ]
        schema_result = verify_runtime_schema(engine)
    finally:
        engine.dispose()

    missing_heads = [head for head in expected_heads if head not in current_versions]
    status = "ok"
    if missing_heads or (not schema_result.ok):
        status = "fail"

    return CheckResult(
        name="database_schema_guard",
        status=status,
        details={
            "expected_heads": expected_heads,
            "current_versions": current_versions,
            "missing_heads": missing_heads,
            "schema_guard_ok": schema_result.ok,
            "schema_guard_issues": schema_result.issues,
            "schema_guard_warnings": schema_result.warnings,
        },
    )


def main() -> int:
    checks = [
        _check_revision_id_lengths(),
        _check_report_timezone(),
        _check_team_table(),
        _check_storage_root(),
        _check_database_migration_and_schema(),
    ]
    failed_checks = [check for check in checks if check.status == "fail"]
    summary = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "ok": len(failed_checks) == 0,
        "checks": [
            {
                "name": check.name,
                "status": check.status,
                "details": check.details,
            }
            for check in checks
        ],
    }
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0 if len(failed_checks) == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())

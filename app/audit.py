from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from app.models import AuditActorType, AuditLog, StaffProfile

logger = logging.getLogger("app.audit")


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=ip,
        user_agent=user_agent,
        success=success,
        details=details or {},
    )
    db.add(audit)
    try:
        db.commit()
    except Exception:
        # Audit rows are best effort; the audited change is already committed.
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_type": actor_type.value,
                "actor_id": actor_id,
                "success": success,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "details": details or {},
        },
    )


def audit_request(
    db: Session,
    request: Request,
    *,
    actor: StaffProfile | None,
    action: str,
    entity_type: str | None = None,
    entity_id: int | str | None = None,
    success: bool = True,
    details: dict[str, Any] | None = None,
) -> None:
    if actor is None:
        actor_type = AuditActorType.SYSTEM
        actor_id = "anonymous"
    else:
        actor_type = AuditActorType.ADMIN if getattr(request.state, "actor", None) == "admin" else AuditActorType.STAFF
        actor_id = str(actor.id)
    log_audit(
        db,
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        success=success,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        details=details,
        request_id=getattr(request.state, "request_id", None),
    )

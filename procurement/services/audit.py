from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.models.models import AuditLog


logger = logging.getLogger(__name__)


def create_audit_log(
    db: Session,
    *,
    user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int,
    project_id: int | None = None,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> None:
    """Record a before/after snapshot of a workflow transition.

    Runs after the transition has been committed. Failures are logged and
    never propagate to the caller.
    """
    try:
        db.add(
            AuditLog(
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                project_id=project_id,
                changes={"before": before, "after": after},
                created_at=utcnow(),
            )
        )
        db.commit()
    except Exception:
        logger.exception("Failed to write audit log %s for %s %s", action, entity_type, entity_id)
        db.rollback()

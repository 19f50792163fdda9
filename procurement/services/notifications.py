from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.models.models import Notification, User


logger = logging.getLogger(__name__)


@dataclass
class NotificationMessage:
    user_id: int
    type: str
    title: str
    message: str
    related_model: str | None = "PurchaseOrder"
    related_id: int | None = None
    project_id: int | None = None
    created_by: int | None = None


def user_ids_with_role(db: Session, role: str) -> list[int]:
    rows = db.query(User.id).filter(User.role == role, User.status == "active").all()
    return [row[0] for row in rows]


def create_notifications(db: Session, messages: list[NotificationMessage]) -> int:
    """Persist in-app notifications; best effort, returns how many were stored."""
    unique: dict[tuple[int, str], NotificationMessage] = {}
    for msg in messages:
        unique.setdefault((msg.user_id, msg.type), msg)
    if not unique:
        return 0

    now = utcnow()
    try:
        for msg in unique.values():
            db.add(
                Notification(
                    user_id=msg.user_id,
                    type=msg.type,
                    title=msg.title,
                    message=msg.message,
                    related_model=msg.related_model,
                    related_id=msg.related_id,
                    project_id=msg.project_id,
                    created_by=msg.created_by,
                    is_read=False,
                    created_at=now,
                )
            )
        db.commit()
    except Exception:
        logger.exception("Failed to create %s notifications", len(unique))
        db.rollback()
        return 0
    return len(unique)

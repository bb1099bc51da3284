# Overview: Append-only order audit trail.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import OrderAudit


def record(
    *,
    order_id: int,
    event_type: str,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    detail: Optional[str] = None,
) -> OrderAudit:
    """Written inside the caller's transaction; no updates or deletes ever."""
    row = OrderAudit(
        order_id=order_id,
        event_type=event_type,
        from_status=from_status,
        to_status=to_status,
        detail=detail[:500] if detail else None,
    )
    db.session.add(row)
    db.session.flush()
    return row


def audit_trail(order_id: int) -> list[OrderAudit]:
    return (
        db.session.query(OrderAudit)
        .filter_by(order_id=order_id)
        .order_by(OrderAudit.id.asc())
        .all()
    )

# Overview: Human-readable order number allocation per order type.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import OrderSequence
from ..models.orders import (
    ORDER_ASSEMBLY_CONTROL,
    ORDER_CUSTOMER,
    ORDER_FINAL_ASSEMBLY,
    ORDER_PRODUCTION,
    ORDER_PRODUCTION_CONTROL,
    ORDER_SUPPLY,
    ORDER_WAREHOUSE,
    ORDER_WORKSTATION,
)
from .concurrency import acquire_for_transaction

PREFIXES = {
    ORDER_CUSTOMER: "CO",
    ORDER_WAREHOUSE: "WO",
    ORDER_PRODUCTION: "PO",
    ORDER_PRODUCTION_CONTROL: "PCO",
    ORDER_ASSEMBLY_CONTROL: "ACO",
    ORDER_WORKSTATION: "WSO",
    ORDER_FINAL_ASSEMBLY: "FAO",
    ORDER_SUPPLY: "SO",
}


def next_order_number(order_type: str, *, pad: int = 4) -> str:
    """
    Allocate the next number for an order type inside the caller's transaction.

    The counter row is bumped with a single UPDATE so two writers can never
    read the same value; the first allocation inserts the row.
    """
    prefix = PREFIXES[order_type]
    acquire_for_transaction(("sequence", order_type))

    stmt = (
        update(OrderSequence)
        .where(OrderSequence.order_type == order_type)
        .values(next_number=OrderSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(OrderSequence.next_number)
            .filter_by(order_type=order_type)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(OrderSequence(order_type=order_type, next_number=2))
        db.session.flush()
        number = 1
    return f"{prefix}-{number:0{pad}d}"

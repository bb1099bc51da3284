# Overview: Bill-of-materials and production-route lookups.

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from ..errors import NotFound
from ..extensions import db
from ..models import BomLine, ProductionRoute

ItemKey = tuple[str, int]
Bom = dict[ItemKey, list[tuple[str, int, int]]]


def components_of(item_type: str, item_id: int) -> list[tuple[str, int, int]]:
    rows = (
        db.session.query(BomLine)
        .filter_by(parent_type=item_type, parent_id=item_id)
        .order_by(BomLine.component_type, BomLine.component_id)
        .all()
    )
    return [(r.component_type, r.component_id, r.quantity) for r in rows]


def load_bom(parents: Iterable[ItemKey]) -> Bom:
    """BOM rows for the given parents as a plain dict (input for pure classification)."""
    return {key: components_of(*key) for key in set(parents)}


def explode(requirements: dict[ItemKey, int], bom: Bom) -> dict[ItemKey, int]:
    """One BOM level down: {(type, id): qty} of parents -> summed component quantities."""
    needed: dict[ItemKey, int] = defaultdict(int)
    for parent, qty in requirements.items():
        for component_type, component_id, per_unit in bom.get(parent, []):
            needed[(component_type, component_id)] += per_unit * qty
    return dict(needed)


def route_for(item_type: str, item_id: int) -> int:
    route = db.session.query(ProductionRoute).filter_by(item_type=item_type, item_id=item_id).first()
    if route is None:
        raise NotFound(f"No production route for {item_type} {item_id}")
    return route.workstation_id


def set_components(item_type: str, item_id: int, components: Iterable[tuple[str, int, int]]) -> None:
    """Replace the BOM of one parent item. Caller commits."""
    db.session.query(BomLine).filter_by(parent_type=item_type, parent_id=item_id).delete()
    for component_type, component_id, quantity in components:
        db.session.add(BomLine(
            parent_type=item_type,
            parent_id=item_id,
            component_type=component_type,
            component_id=component_id,
            quantity=quantity,
        ))
    db.session.flush()


def set_route(item_type: str, item_id: int, workstation_id: int) -> ProductionRoute:
    route = db.session.query(ProductionRoute).filter_by(item_type=item_type, item_id=item_id).first()
    if route is None:
        route = ProductionRoute(item_type=item_type, item_id=item_id, workstation_id=workstation_id)
        db.session.add(route)
    else:
        route.workstation_id = workstation_id
    db.session.flush()
    return route

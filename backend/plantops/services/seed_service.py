# Overview: Demo factory master data: bill of materials, production routes and opening stock.

from __future__ import annotations

from flask import current_app

from ..factory import (
    ITEM_MODULE,
    ITEM_PART,
    ITEM_PRODUCT,
    WS_GEAR_ASSEMBLY,
    WS_INJECTION_MOLDING,
    WS_MODULES_SUPERMARKET,
    WS_MOTOR_ASSEMBLY,
    WS_PART_FINISHING,
    WS_PARTS_PRE_PRODUCTION,
    WS_PARTS_SUPPLY,
    WS_PLANT_WAREHOUSE,
)
from . import bom_service, settings_service, stock_ledger, stock_store
from .concurrency import atomic


# product -> modules, module -> parts
BILL_OF_MATERIALS = {
    (ITEM_PRODUCT, 1): [(ITEM_MODULE, 1, 1), (ITEM_MODULE, 2, 1)],
    (ITEM_PRODUCT, 2): [(ITEM_MODULE, 1, 2), (ITEM_MODULE, 3, 1)],
    (ITEM_MODULE, 1): [(ITEM_PART, 1, 2), (ITEM_PART, 2, 1)],
    (ITEM_MODULE, 2): [(ITEM_PART, 3, 1), (ITEM_PART, 4, 2)],
    (ITEM_MODULE, 3): [(ITEM_PART, 5, 2), (ITEM_PART, 6, 1)],
}

ROUTES = {
    (ITEM_MODULE, 1): WS_GEAR_ASSEMBLY,
    (ITEM_MODULE, 2): WS_MOTOR_ASSEMBLY,
    (ITEM_MODULE, 3): WS_GEAR_ASSEMBLY,
    (ITEM_PART, 1): WS_INJECTION_MOLDING,
    (ITEM_PART, 2): WS_INJECTION_MOLDING,
    (ITEM_PART, 3): WS_PARTS_PRE_PRODUCTION,
    (ITEM_PART, 4): WS_PARTS_PRE_PRODUCTION,
    (ITEM_PART, 5): WS_PART_FINISHING,
    (ITEM_PART, 6): WS_PART_FINISHING,
}

OPENING_STOCK = {
    (WS_PLANT_WAREHOUSE, ITEM_PRODUCT, 1): 5,
    (WS_PLANT_WAREHOUSE, ITEM_PRODUCT, 2): 5,
    (WS_MODULES_SUPERMARKET, ITEM_MODULE, 1): 5,
    (WS_MODULES_SUPERMARKET, ITEM_MODULE, 2): 5,
    (WS_MODULES_SUPERMARKET, ITEM_MODULE, 3): 5,
    **{(WS_PARTS_SUPPLY, ITEM_PART, part_id): 100 for part_id in range(1, 7)},
}


def seed_master_data() -> None:
    """Replace BOM rows and routes with the demo set."""
    with atomic():
        for (item_type, item_id), components in BILL_OF_MATERIALS.items():
            bom_service.set_components(item_type, item_id, components)
        for (item_type, item_id), workstation_id in ROUTES.items():
            bom_service.set_route(item_type, item_id, workstation_id)


def seed_stock(levels: dict | None = None) -> int:
    """Credit opening stock for keys that have no record yet. Returns how many were created."""
    created = 0
    for (workstation_id, item_type, item_id), quantity in sorted((levels or OPENING_STOCK).items()):
        if stock_store.get(workstation_id=workstation_id, item_type=item_type, item_id=item_id) is not None:
            continue
        stock_ledger.adjust(
            workstation_id=workstation_id,
            item_type=item_type,
            item_id=item_id,
            delta=quantity,
            reason_code=stock_ledger.REASON_REPLENISHMENT,
            notes="Opening stock",
        )
        created += 1
    return created


def seed_all(*, with_stock: bool = True) -> None:
    settings_service.ensure_defaults()
    seed_master_data()
    created = seed_stock() if with_stock else 0
    current_app.logger.info("Seeded factory master data (%d stock records created)", created)

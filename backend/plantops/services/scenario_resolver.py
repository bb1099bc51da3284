# Overview: Pure fulfillment-scenario classification (no database, no app context).

"""
Scenario decision order

1. DIRECT_PRODUCTION       any item's summed requested quantity >= lot size
2. DIRECT_FULFILLMENT      every item covered at the stage workstation
3. WAREHOUSE_ORDER_NEEDED  the shortfall's BOM components are all on hand at
                           the upstream stage (no new manufacturing)
4. PRODUCTION_REQUIRED     anything else

Step 1 wins even when stock would fully cover the order, so a large run is
never split across stock and production. Identical inputs always give the
same answer; callers pass the lot size in explicitly (None skips step 1,
which is how stock-only stages such as the modules supermarket classify).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from .bom_service import Bom, explode


class Scenario(str, Enum):
    DIRECT_FULFILLMENT = "DIRECT_FULFILLMENT"
    WAREHOUSE_ORDER_NEEDED = "WAREHOUSE_ORDER_NEEDED"
    PRODUCTION_REQUIRED = "PRODUCTION_REQUIRED"
    DIRECT_PRODUCTION = "DIRECT_PRODUCTION"


@dataclass(frozen=True)
class LineRequest:
    item_type: str
    item_id: int
    quantity: int


StockSnapshot = Mapping[tuple[int, str, int], int]


def aggregate(lines: Iterable[LineRequest]) -> dict[tuple[str, int], int]:
    totals: dict[tuple[str, int], int] = defaultdict(int)
    for line in lines:
        totals[(line.item_type, line.item_id)] += line.quantity
    return dict(totals)


def shortfall(
    lines: Iterable[LineRequest],
    snapshot: StockSnapshot,
    workstation_id: int,
) -> dict[tuple[str, int], int]:
    """Missing quantity per item at one workstation; covered items are omitted."""
    missing = {}
    for (item_type, item_id), qty in aggregate(lines).items():
        available = snapshot.get((workstation_id, item_type, item_id), 0)
        if available < qty:
            missing[(item_type, item_id)] = qty - available
    return missing


def classify(
    lines: Iterable[LineRequest],
    snapshot: StockSnapshot,
    lot_size_threshold: Optional[int],
    *,
    stage_workstation_id: int,
    upstream_workstation_id: Optional[int] = None,
    bom: Optional[Bom] = None,
) -> Scenario:
    lines = list(lines)
    if not lines:
        raise ValueError("cannot classify an order without lines")

    if lot_size_threshold is not None and any(
        qty >= lot_size_threshold for qty in aggregate(lines).values()
    ):
        return Scenario.DIRECT_PRODUCTION

    missing = shortfall(lines, snapshot, stage_workstation_id)
    if not missing:
        return Scenario.DIRECT_FULFILLMENT

    if upstream_workstation_id is None or bom is None:
        return Scenario.PRODUCTION_REQUIRED

    if any(not bom.get(item) for item in missing):
        return Scenario.PRODUCTION_REQUIRED

    components = explode(missing, bom)
    for (item_type, item_id), qty in components.items():
        if snapshot.get((upstream_workstation_id, item_type, item_id), 0) < qty:
            return Scenario.PRODUCTION_REQUIRED
    return Scenario.WAREHOUSE_ORDER_NEEDED

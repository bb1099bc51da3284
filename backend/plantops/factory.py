# Overview: Static factory layout (workstations, item types) shared by services and seeds.

from __future__ import annotations

ITEM_PRODUCT = "PRODUCT"
ITEM_MODULE = "MODULE"
ITEM_PART = "PART"
ITEM_TYPES = {ITEM_PRODUCT, ITEM_MODULE, ITEM_PART}

WS_INJECTION_MOLDING = 1
WS_PARTS_PRE_PRODUCTION = 2
WS_PART_FINISHING = 3
WS_GEAR_ASSEMBLY = 4
WS_MOTOR_ASSEMBLY = 5
WS_FINAL_ASSEMBLY = 6
WS_PLANT_WAREHOUSE = 7
WS_MODULES_SUPERMARKET = 8
WS_PARTS_SUPPLY = 9

WORKSTATIONS = {
    WS_INJECTION_MOLDING: "Injection Molding",
    WS_PARTS_PRE_PRODUCTION: "Parts Pre-Production",
    WS_PART_FINISHING: "Part Finishing",
    WS_GEAR_ASSEMBLY: "Gear Assembly",
    WS_MOTOR_ASSEMBLY: "Motor Assembly",
    WS_FINAL_ASSEMBLY: "Final Assembly",
    WS_PLANT_WAREHOUSE: "Plant Warehouse",
    WS_MODULES_SUPERMARKET: "Modules Supermarket",
    WS_PARTS_SUPPLY: "Parts Supply Warehouse",
}

MANUFACTURING_WORKSTATIONS = {WS_INJECTION_MOLDING, WS_PARTS_PRE_PRODUCTION, WS_PART_FINISHING}
ASSEMBLY_WORKSTATIONS = {WS_GEAR_ASSEMBLY, WS_MOTOR_ASSEMBLY}

# Stage that can cover a shortfall without new production. The modules
# supermarket has none: parts at WS-9 still need assembling.
UPSTREAM_OF = {
    WS_PLANT_WAREHOUSE: WS_MODULES_SUPERMARKET,
}

# Item type held at each stocking stage.
STAGE_ITEM_TYPE = {
    WS_PLANT_WAREHOUSE: ITEM_PRODUCT,
    WS_MODULES_SUPERMARKET: ITEM_MODULE,
    WS_PARTS_SUPPLY: ITEM_PART,
}


def is_known_workstation(workstation_id) -> bool:
    return workstation_id in WORKSTATIONS

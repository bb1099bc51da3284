# Overview: Status enumerations and transition tables for every order type.

"""
One state machine per order type: an Enum of statuses plus an explicit table
of actions -> (allowed source statuses, allowed target statuses). Anything
not in the table raises IllegalTransition; services never compare status
strings to decide legality.

    Customer        PENDING -> CONFIRMED -> {COMPLETED | PROCESSING -> COMPLETED}
    Warehouse       PENDING -> CONFIRMED -> {FULFILLED | AWAITING_PRODUCTION -> MODULES_READY -> FULFILLED}
    Production      CREATED -> CONFIRMED -> SCHEDULED -> DISPATCHED -> IN_PRODUCTION -> COMPLETED
    Control         PENDING/ASSIGNED -> IN_PROGRESS <-> HALTED, -> COMPLETED | ABANDONED
    Workstation     PENDING/WAITING_FOR_PARTS -> IN_PROGRESS <-> HALTED -> COMPLETED
    Final assembly  PENDING -> CONFIRMED -> IN_PROGRESS -> COMPLETED -> SUBMITTED
    Supply          PENDING -> {REJECTED | IN_PROGRESS -> FULFILLED}
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import IllegalTransition
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


class CustomerStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class WarehouseStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    AWAITING_PRODUCTION = "AWAITING_PRODUCTION"
    MODULES_READY = "MODULES_READY"
    FULFILLED = "FULFILLED"
    CANCELLED = "CANCELLED"


class ProductionStatus(str, Enum):
    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    SCHEDULED = "SCHEDULED"
    DISPATCHED = "DISPATCHED"
    IN_PRODUCTION = "IN_PRODUCTION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ControlStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    HALTED = "HALTED"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


class WorkstationStatus(str, Enum):
    PENDING = "PENDING"
    WAITING_FOR_PARTS = "WAITING_FOR_PARTS"
    IN_PROGRESS = "IN_PROGRESS"
    HALTED = "HALTED"
    COMPLETED = "COMPLETED"


class FinalAssemblyStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SUBMITTED = "SUBMITTED"


class SupplyStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    FULFILLED = "FULFILLED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class Rule:
    sources: frozenset
    targets: frozenset


def _rule(sources, targets) -> Rule:
    return Rule(frozenset(sources), frozenset(targets))


@dataclass(frozen=True)
class StateMachine:
    order_type: str
    statuses: type
    initial: Enum
    rules: dict
    terminal: frozenset

    def status_of(self, order) -> Enum:
        return self.statuses(order.status)

    def check(self, order, action: str, target: Optional[Enum] = None) -> Enum:
        """Validate action from the order's current status; returns the target status."""
        current = self.status_of(order)
        rule = self.rules.get(action)
        if rule is None or current not in rule.sources:
            raise IllegalTransition(self.order_type, order.id, current.value, action)
        if target is None:
            if len(rule.targets) != 1:
                raise ValueError(f"{self.order_type}.{action} needs an explicit target")
            (target,) = rule.targets
        elif target not in rule.targets:
            raise IllegalTransition(self.order_type, order.id, current.value, f"{action} to {target.value}")
        return target

    def can(self, status: Enum, action: str) -> bool:
        rule = self.rules.get(action)
        return rule is not None and status in rule.sources

    def available_actions(self, status: Enum) -> list[str]:
        return sorted(action for action in self.rules if self.can(status, action))

    def is_terminal(self, status: Enum) -> bool:
        return status in self.terminal


C = CustomerStatus
CUSTOMER_MACHINE = StateMachine(
    order_type=ORDER_CUSTOMER,
    statuses=CustomerStatus,
    initial=C.PENDING,
    rules={
        "confirm": _rule({C.PENDING}, {C.CONFIRMED}),
        "fulfill": _rule({C.CONFIRMED}, {C.COMPLETED, C.PROCESSING}),
        "complete": _rule({C.PROCESSING}, {C.COMPLETED}),
        "cancel": _rule({C.PENDING, C.CONFIRMED, C.PROCESSING}, {C.CANCELLED}),
    },
    terminal=frozenset({C.COMPLETED, C.CANCELLED}),
)

W = WarehouseStatus
WAREHOUSE_MACHINE = StateMachine(
    order_type=ORDER_WAREHOUSE,
    statuses=WarehouseStatus,
    initial=W.PENDING,
    rules={
        "confirm": _rule({W.PENDING}, {W.CONFIRMED, W.AWAITING_PRODUCTION}),
        "modules_ready": _rule({W.AWAITING_PRODUCTION}, {W.MODULES_READY}),
        "fulfill": _rule({W.CONFIRMED, W.MODULES_READY}, {W.FULFILLED}),
        "cancel": _rule({W.PENDING, W.CONFIRMED}, {W.CANCELLED}),
    },
    terminal=frozenset({W.FULFILLED, W.CANCELLED}),
)

P = ProductionStatus
PRODUCTION_MACHINE = StateMachine(
    order_type=ORDER_PRODUCTION,
    statuses=ProductionStatus,
    initial=P.CREATED,
    rules={
        "confirm": _rule({P.CREATED}, {P.CONFIRMED}),
        "schedule": _rule({P.CONFIRMED}, {P.SCHEDULED}),
        "dispatch": _rule({P.SCHEDULED}, {P.DISPATCHED}),
        "start": _rule({P.DISPATCHED}, {P.IN_PRODUCTION}),
        "complete": _rule({P.DISPATCHED, P.IN_PRODUCTION}, {P.COMPLETED}),
        "cancel": _rule(
            {P.CREATED, P.CONFIRMED, P.SCHEDULED, P.DISPATCHED, P.IN_PRODUCTION},
            {P.CANCELLED},
        ),
    },
    terminal=frozenset({P.COMPLETED, P.CANCELLED}),
)

K = ControlStatus
_CONTROL_RULES = {
    "assign": _rule({K.PENDING}, {K.ASSIGNED}),
    "start": _rule({K.PENDING, K.ASSIGNED}, {K.IN_PROGRESS}),
    "halt": _rule({K.IN_PROGRESS}, {K.HALTED}),
    "resume": _rule({K.HALTED}, {K.IN_PROGRESS}),
    "complete": _rule({K.IN_PROGRESS}, {K.COMPLETED}),
    "abandon": _rule({K.PENDING, K.ASSIGNED, K.IN_PROGRESS, K.HALTED}, {K.ABANDONED}),
}
PRODUCTION_CONTROL_MACHINE = StateMachine(
    order_type=ORDER_PRODUCTION_CONTROL,
    statuses=ControlStatus,
    initial=K.PENDING,
    rules=_CONTROL_RULES,
    terminal=frozenset({K.COMPLETED, K.ABANDONED}),
)
ASSEMBLY_CONTROL_MACHINE = StateMachine(
    order_type=ORDER_ASSEMBLY_CONTROL,
    statuses=ControlStatus,
    initial=K.PENDING,
    rules=_CONTROL_RULES,
    terminal=frozenset({K.COMPLETED, K.ABANDONED}),
)

S = WorkstationStatus
WORKSTATION_MACHINE = StateMachine(
    order_type=ORDER_WORKSTATION,
    statuses=WorkstationStatus,
    initial=S.PENDING,
    rules={
        "parts_ready": _rule({S.WAITING_FOR_PARTS}, {S.PENDING}),
        "start": _rule({S.PENDING}, {S.IN_PROGRESS}),
        "halt": _rule({S.IN_PROGRESS}, {S.HALTED}),
        "resume": _rule({S.HALTED}, {S.IN_PROGRESS}),
        "complete": _rule({S.IN_PROGRESS}, {S.COMPLETED}),
    },
    terminal=frozenset({S.COMPLETED}),
)

F = FinalAssemblyStatus
FINAL_ASSEMBLY_MACHINE = StateMachine(
    order_type=ORDER_FINAL_ASSEMBLY,
    statuses=FinalAssemblyStatus,
    initial=F.PENDING,
    rules={
        "confirm": _rule({F.PENDING}, {F.CONFIRMED}),
        "start": _rule({F.CONFIRMED}, {F.IN_PROGRESS}),
        "complete": _rule({F.IN_PROGRESS}, {F.COMPLETED}),
        "submit": _rule({F.COMPLETED}, {F.SUBMITTED}),
    },
    terminal=frozenset({F.SUBMITTED}),
)

Y = SupplyStatus
SUPPLY_MACHINE = StateMachine(
    order_type=ORDER_SUPPLY,
    statuses=SupplyStatus,
    initial=Y.PENDING,
    rules={
        "start": _rule({Y.PENDING}, {Y.IN_PROGRESS}),
        "fulfill": _rule({Y.IN_PROGRESS}, {Y.FULFILLED}),
        "reject": _rule({Y.PENDING}, {Y.REJECTED}),
    },
    terminal=frozenset({Y.FULFILLED, Y.REJECTED}),
)

MACHINES = {
    m.order_type: m
    for m in (
        CUSTOMER_MACHINE,
        WAREHOUSE_MACHINE,
        PRODUCTION_MACHINE,
        PRODUCTION_CONTROL_MACHINE,
        ASSEMBLY_CONTROL_MACHINE,
        WORKSTATION_MACHINE,
        FINAL_ASSEMBLY_MACHINE,
        SUPPLY_MACHINE,
    )
}


def machine_for(order) -> StateMachine:
    return MACHINES[order.order_type]

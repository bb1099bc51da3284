# Overview: Domain error taxonomy raised by the ledger, threshold registry and order pipeline.

from __future__ import annotations


class PlantOpsError(Exception):
    """Base class for domain errors; status_code is the HTTP mapping used by routes."""

    status_code = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "code": type(self).__name__}


class InsufficientStock(PlantOpsError):
    """A ledger adjust would drive a stock record negative."""

    status_code = 409

    def __init__(self, workstation_id: int, item_type: str, item_id: int, available: int, requested_delta: int):
        self.workstation_id = workstation_id
        self.item_type = item_type
        self.item_id = item_id
        self.available = available
        self.requested_delta = requested_delta
        super().__init__(
            f"Insufficient stock at workstation {workstation_id} for {item_type} {item_id}: "
            f"available={available}, delta={requested_delta}"
        )


class IllegalTransition(PlantOpsError):
    status_code = 409

    def __init__(self, order_type: str, order_id: int | None, current: str, action: str, reason: str | None = None):
        self.order_type = order_type
        self.order_id = order_id
        self.current = current
        self.action = action
        message = f"{order_type} order {order_id}: cannot {action} from {current}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class DuplicateThreshold(PlantOpsError):
    status_code = 409


class SchedulerUnavailable(PlantOpsError):
    """The external scheduler failed or timed out. Safe to retry."""

    status_code = 503


class NotFound(PlantOpsError):
    status_code = 404

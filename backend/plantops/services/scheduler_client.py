# Overview: HTTP client for the external production scheduler.

"""
The scheduler is an opaque collaborator: given a production order's tasks and
due date it returns a schedule (per-task start/end) or fails. Requests carry
only order numbers and item ids, so a retried call after a timeout asks for
the same schedule again.

Never call it while holding a pipeline lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx
from flask import current_app

from ..errors import SchedulerUnavailable
from ..time_utils import parse_iso_datetime, to_utc_z


@dataclass(frozen=True)
class ScheduledTask:
    item_type: str
    item_id: int
    quantity: int
    workstation_id: int
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "item_type": self.item_type,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "workstation_id": self.workstation_id,
            "start": to_utc_z(self.start),
            "end": to_utc_z(self.end),
        }


@dataclass(frozen=True)
class ScheduleResult:
    schedule_id: str
    tasks: list[ScheduledTask] = field(default_factory=list)
    expected_completion: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "schedule_id": self.schedule_id,
            "tasks": [t.to_dict() for t in self.tasks],
            "expected_completion": to_utc_z(self.expected_completion),
        }


def _parse_result(body: dict) -> ScheduleResult:
    try:
        tasks = [
            ScheduledTask(
                item_type=t["item_type"],
                item_id=int(t["item_id"]),
                quantity=int(t["quantity"]),
                workstation_id=int(t["workstation_id"]),
                start=parse_iso_datetime(t.get("start")),
                end=parse_iso_datetime(t.get("end")),
            )
            for t in body.get("tasks", [])
        ]
        expected = parse_iso_datetime(body.get("expected_completion"))
        if expected is None and tasks:
            ends = [t.end for t in tasks if t.end is not None]
            expected = max(ends) if ends else None
        return ScheduleResult(schedule_id=str(body["schedule_id"]), tasks=tasks, expected_completion=expected)
    except (KeyError, TypeError, ValueError) as exc:
        raise SchedulerUnavailable(f"Scheduler returned an invalid schedule: {exc}") from exc


class SchedulerClient:
    def __init__(self, base_url: str, *, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def create_schedule(self, request: dict, *, timeout: float) -> ScheduleResult:
        """POST /schedules; any transport failure, timeout or non-2xx becomes SchedulerUnavailable."""
        try:
            with httpx.Client(base_url=self.base_url, timeout=timeout, transport=self._transport) as client:
                response = client.post("/schedules", json=request)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as exc:
            raise SchedulerUnavailable(f"Scheduler timed out after {timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise SchedulerUnavailable(f"Scheduler responded {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SchedulerUnavailable(f"Scheduler unreachable: {exc}") from exc
        except ValueError as exc:
            raise SchedulerUnavailable("Scheduler response was not JSON") from exc
        if not isinstance(body, dict):
            raise SchedulerUnavailable("Scheduler response was not an object")
        return _parse_result(body)


def get_scheduler():
    """Client registered on the app (tests swap in a fake with the same create_schedule signature)."""
    scheduler = current_app.extensions.get("plantops.scheduler")
    if scheduler is None:
        scheduler = SchedulerClient(current_app.config["SCHEDULER_URL"])
        current_app.extensions["plantops.scheduler"] = scheduler
    return scheduler

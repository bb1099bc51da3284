"""
Pytest fixtures for PlantOps backend tests.

Provides the app on in-memory SQLite, a per-test table wipe, a seeded demo
factory and a fake production scheduler.
"""

from datetime import datetime, timedelta

import pytest

from plantops import create_app
from plantops.errors import SchedulerUnavailable
from plantops.extensions import db
from plantops.services import seed_service, settings_service
from plantops.services.scheduler_client import ScheduledTask, ScheduleResult


class FakeScheduler:
    """Stands in for SchedulerClient; records every request."""

    def __init__(self):
        self.requests = []
        self.fail = False
        self._counter = 0

    def create_schedule(self, request, *, timeout):
        self.requests.append((request, timeout))
        if self.fail:
            raise SchedulerUnavailable("Scheduler timed out after %ss" % timeout)
        self._counter += 1
        start = datetime(2026, 1, 5, 8, 0)
        tasks = [
            ScheduledTask(
                item_type=t["item_type"],
                item_id=t["item_id"],
                quantity=t["quantity"],
                workstation_id=t["workstation_id"],
                start=start + timedelta(hours=i),
                end=start + timedelta(hours=i + 1),
            )
            for i, t in enumerate(request["tasks"])
        ]
        return ScheduleResult(
            schedule_id=f"SCH-{self._counter}",
            tasks=tasks,
            expected_completion=tasks[-1].end if tasks else None,
        )


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOT_SIZE_THRESHOLD': 3,
        'DEFAULT_LOW_STOCK_THRESHOLD': None,
        'PIPELINE_EVENTS_AUTODISPATCH': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def factory(db_session):
    """
    Demo BOM, routes and opening stock, with a lot size large enough that
    ordinary test orders never take the DIRECT_PRODUCTION path.
    """
    seed_service.seed_all()
    settings_service.set_lot_size_threshold(100)
    return db_session


@pytest.fixture(scope='function')
def scheduler(app):
    fake = FakeScheduler()
    previous = app.extensions.get("plantops.scheduler")
    app.extensions["plantops.scheduler"] = fake
    yield fake
    app.extensions["plantops.scheduler"] = previous


@pytest.fixture(scope='function')
def manual_dispatch(app):
    """Leave pipeline events pending until the test dispatches them."""
    app.config["PIPELINE_EVENTS_AUTODISPATCH"] = False
    yield
    app.config["PIPELINE_EVENTS_AUTODISPATCH"] = True

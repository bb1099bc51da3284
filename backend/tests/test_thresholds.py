import pytest

from plantops.errors import NotFound
from plantops.models import LowStockThreshold
from plantops.services import stock_ledger, threshold_service
from plantops.validation import ValidationError


def _stock(ws, item_type, item_id, qty):
    stock_ledger.adjust(
        workstation_id=ws, item_type=item_type, item_id=item_id, delta=qty,
        reason_code=stock_ledger.REASON_REPLENISHMENT,
    )


def test_alert_below_threshold_with_deficit(db_session):
    _stock(7, "PRODUCT", 1, 5)
    threshold_service.upsert([{"workstation_id": 7, "item_type": "PRODUCT", "item_id": 1, "threshold": 20}])

    alerts = threshold_service.evaluate()

    assert len(alerts) == 1
    assert alerts[0].quantity == 5
    assert alerts[0].threshold == 20
    assert alerts[0].deficit == 15


def test_no_alert_at_or_above_threshold(db_session):
    _stock(7, "PRODUCT", 1, 25)
    _stock(7, "PRODUCT", 2, 20)
    threshold_service.upsert([{"item_type": "PRODUCT", "threshold": 20}])

    assert threshold_service.evaluate() == []


def test_most_specific_threshold_wins(db_session):
    _stock(7, "PRODUCT", 1, 25)
    threshold_service.upsert([
        {"item_type": "PRODUCT", "threshold": 30},
        {"workstation_id": 7, "item_type": "PRODUCT", "item_id": 1, "threshold": 20},
    ])

    assert threshold_service.threshold_for(7, "PRODUCT", 1) == 20
    assert threshold_service.evaluate() == []
    # another workstation only matches the global row
    assert threshold_service.threshold_for(8, "PRODUCT", 1) == 30


def test_specificity_order_workstation_before_item(db_session):
    threshold_service.upsert([
        {"workstation_id": 8, "item_type": "MODULE", "threshold": 4},
        {"item_type": "MODULE", "item_id": 2, "threshold": 9},
    ])
    assert threshold_service.threshold_for(8, "MODULE", 2) == 4
    assert threshold_service.threshold_for(4, "MODULE", 2) == 9
    assert threshold_service.threshold_for(4, "MODULE", 3) is None


def test_unmatched_records_are_skipped(db_session):
    _stock(9, "PART", 1, 1)
    assert threshold_service.evaluate() == []


def test_configured_default_threshold_applies_last(app, db_session):
    _stock(9, "PART", 1, 1)
    app.config["DEFAULT_LOW_STOCK_THRESHOLD"] = 10
    try:
        alerts = threshold_service.evaluate(workstation_id=9)
    finally:
        app.config["DEFAULT_LOW_STOCK_THRESHOLD"] = None
    assert [(a.item_id, a.deficit) for a in alerts] == [(1, 9)]


def test_upsert_same_scope_updates_instead_of_duplicating(db_session):
    threshold_service.upsert([{"item_type": "PRODUCT", "threshold": 10}])
    threshold_service.upsert([{"item_type": "PRODUCT", "threshold": 15}])

    rows = db_session.query(LowStockThreshold).all()
    assert len(rows) == 1
    assert rows[0].threshold == 15
    assert rows[0].scope_key == "*:PRODUCT:*"


def test_upsert_by_id_and_missing_id(db_session):
    (row,) = threshold_service.upsert([{"item_type": "PART", "threshold": 3}])
    threshold_service.upsert([{"id": row.id, "workstation_id": 9, "item_type": "PART", "threshold": 50}])

    updated = db_session.get(LowStockThreshold, row.id)
    assert updated.scope_key == "9:PART:*"
    assert updated.threshold == 50

    with pytest.raises(NotFound):
        threshold_service.upsert([{"id": 9999, "item_type": "PART", "threshold": 1}])



def test_update_by_id_onto_taken_scope_is_rejected(db_session):
    global_row, ws_row = threshold_service.upsert([
        {"item_type": "PART", "threshold": 3},
        {"workstation_id": 9, "item_type": "PART", "threshold": 10},
    ])

    with pytest.raises(ValidationError, match="already covers it"):
        threshold_service.upsert([{"id": global_row.id, "workstation_id": 9, "item_type": "PART", "threshold": 50}])

    rows = {r.id: (r.scope_key, r.threshold) for r in threshold_service.list_thresholds()}
    assert rows == {global_row.id: ("*:PART:*", 3), ws_row.id: ("9:PART:*", 10)}


def test_upsert_batch_is_all_or_nothing(db_session):
    with pytest.raises(ValidationError):
        threshold_service.upsert([
            {"item_type": "PART", "threshold": 3},
            {"item_type": "PART", "threshold": -1},
        ])
    assert db_session.query(LowStockThreshold).count() == 0


@pytest.mark.parametrize("payload", [
    {"item_type": "WIDGET", "threshold": 1},
    {"item_type": "PART"},
    {"item_type": "PART", "threshold": 1, "workstation_id": 42},
    {"item_type": "PART", "threshold": 1, "colour": "red"},
])
def test_invalid_thresholds_rejected(db_session, payload):
    with pytest.raises(ValidationError):
        threshold_service.upsert([payload])


def test_delete_threshold(db_session):
    (row,) = threshold_service.upsert([{"item_type": "PART", "threshold": 3}])
    threshold_service.delete_threshold(row.id)
    assert threshold_service.list_thresholds() == []
    with pytest.raises(NotFound):
        threshold_service.delete_threshold(row.id)

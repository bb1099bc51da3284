"""
Stock ledger tests: the ledger is the only write path and always agrees
with the stock records.
"""

import pytest

from plantops.errors import InsufficientStock
from plantops.models import StockLedgerEntry, StockRecord
from plantops.services import stock_ledger, stock_store
from plantops.validation import ValidationError


def _adjust(delta, reason=stock_ledger.REASON_ADJUSTMENT, ws=7, item_type="PRODUCT", item_id=1):
    return stock_ledger.adjust(
        workstation_id=ws, item_type=item_type, item_id=item_id, delta=delta, reason_code=reason
    )


def test_first_adjust_creates_record_and_entry(db_session):
    entry = _adjust(50, stock_ledger.REASON_REPLENISHMENT)

    assert entry.delta == 50
    assert entry.balance_after == 50
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 50


def test_running_sum_matches_record_and_last_balance(db_session):
    for delta in (10, -3, 7, -14, 2):
        _adjust(delta)

    entries = stock_ledger.history(workstation_id=7, item_type="PRODUCT", item_id=1)
    record = stock_store.get(workstation_id=7, item_type="PRODUCT", item_id=1)

    assert sum(e.delta for e in entries) == record.quantity == 2
    assert entries[0].balance_after == record.quantity
    # every entry = previous balance + delta
    chronological = list(reversed(entries))
    balance = 0
    for e in chronological:
        balance += e.delta
        assert e.balance_after == balance


def test_negative_adjust_is_rejected_without_trace(db_session):
    _adjust(4)
    entries_before = db_session.query(StockLedgerEntry).count()

    with pytest.raises(InsufficientStock) as exc:
        _adjust(-5)

    assert exc.value.available == 4
    assert exc.value.requested_delta == -5
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 4
    assert db_session.query(StockLedgerEntry).count() == entries_before


def test_negative_adjust_on_missing_key_creates_nothing(db_session):
    with pytest.raises(InsufficientStock):
        _adjust(-1, ws=8, item_type="MODULE", item_id=99)

    assert db_session.query(StockRecord).count() == 0
    assert db_session.query(StockLedgerEntry).count() == 0


def test_adjust_to_exactly_zero_is_allowed(db_session):
    _adjust(3)
    entry = _adjust(-3)
    assert entry.balance_after == 0
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 0


@pytest.mark.parametrize("kwargs, message", [
    ({"workstation_id": 12}, "workstation"),
    ({"item_type": "WIDGET"}, "item_type"),
    ({"delta": 0}, "non-zero"),
    ({"reason_code": "THEFT"}, "reason_code"),
])
def test_invalid_adjust_input(db_session, kwargs, message):
    params = dict(workstation_id=7, item_type="PRODUCT", item_id=1, delta=1,
                  reason_code=stock_ledger.REASON_ADJUSTMENT)
    params.update(kwargs)
    with pytest.raises(ValidationError) as exc:
        stock_ledger.adjust(**params)
    assert message in str(exc.value)


def test_set_absolute_writes_admin_reset_entry(db_session):
    _adjust(12)

    entry = stock_store.set_absolute(workstation_id=7, item_type="PRODUCT", item_id=1, quantity=5)

    assert entry.reason_code == stock_ledger.REASON_ADMIN_RESET
    assert entry.delta == -7
    assert entry.balance_after == 5
    assert stock_ledger.reconcile() == []


def test_set_absolute_to_current_value_is_audited_noop(db_session):
    _adjust(5)
    entry = stock_store.set_absolute(workstation_id=7, item_type="PRODUCT", item_id=1, quantity=5)
    assert entry.delta == 0
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 5


def test_set_absolute_rejects_negative(db_session):
    with pytest.raises(ValidationError):
        stock_store.set_absolute(workstation_id=7, item_type="PRODUCT", item_id=1, quantity=-1)


def test_transfer_moves_stock_between_workstations(db_session):
    _adjust(10, stock_ledger.REASON_REPLENISHMENT, ws=9, item_type="PART", item_id=3)

    debit, credit = stock_ledger.transfer(
        from_workstation_id=9, to_workstation_id=4, item_type="PART", item_id=3, quantity=4
    )

    assert (debit.reason_code, debit.delta, debit.balance_after) == ("TRANSFER_OUT", -4, 6)
    assert (credit.reason_code, credit.delta, credit.balance_after) == ("TRANSFER_IN", 4, 4)


def test_transfer_short_source_changes_nothing(db_session):
    _adjust(2, stock_ledger.REASON_REPLENISHMENT, ws=9, item_type="PART", item_id=3)

    with pytest.raises(InsufficientStock):
        stock_ledger.transfer(
            from_workstation_id=9, to_workstation_id=4, item_type="PART", item_id=3, quantity=5
        )

    assert stock_store.quantity_of(9, "PART", 3) == 2
    assert stock_store.quantity_of(4, "PART", 3) == 0
    assert db_session.query(StockLedgerEntry).count() == 1


def test_history_filters_and_orders_newest_first(db_session):
    _adjust(5)
    _adjust(6, ws=8, item_type="MODULE", item_id=2)
    _adjust(-1)

    entries = stock_ledger.history(workstation_id=7)
    assert [e.delta for e in entries] == [-1, 5]
    assert len(stock_ledger.recent(limit=2)) == 2


def test_reconcile_reports_tampered_record(db_session):
    _adjust(5)
    record = stock_store.get(workstation_id=7, item_type="PRODUCT", item_id=1)
    # bypass the ledger on purpose
    record.quantity = 9
    db_session.commit()

    mismatches = stock_ledger.reconcile()
    assert len(mismatches) == 1
    assert mismatches[0]["quantity"] == 9
    assert mismatches[0]["ledger_sum"] == 5


def test_snapshot_reads_missing_keys_as_zero(db_session):
    _adjust(3)
    snap = stock_store.snapshot([(7, "PRODUCT", 1), (7, "PRODUCT", 2)])
    assert snap == {(7, "PRODUCT", 1): 3, (7, "PRODUCT", 2): 0}

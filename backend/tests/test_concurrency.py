# Overview: Threaded concurrency tests for the stock ledger, thresholds and order transitions.

"""
Runs against a temporary SQLite file so every worker thread gets its own
connection. Workers push their own app context and remove their session
when done.
"""
import os
import tempfile
import threading
import unittest

from plantops import create_app
from plantops.errors import IllegalTransition, InsufficientStock
from plantops.extensions import db
from plantops.models import LowStockThreshold, StockLedgerEntry
from plantops.services import customer_order_service, seed_service, settings_service, stock_ledger, stock_store, threshold_service
from plantops.services.concurrency import acquire_for_transaction, atomic, registered_lock_count, stock_key


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STOCK_ADJUST_RETRY_ATTEMPTS": 10,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, target, args_list):
        results = []
        lock = threading.Lock()

        def worker(*args):
            with self.app.app_context():
                try:
                    outcome = target(*args)
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_concurrent_decrements_drain_exactly_to_zero(self):
        n = 20
        with self.app.app_context():
            stock_ledger.adjust(
                workstation_id=7, item_type="PRODUCT", item_id=1, delta=n,
                reason_code=stock_ledger.REASON_REPLENISHMENT,
            )

        def decrement():
            entry = stock_ledger.adjust(
                workstation_id=7, item_type="PRODUCT", item_id=1, delta=-1,
                reason_code=stock_ledger.REASON_FULFILLMENT,
            )
            return entry.balance_after

        results = self._run_workers(decrement, [()] * n)

        self.assertEqual([r for r in results if isinstance(r, Exception)], [])
        self.assertEqual(sorted(results), list(range(n)))
        with self.app.app_context():
            self.assertEqual(stock_store.quantity_of(7, "PRODUCT", 1), 0)
            debits = (
                db.session.query(StockLedgerEntry)
                .filter(StockLedgerEntry.delta == -1)
                .order_by(StockLedgerEntry.id)
                .all()
            )
            self.assertEqual([e.balance_after for e in debits], list(range(n - 1, -1, -1)))
            self.assertEqual(stock_ledger.reconcile(), [])

    def test_oversubscribed_decrements_never_go_negative(self):
        with self.app.app_context():
            stock_ledger.adjust(
                workstation_id=8, item_type="MODULE", item_id=2, delta=5,
                reason_code=stock_ledger.REASON_REPLENISHMENT,
            )

        def take_two():
            stock_ledger.adjust(workstation_id=8, item_type="MODULE", item_id=2, delta=-2)
            return "taken"

        results = self._run_workers(take_two, [()] * 6)

        self.assertEqual(results.count("taken"), 2)
        self.assertEqual(sum(isinstance(r, InsufficientStock) for r in results), 4)
        with self.app.app_context():
            self.assertEqual(stock_store.quantity_of(8, "MODULE", 2), 1)
            self.assertEqual(stock_ledger.reconcile(), [])

    def test_different_keys_adjust_independently(self):
        def credit(item_id):
            return stock_ledger.adjust(
                workstation_id=9, item_type="PART", item_id=item_id, delta=3,
                reason_code=stock_ledger.REASON_REPLENISHMENT,
            ).balance_after

        results = self._run_workers(credit, [(i,) for i in range(1, 9)])

        self.assertEqual(results, [3] * 8)
        with self.app.app_context():
            self.assertEqual(len(stock_store.list_records(workstation_id=9)), 8)

    def test_lock_registry_drains_after_use(self):
        def credit(item_id):
            for _ in range(3):
                stock_ledger.adjust(
                    workstation_id=9, item_type="PART", item_id=item_id, delta=1,
                    reason_code=stock_ledger.REASON_REPLENISHMENT,
                )
            return item_id

        results = self._run_workers(credit, [(i,) for i in range(1, 101)])

        self.assertEqual(sorted(results), list(range(1, 101)))
        self.assertEqual(registered_lock_count(), 0)

    def test_lock_entry_lives_only_while_held(self):
        with self.app.app_context():
            with atomic():
                acquire_for_transaction(stock_key(7, "PRODUCT", 1), stock_key(7, "PRODUCT", 2))
                # reentrant acquire does not add a second entry
                acquire_for_transaction(stock_key(7, "PRODUCT", 1))
                self.assertEqual(registered_lock_count(), 2)
            self.assertEqual(registered_lock_count(), 0)

    def test_threshold_insert_race_keeps_one_row(self):
        def upsert(value):
            (row,) = threshold_service.upsert([{"item_type": "PRODUCT", "threshold": value}])
            return row.id

        results = self._run_workers(upsert, [(v,) for v in (10, 11, 12, 13)])

        self.assertFalse([r for r in results if isinstance(r, Exception)])
        self.assertEqual(len(set(results)), 1)
        with self.app.app_context():
            rows = db.session.query(LowStockThreshold).all()
            self.assertEqual(len(rows), 1)
            self.assertIn(rows[0].threshold, (10, 11, 12, 13))

    def test_concurrent_confirm_transitions_once(self):
        with self.app.app_context():
            seed_service.seed_all()
            settings_service.set_lot_size_threshold(100)
            order = customer_order_service.create_customer_order(lines=[{"item_id": 1, "quantity": 1}])
            order_id = order.id

        def confirm():
            customer_order_service.confirm(order_id)
            return "confirmed"

        results = self._run_workers(confirm, [()] * 5)

        self.assertEqual(results.count("confirmed"), 1)
        self.assertEqual(sum(isinstance(r, IllegalTransition) for r in results), 4)


if __name__ == "__main__":
    unittest.main()

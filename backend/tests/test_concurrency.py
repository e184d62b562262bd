"""
Concurrency tests: parallel checkouts and cancellations against one
file-backed SQLite database, one session per thread.
"""
import os
import tempfile
import threading
import unittest

from retail_pos import create_app
from retail_pos.extensions import db
from retail_pos.models import Product, StockMovement, Transaction, TransactionItem, User
from retail_pos.services import inventory_service, transaction_service
from retail_pos.services.inventory_service import InsufficientStockError, ProductNotFoundError
from retail_pos.services.transaction_service import (
    AlreadyCancelledError,
    LineItemInput,
    TransactionHeader,
)


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "DB_LOCK_TIMEOUT_SECONDS": 10,
            "UNIT_OF_WORK_ATTEMPTS": 5,
            "UNIT_OF_WORK_BACKOFF_SECONDS": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            user = User(username="concurrent_user", email="concurrent@example.com")
            db.session.add(user)
            product = Product(
                sku="CONCUR-1",
                name="Concurrent Product",
                price_cents=1000,
                cost_cents=400,
                stock_quantity=10,
            )
            db.session.add(product)
            db.session.commit()
            self.user_id = user.id
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _stock(self) -> int:
        with self.app.app_context():
            return db.session.query(Product.stock_quantity).filter_by(id=self.product_id).scalar()

    def _run_threads(self, target, count):
        results = []
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(count)

        def worker():
            with self.app.app_context():
                try:
                    barrier.wait()
                    outcome = target()
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def _checkout(self, quantity):
        header = TransactionHeader(
            user_id=self.user_id,
            total_amount_cents=quantity * 1000,
            payment_type="card",
        )
        items = [LineItemInput(product_id=self.product_id, quantity=quantity, unit_price_cents=1000)]
        return transaction_service.create_transaction(header, items).id

    def test_concurrent_checkouts_never_oversell(self):
        results, errors = self._run_threads(lambda: self._checkout(3), 8)

        self.assertEqual(len(results), 3)
        self.assertEqual(len(errors), 5)
        self.assertTrue(all(isinstance(e, InsufficientStockError) for e in errors), errors)
        self.assertEqual(self._stock(), 1)

        with self.app.app_context():
            self.assertEqual(db.session.query(Transaction).count(), 3)
            reserved = sum(
                m.quantity_delta for m in db.session.query(StockMovement).filter_by(product_id=self.product_id)
            )
            self.assertEqual(reserved, -9)

    def test_concurrent_transaction_numbers_are_unique(self):
        results, errors = self._run_threads(lambda: self._checkout(1), 10)

        self.assertFalse(errors)
        with self.app.app_context():
            numbers = [n for (n,) in db.session.query(Transaction.transaction_number).all()]
        self.assertEqual(len(numbers), 10)
        self.assertEqual(len(set(numbers)), 10)
        self.assertEqual(self._stock(), 0)

    def test_concurrent_cancel_restores_once(self):
        with self.app.app_context():
            transaction_id = self._checkout(4)
        self.assertEqual(self._stock(), 6)

        results, errors = self._run_threads(
            lambda: transaction_service.cancel_transaction(transaction_id).status,
            5,
        )

        self.assertEqual(results, ["cancelled"])
        self.assertEqual(len(errors), 4)
        self.assertTrue(all(isinstance(e, AlreadyCancelledError) for e in errors), errors)
        self.assertEqual(self._stock(), 10)

    def test_retire_racing_checkout_never_orphans_items(self):
        tasks = [lambda: self._checkout(1), lambda: inventory_service.retire_product(self.product_id)]
        lock = threading.Lock()

        def next_task():
            with lock:
                task = tasks.pop()
            return task()

        results, errors = self._run_threads(next_task, 2)

        self.assertTrue(all(isinstance(e, ProductNotFoundError) for e in errors), errors)
        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            sold = db.session.query(TransactionItem).filter_by(product_id=self.product_id).count()
            if product is None:
                self.assertEqual(sold, 0)
                self.assertIn("deleted", results)
            else:
                self.assertEqual(sold, 1)
                self.assertFalse(product.is_active)
                self.assertIn("deactivated", results)


if __name__ == "__main__":
    unittest.main()

"""
Concurrency tests against a file-backed SQLite database.

Each worker thread gets its own app context and session, so the guarded
UPDATEs race on a real shared store.
"""
import os
import tempfile
import threading
import unittest
from decimal import Decimal

from sqlalchemy import func, select

from stockapp import create_app
from stockapp.extensions import db
from stockapp.models import Product, Sale, SaleItem
from stockapp.services import checkout_service, stock_service
from stockapp.services.category_service import ensure_fallback_category
from stockapp.services.checkout_service import CheckoutLine
from stockapp.services.stock_service import InsufficientStockError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            fallback = ensure_fallback_category()
            product = Product(
                barcode="8690000000001",
                name="Concurrent Product",
                stock=5,
                price=Decimal("10.00"),
                category_id=fallback.id,
            )
            db.session.add(product)
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    outcome = target()
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def _stock(self):
        with self.app.app_context():
            return stock_service.get_stock(self.product_id)

    def test_concurrent_checkouts_never_oversell(self):
        results = self._run_threads(
            lambda: checkout_service.commit([CheckoutLine("8690000000001", 1)]),
            count=10,
        )

        sale_ids = [r for r in results if isinstance(r, int)]
        rejected = [r for r in results if isinstance(r, InsufficientStockError)]
        self.assertEqual(len(sale_ids), 5)
        self.assertEqual(len(rejected), 5)
        self.assertEqual(len(results), 10)
        self.assertEqual(self._stock(), 0)

        with self.app.app_context():
            sale_count = db.session.execute(select(func.count(Sale.id))).scalar()
            sold = db.session.execute(select(func.sum(SaleItem.quantity))).scalar()
        self.assertEqual(sale_count, 5)
        self.assertEqual(sold, 5)

    def test_two_carts_race_for_last_unit(self):
        with self.app.app_context():
            stock_service.set_exact(self.product_id, 1)

        results = self._run_threads(
            lambda: checkout_service.commit([CheckoutLine("8690000000001", 1)]),
            count=2,
        )

        self.assertEqual(sum(1 for r in results if isinstance(r, int)), 1)
        self.assertEqual(sum(1 for r in results if isinstance(r, InsufficientStockError)), 1)
        self.assertEqual(self._stock(), 0)

    def test_concurrent_manual_decreases(self):
        results = self._run_threads(
            lambda: stock_service.decrease(self.product_id, 2),
            count=4,
        )

        succeeded = sum(1 for r in results if r is None)
        self.assertEqual(succeeded, 2)
        self.assertTrue(all(
            r is None or isinstance(r, InsufficientStockError) for r in results
        ))
        self.assertEqual(self._stock(), 1)


if __name__ == "__main__":
    unittest.main()

"""
Two checkouts racing for the last unit.

Uses a file-backed SQLite database so each thread gets its own connection
and the write lock is real.
"""
import threading

import pytest
from sqlalchemy.orm.exc import StaleDataError

from stockpos import create_app
from stockpos.extensions import db
from stockpos.models import Product, Sale, StockMovement, User
from stockpos.services import products_service, sales_service, stock_service
from stockpos.services.concurrency import begin_write, run_with_retry
from stockpos.services.stock_service import InsufficientStockError
from stockpos.validation import CheckoutLine, CheckoutRequest


@pytest.fixture
def race_app(tmp_path, password_hash):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
        'LOG_LEVEL': 'ERROR',
    })
    with app.app_context():
        db.create_all()
        user = User(email="race@stockpos.test", name="Racer", password_hash=password_hash)
        db.session.add(user)
        db.session.commit()
        created = products_service.create_product(patch={
            "sku": "LAST-1",
            "name": "Last Unit",
            "selling_price": 1000,
            "stock": 1,
        })
        app.config["RACE_USER_ID"] = user.id
        app.config["RACE_PRODUCT_ID"] = created["id"]
        db.session.remove()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def test_only_one_checkout_gets_the_last_unit(race_app):
    user_id = race_app.config["RACE_USER_ID"]
    product_id = race_app.config["RACE_PRODUCT_ID"]
    request_obj = CheckoutRequest(
        items=(CheckoutLine(product_id=product_id, qty=1, unit_price=1000),),
        payment_method="TRANSFER",
        paid_amount=None,
    )

    barrier = threading.Barrier(2)
    results = []
    results_lock = threading.Lock()

    def worker():
        with race_app.app_context():
            barrier.wait()
            try:
                sales_service.checkout(request_obj, user_id=user_id)
                outcome = "committed"
            except InsufficientStockError:
                outcome = "insufficient"
            except Exception as e:  # surfaced in the assertion below
                outcome = f"error: {e!r}"
            finally:
                db.session.remove()
            with results_lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(results) == ["committed", "insufficient"]

    with race_app.app_context():
        assert db.session.get(Product, product_id).stock == 0
        assert Sale.query.count() == 1
        assert StockMovement.query.filter_by(type="OUT").count() == 1
        assert stock_service.reconcile_product(product_id)["consistent"] is True
        db.session.remove()


def test_run_with_retry_retries_stale_writes(app, db_session):
    attempts = {"n": 0}

    def flaky():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise StaleDataError("row changed underneath us")
        return "done"

    assert run_with_retry(flaky, backoff_base=0) == "done"
    assert attempts["n"] == 3


def test_run_with_retry_gives_up(app, db_session):
    def always_stale():
        raise StaleDataError("still stale")

    with pytest.raises(StaleDataError):
        run_with_retry(always_stale, attempts=2, backoff_base=0)


def test_business_errors_are_not_retried(app, db_session, user, make_product, monkeypatch):
    product = make_product(stock=0)
    calls = {"n": 0}
    real_lock = sales_service._lock_products

    def counting_lock(product_ids):
        calls["n"] += 1
        return real_lock(product_ids)

    monkeypatch.setattr(sales_service, "_lock_products", counting_lock)

    with pytest.raises(InsufficientStockError):
        sales_service.checkout(
            CheckoutRequest(items=(CheckoutLine(product.id, 1, 1000),), payment_method="TRANSFER", paid_amount=None),
            user_id=user.id,
        )
    assert calls["n"] == 1


def test_begin_write_twice_in_one_context(app, db_session, make_product):
    product = make_product(stock=3)

    begin_write()
    assert db.session.get(Product, product.id).stock == 3
    # A second call ends the open transaction and starts a fresh write
    begin_write()
    assert db.session().in_transaction()
    db.session.rollback()

    assert db.session.get(Product, product.id).stock == 3

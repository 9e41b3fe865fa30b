from stockpos.extensions import db
from stockpos.models import Product, Setting, StockMovement, User
from stockpos.services import stock_service


def test_stock_check_passes_on_consistent_data(app, make_product):
    make_product(stock=5)
    make_product(stock=0)

    result = app.test_cli_runner().invoke(args=["stock", "check"])

    assert result.exit_code == 0, result.output
    assert "PASS 2 products consistent" in result.output


def test_stock_check_fails_on_drift(app, make_product):
    product = make_product(stock=5)
    db.session.execute(
        Product.__table__.update().where(Product.id == product.id).values(stock=9)
    )
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["stock", "check"])

    assert result.exit_code == 1
    assert f"FAIL Product {product.id}" in result.output
    assert "1 of 1 products are inconsistent" in result.output


def test_catalog_seed_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["catalog", "seed"])
    assert first.exit_code == 0, first.output
    assert Product.query.count() == 5
    assert StockMovement.query.filter_by(note="Opening stock").count() == 5
    assert db.session.query(Setting).filter_by(key="currency").one().value == "IDR"

    second = runner.invoke(args=["catalog", "seed"])
    assert second.exit_code == 0
    assert "already exists" in second.output
    assert Product.query.count() == 5
    assert all(row["consistent"] for row in stock_service.reconcile_all())


def test_users_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create",
        "--email", "Kasir@Shop.test",
        "--name", "Kasir",
        "--password", "longenough",
        "--no-admin",
    ])
    assert result.exit_code == 0, result.output
    user = User.query.filter_by(email="kasir@shop.test").one()
    assert user.is_admin is False

    duplicate = runner.invoke(args=[
        "users", "create", "--email", "kasir@shop.test", "--name", "Again", "--password", "longenough",
    ])
    assert duplicate.exit_code == 1
    assert "Email already registered" in duplicate.output

    short = runner.invoke(args=[
        "users", "create", "--email", "x@shop.test", "--name", "X", "--password", "abc",
    ])
    assert short.exit_code == 1
    assert "Password validation failed" in short.output

    listing = runner.invoke(args=["users", "list"])
    assert "kasir@shop.test" in listing.output


def test_system_init_creates_admin_once(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--email", "boss@shop.test", "--password", "longenough"])
    assert first.exit_code == 0, first.output
    assert User.query.filter_by(email="boss@shop.test").count() == 1

    second = runner.invoke(args=["system", "init", "--email", "boss@shop.test", "--password", "longenough"])
    assert second.exit_code == 0
    assert "already exists" in second.output
    assert User.query.count() == 1

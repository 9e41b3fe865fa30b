import pytest

from stockpos.extensions import db
from stockpos.models import Product, StockMovement, StockOpname, StockOpnameItem
from stockpos.services import opname_service
from stockpos.validation import NotFoundError, OpnameLine, OpnameRequest


def test_confirmed_count_sets_stock_to_counted(auth_client, make_product):
    product = make_product(stock=12)

    response = auth_client.post('/api/stock-opname', json={
        "items": [{"productId": product.id, "countedQty": 9}],
        "confirmAdjustment": True,
    })

    assert response.status_code == 201
    body = response.json
    assert body["adjusted"] is True
    assert body["items"][0]["systemQty"] == 12
    assert body["items"][0]["countedQty"] == 9
    assert body["items"][0]["diff"] == -3

    assert db.session.get(Product, product.id).stock == 9
    adjust = StockMovement.query.filter_by(product_id=product.id, type="ADJUST").all()
    assert len(adjust) == 1
    assert adjust[0].qty == 3
    assert adjust[0].quantity_delta == -3
    assert adjust[0].reference_type == "STOCK_OPNAME"
    assert adjust[0].reference_id == str(body["id"])


def test_count_above_system_adds_stock(auth_client, make_product):
    product = make_product(stock=2)

    auth_client.post('/api/stock-opname', json={
        "items": [{"productId": product.id, "countedQty": 6}],
        "confirmAdjustment": True,
    })

    assert db.session.get(Product, product.id).stock == 6
    adjust = StockMovement.query.filter_by(product_id=product.id, type="ADJUST").one()
    assert adjust.qty == 4
    assert adjust.quantity_delta == 4


def test_unconfirmed_count_never_touches_stock(auth_client, make_product):
    product = make_product(stock=12)

    response = auth_client.post('/api/stock-opname', json={
        "items": [{"productId": product.id, "countedQty": 0}],
        "confirmAdjustment": False,
    })

    assert response.status_code == 201
    assert response.json["adjusted"] is False
    assert response.json["items"][0]["diff"] == -12
    assert db.session.get(Product, product.id).stock == 12
    assert StockMovement.query.filter_by(type="ADJUST").count() == 0


def test_confirm_flag_defaults_to_false(auth_client, make_product):
    product = make_product(stock=4)

    response = auth_client.post('/api/stock-opname', json={
        "items": [{"productId": product.id, "countedQty": 1}],
    })

    assert response.status_code == 201
    assert db.session.get(Product, product.id).stock == 4


def test_matching_count_creates_no_movement(auth_client, make_product):
    product = make_product(stock=4)

    auth_client.post('/api/stock-opname', json={
        "items": [{"productId": product.id, "countedQty": 4}],
        "confirmAdjustment": True,
    })

    assert StockMovement.query.filter_by(type="ADJUST").count() == 0


def test_missing_product_aborts_whole_count(auth_client, make_product):
    product = make_product(stock=12)

    response = auth_client.post('/api/stock-opname', json={
        "items": [
            {"productId": product.id, "countedQty": 1},
            {"productId": 9999, "countedQty": 1},
        ],
        "confirmAdjustment": True,
    })

    assert response.status_code == 404
    assert StockOpname.query.count() == 0
    assert StockOpnameItem.query.count() == 0
    assert db.session.get(Product, product.id).stock == 12
    assert StockMovement.query.filter_by(type="ADJUST").count() == 0


@pytest.mark.parametrize("payload", [
    {"items": [], "confirmAdjustment": True},
    {"items": [{"productId": 1}], "confirmAdjustment": True},
    {"items": [{"productId": 1, "countedQty": -1}], "confirmAdjustment": True},
    {"items": [{"productId": 1, "countedQty": 1}], "confirmAdjustment": "yes"},
    {"items": [{"productId": 1, "countedQty": 1}, {"productId": 1, "countedQty": 2}]},
])
def test_malformed_count_is_rejected(auth_client, make_product, payload):
    make_product(stock=5)

    response = auth_client.post('/api/stock-opname', json=payload)

    assert response.status_code == 400
    assert StockOpname.query.count() == 0


def test_service_raises_not_found(db_session, user, make_product):
    make_product(stock=1)

    with pytest.raises(NotFoundError):
        opname_service.create_opname(
            OpnameRequest(items=(OpnameLine(product_id=5555, counted_qty=0),), confirm_adjustment=True),
            user_id=user.id,
        )
    assert StockOpname.query.count() == 0


def test_list_and_get_opnames(auth_client, make_product):
    product = make_product(stock=3)
    created = auth_client.post('/api/stock-opname', json={
        "items": [{"productId": product.id, "countedQty": 3}],
        "confirmAdjustment": False,
    })

    listing = auth_client.get('/api/stock-opname')
    assert listing.status_code == 200
    assert listing.json["pagination"]["total"] == 1
    assert listing.json["stockOpnames"][0]["id"] == created.json["id"]

    detail = auth_client.get(f'/api/stock-opname/{created.json["id"]}')
    assert detail.status_code == 200
    assert detail.json["items"][0]["product"]["sku"] == product.sku
    assert auth_client.get('/api/stock-opname/424242').status_code == 404

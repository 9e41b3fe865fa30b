from stockpos.extensions import db
from stockpos.models import Product, StockMovement
from stockpos.services import stock_service


def test_in_movement_adds_stock(auth_client, make_product):
    product = make_product(stock=4)

    response = auth_client.post('/api/stock-movements', json={
        "productId": product.id,
        "type": "IN",
        "qty": 20,
        "note": "Supplier delivery",
    })

    assert response.status_code == 201
    assert response.json["type"] == "IN"
    assert response.json["qty"] == 20
    assert response.json["quantityDelta"] == 20
    assert response.json["product"]["id"] == product.id
    assert db.session.get(Product, product.id).stock == 24
    assert StockMovement.query.filter_by(product_id=product.id, type="IN").count() == 2


def test_first_in_movement_sets_date_in(auth_client, make_product):
    product = make_product(stock=0)
    assert product.date_in is None

    auth_client.post('/api/stock-movements', json={"productId": product.id, "type": "IN", "qty": 1})

    assert db.session.get(Product, product.id).date_in is not None


def test_out_movement_cannot_exceed_stock(auth_client, make_product):
    product = make_product(stock=2)

    response = auth_client.post('/api/stock-movements', json={
        "productId": product.id,
        "type": "OUT",
        "qty": 3,
    })

    assert response.status_code == 400
    assert "Insufficient stock" in response.json["error"]
    assert db.session.get(Product, product.id).stock == 2
    assert StockMovement.query.filter_by(type="OUT").count() == 0


def test_out_movement_decrements_and_sets_date_out(auth_client, make_product):
    product = make_product(stock=2)

    response = auth_client.post('/api/stock-movements', json={
        "productId": product.id,
        "type": "OUT",
        "qty": 2,
        "referenceType": "DAMAGE",
        "referenceId": 17,
    })

    assert response.status_code == 201
    assert response.json["quantityDelta"] == -2
    assert response.json["referenceId"] == "17"
    product = db.session.get(Product, product.id)
    assert product.stock == 0
    assert product.date_out is not None


def test_manual_adjust_is_additive(auth_client, make_product):
    product = make_product(stock=7)

    response = auth_client.post('/api/stock-movements', json={
        "productId": product.id,
        "type": "ADJUST",
        "qty": 3,
    })

    assert response.status_code == 201
    assert db.session.get(Product, product.id).stock == 10


def test_movement_for_unknown_product_is_404(auth_client):
    response = auth_client.post('/api/stock-movements', json={
        "productId": 12345,
        "type": "IN",
        "qty": 1,
    })

    assert response.status_code == 404


def test_movement_validation_lists_all_fields(auth_client):
    response = auth_client.post('/api/stock-movements', json={
        "type": "MOVE",
        "qty": 0,
    })

    assert response.status_code == 400
    fields = {d["field"] for d in response.json["details"]}
    assert fields == {"productId", "type", "qty"}


def test_list_movements_filters(auth_client, make_product):
    first = make_product(stock=5)
    second = make_product(stock=5)
    auth_client.post('/api/stock-movements', json={"productId": first.id, "type": "OUT", "qty": 1})

    everything = auth_client.get('/api/stock-movements')
    assert everything.status_code == 200
    assert everything.json["pagination"]["total"] == 3

    only_out = auth_client.get('/api/stock-movements?type=OUT')
    assert [m["productId"] for m in only_out.json["movements"]] == [first.id]

    only_second = auth_client.get(f'/api/stock-movements?productId={second.id}')
    assert only_second.json["pagination"]["total"] == 1
    assert only_second.json["movements"][0]["note"] == "Opening stock"

    assert auth_client.get('/api/stock-movements?type=SIDEWAYS').status_code == 400

    movement_id = only_out.json["movements"][0]["id"]
    assert auth_client.get(f'/api/stock-movements/{movement_id}').status_code == 200
    assert auth_client.get('/api/stock-movements/99999').status_code == 404


def test_stock_matches_movement_log_after_mixed_operations(auth_client, make_product):
    product = make_product(stock=10)

    auth_client.post('/api/stock-movements', json={"productId": product.id, "type": "IN", "qty": 5})
    auth_client.post('/api/stock-movements', json={"productId": product.id, "type": "OUT", "qty": 8})
    auth_client.post('/api/stock-movements', json={"productId": product.id, "type": "ADJUST", "qty": 2})
    auth_client.post('/api/sales', json={
        "items": [{"productId": product.id, "qty": 4, "unitPrice": 1000}],
        "paymentMethod": "TRANSFER",
    })
    auth_client.post('/api/stock-opname', json={
        "items": [{"productId": product.id, "countedQty": 1}],
        "confirmAdjustment": True,
    })
    auth_client.put(f'/api/products/{product.id}', json={
        "sku": product.sku,
        "name": product.name,
        "sellingPrice": 1000,
        "stock": 6,
    })

    result = stock_service.reconcile_product(product.id)
    assert result["stock"] == 6
    assert result["movementTotal"] == 6
    assert result["consistent"] is True
    assert all(row["consistent"] for row in stock_service.reconcile_all())

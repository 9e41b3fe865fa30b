import csv
import io

from stockpos.services import reporting_service
from stockpos.time_utils import utcnow


def _sell(auth_client, product, qty, method="TRANSFER", unit_price=None):
    payload = {
        "items": [{"productId": product.id, "qty": qty, "unitPrice": unit_price or product.selling_price}],
        "paymentMethod": method,
    }
    if method == "CASH":
        payload["paidAmount"] = qty * (unit_price or product.selling_price)
    response = auth_client.post('/api/sales', json=payload)
    assert response.status_code == 201
    return response.json


def test_settings_roundtrip(auth_client):
    assert auth_client.get('/api/settings').json == {}

    response = auth_client.post('/api/settings', json={"settings": {
        "store_name": "Kawok",
        "low_stock_threshold": 5,
        "receipt_footer": None,
        "show_logo": True,
    }})

    assert response.status_code == 200
    assert response.json["settings"] == {
        "low_stock_threshold": "5",
        "receipt_footer": None,
        "show_logo": "true",
        "store_name": "Kawok",
    }

    auth_client.post('/api/settings', json={"settings": {"store_name": "Kawok Vape"}})
    assert auth_client.get('/api/settings').json["store_name"] == "Kawok Vape"


def test_settings_reject_bad_payloads(auth_client):
    assert auth_client.post('/api/settings', json={"settings": "nope"}).status_code == 400
    assert auth_client.post('/api/settings', json={}).status_code == 400

    response = auth_client.post('/api/settings', json={"settings": {"nested": {"a": 1}, "ok": "yes"}})
    assert response.status_code == 400
    assert response.json["details"][0]["field"] == "nested"
    assert auth_client.get('/api/settings').json == {}


def test_sales_report_summary(auth_client, make_product):
    product = make_product(stock=10, selling_price=1000)
    _sell(auth_client, product, 2, method="CASH")
    _sell(auth_client, product, 3)

    response = auth_client.get('/api/reports?type=sales')

    assert response.status_code == 200
    summary = response.json["summary"]
    assert summary["totalAmount"] == 5000
    assert summary["totalTransactions"] == 2
    assert summary["totalItems"] == 5
    assert summary["paymentMethodStats"] == {"CASH": 1, "TRANSFER": 1}
    assert summary["averageTransaction"] == 2500


def test_sales_report_date_range(auth_client, make_product):
    product = make_product(stock=10, selling_price=1000)
    _sell(auth_client, product, 1)
    today = utcnow().strftime("%Y-%m-%d")

    in_range = auth_client.get(f'/api/reports?type=sales&fromDate={today}&toDate={today}')
    assert in_range.json["summary"]["totalTransactions"] == 1

    past = auth_client.get('/api/reports?type=sales&fromDate=2001-01-01&toDate=2001-01-31')
    assert past.json["summary"]["totalTransactions"] == 0

    assert auth_client.get('/api/reports?type=sales&fromDate=yesterday').status_code == 400


def test_stock_report_flags_low_and_out_of_stock(auth_client, make_product):
    make_product(stock=0, selling_price=500, category="Liquid")
    make_product(stock=4, selling_price=1000, category="Liquid")
    make_product(stock=40, selling_price=100)

    response = auth_client.get('/api/reports?type=stock')

    summary = response.json["summary"]
    assert summary["totalProducts"] == 3
    assert summary["totalStockItems"] == 44
    assert summary["totalStockValue"] == 8000
    assert summary["lowStockProducts"] == 2
    assert summary["outOfStockProducts"] == 1
    assert summary["categoryStats"]["Liquid"]["count"] == 2
    assert summary["categoryStats"]["Uncategorized"]["totalStock"] == 40


def test_top_selling_report(auth_client, make_product):
    slow = make_product(stock=10, selling_price=1000)
    fast = make_product(stock=10, selling_price=1000)
    _sell(auth_client, slow, 1)
    _sell(auth_client, fast, 3)
    _sell(auth_client, fast, 2)

    top = auth_client.get('/api/reports?type=top-selling').json["topProducts"]

    assert [row["id"] for row in top] == [fast.id, slow.id]
    assert top[0]["totalSold"] == 5
    assert top[0]["totalRevenue"] == 5000
    assert top[0]["transactionCount"] == 2


def test_stock_movements_report(auth_client, make_product):
    product = make_product(stock=10)
    auth_client.post('/api/stock-movements', json={"productId": product.id, "type": "OUT", "qty": 4})

    data = auth_client.get('/api/reports?type=stock-movements').json

    assert data["summary"]["totalMovements"] == 2
    assert data["summary"]["typeStats"] == {"IN": 10, "OUT": 4}


def test_unknown_report_type_and_format(auth_client):
    assert auth_client.get('/api/reports?type=profit').status_code == 400
    assert auth_client.get('/api/reports?type=sales&format=xlsx').status_code == 400


def test_csv_export(auth_client, make_product):
    make_product(stock=3, selling_price=2500, name='Coil "Mesh" Pack', sku="KV003")

    response = auth_client.get('/api/reports?type=stock&format=csv')

    assert response.status_code == 200
    assert response.mimetype == "text/csv"
    assert response.headers["Content-Disposition"] == (
        f'attachment; filename="report-stock-{utcnow():%Y-%m-%d}.csv"'
    )

    lines = response.get_data(as_text=True).splitlines()
    assert lines[0] == "SKU,Name,Category,Stock,Selling Price,Stock Value"
    assert lines[1] == '"KV003","Coil ""Mesh"" Pack","","3","2500","7500"'
    rows = list(csv.reader(io.StringIO("\n".join(lines))))
    assert rows[1][1] == 'Coil "Mesh" Pack'


def test_report_filename_uses_date():
    from datetime import datetime

    assert reporting_service.report_filename("sales", datetime(2024, 1, 31, 23, 0)) == "report-sales-2024-01-31.csv"


def test_dashboard_summary(auth_client, make_product):
    low = make_product(stock=3, selling_price=1000)
    make_product(stock=50, selling_price=100)
    _sell(auth_client, low, 1)

    data = auth_client.get('/api/dashboard').json

    assert data["todayTotal"] == 1000
    assert data["todayTransactionCount"] == 1
    assert data["totalProducts"] == 2
    assert data["totalStockValue"] == 2 * 1000 + 50 * 100
    assert [p["id"] for p in data["lowStockProducts"]] == [low.id]
    assert len(data["recentSales"]) == 1
    assert data["topSellingProducts"][0]["id"] == low.id
    assert data["generatedAt"].endswith("Z")


def test_health_endpoint(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert set(response.json["checks"]) == {"database", "sessions"}

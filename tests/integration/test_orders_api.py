import agrimarket.orders.service as orders_service

def _intent_body(**overrides):
    body = {
        "items": [{"product_id": "p1", "quantity": 3, "unit_price": 1, "product_name": "Pommes"}],
        "delivery": {"option": "dawn", "time": "06:00", "address": "12 rue des Champs"},
        "total_amount": 1,
    }
    body.update(overrides)
    return body

def test_payment_intent_success(client, monkeypatch):
    captured = {}

    def _create(req, user):
        captured["req"] = req
        captured["user"] = user
        return {"success": True, "order_id": "ORD-1", "order_name": "Pommes", "amount": 31500, "validated_items": [], "reused": False}
    monkeypatch.setattr("agrimarket.orders.service.create_payment_intent", _create)
    res = client.post("/api/v1/orders/payment-intent", json=_intent_body())
    assert res.status_code == 200
    assert res.json()["amount"] == 31500
    assert captured["req"].delivery.option == "dawn"
    assert captured["user"]["id"] == "test-user"

def test_payment_intent_end_to_end_server_pricing(client, monkeypatch, retailer):
    monkeypatch.setattr("agrimarket.orders.service.get_current_retailer", lambda user: retailer)
    monkeypatch.setattr(
        "agrimarket.orders.service.catalog_repository.get_authoritative_prices",
        lambda keys: {("p1", None): {
            "product_id": "p1", "variant_id": None, "product_name": "Pommes", "wholesaler_id": "w1",
            "unit_price": 10000, "shipping_fee_per_unit": 500, "moq": 1, "stock_quantity": 100,
            "catalog_version": None,
        }},
    )
    monkeypatch.setattr("agrimarket.orders.service.repository.create_order_record",
                        lambda **kw: {"order_id": kw["order_id"], "order_name": kw["order_name"], "order_numbers": [kw["order_id"]]})
    res = client.post("/api/v1/orders/payment-intent", json=_intent_body())
    assert res.status_code == 200
    data = res.json()
    assert data["amount"] == 31500
    assert data["validated_items"][0]["shipping_fee"] == 1500

def test_payment_intent_error_status_mapping(client, monkeypatch):
    expected = {
        orders_service.UNAUTHENTICATED: 401,
        orders_service.PRODUCT_NOT_FOUND: 404,
        orders_service.STALE_PRICE: 409,
        orders_service.ORDER_ALREADY_PAID: 409,
        orders_service.PRICING_FAILED: 502,
        orders_service.UNEXPECTED: 500,
        orders_service.VALIDATION_FAILED: 400,
    }
    for code, status in expected.items():
        monkeypatch.setattr("agrimarket.orders.service.create_payment_intent",
                            lambda req, user, code=code: {"success": False, "code": code, "error": "x"})
        res = client.post("/api/v1/orders/payment-intent", json=_intent_body())
        assert res.status_code == status, code
        assert res.json()["code"] == code

def test_payment_intent_rejects_unknown_delivery_option(client):
    res = client.post("/api/v1/orders/payment-intent", json=_intent_body(delivery={"option": "teleport"}))
    assert res.status_code == 422

from agrimarket.payments.bridge import PendingOrderBridge, normalize_items, PENDING_ORDER_KEY

def test_normalize_items_defaults_shipping_fee():
    items = normalize_items([{"product_id": "p1"}, {"product_id": "p2", "shipping_fee": 1500}, {"product_id": "p3", "shipping_fee": None}])
    assert [i["shipping_fee"] for i in items] == [0, 1500, 0]

def test_save_load_match_clear():
    storage = {}
    bridge = PendingOrderBridge(storage)
    record = bridge.save("ORD-1", [{"product_id": "p1"}], {"option": "normal"}, 31500, idempotency_key="k")
    assert storage[PENDING_ORDER_KEY] is record
    assert record["items"][0]["shipping_fee"] == 0
    assert record["created_at"]
    assert bridge.load()["total_amount"] == 31500
    assert bridge.matches("ORD-1") is True
    assert bridge.matches("ORD-2") is False
    bridge.clear()
    assert bridge.load() is None
    assert bridge.matches("ORD-1") is False

def test_save_overwrites_previous_attempt():
    storage = {}
    bridge = PendingOrderBridge(storage)
    bridge.save("ORD-1", [], None, 1000)
    bridge.save("ORD-2", [], None, 2000)
    assert bridge.load()["order_id"] == "ORD-2"
    assert bridge.load()["delivery"] == {}

def test_load_ignores_garbage():
    assert PendingOrderBridge({PENDING_ORDER_KEY: "oops"}).load() is None
    assert PendingOrderBridge({PENDING_ORDER_KEY: {"items": []}}).load() is None

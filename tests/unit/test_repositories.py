from unittest.mock import MagicMock

import pytest

import agrimarket.catalog.repository as catalog_repo
import agrimarket.orders.repository as orders_repo
import agrimarket.cart.repository as cart_repo

class _Resp:
    def __init__(self, data=None):
        self.data = data

PRODUCTS = [
    {"id": "p1", "name": "Pommes", "price": 10000, "shipping_fee": 500, "moq": 2, "stock_quantity": 40,
     "wholesaler_id": "w1", "is_active": True, "updated_at": "2026-01-01T00:00:00+00:00"},
    {"id": "p2", "name": "Poires", "price": 8000, "shipping_fee": None, "moq": None, "stock_quantity": 5,
     "wholesaler_id": "w2", "is_active": False, "updated_at": "2026-01-01T00:00:00+00:00"},
]
VARIANTS = [
    {"id": "v1", "product_id": "p1", "name": "5kg", "price": 6000, "stock_quantity": 12,
     "is_active": True, "updated_at": "2026-02-01T00:00:00+00:00"},
    {"id": "v9", "product_id": "other", "name": "?", "price": 1, "stock_quantity": 1,
     "is_active": True, "updated_at": "2026-01-01T00:00:00+00:00"},
]

@pytest.fixture
def catalog(monkeypatch):
    monkeypatch.setattr(catalog_repo, "fetch_products_by_ids", lambda ids: [p for p in PRODUCTS if p["id"] in ids])
    monkeypatch.setattr(catalog_repo, "fetch_variants_by_ids", lambda ids: [v for v in VARIANTS if v["id"] in ids])

def test_authoritative_price_product(catalog):
    price = catalog_repo.get_authoritative_price("p1")
    assert price["unit_price"] == 10000
    assert price["shipping_fee_per_unit"] == 500
    assert price["moq"] == 2
    assert price["stock_quantity"] == 40
    assert price["catalog_version"] == "2026-01-01T00:00:00+00:00"

def test_authoritative_price_variant_overrides_price_and_stock(catalog):
    price = catalog_repo.get_authoritative_price("p1", "v1")
    assert price["unit_price"] == 6000
    assert price["stock_quantity"] == 12
    assert price["shipping_fee_per_unit"] == 500
    assert price["catalog_version"] == "2026-02-01T00:00:00+00:00"

def test_authoritative_prices_skip_inactive_missing_and_foreign_variants(catalog):
    prices = catalog_repo.get_authoritative_prices([("p1", None), ("p2", None), ("p3", None), ("p1", "v9")])
    assert list(prices) == [("p1", None)]

def test_fetch_products_empty_ids_does_not_query(monkeypatch):
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: pytest.fail("pas de requête"))
    assert catalog_repo.fetch_products_by_ids([]) == []

def test_decrement_stock_falls_back_to_direct_update(monkeypatch):
    client = MagicMock()
    client.rpc.return_value.execute.side_effect = Exception("function not found")
    table = client.table.return_value
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = _Resp([{"stock_quantity": 3}])
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    assert catalog_repo.decrement_stock("p1", 5) is True
    table.update.assert_called_once_with({"stock_quantity": 0})

def test_order_number_for():
    assert orders_repo.order_number_for("ORD-1", 0, 1) == "ORD-1"
    assert orders_repo.order_number_for("ORD-1", 1, 3) == "ORD-1-2"

def test_build_order_rows():
    lines = [
        {"product_id": "p1", "variant_id": None, "wholesaler_id": "w1", "quantity": 3, "unit_price": 10000, "shipping_fee": 1500, "total": 31500},
        {"product_id": "p2", "variant_id": "v2", "wholesaler_id": "w2", "quantity": 1, "unit_price": 2000, "shipping_fee": 0, "total": 2000},
    ]
    rows = orders_repo.build_order_rows(
        retailer_id="ret-1",
        order_id="ORD-1",
        order_name="Pommes et 1 autre(s)",
        lines=lines,
        delivery={"option": "dawn", "time": "06:00", "note": "", "address": "12 rue"},
        amount=33500,
        idempotency_key="k",
    )
    assert [r["order_number"] for r in rows] == ["ORD-1-1", "ORD-1-2"]
    assert all(r["payment_order_id"] == "ORD-1" and r["payment_amount"] == 33500 for r in rows)
    assert rows[0]["delivery_option"] == "dawn"
    assert rows[0]["request_note"] is None
    assert rows[0]["status"] == "pending"
    assert rows[1]["total_amount"] == 2000

def test_create_order_record_inserts_all_rows(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    res = orders_repo.create_order_record(
        retailer_id="ret-1", order_id="ORD-1", order_name="Pommes",
        lines=[{"product_id": "p1", "quantity": 1, "unit_price": 1000, "total": 1000}],
        delivery={}, amount=1000,
    )
    assert res == {"order_id": "ORD-1", "order_name": "Pommes", "order_numbers": ["ORD-1"]}
    client.table.assert_called_with("orders")
    inserted = client.table.return_value.insert.call_args[0][0]
    assert inserted[0]["delivery_address"] == ""

def test_create_order_record_failure_returns_none(monkeypatch):
    client = MagicMock()
    client.table.return_value.insert.return_value.execute.side_effect = Exception("constraint")
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    res = orders_repo.create_order_record(
        retailer_id="ret-1", order_id="ORD-1", order_name="x",
        lines=[{"product_id": "p1", "quantity": 1, "unit_price": 1, "total": 1}], delivery={}, amount=1,
    )
    assert res is None

def test_find_orders_by_idempotency_key_without_key_does_not_query(monkeypatch):
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: pytest.fail("pas de requête"))
    assert orders_repo.find_orders_by_idempotency_key("ret-1", "") == []

def test_find_orders_by_idempotency_key_error_returns_none(monkeypatch):
    client = MagicMock()
    client.table.return_value.select.return_value.eq.return_value.eq.return_value.order.return_value.execute.side_effect = Exception("timeout")
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    assert orders_repo.find_orders_by_idempotency_key("ret-1", "k-1") is None

def test_mark_orders_paid_updates_pending_rows_only(monkeypatch):
    client = MagicMock()
    update = client.table.return_value.update
    update.return_value.eq.return_value.eq.return_value.execute.return_value = _Resp([{"product_id": "p1", "quantity": 2}])
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    res = orders_repo.mark_orders_paid("ORD-1", "pi_1", "2026-01-01T00:00:00+00:00")
    assert res == [{"product_id": "p1", "quantity": 2}]
    assert update.call_args[0][0]["payment_status"] == "paid"
    update.return_value.eq.assert_called_with("payment_order_id", "ORD-1")
    update.return_value.eq.return_value.eq.assert_called_with("payment_status", "pending")

def test_mark_orders_paid_nothing_pending_returns_empty(monkeypatch):
    client = MagicMock()
    client.table.return_value.update.return_value.eq.return_value.eq.return_value.execute.return_value = _Resp([])
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    assert orders_repo.mark_orders_paid("ORD-1", "pi_1", "2026-01-01T00:00:00+00:00") == []

def test_mark_orders_paid_error_returns_none(monkeypatch):
    client = MagicMock()
    client.table.return_value.update.return_value.eq.return_value.eq.return_value.execute.side_effect = Exception("down")
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    assert orders_repo.mark_orders_paid("ORD-1", "pi_1", "2026-01-01T00:00:00+00:00") is None

def test_cart_upsert_inserts_when_absent(monkeypatch):
    client = MagicMock()
    table = client.table.return_value
    table.select.return_value.eq.return_value.eq.return_value.is_.return_value.limit.return_value.execute.return_value = _Resp([])
    table.insert.return_value.execute.return_value = _Resp([{"id": "ci-1"}])
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: client)
    res = cart_repo.upsert_cart_line("ret-1", {"product_id": "p1", "quantity": 2, "unit_price": 1000})
    assert res == {"id": "ci-1"}
    payload = table.insert.call_args[0][0]
    assert payload["quantity"] == 2
    assert payload["variant_id"] is None

def test_cart_mirror_errors_are_not_raised(monkeypatch):
    def _boom():
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant")
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", _boom)
    assert cart_repo.upsert_cart_line("ret-1", {"product_id": "p1", "quantity": 1}) is None
    assert cart_repo.delete_cart_line("ret-1", "p1") is False
    assert cart_repo.clear_cart_lines("ret-1") is False

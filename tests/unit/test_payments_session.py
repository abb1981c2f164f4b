import pytest

from agrimarket.payments.bridge import PendingOrderBridge, PENDING_ORDER_KEY
from agrimarket.payments.session import (
    PaymentSession,
    should_sync_amount,
    READY,
    UNINITIALIZED,
    SUCCEEDED,
    PLACEHOLDER_AMOUNT,
    PLACEHOLDER_ORDER_ID,
    SESSION_CLOSED,
    REQUEST_IN_FLIGHT,
)
from agrimarket.payments.widget import (
    PaymentWidget,
    PaymentWidgetError,
    INIT_FAILED,
    WIDGET_NOT_READY,
    ORDER_INFO_MISSING,
    PAYMENT_FAILED,
)

class FakeWidget(PaymentWidget):
    def __init__(self, fail_init=False, fail_request=None):
        self.calls = []
        self.amounts = []
        self.fail_init = fail_init
        self.fail_request = fail_request

    def init(self, client_key, customer_key):
        self.calls.append("init")
        if self.fail_init:
            raise PaymentWidgetError("script indisponible", code=INIT_FAILED)

    def set_amount(self, amount):
        self.calls.append("set_amount")
        self.amounts.append(amount)

    def render_payment_methods(self, selector):
        self.calls.append("render_payment_methods")

    def render_agreements(self, selector):
        self.calls.append("render_agreements")

    def request_payment(self, **kwargs):
        self.calls.append("request_payment")
        self.last_request = kwargs
        if self.fail_request:
            raise self.fail_request
        return {"id": "cs_test_1", "url": "https://checkout.example/cs_test_1"}

def _intent(amount=31500, **overrides):
    intent = {
        "success": True,
        "order_id": "ORD-20260101-000000-ABC",
        "order_name": "Pommes et 1 autre(s)",
        "amount": amount,
        "validated_items": [{"product_id": "p1", "quantity": 3, "total": amount}],
    }
    intent.update(overrides)
    return intent

def _session(widget=None, **kwargs):
    return PaymentSession(
        widget or FakeWidget(),
        client_key="pk_test",
        customer_key="customer_x",
        success_url="https://shop.example/ok",
        fail_url="https://shop.example/ko",
        **kwargs,
    )

def test_should_sync_amount():
    assert should_sync_amount(None, 1000) is True
    assert should_sync_amount(1000, 1000) is False
    assert should_sync_amount(1000, 1200) is True
    assert should_sync_amount(1000, None) is False

def test_mount_uses_placeholder_without_order():
    widget = FakeWidget()
    session = _session(widget)
    res = session.mount()
    assert res == {"success": True, "state": READY}
    assert session.order_id == PLACEHOLDER_ORDER_ID
    assert widget.amounts == [PLACEHOLDER_AMOUNT]

def test_mount_is_idempotent():
    widget = FakeWidget()
    session = _session(widget)
    session.mount(amount=5000)
    session.mount(amount=7000)
    assert widget.calls.count("init") == 1
    assert session.amount == 5000

def test_init_failure_reports_and_stays_uninitialized():
    failures = []
    session = _session(FakeWidget(fail_init=True), on_fail=failures.append)
    res = session.mount()
    assert res["success"] is False
    assert res["code"] == INIT_FAILED
    assert failures[0]["code"] == INIT_FAILED
    assert session.state == UNINITIALIZED

def test_render_only_once():
    widget = FakeWidget()
    session = _session(widget)
    session.mount()
    assert session.render()["rendered"] is True
    assert session.render()["rendered"] is False
    assert widget.calls.count("render_payment_methods") == 1
    assert widget.calls.count("render_agreements") == 1

def test_render_before_mount():
    assert _session().render()["code"] == WIDGET_NOT_READY

def test_sync_amount_skips_identical_amount():
    widget = FakeWidget()
    session = _session(widget)
    session.mount(amount=31500)
    res = session.sync_amount(31500)
    assert res["synced"] is False
    assert widget.amounts == [31500]
    assert session.sync_amount(40000)["synced"] is True
    assert widget.amounts == [31500, 40000]

def test_request_payment_order_of_operations():
    # Arrange
    widget = FakeWidget()
    storage = {}
    bridge = PendingOrderBridge(storage)
    session = _session(widget)
    session.mount()
    session.render()
    order = []

    def _create_intent():
        order.append("intent")
        assert PENDING_ORDER_KEY not in storage
        return _intent()

    original_save = bridge.save

    def _save(*args, **kwargs):
        order.append("bridge")
        assert widget.amounts[-1] == 31500
        assert "request_payment" not in widget.calls
        return original_save(*args, **kwargs)
    bridge.save = _save

    # Act
    res = session.request_payment(
        _create_intent,
        customer={"name": "Ferme du Test", "email": "r@example.com"},
        bridge=bridge,
        delivery={"option": "dawn"},
        idempotency_key="k-1",
    )

    # Assert
    assert order == ["intent", "bridge"]
    assert widget.calls[-2:] == ["set_amount", "request_payment"]
    assert res["success"] is True
    assert res["redirect_url"] == "https://checkout.example/cs_test_1"
    assert res["amount"] == 31500
    assert storage[PENDING_ORDER_KEY]["order_id"] == "ORD-20260101-000000-ABC"
    assert storage[PENDING_ORDER_KEY]["idempotency_key"] == "k-1"
    assert widget.last_request["order_id"] == "ORD-20260101-000000-ABC"
    assert widget.last_request["customer_name"] == "Ferme du Test"
    assert session.in_flight is False

def test_request_payment_skips_amount_sync_when_unchanged():
    widget = FakeWidget()
    session = _session(widget)
    session.mount(amount=31500)
    session.request_payment(lambda: _intent(31500))
    assert widget.amounts == [31500]

def test_request_payment_customer_fallbacks():
    widget = FakeWidget()
    session = _session(widget)
    session.mount()
    session.request_payment(lambda: _intent(), customer={"name": "", "email": None})
    assert widget.last_request["customer_name"] == "Client"
    assert widget.last_request["customer_email"] == ""

def test_request_payment_widget_not_ready():
    failures = []
    session = _session(on_fail=failures.append)
    called = []
    res = session.request_payment(lambda: called.append(1) or _intent())
    assert res["code"] == WIDGET_NOT_READY
    assert failures and failures[0]["code"] == WIDGET_NOT_READY
    assert called == []

def test_request_payment_intent_failure_returns_to_ready():
    failures = []
    storage = {}
    session = _session(on_fail=failures.append)
    session.mount()
    res = session.request_payment(
        lambda: {"success": False, "code": "STALE_PRICE", "error": "Prix modifié"},
        bridge=PendingOrderBridge(storage),
    )
    assert res["code"] == "STALE_PRICE"
    assert failures[0]["code"] == "STALE_PRICE"
    assert session.state == READY
    assert storage == {}

def test_request_payment_missing_order_info():
    storage = {}
    widget = FakeWidget()
    session = _session(widget)
    session.mount()
    res = session.request_payment(lambda: _intent(order_name=""), bridge=PendingOrderBridge(storage))
    assert res["code"] == ORDER_INFO_MISSING
    assert storage == {}
    assert "request_payment" not in widget.calls

def test_request_payment_widget_error_then_retry():
    widget = FakeWidget(fail_request=PaymentWidgetError("refusé", code=PAYMENT_FAILED))
    session = _session(widget)
    session.mount()
    res = session.request_payment(lambda: _intent())
    assert res["code"] == PAYMENT_FAILED
    assert session.state == READY
    widget.fail_request = None
    assert session.request_payment(lambda: _intent())["success"] is True

def test_request_payment_in_flight_guard():
    session = _session()
    session.mount()
    session.in_flight = True
    res = session.request_payment(lambda: _intent())
    assert res["code"] == REQUEST_IN_FLIGHT

def test_closed_session_ignores_callbacks():
    successes, failures = [], []
    session = _session(on_success=successes.append, on_fail=failures.append)
    session.mount()
    session.close()
    assert session.handle_success("pk", "ORD-1", 1000)["code"] == SESSION_CLOSED
    assert session.handle_fail("X", "y")["ignored"] is True
    assert session.request_payment(lambda: _intent())["code"] == SESSION_CLOSED
    assert successes == [] and failures == []

def test_session_closed_while_intent_in_flight():
    widget = FakeWidget()
    session = _session(widget)
    session.mount()

    def _intent_then_close():
        session.close()
        return _intent()
    res = session.request_payment(_intent_then_close)
    assert res["code"] == SESSION_CLOSED
    assert "request_payment" not in widget.calls

def test_handle_success_and_fail():
    successes, failures = [], []
    session = _session(on_success=successes.append, on_fail=failures.append)
    session.mount()
    res = session.handle_success("pi_123", "ORD-1", 31500)
    assert res["success"] is True
    assert session.state == SUCCEEDED
    assert successes == [{"payment_key": "pi_123", "order_id": "ORD-1", "amount": 31500}]
    session.handle_fail(None, None)
    assert failures[0]["code"] == PAYMENT_FAILED
    assert session.state == READY

def test_widget_contract_is_abstract():
    with pytest.raises(TypeError):
        PaymentWidget()

    class _Partial(PaymentWidget):
        def init(self, client_key, customer_key):
            pass

    with pytest.raises(TypeError):
        _Partial()

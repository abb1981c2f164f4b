"""
Contrat du widget de paiement piloté par PaymentSession.
Implémentation concrète: agrimarket.payments.stripe_client.StripeCheckoutWidget.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

INIT_FAILED = "INIT_FAILED"
WIDGET_NOT_READY = "WIDGET_NOT_READY"
ORDER_INFO_MISSING = "ORDER_INFO_MISSING"
PAYMENT_FAILED = "PAYMENT_FAILED"

class PaymentWidgetError(Exception):
    def __init__(self, message: str, code: str = PAYMENT_FAILED):
        super().__init__(message)
        self.code = code

class PaymentWidget(ABC):
    @abstractmethod
    def init(self, client_key: str, customer_key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_amount(self, amount: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def render_payment_methods(self, selector: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def render_agreements(self, selector: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def request_payment(
        self,
        *,
        order_id: str,
        order_name: str,
        customer_name: str,
        customer_email: str,
        success_url: str,
        fail_url: str,
    ) -> Dict[str, Any]:
        """Retourne au minimum {"id", "url"}: url de redirection vers le prestataire."""
        raise NotImplementedError

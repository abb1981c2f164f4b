"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
Stripe Checkout joue le rôle de widget de paiement (redirection pleine page).
"""
import logging
import stripe
from typing import Any, Dict, List, Optional
from fastapi import Request
from agrimarket.config import (
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET as WEBHOOK_SECRET,
    PAYMENT_CURRENCY,
    PAYMENT_METHOD_TYPES,
)
from .widget import PaymentWidget, PaymentWidgetError, INIT_FAILED, PAYMENT_FAILED

logger = logging.getLogger(__name__)

# Devises sans sous-unité côté Stripe (montant transmis tel quel)
ZERO_DECIMAL_CURRENCIES = {"krw", "jpy", "vnd", "clp", "pyg", "xaf", "xof", "ugx", "rwf"}

# module agrimarket.payments.stripe_client
def require_stripe() -> stripe:
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def to_minor_units(amount: float, currency: str = PAYMENT_CURRENCY) -> int:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return int(round(amount))
    return int(round(amount * 100))

def from_minor_units(amount: Optional[int], currency: str = PAYMENT_CURRENCY) -> Optional[float]:
    if amount is None:
        return None
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return amount
    return amount / 100

def create_session(
    *,
    line_items: List[Dict[str, Any]],
    mode: str,
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, Any],
    client_reference_id: Optional[str] = None,
    customer_email: Optional[str] = None,
    payment_method_types: Optional[List[str]] = None,
    consent_collection: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout.
    - line_items: lignes Stripe (price_data/quantity)
    - mode: généralement "payment"
    - success_url / cancel_url: URLs de redirection
    - metadata: ex {"order_id": "ORD-..."}
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    params: Dict[str, Any] = {
        "line_items": line_items,
        "mode": mode,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "payment_method_types": payment_method_types or ["card"],
    }
    if client_reference_id:
        params["client_reference_id"] = client_reference_id
    if customer_email:
        params["customer_email"] = customer_email
    if consent_collection:
        params["consent_collection"] = consent_collection
    session = stripe.checkout.Session.create(**params)
    # stripe retourne un objet; on le traite comme dict-compatible
    return dict(session)

def get_session(session_id: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict session incluant "id", "payment_status", "amount_total", "metadata", etc.
    """
    require_stripe()
    session = stripe.checkout.Session.retrieve(session_id)
    return dict(session)

async def parse_event(request: Request):
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    - Valide la signature via Webhook.construct_event (STRIPE_WEBHOOK_SECRET)
    """
    require_stripe()
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or request.headers.get("Stripe-Signature")
    return stripe.Webhook.construct_event(payload, sig_header, WEBHOOK_SECRET or "")

class StripeCheckoutWidget(PaymentWidget):
    """
    Widget de paiement adossé à Stripe Checkout.
    - init: vérifie la configuration Stripe (INIT_FAILED sinon)
    - set_amount: montant de la session à créer
    - render_*: enregistre les moyens de paiement et l'acceptation des CGV
    - request_payment: crée la session Checkout et renvoie l'URL de redirection
    """

    def __init__(self, currency: str = PAYMENT_CURRENCY, payment_method_types: Optional[List[str]] = None):
        self.currency = currency
        self.payment_method_types = list(payment_method_types or PAYMENT_METHOD_TYPES)
        self.client_key = ""
        self.customer_key = ""
        self.amount: float = 0
        self.methods_selector: Optional[str] = None
        self.agreements_selector: Optional[str] = None

    def init(self, client_key: str, customer_key: str) -> None:
        if not STRIPE_SECRET_KEY:
            raise PaymentWidgetError("Paiement indisponible: configuration Stripe manquante", code=INIT_FAILED)
        require_stripe()
        self.client_key = client_key
        self.customer_key = customer_key

    def set_amount(self, amount: float) -> None:
        self.amount = amount

    def render_payment_methods(self, selector: str) -> None:
        self.methods_selector = selector

    def render_agreements(self, selector: str) -> None:
        self.agreements_selector = selector

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
        line_items = [{
            "quantity": 1,
            "price_data": {
                "currency": self.currency,
                "unit_amount": to_minor_units(self.amount, self.currency),
                "product_data": {"name": order_name},
            },
        }]
        metadata = {
            "order_id": order_id,
            "customer_key": self.customer_key,
            "customer_name": customer_name,
        }
        try:
            session = create_session(
                line_items=line_items,
                mode="payment",
                success_url=success_url,
                cancel_url=fail_url,
                metadata=metadata,
                client_reference_id=order_id,
                customer_email=customer_email or None,
                payment_method_types=self.payment_method_types,
                consent_collection={"terms_of_service": "required"} if self.agreements_selector else None,
            )
        except Exception as e:
            logger.exception("payments.stripe request_payment failed order_id=%s", order_id)
            raise PaymentWidgetError(getattr(e, "user_message", None) or "La demande de paiement a échoué", code=PAYMENT_FAILED) from e
        if not session.get("url"):
            raise PaymentWidgetError("Session de paiement invalide", code=PAYMENT_FAILED)
        return {"id": session.get("id"), "url": session.get("url")}

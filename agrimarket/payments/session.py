"""
Session de paiement: machine à états autour du widget de paiement.

uninitialized -> widget_loading -> ready -> (amount_syncing) -> requesting -> succeeded | failed
- failed revient à ready (le détaillant peut réessayer)
- close() abandonne la session: les callbacks ultérieurs sont ignorés
"""
import logging
from typing import Any, Callable, Dict, Optional

from .bridge import PendingOrderBridge
from .widget import (
    PaymentWidget,
    PaymentWidgetError,
    INIT_FAILED,
    WIDGET_NOT_READY,
    ORDER_INFO_MISSING,
    PAYMENT_FAILED,
)

logger = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
WIDGET_LOADING = "widget_loading"
READY = "ready"
AMOUNT_SYNCING = "amount_syncing"
REQUESTING = "requesting"
SUCCEEDED = "succeeded"
FAILED = "failed"

# Configuration provisoire tant qu'aucune commande n'existe
PLACEHOLDER_AMOUNT = 1000
PLACEHOLDER_ORDER_ID = "ORD-PENDING"
PLACEHOLDER_ORDER_NAME = "Commande en préparation"

CUSTOMER_NAME_FALLBACK = "Client"
CUSTOMER_EMAIL_FALLBACK = ""

SESSION_CLOSED = "SESSION_CLOSED"
REQUEST_IN_FLIGHT = "REQUEST_IN_FLIGHT"

def should_sync_amount(current: Optional[float], next_amount: Optional[float]) -> bool:
    """
    Mise à jour du montant du widget uniquement s'il change.
    Renvoyer un montant identique perturbe certains moyens de paiement (virement instantané).
    """
    if next_amount is None:
        return False
    return current != next_amount

class PaymentSession:
    def __init__(
        self,
        widget: PaymentWidget,
        *,
        client_key: str,
        customer_key: str,
        success_url: str,
        fail_url: str,
        on_success: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_fail: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.widget = widget
        self.client_key = client_key
        self.customer_key = customer_key
        self.success_url = success_url
        self.fail_url = fail_url
        self.on_success = on_success
        self.on_fail = on_fail

        self.state = UNINITIALIZED
        self.amount: Optional[float] = None
        self.order_id = ""
        self.order_name = ""
        self.widget_ready = False
        self.in_flight = False
        self.rendered = False
        self.discarded = False
        self.error: Optional[Dict[str, Any]] = None
        self.result: Optional[Dict[str, Any]] = None

    def _closed(self) -> Dict[str, Any]:
        return {"success": False, "code": SESSION_CLOSED, "error": "Session de paiement fermée", "ignored": True}

    def _fail(self, code: str, message: str, **extra: Any) -> Dict[str, Any]:
        self.state = FAILED
        self.error = {"code": code, "message": message, **extra}
        logger.warning("payments.session failed code=%s order_id=%s: %s", code, self.order_id, message)
        if self.on_fail:
            self.on_fail(self.error)
        # Le modal reste ouvert: retour à ready si le widget est chargé
        self.state = READY if self.widget_ready else UNINITIALIZED
        return {"success": False, "code": code, "error": message, **extra}

    def mount(self, amount: Optional[float] = None, order_id: str = "", order_name: str = "") -> Dict[str, Any]:
        """Charge le widget et le configure (montant/commande provisoires si pas encore de commande)."""
        if self.discarded:
            return self._closed()
        if self.widget_ready:
            return {"success": True, "state": self.state}
        self.state = WIDGET_LOADING
        try:
            self.widget.init(client_key=self.client_key, customer_key=self.customer_key)
            if order_id:
                self.order_id, self.order_name = order_id, order_name or order_id
            else:
                self.order_id, self.order_name = PLACEHOLDER_ORDER_ID, PLACEHOLDER_ORDER_NAME
            initial = amount if amount and amount > 0 else PLACEHOLDER_AMOUNT
            self.widget.set_amount(initial)
            self.amount = initial
        except Exception as e:
            logger.exception("payments.session widget init failed")
            code = e.code if isinstance(e, PaymentWidgetError) else INIT_FAILED
            return self._fail(code, str(e) or "Le chargement du module de paiement a échoué")
        self.widget_ready = True
        self.state = READY
        return {"success": True, "state": self.state}

    def render(self, methods_selector: str = "#payment-methods", agreements_selector: str = "#agreements") -> Dict[str, Any]:
        """Affiche moyens de paiement et CGV une seule fois par session."""
        if self.discarded:
            return self._closed()
        if not self.widget_ready:
            return {"success": False, "code": WIDGET_NOT_READY, "error": "Le module de paiement n'est pas prêt"}
        if self.rendered:
            return {"success": True, "rendered": False}
        try:
            self.widget.render_payment_methods(methods_selector)
            self.widget.render_agreements(agreements_selector)
        except Exception:
            logger.exception("payments.session render failed")
            return {"success": False, "code": WIDGET_NOT_READY, "error": "Affichage du module de paiement impossible"}
        self.rendered = True
        return {"success": True, "rendered": True}

    def _apply_amount(self, amount: float, resume_state: str) -> bool:
        if not should_sync_amount(self.amount, amount):
            return False
        self.state = AMOUNT_SYNCING
        self.widget.set_amount(amount)
        self.amount = amount
        self.state = resume_state
        return True

    def sync_amount(self, amount: float) -> Dict[str, Any]:
        """Resynchronise le montant (ex: total du panier modifié) lorsque la session est prête."""
        if self.discarded:
            return self._closed()
        if self.state != READY:
            return {"success": False, "code": WIDGET_NOT_READY, "error": "Le module de paiement n'est pas prêt"}
        return {"success": True, "synced": self._apply_amount(amount, READY), "amount": self.amount}

    def request_payment(
        self,
        create_intent: Callable[[], Dict[str, Any]],
        customer: Optional[Dict[str, Any]] = None,
        bridge: Optional[PendingOrderBridge] = None,
        delivery: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Demande de paiement:
        1) création de la commande côté serveur (montant autoritaire)
        2) synchronisation du montant du widget
        3) écriture de la commande en attente (survit à la redirection)
        4) appel du widget (redirection vers le prestataire)
        """
        if self.discarded:
            return self._closed()
        if self.in_flight:
            return {"success": False, "code": REQUEST_IN_FLIGHT, "error": "Un paiement est déjà en cours"}
        if not self.widget_ready or self.state != READY:
            error = {"code": WIDGET_NOT_READY, "message": "Le module de paiement n'est pas prêt"}
            if self.on_fail:
                self.on_fail(error)
            return {"success": False, "code": WIDGET_NOT_READY, "error": error["message"]}

        self.state = REQUESTING
        self.in_flight = True
        try:
            try:
                intent = create_intent()
            except Exception:
                logger.exception("payments.session create_intent raised")
                intent = {"success": False, "code": PAYMENT_FAILED, "error": "La création de la commande a échoué"}
            if self.discarded:
                return self._closed()
            if not intent.get("success"):
                extra = {"errors": intent["errors"]} if intent.get("errors") else {}
                return self._fail(intent.get("code") or PAYMENT_FAILED, intent.get("error") or "La création de la commande a échoué", **extra)

            order_id, order_name = intent.get("order_id"), intent.get("order_name")
            if not order_id or not order_name:
                return self._fail(ORDER_INFO_MISSING, "Informations de commande manquantes")
            self.order_id, self.order_name = order_id, order_name

            try:
                self._apply_amount(intent["amount"], REQUESTING)
                if bridge is not None:
                    bridge.save(
                        order_id,
                        intent.get("validated_items") or [],
                        delivery,
                        intent["amount"],
                        idempotency_key=idempotency_key,
                    )
                customer = customer or {}
                response = self.widget.request_payment(
                    order_id=order_id,
                    order_name=order_name,
                    customer_name=customer.get("name") or CUSTOMER_NAME_FALLBACK,
                    customer_email=customer.get("email") or CUSTOMER_EMAIL_FALLBACK,
                    success_url=self.success_url,
                    fail_url=self.fail_url,
                )
            except PaymentWidgetError as e:
                return self._fail(e.code, str(e))
            except Exception:
                logger.exception("payments.session request_payment failed order_id=%s", order_id)
                return self._fail(PAYMENT_FAILED, "La demande de paiement a échoué")

            logger.info("payments.session requested order_id=%s amount=%s", order_id, self.amount)
            return {
                "success": True,
                "order_id": order_id,
                "order_name": order_name,
                "amount": self.amount,
                "session_id": response.get("id"),
                "redirect_url": response.get("url"),
                "reused": bool(intent.get("reused")),
            }
        finally:
            self.in_flight = False

    def handle_success(self, payment_key: str, order_id: str, amount: float) -> Dict[str, Any]:
        if self.discarded:
            return self._closed()
        self.state = SUCCEEDED
        self.result = {"payment_key": payment_key, "order_id": order_id, "amount": amount}
        if self.on_success:
            self.on_success(self.result)
        return {"success": True, **self.result}

    def handle_fail(self, code: Optional[str], message: Optional[str]) -> Dict[str, Any]:
        if self.discarded:
            return self._closed()
        return self._fail(code or PAYMENT_FAILED, message or "Le paiement a échoué")

    def close(self) -> None:
        self.discarded = True

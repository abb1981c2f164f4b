"""
Cas d'usage 'payments': orchestre panier, commande, session de paiement et rapprochement.
"""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from agrimarket.config import STRIPE_PUBLIC_KEY, PAYMENT_SUCCESS_PATH, PAYMENT_FAIL_PATH
from agrimarket.cart.validation import validate_cart_items, can_checkout
from agrimarket.cart.totals import aggregate_totals
from agrimarket.catalog import repository as catalog_repository
from agrimarket.orders import repository as orders_repository
from agrimarket.orders import service as orders_service
from agrimarket.orders.models import DeliveryInfo, OrderLineRequest, PaymentIntentRequest
from . import stripe_client
from .bridge import PendingOrderBridge
from .session import PaymentSession
from .widget import PaymentWidget

logger = logging.getLogger(__name__)

CART_INVALID = "CART_INVALID"
PAYMENT_NOT_CONFIRMED = "PAYMENT_NOT_CONFIRMED"
PENDING_ORDER_MISSING = "PENDING_ORDER_MISSING"
ORDER_MISMATCH = "ORDER_MISMATCH"
AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
PERSISTENCE_FAILED = "PERSISTENCE_FAILED"

def customer_key_for(user: Dict[str, Any]) -> str:
    """Clé client stable et opaque dérivée de l'id utilisateur."""
    digest = hashlib.sha256(str(user.get("id") or "").encode("utf-8")).hexdigest()[:24]
    return f"customer_{digest}"

def return_urls(base_url: str) -> Dict[str, str]:
    base = base_url.rstrip("/")
    sep = "&" if "?" in PAYMENT_SUCCESS_PATH else "?"
    return {
        "success_url": f"{base}{PAYMENT_SUCCESS_PATH}{sep}session_id={{CHECKOUT_SESSION_ID}}",
        "fail_url": f"{base}{PAYMENT_FAIL_PATH}",
    }

def customer_from_user(user: Dict[str, Any]) -> Dict[str, str]:
    metadata = user.get("metadata") or {}
    return {"name": metadata.get("full_name") or "", "email": user.get("email") or ""}

def request_checkout_payment(
    *,
    user: Dict[str, Any],
    lines: Iterable[Any],
    bridge: PendingOrderBridge,
    base_url: str,
    delivery: Optional[DeliveryInfo] = None,
    selected_ids: Optional[List[str]] = None,
    idempotency_key: Optional[str] = None,
    widget: Optional[PaymentWidget] = None,
) -> Dict[str, Any]:
    """
    Passage en caisse complet:
    - validation du panier (bloquante)
    - session de paiement: chargement, affichage, création de commande, redirection
    Retour: {success, order_id, order_name, amount, redirect_url} ou {success: False, code, error}
    """
    lines = list(lines)
    check = validate_cart_items(lines, selected_ids)
    if not can_checkout(check):
        return {"success": False, "code": CART_INVALID, "error": check["errors"][0]["message"], "errors": check["errors"]}

    if selected_ids is not None:
        wanted = set(selected_ids)
        lines = [line for line in lines if line.id in wanted]
    delivery = delivery or DeliveryInfo()
    provisional = aggregate_totals(lines)["total"]
    intent_request = PaymentIntentRequest(
        items=[
            OrderLineRequest(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                product_name=line.product_name,
                catalog_version=line.catalog_version,
            )
            for line in lines
        ],
        delivery=delivery,
        total_amount=provisional,
        idempotency_key=idempotency_key,
    )

    urls = return_urls(base_url)
    session = PaymentSession(
        widget or stripe_client.StripeCheckoutWidget(),
        client_key=STRIPE_PUBLIC_KEY,
        customer_key=customer_key_for(user),
        success_url=urls["success_url"],
        fail_url=urls["fail_url"],
    )
    mounted = session.mount(amount=provisional)
    if not mounted.get("success"):
        return mounted
    session.render()
    result = session.request_payment(
        lambda: orders_service.create_payment_intent(intent_request, user),
        customer=customer_from_user(user),
        bridge=bridge,
        delivery=delivery.model_dump(),
        idempotency_key=idempotency_key,
    )
    session.close()
    return result

def settle_order(order_id: str, payment_key: str, paid_amount: Optional[float]) -> Dict[str, Any]:
    """
    Rapproche un paiement confirmé avec la commande persistée puis la passe en payée.
    - Idempotent: une commande déjà payée n'est pas modifiée
    - Le stock est décrémenté une seule fois, au passage en payé
    """
    rows = orders_repository.get_orders_by_payment_order_id(order_id)
    if not rows:
        return {"success": False, "code": ORDER_NOT_FOUND, "error": f"Commande introuvable: {order_id}"}

    expected = rows[0].get("payment_amount")
    if expected is None:
        expected = sum(r.get("total_amount") or 0 for r in rows)
    if paid_amount is None or paid_amount != expected:
        logger.warning("payments.settle amount mismatch order_id=%s expected=%s paid=%s", order_id, expected, paid_amount)
        return {"success": False, "code": AMOUNT_MISMATCH, "error": "Le montant payé ne correspond pas à la commande"}

    order_numbers = [r.get("order_number") for r in rows]
    if all(r.get("payment_status") == "paid" for r in rows):
        logger.info("payments.settle already paid order_id=%s", order_id)
        return {"success": True, "order_id": order_id, "order_numbers": order_numbers, "amount": expected, "already_paid": True}

    paid_at = datetime.now(timezone.utc).isoformat()
    updated = orders_repository.mark_orders_paid(order_id, payment_key, paid_at)
    if updated is None:
        return {"success": False, "code": PERSISTENCE_FAILED, "error": "Impossible de mettre à jour la commande"}
    if not updated:
        # Webhook et page de retour concurrents: l'autre traitement a déjà payé et décrémenté
        logger.info("payments.settle concurrently paid order_id=%s", order_id)
        return {"success": True, "order_id": order_id, "order_numbers": order_numbers, "amount": expected, "already_paid": True}
    for row in updated:
        catalog_repository.decrement_stock(row.get("product_id"), int(row.get("quantity") or 0))
    logger.info("payments.settle paid order_id=%s amount=%s rows=%s", order_id, expected, len(updated))
    return {"success": True, "order_id": order_id, "order_numbers": order_numbers, "amount": expected, "already_paid": False}

def _session_order_id(session: Dict[str, Any]) -> str:
    return str((session.get("metadata") or {}).get("order_id") or session.get("client_reference_id") or "")

def confirm_checkout(session_id: str, bridge: PendingOrderBridge) -> Dict[str, Any]:
    """
    Retour du prestataire (page de succès):
    - la session Stripe doit être payée
    - order_id et montant doivent correspondre à la commande en attente puis à la commande persistée
    - la commande en attente est effacée après succès
    """
    try:
        session = stripe_client.get_session(session_id)
    except Exception:
        logger.exception("payments.confirm get_session failed session_id=%s", session_id)
        return {"success": False, "code": PAYMENT_NOT_CONFIRMED, "error": "Session de paiement introuvable"}

    payment_status = session.get("payment_status") or ""
    if payment_status != "paid":
        return {"success": False, "code": PAYMENT_NOT_CONFIRMED, "error": f"Paiement non confirmé (payment_status={payment_status})"}

    pending = bridge.load()
    if not pending:
        return {"success": False, "code": PENDING_ORDER_MISSING, "error": "Aucune commande en attente pour ce paiement"}

    order_id = _session_order_id(session)
    if not bridge.matches(order_id):
        logger.warning("payments.confirm order mismatch pending=%s session=%s", pending.get("order_id"), order_id)
        return {"success": False, "code": ORDER_MISMATCH, "error": "Le paiement ne correspond pas à la commande en cours"}

    paid_amount = stripe_client.from_minor_units(session.get("amount_total"))
    if paid_amount != pending.get("total_amount"):
        logger.warning("payments.confirm amount mismatch order_id=%s pending=%s paid=%s", order_id, pending.get("total_amount"), paid_amount)
        return {"success": False, "code": AMOUNT_MISMATCH, "error": "Le montant payé ne correspond pas à la commande"}

    result = settle_order(order_id, payment_key=session.get("payment_intent") or session_id, paid_amount=paid_amount)
    if result.get("success"):
        bridge.clear()
    return result

def handle_webhook_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """checkout.session.completed -> rapprochement avec la commande persistée (sans commande en attente)."""
    if (event or {}).get("type") != "checkout.session.completed":
        return {"status": "ignored"}
    session = ((event.get("data") or {}).get("object")) or {}
    if session.get("payment_status") != "paid":
        return {"status": "ignored"}
    order_id = _session_order_id(session)
    result = settle_order(
        order_id,
        payment_key=session.get("payment_intent") or session.get("id") or "",
        paid_amount=stripe_client.from_minor_units(session.get("amount_total")),
    )
    if not result.get("success"):
        logger.warning("payments.webhook settle failed order_id=%s code=%s", order_id, result.get("code"))
        return {"status": "error", "code": result.get("code")}
    return {"status": "ok", "order_id": order_id, "already_paid": result.get("already_paid", False)}

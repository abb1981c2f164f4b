import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from agrimarket.utils.security import require_user
from agrimarket.utils.rate_limit import optional_rate_limit
from agrimarket.cart import service as cart_service
from agrimarket.infra.checkout_state import checkout_state
from agrimarket.orders.models import DeliveryInfo
from agrimarket.orders.views import status_for
from . import stripe_client
from . import service as payments_service
from .bridge import PendingOrderBridge
from .widget import INIT_FAILED, PAYMENT_FAILED

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

STATUS_BY_CODE = {
    payments_service.CART_INVALID: 400,
    INIT_FAILED: 503,
    PAYMENT_FAILED: 502,
    payments_service.PAYMENT_NOT_CONFIRMED: 400,
    payments_service.PENDING_ORDER_MISSING: 409,
    payments_service.ORDER_MISMATCH: 409,
    payments_service.AMOUNT_MISMATCH: 409,
    payments_service.ORDER_NOT_FOUND: 404,
    payments_service.PERSISTENCE_FAILED: 502,
}

class CheckoutRequest(BaseModel):
    selected_ids: Optional[List[str]] = None
    delivery: DeliveryInfo = Field(default_factory=DeliveryInfo)
    idempotency_key: Optional[str] = None

def _failure_response(result: Dict[str, Any]) -> JSONResponse:
    status = STATUS_BY_CODE.get(result.get("code")) or status_for(result)
    return JSONResponse(status_code=status, content=result)

# module agrimarket.payments.views
@router.post("/request", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def request_payment(body: CheckoutRequest, request: Request, user: Dict[str, Any] = Depends(require_user)):
    """
    Passage en caisse du panier de session.
    - Bloqué (400) si la validation du panier signale une erreur
    - Crée la commande (montant serveur), enregistre la commande en attente puis la session Stripe
    - Réponse: {success, order_id, order_name, amount, redirect_url}
    """
    store = cart_service.load_cart(request.session)
    result = payments_service.request_checkout_payment(
        user=user,
        lines=store.lines,
        bridge=PendingOrderBridge(checkout_state(request.session)),
        base_url=str(request.base_url),
        delivery=body.delivery,
        selected_ids=body.selected_ids,
        idempotency_key=body.idempotency_key,
    )
    if not result.get("success"):
        return _failure_response(result)
    return result

@router.get("/confirm")
def confirm_checkout_get(request: Request, session_id: str, user: Dict[str, Any] = Depends(require_user)):
    """
    Retour de paiement réussi: rapproche la session Stripe avec la commande en attente.
    - Succès: commande payée, commande en attente effacée, panier vidé
    """
    result = payments_service.confirm_checkout(session_id, PendingOrderBridge(checkout_state(request.session)))
    if not result.get("success"):
        return _failure_response(result)
    store = cart_service.load_cart(request.session)
    store.clear_cart()
    cart_service.save_cart(request.session, store)
    cart_service.mirror_clear(user)
    return result

@router.post("/confirm")
async def confirm_checkout_post(request: Request, user: Dict[str, Any] = Depends(require_user)):
    """
    Variante POST: accepte session_id en query ou JSON body {"session_id": "..."}.
    """
    session_id = request.query_params.get("session_id")
    if not session_id:
        try:
            body = await request.json()
            session_id = (body or {}).get("session_id")
        except ValueError:
            session_id = None
    if not session_id:
        raise HTTPException(status_code=400, detail="session_id manquant")
    return confirm_checkout_get(request, session_id=session_id, user=user)

@router.get("/fail")
def payment_failed(request: Request, code: Optional[str] = None, message: Optional[str] = None):
    """Retour de paiement échoué/annulé: la commande en attente est conservée pour réessayer."""
    pending = PendingOrderBridge(checkout_state(request.session)).load()
    return {
        "success": False,
        "code": code or "PAYMENT_CANCELED",
        "error": message or "Le paiement a été annulé ou a échoué",
        "order_id": (pending or {}).get("order_id"),
    }

@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe: checkout.session.completed -> commande passée en payée.
    - Signature validée par stripe_client.parse_event
    - Réponses: {"status": "ok" | "ignored" | "error", ...}
    """
    try:
        event = await stripe_client.parse_event(request)
    except Exception:
        logger.exception("Erreur webhook_stripe")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")
    result = payments_service.handle_webhook_event(event)
    logger.info("payments.webhook type=%s status=%s", (event or {}).get("type"), result.get("status"))
    return JSONResponse(result)

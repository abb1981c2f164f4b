import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from agrimarket.utils.security import require_user
from agrimarket.utils.rate_limit import optional_rate_limit
from .models import PaymentIntentRequest
from . import service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])

# Codes d'échec -> statut HTTP
STATUS_BY_CODE = {
    service.UNAUTHENTICATED: 401,
    service.PRODUCT_NOT_FOUND: 404,
    service.STALE_PRICE: 409,
    service.ORDER_ALREADY_PAID: 409,
    service.PRICING_FAILED: 502,
    service.PERSISTENCE_FAILED: 502,
    service.UNEXPECTED: 500,
}

def status_for(result: Dict[str, Any]) -> int:
    return STATUS_BY_CODE.get(result.get("code"), 400)

@router.post("/payment-intent", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment_intent(body: PaymentIntentRequest, user: Dict[str, Any] = Depends(require_user)):
    """
    Crée la commande côté serveur avant paiement.
    - Prix, frais de livraison et montant recalculés depuis le catalogue
    - Réponse: {success, order_id, order_name, amount, validated_items, reused}
    """
    result = service.create_payment_intent(body, user)
    if not result["success"]:
        return JSONResponse(status_code=status_for(result), content=result)
    return result

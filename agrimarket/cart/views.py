import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from agrimarket.utils.security import require_user
from agrimarket.utils.rate_limit import optional_rate_limit
from .models import AddCartItemRequest, UpdateCartItemRequest, ValidateCartRequest
from . import service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])

# module agrimarket.cart.views
@router.get("")
def get_cart(request: Request, user: Dict[str, Any] = Depends(require_user)):
    """Panier courant: lignes, totaux (livraison à l'unité) et validation MOQ/stock."""
    store = service.load_cart(request.session)
    return service.cart_snapshot(store)

@router.post("/items", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def add_item(body: AddCartItemRequest, request: Request, user: Dict[str, Any] = Depends(require_user)):
    """
    Ajoute un produit au panier.
    - Fusion si le couple (product_id, variant_id) existe déjà (quantités cumulées)
    - 400 si la quantité est invalide (aucune mutation)
    """
    store = service.load_cart(request.session)
    result = store.add_to_cart(body.model_dump())
    if not result["success"]:
        return JSONResponse(status_code=400, content=result)
    service.save_cart(request.session, store)
    service.mirror_upsert(user, result["item"])
    logger.info("cart.add product_id=%s merged=%s", body.product_id, result["merged"])
    return {**result, "summary": store.get_summary()}

@router.patch("/items/{item_id}", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def update_item(item_id: str, body: UpdateCartItemRequest, request: Request, user: Dict[str, Any] = Depends(require_user)):
    store = service.load_cart(request.session)
    result = store.update_cart_item(item_id, body.quantity)
    if not result["success"]:
        status = 404 if result["code"] == "ITEM_NOT_FOUND" else 400
        return JSONResponse(status_code=status, content=result)
    service.save_cart(request.session, store)
    service.mirror_upsert(user, result["item"])
    return {**result, "summary": store.get_summary()}

@router.delete("/items/{item_id}")
def remove_item(item_id: str, request: Request, user: Dict[str, Any] = Depends(require_user)):
    """Retire une ligne; un id inconnu n'est pas une erreur."""
    store = service.load_cart(request.session)
    line = store.get(item_id)
    result = store.remove_from_cart(item_id)
    service.save_cart(request.session, store)
    if line is not None:
        service.mirror_remove(user, line.model_dump())
    return {**result, "summary": store.get_summary()}

@router.delete("")
def clear_cart(request: Request, user: Dict[str, Any] = Depends(require_user)):
    store = service.load_cart(request.session)
    result = store.clear_cart()
    service.save_cart(request.session, store)
    service.mirror_clear(user)
    return {**result, "summary": store.get_summary()}

@router.post("/validate")
def validate_cart(body: ValidateCartRequest, request: Request, user: Dict[str, Any] = Depends(require_user)):
    """Validation avant paiement (sélection optionnelle de lignes)."""
    store = service.load_cart(request.session)
    return service.cart_snapshot(store, body.selected_ids)

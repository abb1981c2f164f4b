"""
Cas d'usage 'orders': création de l'intention de commande/paiement.

Le montant est toujours recalculé côté serveur à partir du catalogue courant;
le total transmis par le client n'est qu'indicatif (écart journalisé).
"""
import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from agrimarket.cart.store import coerce_quantity
from agrimarket.cart.totals import calculate_totals
from agrimarket.cart.validation import validate_cart_items
from agrimarket.catalog import repository as catalog_repository
from agrimarket.retailers.service import get_current_retailer
from . import repository
from .models import PaymentIntentRequest

logger = logging.getLogger(__name__)

UNAUTHENTICATED = "UNAUTHENTICATED"
EMPTY_ORDER = "EMPTY_ORDER"
INVALID_QUANTITY = "INVALID_QUANTITY"
PRICING_FAILED = "PRICING_FAILED"
PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
STALE_PRICE = "STALE_PRICE"
VALIDATION_FAILED = "VALIDATION_FAILED"
INVALID_AMOUNT = "INVALID_AMOUNT"
PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
ORDER_ALREADY_PAID = "ORDER_ALREADY_PAID"
UNEXPECTED = "UNEXPECTED"

GENERIC_ERROR_MESSAGE = "Une erreur inattendue est survenue, veuillez réessayer."

def _failure(code: str, error: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "code": code, "error": error, **extra}

def generate_order_id(now: Optional[datetime] = None) -> str:
    """Identifiant lisible: ORD-YYYYMMDD-HHMMSS-XXX."""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(3))
    return f"ORD-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"

def build_order_name(items: List[Dict[str, Any]]) -> str:
    """Nom de commande: premier produit, suivi du nombre d'autres articles."""
    first = (items[0].get("product_name") if items else "") or "Produit"
    if len(items) <= 1:
        return first
    return f"{first} et {len(items) - 1} autre(s)"

def _parse_ts(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

def is_newer_version(current: Optional[str], snapshot: Optional[str]) -> bool:
    """True si la version catalogue courante est postérieure à l'instantané du détaillant."""
    if not current or not snapshot:
        return False
    cur, snap = _parse_ts(current), _parse_ts(snapshot)
    if cur is None or snap is None or (cur.tzinfo is None) != (snap.tzinfo is None):
        return current > snapshot
    return cur > snap

def _merge_lines(request: PaymentIntentRequest) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
    merged: Dict[Tuple[str, Optional[str]], Dict[str, Any]] = {}
    for item in request.items:
        qty = coerce_quantity(item.quantity)
        if qty is None:
            name = item.product_name or item.product_id
            return [], _failure(INVALID_QUANTITY, f"Quantité invalide pour {name}")
        key = (item.product_id, item.variant_id or None)
        if key in merged:
            merged[key]["quantity"] += qty
        else:
            merged[key] = {
                "product_id": item.product_id,
                "variant_id": item.variant_id or None,
                "quantity": qty,
                "product_name": item.product_name or "",
                "catalog_version": item.catalog_version,
            }
    return list(merged.values()), None

def _intent_from_rows(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    items = [
        {
            "product_id": r.get("product_id"),
            "variant_id": r.get("variant_id"),
            "wholesaler_id": r.get("wholesaler_id"),
            "quantity": r.get("quantity"),
            "unit_price": r.get("unit_price"),
            "shipping_fee": r.get("shipping_fee") or 0,
            "total": r.get("total_amount"),
        }
        for r in rows
    ]
    amount = rows[0].get("payment_amount")
    if amount is None:
        amount = sum(i["total"] or 0 for i in items)
    return {
        "success": True,
        "order_id": rows[0].get("payment_order_id"),
        "order_name": rows[0].get("order_name") or "",
        "amount": amount,
        "validated_items": items,
        "reused": True,
    }

def _reprice(lines: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
    try:
        prices = catalog_repository.get_authoritative_prices([(l["product_id"], l["variant_id"]) for l in lines])
    except Exception:
        logger.exception("orders.intent pricing lookup failed")
        return [], _failure(PRICING_FAILED, "Impossible de récupérer les prix actuels, veuillez réessayer.")

    validated: List[Dict[str, Any]] = []
    for line in lines:
        price = prices.get((line["product_id"], line["variant_id"]))
        label = line["product_name"] or line["product_id"]
        if price is None:
            return [], _failure(
                PRODUCT_NOT_FOUND,
                f"Produit introuvable ou indisponible: {label}",
                product_id=line["product_id"],
            )
        name = price["product_name"] or label
        if is_newer_version(price.get("catalog_version"), line.get("catalog_version")):
            return [], _failure(
                STALE_PRICE,
                f"Les informations de {name} ont changé, veuillez vérifier votre panier.",
                product_id=line["product_id"],
            )
        totals = calculate_totals(price["unit_price"], price["shipping_fee_per_unit"], line["quantity"])
        validated.append({
            "product_id": line["product_id"],
            "variant_id": line["variant_id"],
            "product_name": name,
            "wholesaler_id": price.get("wholesaler_id"),
            "quantity": line["quantity"],
            "unit_price": price["unit_price"],
            "moq": price["moq"],
            "stock_quantity": price["stock_quantity"],
            "product_total": totals["product_total"],
            "shipping_fee": totals["shipping_fee"] or 0,
            "total": totals["total"],
        })
    return validated, None

def _create_payment_intent(request: PaymentIntentRequest, user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    retailer = get_current_retailer(user)
    if not retailer:
        return _failure(UNAUTHENTICATED, "Connexion détaillant requise.")

    lines, error = _merge_lines(request)
    if error:
        return error
    if not lines:
        return _failure(EMPTY_ORDER, "Aucun article à commander.")

    if request.idempotency_key:
        existing = repository.find_orders_by_idempotency_key(retailer["id"], request.idempotency_key)
        if existing is None:
            return _failure(PERSISTENCE_FAILED, "Impossible de vérifier la commande existante, veuillez réessayer.")
        if any(r.get("payment_status") == "paid" for r in existing):
            logger.warning("orders.intent key already paid order_id=%s key=%s", existing[0].get("payment_order_id"), request.idempotency_key)
            return _failure(
                ORDER_ALREADY_PAID,
                "Cette commande a déjà été payée.",
                order_id=existing[0].get("payment_order_id"),
            )
        if existing:
            logger.info("orders.intent reused order_id=%s key=%s", existing[0].get("payment_order_id"), request.idempotency_key)
            return _intent_from_rows(existing)

    items, error = _reprice(lines)
    if error:
        return error

    check = validate_cart_items(items)
    if not check["is_valid"]:
        return _failure(
            VALIDATION_FAILED,
            "Certains articles ne respectent pas les conditions de commande.",
            errors=check["errors"],
        )

    amount = sum(i["total"] for i in items)
    if amount <= 0:
        return _failure(INVALID_AMOUNT, "Le montant de la commande est invalide.")
    if request.total_amount is not None and request.total_amount != amount:
        logger.warning(
            "orders.intent client total mismatch retailer_id=%s client=%s server=%s",
            retailer["id"], request.total_amount, amount,
        )

    order_id = generate_order_id()
    order_name = build_order_name(items)
    delivery = request.delivery.model_dump()
    if not delivery.get("address"):
        delivery["address"] = retailer.get("address") or ""
    record = repository.create_order_record(
        retailer_id=retailer["id"],
        order_id=order_id,
        order_name=order_name,
        lines=items,
        delivery=delivery,
        amount=amount,
        idempotency_key=request.idempotency_key,
    )
    if not record:
        return _failure(PERSISTENCE_FAILED, "Impossible d'enregistrer la commande, veuillez réessayer.")

    logger.info("orders.intent created order_id=%s amount=%s items=%s", order_id, amount, len(items))
    return {
        "success": True,
        "order_id": record["order_id"],
        "order_name": record["order_name"],
        "amount": amount,
        "validated_items": items,
        "reused": False,
    }

def create_payment_intent(request: PaymentIntentRequest, user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Crée l'intention de commande/paiement autoritaire:
    - identité détaillant, lignes non vides, clé d'idempotence (réutilisation)
    - re-calcul des prix depuis le catalogue, contrôle version, MOQ et stock
    - persistance des lignes 'orders' avec le montant serveur
    Retour: {success, order_id, order_name, amount, validated_items, reused}
    ou {success: False, code, error[, errors]}; aucune exception ne remonte.
    """
    try:
        return _create_payment_intent(request, user)
    except Exception:
        logger.exception("orders.intent unexpected error")
        return _failure(UNEXPECTED, GENERIC_ERROR_MESSAGE)

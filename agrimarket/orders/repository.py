"""
Accès aux données pour la feature 'orders' (table orders).

Une ligne 'orders' par produit commandé; les lignes d'un même paiement partagent
payment_order_id (identifiant transmis au prestataire de paiement).
"""
from typing import Any, Dict, List, Optional
import logging
import agrimarket.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def order_number_for(order_id: str, index: int, count: int) -> str:
    """order_id si une seule ligne, sinon order_id-1, order_id-2, ..."""
    return order_id if count == 1 else f"{order_id}-{index + 1}"

def build_order_rows(
    *,
    retailer_id: str,
    order_id: str,
    order_name: str,
    lines: List[Dict[str, Any]],
    delivery: Dict[str, Any],
    amount: float,
    idempotency_key: Optional[str] = None,
) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for i, line in enumerate(lines):
        rows.append({
            "retailer_id": retailer_id,
            "product_id": line["product_id"],
            "variant_id": line.get("variant_id"),
            "wholesaler_id": line.get("wholesaler_id"),
            "order_number": order_number_for(order_id, i, len(lines)),
            "payment_order_id": order_id,
            "order_name": order_name,
            "quantity": line["quantity"],
            "unit_price": line["unit_price"],
            "shipping_fee": line.get("shipping_fee") or 0,
            "total_amount": line["total"],
            "payment_amount": amount,
            "delivery_address": delivery.get("address") or "",
            "request_note": delivery.get("note") or None,
            "delivery_option": delivery.get("option") or "normal",
            "delivery_time": delivery.get("time") or None,
            "idempotency_key": idempotency_key,
            "status": "pending",
            "payment_status": "pending",
        })
    return rows

def create_order_record(
    *,
    retailer_id: str,
    order_id: str,
    order_name: str,
    lines: List[Dict[str, Any]],
    delivery: Dict[str, Any],
    amount: float,
    idempotency_key: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Insère les lignes de commande (une insertion groupée).
    - Retourne {"order_id", "order_name", "order_numbers"} ou None en cas d'erreur.
    """
    rows = build_order_rows(
        retailer_id=retailer_id,
        order_id=order_id,
        order_name=order_name,
        lines=lines,
        delivery=delivery,
        amount=amount,
        idempotency_key=idempotency_key,
    )
    try:
        supabase_client.get_service_supabase().table("orders").insert(rows).execute()
        return {
            "order_id": order_id,
            "order_name": order_name,
            "order_numbers": [r["order_number"] for r in rows],
        }
    except Exception:
        logger.exception("orders.repository.create_order_record failed order_id=%s retailer_id=%s", order_id, retailer_id)
        return None

def find_orders_by_idempotency_key(retailer_id: str, idempotency_key: str) -> Optional[List[dict]]:
    """Groupe de commandes déjà créé pour cette clé; None si la lecture échoue."""
    if not idempotency_key:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("retailer_id", retailer_id)
            .eq("idempotency_key", idempotency_key)
            .order("order_number")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.find_orders_by_idempotency_key failed retailer_id=%s", retailer_id)
        return None

def get_orders_by_payment_order_id(order_id: str) -> List[dict]:
    if not order_id:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("payment_order_id", order_id)
            .order("order_number")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.get_orders_by_payment_order_id failed order_id=%s", order_id)
        return []

def mark_orders_paid(order_id: str, payment_key: str, paid_at: str) -> Optional[List[dict]]:
    """
    Passe en payé les lignes encore 'pending' du groupe (payment_key, paid_at, payment_status='paid').
    - Retourne les lignes effectivement mises à jour ([] si un autre traitement les a déjà payées)
    - None en cas d'erreur
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({"payment_key": payment_key, "paid_at": paid_at, "payment_status": "paid"})
            .eq("payment_order_id", order_id)
            .eq("payment_status", "pending")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.mark_orders_paid failed order_id=%s", order_id)
        return None

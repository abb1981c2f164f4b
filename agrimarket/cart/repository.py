"""
Accès aux données pour la feature 'cart' (table cart_items).
Miroir best-effort du panier de session: un échec est journalisé, jamais bloquant.
"""
from typing import Any, Dict, Optional
import logging
import agrimarket.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def _match_line(query, retailer_id: str, product_id: str, variant_id: Optional[str]):
    query = query.eq("retailer_id", retailer_id).eq("product_id", product_id)
    if variant_id:
        return query.eq("variant_id", variant_id)
    return query.is_("variant_id", "null")

def upsert_cart_line(retailer_id: str, line: Dict[str, Any]) -> Optional[dict]:
    """
    Enregistre la quantité d'une ligne (mise à jour si le couple produit/variante existe, sinon insertion).
    - Retourne la ligne persistée ou None en cas d'erreur.
    """
    product_id = str(line.get("product_id") or "")
    variant_id = line.get("variant_id") or None
    try:
        client = supabase_client.get_service_supabase()
        existing = _match_line(client.table("cart_items").select("id"), retailer_id, product_id, variant_id).limit(1).execute()
        rows = existing.data or []
        if rows:
            res = (
                client.table("cart_items")
                .update({"quantity": int(line.get("quantity") or 0)})
                .eq("id", rows[0]["id"])
                .execute()
            )
        else:
            res = (
                client.table("cart_items")
                .insert({
                    "retailer_id": retailer_id,
                    "product_id": product_id,
                    "variant_id": variant_id,
                    "quantity": int(line.get("quantity") or 0),
                    "unit_price": line.get("unit_price") or 0,
                    "shipping_fee": line.get("shipping_fee") or 0,
                })
                .execute()
            )
        data = res.data or []
        return data[0] if data else {"status": "ok"}
    except Exception:
        logger.exception("cart.repository.upsert_cart_line failed retailer_id=%s product_id=%s", retailer_id, product_id)
        return None

def delete_cart_line(retailer_id: str, product_id: str, variant_id: Optional[str] = None) -> bool:
    try:
        client = supabase_client.get_service_supabase()
        _match_line(client.table("cart_items").delete(), retailer_id, product_id, variant_id).execute()
        return True
    except Exception:
        logger.exception("cart.repository.delete_cart_line failed retailer_id=%s product_id=%s", retailer_id, product_id)
        return False

def clear_cart_lines(retailer_id: str) -> bool:
    try:
        supabase_client.get_service_supabase().table("cart_items").delete().eq("retailer_id", retailer_id).execute()
        return True
    except Exception:
        logger.exception("cart.repository.clear_cart_lines failed retailer_id=%s", retailer_id)
        return False

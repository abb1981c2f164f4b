"""
Accès au catalogue (tables products / product_variants) pour le re-calcul autoritaire des prix.
Les erreurs de lecture sont propagées: l'appelant les convertit en échec de tarification.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging
import agrimarket.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = "id, name, price, shipping_fee, moq, stock_quantity, wholesaler_id, is_active, updated_at"
VARIANT_COLUMNS = "id, product_id, name, price, stock_quantity, is_active, updated_at"

PriceKey = Tuple[str, Optional[str]]

def fetch_products_by_ids(ids: List[str]) -> List[dict]:
    if not ids:
        return []
    res = (
        supabase_client.get_service_supabase()
        .table("products")
        .select(PRODUCT_COLUMNS)
        .in_("id", [str(i) for i in ids])
        .execute()
    )
    return res.data or []

def fetch_variants_by_ids(ids: List[str]) -> List[dict]:
    if not ids:
        return []
    res = (
        supabase_client.get_service_supabase()
        .table("product_variants")
        .select(VARIANT_COLUMNS)
        .in_("id", [str(i) for i in ids])
        .execute()
    )
    return res.data or []

def _latest(*stamps: Optional[str]) -> Optional[str]:
    present = [s for s in stamps if s]
    return max(present) if present else None

def get_authoritative_prices(keys: Iterable[PriceKey]) -> Dict[PriceKey, Dict[str, Any]]:
    """
    Prix courant de chaque couple (produit, variante):
    - unit_price: prix de la variante si présente, sinon prix du produit
    - shipping_fee_per_unit, moq, stock_quantity (stock de la variante si présente)
    - catalog_version: updated_at le plus récent (produit / variante)
    Les couples absents ou inactifs du catalogue ne figurent pas dans le résultat.
    """
    keys = list(keys)
    products = {str(p["id"]): p for p in fetch_products_by_ids(sorted({k[0] for k in keys}))}
    variants = {str(v["id"]): v for v in fetch_variants_by_ids(sorted({k[1] for k in keys if k[1]}))}

    prices: Dict[PriceKey, Dict[str, Any]] = {}
    for product_id, variant_id in keys:
        product = products.get(product_id)
        if not product or product.get("is_active") is False:
            continue
        variant = None
        if variant_id:
            variant = variants.get(variant_id)
            if not variant or str(variant.get("product_id")) != product_id or variant.get("is_active") is False:
                continue
        source = variant or product
        prices[(product_id, variant_id)] = {
            "product_id": product_id,
            "variant_id": variant_id,
            "product_name": product.get("name") or "",
            "wholesaler_id": product.get("wholesaler_id"),
            "unit_price": source.get("price") or 0,
            "shipping_fee_per_unit": product.get("shipping_fee") or 0,
            "moq": product.get("moq") or 1,
            "stock_quantity": source.get("stock_quantity") or 0,
            "catalog_version": _latest(product.get("updated_at"), (variant or {}).get("updated_at")),
        }
    return prices

def get_authoritative_price(product_id: str, variant_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    return get_authoritative_prices([(product_id, variant_id)]).get((product_id, variant_id))

def decrement_stock(product_id: str, quantity: int) -> bool:
    """
    Décrémente le stock après paiement: RPC decrement_stock, sinon mise à jour directe.
    - Best-effort: retourne False en cas d'échec (journalisé).
    """
    client = supabase_client.get_service_supabase()
    try:
        client.rpc("decrement_stock", {"p_product_id": product_id, "p_quantity": quantity}).execute()
        return True
    except Exception:
        logger.warning("catalog.repository.decrement_stock rpc unavailable product_id=%s, direct update", product_id)
    try:
        res = client.table("products").select("stock_quantity").eq("id", product_id).limit(1).execute()
        rows = res.data or []
        if not rows:
            return False
        remaining = max(0, int(rows[0].get("stock_quantity") or 0) - int(quantity))
        client.table("products").update({"stock_quantity": remaining}).eq("id", product_id).execute()
        return True
    except Exception:
        logger.exception("catalog.repository.decrement_stock failed product_id=%s", product_id)
        return False

"""
Cas d'usage 'cart': panier stocké côté serveur (état de caisse Redis), miroir optionnel en base.
"""
from typing import Any, Dict, Iterable, MutableMapping, Optional

from agrimarket.config import CART_DB_SYNC
from agrimarket.infra.checkout_state import checkout_state
from agrimarket.retailers.service import get_current_retailer
from . import repository
from .store import CartStore
from .validation import validate_cart_items, can_checkout


CART_SESSION_KEY = "cart"

def load_cart(session: MutableMapping[str, Any]) -> CartStore:
    return CartStore.from_session(checkout_state(session).get(CART_SESSION_KEY))

def save_cart(session: MutableMapping[str, Any], store: CartStore) -> None:
    checkout_state(session)[CART_SESSION_KEY] = store.to_session()

def cart_snapshot(store: CartStore, selected_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    validation = validate_cart_items(store.lines, selected_ids)
    return {
        "items": [line.model_dump() for line in store.lines],
        "summary": store.get_summary(),
        "validation": validation,
        "can_checkout": can_checkout(validation),
    }

def _retailer_id(user: Dict[str, Any]) -> Optional[str]:
    if not CART_DB_SYNC:
        return None
    retailer = get_current_retailer(user)
    return retailer.get("id") if retailer else None

def mirror_upsert(user: Dict[str, Any], item: Dict[str, Any]) -> None:
    retailer_id = _retailer_id(user)
    if retailer_id:
        repository.upsert_cart_line(retailer_id, item)

def mirror_remove(user: Dict[str, Any], item: Optional[Dict[str, Any]]) -> None:
    retailer_id = _retailer_id(user)
    if retailer_id and item:
        repository.delete_cart_line(retailer_id, item["product_id"], item.get("variant_id"))

def mirror_clear(user: Dict[str, Any]) -> None:
    retailer_id = _retailer_id(user)
    if retailer_id:
        repository.clear_cart_lines(retailer_id)

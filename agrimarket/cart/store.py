"""
Panier du détaillant (en mémoire, propriété exclusive de la session acheteur).

- add_to_cart: fusion sur (product_id, variant_id), quantité cumulée, instantané rafraîchi
- update_cart_item: remplace la quantité (no-op + erreur si invalide)
- remove_from_cart: no-op silencieux si l'id est inconnu
- clear_cart: vide le panier
Chaque mutation retourne un dict {success, ...}; aucune exception ne sort du store.
"""
import logging
import math
import secrets
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from .models import CartLine
from .totals import aggregate_totals

logger = logging.getLogger(__name__)

# Champs d'instantané rafraîchis lors d'un ré-ajout
SNAPSHOT_FIELDS = (
    "unit_price",
    "shipping_fee",
    "moq",
    "stock_quantity",
    "delivery_method",
    "catalog_version",
)

def coerce_quantity(value: Any) -> Optional[int]:
    """
    Convertit une quantité en entier strictement positif (partie entière).
    - Retourne None si la valeur est non numérique, booléenne, NaN/infinie ou < 1
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        qty = math.floor(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return qty if qty >= 1 else None

def new_line_id() -> str:
    return f"cart-{int(time.time() * 1000)}-{secrets.token_hex(4)}"

def _invalid_quantity(value: Any) -> Dict[str, Any]:
    return {
        "success": False,
        "code": "INVALID_QUANTITY",
        "error": f"Quantité invalide ({value!r}): un entier supérieur ou égal à 1 est requis",
    }

class CartStore:
    def __init__(self, lines: Optional[Iterable[CartLine]] = None):
        self._lines: List[CartLine] = list(lines or [])

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def get(self, item_id: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.id == item_id:
                return line
        return None

    def find(self, product_id: str, variant_id: Optional[str] = None) -> Optional[CartLine]:
        for line in self._lines:
            if line.product_id == product_id and line.variant_id == variant_id:
                return line
        return None

    def add_to_cart(self, item: Any) -> Dict[str, Any]:
        """
        Ajoute une ligne ou fusionne avec la ligne existante du même couple (produit, variante).
        - Fusion: quantité = existante + ajoutée, instantané prix/frais/moq/stock rafraîchi
        - Retourne {"success": True, "item": {...}, "merged": bool}
        """
        data = dict(item) if isinstance(item, Mapping) else item.model_dump()
        qty = coerce_quantity(data.get("quantity"))
        if qty is None:
            return _invalid_quantity(data.get("quantity"))

        product_id = str(data.get("product_id") or "").strip()
        if not product_id:
            return {"success": False, "code": "INVALID_ITEM", "error": "Produit manquant"}
        variant_id = data.get("variant_id") or None

        existing = self.find(product_id, variant_id)
        if existing is not None:
            updates = {k: data[k] for k in SNAPSHOT_FIELDS if data.get(k) is not None}
            updates["quantity"] = existing.quantity + qty
            try:
                merged = CartLine.model_validate({**existing.model_dump(), **updates})
            except ValidationError as e:
                logger.warning("cart.add_to_cart invalid snapshot product_id=%s: %s", product_id, e)
                return {"success": False, "code": "INVALID_ITEM", "error": "Données produit invalides"}
            self._replace(merged)
            return {"success": True, "item": merged.model_dump(), "merged": True}

        payload = {**data, "product_id": product_id, "variant_id": variant_id, "quantity": qty}
        payload["id"] = data.get("id") or new_line_id()
        try:
            line = CartLine.model_validate(payload)
        except ValidationError as e:
            logger.warning("cart.add_to_cart invalid item product_id=%s: %s", product_id, e)
            return {"success": False, "code": "INVALID_ITEM", "error": "Données produit invalides"}
        self._lines.append(line)
        return {"success": True, "item": line.model_dump(), "merged": False}

    def update_cart_item(self, item_id: str, quantity: Any) -> Dict[str, Any]:
        qty = coerce_quantity(quantity)
        if qty is None:
            return _invalid_quantity(quantity)
        line = self.get(item_id)
        if line is None:
            return {"success": False, "code": "ITEM_NOT_FOUND", "error": "Article introuvable dans le panier"}
        updated = line.model_copy(update={"quantity": qty})
        self._replace(updated)
        return {"success": True, "item": updated.model_dump()}

    def remove_from_cart(self, item_id: str) -> Dict[str, Any]:
        before = len(self._lines)
        self._lines = [line for line in self._lines if line.id != item_id]
        return {"success": True, "removed": before - len(self._lines)}

    def clear_cart(self) -> Dict[str, Any]:
        self._lines = []
        return {"success": True}

    def get_summary(self) -> Dict[str, Any]:
        totals = aggregate_totals(self._lines)
        return {
            "total_product_price": totals["product_total"],
            "total_shipping_fee": totals["shipping_fee"],
            "total_price": totals["total"],
            "item_count": len(self._lines),
        }

    def to_session(self) -> List[Dict[str, Any]]:
        return [line.model_dump(exclude_none=True) for line in self._lines]

    @classmethod
    def from_session(cls, data: Any) -> "CartStore":
        """Reconstruit le panier depuis la session; les lignes corrompues sont ignorées."""
        lines: List[CartLine] = []
        for raw in data or []:
            try:
                lines.append(CartLine.model_validate(raw))
            except ValidationError:
                logger.warning("cart.from_session dropped invalid line: %r", raw)
        return cls(lines)

    def _replace(self, line: CartLine) -> None:
        self._lines = [line if existing.id == line.id else existing for existing in self._lines]

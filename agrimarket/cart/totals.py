"""
Calcul des totaux panier / commande.

- Frais de livraison facturés à l'unité: shipping_fee = frais unitaire × quantité
- Aucun arrondi (unités monétaires entières), aucune erreur levée
- Les appelants sont responsables de la coercition des entrées
"""
from typing import Any, Dict, Iterable, Mapping, Union

Number = Union[int, float]

def calculate_totals(unit_price: Number, shipping_unit_fee: Number, quantity: Number) -> Dict[str, Number]:
    """
    Totaux d'une ligne:
    - product_total = unit_price × quantity
    - shipping_fee = shipping_unit_fee × quantity
    - total = product_total + shipping_fee
    """
    product_total = unit_price * quantity
    shipping_fee = shipping_unit_fee * quantity
    return {
        "product_total": product_total,
        "shipping_fee": shipping_fee,
        "total": product_total + shipping_fee,
    }

def line_totals(line: Any) -> Dict[str, Number]:
    """Totaux d'une ligne panier (modèle CartLine ou dict)."""
    if isinstance(line, Mapping):
        return calculate_totals(
            line.get("unit_price") or 0,
            line.get("shipping_fee") or 0,
            line.get("quantity") or 0,
        )
    return calculate_totals(line.unit_price, line.shipping_fee, line.quantity)

def aggregate_totals(lines: Iterable[Any]) -> Dict[str, Number]:
    """Somme champ par champ des totaux de chaque ligne."""
    agg: Dict[str, Number] = {"product_total": 0, "shipping_fee": 0, "total": 0}
    for line in lines:
        t = line_totals(line)
        agg["product_total"] += t["product_total"]
        agg["shipping_fee"] += t["shipping_fee"]
        agg["total"] += t["total"]
    return agg

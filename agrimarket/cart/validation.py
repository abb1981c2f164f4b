from typing import Any, Dict, Iterable, List, Mapping, Optional

CART_EMPTY = "CART_EMPTY"
NO_ITEMS_SELECTED = "NO_ITEMS_SELECTED"
MOQ_NOT_MET = "MOQ_NOT_MET"
OUT_OF_STOCK = "OUT_OF_STOCK"

def _field(line: Any, name: str, default: Any = None) -> Any:
    # Lignes CartLine (panier) ou dicts (données catalogue live)
    if isinstance(line, Mapping):
        value = line.get(name)
    else:
        value = getattr(line, name, None)
    return default if value is None else value

def _error(code: str, message: str, line: Any = None) -> Dict[str, Any]:
    return {
        "code": code,
        "message": message,
        "product_id": _field(line, "product_id") if line is not None else None,
        "product_name": _field(line, "product_name", "") if line is not None else None,
    }

def validate_line(line: Any) -> List[Dict[str, Any]]:
    """
    Contrôles d'une ligne (cumulatifs):
    - quantité < moq -> MOQ_NOT_MET
    - quantité > stock disponible -> OUT_OF_STOCK
    """
    errors: List[Dict[str, Any]] = []
    name = _field(line, "product_name", "") or "Produit"
    qty = _field(line, "quantity", 0)
    moq = _field(line, "moq", 1)
    stock = _field(line, "stock_quantity", 0)
    if qty < moq:
        errors.append(_error(
            MOQ_NOT_MET,
            f"{name}: quantité minimale de commande {moq} (quantité actuelle: {qty})",
            line,
        ))
    if qty > stock:
        errors.append(_error(
            OUT_OF_STOCK,
            f"{name}: stock insuffisant, {stock} disponible(s) (quantité actuelle: {qty})",
            line,
        ))
    return errors

def validate_cart_items(lines: Iterable[Any], selected_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    Valide un ensemble de lignes avant le passage en caisse.
    - Panier vide: une seule erreur CART_EMPTY (quelle que soit la sélection)
    - Sélection fournie mais vide: une seule erreur NO_ITEMS_SELECTED
    - Sinon contrôles par ligne, dans l'ordre des lignes
    Retourne {"is_valid": bool, "errors": [...]}
    """
    lines = list(lines or [])
    if not lines:
        return {"is_valid": False, "errors": [_error(CART_EMPTY, "Votre panier est vide")]}

    if selected_ids is not None:
        wanted = set(selected_ids)
        lines = [line for line in lines if _field(line, "id") in wanted]
        if not lines:
            return {"is_valid": False, "errors": [_error(NO_ITEMS_SELECTED, "Aucun article sélectionné")]}

    errors: List[Dict[str, Any]] = []
    for line in lines:
        errors.extend(validate_line(line))
    return {"is_valid": not errors, "errors": errors}

def can_checkout(result: Dict[str, Any]) -> bool:
    """Le paiement reste désactivé dès qu'une erreur est signalée."""
    return bool(result.get("is_valid")) and not result.get("errors")

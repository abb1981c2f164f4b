"""
Commande en attente: instantané écrit juste avant la redirection vers le prestataire.

Stocké dans un mapping qui survit à la navigation (état de caisse Redis en production);
il est la seule source de vérité sur le contenu de la commande au retour du paiement.
Écrasé par la tentative suivante, effacé après confirmation.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, MutableMapping, Optional

PENDING_ORDER_KEY = "pending_order"

def normalize_items(items: Iterable[Dict[str, Any]]) -> list:
    """Chaque article porte shipping_fee (0 si absent)."""
    normalized = []
    for item in items or []:
        row = dict(item)
        row["shipping_fee"] = row.get("shipping_fee") or 0
        normalized.append(row)
    return normalized

class PendingOrderBridge:
    def __init__(self, storage: MutableMapping[str, Any], key: str = PENDING_ORDER_KEY):
        self.storage = storage
        self.key = key

    def save(
        self,
        order_id: str,
        items: Iterable[Dict[str, Any]],
        delivery: Optional[Dict[str, Any]],
        total_amount: float,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        record = {
            "order_id": order_id,
            "items": normalize_items(items),
            "delivery": dict(delivery or {}),
            "total_amount": total_amount,
            "idempotency_key": idempotency_key,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.storage[self.key] = record
        return record

    def load(self) -> Optional[Dict[str, Any]]:
        record = self.storage.get(self.key)
        return record if isinstance(record, dict) and record.get("order_id") else None

    def matches(self, order_id: str) -> bool:
        record = self.load()
        return bool(record and order_id and record["order_id"] == order_id)

    def clear(self) -> None:
        self.storage.pop(self.key, None)

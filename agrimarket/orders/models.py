from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field

class OrderLineRequest(BaseModel):
    product_id: str = Field(min_length=1)
    variant_id: Optional[str] = None
    quantity: Any = 1
    # Indicatif: le prix est recalculé côté serveur
    unit_price: Optional[float] = None
    product_name: Optional[str] = None
    catalog_version: Optional[str] = None

class DeliveryInfo(BaseModel):
    option: Literal["dawn", "normal"] = "normal"
    time: Optional[str] = None
    note: Optional[str] = None
    address: str = ""

class PaymentIntentRequest(BaseModel):
    items: List[OrderLineRequest] = Field(default_factory=list)
    delivery: DeliveryInfo = Field(default_factory=DeliveryInfo)
    # Total affiché côté client (jamais utilisé pour le montant persisté)
    total_amount: Optional[float] = None
    idempotency_key: Optional[str] = None

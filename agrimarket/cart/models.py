from typing import Any, List, Optional
from pydantic import BaseModel, Field

class CartLine(BaseModel):
    """
    Ligne de panier: un couple (produit, variante) choisi par un détaillant.
    - unit_price / shipping_fee / moq / stock_quantity: instantané pris à l'ajout
    - shipping_fee: frais de livraison unitaire (multiplié par la quantité)
    - catalog_version: updated_at du produit au moment de l'ajout
    - moq <= quantity <= stock_quantity n'est vérifié qu'à la validation
    """
    id: str
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: float = 0
    shipping_fee: float = 0
    moq: int = 1
    stock_quantity: int = 0
    product_name: str = ""
    product_image: Optional[str] = None
    specification: Optional[str] = None
    wholesaler_id: Optional[str] = None
    anonymous_seller_id: Optional[str] = None
    seller_region: Optional[str] = None
    delivery_method: Optional[str] = None
    catalog_version: Optional[str] = None

    @property
    def key(self):
        return (self.product_id, self.variant_id)

class AddCartItemRequest(BaseModel):
    product_id: str = Field(min_length=1)
    variant_id: Optional[str] = None
    # Coercition faite par le CartStore (rejet avant mutation)
    quantity: Any = 1
    unit_price: float = 0
    shipping_fee: float = 0
    moq: int = 1
    stock_quantity: int = 0
    product_name: str = ""
    product_image: Optional[str] = None
    specification: Optional[str] = None
    wholesaler_id: Optional[str] = None
    anonymous_seller_id: Optional[str] = None
    seller_region: Optional[str] = None
    delivery_method: Optional[str] = None
    catalog_version: Optional[str] = None

class UpdateCartItemRequest(BaseModel):
    quantity: Any

class ValidateCartRequest(BaseModel):
    selected_ids: Optional[List[str]] = None

# backend/cartledger/schemas/cart_schema.py
from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from pydantic import ConfigDict

class CartItemOut(BaseModel):
    # passthrough fields stored with the item are returned as-is
    model_config = ConfigDict(extra="allow")
    rowid: str
    id: str
    name: str
    qty: float
    price: float
    subtotal: float
    max_ord: Optional[float] = None
    options: Optional[Dict[str, Any]] = None

class CartOut(BaseModel):
    session_id: str
    items: List[CartItemOut]
    cart_total: float
    total_items: int

class CartSummaryOut(BaseModel):
    rowid: Optional[str] = None
    cart_total: float
    total_items: int

class RejectionOut(BaseModel):
    code: str
    message: str

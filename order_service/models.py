"""
models.py — Request Models of the Order Service API

Pydantic models validate the shape and types of incoming JSON before any
database work starts.

Models:
    - OrderItem: One requested order line.
    - PlaceOrderRequest: The order placement payload.
    - PromoCheckRequest: A promo code together with the cart amount to check it against.
    - StockAdjustmentRequest: An administrative stock entry or correction.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderItem(BaseModel):
    """
    Represents a single requested line of an order.

    Attributes:
        productId (str): Catalog id of the product.
        quantity (int): Units to order. Must be greater than zero.
    """
    productId: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)  # gt=0 means "greater than 0"


class PlaceOrderRequest(BaseModel):
    """
    Represents an order placement request.

    The price of each line is never taken from the client; it is read from the
    catalog when the order is placed.

    Attributes:
        items (List[OrderItem]): At least one order line.
        promoCode (str, optional): Promo code to apply to the order.
    """
    items: List[OrderItem] = Field(..., min_length=1)
    promoCode: Optional[str] = None


class PromoCheckRequest(BaseModel):
    """
    Attributes:
        promoCode (str): The code to check.
        orderAmount (Decimal): Cart amount the code is checked against.
    """
    promoCode: str = Field(..., min_length=1)
    orderAmount: Decimal = Field(..., ge=0, decimal_places=2)


class StockAdjustmentRequest(BaseModel):
    """
    Attributes:
        delta (int): Units to add (positive) or remove (negative).
        reason (str, optional): Why the stock changed, e.g. 'stock entry' or 'damage'.
    """
    delta: int
    reason: Optional[str] = None

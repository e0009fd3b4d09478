"""
workflow.py — Order Transaction Coordinator

This module contains the single operation that turns a list of order lines
(and an optional promo code) into a durable order. Stock, promo usage and the
order rows change together or not at all.

Workflow Overview:
1. Validate the shape of the order lines
2. Load and lock every referenced product in one query
3. Check stock for every product (duplicate lines are summed)
4. Price the order from current catalog prices
5. Evaluate the promo code against the subtotal
6. Decrement stock, insert order and items, advance promo usage
7. Commit, or roll everything back on any failure

Promo policy:
    An inapplicable promo code never fails the order. The order is placed
    without a discount and the outcome (with the reason) is reported back.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from . import inventory, promotions
from .entities import Order, OrderItem, OrderStatus, as_utc, utc_now
from .errors import InsufficientStockError, NotFoundError, ValidationError
from .money import ZERO, format_money, to_money

log = logging.getLogger(__name__)


@dataclass
class Pricing:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": format_money(self.subtotal),
            "discountAmount": format_money(self.discount_amount),
            "total": format_money(self.total),
        }


@dataclass
class PlacementResult:
    order: Order
    pricing: Pricing
    promo: Optional[promotions.PromoEvaluation] = None


def _validate_lines(items) -> "OrderedDict[str, int]":
    """
    Checks the raw order lines and returns the requested quantity per product.

    Raises:
        ValidationError: If `items` is empty, not a list, or any line is malformed.
    """
    if not isinstance(items, (list, tuple)) or len(items) == 0:
        raise ValidationError("No items provided")

    requested = OrderedDict()
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {index} must be an object with productId and quantity")
        product_id = item.get("productId")
        quantity = item.get("quantity")
        if not isinstance(product_id, str) or not product_id.strip():
            raise ValidationError(f"Item {index} has no productId")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Item {index} must have a positive integer quantity")
        requested[product_id] = requested.get(product_id, 0) + quantity
    return requested


def place_order(
        session: Session,
        user_id: str,
        items: list,
        promo_code: str = None,
        role: str = None,
        now: datetime = None,
) -> PlacementResult:
    """
    Places an order atomically.

    Args:
        session (Session): A database session with no pending changes. The
            coordinator commits it on success and rolls it back on failure.
        user_id (str): Authenticated user placing the order.
        items (list[dict]): Order lines, each with `productId` (str) and `quantity` (int > 0).
        promo_code (str, optional): Promo code to apply.
        role (str, optional): Role of the caller, recorded on the order.
        now (datetime, optional): Placement time; defaults to the current UTC time.

    Returns:
        PlacementResult: The committed order with its items, the pricing
        breakdown and the promo outcome (None when no code was given).

    Raises:
        ValidationError: Malformed input.
        NotFoundError: One or more products do not exist.
        InsufficientStockError: A product has fewer units on hand than requested.
        ConflictError: A guarded stock or promo update lost a race.
    """
    if not isinstance(user_id, str) or not user_id:
        raise ValidationError("An authenticated user id is required")
    requested = _validate_lines(items)
    if promo_code is not None and (not isinstance(promo_code, str) or not promo_code.strip()):
        raise ValidationError("Promo code must be a non-empty string")

    now = as_utc(now) or utc_now()
    log_prefix = f"[User: {user_id}]"
    log.info(f"{log_prefix} Placing order with {len(items)} line(s) as {role or 'unknown role'}.")

    try:
        # --- 1. Load and lock products ---
        products = {p.id: p for p in inventory.find_by_ids(session, requested.keys(), lock=True)}
        missing = [pid for pid in requested if pid not in products]
        if missing:
            raise NotFoundError(f"Invalid product ID: {', '.join(missing)}")

        # --- 2. Stock check ---
        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.on_hand_quantity < quantity:
                raise InsufficientStockError(
                    f"Not enough stock for {product.name} "
                    f"(requested {quantity}, on hand {product.on_hand_quantity})",
                    product_id=product_id,
                )

        # --- 3. Pricing from current catalog prices ---
        lines = []
        subtotal = ZERO
        for item in items:
            product = products[item["productId"]]
            unit_price = to_money(product.price)
            lines.append(OrderItem(product_id=product.id, quantity=item["quantity"], unit_price=unit_price))
            subtotal += unit_price * item["quantity"]
        subtotal = to_money(subtotal)

        # --- 4. Promo evaluation ---
        evaluation = None
        discount = ZERO
        if promo_code is not None:
            evaluation = promotions.evaluate(session, promo_code, subtotal, now=now, lock=True)
            if evaluation.applicable:
                discount = evaluation.discount_amount
            else:
                log.info(f"{log_prefix} Promo code {promo_code!r} not applied: {evaluation.reason}.")
        total = max(subtotal - discount, ZERO)

        # --- 5. Writes ---
        for product_id, quantity in requested.items():
            inventory.decrement_stock(session, product_id, quantity)
            session.expire(products[product_id], ["on_hand_quantity"])

        applied = evaluation is not None and evaluation.applicable
        order = Order(
            user_id=user_id,
            placed_by_role=role,
            status=OrderStatus.PENDING.value,
            order_date=now,
            promo_code_id=evaluation.promo.id if applied else None,
            subtotal=subtotal,
            discount_amount=discount,
            total=total,
            items=lines,
        )
        session.add(order)

        if applied:
            promotions.consume_usage(session, evaluation.promo.id)
            session.expire(evaluation.promo, ["used_count"])

        session.commit()
    except Exception:
        session.rollback()
        log.warning(f"{log_prefix} Order placement rolled back.")
        raise

    log.info(
        f"[Order: {order.id}] Placed for user {user_id}: subtotal {format_money(subtotal)}, "
        f"discount {format_money(discount)}, total {format_money(total)}."
    )
    return PlacementResult(order=order, pricing=Pricing(subtotal, discount, total), promo=evaluation)

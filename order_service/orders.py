"""
orders.py — Order Record Store (read side)

Queries over placed orders for the user who placed them, plus the JSON shapes
the API returns for orders and order confirmations.
"""

import calendar
from datetime import date, datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .entities import Order, OrderItem, as_utc
from .errors import NotFoundError
from .money import format_money, to_money


def add_months(start: date, months: int) -> date:
    """Adds calendar months to a date, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def warranty_expires_on(order_date: datetime, warranty_period_months: int):
    """Last covered day of a product bought on `order_date`, or None without a warranty."""
    if not warranty_period_months or warranty_period_months <= 0:
        return None
    return add_months(as_utc(order_date).date(), warranty_period_months)


def list_orders_for_user(session: Session, user_id: str) -> List[Order]:
    stmt = (
        select(Order)
        .where(Order.user_id == user_id)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .order_by(Order.order_date.desc())
    )
    return list(session.scalars(stmt))


def get_order_for_user(session: Session, order_id: str, user_id: str) -> Order:
    """
    Loads one order owned by `user_id`.

    Orders of other users are reported as missing, so ids cannot be probed.

    Raises:
        NotFoundError: If the order does not exist or belongs to someone else.
    """
    stmt = (
        select(Order)
        .where(Order.id == order_id, Order.user_id == user_id)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
    )
    order = session.scalars(stmt).first()
    if order is None:
        raise NotFoundError(f"Order not found: {order_id}")
    return order


def order_pricing(order: Order) -> dict:
    """The pricing breakdown stored at placement; `total` is what the user pays."""
    return {
        "subtotal": format_money(order.subtotal),
        "discountAmount": format_money(order.discount_amount),
        "total": format_money(order.total),
    }


def order_item_to_dict(item: OrderItem) -> dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "productName": item.product.name if item.product is not None else None,
        "quantity": item.quantity,
        "unitPrice": format_money(item.unit_price),
    }


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "userId": order.user_id,
        "status": order.status,
        "orderDate": as_utc(order.order_date).isoformat(),
        "promoCodeId": order.promo_code_id,
        "items": [order_item_to_dict(item) for item in order.items],
    }


def order_summary(order: Order) -> dict:
    """Listing shape: the order with its pricing and the amount actually charged."""
    data = order_to_dict(order)
    data["pricing"] = order_pricing(order)
    data["totalAmount"] = format_money(order.total)
    return data


def order_confirmation(order: Order) -> dict:
    """
    Builds the confirmation document for a placed order.

    Includes the stored pricing breakdown and, per line, the date the product
    warranty runs out (order date plus the product's warranty period).
    """
    lines = []
    for item in order.items:
        line = order_item_to_dict(item)
        line["lineTotal"] = format_money(to_money(item.unit_price) * item.quantity)
        expires = warranty_expires_on(order.order_date, item.product.warranty_period_months if item.product else 0)
        line["warrantyExpiresOn"] = expires.isoformat() if expires else None
        lines.append(line)

    return {
        "orderId": order.id,
        "status": order.status,
        "orderDate": as_utc(order.order_date).isoformat(),
        "promoCode": order.promo_code.code if order.promo_code is not None else None,
        "items": lines,
        "pricing": order_pricing(order),
    }

"""
inventory.py — Catalog/Inventory Accessor

Reads current product prices and stock and applies stock mutations. Every
mutation is a single conditional UPDATE, so a concurrent writer can never push
the on-hand quantity below zero, even when the caller read a stale value.
"""

import logging
from typing import Iterable, List

from sqlalchemy import exists, select, update
from sqlalchemy.orm import Session

from .entities import OrderItem, Product
from .errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError

log = logging.getLogger(__name__)


def find_by_ids(session: Session, ids: Iterable[str], lock: bool = False) -> List[Product]:
    """
    Loads all products with the given ids in one query.

    Args:
        session (Session): Active database session.
        ids (Iterable[str]): Product ids; duplicates are ignored.
        lock (bool): Take row locks (SELECT ... FOR UPDATE) until the transaction ends.

    Returns:
        List[Product]: The products that exist, ordered by id.
    """
    unique_ids = sorted(set(ids))
    if not unique_ids:
        return []
    # Sorted ids keep lock acquisition order stable across concurrent orders.
    stmt = select(Product).where(Product.id.in_(unique_ids)).order_by(Product.id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return list(session.scalars(stmt))


def get_product(session: Session, product_id: str) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product not found: {product_id}")
    return product


def decrement_stock(session: Session, product_id: str, amount: int):
    """
    Atomically removes `amount` units from a product's on-hand quantity.

    Only the order coordinator calls this, inside its unit of work. The update
    is conditional on enough stock still being there; if another transaction
    took it first, no row matches.

    Raises:
        ConflictError: If the guarded update affected no row.
    """
    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.on_hand_quantity >= amount)
        .values(on_hand_quantity=Product.on_hand_quantity - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        log.warning(f"[Product: {product_id}] Guarded stock decrement of {amount} matched no row.")
        raise ConflictError(f"Stock for product {product_id} changed concurrently; retry the order.")


def adjust_stock(session: Session, product_id: str, delta: int, reason: str = None) -> Product:
    """
    Applies an administrative stock entry (positive delta) or correction (negative delta).

    The change is committed immediately. The resulting quantity is never negative.

    Args:
        session (Session): Active database session.
        product_id (str): The product to adjust.
        delta (int): Units to add (positive) or remove (negative). Must not be zero.
        reason (str, optional): Free text recorded in the log.

    Returns:
        Product: The refreshed product.

    Raises:
        ValidationError: If delta is zero or not an integer.
        NotFoundError: If the product does not exist.
        InsufficientStockError: If removing `-delta` units would go below zero.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("Stock adjustment delta must be a non-zero integer")

    try:
        product = get_product(session, product_id)
        result = session.execute(
            update(Product)
            .where(Product.id == product_id, Product.on_hand_quantity + delta >= 0)
            .values(on_hand_quantity=Product.on_hand_quantity + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}: cannot remove {-delta} units",
                product_id=product_id,
            )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(product)
    log.info(
        f"[Product: {product_id}] Stock adjusted by {delta:+d} "
        f"(now {product.on_hand_quantity}). Reason: {reason or 'n/a'}"
    )
    return product


def delete_product(session: Session, product_id: str):
    """
    Deletes a product that no order item references.

    Raises:
        NotFoundError: If the product does not exist.
        ConflictError: If any order item still references the product.
    """
    try:
        product = get_product(session, product_id)
        referenced = session.scalar(select(exists().where(OrderItem.product_id == product_id)))
        if referenced:
            raise ConflictError(f"Product {product.name} is referenced by existing orders and cannot be deleted")
        session.delete(product)
        session.commit()
    except Exception:
        session.rollback()
        raise
    log.info(f"[Product: {product_id}] Deleted.")

"""
promotions.py — Promotion Evaluator

Decides whether a promo code applies to an order subtotal and computes the
discount. Evaluation never writes; the usage counter is only advanced by
`consume_usage()`, which the order coordinator calls inside its transaction.

Applicability rules, checked in this order:
    1. The code exists
    2. Its status is Active
    3. `now` lies within [valid_from, valid_until]
    4. The subtotal reaches `min_order_amount` (when set)
    5. `used_count` is below `usage_limit` (when set)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from .entities import DiscountType, PromoCode, PromoStatus, as_utc, utc_now
from .errors import ConflictError, NotFoundError, PromoInapplicableError, ValidationError
from .money import ZERO, format_money, to_money

log = logging.getLogger(__name__)

REASON_NOT_FOUND = "not found"
REASON_INACTIVE = "inactive"
REASON_OUT_OF_WINDOW = "out of validity window"
REASON_USAGE_LIMIT = "usage limit exceeded"


@dataclass
class PromoEvaluation:
    """Outcome of evaluating one promo code against one subtotal."""
    code: str
    applicable: bool
    discount_amount: Decimal = ZERO
    reason: Optional[str] = None
    promo: Optional[PromoCode] = None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "applied": self.applicable,
            "discountAmount": format_money(self.discount_amount),
            "reason": self.reason,
        }


def find_promo(session: Session, code: str, lock: bool = False) -> Optional[PromoCode]:
    stmt = select(PromoCode).where(PromoCode.code == code)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return session.scalars(stmt).first()


def compute_discount(promo: PromoCode, subtotal: Decimal) -> Decimal:
    """
    Computes the discount a promo grants on `subtotal`, in whole cents.

    Percentage codes scale with the subtotal; flat codes grant their value as is.
    A configured `max_discount` caps the result. The discount is not limited to
    the subtotal here; callers clamp the order total at zero.
    """
    if promo.discount_type == DiscountType.PERCENTAGE:
        discount = to_money(subtotal) * Decimal(promo.discount_value) / Decimal(100)
    else:
        discount = Decimal(promo.discount_value)

    if promo.max_discount is not None and discount > promo.max_discount:
        discount = Decimal(promo.max_discount)
    return to_money(discount)


def evaluate(session: Session, code: str, subtotal, now: datetime = None, lock: bool = False) -> PromoEvaluation:
    """
    Evaluates a promo code against an order subtotal without changing any state.

    Args:
        session (Session): Active database session.
        code (str): The promo code as entered by the user.
        subtotal (Decimal | str | int): Order subtotal before discount.
        now (datetime, optional): Evaluation time. Defaults to the current UTC time.
        lock (bool): Lock the promo row until the surrounding transaction ends.

    Returns:
        PromoEvaluation: `applicable` with the discount, or the reason it does not apply.

    Raises:
        ValidationError: If the code is empty or the subtotal is negative.
    """
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("Promo code must be a non-empty string")
    try:
        subtotal = to_money(subtotal)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if subtotal < ZERO:
        raise ValidationError("Order amount must not be negative")

    now = as_utc(now) or utc_now()
    promo = find_promo(session, code, lock=lock)

    if promo is None:
        return PromoEvaluation(code=code, applicable=False, reason=REASON_NOT_FOUND)
    if promo.status != PromoStatus.ACTIVE:
        return PromoEvaluation(code=code, applicable=False, reason=REASON_INACTIVE, promo=promo)
    if now < as_utc(promo.valid_from) or now > as_utc(promo.valid_until):
        return PromoEvaluation(code=code, applicable=False, reason=REASON_OUT_OF_WINDOW, promo=promo)
    if promo.min_order_amount is not None and subtotal < promo.min_order_amount:
        reason = f"below minimum order amount of {format_money(promo.min_order_amount)}"
        return PromoEvaluation(code=code, applicable=False, reason=reason, promo=promo)
    if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
        return PromoEvaluation(code=code, applicable=False, reason=REASON_USAGE_LIMIT, promo=promo)

    return PromoEvaluation(
        code=code,
        applicable=True,
        discount_amount=compute_discount(promo, subtotal),
        promo=promo,
    )


def consume_usage(session: Session, promo_id: str):
    """
    Advances a promo's usage counter by one, never past its usage limit.

    Raises:
        ConflictError: If the limit was reached by a concurrent order in the meantime.
    """
    result = session.execute(
        update(PromoCode)
        .where(
            PromoCode.id == promo_id,
            or_(PromoCode.usage_limit.is_(None), PromoCode.used_count < PromoCode.usage_limit),
        )
        .values(used_count=PromoCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        log.warning(f"[Promo: {promo_id}] Guarded usage increment matched no row.")
        raise ConflictError("Promo code usage limit was reached concurrently; retry the order.")


# --- Preview operations ---

def apply_promo_code(session: Session, code: str, order_amount, now: datetime = None) -> dict:
    """
    Previews a promo code on a cart amount, rejecting inapplicable codes.

    Returns:
        dict: code details with `discountAmount` and `finalAmount`.

    Raises:
        NotFoundError: If the code does not exist.
        PromoInapplicableError: If the code exists but does not apply.
    """
    evaluation = evaluate(session, code, order_amount, now=now)
    _raise_if_inapplicable(evaluation)
    promo = evaluation.promo
    return {
        "code": promo.code,
        "description": promo.description,
        "discountType": promo.discount_type,
        "discountValue": format_money(promo.discount_value),
        "discountAmount": format_money(evaluation.discount_amount),
        "finalAmount": format_money(_final_amount(order_amount, evaluation.discount_amount)),
    }


def validate_promo_code(session: Session, code: str, order_amount, now: datetime = None) -> dict:
    """Same checks as `apply_promo_code`, answered in the order-placement shape."""
    evaluation = evaluate(session, code, order_amount, now=now)
    _raise_if_inapplicable(evaluation)
    promo = evaluation.promo
    return {
        "isValid": True,
        "promoCode": {
            "id": promo.id,
            "code": promo.code,
            "discountType": promo.discount_type,
            "discountValue": format_money(promo.discount_value),
            "discountAmount": format_money(evaluation.discount_amount),
            "finalAmount": format_money(_final_amount(order_amount, evaluation.discount_amount)),
        },
    }


def list_active_promo_codes(session: Session) -> List[PromoCode]:
    stmt = select(PromoCode).where(PromoCode.status == PromoStatus.ACTIVE.value).order_by(PromoCode.code)
    return list(session.scalars(stmt))


def get_promo_by_code(session: Session, code: str) -> PromoCode:
    promo = find_promo(session, code)
    if promo is None:
        raise NotFoundError(f"Promo code not found: {code}")
    return promo


def promo_to_dict(promo: PromoCode) -> dict:
    return {
        "id": promo.id,
        "code": promo.code,
        "description": promo.description,
        "discountType": promo.discount_type,
        "discountValue": format_money(promo.discount_value),
        "minOrderAmount": format_money(promo.min_order_amount) if promo.min_order_amount is not None else None,
        "maxDiscount": format_money(promo.max_discount) if promo.max_discount is not None else None,
        "validFrom": as_utc(promo.valid_from).isoformat(),
        "validUntil": as_utc(promo.valid_until).isoformat(),
        "usageLimit": promo.usage_limit,
        "usedCount": promo.used_count,
        "status": promo.status,
    }


def _raise_if_inapplicable(evaluation: PromoEvaluation):
    if evaluation.reason == REASON_NOT_FOUND:
        raise NotFoundError(f"Invalid promo code: {evaluation.code}")
    if not evaluation.applicable:
        raise PromoInapplicableError(f"Promo code {evaluation.code} cannot be applied: {evaluation.reason}")


def _final_amount(order_amount, discount: Decimal) -> Decimal:
    return max(to_money(order_amount) - discount, ZERO)

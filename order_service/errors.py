"""
errors.py — Failure Taxonomy of the Order Service

Every failure the domain modules raise carries a stable, machine-readable
`error_code` and the HTTP status the API layer answers with. None of them is
retried internally; the caller decides whether to adjust and resubmit.
"""


class OrderServiceError(Exception):
    """Base class for all domain failures."""

    error_code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"errorCode": self.error_code, "message": self.message}


class ValidationError(OrderServiceError):
    """Malformed or empty input. The request must be fixed before retrying."""

    error_code = "validation_error"
    status_code = 400


class NotFoundError(OrderServiceError):
    """A referenced product, promo code or order does not exist."""

    error_code = "not_found"
    status_code = 404


class InsufficientStockError(OrderServiceError):
    """Requested quantity exceeds the on-hand quantity of a product."""

    error_code = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str, product_id: str = None):
        super().__init__(message)
        self.product_id = product_id


class PromoInapplicableError(OrderServiceError):
    """A promo code exists but cannot be applied to the given amount."""

    error_code = "promo_inapplicable"
    status_code = 400


class ConflictError(OrderServiceError):
    """A guarded row update lost a race, or a delete would break a reference.

    Safe to retry the whole operation once.
    """

    error_code = "conflict"
    status_code = 409

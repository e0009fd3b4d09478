"""
main.py — FastAPI Entry Point for the Order Service

This module provides the REST API of the order placement service. Identity
(user id and role) is established upstream by the auth gateway and forwarded
in the `X-User-Id` / `X-User-Role` headers; this service trusts it.

Responsibilities:
    • Place orders through the single order transaction coordinator
    • Let users list, track and confirm their own orders
    • Preview and validate promo codes before ordering
    • Administrative stock adjustments and guarded product deletion
    • Translate domain failures into stable JSON error bodies
    • Provide system health information
"""

from dataclasses import dataclass

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config, inventory, orders, promotions
from .database import get_session, init_db
from .errors import OrderServiceError
from .events import order_placed_payload, publish_order_placed
from .logging_config import get_logger, setup_logging
from .money import format_money
from .models import PlaceOrderRequest, PromoCheckRequest, StockAdjustmentRequest
from .workflow import place_order

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Order Placement Service")


# Startup Event: ensure schema
@app.on_event("startup")
def on_startup():
    """
    FastAPI startup event handler.

    Creates missing tables so a fresh database is usable right away.
    """
    log.info("Order service starting...")
    init_db()


# Error translation
@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


HTTP_ERROR_CODES = {401: "unauthorized", 403: "forbidden", 404: "not_found", 405: "method_not_allowed"}


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    error_code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return JSONResponse(
        status_code=exc.status_code,
        content={"errorCode": error_code, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"errorCode": "validation_error", "message": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log.critical(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"errorCode": "internal_error", "message": "Internal server error."})


# Identity and role guards
@dataclass
class Caller:
    user_id: str
    role: str


def get_caller(
        x_user_id: str = Header(None, alias="X-User-Id"),
        x_user_role: str = Header(None, alias="X-User-Role"),
) -> Caller:
    """Reads the identity forwarded by the auth gateway; 401 when it is missing."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Caller(user_id=x_user_id, role=x_user_role)


def ordering_caller(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.role not in config.ORDERING_ROLES:
        raise HTTPException(status_code=403, detail=f"Role {caller.role} may not place or view orders")
    return caller


def admin_caller(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.role not in config.ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Admin role required")
    return caller


# API Endpoints: Orders
@app.post("/orders", status_code=201)
def submit_order(
        request: PlaceOrderRequest,
        background_tasks: BackgroundTasks,
        caller: Caller = Depends(ordering_caller),
        session: Session = Depends(get_session),
):
    """
    Places a new order for the calling user.

    Stock, promo usage and the order rows are written in one transaction. An
    inapplicable promo code does not fail the order; the `promo` block of the
    response says whether it was applied and why not.

    Returns:
        dict: message, the created order with its items, the pricing breakdown
        (subtotal, discountAmount, total) and the promo outcome.
    """
    result = place_order(
        session,
        user_id=caller.user_id,
        items=[item.model_dump() for item in request.items],
        promo_code=request.promoCode,
        role=caller.role,
    )

    # Announce the committed order after the response is sent
    background_tasks.add_task(publish_order_placed, order_placed_payload(result))

    return {
        "message": "Order placed successfully",
        "order": orders.order_to_dict(result.order),
        "pricing": result.pricing.to_dict(),
        "promo": result.promo.to_dict() if result.promo is not None else None,
    }


@app.get("/orders")
def list_my_orders(caller: Caller = Depends(ordering_caller), session: Session = Depends(get_session)):
    return [orders.order_summary(o) for o in orders.list_orders_for_user(session, caller.user_id)]


@app.get("/orders/{order_id}")
def track_order(order_id: str, caller: Caller = Depends(ordering_caller), session: Session = Depends(get_session)):
    return orders.order_summary(orders.get_order_for_user(session, order_id, caller.user_id))


@app.get("/orders/{order_id}/confirmation")
def order_confirmation(order_id: str, caller: Caller = Depends(ordering_caller), session: Session = Depends(get_session)):
    return orders.order_confirmation(orders.get_order_for_user(session, order_id, caller.user_id))


# API Endpoints: Promo codes
@app.post("/promo/apply")
def apply_promo(request: PromoCheckRequest, caller: Caller = Depends(ordering_caller), session: Session = Depends(get_session)):
    """Previews a promo code on a cart amount. Nothing is reserved or counted."""
    preview = promotions.apply_promo_code(session, request.promoCode, request.orderAmount)
    return {"message": "Promo code applied successfully", "promoCode": preview}


@app.post("/promo/validate")
def validate_promo(request: PromoCheckRequest, caller: Caller = Depends(ordering_caller), session: Session = Depends(get_session)):
    return promotions.validate_promo_code(session, request.promoCode, request.orderAmount)


@app.get("/promo/active")
def active_promos(caller: Caller = Depends(ordering_caller), session: Session = Depends(get_session)):
    return [promotions.promo_to_dict(p) for p in promotions.list_active_promo_codes(session)]


@app.get("/promo/by-code/{code}")
def promo_by_code(code: str, caller: Caller = Depends(ordering_caller), session: Session = Depends(get_session)):
    return promotions.promo_to_dict(promotions.get_promo_by_code(session, code))


# API Endpoints: Catalog administration
@app.post("/admin/products/{product_id}/stock-adjustments")
def adjust_product_stock(
        product_id: str,
        request: StockAdjustmentRequest,
        caller: Caller = Depends(admin_caller),
        session: Session = Depends(get_session),
):
    product = inventory.adjust_stock(session, product_id, request.delta, reason=request.reason)
    log.info(f"[User: {caller.user_id}] Adjusted stock of {product_id} by {request.delta:+d}.")
    return {
        "id": product.id,
        "name": product.name,
        "price": format_money(product.price),
        "onHandQuantity": product.on_hand_quantity,
    }


@app.delete("/admin/products/{product_id}")
def delete_product(product_id: str, caller: Caller = Depends(admin_caller), session: Session = Depends(get_session)):
    inventory.delete_product(session, product_id)
    return {"message": "Product deleted successfully"}


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Can be used by monitoring systems or container orchestrators
    (e.g., Docker, Kubernetes) to verify that the service is running.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

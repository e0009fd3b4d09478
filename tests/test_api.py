"""HTTP-level tests for order placement, order reads and promo endpoints."""
from datetime import timedelta
from decimal import Decimal

from order_service.entities import Product, PromoCode, utc_now

from conftest import DISTRIBUTOR, FIELD_EXECUTIVE, WORKER


def _place(client, items, promo_code=None, headers=DISTRIBUTOR):
    body = {"items": items}
    if promo_code is not None:
        body["promoCode"] = promo_code
    return client.post("/orders", json=body, headers=headers)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_place_order_round_trip(client, session, make_product):
    p1 = make_product(price="100.00", quantity=10)

    response = _place(client, [{"productId": p1.id, "quantity": 2}])

    assert response.status_code == 201
    body = response.json()
    assert body["pricing"] == {"subtotal": "200.00", "discountAmount": "0.00", "total": "200.00"}
    assert body["promo"] is None
    assert body["order"]["status"] == "Pending"
    assert body["order"]["userId"] == DISTRIBUTOR["X-User-Id"]
    assert body["order"]["items"][0]["unitPrice"] == "100.00"
    assert session.get(Product, p1.id, populate_existing=True).on_hand_quantity == 8


def test_place_order_with_promo(client, session, make_product, make_promo):
    p = make_product(price="100.00", quantity=10)
    promo = make_promo(code="SAVE10", value="10", max_discount=Decimal("15.00"))

    response = _place(client, [{"productId": p.id, "quantity": 2}], promo_code="SAVE10")

    assert response.status_code == 201
    body = response.json()
    assert body["pricing"] == {"subtotal": "200.00", "discountAmount": "15.00", "total": "185.00"}
    assert body["promo"]["applied"] is True
    assert body["order"]["promoCodeId"] == promo.id
    assert session.get(PromoCode, promo.id, populate_existing=True).used_count == 1


def test_place_order_with_expired_promo_reports_reason(client, make_product, make_promo):
    p = make_product(price="100.00", quantity=10)
    now = utc_now()
    make_promo(code="GONE", valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))

    response = _place(client, [{"productId": p.id, "quantity": 1}], promo_code="GONE")

    assert response.status_code == 201
    body = response.json()
    assert body["promo"] == {"code": "GONE", "applied": False, "discountAmount": "0.00", "reason": "out of validity window"}
    assert body["pricing"]["total"] == "100.00"


def test_empty_items_is_validation_error(client):
    response = _place(client, [])
    assert response.status_code == 400
    assert response.json()["errorCode"] == "validation_error"


def test_non_positive_quantity_is_validation_error(client, make_product):
    p = make_product()
    response = _place(client, [{"productId": p.id, "quantity": 0}])
    assert response.status_code == 400
    assert response.json()["errorCode"] == "validation_error"


def test_unknown_product_is_not_found(client):
    response = _place(client, [{"productId": "does-not-exist", "quantity": 1}])
    assert response.status_code == 404
    body = response.json()
    assert body["errorCode"] == "not_found"
    assert "does-not-exist" in body["message"]


def test_insufficient_stock_is_conflict(client, session, make_product):
    p = make_product(name="Shower Mixer", quantity=1)
    response = _place(client, [{"productId": p.id, "quantity": 3}])
    assert response.status_code == 409
    body = response.json()
    assert body["errorCode"] == "insufficient_stock"
    assert "Shower Mixer" in body["message"]
    assert session.get(Product, p.id, populate_existing=True).on_hand_quantity == 1


def test_missing_identity_is_unauthorized(client, make_product):
    p = make_product()
    response = client.post("/orders", json={"items": [{"productId": p.id, "quantity": 1}]})
    assert response.status_code == 401
    assert response.json() == {"errorCode": "unauthorized", "message": "Authentication required"}


def test_role_without_ordering_rights_is_forbidden(client, make_product):
    p = make_product()
    response = _place(client, [{"productId": p.id, "quantity": 1}], headers=WORKER)
    assert response.status_code == 403
    body = response.json()
    assert body["errorCode"] == "forbidden"
    assert "Worker" in body["message"]


def test_unknown_route_uses_error_body(client):
    response = client.get("/no-such-route")
    assert response.status_code == 404
    assert response.json()["errorCode"] == "not_found"


def test_field_executive_uses_same_workflow(client, make_product):
    p = make_product(quantity=5)
    response = _place(client, [{"productId": p.id, "quantity": 1}], headers=FIELD_EXECUTIVE)
    assert response.status_code == 201
    assert response.json()["order"]["userId"] == FIELD_EXECUTIVE["X-User-Id"]


def test_list_and_track_own_orders(client, make_product):
    p = make_product(price="19.99", quantity=10)
    order_id = _place(client, [{"productId": p.id, "quantity": 3}]).json()["order"]["id"]
    _place(client, [{"productId": p.id, "quantity": 1}], headers=FIELD_EXECUTIVE)

    listed = client.get("/orders", headers=DISTRIBUTOR).json()
    assert [o["id"] for o in listed] == [order_id]
    assert listed[0]["totalAmount"] == "59.97"
    assert listed[0]["items"][0]["productName"] == p.name

    tracked = client.get(f"/orders/{order_id}", headers=DISTRIBUTOR)
    assert tracked.status_code == 200
    assert tracked.json()["id"] == order_id


def test_listed_and_tracked_order_shows_discounted_total(client, make_product, make_promo):
    p = make_product(price="100.00", quantity=10)
    make_promo(code="SAVE10", value="10")
    placed = _place(client, [{"productId": p.id, "quantity": 2}], promo_code="SAVE10").json()
    assert placed["pricing"]["total"] == "180.00"
    order_id = placed["order"]["id"]

    listed = client.get("/orders", headers=DISTRIBUTOR).json()
    assert listed[0]["totalAmount"] == "180.00"
    assert listed[0]["pricing"] == placed["pricing"]

    tracked = client.get(f"/orders/{order_id}", headers=DISTRIBUTOR).json()
    assert tracked["totalAmount"] == "180.00"
    assert tracked["pricing"]["discountAmount"] == "20.00"


def test_cannot_track_someone_elses_order(client, make_product):
    p = make_product(quantity=10)
    order_id = _place(client, [{"productId": p.id, "quantity": 1}]).json()["order"]["id"]

    response = client.get(f"/orders/{order_id}", headers=FIELD_EXECUTIVE)
    assert response.status_code == 404


def test_order_confirmation(client, make_product, make_promo):
    p = make_product(price="100.00", quantity=10, warranty_months=12)
    make_promo(code="FLAT15", discount_type="flat", value="15")
    order_id = _place(client, [{"productId": p.id, "quantity": 2}], promo_code="FLAT15").json()["order"]["id"]

    response = client.get(f"/orders/{order_id}/confirmation", headers=DISTRIBUTOR)

    assert response.status_code == 200
    body = response.json()
    assert body["promoCode"] == "FLAT15"
    assert body["pricing"] == {"subtotal": "200.00", "discountAmount": "15.00", "total": "185.00"}
    assert body["items"][0]["lineTotal"] == "200.00"
    assert body["items"][0]["warrantyExpiresOn"] is not None


def test_promo_apply_endpoint(client, make_promo):
    make_promo(code="SAVE10", value="10")
    response = client.post("/promo/apply", json={"promoCode": "SAVE10", "orderAmount": 250}, headers=DISTRIBUTOR)
    assert response.status_code == 200
    preview = response.json()["promoCode"]
    assert preview["discountAmount"] == "25.00"
    assert preview["finalAmount"] == "225.00"


def test_promo_apply_does_not_count_usage(client, session, make_promo):
    promo = make_promo(code="SAVE10", usage_limit=1)
    for _ in range(2):
        response = client.post("/promo/apply", json={"promoCode": "SAVE10", "orderAmount": 100}, headers=DISTRIBUTOR)
        assert response.status_code == 200
    assert session.get(PromoCode, promo.id, populate_existing=True).used_count == 0


def test_promo_apply_unknown_code(client):
    response = client.post("/promo/apply", json={"promoCode": "NOPE", "orderAmount": 100}, headers=DISTRIBUTOR)
    assert response.status_code == 404
    assert response.json()["errorCode"] == "not_found"


def test_promo_apply_below_minimum(client, make_promo):
    make_promo(code="MIN500", min_order_amount=Decimal("500.00"))
    response = client.post("/promo/apply", json={"promoCode": "MIN500", "orderAmount": "499.99"}, headers=DISTRIBUTOR)
    assert response.status_code == 400
    body = response.json()
    assert body["errorCode"] == "promo_inapplicable"
    assert "500.00" in body["message"]


def test_promo_validate_endpoint(client, make_promo):
    promo = make_promo(code="FLAT15", discount_type="flat", value="15")
    response = client.post("/promo/validate", json={"promoCode": "FLAT15", "orderAmount": 40}, headers=DISTRIBUTOR)
    assert response.status_code == 200
    body = response.json()
    assert body["isValid"] is True
    assert body["promoCode"]["id"] == promo.id
    assert body["promoCode"]["finalAmount"] == "25.00"


def test_active_promos_and_lookup_by_code(client, make_promo):
    make_promo(code="SAVE10")
    make_promo(code="PAUSED", status="Inactive")

    active = client.get("/promo/active", headers=DISTRIBUTOR).json()
    assert [p["code"] for p in active] == ["SAVE10"]

    found = client.get("/promo/by-code/PAUSED", headers=DISTRIBUTOR)
    assert found.status_code == 200
    assert found.json()["status"] == "Inactive"

    assert client.get("/promo/by-code/MISSING", headers=DISTRIBUTOR).status_code == 404

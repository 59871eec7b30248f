"""
Order item field editor and order shipping tests.

Verifies:
- shipping/quantity edits recompute order shipping_amount and total
- shipping_method edits derive the order method from active items
- workflow key edits bypass the role graph but still cascade
- shipping cannot be edited once paid; admin may only set status 0/1
"""

from decimal import Decimal

import pytest

from backoffice.extensions import db
from backoffice.models import Order, OrderItemStatusHistory
from backoffice.services import order_service
from backoffice.services.order_service import (
    OrderItemMismatchError,
    ShippingLockedError,
    derive_shipping_method,
)
from backoffice.validation import ValidationError


def _order(order_id):
    db.session.expire_all()
    return db.session.get(Order, order_id)


def test_shipping_edit_recomputes_totals(make_order):
    order = make_order(
        [{"status": "ordered", "shipping": "5.00"}, {"status": "ordered", "shipping": "7.50"}],
        subtotal="100.00", tax="3.00", discount="10.00",
    )
    item = order.items[0]

    result = order_service.update_item_fields(order.id, item.id, {"shipping": "12.25"})

    assert result["updated_fields"] == ["shipping"]
    assert result["order_shipping_amount"] == 19.75
    assert result["order_total"] == 112.75
    refreshed = _order(order.id)
    assert refreshed.shipping_amount == Decimal("19.75")
    assert refreshed.total == refreshed.subtotal + refreshed.shipping_amount + refreshed.tax_amount - refreshed.discount_amount


def test_quantity_edit_validates_and_recomputes(make_order):
    order = make_order([{"status": "ordered", "shipping": "4.00"}])
    item = order.items[0]

    with pytest.raises(ValidationError):
        order_service.update_item_fields(order.id, item.id, {"quantity": 0})
    with pytest.raises(ValidationError):
        order_service.update_item_fields(order.id, item.id, {"quantity": 1.5})

    result = order_service.update_item_fields(order.id, item.id, {"quantity": 3})
    assert result["item"]["quantity"] == 3
    assert result["order_total"] == 104.0


def test_negative_shipping_is_rejected(make_order):
    order = make_order([{"status": "ordered"}])
    with pytest.raises(ValidationError):
        order_service.update_item_fields(order.id, order.items[0].id, {"shipping": "-1"})


def test_shipping_method_derivation(make_order):
    order = make_order([
        {"status": "ordered", "method": "air"},
        {"status": "ordered", "method": "air"},
        {"status": "cancelled", "method": "sea", "legacy_status": 5},
    ])
    first, second, _ = order.items

    result = order_service.update_item_fields(order.id, first.id, {"shipping_method": "sea"})
    assert result["order_shipping_method"] == "both"

    result = order_service.update_item_fields(order.id, second.id, {"shipping_method": "sea"})
    assert result["order_shipping_method"] == "sea"


def test_derive_shipping_method_defaults_to_air():
    class Row:
        def __init__(self, method, status=1):
            self.shipping_method = method
            self.status = status
            self.workflow_status = None

    assert derive_shipping_method([]) == "air"
    assert derive_shipping_method([Row("sea", status=5)]) == "air"
    assert derive_shipping_method([Row("sea"), Row("air")]) == "both"


def test_uncancelled_item_counts_for_shipping_method(make_order):
    order = make_order([{"status": "ordered", "method": "air"}, {"status": "ordered", "method": "sea"}])
    air_item, sea_item = order.items

    order_service.update_item_fields(order.id, sea_item.id, {"workflow_status_key": "cancelled"})
    result = order_service.update_item_fields(order.id, air_item.id, {"shipping_method": "air"})
    assert result["order_shipping_method"] == "air"

    order_service.update_item_fields(order.id, sea_item.id, {"workflow_status_key": "ordered"})
    result = order_service.update_item_fields(order.id, air_item.id, {"shipping_method": "air"})
    assert result["order_shipping_method"] == "both"


def test_workflow_status_decides_cancellation_over_legacy_status(make_order):
    order = make_order([
        {"status": "ordered", "method": "air"},
        {"status": "cancelled", "method": "sea", "legacy_status": 1},
    ])

    result = order_service.update_item_fields(order.id, order.items[0].id, {"shipping_method": "air"})
    assert result["order_shipping_method"] == "air"


def test_unknown_shipping_method_is_rejected(make_order):
    order = make_order([{"status": "ordered"}])
    with pytest.raises(ValidationError):
        order_service.update_item_fields(order.id, order.items[0].id, {"shipping_method": "rail"})


def test_workflow_key_edit_cascades_without_audit(make_order, statuses):
    order = make_order([{"status": "processing"}, {"status": "shipped_to_leb"}])
    first, second = order.items

    # no role graph: jumping straight across steps is allowed here
    result = order_service.update_item_fields(order.id, first.id, {"workflow_status_key": "shipped_to_leb"})

    assert result["order_status_updated"] is True
    assert _order(order.id).workflow_status_id == statuses["shipped_to_leb"].id
    assert db.session.query(OrderItemStatusHistory).count() == 0


def test_workflow_key_edit_to_cancelled_sets_legacy_status(make_order):
    order = make_order([{"status": "processing"}, {"status": "ordered"}])
    result = order_service.update_item_fields(order.id, order.items[0].id, {"workflow_status_key": "cancelled"})
    assert result["item"]["status"] == 5
    assert result["order_status_updated"] is True


def test_item_must_belong_to_order(make_order):
    first = make_order([{"status": "ordered"}])
    other = make_order([{"status": "ordered"}])

    with pytest.raises(OrderItemMismatchError):
        order_service.update_item_fields(first.id, other.items[0].id, {"quantity": 2})


def test_empty_and_unknown_changes(make_order):
    order = make_order([{"status": "ordered"}])
    item = order.items[0]
    with pytest.raises(ValidationError):
        order_service.update_item_fields(order.id, item.id, {})
    with pytest.raises(ValidationError):
        order_service.update_item_fields(order.id, item.id, {"price": "1.00"})


# =============================================================================
# ORDER SHIPPING
# =============================================================================


def test_confirm_shipping_price(make_order):
    order = make_order([{"status": "ordered"}], subtotal="50.00")

    result = order_service.update_order_shipping(order.id, shipping_amount="15.00", tax_amount="2.50", shipping_status=1)

    assert result["price_confirmed"] is True
    assert result["total"] == 67.5
    assert result["shipping_status"] == 1

    again = order_service.update_order_shipping(order.id, shipping_status=1)
    assert again["price_confirmed"] is False


def test_admin_cannot_mark_paid(make_order):
    order = make_order([{"status": "ordered"}])
    with pytest.raises(ValidationError):
        order_service.update_order_shipping(order.id, shipping_status=2)


def test_paid_shipping_is_locked(make_order):
    order = make_order([{"status": "ordered"}])
    order_service.update_order_shipping(order.id, shipping_status=1)
    order_service.mark_shipping_paid(order.id)

    with pytest.raises(ShippingLockedError):
        order_service.update_order_shipping(order.id, shipping_amount="1.00")
    assert _order(order.id).shipping_status == 2


def test_mark_paid_requires_ready_to_pay(make_order):
    order = make_order([{"status": "ordered"}])
    with pytest.raises(ValidationError):
        order_service.mark_shipping_paid(order.id)


class TestOrderRoutes:

    def test_get_order(self, client, viewer_headers, make_order):
        order = make_order([{"status": "ordered"}, {"status": "processing"}])
        resp = client.get(f"/api/orders/{order.id}", headers=viewer_headers)
        assert resp.status_code == 200
        assert len(resp.json["order"]["items"]) == 2

    def test_update_item_route(self, client, manager_headers, make_order):
        order = make_order([{"status": "ordered", "shipping": "1.00"}])
        resp = client.put(
            f"/api/orders/{order.id}/items",
            json={"item_id": order.items[0].id, "shipping": 9},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["order_shipping_amount"] == 9.0

    def test_update_item_route_wrong_order(self, client, manager_headers, make_order):
        order = make_order([{"status": "ordered"}])
        resp = client.put(
            f"/api/orders/{order.id + 100}/items",
            json={"item_id": order.items[0].id, "quantity": 2},
            headers=manager_headers,
        )
        assert resp.status_code == 404

    def test_viewer_cannot_edit_items(self, client, viewer_headers, make_order):
        order = make_order([{"status": "ordered"}])
        resp = client.put(
            f"/api/orders/{order.id}/items",
            json={"item_id": order.items[0].id, "quantity": 2},
            headers=viewer_headers,
        )
        assert resp.status_code == 403

    def test_paid_shipping_route_returns_400(self, client, manager_headers, make_order):
        order = make_order([{"status": "ordered"}])
        client.put(f"/api/orders/{order.id}/shipping", json={"shipping_status": 1}, headers=manager_headers)
        paid = client.post(f"/api/orders/{order.id}/shipping/paid", headers=manager_headers)
        assert paid.status_code == 200

        resp = client.put(f"/api/orders/{order.id}/shipping", json={"tax_amount": 1}, headers=manager_headers)
        assert resp.status_code == 400

"""
Order item workflow tests.

Verifies:
- Only edges in the caller's role graph can be taken; others change nothing
- Cancel/refund need their own permissions and set legacy status 5/6
- Tracking number is enforced on edges that require it
- Every transition writes exactly one audit row
- Order cascade only fires when all non-terminal items agree
- Transition writes are all-or-nothing
"""

import pytest

from backoffice.extensions import db
from backoffice.models import Order, OrderItem, OrderItemStatusHistory, OrderTracking
from backoffice.services import workflow_service
from backoffice.services.permission_service import AllowedTransition
from backoffice.services.workflow_service import (
    WorkflowPermissionError,
    OrderItemNotFoundError,
    InvalidWorkflowStateError,
    TransitionNotAllowedError,
    TrackingNumberRequiredError,
)


def _history_count(item_id=None):
    query = db.session.query(OrderItemStatusHistory)
    if item_id is not None:
        query = query.filter_by(order_item_id=item_id)
    return query.count()


def _item(item_id):
    db.session.expire_all()
    return db.session.get(OrderItem, item_id)


# =============================================================================
# SINGLE TRANSITIONS
# =============================================================================


def test_allowed_transition_updates_item_and_audit(make_order, manager_user, context_for, statuses):
    order = make_order([{"status": "processing"}])
    item = order.items[0]

    result = workflow_service.transition_item(item.id, context_for(manager_user), "ordered", note="placed with supplier")

    assert result["item"]["workflow_status_key"] == "ordered"
    refreshed = _item(item.id)
    assert refreshed.workflow_status_id == statuses["ordered"].id
    assert refreshed.workflow_status_updated_by == manager_user.id
    assert refreshed.workflow_status_updated_at is not None

    rows = db.session.query(OrderItemStatusHistory).filter_by(order_item_id=item.id).all()
    assert len(rows) == 1
    assert rows[0].from_status_id == statuses["processing"].id
    assert rows[0].to_status_id == statuses["ordered"].id
    assert rows[0].note == "placed with supplier"


def test_disallowed_transition_changes_nothing(make_order, warehouse_user, context_for, statuses):
    order = make_order([{"status": "processing"}])
    item = order.items[0]

    # warehouse has no edge out of "processing"
    with pytest.raises(TransitionNotAllowedError):
        workflow_service.transition_item(item.id, context_for(warehouse_user), "ordered")

    assert _item(item.id).workflow_status_id == statuses["processing"].id
    assert _history_count() == 0


def test_skipping_a_step_is_not_allowed(make_order, manager_user, context_for):
    order = make_order([{"status": "processing"}])
    with pytest.raises(TransitionNotAllowedError):
        workflow_service.transition_item(order.items[0].id, context_for(manager_user), "delivered_to_customer")


def test_tracking_number_required(make_order, manager_user, context_for, statuses):
    order = make_order([{"status": "ordered"}])
    item = order.items[0]
    ctx = context_for(manager_user)

    with pytest.raises(TrackingNumberRequiredError):
        workflow_service.transition_item(item.id, ctx, "shipped_to_wh")
    with pytest.raises(TrackingNumberRequiredError):
        workflow_service.transition_item(item.id, ctx, "shipped_to_wh", tracking_number="   ")
    assert _history_count() == 0

    workflow_service.transition_item(item.id, ctx, "shipped_to_wh", tracking_number=" TRK-1 ")

    refreshed = _item(item.id)
    assert refreshed.tracking_number == "TRK-1"
    assert refreshed.workflow_status_id == statuses["shipped_to_wh"].id
    history = db.session.query(OrderItemStatusHistory).filter_by(order_item_id=item.id).one()
    assert history.tracking_number_snapshot == "TRK-1"


def test_stored_tracking_number_satisfies_requirement(make_order, manager_user, context_for):
    order = make_order([{"status": "ordered", "tracking": "TRK-STORED"}])
    result = workflow_service.transition_item(order.items[0].id, context_for(manager_user), "shipped_to_wh")
    assert result["item"]["tracking_number"] == "TRK-STORED"


def test_cancel_sets_legacy_status(make_order, manager_user, context_for):
    order = make_order([{"status": "processing"}, {"status": "ordered"}])
    item = order.items[0]

    workflow_service.transition_item(item.id, context_for(manager_user), "cancelled")

    assert _item(item.id).status == 5
    assert _history_count(item.id) == 1


def test_refund_sets_legacy_status(make_order, manager_user, context_for):
    order = make_order([{"status": "delivered_to_customer"}])
    item = order.items[0]

    workflow_service.transition_item(item.id, context_for(manager_user), "refunded")

    assert _item(item.id).status == 6
    assert _history_count(item.id) == 1


def test_cancel_requires_cancel_permission(make_order, warehouse_user, context_for, statuses):
    order = make_order([{"status": "ordered"}])
    with pytest.raises(WorkflowPermissionError):
        workflow_service.transition_item(order.items[0].id, context_for(warehouse_user), "cancelled")
    assert _item(order.items[0].id).workflow_status_id == statuses["ordered"].id


def test_viewer_cannot_change_status(make_order, viewer_user, context_for):
    order = make_order([{"status": "processing"}])
    with pytest.raises(WorkflowPermissionError):
        workflow_service.transition_item(order.items[0].id, context_for(viewer_user), "ordered")


def test_missing_item_and_missing_status(make_order, manager_user, context_for):
    ctx = context_for(manager_user)
    with pytest.raises(OrderItemNotFoundError):
        workflow_service.transition_item(98765, ctx, "ordered")

    order = make_order([{"status": None}])
    with pytest.raises(InvalidWorkflowStateError):
        workflow_service.transition_item(order.items[0].id, ctx, "ordered")


def test_injected_resolver_drives_the_graph(make_order, manager_user, context_for, statuses):
    order = make_order([{"status": "processing"}])
    item = order.items[0]
    target = statuses["delivered_to_customer"]

    def resolver(role_key, current_status_id):
        return [AllowedTransition(target.id, target.status_key, target.status_label, False, False)]

    result = workflow_service.transition_item(item.id, context_for(manager_user), "delivered_to_customer",
                                              resolve_transitions=resolver)
    assert result["item"]["workflow_status_key"] == "delivered_to_customer"


def test_get_item_transitions(make_order):
    order = make_order([{"status": "processing"}])

    view = workflow_service.get_item_transitions(order.items[0].id, "order_manager")

    assert view["current_status"]["key"] == "processing"
    assert [t["to_status_key"] for t in view["allowed_transitions"]] == ["ordered", "cancelled"]
    assert workflow_service.get_item_transitions(order.items[0].id, "viewer")["allowed_transitions"] == []


# =============================================================================
# ORDER CASCADE
# =============================================================================


def test_cascade_fires_when_last_item_catches_up(make_order, manager_user, context_for, statuses):
    order = make_order([{"status": "processing"}] * 3)
    a, b, c = order.items
    ctx = context_for(manager_user)

    first = workflow_service.transition_item(a.id, ctx, "ordered")
    second = workflow_service.transition_item(b.id, ctx, "ordered")
    assert first["order_status_changed"] is False
    assert second["order_status_changed"] is False
    assert db.session.query(OrderTracking).count() == 0

    third = workflow_service.transition_item(c.id, ctx, "ordered")
    assert third["order_status_changed"] is True
    assert third["order_new_status"] == "ordered"

    db.session.expire_all()
    assert db.session.get(Order, order.id).workflow_status_id == statuses["ordered"].id
    tracking = db.session.query(OrderTracking).filter_by(order_id=order.id).one()
    assert tracking.status_id == statuses["ordered"].status_order


def test_cascade_ignores_terminal_items(make_order, manager_user, context_for, statuses):
    order = make_order([{"status": "processing"}, {"status": "cancelled", "legacy_status": 5}])

    result = workflow_service.transition_item(order.items[0].id, context_for(manager_user), "ordered")

    assert result["order_status_changed"] is True
    assert result["order_new_status"] == "ordered"


def test_no_cascade_when_every_item_is_terminal(make_order, manager_user, context_for):
    order = make_order([{"status": "processing"}, {"status": "refunded", "legacy_status": 6}])

    result = workflow_service.transition_item(order.items[0].id, context_for(manager_user), "cancelled")

    assert result["order_status_changed"] is False
    assert result["order_new_status"] is None
    db.session.expire_all()
    assert db.session.get(Order, order.id).workflow_status_id is None
    assert db.session.query(OrderTracking).count() == 0


def test_failure_during_cascade_rolls_back_everything(make_order, manager_user, context_for, statuses, monkeypatch):
    order = make_order([{"status": "processing"}])
    item = order.items[0]

    def exploding(order_id):
        raise RuntimeError("tracking table unavailable")

    monkeypatch.setattr(workflow_service, "derive_order_status_from_items", exploding)

    with pytest.raises(RuntimeError):
        workflow_service.transition_item(item.id, context_for(manager_user), "ordered")

    assert _item(item.id).workflow_status_id == statuses["processing"].id
    assert _history_count() == 0


# =============================================================================
# BULK + HISTORY
# =============================================================================


def test_bulk_transition_skips_items_without_an_edge(make_order, manager_user, context_for, statuses):
    order = make_order([{"status": "processing"}, {"status": "processing"}, {"status": "delivered_to_customer"}])
    a, b, c = order.items

    result = workflow_service.bulk_transition([a.id, b.id, c.id, 5555], context_for(manager_user), "ordered")

    assert sorted(result["updated"]) == [a.id, b.id]
    assert {s["item_id"]: s["reason"] for s in result["skipped"]} == {
        c.id: "transition_not_allowed",
        5555: "not_found",
    }
    rows = db.session.query(OrderItemStatusHistory).all()
    assert len(rows) == 2
    assert all(r.note == "Bulk status change" for r in rows)
    assert result["order_cascades"] == {}


def test_bulk_transition_cascades_once_per_order(make_order, manager_user, context_for):
    order = make_order([{"status": "processing"}, {"status": "processing"}])

    result = workflow_service.bulk_transition([i.id for i in order.items], context_for(manager_user), "ordered")

    assert result["order_cascades"] == {order.id: "ordered"}
    assert db.session.query(OrderTracking).filter_by(order_id=order.id).count() == 1


def test_bulk_transition_skips_missing_tracking(make_order, manager_user, context_for):
    order = make_order([{"status": "ordered", "tracking": "TRK-9"}, {"status": "ordered"}])
    with_tracking, without = order.items

    result = workflow_service.bulk_transition([with_tracking.id, without.id], context_for(manager_user), "shipped_to_wh")

    assert result["updated"] == [with_tracking.id]
    assert result["skipped"] == [{"item_id": without.id, "reason": "tracking_number_required"}]


def test_bulk_limit(manager_user, context_for):
    with pytest.raises(InvalidWorkflowStateError):
        workflow_service.bulk_transition(list(range(1, 202)), context_for(manager_user), "ordered")


def test_history_is_newest_first(make_order, manager_user, context_for):
    order = make_order([{"status": "processing"}])
    item = order.items[0]
    ctx = context_for(manager_user)
    workflow_service.transition_item(item.id, ctx, "ordered")
    workflow_service.transition_item(item.id, ctx, "shipped_to_wh", tracking_number="TRK-2")

    history = workflow_service.get_item_history(item.id)

    assert [h["to_status_key"] for h in history] == ["shipped_to_wh", "ordered"]
    assert history[0]["tracking_number_snapshot"] == "TRK-2"


# =============================================================================
# HTTP
# =============================================================================


class TestWorkflowRoutes:

    def test_get_workflow(self, client, manager_headers, make_order):
        order = make_order([{"status": "processing"}])
        resp = client.get(f"/api/orders/items/{order.items[0].id}/workflow", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["current_status"]["key"] == "processing"

    def test_put_workflow(self, client, manager_headers, make_order):
        order = make_order([{"status": "processing"}])
        resp = client.put(
            f"/api/orders/items/{order.items[0].id}/workflow",
            json={"to_status_key": "ordered"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["item"]["workflow_status_key"] == "ordered"
        assert resp.json["order_status_changed"] is True

    def test_transition_not_allowed_is_403(self, client, warehouse_headers, make_order):
        order = make_order([{"status": "processing"}])
        resp = client.put(
            f"/api/orders/items/{order.items[0].id}/workflow",
            json={"to_status_key": "ordered"},
            headers=warehouse_headers,
        )
        assert resp.status_code == 403

    def test_tracking_required_is_400(self, client, manager_headers, make_order):
        order = make_order([{"status": "ordered"}])
        resp = client.put(
            f"/api/orders/items/{order.items[0].id}/workflow",
            json={"to_status_key": "shipped_to_wh"},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_missing_item_is_404(self, client, manager_headers, seed):
        resp = client.put(
            "/api/orders/items/424242/workflow",
            json={"to_status_key": "ordered"},
            headers=manager_headers,
        )
        assert resp.status_code == 404

    def test_bulk_route(self, client, manager_headers, make_order):
        order = make_order([{"status": "processing"}, {"status": "processing"}])
        resp = client.put(
            "/api/orders/items/bulk-workflow",
            json={"item_ids": [i.id for i in order.items], "to_status_key": "ordered"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["updated_count"] == 2

    def test_history_route(self, client, manager_headers, make_order):
        order = make_order([{"status": "processing"}])
        resp = client.get(f"/api/orders/items/{order.items[0].id}/history", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["history"] == []

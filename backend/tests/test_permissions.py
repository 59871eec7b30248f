"""
Permission resolver tests.

Verifies:
- Primary active role decides the permission set
- Per-user overrides add or remove single permissions
- Inactive roles and users without a role resolve to no permissions
- Transition graph lookup honours can_transition and inactive statuses
- Seeding is idempotent
"""

from backoffice.extensions import db
from backoffice.models import Role, RoleItemTransition, SecurityEvent
from backoffice.services import permission_service
from backoffice.services.permission_service import PermissionDeniedError

import pytest


def test_role_permissions(manager_user):
    role_key, role_name, permissions = permission_service.get_user_role_and_permissions(manager_user.id)

    assert role_key == "order_manager"
    assert role_name == "Order Manager"
    assert "action.orders.item.cancel" in permissions
    assert "action.categories.reorder" not in permissions


def test_overrides_add_and_remove(manager_user):
    permission_service.set_permission_override(manager_user.id, "action.categories.reorder", True)
    permission_service.set_permission_override(manager_user.id, "action.orders.item.refund", False)

    _, _, permissions = permission_service.get_user_role_and_permissions(manager_user.id)

    assert "action.categories.reorder" in permissions
    assert "action.orders.item.refund" not in permissions


def test_user_without_role_has_nothing(make_user):
    user = make_user("nobody", None)
    assert permission_service.get_user_role_and_permissions(user.id) == ("none", "No Role", set())


def test_inactive_role_has_nothing(manager_user):
    role = db.session.query(Role).filter_by(role_key="order_manager").one()
    role.is_active = False
    db.session.commit()

    role_key, _, permissions = permission_service.get_user_role_and_permissions(manager_user.id)
    assert role_key == "none"
    assert permissions == set()
    assert permission_service.get_allowed_transitions("order_manager", 1) == []


def test_allowed_transitions_honour_flags(statuses):
    processing = statuses["processing"]
    keys = [t.to_status_key for t in permission_service.get_allowed_transitions("order_manager", processing.id)]
    assert keys == ["ordered", "cancelled"]

    role = db.session.query(Role).filter_by(role_key="order_manager").one()
    edge = db.session.query(RoleItemTransition).filter_by(
        role_id=role.id, from_status_id=processing.id, to_status_id=statuses["cancelled"].id
    ).one()
    edge.can_transition = False
    statuses["ordered"].is_active = False
    db.session.commit()

    assert permission_service.get_allowed_transitions("order_manager", processing.id) == []


def test_tracking_flag_is_exposed(statuses):
    (edge,) = [
        t for t in permission_service.get_allowed_transitions("warehouse", statuses["ordered"].id)
        if t.to_status_key == "shipped_to_wh"
    ]
    assert edge.requires_tracking is True
    assert edge.to_dict()["to_status_label"] == "Shipped to WH"


def test_unknown_role_has_no_transitions(statuses):
    assert permission_service.get_allowed_transitions("ghost", statuses["processing"].id) == []


def test_require_permission_logs_denial(viewer_user, context_for):
    with pytest.raises(PermissionDeniedError):
        permission_service.require_permission(context_for(viewer_user), "action.coupons.manage", resource="/api/coupons")

    event = db.session.query(SecurityEvent).one()
    assert event.event_type == "PERMISSION_DENIED"
    assert event.action == "action.coupons.manage"
    assert event.user_id == viewer_user.id


def test_seeding_is_idempotent(seed):
    assert permission_service.initialize_permissions() == 0
    assert permission_service.assign_default_role_permissions() == 0
    assert permission_service.initialize_workflow_statuses() == 0
    assert permission_service.assign_default_role_transitions() == 0


def test_grant_and_revoke(viewer_user):
    permission_service.grant_permission_to_role("viewer", "action.coupons.manage")
    assert "action.coupons.manage" in permission_service.get_user_permissions(viewer_user.id)

    assert permission_service.revoke_permission_from_role("viewer", "action.coupons.manage") is True
    assert permission_service.revoke_permission_from_role("viewer", "action.coupons.manage") is False
    assert "action.coupons.manage" not in permission_service.get_user_permissions(viewer_user.id)


def test_has_any_permission():
    permissions = {"page.orders.view"}
    assert permission_service.has_any_permission(permissions, ["page.coupons.view", "page.orders.view"])
    assert not permission_service.has_any_permission(permissions, ["page.coupons.view"])
    assert not permission_service.has_any_permission(set(), [])

# Overview: Service-layer operations for permissions; resolves roles, permission sets and the item workflow graph.

"""
Permission Resolver and Security Event Logging

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
- The primary role decides both the permission set and the item workflow
  transition graph; per-user overrides adjust the permission set only
- The transition graph is data (role_item_transitions), never code
"""

from dataclasses import dataclass

from ..extensions import db
from ..models import (
    Role,
    UserRole,
    Permission,
    RolePermission,
    UserPermissionOverride,
    SecurityEvent,
    WorkflowStatus,
    RoleItemTransition,
)
from ..permissions import (
    PERMISSION_DEFINITIONS,
    DEFAULT_ROLE_PERMISSIONS,
    DEFAULT_WORKFLOW_STATUSES,
    DEFAULT_ROLE_TRANSITIONS,
    validate_permission_key,
)
from ..time_utils import utcnow


NO_ROLE_KEY = "none"


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


@dataclass(frozen=True)
class AllowedTransition:
    """One edge a role may take from an item's current workflow status."""
    to_status_id: int
    to_status_key: str
    to_status_label: str
    is_terminal: bool
    requires_tracking: bool

    def to_dict(self) -> dict:
        return {
            "to_status_id": self.to_status_id,
            "to_status_key": self.to_status_key,
            "to_status_label": self.to_status_label,
            "is_terminal": self.is_terminal,
            "requires_tracking": self.requires_tracking,
        }


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - LOGOUT
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def has_permission(permissions, permission_key: str) -> bool:
    """Check if a resolved permission set contains a specific permission."""
    return permission_key in permissions


def has_any_permission(permissions, permission_keys) -> bool:
    return any(key in permissions for key in permission_keys)


def get_primary_role(user_id: int) -> Role | None:
    user_role = db.session.query(UserRole).filter_by(user_id=user_id, is_primary=True).first()
    if not user_role:
        return None
    role = db.session.get(Role, user_role.role_id)
    if not role or not role.is_active:
        return None
    return role


def get_user_role_and_permissions(user_id: int) -> tuple[str, str, set[str]]:
    """
    Resolve (role_key, role_name, permission keys) for a user.

    Permissions = allowed permissions of the primary active role, then
    per-user overrides applied on top (allowed adds, denied removes).
    A user without an active primary role gets no permissions at all.
    """
    role = get_primary_role(user_id)
    if role is None:
        return NO_ROLE_KEY, "No Role", set()

    rows = (
        db.session.query(Permission.permission_key)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == role.id, RolePermission.allowed.is_(True))
        .all()
    )
    permission_keys = {row[0] for row in rows}

    overrides = db.session.query(UserPermissionOverride).filter_by(user_id=user_id).all()
    for override in overrides:
        if override.allowed:
            permission_keys.add(override.permission_key)
        else:
            permission_keys.discard(override.permission_key)

    return role.role_key, role.name, permission_keys


def get_user_permissions(user_id: int) -> set[str]:
    return get_user_role_and_permissions(user_id)[2]


def require_permission(
    context,
    permission_key: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Require the session to hold a permission, raise PermissionDeniedError if not.

    Denials are written to security_events.
    """
    if has_permission(context.permissions, permission_key):
        return

    log_security_event(
        user_id=context.user.id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_key,
        reason=f"Missing permission: {permission_key}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_key}")


def get_allowed_transitions(role_key: str, current_status_id: int) -> list[AllowedTransition]:
    """
    Resolve the workflow edges a role may take from a status.

    Only active roles, edges flagged can_transition and active target
    statuses count. Unknown role or no edges -> empty list.
    """
    role = db.session.query(Role).filter_by(role_key=role_key, is_active=True).first()
    if not role:
        return []

    rows = (
        db.session.query(RoleItemTransition, WorkflowStatus)
        .join(WorkflowStatus, WorkflowStatus.id == RoleItemTransition.to_status_id)
        .filter(
            RoleItemTransition.role_id == role.id,
            RoleItemTransition.from_status_id == current_status_id,
            RoleItemTransition.can_transition.is_(True),
            WorkflowStatus.is_active.is_(True),
        )
        .order_by(WorkflowStatus.status_order, WorkflowStatus.id)
        .all()
    )

    return [
        AllowedTransition(
            to_status_id=status.id,
            to_status_key=status.status_key,
            to_status_label=status.status_label,
            is_terminal=bool(status.is_terminal),
            requires_tracking=bool(edge.requires_tracking_number),
        )
        for edge, status in rows
    ]


def set_permission_override(user_id: int, permission_key: str, allowed: bool, reason: str | None = None) -> UserPermissionOverride:
    """Grant (allowed=True) or deny (allowed=False) one permission for one user."""
    if not validate_permission_key(permission_key):
        raise ValueError(f"Permission '{permission_key}' not found")

    override = db.session.query(UserPermissionOverride).filter_by(
        user_id=user_id,
        permission_key=permission_key,
    ).first()

    if override:
        override.allowed = allowed
        override.reason = reason
    else:
        override = UserPermissionOverride(
            user_id=user_id,
            permission_key=permission_key,
            allowed=allowed,
            reason=reason,
        )
        db.session.add(override)

    db.session.commit()
    return override


def initialize_permissions() -> int:
    """
    Initialize all permission definitions in database.

    Idempotent: Safe to run multiple times.
    """
    created_count = 0

    for key, name, description, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(permission_key=key).first()

        if not existing:
            db.session.add(Permission(
                permission_key=key,
                name=name,
                description=description,
                category=category
            ))
            created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions() -> int:
    """
    Assign default permissions to roles based on DEFAULT_ROLE_PERMISSIONS.

    Idempotent: Safe to run multiple times (skips existing).
    """
    created_count = 0

    for role_key, permission_keys in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(role_key=role_key).first()

        if not role:
            continue  # Role doesn't exist, skip

        for permission_key in permission_keys:
            permission = db.session.query(Permission).filter_by(permission_key=permission_key).first()

            if not permission:
                continue

            existing = db.session.query(RolePermission).filter_by(
                role_id=role.id,
                permission_id=permission.id
            ).first()

            if not existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id, allowed=True))
                created_count += 1

    db.session.commit()
    return created_count


def initialize_workflow_statuses() -> int:
    """Create the default item workflow statuses. Idempotent."""
    created_count = 0

    for key, label, order, is_terminal, color in DEFAULT_WORKFLOW_STATUSES:
        existing = db.session.query(WorkflowStatus).filter_by(status_key=key).first()
        if not existing:
            db.session.add(WorkflowStatus(
                status_key=key,
                status_label=label,
                status_order=order,
                is_terminal=is_terminal,
                color=color,
            ))
            created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_transitions() -> int:
    """Seed each default role's workflow graph from DEFAULT_ROLE_TRANSITIONS. Idempotent."""
    statuses = {s.status_key: s.id for s in db.session.query(WorkflowStatus).all()}
    created_count = 0

    for role_key, edges in DEFAULT_ROLE_TRANSITIONS.items():
        role = db.session.query(Role).filter_by(role_key=role_key).first()
        if not role:
            continue

        for from_key, to_key, requires_tracking in edges:
            from_id = statuses.get(from_key)
            to_id = statuses.get(to_key)
            if from_id is None or to_id is None:
                continue

            existing = db.session.query(RoleItemTransition).filter_by(
                role_id=role.id,
                from_status_id=from_id,
                to_status_id=to_id,
            ).first()

            if not existing:
                db.session.add(RoleItemTransition(
                    role_id=role.id,
                    from_status_id=from_id,
                    to_status_id=to_id,
                    can_transition=True,
                    requires_tracking_number=requires_tracking,
                ))
                created_count += 1

    db.session.commit()
    return created_count


def grant_permission_to_role(role_key: str, permission_key: str) -> RolePermission:
    """Grant a permission to a role."""
    role = db.session.query(Role).filter_by(role_key=role_key).first()
    if not role:
        raise ValueError(f"Role '{role_key}' not found")

    permission = db.session.query(Permission).filter_by(permission_key=permission_key).first()
    if not permission:
        raise ValueError(f"Permission '{permission_key}' not found")

    role_permission = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id
    ).first()

    if role_permission:
        role_permission.allowed = True
    else:
        role_permission = RolePermission(role_id=role.id, permission_id=permission.id, allowed=True)
        db.session.add(role_permission)

    db.session.commit()
    return role_permission


def revoke_permission_from_role(role_key: str, permission_key: str) -> bool:
    """Revoke a permission from a role. Returns False if it wasn't granted."""
    role = db.session.query(Role).filter_by(role_key=role_key).first()
    if not role:
        raise ValueError(f"Role '{role_key}' not found")

    permission = db.session.query(Permission).filter_by(permission_key=permission_key).first()
    if not permission:
        raise ValueError(f"Permission '{permission_key}' not found")

    role_permission = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id
    ).first()

    if role_permission:
        db.session.delete(role_permission)
        db.session.commit()
        return True

    return False

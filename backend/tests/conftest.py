"""
Pytest fixtures for back-office backend tests.

Provides an in-memory database, seeded roles/permissions/workflow, users per
role with session tokens, and factories for categories and orders.
"""

from decimal import Decimal

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import CmsUser, Category, Order, OrderItem, WorkflowStatus
from backoffice.services.auth_service import hash_password, create_default_roles, assign_role
from backoffice.services import permission_service, session_service, category_tree_service


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        category_tree_service.invalidate_tree()

        yield db.session

        db.session.rollback()
        category_tree_service.invalidate_tree()


@pytest.fixture(scope='function')
def seed(db_session):
    """Default roles, permissions, workflow statuses and role transition graph."""
    permission_service.initialize_permissions()
    create_default_roles()
    permission_service.assign_default_role_permissions()
    permission_service.initialize_workflow_statuses()
    permission_service.assign_default_role_transitions()
    db_session.commit()


@pytest.fixture(scope='function')
def make_user(db_session, seed):
    def _make(username: str, role_key: str | None) -> CmsUser:
        user = CmsUser(
            username=username,
            email=f"{username}@backoffice.test",
            password_hash=hash_password(TEST_PASSWORD, rounds=4),
        )
        db_session.add(user)
        db_session.commit()
        if role_key:
            assign_role(user.id, role_key)
        return user
    return _make


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user("admin", "super_admin")


@pytest.fixture(scope='function')
def manager_user(make_user):
    return make_user("manager", "order_manager")


@pytest.fixture(scope='function')
def warehouse_user(make_user):
    return make_user("warehouse", "warehouse")


@pytest.fixture(scope='function')
def viewer_user(make_user):
    return make_user("viewer", "viewer")


@pytest.fixture(scope='function')
def context_for(seed):
    """Resolve a SessionContext for a user without going through HTTP."""
    return session_service.build_context


def auth_headers(user) -> dict:
    """Create a session for user and return Authorization headers."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return auth_headers(manager_user)


@pytest.fixture(scope='function')
def warehouse_headers(warehouse_user):
    return auth_headers(warehouse_user)


@pytest.fixture(scope='function')
def viewer_headers(viewer_user):
    return auth_headers(viewer_user)


@pytest.fixture(scope='function')
def statuses(seed):
    """status_key -> WorkflowStatus"""
    return {s.status_key: s for s in db.session.query(WorkflowStatus).all()}


@pytest.fixture(scope='function')
def make_category(db_session):
    def _make(name: str, parent: Category | None = None, order: int = 0, parent_id=None) -> Category:
        if parent is not None:
            parent_id = parent.id
            parent.has_children = True
        category = Category(
            name=name,
            parent_id=parent_id,
            level=parent.level + 1 if parent is not None else 0,
            order_number=order,
        )
        db_session.add(category)
        db_session.commit()
        return category
    return _make


@pytest.fixture(scope='function')
def make_order(db_session, statuses):
    """
    make_order([{"status": "ordered", "shipping": "5.00", "method": "air"}, ...],
               subtotal="100.00", tax="0", discount="0")
    """
    def _make(items, subtotal="100.00", tax="0", discount="0", shipping_amount=None) -> Order:
        order = Order(
            customer_id=1,
            subtotal=Decimal(subtotal),
            tax_amount=Decimal(tax),
            discount_amount=Decimal(discount),
            shipping_amount=Decimal("0"),
        )
        db_session.add(order)
        db_session.flush()

        for index, spec in enumerate(items, start=1):
            db_session.add(OrderItem(
                order_id=order.id,
                product_id=spec.get("product_id", 100 + index),
                product_name=spec.get("name", f"Item {index}"),
                quantity=spec.get("quantity", 1),
                price=Decimal(spec.get("price", "10.00")),
                shipping_method=spec.get("method", "air"),
                shipping=Decimal(spec.get("shipping", "0")),
                tracking_number=spec.get("tracking"),
                workflow_status_id=statuses[spec["status"]].id if spec.get("status") else None,
                status=spec.get("legacy_status", 1),
            ))
        db_session.flush()

        if shipping_amount is not None:
            order.shipping_amount = Decimal(shipping_amount)
        else:
            order.shipping_amount = sum((Decimal(s.get("shipping", "0")) for s in items), Decimal("0"))
        order.recompute_total()
        db_session.commit()
        return order
    return _make

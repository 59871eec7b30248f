"""
Category tree store tests.

Verifies:
- Excluded closure covers every descendant of an excluded category
- Tree snapshot is cached, ordered, and rebuilt after invalidation
- Store failures surface as DataUnavailableError / 500 and are not cached
"""

import pytest
from sqlalchemy.exc import OperationalError

from backoffice.extensions import db
from backoffice.models import ExcludedCategory
from backoffice.services import category_tree_service, category_service
from backoffice.services.category_tree_service import DataUnavailableError, expand_excluded


def test_expand_excluded_closes_over_children():
    categories = [
        {"id": 1, "parent_id": None},
        {"id": 2, "parent_id": 1},
        {"id": 3, "parent_id": 2},
        {"id": 4, "parent_id": 0},
        {"id": 5, "parent_id": 4},
    ]
    assert expand_excluded(categories, {1}) == {1, 2, 3}
    assert expand_excluded(categories, {2, 4}) == {2, 3, 4, 5}
    assert expand_excluded(categories, set()) == set()


def test_expand_excluded_survives_parent_cycle():
    categories = [{"id": 1, "parent_id": 2}, {"id": 2, "parent_id": 1}]
    assert expand_excluded(categories, {1}) == {1, 2}


def test_tree_marks_descendants_of_excluded(db_session, make_category):
    root = make_category("Clothing", order=0)
    child = make_category("Shirts", parent=root)
    grandchild = make_category("Polo", parent=child)
    other = make_category("Shoes", order=1)
    db_session.add(ExcludedCategory(category_id=root.id))
    db_session.commit()

    tree = category_tree_service.get_tree()

    flags = {c["id"]: c["is_excluded"] for c in tree["categories"]}
    assert flags == {root.id: True, child.id: True, grandchild.id: True, other.id: False}
    assert tree["total"] == 4
    assert category_tree_service.get_excluded_category_ids() == {root.id, child.id, grandchild.id}


def test_tree_is_ordered_by_order_number(db_session, make_category):
    b = make_category("B", order=2)
    a = make_category("A", order=1)
    c = make_category("C", order=2)

    ids = [c_["id"] for c_ in category_tree_service.get_tree()["categories"]]
    assert ids == [a.id, b.id, c.id]


def test_tree_is_cached_until_invalidated(db_session, make_category):
    make_category("First")
    first = category_tree_service.get_tree()

    make_category("Second")
    assert category_tree_service.get_tree() is first

    category_tree_service.invalidate_tree()
    rebuilt = category_tree_service.get_tree()
    assert rebuilt is not first
    assert rebuilt["total"] == 2


def test_exclusion_edit_invalidates_tree(db_session, make_category):
    root = make_category("Root")
    child = make_category("Child", parent=root)
    assert not any(c["is_excluded"] for c in category_tree_service.get_tree()["categories"])

    category_service.set_category_excluded(root.id, True, reason="seasonal")

    flags = {c["id"]: c["is_excluded"] for c in category_tree_service.get_tree()["categories"]}
    assert flags == {root.id: True, child.id: True}


def test_store_failure_raises_and_is_not_cached(db_session, make_category, monkeypatch):
    make_category("Root")

    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session, "query", broken_query)
    with pytest.raises(DataUnavailableError):
        category_tree_service.get_tree()
    monkeypatch.undo()

    assert not category_tree_service.tree_cache.is_loaded
    assert category_tree_service.get_tree()["total"] == 1


def test_tree_route(client, admin_headers, make_category):
    make_category("Root")
    resp = client.get("/api/categories/tree", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json["total"] == 1
    assert resp.json["categories"][0]["is_excluded"] is False


def test_tree_route_returns_500_when_store_unavailable(client, admin_headers, monkeypatch):
    def unavailable():
        raise DataUnavailableError("Category store unavailable")

    monkeypatch.setattr(category_tree_service, "get_tree", unavailable)
    resp = client.get("/api/categories/tree", headers=admin_headers)
    assert resp.status_code == 500
    assert resp.json == {"error": "Failed to fetch category tree"}

# Overview: Service-layer category tree snapshot; cached full tree annotated with the excluded closure.

"""
Category Tree Store

The admin tree view needs every category plus whether it is excluded from
the storefront. Exclusion is stored only for the explicitly excluded ids;
every descendant of an excluded category is excluded too, so the closure
is computed here by walking the parent -> children adjacency breadth-first.

Two process-wide caches:
- tree_cache: the annotated snapshot {categories, total}
- excluded_cache: the excluded closure as a set of ids (used by listings)

Both are dropped together by invalidate_tree() after any category or
exclusion mutation.
"""

from __future__ import annotations

from collections import defaultdict, deque

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Category, ExcludedCategory
from .cache import SnapshotCache


DEFAULT_TTL_SECONDS = 300


class DataUnavailableError(Exception):
    """Raised when the category store cannot be read to build a snapshot."""
    pass


def expand_excluded(categories, base_ids) -> set[int]:
    """
    Close a set of excluded ids over the child relation.

    categories: iterable of objects/dicts with id and parent_id.
    Ids in base_ids that do not exist are kept as-is.
    """
    children = defaultdict(list)
    for category in categories:
        if isinstance(category, dict):
            cid, parent_id = category["id"], category.get("parent_id")
        else:
            cid, parent_id = category.id, category.parent_id
        if parent_id:
            children[parent_id].append(cid)

    excluded = set(base_ids)
    queue = deque(excluded)
    while queue:
        current = queue.popleft()
        for child_id in children.get(current, ()):
            if child_id not in excluded:
                excluded.add(child_id)
                queue.append(child_id)
    return excluded


def _load_categories_and_base():
    try:
        categories = (
            db.session.query(Category)
            .order_by(Category.order_number.asc(), Category.id.asc())
            .all()
        )
        base_ids = {row[0] for row in db.session.query(ExcludedCategory.category_id).all()}
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise DataUnavailableError("Category store unavailable") from exc
    return categories, base_ids


def _build_tree_data() -> dict:
    categories, base_ids = _load_categories_and_base()
    excluded = expand_excluded(categories, base_ids)

    views = []
    for category in categories:
        view = category.to_dict()
        view["is_excluded"] = category.id in excluded
        views.append(view)

    return {"categories": views, "total": len(views)}


def _build_excluded_ids() -> frozenset:
    categories, base_ids = _load_categories_and_base()
    return frozenset(expand_excluded(categories, base_ids))


tree_cache = SnapshotCache(_build_tree_data, DEFAULT_TTL_SECONDS)
excluded_cache = SnapshotCache(_build_excluded_ids, DEFAULT_TTL_SECONDS)


def init_app(app) -> None:
    tree_cache.ttl_seconds = app.config.get("CATEGORY_TREE_CACHE_TTL", DEFAULT_TTL_SECONDS)
    excluded_cache.ttl_seconds = app.config.get("CATEGORY_LIST_CACHE_TTL", DEFAULT_TTL_SECONDS)


def get_tree() -> dict:
    """Return the annotated tree snapshot. Callers must not mutate it."""
    return tree_cache.get()


def get_excluded_category_ids() -> frozenset:
    return excluded_cache.get()


def invalidate_tree() -> None:
    tree_cache.invalidate()
    excluded_cache.invalidate()

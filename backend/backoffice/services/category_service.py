# Overview: Service-layer operations for categories; reorder/reparent engine, listings and exclusion edits.

"""
Category Mutation Engine

TREE RULES:
- parent_id NULL and parent_id 0 both mean "root" (legacy rows carry 0)
- level(child) == level(parent) + 1, roots are level 0
- a category may never become its own ancestor
- moving into a position shifts the destination siblings at or after it
  down by one; the source siblings are not compacted (gaps are allowed)

Every reorder() call is one transaction. Any failure rolls back and the
tree is left exactly as it was.

KNOWN GAP: two concurrent moves into the same parent can interleave their
sibling shifts. Only the row lock on the moved category (honoured by
Postgres/MySQL, ignored by SQLite) protects against it.
"""

from __future__ import annotations

from collections import deque

from sqlalchemy import or_

from ..extensions import db
from ..models import Category, ExcludedCategory
from ..validation import ValidationError, parse_int
from .concurrency import lock_for_update, run_with_retry
from . import category_tree_service


MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
EXCLUSION_FILTERS = ("excluded", "not_excluded")


class CategoryError(ValueError):
    """Base class for category engine errors."""


class CategoryNotFoundError(CategoryError):
    """Referenced category does not exist."""


class CircularReferenceError(CategoryError):
    """Move would make a category its own ancestor."""


def normalize_parent(parent_id) -> int | None:
    """0, "0", "" and None all mean root."""
    if parent_id is None or parent_id == "" or parent_id == 0 or parent_id == "0":
        return None
    return parse_int(parent_id, "newParentId", minimum=1)


def _siblings_of(parent_id: int | None):
    if parent_id is None:
        return or_(Category.parent_id.is_(None), Category.parent_id == 0)
    return Category.parent_id == parent_id


def _shift_siblings(parent_id: int | None, from_order: int, exclude_id: int) -> int:
    return (
        db.session.query(Category)
        .filter(
            _siblings_of(parent_id),
            Category.id != exclude_id,
            Category.order_number >= from_order,
        )
        .update({Category.order_number: Category.order_number + 1}, synchronize_session=False)
    )


def _child_layers(category_id: int):
    """Yield the descendant ids of a category one depth layer at a time."""
    seen = {category_id}
    frontier = [category_id]
    while frontier:
        rows = db.session.query(Category.id).filter(Category.parent_id.in_(frontier)).all()
        layer = [row[0] for row in rows if row[0] not in seen]
        if not layer:
            return
        seen.update(layer)
        yield layer
        frontier = layer


def get_descendant_ids(category_id: int) -> set[int]:
    descendants: set[int] = set()
    for layer in _child_layers(category_id):
        descendants.update(layer)
    return descendants


def update_descendant_levels(category_id: int, base_level: int) -> int:
    """Rewrite the level of every descendant, one UPDATE per depth layer."""
    updated = 0
    level = base_level
    for layer in _child_layers(category_id):
        level += 1
        updated += (
            db.session.query(Category)
            .filter(Category.id.in_(layer))
            .update({Category.level: level}, synchronize_session=False)
        )
    return updated


def _refresh_has_children(parent_id: int | None) -> None:
    if parent_id is None:
        return
    parent = db.session.get(Category, parent_id)
    if parent is None:
        return
    remaining = db.session.query(Category.id).filter(Category.parent_id == parent_id).count()
    parent.has_children = remaining > 0


def _apply_reorder(category_id: int, new_parent_id: int | None, new_order: int) -> None:
    category = lock_for_update(
        db.session.query(Category).filter(Category.id == category_id)
    ).first()
    if category is None:
        raise CategoryNotFoundError(f"Category {category_id} not found")

    old_parent_id = normalize_parent(category.parent_id)

    if old_parent_id == new_parent_id:
        _shift_siblings(new_parent_id, new_order, category.id)
        category.order_number = new_order
        db.session.commit()
        return

    if new_parent_id == category.id:
        raise CircularReferenceError("A category cannot be its own parent")

    new_parent = None
    if new_parent_id is not None:
        new_parent = db.session.get(Category, new_parent_id)
        if new_parent is None:
            raise CategoryNotFoundError(f"Parent category {new_parent_id} not found")
        if new_parent_id in get_descendant_ids(category.id):
            raise CircularReferenceError("Cannot move a category under its own descendant")

    new_level = new_parent.level + 1 if new_parent is not None else 0

    _shift_siblings(new_parent_id, new_order, category.id)

    category.parent_id = new_parent_id
    category.level = new_level
    category.order_number = new_order
    db.session.flush()

    update_descendant_levels(category.id, new_level)

    _refresh_has_children(old_parent_id)
    if new_parent is not None:
        new_parent.has_children = True

    db.session.commit()


def reorder(category_id, new_parent_id, new_order) -> None:
    """
    Move a category to position new_order under new_parent_id.

    Same parent: siblings at or after new_order shift down by one.
    New parent: circular check, destination shift, level rewrite for the
    whole subtree, has_children upkeep on both parents.

    Raises ValidationError, CategoryNotFoundError, CircularReferenceError.
    """
    if category_id is None or category_id == "":
        raise ValidationError("categoryId is required")
    category_id = parse_int(category_id, "categoryId", minimum=1)
    if new_order is None or new_order == "":
        raise ValidationError("newOrder is required")
    new_order = parse_int(new_order, "newOrder", minimum=0)
    new_parent_id = normalize_parent(new_parent_id)

    try:
        run_with_retry(lambda: _apply_reorder(category_id, new_parent_id, new_order))
    except Exception:
        db.session.rollback()
        raise

    category_tree_service.invalidate_tree()


def rebuild_levels() -> dict:
    """
    Recompute level and has_children for every category from parent links.

    Categories pointing at a missing parent are treated as roots. Categories
    only reachable through a cycle are left untouched and reported.
    """
    categories = db.session.query(Category).all()
    by_id = {c.id: c for c in categories}
    children: dict[int, list[Category]] = {}
    roots = []

    for category in categories:
        parent_id = normalize_parent(category.parent_id)
        if parent_id is None or parent_id not in by_id:
            roots.append(category)
        else:
            children.setdefault(parent_id, []).append(category)

    changed = 0
    visited = set()
    queue = deque((root, 0) for root in roots)
    while queue:
        category, level = queue.popleft()
        if category.id in visited:
            continue
        visited.add(category.id)

        has_children = category.id in children
        if category.level != level or category.has_children != has_children:
            category.level = level
            category.has_children = has_children
            changed += 1

        for child in children.get(category.id, ()):
            queue.append((child, level + 1))

    db.session.commit()
    category_tree_service.invalidate_tree()

    return {
        "total": len(categories),
        "updated": changed,
        "unreachable": sorted(set(by_id) - visited),
    }


def _parse_bool_filter(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes"):
        return True
    if text in ("0", "false", "no"):
        return False
    raise ValidationError(f"{field} must be a boolean")


def list_categories(
    *,
    cursor=None,
    page_size=DEFAULT_PAGE_SIZE,
    search: str | None = None,
    level=None,
    display=None,
    excluded: str | None = None,
    parent_id=None,
) -> dict:
    """
    Cursor-paginated category listing, newest id first.

    is_excluded on each row is direct membership in the exclusion table;
    the excluded/not_excluded filter uses the full (inherited) closure.
    total is only computed for the first page.
    """
    page_size = min(parse_int(page_size, "page_size", minimum=1), MAX_PAGE_SIZE)

    query = db.session.query(Category)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Category.name.ilike(pattern),
            Category.name_en.ilike(pattern),
            Category.slug.ilike(pattern),
        ))
    if level not in (None, ""):
        query = query.filter(Category.level == parse_int(level, "level", minimum=0))
    if display not in (None, ""):
        query = query.filter(Category.display.is_(_parse_bool_filter(display, "display")))
    if parent_id not in (None, ""):
        if parent_id in ("root", "0", 0):
            query = query.filter(_siblings_of(None))
        else:
            query = query.filter(Category.parent_id == parse_int(parent_id, "parent_id", minimum=1))
    if excluded not in (None, ""):
        if excluded not in EXCLUSION_FILTERS:
            raise ValidationError(f"excluded must be one of: {', '.join(EXCLUSION_FILTERS)}")
        closure = category_tree_service.get_excluded_category_ids()
        if excluded == "excluded":
            query = query.filter(Category.id.in_(closure))
        else:
            query = query.filter(Category.id.notin_(closure))

    total = None
    if cursor in (None, ""):
        total = query.count()
    else:
        query = query.filter(Category.id < parse_int(cursor, "cursor", minimum=1))

    rows = query.order_by(Category.id.desc()).limit(page_size + 1).all()
    has_more = len(rows) > page_size
    rows = rows[:page_size]

    parent_ids = {c.parent_id for c in rows if c.parent_id}
    parent_names = {}
    if parent_ids:
        parent_names = dict(
            db.session.query(Category.id, Category.name).filter(Category.id.in_(parent_ids)).all()
        )

    page_ids = [c.id for c in rows]
    direct = set()
    if page_ids:
        direct = {
            row[0] for row in db.session.query(ExcludedCategory.category_id)
            .filter(ExcludedCategory.category_id.in_(page_ids)).all()
        }

    items = []
    for category in rows:
        data = category.to_dict()
        data["parent_name"] = parent_names.get(category.parent_id)
        data["is_excluded"] = category.id in direct
        items.append(data)

    result = {
        "categories": items,
        "next_cursor": rows[-1].id if has_more and rows else None,
        "has_more": has_more,
    }
    if total is not None:
        result["total"] = total
    return result


def get_category(category_id: int) -> dict:
    category = db.session.get(Category, category_id)
    if category is None:
        raise CategoryNotFoundError(f"Category {category_id} not found")

    exclusion = db.session.query(ExcludedCategory).filter_by(category_id=category_id).first()
    parent_id = normalize_parent(category.parent_id)
    parent = db.session.get(Category, parent_id) if parent_id else None

    data = category.to_dict()
    data["parent_name"] = parent.name if parent else None
    data["is_excluded"] = exclusion is not None
    data["excluded_reason"] = exclusion.reason if exclusion else None
    data["inherits_exclusion"] = (
        exclusion is None and category_id in category_tree_service.get_excluded_category_ids()
    )
    data["children_count"] = db.session.query(Category.id).filter(Category.parent_id == category_id).count()
    data["descendant_count"] = len(get_descendant_ids(category_id))
    return data


def set_category_excluded(category_id: int, excluded: bool, reason: str | None = None, user_id: int | None = None) -> dict:
    """Add or remove a category from the exclusion base set. Idempotent."""
    category = db.session.get(Category, category_id)
    if category is None:
        raise CategoryNotFoundError(f"Category {category_id} not found")

    existing = db.session.query(ExcludedCategory).filter_by(category_id=category_id).first()

    try:
        if excluded:
            if existing is None:
                db.session.add(ExcludedCategory(
                    category_id=category_id,
                    reason=reason,
                    created_by_user_id=user_id,
                ))
            elif reason is not None:
                existing.reason = reason
        elif existing is not None:
            db.session.delete(existing)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    category_tree_service.invalidate_tree()
    return get_category(category_id)

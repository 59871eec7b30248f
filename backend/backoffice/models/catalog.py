from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    """
    Product category node.

    TREE INVARIANTS (maintained by category_service.reorder):
    - root categories have parent_id NULL (legacy rows may carry 0) and level 0
    - level(c) == level(parent(c)) + 1 for every non-root category
    - no category is its own ancestor
    - order_number is unique among siblings and shifted on insert/move
    - has_children is True iff at least one category points at this one

    The parent edge is a reference, not ownership: categories are never
    cascaded away with their parent.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_parent_order", "parent_id", "order_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    name_en = db.Column(db.String(255), nullable=True)
    slug = db.Column(db.String(255), nullable=True, index=True)

    parent_id = db.Column(db.Integer, nullable=True, index=True)
    level = db.Column(db.Integer, nullable=False, default=0, index=True)
    order_number = db.Column(db.Integer, nullable=False, default=0)
    has_children = db.Column(db.Boolean, nullable=False, default=False)

    display = db.Column(db.Boolean, nullable=False, default=True)
    main_image = db.Column(db.String(512), nullable=True)
    product_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "name_en": self.name_en,
            "slug": self.slug,
            "parent_id": self.parent_id or None,
            "level": self.level,
            "order_number": self.order_number,
            "has_children": self.has_children,
            "display": self.display,
            "main_image": self.main_image,
            "product_count": self.product_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ExcludedCategory(db.Model):
    """
    Explicit exclusion base set.

    Only the explicitly excluded ids are stored; descendants are excluded
    transitively at read time (see category_tree_service.expand_excluded).
    """
    __tablename__ = "excluded_categories"
    __table_args__ = (
        db.UniqueConstraint("category_id", name="uq_excluded_categories_category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("cms_users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }

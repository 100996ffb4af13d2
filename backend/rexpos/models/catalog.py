from __future__ import annotations

from ..extensions import db
from rexpos.time_utils import to_utc_z


class Category(db.Model):
    """
    Store-scoped product category. parent_id forms a tree; cycles are
    rejected by the catalog service, not by the schema.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("store_id", "slug", name="uq_categories_store_slug"),
        db.UniqueConstraint("store_id", "name", name="uq_categories_store_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "slug": self.slug}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "image_url": self.image_url,
            "parent_id": self.parent_id,
            "parent": self.parent.to_summary() if self.parent else None,
            "is_active": self.is_active,
            "display_order": self.display_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("store_id", "slug", name="uq_brands_store_slug"),
        db.UniqueConstraint("store_id", "name", name="uq_brands_store_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(160), nullable=False)
    logo_url = db.Column(db.String(512), nullable=True)
    description = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "slug": self.slug}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "slug": self.slug,
            "logo_url": self.logo_url,
            "description": self.description,
            "website": self.website,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data and on-hand stock.

    SKU DESIGN DECISION:
    - SKUs are upper-cased and unique within a store: UniqueConstraint("store_id", "sku")
    - Barcodes are optional; when present they are unique within a store
      (NULLs never collide under a unique constraint)

    STOCK:
    stock_level is written only through stock_service.adjust_stock (purchase
    order receipt/revision/reversal and checkout/sale reversal), always as an
    atomic SQL increment.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.UniqueConstraint("store_id", "barcode", name="uq_products_store_barcode"),
        db.Index("ix_products_store_name", "store_id", "name"),
        db.Index("ix_products_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    specifications = db.Column(db.JSON, nullable=False, default=dict)
    images = db.Column(db.JSON, nullable=False, default=list)
    unit = db.Column(db.String(32), nullable=False, default="piece")

    # Authoritative storage in minor units (frontend may only format for display)
    buying_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_level = db.Column(db.Integer, nullable=False, default=0)
    # Reorder threshold, informational only
    min_stock_level = db.Column(db.Integer, nullable=False, default=5)
    warranty_months = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} store_id={self.store_id}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_level <= self.min_stock_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "category_id": self.category_id,
            "category": self.category.to_summary() if self.category else None,
            "brand_id": self.brand_id,
            "brand": self.brand.to_summary() if self.brand else None,
            "description": self.description,
            "specifications": dict(self.specifications or {}),
            "images": list(self.images or []),
            "unit": self.unit,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock_level": self.stock_level,
            "min_stock_level": self.min_stock_level,
            "is_low_stock": self.is_low_stock,
            "warranty_months": self.warranty_months,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

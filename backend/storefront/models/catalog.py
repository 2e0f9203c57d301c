from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LOCATION_WAREHOUSE = "Warehouse"
LOCATION_DISTRIBUTOR = "Distributor"
LOCATION_STOREFRONT = "Storefront"

VALID_LOCATION_TYPES = (LOCATION_WAREHOUSE, LOCATION_DISTRIBUTOR, LOCATION_STOREFRONT)


class Product(db.Model):
    """Catalog entry grouping sellable variations (flavor/strength)."""
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True, index=True)
    image_url = db.Column(db.String(512), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    variations = db.relationship(
        "ProductVariation",
        back_populates="product",
        lazy=True,
        order_by="ProductVariation.id",
    )

    def to_dict(self, include_variations: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variations:
            data["variations"] = [v.to_dict() for v in self.variations]
        return data


class ProductVariation(db.Model):
    """A sellable SKU: one flavor/strength of a product at one price."""
    __tablename__ = "product_variations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    flavor = db.Column(db.String(64), nullable=True)
    strength = db.Column(db.String(32), nullable=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)

    price_cents = db.Column(db.Integer, nullable=False)
    compare_at_price_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", back_populates="variations")

    @property
    def is_sellable(self) -> bool:
        return bool(self.is_active and self.product and self.product.is_active)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "flavor": self.flavor,
            "strength": self.strength,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "compare_at_price_cents": self.compare_at_price_cents,
            "is_active": self.is_active,
        }


class StockLocation(db.Model):
    __tablename__ = "stock_locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    location_type = db.Column(db.String(32), nullable=False, default=LOCATION_WAREHOUSE)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location_type": self.location_type,
            "address": self.address,
            "is_active": self.is_active,
        }


class StockLevel(db.Model):
    """On-hand quantity of one variation at one location."""
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("variation_id", "location_id", name="uq_stock_levels_variation_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    variation = db.relationship("ProductVariation")
    location = db.relationship("StockLocation")

    @property
    def available(self) -> int:
        return max(self.quantity - self.reserved_quantity, 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variation_id": self.variation_id,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available": self.available,
        }


class StockMovement(db.Model):
    """
    Append-only ledger of stock changes.

    Every quantity change on StockLevel writes one row here so on-hand counts
    can be reconciled after the fact.
    """
    __tablename__ = "stock_movements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    movement_type = db.Column(db.String(32), nullable=False)  # SALE, RESTOCK, ADJUSTMENT, TRANSFER_IN, TRANSFER_OUT
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variation_id": self.variation_id,
            "location_id": self.location_id,
            "quantity_delta": self.quantity_delta,
            "movement_type": self.movement_type,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }

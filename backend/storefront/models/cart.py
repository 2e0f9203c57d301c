from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CartItem(db.Model):
    """
    One cart line.

    owner_key is "user:<id>" for signed-in shoppers and "guest:<session>" for
    anonymous carts, so a guest cart can be merged into an account on login.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("owner_key", "variation_id", name="uq_cart_items_owner_variation"),
        db.CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_key = db.Column(db.String(128), nullable=False, index=True)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    variation = db.relationship("ProductVariation")

    def to_dict(self) -> dict:
        variation = self.variation
        product = variation.product if variation else None
        unit_price = variation.price_cents if variation else 0
        return {
            "id": self.id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "sku": variation.sku if variation else None,
            "variation_name": variation.name if variation else None,
            "product_id": product.id if product else None,
            "product_name": product.name if product else None,
            "unit_price_cents": unit_price,
            "line_total_cents": unit_price * self.quantity,
            "created_at": to_utc_z(self.created_at),
        }

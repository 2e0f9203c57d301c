from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

ORDER_PENDING = "Pending"
ORDER_PAYMENT_RECEIVED = "PaymentReceived"
ORDER_PROCESSING = "Processing"
ORDER_ASSIGNED = "Assigned"
ORDER_FULFILLED = "Fulfilled"
ORDER_DELIVERED = "Delivered"
ORDER_CANCELLED = "Cancelled"

VALID_ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_PAYMENT_RECEIVED,
    ORDER_PROCESSING,
    ORDER_ASSIGNED,
    ORDER_FULFILLED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
)

TERMINAL_ORDER_STATUSES = frozenset({ORDER_DELIVERED, ORDER_CANCELLED})

# Order.payment_status
PAYMENT_STATUS_PENDING = "Pending"
PAYMENT_STATUS_COMPLETED = "Completed"
PAYMENT_STATUS_FAILED = "Failed"
PAYMENT_STATUS_REFUNDED = "Refunded"

ORDER_TYPE_RETAIL = "Retail"
ORDER_TYPE_WHOLESALE = "Wholesale"

FULFILLMENT_PENDING_APPROVAL = "PendingApproval"


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Order(db.Model):
    """
    Customer order.

    Created at checkout with status Pending; every status change after that
    goes through order_service.update_order_status (or one of the dedicated
    paths that call it) so the history log stays complete.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_uuid)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(32), nullable=False, default=ORDER_PENDING)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING)
    payment_method = db.Column(db.String(32), nullable=False)
    order_type = db.Column(db.String(16), nullable=False, default=ORDER_TYPE_RETAIL)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    commission_cents = db.Column(db.Integer, nullable=True)

    distributor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    shipping_address = db.Column(db.JSON, nullable=False)
    billing_address = db.Column(db.JSON, nullable=True)
    discount_code = db.Column(db.String(64), nullable=True)
    applied_referral_code = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Set when stock was deducted at creation; cancellation restocks from here
    stock_location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])
    distributor = db.relationship("User", foreign_keys=[distributor_id])
    items = db.relationship("OrderItem", back_populates="order", lazy=True, order_by="OrderItem.id")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "order_type": self.order_type,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "commission_cents": self.commission_cents,
            "distributor_id": self.distributor_id,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "discount_code": self.discount_code,
            "applied_referral_code": self.applied_referral_code,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Order line with the price copied at purchase time.

    unit_price_cents is a snapshot; later catalog price changes never touch it.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    variation = db.relationship("ProductVariation")

    def to_dict(self) -> dict:
        variation = self.variation
        return {
            "id": self.id,
            "order_id": self.order_id,
            "variation_id": self.variation_id,
            "sku": variation.sku if variation else None,
            "variation_name": variation.name if variation else None,
            "product_name": variation.product.name if variation and variation.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class OrderStatusHistory(db.Model):
    """Append-only: one row per status transition, never updated or deleted."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "changed_by_user_id": self.changed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class OrderFulfillment(db.Model):
    """Shipment record submitted by the assigned distributor."""
    __tablename__ = "order_fulfillments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    carrier = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    proof = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(32), nullable=False, default=FULFILLMENT_PENDING_APPROVAL)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "distributor_id": self.distributor_id,
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "notes": self.notes,
            "proof": self.proof,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }

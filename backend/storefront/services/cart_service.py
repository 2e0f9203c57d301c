# Overview: Service-layer operations for shopping carts; encapsulates business logic and database work.

"""
Cart Service

Carts are rows in cart_items keyed by an owner string:
- "user:<id>"        signed-in shopper
- "guest:<session>"  anonymous shopper (X-Cart-Session header)

On login the guest cart is merged into the account cart (transfer_cart).

MINIMUM ORDER POLICY:
- Retail orders need RETAIL_MIN_UNITS (5) units in total
- Wholesale orders need WHOLESALE_MIN_UNITS (100) units in total
Totals count only lines whose variation and product are both active.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import CartItem
from ..validation import coerce_int
from .product_service import get_available_quantity, get_variation
from .transaction import unit_of_work


MAX_LINE_QUANTITY = 10_000


@dataclass(frozen=True)
class CartValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": list(self.errors), "message": self.message}


def user_owner(user_id: int) -> str:
    return f"user:{user_id}"


def guest_owner(session_id: str) -> str:
    session_id = (session_id or "").strip()
    if not session_id or len(session_id) > 100:
        raise ValidationError("Invalid cart session")
    return f"guest:{session_id}"


# =============================================================================
# READS
# =============================================================================

def _all_lines(owner: str) -> list[CartItem]:
    return (
        db.session.query(CartItem)
        .filter_by(owner_key=owner)
        .order_by(CartItem.id.asc())
        .all()
    )


def get_active_lines(owner: str) -> list[CartItem]:
    """Lines whose variation and product are still on sale."""
    return [line for line in _all_lines(owner) if line.variation and line.variation.is_sellable]


def get_cart(owner: str) -> dict:
    lines = get_active_lines(owner)
    total_quantity = sum(line.quantity for line in lines)
    subtotal = sum(line.quantity * line.variation.price_cents for line in lines)
    return {
        "items": [line.to_dict() for line in lines],
        "item_count": len(lines),
        "total_quantity": total_quantity,
        "subtotal_cents": subtotal,
        "retail_minimum": current_app.config["RETAIL_MIN_UNITS"],
        "wholesale_minimum": current_app.config["WHOLESALE_MIN_UNITS"],
        "meets_retail_minimum": total_quantity >= current_app.config["RETAIL_MIN_UNITS"],
        "meets_wholesale_minimum": total_quantity >= current_app.config["WHOLESALE_MIN_UNITS"],
    }


def _get_owned_line(owner: str, item_id: int) -> CartItem:
    line = db.session.query(CartItem).filter_by(id=item_id, owner_key=owner).first()
    if not line:
        raise NotFoundError(f"Cart item {item_id} not found")
    return line


# =============================================================================
# WRITES
# =============================================================================

def add_item(owner: str, variation_id: int, quantity: int = 1) -> CartItem:
    """Add to cart; a repeat add of the same variation increments the line."""
    quantity = coerce_int(quantity, "quantity", minimum=1)
    variation = get_variation(coerce_int(variation_id, "variation_id"))
    if not variation.is_sellable:
        raise ValidationError(f"{variation.name} is not available")

    with unit_of_work() as uow:
        line = db.session.query(CartItem).filter_by(owner_key=owner, variation_id=variation.id).first()
        if line:
            line.quantity += quantity
        else:
            line = CartItem(owner_key=owner, variation_id=variation.id, quantity=quantity)
            uow.add(line)
        if line.quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")
        uow.flush()
    return line


def update_item(owner: str, item_id: int, quantity) -> CartItem | None:
    """
    Set a line's quantity.

    Zero removes the line and returns None; negatives are rejected.
    """
    quantity = coerce_int(quantity, "quantity")
    if quantity < 0:
        raise ValidationError("quantity cannot be negative")
    if quantity > MAX_LINE_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")

    with unit_of_work():
        line = _get_owned_line(owner, item_id)
        if quantity == 0:
            db.session.delete(line)
            return None
        line.quantity = quantity
    return line


def remove_item(owner: str, item_id: int) -> None:
    with unit_of_work():
        db.session.delete(_get_owned_line(owner, item_id))


def clear_cart(owner: str, uow=None) -> int:
    with unit_of_work(uow):
        deleted = (
            db.session.query(CartItem)
            .filter_by(owner_key=owner)
            .delete(synchronize_session=False)
        )
    return deleted


def transfer_cart(from_owner: str, to_owner: str, uow=None) -> int:
    """
    Merge one cart into another and delete the source, atomically.

    Quantities are summed when both carts hold the same variation, capped at
    MAX_LINE_QUANTITY. Returns the number of source lines merged.
    """
    if from_owner == to_owner:
        return 0

    with unit_of_work(uow):
        source = _all_lines(from_owner)
        if not source:
            return 0
        target = {line.variation_id: line for line in _all_lines(to_owner)}

        for line in source:
            existing = target.get(line.variation_id)
            if existing:
                existing.quantity = min(existing.quantity + line.quantity, MAX_LINE_QUANTITY)
                db.session.delete(line)
            else:
                line.owner_key = to_owner
        db.session.flush()

    current_app.logger.info("Merged %s cart lines from %s into %s", len(source), from_owner, to_owner)
    return len(source)


# =============================================================================
# VALIDATION
# =============================================================================

def check_minimum_order(total_quantity: int, is_wholesale: bool = False) -> CartValidationResult:
    minimum = current_app.config["WHOLESALE_MIN_UNITS" if is_wholesale else "RETAIL_MIN_UNITS"]
    if total_quantity < minimum:
        message = f"Order must contain at least {minimum} units. Currently has {total_quantity} units."
        return CartValidationResult(False, [message], message)
    return CartValidationResult(True, [], f"Order meets minimum requirements with {total_quantity} units.")


def validate_cart(owner: str, is_wholesale: bool = False) -> CartValidationResult:
    lines = get_active_lines(owner)
    if not lines:
        return CartValidationResult(False, ["Cart is empty"], "Cart is empty")
    return check_minimum_order(sum(line.quantity for line in lines), is_wholesale)


def validate_inventory(owner: str) -> CartValidationResult:
    """Report every short line at once instead of stopping at the first."""
    errors = []
    for line in get_active_lines(owner):
        available = get_available_quantity(line.variation_id)
        if line.quantity > available:
            name = f"{line.variation.product.name} - {line.variation.name}"
            errors.append(f"Not enough inventory for {name}. Available: {available}, Requested: {line.quantity}")

    if errors:
        return CartValidationResult(False, errors, "Some items in your cart are not available in the requested quantity.")
    return CartValidationResult(True, [], "All items are available.")

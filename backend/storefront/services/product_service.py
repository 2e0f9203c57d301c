# Overview: Service-layer operations for the catalog and per-location inventory.

"""
Product Service

WHY: The storefront, cart and checkout all read the same catalog; admins
edit it. Reads go through the query cache, writes invalidate it after
commit.

INVENTORY:
- StockLevel holds on-hand and reserved quantity per (variation, location)
- Available = quantity - reserved, summed over active locations
- Every change writes a StockMovement row; on-hand never goes negative
- Checkout deducts from the default location (first active Warehouse)
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, ProductVariation, StockLocation, StockLevel, StockMovement
from ..models.catalog import LOCATION_WAREHOUSE, VALID_LOCATION_TYPES
from ..validation import coerce_choice, coerce_int, coerce_price_cents
from .cache_service import cached_query, invalidate_prefix
from .transaction import lock_for_update, unit_of_work


CACHE_PREFIX = "products:"

MOVEMENT_SALE = "SALE"
MOVEMENT_RESTOCK = "RESTOCK"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_CANCELLATION = "CANCELLATION"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"

PRODUCT_FIELDS = ("name", "description", "category", "image_url", "is_active")
VARIATION_FIELDS = ("name", "flavor", "strength", "sku", "price_cents", "compare_at_price_cents", "is_active")


def _invalidate_catalog(uow) -> None:
    uow.after_commit(lambda: invalidate_prefix(CACHE_PREFIX))


# =============================================================================
# CATALOG
# =============================================================================

def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_variation(variation_id: int) -> ProductVariation:
    variation = db.session.get(ProductVariation, variation_id)
    if not variation:
        raise NotFoundError(f"Product variation {variation_id} not found")
    return variation


def _product_payload(product: Product) -> dict:
    data = product.to_dict(include_variations=False)
    data["variations"] = []
    for variation in product.variations:
        entry = variation.to_dict()
        entry["available"] = get_available_quantity(variation.id)
        data["variations"].append(entry)
    return data


def get_product_detail(product_id: int, *, active_only: bool = True) -> dict:
    """Cached product view with per-variation availability."""
    def _load():
        product = get_product(product_id)
        if active_only and not product.is_active:
            raise NotFoundError(f"Product {product_id} not found")
        payload = _product_payload(product)
        if active_only:
            payload["variations"] = [v for v in payload["variations"] if v["is_active"]]
        return payload

    return cached_query(f"{CACHE_PREFIX}detail:{product_id}:{int(active_only)}", _load)


def list_products(*, active_only: bool = True, category: str | None = None, search: str | None = None) -> list[dict]:
    key = f"{CACHE_PREFIX}list:{int(active_only)}:{category or ''}:{(search or '').strip().lower()}"

    def _load():
        query = db.session.query(Product)
        if active_only:
            query = query.filter(Product.is_active.is_(True))
        if category:
            query = query.filter(Product.category == category)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        products = query.order_by(Product.name.asc(), Product.id.asc()).all()
        result = []
        for product in products:
            payload = _product_payload(product)
            if active_only:
                payload["variations"] = [v for v in payload["variations"] if v["is_active"]]
            result.append(payload)
        return result

    return cached_query(key, _load)


def _clean_product_fields(data: dict, *, partial: bool) -> dict:
    cleaned = {k: data[k] for k in PRODUCT_FIELDS if k in data}
    if not partial and not cleaned.get("name"):
        raise ValidationError("name required")
    if "name" in cleaned:
        if not cleaned["name"] or not str(cleaned["name"]).strip():
            raise ValidationError("name cannot be empty")
        cleaned["name"] = str(cleaned["name"]).strip()
    if "is_active" in cleaned:
        cleaned["is_active"] = bool(cleaned["is_active"])
    return cleaned


def _clean_variation_fields(data: dict, *, partial: bool) -> dict:
    cleaned = {k: data[k] for k in VARIATION_FIELDS if k in data}
    if not partial:
        missing = [f for f in ("name", "sku", "price_cents") if cleaned.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"{', '.join(missing)} required")
    if "sku" in cleaned:
        cleaned["sku"] = str(cleaned["sku"]).strip().upper()
        if not cleaned["sku"]:
            raise ValidationError("sku cannot be empty")
    if "price_cents" in cleaned:
        cleaned["price_cents"] = coerce_price_cents(cleaned["price_cents"])
    if cleaned.get("compare_at_price_cents") is not None:
        cleaned["compare_at_price_cents"] = coerce_price_cents(cleaned["compare_at_price_cents"], "compare_at_price_cents")
    if "is_active" in cleaned:
        cleaned["is_active"] = bool(cleaned["is_active"])
    return cleaned


def create_product(data: dict) -> Product:
    fields = _clean_product_fields(data, partial=False)
    variations = data.get("variations") or []
    with unit_of_work() as uow:
        product = Product(**fields)
        uow.add(product)
        uow.flush()
        for variation_data in variations:
            add_variation(product.id, variation_data, uow=uow)
        _invalidate_catalog(uow)
    return product


def update_product(product_id: int, data: dict) -> Product:
    fields = _clean_product_fields(data, partial=True)
    with unit_of_work() as uow:
        product = get_product(product_id)
        for key, value in fields.items():
            setattr(product, key, value)
        _invalidate_catalog(uow)
    return product


def add_variation(product_id: int, data: dict, uow=None) -> ProductVariation:
    fields = _clean_variation_fields(data, partial=False)
    with unit_of_work(uow) as work:
        get_product(product_id)
        if db.session.query(ProductVariation.id).filter_by(sku=fields["sku"]).first():
            raise ValidationError(f"SKU {fields['sku']} already exists")
        variation = ProductVariation(product_id=product_id, **fields)
        work.add(variation)
        work.flush()
        _invalidate_catalog(work)
    return variation


def update_variation(variation_id: int, data: dict) -> ProductVariation:
    """Price edits here never affect existing order lines (they hold snapshots)."""
    fields = _clean_variation_fields(data, partial=True)
    with unit_of_work() as uow:
        variation = get_variation(variation_id)
        if "sku" in fields and fields["sku"] != variation.sku:
            if db.session.query(ProductVariation.id).filter_by(sku=fields["sku"]).first():
                raise ValidationError(f"SKU {fields['sku']} already exists")
        for key, value in fields.items():
            setattr(variation, key, value)
        _invalidate_catalog(uow)
    return variation


# =============================================================================
# LOCATIONS & STOCK
# =============================================================================

def ensure_location(name: str, location_type: str = LOCATION_WAREHOUSE, address: str | None = None) -> StockLocation:
    """Idempotent: returns the existing location with this name if any."""
    coerce_choice(location_type, "location_type", VALID_LOCATION_TYPES)
    existing = db.session.query(StockLocation).filter_by(name=name).first()
    if existing:
        return existing
    with unit_of_work() as uow:
        location = StockLocation(name=name, location_type=location_type, address=address, is_active=True)
        uow.add(location)
        uow.flush()
    return location


def list_locations() -> list[StockLocation]:
    return db.session.query(StockLocation).order_by(StockLocation.id.asc()).all()


def get_default_location() -> StockLocation | None:
    return (
        db.session.query(StockLocation)
        .filter_by(location_type=LOCATION_WAREHOUSE, is_active=True)
        .order_by(StockLocation.id.asc())
        .first()
    )


def get_variation_inventory(variation_id: int) -> list[StockLevel]:
    return (
        db.session.query(StockLevel)
        .filter_by(variation_id=variation_id)
        .order_by(StockLevel.location_id.asc())
        .all()
    )


def get_available_quantity(variation_id: int) -> int:
    """Sum of (on hand - reserved) across active locations."""
    total = (
        db.session.query(func.coalesce(func.sum(StockLevel.quantity - StockLevel.reserved_quantity), 0))
        .join(StockLocation, StockLocation.id == StockLevel.location_id)
        .filter(StockLevel.variation_id == variation_id, StockLocation.is_active.is_(True))
        .scalar()
    )
    return max(int(total or 0), 0)


def adjust_inventory(
    variation_id: int,
    location_id: int,
    delta: int,
    movement_type: str = MOVEMENT_ADJUSTMENT,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    note: str | None = None,
    user_id: int | None = None,
    uow=None,
) -> StockLevel:
    """
    Apply a signed quantity change at one location and record the movement.

    Raises ValidationError when the result would go below zero.
    """
    delta = coerce_int(delta, "quantity_delta")
    if delta == 0:
        raise ValidationError("quantity_delta cannot be zero")

    with unit_of_work(uow) as work:
        get_variation(variation_id)
        if not db.session.get(StockLocation, location_id):
            raise NotFoundError(f"Stock location {location_id} not found")

        level = lock_for_update(
            db.session.query(StockLevel).filter_by(variation_id=variation_id, location_id=location_id)
        ).first()
        if level is None:
            level = StockLevel(variation_id=variation_id, location_id=location_id, quantity=0, reserved_quantity=0)
            work.add(level)

        new_quantity = (level.quantity or 0) + delta
        if new_quantity < 0:
            raise ValidationError(
                f"Insufficient stock for variation {variation_id} at location {location_id}: "
                f"on hand {level.quantity or 0}, change {delta}"
            )
        level.quantity = new_quantity

        work.add(StockMovement(
            variation_id=variation_id,
            location_id=location_id,
            quantity_delta=delta,
            movement_type=movement_type,
            reference_type=reference_type,
            reference_id=reference_id,
            note=note,
            created_by_user_id=user_id,
        ))
        work.flush()
        _invalidate_catalog(work)
    return level


def transfer_inventory(variation_id: int, from_location_id: int, to_location_id: int, quantity: int, user_id: int | None = None) -> None:
    quantity = coerce_int(quantity, "quantity", minimum=1)
    if from_location_id == to_location_id:
        raise ValidationError("Source and destination locations must differ")
    with unit_of_work() as uow:
        adjust_inventory(variation_id, from_location_id, -quantity, MOVEMENT_TRANSFER_OUT,
                         reference_type="Location", reference_id=str(to_location_id), user_id=user_id, uow=uow)
        adjust_inventory(variation_id, to_location_id, quantity, MOVEMENT_TRANSFER_IN,
                         reference_type="Location", reference_id=str(from_location_id), user_id=user_id, uow=uow)
    current_app.logger.info(
        "Transferred %s of variation %s from location %s to %s",
        quantity, variation_id, from_location_id, to_location_id,
    )


def validate_wholesale_minimum(total_quantity: int) -> bool:
    return total_quantity >= current_app.config["WHOLESALE_MIN_UNITS"]

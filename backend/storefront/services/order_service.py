# Overview: Service-layer operations for orders; checkout, status lifecycle, distribution and fulfillment.

"""
Order Service

================================================================================
PURPOSE: Own the order lifecycle from checkout through delivery
================================================================================

STATE MACHINE:
    Pending -> PaymentReceived -> Processing -> Assigned -> Fulfilled -> Delivered
    Cancelled is reachable from every non-terminal state.
    Delivered and Cancelled are terminal: nothing leaves them.

RULES:
1. Every accepted transition appends exactly one OrderStatusHistory row
2. Order lines copy the variation price at checkout and never change
3. Checkout is one transaction: order, lines, stock deduction, discount
   usage, referral commission, payment record and cart clearing commit
   together or not at all
4. Fulfilled with an assigned distributor records the fulfillment
   commission in the same transaction and stores it on the order
5. Cancelled restocks deducted inventory and cancels the order's
   Pending/Approved commissions and any payment still awaiting confirmation

A distributor is only paid on fulfillment; assigning one never creates a
commission.
================================================================================
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderFulfillment,
    User,
    EntityRef,
)
from ..models.commissions import COMMISSION_DISTRIBUTOR_FULFILLMENT
from ..models.orders import (
    VALID_ORDER_STATUSES,
    ORDER_PENDING,
    ORDER_PAYMENT_RECEIVED,
    ORDER_PROCESSING,
    ORDER_ASSIGNED,
    ORDER_FULFILLED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
    ORDER_TYPE_RETAIL,
    ORDER_TYPE_WHOLESALE,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_COMPLETED,
)
from ..models.payments import VALID_PAYMENT_METHODS
from ..models.tasks import CATEGORY_FULFILLMENT, PRIORITY_MEDIUM, TASK_CANCELLED
from ..models.users import ROLE_DISTRIBUTOR, USER_STATUS_ACTIVE
from ..validation import PageRequest, coerce_choice, coerce_int, coerce_price_cents, paginate
from . import cart_service, commission_service, discount_service, payment_service, product_service, task_service
from .transaction import lock_for_update, unit_of_work
from .user_service import get_user_by_referral_code


# =============================================================================
# STATE MACHINE
# =============================================================================

ALLOWED_TRANSITIONS = {
    ORDER_PENDING: frozenset({ORDER_PAYMENT_RECEIVED, ORDER_CANCELLED}),
    ORDER_PAYMENT_RECEIVED: frozenset({ORDER_PROCESSING, ORDER_CANCELLED}),
    ORDER_PROCESSING: frozenset({ORDER_ASSIGNED, ORDER_CANCELLED}),
    ORDER_ASSIGNED: frozenset({ORDER_FULFILLED, ORDER_CANCELLED}),
    ORDER_FULFILLED: frozenset({ORDER_DELIVERED, ORDER_CANCELLED}),
    ORDER_DELIVERED: frozenset(),
    ORDER_CANCELLED: frozenset(),
}

# assign_distributor is accepted while the order is in one of these
ASSIGNABLE_STATUSES = (ORDER_PAYMENT_RECEIVED, ORDER_PROCESSING, ORDER_ASSIGNED)

# update_order_status refuses these targets on an order with no distributor
DISTRIBUTOR_REQUIRED_STATUSES = (ORDER_ASSIGNED, ORDER_FULFILLED)


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def validate_status_transition(from_status: str, to_status: str) -> None:
    """
    Raises:
        ValidationError: unknown target status
        StateConflictError: transition not in the allow-list
    """
    if to_status not in VALID_ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{to_status}'. Must be one of: {', '.join(VALID_ORDER_STATUSES)}"
        )
    if not can_transition(from_status, to_status):
        raise StateConflictError(f"Cannot transition order from {from_status} to {to_status}")


def _append_history(order: Order, notes: str | None, user_id: int | None, uow) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        notes=notes,
        changed_by_user_id=user_id,
    )
    uow.add(entry)
    return entry


# =============================================================================
# CHECKOUT
# =============================================================================

def _normalize_items(items) -> list[dict]:
    """Validate line input and merge repeated variations."""
    if not items or not isinstance(items, list):
        raise ValidationError("Order must contain at least one item")

    merged: dict[int, dict] = {}
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        variation_id = coerce_int(raw.get("variation_id"), "variation_id")
        quantity = coerce_int(raw.get("quantity"), "quantity", minimum=1)
        price = raw.get("unit_price_cents")
        if variation_id in merged:
            merged[variation_id]["quantity"] += quantity
            continue
        merged[variation_id] = {
            "variation_id": variation_id,
            "quantity": quantity,
            "unit_price_cents": coerce_price_cents(price, "unit_price_cents") if price is not None else None,
        }
    return list(merged.values())


def _resolve_order_type(user: User, total_quantity: int) -> str:
    if user.wholesale_eligible and product_service.validate_wholesale_minimum(total_quantity):
        return ORDER_TYPE_WHOLESALE
    check = cart_service.check_minimum_order(total_quantity, is_wholesale=False)
    if not check.is_valid:
        raise ValidationError(check.message)
    return ORDER_TYPE_RETAIL


def _resolve_referrer(user: User, referral_code: str | None) -> User | None:
    if user.referred_by_id:
        return user.referred_by
    if not referral_code:
        return None
    referrer = get_user_by_referral_code(referral_code)
    if not referrer or referrer.status != USER_STATUS_ACTIVE:
        raise ValidationError("Invalid referral code")
    if referrer.id == user.id:
        raise ValidationError("You cannot use your own referral code")
    return referrer


def create_order(
    user_id: int,
    items: list[dict],
    shipping_address: dict,
    payment_method: str,
    *,
    billing_address: dict | None = None,
    referral_code: str | None = None,
    discount_code: str | None = None,
    notes: str | None = None,
    uow=None,
) -> Order:
    """
    Create an order and everything that hangs off it in one transaction.

    Items are {variation_id, quantity[, unit_price_cents]}; without an
    explicit price the current catalog price is copied onto the line.

    The buyer's referrer (or the owner of `referral_code` when the buyer has
    none) gets a Pending referral commission on the final total.

    Raises:
        ValidationError: bad input, below minimum, insufficient stock,
            unusable discount or referral code
        NotFoundError: unknown user or variation
    """
    if not isinstance(shipping_address, dict) or not shipping_address:
        raise ValidationError("shipping_address required")
    if billing_address is not None and not isinstance(billing_address, dict):
        raise ValidationError("billing_address must be an object")
    coerce_choice(payment_method, "payment_method", VALID_PAYMENT_METHODS)
    lines = _normalize_items(items)

    with unit_of_work(uow) as work:
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        if user.status != USER_STATUS_ACTIVE:
            raise ValidationError("Account is not active")

        for line in lines:
            variation = product_service.get_variation(line["variation_id"])
            if not variation.is_sellable:
                raise ValidationError(f"{variation.name} is no longer available")
            if line["unit_price_cents"] is None:
                line["unit_price_cents"] = variation.price_cents

        total_quantity = sum(line["quantity"] for line in lines)
        order_type = _resolve_order_type(user, total_quantity)
        subtotal = sum(line["quantity"] * line["unit_price_cents"] for line in lines)

        discount_cents = 0
        if discount_code:
            discount_cents = discount_service.redeem(discount_code, subtotal, work).discount_cents

        referrer = _resolve_referrer(user, referral_code)

        order = Order(
            user_id=user.id,
            status=ORDER_PENDING,
            payment_status=PAYMENT_STATUS_PENDING,
            payment_method=payment_method,
            order_type=order_type,
            subtotal_cents=subtotal,
            discount_cents=discount_cents,
            total_cents=max(subtotal - discount_cents, 0),
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            discount_code=discount_service.normalize_code(discount_code) if discount_code else None,
            applied_referral_code=referrer.referral_code if referrer else None,
            notes=notes,
        )
        work.add(order)
        work.flush()

        for line in lines:
            work.add(OrderItem(
                order_id=order.id,
                variation_id=line["variation_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                line_total_cents=line["quantity"] * line["unit_price_cents"],
            ))

        location = product_service.get_default_location()
        if location is not None:
            for line in lines:
                product_service.adjust_inventory(
                    line["variation_id"],
                    location.id,
                    -line["quantity"],
                    product_service.MOVEMENT_SALE,
                    reference_type="Order",
                    reference_id=order.id,
                    user_id=user.id,
                    uow=work,
                )
            order.stock_location_id = location.id
        else:
            current_app.logger.warning("No active warehouse location; order %s placed without stock deduction", order.id)

        _append_history(order, "Order created", user.id, work)
        work.flush()

        if referrer is not None:
            commission_service.create_order_commission(
                order,
                referrer,
                commission_service.referral_commission_type(order),
                current_app.config["REFERRAL_COMMISSION_BPS"],
                uow=work,
            )

        payment_service.initiate_payment(order, payment_method, uow=work)

    current_app.logger.info(
        "Order %s created for user %s: %s units, %s cents (%s)",
        order.id, user_id, total_quantity, order.total_cents, order_type,
    )
    return order


def place_order_from_cart(
    owner: str,
    user_id: int,
    shipping_address: dict,
    payment_method: str,
    *,
    billing_address: dict | None = None,
    referral_code: str | None = None,
    discount_code: str | None = None,
    notes: str | None = None,
) -> Order:
    """Checkout: validate the cart, create the order and empty the cart atomically."""
    with unit_of_work() as uow:
        lines = cart_service.get_active_lines(owner)
        if not lines:
            raise ValidationError("Cart is empty")

        inventory = cart_service.validate_inventory(owner)
        if not inventory.is_valid:
            raise ValidationError(inventory.message, details={"errors": inventory.errors})

        order = create_order(
            user_id,
            [{"variation_id": line.variation_id, "quantity": line.quantity} for line in lines],
            shipping_address,
            payment_method,
            billing_address=billing_address,
            referral_code=referral_code,
            discount_code=discount_code,
            notes=notes,
            uow=uow,
        )
        cart_service.clear_cart(owner, uow=uow)
    return order


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def _lock_order(order_id: str) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _restock(order: Order, user_id: int | None, uow) -> None:
    if not order.stock_location_id:
        return
    for item in order.items:
        product_service.adjust_inventory(
            item.variation_id,
            order.stock_location_id,
            item.quantity,
            product_service.MOVEMENT_CANCELLATION,
            reference_type="Order",
            reference_id=order.id,
            user_id=user_id,
            uow=uow,
        )


def _apply_status(order: Order, new_status: str, notes: str | None, user_id: int | None, uow) -> None:
    """Caller has already validated the transition."""
    previous = order.status
    order.status = new_status

    if new_status == ORDER_PAYMENT_RECEIVED:
        order.payment_status = PAYMENT_STATUS_COMPLETED

    elif new_status == ORDER_FULFILLED and order.distributor_id:
        commission = commission_service.calculate_commission_for_order(order.id, uow=uow)
        if commission is not None and commission.commission_type == COMMISSION_DISTRIBUTOR_FULFILLMENT:
            order.commission_cents = commission.amount_cents

    elif new_status == ORDER_CANCELLED:
        reason = notes or "Order cancelled"
        _restock(order, user_id, uow)
        payment_service.fail_pending_payments(order.id, reason, user_id=user_id, uow=uow)
        commission_service.cancel_commissions_for_order(order.id, reason, user_id=user_id, uow=uow)
        task_service.close_tasks_for(
            EntityRef.order(order.id),
            status=TASK_CANCELLED,
            user_id=user_id,
            note=reason,
            uow=uow,
        )

    _append_history(order, notes or f"Status changed from {previous} to {new_status}", user_id, uow)
    uow.flush()


def update_order_status(order_id: str, new_status: str, notes: str | None = None, admin_user_id: int | None = None, uow=None) -> Order:
    with unit_of_work(uow) as work:
        order = _lock_order(order_id)
        validate_status_transition(order.status, new_status)
        if new_status in DISTRIBUTOR_REQUIRED_STATUSES and not order.distributor_id:
            raise StateConflictError(f"Order has no assigned distributor; use assign-distributor before {new_status}")
        previous = order.status
        _apply_status(order, new_status, notes, admin_user_id, work)

    current_app.logger.info("Order %s: %s -> %s", order_id, previous, new_status)
    return order


def assign_distributor(order_id: str, distributor_id: int, admin_user_id: int | None = None, notes: str | None = None) -> Order:
    """
    Hand a paid order to a distributor.

    A Processing order moves to Assigned; otherwise only the assignment and a
    history note are recorded. No commission is created here.
    """
    distributor_id = coerce_int(distributor_id, "distributor_id")
    with unit_of_work() as uow:
        order = _lock_order(order_id)
        distributor = db.session.get(User, distributor_id)
        if not distributor:
            raise NotFoundError(f"User {distributor_id} not found")
        if distributor.role != ROLE_DISTRIBUTOR:
            raise ValidationError("Selected user is not a distributor")
        if distributor.status != USER_STATUS_ACTIVE:
            raise ValidationError("Distributor account is not active")
        if order.status not in ASSIGNABLE_STATUSES:
            raise StateConflictError(f"Cannot assign a distributor to an order in status {order.status}")

        previous_distributor_id = order.distributor_id
        order.distributor_id = distributor.id
        note = notes or f"Assigned to distributor {distributor.email}"

        if order.status == ORDER_PROCESSING:
            validate_status_transition(order.status, ORDER_ASSIGNED)
            _apply_status(order, ORDER_ASSIGNED, note, admin_user_id, uow)
        else:
            _append_history(order, note, admin_user_id, uow)

        if previous_distributor_id and previous_distributor_id != distributor.id:
            task_service.close_tasks_for(
                EntityRef.order(order.id),
                category=CATEGORY_FULFILLMENT,
                status=TASK_CANCELLED,
                user_id=admin_user_id,
                note="Reassigned to another distributor",
                uow=uow,
            )
        if previous_distributor_id != distributor.id:
            task_service.create_task(
                "Fulfill order",
                category=CATEGORY_FULFILLMENT,
                priority=PRIORITY_MEDIUM,
                description=f"Ship order {order.id} ({order.total_quantity} units)",
                related=EntityRef.order(order.id),
                assigned_to_user_id=distributor.id,
                created_by_user_id=admin_user_id,
                uow=uow,
            )

    current_app.logger.info("Order %s assigned to distributor %s", order_id, distributor_id)
    return order


def record_fulfillment(order_id: str, fulfillment_data: dict, user_id: int) -> tuple[Order, OrderFulfillment]:
    """
    Record shipment of an Assigned order and move it to Fulfilled.

    Only the assigned distributor or an admin may record it. Triggers the
    fulfillment commission in the same transaction.
    """
    data = fulfillment_data or {}
    with unit_of_work() as uow:
        order = _lock_order(order_id)
        actor = db.session.get(User, user_id)
        if not actor:
            raise NotFoundError(f"User {user_id} not found")
        if not order.distributor_id:
            raise StateConflictError("Order has no assigned distributor")
        if not actor.is_admin and actor.id != order.distributor_id:
            raise PermissionDeniedError("Only the assigned distributor can fulfill this order")
        validate_status_transition(order.status, ORDER_FULFILLED)

        fulfillment = OrderFulfillment(
            order_id=order.id,
            distributor_id=order.distributor_id,
            tracking_number=data.get("tracking_number"),
            carrier=data.get("carrier"),
            notes=data.get("notes"),
            proof=data.get("proof"),
            created_by_user_id=user_id,
        )
        uow.add(fulfillment)

        tracking = " ".join(p for p in (data.get("carrier"), data.get("tracking_number")) if p)
        note = f"Order fulfilled{' - tracking ' + tracking if tracking else ''}"
        _apply_status(order, ORDER_FULFILLED, note, user_id, uow)
        task_service.close_tasks_for(
            EntityRef.order(order.id),
            category=CATEGORY_FULFILLMENT,
            user_id=user_id,
            note=note,
            uow=uow,
        )

    current_app.logger.info("Order %s fulfilled by user %s", order_id, user_id)
    return order, fulfillment


def mark_delivered(order_id: str, user_id: int | None = None, notes: str | None = None) -> Order:
    return update_order_status(order_id, ORDER_DELIVERED, notes or "Order delivered", user_id)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_user_order(user_id: int, order_id: str) -> Order:
    """Same 404 whether the order is missing or belongs to someone else."""
    order = db.session.query(Order).filter_by(id=order_id, user_id=user_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_order_history(order_id: str) -> list[OrderStatusHistory]:
    return (
        db.session.query(OrderStatusHistory)
        .filter_by(order_id=order_id)
        .order_by(OrderStatusHistory.id.asc())
        .all()
    )


def get_order_fulfillments(order_id: str) -> list[OrderFulfillment]:
    return (
        db.session.query(OrderFulfillment)
        .filter_by(order_id=order_id)
        .order_by(OrderFulfillment.id.asc())
        .all()
    )


def get_user_orders(user_id: int, page: PageRequest, status: str | None = None) -> tuple[list[Order], dict]:
    query = db.session.query(Order).filter(Order.user_id == user_id)
    if status:
        query = query.filter(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page)


def get_admin_orders(
    page: PageRequest,
    *,
    status: str | None = None,
    order_type: str | None = None,
    from_date=None,
    to_date=None,
    search: str | None = None,
) -> tuple[list[Order], dict]:
    query = db.session.query(Order).join(User, User.id == Order.user_id)
    if status:
        query = query.filter(Order.status == status)
    if order_type:
        query = query.filter(Order.order_type == order_type)
    if from_date:
        query = query.filter(Order.created_at >= from_date)
    if to_date:
        query = query.filter(Order.created_at <= to_date)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Order.id.ilike(pattern), User.email.ilike(pattern), User.name.ilike(pattern)))
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page)


def get_distributor_orders(distributor_id: int, page: PageRequest, status: str | None = None) -> tuple[list[Order], dict]:
    query = db.session.query(Order).filter(Order.distributor_id == distributor_id)
    if status:
        query = query.filter(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page)

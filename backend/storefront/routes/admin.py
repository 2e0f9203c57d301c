# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/storefront/routes/admin.py
"""
Admin routes for running the storefront.

Provides endpoints for:
- User management (list, view, update, activate, suspend)
- Order management (list with filters, view, assign distributor)
- Catalog and inventory (products, variations, stock levels, locations)
- Commission review (list, approve, cancel, batch payout)
- Task queue and wholesale application review
- Discount codes

All endpoints require an authenticated Admin.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_admin
from ..errors import StorefrontError, ValidationError, error_response
from ..models.catalog import LOCATION_WAREHOUSE
from ..services import (
    commission_service,
    discount_service,
    order_service,
    product_service,
    task_service,
    user_service,
)
from ..services.product_service import MOVEMENT_ADJUSTMENT
from ..validation import coerce_datetime, coerce_int, parse_pagination, require_fields
from .orders import order_detail

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _int_list(values, field: str) -> list[int]:
    if not isinstance(values, list) or not values:
        raise ValidationError(f"{field} must be a non-empty list")
    return [coerce_int(v, field) for v in values]


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    """
    List users.

    Query params:
    - role, status: exact filters
    - search: matches email, name or referral code
    - sort_by: created_at | email | name | role | status
    - sort_order: asc | desc (default desc)
    """
    try:
        page = parse_pagination(request.args)
        users, pagination = user_service.list_users(
            page,
            role=request.args.get("role"),
            status=request.args.get("status"),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by", "created_at"),
            sort_order=request.args.get("sort_order", "desc"),
        )
        return jsonify({"users": [u.to_dict() for u in users], "pagination": pagination}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(user_id)
        return jsonify({
            "user": user.to_dict(),
            "commission_stats": commission_service.get_user_commission_stats(user.id),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    """Body may include name, email, role, status, wholesale_eligible."""
    try:
        user = user_service.update_user(user_id, request.get_json(silent=True) or {})
        return jsonify({"user": user.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/activate")
@require_auth
@require_admin
def activate_user_route(user_id: int):
    try:
        return jsonify({"user": user_service.activate_user(user_id).to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to activate user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/suspend")
@require_auth
@require_admin
def suspend_user_route(user_id: int):
    try:
        if user_id == g.current_user.id:
            raise ValidationError("Cannot suspend your own account")
        return jsonify({"user": user_service.suspend_user(user_id).to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to suspend user")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER MANAGEMENT
# =============================================================================

@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders_route():
    """Query: status, order_type, from_date, to_date (ISO 8601), search, page, limit."""
    try:
        page = parse_pagination(request.args)
        orders, pagination = order_service.get_admin_orders(
            page,
            status=request.args.get("status"),
            order_type=request.args.get("order_type"),
            from_date=coerce_datetime(request.args.get("from_date"), "from_date"),
            to_date=coerce_datetime(request.args.get("to_date"), "to_date"),
            search=request.args.get("search"),
        )
        return jsonify({
            "orders": [o.to_dict(include_items=False) for o in orders],
            "pagination": pagination,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/orders/<order_id>")
@require_auth
@require_admin
def get_order_route(order_id: str):
    try:
        return jsonify({"order": order_detail(order_service.get_order(order_id))}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<order_id>/assign-distributor")
@require_auth
@require_admin
def assign_distributor_route(order_id: str):
    """Body: {"distributor_id": 7, "notes": "..."}"""
    try:
        data = require_fields(request.get_json(silent=True), "distributor_id")
        order = order_service.assign_distributor(
            order_id, data["distributor_id"], admin_user_id=g.current_user.id, notes=data.get("notes"),
        )
        return jsonify({"order": order_detail(order)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign distributor")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<order_id>/deliver")
@require_auth
@require_admin
def mark_delivered_route(order_id: str):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.mark_delivered(order_id, g.current_user.id, data.get("notes"))
        return jsonify({"order": order_detail(order)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark order delivered")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CATALOG & INVENTORY
# =============================================================================

@admin_bp.get("/products")
@require_auth
@require_admin
def list_all_products_route():
    """Includes inactive products and variations."""
    try:
        products = product_service.list_products(
            active_only=False,
            category=request.args.get("category"),
            search=request.args.get("search"),
        )
        return jsonify({"products": products}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/products")
@require_auth
@require_admin
def create_product_route():
    """
    Create a product, optionally with variations.

    Request body:
    {
        "name": "Cool Mint",
        "category": "Mint",
        "description": "...",
        "variations": [{"name": "6mg", "sku": "NM-6", "price_cents": 899}]
    }
    """
    try:
        product = product_service.create_product(require_fields(request.get_json(silent=True), "name"))
        return jsonify({"product": product.to_dict()}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/products/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    try:
        product = product_service.update_product(product_id, request.get_json(silent=True) or {})
        return jsonify({"product": product.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/products/<int:product_id>/variations")
@require_auth
@require_admin
def add_variation_route(product_id: int):
    try:
        data = require_fields(request.get_json(silent=True), "name", "sku", "price_cents")
        variation = product_service.add_variation(product_id, data)
        return jsonify({"variation": variation.to_dict()}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add variation")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/variations/<int:variation_id>")
@require_auth
@require_admin
def update_variation_route(variation_id: int):
    try:
        variation = product_service.update_variation(variation_id, request.get_json(silent=True) or {})
        return jsonify({"variation": variation.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update variation")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/variations/<int:variation_id>/inventory")
@require_auth
@require_admin
def variation_inventory_route(variation_id: int):
    try:
        product_service.get_variation(variation_id)
        levels = product_service.get_variation_inventory(variation_id)
        return jsonify({
            "variation_id": variation_id,
            "available": product_service.get_available_quantity(variation_id),
            "levels": [level.to_dict() for level in levels],
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load inventory")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/inventory/adjust")
@require_auth
@require_admin
def adjust_inventory_route():
    """
    Body: {"variation_id": 1, "location_id": 1, "quantity_delta": 50, "movement_type": "Restock", "note": "..."}

    location_id defaults to the primary warehouse.
    """
    try:
        data = require_fields(request.get_json(silent=True), "variation_id", "quantity_delta")
        location_id = data.get("location_id")
        if location_id is None:
            location = product_service.get_default_location()
            if not location:
                raise ValidationError("No active warehouse location; pass location_id")
            location_id = location.id

        level = product_service.adjust_inventory(
            coerce_int(data["variation_id"], "variation_id"),
            coerce_int(location_id, "location_id"),
            data["quantity_delta"],
            data.get("movement_type") or MOVEMENT_ADJUSTMENT,
            note=data.get("note"),
            user_id=g.current_user.id,
        )
        return jsonify({"stock_level": level.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/inventory/transfer")
@require_auth
@require_admin
def transfer_inventory_route():
    """Body: {"variation_id": 1, "from_location_id": 1, "to_location_id": 2, "quantity": 10}"""
    try:
        data = require_fields(
            request.get_json(silent=True), "variation_id", "from_location_id", "to_location_id", "quantity",
        )
        variation_id = coerce_int(data["variation_id"], "variation_id")
        product_service.transfer_inventory(
            variation_id,
            coerce_int(data["from_location_id"], "from_location_id"),
            coerce_int(data["to_location_id"], "to_location_id"),
            data["quantity"],
            user_id=g.current_user.id,
        )
        levels = product_service.get_variation_inventory(variation_id)
        return jsonify({"levels": [level.to_dict() for level in levels]}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to transfer inventory")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/locations")
@require_auth
@require_admin
def list_locations_route():
    return jsonify({"locations": [loc.to_dict() for loc in product_service.list_locations()]}), 200


@admin_bp.post("/locations")
@require_auth
@require_admin
def create_location_route():
    """Body: {"name": "Main Warehouse", "location_type": "Warehouse", "address": "..."}"""
    try:
        data = require_fields(request.get_json(silent=True), "name")
        location = product_service.ensure_location(
            data["name"].strip(),
            data.get("location_type") or LOCATION_WAREHOUSE,
            data.get("address"),
        )
        return jsonify({"location": location.to_dict()}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# COMMISSIONS
# =============================================================================

@admin_bp.get("/commissions")
@require_auth
@require_admin
def list_commissions_route():
    """Query: status, user_id, commission_type, page, limit."""
    try:
        page = parse_pagination(request.args)
        user_id = request.args.get("user_id")
        commissions, pagination = commission_service.list_commissions(
            page,
            status=request.args.get("status"),
            user_id=coerce_int(user_id, "user_id") if user_id else None,
            commission_type=request.args.get("commission_type"),
        )
        return jsonify({"commissions": commissions, "pagination": pagination}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list commissions")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/commissions/payable")
@require_auth
@require_admin
def payable_commissions_route():
    try:
        payable = commission_service.get_payable_commissions()
        return jsonify({
            "commissions": payable,
            "total_amount_cents": sum(c["amount_cents"] for c in payable),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load payable commissions")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/commissions/approve")
@require_auth
@require_admin
def approve_commissions_route():
    """Body: {"commission_ids": [1, 2, 3]}"""
    try:
        data = require_fields(request.get_json(silent=True), "commission_ids")
        approved = commission_service.approve_commissions(
            _int_list(data["commission_ids"], "commission_ids"), g.current_user.id,
        )
        return jsonify({"approved": [c.to_dict() for c in approved], "count": len(approved)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve commissions")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/commissions/payout")
@require_auth
@require_admin
def payout_commissions_route():
    """
    Pay out approved commissions as one batch.

    Request body:
    {
        "commission_ids": [1, 2, 3],
        "payout_method": "ETransfer",
        "payment_reference": "ET-2024-0042"   (optional)
    }

    Returns:
        200: PayoutResult with success=True
        400: PayoutResult with success=False when nothing was payable
    """
    try:
        data = require_fields(request.get_json(silent=True), "commission_ids", "payout_method")
        result = commission_service.process_commission_payout(
            _int_list(data["commission_ids"], "commission_ids"),
            data["payout_method"],
            payment_reference=data.get("payment_reference"),
            admin_user_id=g.current_user.id,
        )
        return jsonify(result.to_dict()), 200 if result.success else 400

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process commission payout")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/commissions/<int:commission_id>/cancel")
@require_auth
@require_admin
def cancel_commission_route(commission_id: int):
    try:
        data = request.get_json(silent=True) or {}
        commission = commission_service.cancel_commission(commission_id, data.get("reason"), g.current_user.id)
        return jsonify({"commission": commission.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel commission")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TASKS
# =============================================================================

@admin_bp.get("/tasks")
@require_auth
@require_admin
def list_tasks_route():
    """Open work first by priority. Query: status, category, priority, assigned_to, page, limit."""
    try:
        page = parse_pagination(request.args)
        assigned_to = request.args.get("assigned_to")
        tasks, pagination = task_service.list_tasks(
            page,
            status=request.args.get("status"),
            category=request.args.get("category"),
            priority=request.args.get("priority"),
            assigned_to_user_id=coerce_int(assigned_to, "assigned_to") if assigned_to else None,
        )
        return jsonify({"tasks": [t.to_dict() for t in tasks], "pagination": pagination}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list tasks")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/tasks/<int:task_id>")
@require_auth
@require_admin
def update_task_route(task_id: int):
    """Body: {"status": "Completed", "notes": "..."}"""
    try:
        data = require_fields(request.get_json(silent=True), "status")
        task = task_service.update_task_status(task_id, data["status"], g.current_user.id, data.get("notes"))
        return jsonify({"task": task.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update task")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WHOLESALE APPLICATIONS
# =============================================================================

@admin_bp.get("/wholesale-applications")
@require_auth
@require_admin
def list_wholesale_applications_route():
    try:
        page = parse_pagination(request.args)
        applications, pagination = user_service.list_wholesale_applications(page, request.args.get("status"))
        return jsonify({
            "applications": [a.to_dict() for a in applications],
            "pagination": pagination,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list wholesale applications")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/wholesale-applications/<int:application_id>")
@require_auth
@require_admin
def get_wholesale_application_route(application_id: int):
    try:
        application = user_service.get_wholesale_application(application_id)
        return jsonify({"application": application.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load wholesale application")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/wholesale-applications/<int:application_id>/approve")
@require_auth
@require_admin
def approve_wholesale_application_route(application_id: int):
    try:
        application = user_service.approve_wholesale_application(application_id, g.current_user.id)
        return jsonify({"application": application.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve wholesale application")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/wholesale-applications/<int:application_id>/reject")
@require_auth
@require_admin
def reject_wholesale_application_route(application_id: int):
    """Body: {"reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        application = user_service.reject_wholesale_application(
            application_id, g.current_user.id, data.get("reason"),
        )
        return jsonify({"application": application.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject wholesale application")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DISCOUNT CODES
# =============================================================================

@admin_bp.get("/discount-codes")
@require_auth
@require_admin
def list_discount_codes_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    codes = discount_service.list_discount_codes(active_only=active_only)
    return jsonify({"discount_codes": [c.to_dict() for c in codes]}), 200


@admin_bp.post("/discount-codes")
@require_auth
@require_admin
def create_discount_code_route():
    """
    Request body:
    {
        "code": "WELCOME10",
        "discount_type": "Percentage",    (value in basis points)
        "value": 1000,
        "min_purchase_cents": 2500,       (optional)
        "max_discount_cents": 1000,       (optional)
        "starts_at": "...", "ends_at": "...", "usage_limit": 100   (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "code", "discount_type", "value")
        discount = discount_service.create_discount_code(data)
        return jsonify({"discount_code": discount.to_dict()}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create discount code")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/discount-codes/<int:discount_id>")
@require_auth
@require_admin
def update_discount_code_route(discount_id: int):
    try:
        discount = discount_service.update_discount_code(discount_id, request.get_json(silent=True) or {})
        return jsonify({"discount_code": discount.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update discount code")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/discount-codes/<int:discount_id>")
@require_auth
@require_admin
def deactivate_discount_code_route(discount_id: int):
    try:
        discount = discount_service.deactivate_discount_code(discount_id)
        return jsonify({"discount_code": discount.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate discount code")
        return jsonify({"error": "Internal server error"}), 500

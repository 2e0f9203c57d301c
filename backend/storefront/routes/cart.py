# Overview: Flask API routes for the shopping cart (signed-in or guest).

"""
Cart API Routes

Signed-in shoppers are identified by their bearer token. Guests send a
client-generated session id in the X-Cart-Session header; that cart is
merged into the account at login.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import optional_auth
from ..errors import StorefrontError, ValidationError, error_response
from ..services import cart_service
from ..validation import require_fields


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _owner() -> str:
    if g.current_user is not None:
        return cart_service.user_owner(g.current_user.id)
    session_id = request.headers.get("X-Cart-Session")
    if not session_id:
        raise ValidationError("Sign in or send an X-Cart-Session header")
    return cart_service.guest_owner(session_id)


@cart_bp.get("")
@optional_auth
def get_cart_route():
    try:
        return jsonify(cart_service.get_cart(_owner())), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("")
@optional_auth
def add_to_cart_route():
    """Body: {"variation_id": 1, "quantity": 2}"""
    try:
        data = require_fields(request.get_json(silent=True), "variation_id")
        owner = _owner()
        item = cart_service.add_item(owner, data["variation_id"], data.get("quantity", 1))
        return jsonify({"item": item.to_dict(), "cart": cart_service.get_cart(owner)}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add item to cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.put("/<int:item_id>")
@optional_auth
def update_cart_item_route(item_id: int):
    """Body: {"quantity": 3}. Quantity 0 removes the line."""
    try:
        data = require_fields(request.get_json(silent=True), "quantity")
        owner = _owner()
        item = cart_service.update_item(owner, item_id, data["quantity"])
        return jsonify({
            "item": item.to_dict() if item else None,
            "removed": item is None,
            "cart": cart_service.get_cart(owner),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/<int:item_id>")
@optional_auth
def remove_cart_item_route(item_id: int):
    try:
        owner = _owner()
        cart_service.remove_item(owner, item_id)
        return jsonify({"message": "Item removed from cart", "cart": cart_service.get_cart(owner)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@optional_auth
def clear_cart_route():
    try:
        removed = cart_service.clear_cart(_owner())
        return jsonify({"message": "Cart cleared", "removed": removed}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.get("/validate")
@optional_auth
def validate_cart_route():
    """Minimum-quantity then inventory check. Query: wholesale=true|false."""
    try:
        owner = _owner()
        is_wholesale = request.args.get("wholesale", "false").lower() == "true"

        minimum = cart_service.validate_cart(owner, is_wholesale=is_wholesale)
        if not minimum.is_valid:
            return jsonify(minimum.to_dict()), 200

        inventory = cart_service.validate_inventory(owner)
        if not inventory.is_valid:
            return jsonify(inventory.to_dict()), 200

        tier = "wholesale" if is_wholesale else "retail"
        return jsonify({
            "is_valid": True,
            "errors": [],
            "message": f"Order meets {tier} minimum requirements and inventory is available.",
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate cart")
        return jsonify({"error": "Internal server error"}), 500

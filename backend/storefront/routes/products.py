# Overview: Public catalog API routes; reads served from the query cache.

from flask import Blueprint, request, jsonify, current_app

from ..errors import StorefrontError, error_response
from ..services import product_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """Active products with active variations. Query: category, search."""
    try:
        products = product_service.list_products(
            active_only=True,
            category=request.args.get("category"),
            search=request.args.get("search"),
        )
        return jsonify({"products": products}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify({"product": product_service.get_product_detail(product_id)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500

"""
Product management routes.

SECURITY: All routes require authentication.
Stock written through these routes is logged as IN/OUT movements.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..models import Product
from ..services import products_service, stock_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "description",
        "category",
        "imagePath",
        "buyPrice",
        "sellingPrice",
        "stock",
    },
    required_on_create={"sku", "name", "sellingPrice", "stock"},
    aliases={
        "imagePath": "image_path",
        "buyPrice": "buy_price",
        "sellingPrice": "selling_price",
    },
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products, newest first.

    Query params:
    - search: matches name, SKU or description
    - category: substring match
    - page, limit: pagination (limit defaults to 10)
    """
    result = products_service.list_products(
        search=request.args.get("search") or None,
        category=request.args.get("category") or None,
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify(result), 200


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    try:
        created = products_service.create_product(patch=patch, user_id=g.current_user.id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(created), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict()), 200


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    try:
        updated = products_service.update_product(
            product_id=product_id, patch=patch, user_id=g.current_user.id
        )
    except NotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(updated), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id=product_id)
    except NotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Product deleted successfully"}), 200


@products_bp.get("/<int:product_id>/reconciliation")
@require_auth
def reconcile_product_route(product_id: int):
    """Stored stock vs. the sum of the product's movement log."""
    try:
        result = stock_service.reconcile_product(product_id)
    except NotFoundError:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(result), 200

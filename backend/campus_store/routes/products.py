# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/campus_store/routes/products.py
"""
Product catalog routes.

Query params on GET /api/products:
- course: exact match on for_course
- year: membership in years (0 = products without a year restriction)
"""
from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import products_service
from ..validation import ValidationError, NotFoundError

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    products = products_service.list_products(
        course=request.args.get("course"),
        year=request.args.get("year"),
    )
    return jsonify([p.to_dict() for p in products]), 200


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict()), 200


@products_bp.post("")
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "name": str,
        "price_cents": int (optional),
        "stock": int (optional),
        "years": [int] | "year": int (optional, 0 = all years),
        "is_set": bool (optional),
        "set_items": [{"product_id": int, "quantity": int}] (required for sets)
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.create_product(payload)
        db.session.commit()
        return jsonify(product.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.update_product(product_id, payload)
        db.session.commit()
        return jsonify(product.to_dict()), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        db.session.commit()
        return jsonify({"message": "Product removed"}), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

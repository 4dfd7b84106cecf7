# Overview: Flask API routes for the snack/toy catalog; parses input and returns JSON responses.

# backend/playtime/routes/products.py
"""
Product catalog routes.

Stock is not writable through PATCH: it only moves via restock and the
consumption ledger.
"""
from flask import Blueprint, jsonify, request

from ..api_errors import json_error
from ..services import products_service
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_int,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents", "stock", "min_stock"},
    required_on_create={"name", "price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents", "min_stock"},
    required_on_create=set(),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    try:
        products = products_service.list_products()
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})
    except Exception as e:
        return json_error(e, "list products")


@products_bp.post("")
def create_product():
    """
    Request body:
    {"name": "Juice box", "price_cents": 500, "stock": 24, "min_stock": 5}
    """
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)
        product = products_service.create_product(patch=patch)
        return jsonify({"product": product.to_dict()}), 201
    except Exception as e:
        return json_error(e, "create product")


@products_bp.patch("/<int:product_id>")
def update_product(product_id: int):
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_product(patch)
        product = products_service.update_product(product_id=product_id, patch=patch)
        if product is None:
            return jsonify({"error": "Product not found"}), 404
        return jsonify({"product": product.to_dict()})
    except Exception as e:
        return json_error(e, "update product")


@products_bp.delete("/<int:product_id>")
def delete_product(product_id: int):
    """409 while the product is on an open tab."""
    try:
        deleted = products_service.delete_product(product_id=product_id)
        if not deleted:
            return jsonify({"error": "Product not found"}), 404
        return jsonify({"deleted": True, "product_id": product_id})
    except Exception as e:
        return json_error(e, "delete product")


@products_bp.post("/<int:product_id>/restock")
def restock_product(product_id: int):
    """Request body: {"quantity": 12}"""
    try:
        data = request.get_json(silent=True) or {}
        quantity = coerce_int("quantity", data.get("quantity"))
        product = products_service.restock(product_id, quantity)
        return jsonify({"product": product.to_dict()})
    except Exception as e:
        return json_error(e, "restock product")

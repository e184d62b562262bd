from flask import Blueprint, jsonify, request

from ..services import inventory_service
from ..services.concurrency import ConcurrencyError
from ..services.inventory_service import ProductNotFoundError
from ..validation import ValidationError, parse_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        limit = parse_int(request.args.get("limit", 200), "limit", minimum=1)
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400

    products = inventory_service.low_stock_products(limit=limit)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@inventory_bp.get("/<int:product_id>/movements")
def movements_route(product_id: int):
    try:
        stock = inventory_service.get_stock_quantity(product_id)
    except ProductNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404

    movements = inventory_service.movements_for_product(product_id)
    return jsonify({
        "product_id": product_id,
        "stock_quantity": stock,
        "movements": [m.to_dict() for m in movements],
    }), 200


@inventory_bp.delete("/<int:product_id>")
def retire_product_route(product_id: int):
    """Delete a never-sold product, or deactivate one with sales history."""
    try:
        outcome = inventory_service.retire_product(product_id)
    except ProductNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except ConcurrencyError as exc:
        return jsonify({"error": str(exc), "retryable": True}), 503
    return jsonify({"product_id": product_id, "result": outcome}), 200

# Overview: Flask API routes for checkout and cancellation; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..services import transaction_service
from ..services.concurrency import ConcurrencyError
from ..services.inventory_service import InsufficientStockError, InventoryError, ProductNotFoundError
from ..services.transaction_service import (
    AlreadyCancelledError,
    InvalidTransitionError,
    LineItemInput,
    TransactionError,
    TransactionHeader,
    TransactionNotFoundError,
    TransactionNumberCollisionError,
)
from ..validation import ValidationError, parse_int, parse_money_cents


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _domain_error(exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, (TransactionNotFoundError, ProductNotFoundError)):
        return jsonify({"error": str(exc), "details": exc.details}), 404
    if isinstance(exc, (InsufficientStockError, AlreadyCancelledError, InvalidTransitionError)):
        return jsonify({"error": str(exc), "details": exc.details}), 409
    if isinstance(exc, TransactionNumberCollisionError):
        return jsonify({"error": str(exc), "retryable": True}), 503
    if isinstance(exc, ConcurrencyError):
        return jsonify({"error": str(exc), "retryable": True}), 503
    if isinstance(exc, (TransactionError, InventoryError)):
        return jsonify({"error": str(exc), "details": exc.details}), 400
    raise exc


DOMAIN_ERRORS = (ValidationError, TransactionError, InventoryError, ConcurrencyError)


def _json_object() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


@transactions_bp.post("/")
def create_transaction_route():
    """
    Checkout: create a completed transaction, its items and the stock reservations.

    Body: header fields plus "items": [{product_id, quantity, unit_price}].
    """
    try:
        data = _json_object()
        header = TransactionHeader.from_payload(data)

        raw_items = data.get("items", [])
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")
        items = [LineItemInput.from_payload(item, index=i) for i, item in enumerate(raw_items)]

        transaction = transaction_service.create_transaction(header, items)
        return jsonify({"transaction": transaction.to_dict(include_items=True)}), 201

    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/")
def list_transactions_route():
    try:
        transactions = transaction_service.list_transactions(
            status=request.args.get("status"),
            limit=request.args.get("limit", 50),
            offset=request.args.get("offset", 0),
        )
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        transaction = transaction_service.get_transaction(transaction_id)
        return jsonify({"transaction": transaction.to_dict(include_items=True)}), 200
    except TransactionNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@transactions_bp.post("/<int:transaction_id>/items")
def add_item_route(transaction_id: int):
    """Append a line to an existing transaction. Reserves stock like checkout does."""
    try:
        data = _json_object()
        line = transaction_service.add_item(
            transaction_id,
            parse_int(data.get("product_id"), "product_id", minimum=1),
            parse_int(data.get("quantity"), "quantity", minimum=1),
            parse_money_cents(data.get("unit_price"), "unit_price", allow_zero=False),
        )
        return jsonify({"item": line.to_dict()}), 201

    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to add transaction item")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/cancel")
def cancel_transaction_route(transaction_id: int):
    """
    Cancel a transaction and restore the stock of its items.

    404 when the transaction does not exist, 409 when it is already cancelled.
    """
    try:
        transaction = transaction_service.cancel_transaction(transaction_id)
        return jsonify({"success": True, "transaction": transaction.to_dict()}), 200

    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel transaction")
        return jsonify({"error": "Internal server error"}), 500

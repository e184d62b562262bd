# Overview: Inventory ledger; the only code path that mutates Product.stock_quantity.

from __future__ import annotations

import logging

from sqlalchemy import update

from ..extensions import db
from ..models import Product, StockMovement, TransactionItem
from ..time_utils import utcnow
from ..validation import parse_int
from .concurrency import lock_for_update, run_in_transaction
"""
Inventory ledger invariants (authoritative)

- stock_quantity never goes negative. reserve() is a single conditional
  UPDATE ... WHERE stock_quantity >= :qty, so two concurrent reservations
  cannot both pass a check that only one of them fits.
- restore() is a single relative UPDATE (stock_quantity + :qty); it never
  re-derives stock from a previously read value.
- Neither function commits. Callers run them inside a unit of work
  (concurrency.run_in_transaction) so a later failure rolls them back.
- Every reserve/restore appends a StockMovement row in the same DB transaction.
"""


logger = logging.getLogger(__name__)

MOVEMENT_SALE = "SALE"
MOVEMENT_SALE_CANCEL = "SALE_CANCEL"


class InventoryError(Exception):
    """Base class for inventory ledger failures."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFoundError(InventoryError):
    """Raised when a product id does not exist."""


class InsufficientStockError(InventoryError):
    """Raised when a reservation asks for more than is on hand."""


def _stock_row(product_id: int):
    return (
        db.session.query(Product.id, Product.sku, Product.stock_quantity)
        .filter(Product.id == product_id)
        .first()
    )


def reserve(
    product_id: int,
    quantity: int,
    *,
    transaction_id: int | None = None,
    transaction_item_id: int | None = None,
) -> StockMovement:
    """
    Atomically decrement stock for a sale. Returns the journal row it appended.

    Raises InsufficientStockError (with sku, requested and available
    quantity) or ProductNotFoundError without changing anything.
    """
    quantity = parse_int(quantity, "quantity", minimum=1)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    row = _stock_row(product_id)
    if row is None:
        raise ProductNotFoundError(
            f"Product {product_id} not found",
            details={"product_id": product_id},
        )

    if not result.rowcount:
        raise InsufficientStockError(
            f"Insufficient stock for {row.sku}: requested {quantity}, available {row.stock_quantity}",
            details={
                "product_id": product_id,
                "sku": row.sku,
                "requested_quantity": quantity,
                "available_quantity": row.stock_quantity,
                "shortfall": quantity - row.stock_quantity,
            },
        )

    movement = StockMovement(
        product_id=product_id,
        transaction_id=transaction_id,
        transaction_item_id=transaction_item_id,
        quantity_delta=-quantity,
        reason=MOVEMENT_SALE,
    )
    db.session.add(movement)
    return movement


def restore(
    product_id: int,
    quantity: int,
    *,
    transaction_id: int | None = None,
    transaction_item_id: int | None = None,
) -> StockMovement:
    """
    Atomically add stock back after a cancelled sale. Returns the journal row it appended.

    Only transaction cancellation calls this, with the quantity that was
    reserved for the item being reversed.
    """
    quantity = parse_int(quantity, "quantity", minimum=1)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise ProductNotFoundError(
            f"Product {product_id} not found",
            details={"product_id": product_id},
        )

    movement = StockMovement(
        product_id=product_id,
        transaction_id=transaction_id,
        transaction_item_id=transaction_item_id,
        quantity_delta=quantity,
        reason=MOVEMENT_SALE_CANCEL,
    )
    db.session.add(movement)
    return movement


def get_stock_quantity(product_id: int) -> int:
    row = _stock_row(product_id)
    if row is None:
        raise ProductNotFoundError(
            f"Product {product_id} not found",
            details={"product_id": product_id},
        )
    return int(row.stock_quantity)


def low_stock_products(limit: int = 200) -> list[Product]:
    """Active products at or below their minimum stock level, emptiest first."""
    return (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.stock_quantity <= Product.min_stock_level,
        )
        .order_by(Product.stock_quantity.asc(), Product.sku.asc())
        .limit(limit)
        .all()
    )


def movements_for_product(product_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def retire_product(product_id: int) -> str:
    """
    Remove a product from the catalog.

    Products that appear on any transaction item are only deactivated so
    history keeps resolving; products never sold are deleted outright.
    The history check and the delete share one write-locked unit of work,
    so a checkout cannot slip an item in between them.
    Returns "deactivated" or "deleted".
    """
    def _op() -> str:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFoundError(
                f"Product {product_id} not found",
                details={"product_id": product_id},
            )

        has_history = (
            db.session.query(TransactionItem.id)
            .filter(TransactionItem.product_id == product_id)
            .first()
            is not None
        )

        if has_history:
            product.is_active = False
            product.updated_at = utcnow()
            return "deactivated"

        db.session.query(StockMovement).filter(StockMovement.product_id == product_id).delete()
        db.session.delete(product)
        return "deleted"

    outcome = run_in_transaction(_op)
    logger.info("Product %s retired (%s)", product_id, outcome)
    return outcome

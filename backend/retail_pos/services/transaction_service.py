"""
Transaction store: checkout, line items and the status state machine.

WHY: A checkout touches three things that must move together: the
transaction header, its line items and the stock of every product sold.
Each public operation here is one unit of work (run_in_transaction); any
failure rolls back the header, the items and every reservation already made.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Product, Transaction, TransactionItem, User
from ..models.sales import (
    PAYMENT_TYPES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    TRANSACTION_STATUSES,
)
from ..time_utils import utcnow
from ..validation import (
    MAX_AMOUNT_CENTS,
    ValidationError,
    parse_choice,
    parse_int,
    parse_money_cents,
    parse_optional_int,
    parse_optional_text,
)
from . import inventory_service
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import ProductNotFoundError


logger = logging.getLogger(__name__)

# Checkout regenerates the number this many times before giving up
NUMBER_ATTEMPTS = 2

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: {STATUS_CANCELLED},
    STATUS_CANCELLED: set(),
}


class TransactionError(Exception):
    """Raised for transaction operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class TransactionNotFoundError(TransactionError):
    pass


class AlreadyCancelledError(TransactionError):
    pass


class InvalidTransitionError(TransactionError):
    pass


class TransactionNumberCollisionError(TransactionError):
    """Generated transaction number already exists. Retryable."""


@dataclass(frozen=True)
class TransactionHeader:
    """Checkout header. Amounts are integer cents."""
    user_id: int
    total_amount_cents: int
    payment_type: str
    discount_amount_cents: int = 0
    tax_amount_cents: int = 0
    customer_id: int | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "TransactionHeader":
        return cls(
            user_id=parse_int(payload.get("user_id"), "user_id", minimum=1),
            total_amount_cents=parse_money_cents(payload.get("total_amount"), "total_amount", allow_zero=False),
            payment_type=parse_choice(payload.get("payment_type"), "payment_type", PAYMENT_TYPES),
            discount_amount_cents=parse_money_cents(payload.get("discount_amount", 0), "discount_amount"),
            tax_amount_cents=parse_money_cents(payload.get("tax_amount", 0), "tax_amount"),
            customer_id=parse_optional_int(payload.get("customer_id"), "customer_id", minimum=1),
            notes=parse_optional_text(payload.get("notes"), "notes"),
        )


@dataclass(frozen=True)
class LineItemInput:
    """One requested line. unit_price_cents is the price charged, not re-read from the product."""
    product_id: int
    quantity: int
    unit_price_cents: int

    @classmethod
    def from_payload(cls, payload: dict, index: int | None = None) -> "LineItemInput":
        if not isinstance(payload, dict):
            raise ValidationError("each item must be an object")
        prefix = f"items[{index}]." if index is not None else ""
        return cls(
            product_id=parse_int(payload.get("product_id"), f"{prefix}product_id", minimum=1),
            quantity=parse_int(payload.get("quantity"), f"{prefix}quantity", minimum=1),
            unit_price_cents=parse_money_cents(
                payload.get("unit_price"), f"{prefix}unit_price", allow_zero=False
            ),
        )

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def generate_transaction_number() -> str:
    """Wall-clock milliseconds plus a random base-36 suffix, e.g. TXN-1760812345678-k3j9x0a2b."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"TXN-{millis}-{suffix}"


def _check_amount(value, field: str, *, positive: bool) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if value < 0 or (positive and value == 0):
        qualifier = "greater than zero" if positive else "non-negative"
        raise ValidationError(f"{field} must be {qualifier}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum amount")


def _validate_header(header: TransactionHeader) -> None:
    parse_int(header.user_id, "user_id", minimum=1)
    _check_amount(header.total_amount_cents, "total_amount", positive=True)
    _check_amount(header.discount_amount_cents, "discount_amount", positive=False)
    _check_amount(header.tax_amount_cents, "tax_amount", positive=False)
    if header.payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")
    if header.customer_id is not None:
        parse_int(header.customer_id, "customer_id", minimum=1)


def _validate_item(item: LineItemInput) -> None:
    parse_int(item.product_id, "product_id", minimum=1)
    parse_int(item.quantity, "quantity", minimum=1)
    _check_amount(item.unit_price_cents, "unit_price", positive=True)
    _check_amount(item.total_price_cents, "total_price", positive=True)


def _check_references(header: TransactionHeader) -> None:
    if db.session.get(User, header.user_id) is None:
        raise ValidationError(f"user_id {header.user_id} does not reference a user")
    if header.customer_id is not None and db.session.get(Customer, header.customer_id) is None:
        raise ValidationError(f"customer_id {header.customer_id} does not reference a customer")


def _warn_if_unreconciled(transaction: Transaction, items: list[LineItemInput]) -> None:
    if not items:
        return
    subtotal = sum(item.total_price_cents for item in items)
    expected = subtotal + transaction.tax_amount_cents - transaction.discount_amount_cents
    if expected != transaction.total_amount_cents:
        logger.warning(
            "Transaction %s total %d does not reconcile with items (subtotal %d + tax %d - discount %d = %d)",
            transaction.transaction_number,
            transaction.total_amount_cents,
            subtotal,
            transaction.tax_amount_cents,
            transaction.discount_amount_cents,
            expected,
        )


def _append_item(transaction: Transaction, item: LineItemInput) -> TransactionItem:
    """Reserve stock for one line, then persist the line. Caller owns the unit of work."""
    product = db.session.get(Product, item.product_id)
    if product is None:
        raise ProductNotFoundError(
            f"Product {item.product_id} not found",
            details={"product_id": item.product_id},
        )

    movement = inventory_service.reserve(
        item.product_id,
        item.quantity,
        transaction_id=transaction.id,
    )

    line = TransactionItem(
        transaction=transaction,
        product_id=item.product_id,
        quantity=item.quantity,
        unit_price_cents=item.unit_price_cents,
        total_price_cents=item.total_price_cents,
        unit_cost_cents=product.cost_cents,
    )
    db.session.add(line)
    db.session.flush()
    movement.transaction_item_id = line.id
    return line


def _is_number_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "transaction_number" in message or "uq_transactions_number" in message


def _insert_header(header: TransactionHeader, number: str, status: str) -> Transaction:
    _check_references(header)

    transaction = Transaction(
        transaction_number=number,
        customer_id=header.customer_id,
        user_id=header.user_id,
        total_amount_cents=header.total_amount_cents,
        discount_amount_cents=header.discount_amount_cents,
        tax_amount_cents=header.tax_amount_cents,
        payment_type=header.payment_type,
        status=status,
        notes=header.notes,
    )
    db.session.add(transaction)
    try:
        db.session.flush()
    except IntegrityError as exc:
        if not _is_number_conflict(exc):
            raise
        raise TransactionNumberCollisionError(
            "Generated transaction number already exists",
            details={"transaction_number": number},
        ) from exc
    return transaction


def _with_fresh_number(build):
    """Run build(number) as a unit of work, regenerating the number once on collision."""
    for attempt in range(NUMBER_ATTEMPTS):
        number = generate_transaction_number()
        try:
            return run_in_transaction(lambda: build(number))
        except TransactionNumberCollisionError:
            if attempt >= NUMBER_ATTEMPTS - 1:
                logger.error("Transaction number collided %d times, giving up", NUMBER_ATTEMPTS)
                raise
            logger.warning("Transaction number %s collided, regenerating", number)


def create_transaction(header: TransactionHeader, items: Iterable[LineItemInput]) -> Transaction:
    """
    Checkout: insert a completed transaction with its items and reserve stock.

    All-or-nothing. If any item fails (unknown product, insufficient stock)
    no header, no item and no stock decrement survives.
    """
    items = list(items)
    _validate_header(header)
    for item in items:
        _validate_item(item)

    def _build(number: str) -> Transaction:
        transaction = _insert_header(header, number, STATUS_COMPLETED)
        for item in items:
            _append_item(transaction, item)
        _warn_if_unreconciled(transaction, items)
        return transaction

    transaction = _with_fresh_number(_build)
    logger.info(
        "Transaction %s created with %d item(s)",
        transaction.transaction_number,
        len(items),
    )
    return transaction


def create_pending_transaction(header: TransactionHeader) -> Transaction:
    """Record a transaction header in pending status. No stock is touched."""
    _validate_header(header)
    return _with_fresh_number(lambda number: _insert_header(header, number, STATUS_PENDING))


def add_item(transaction_id: int, product_id: int, quantity: int, unit_price_cents: int) -> TransactionItem:
    """
    Append one line to an existing transaction, reserving its stock.

    This is the same item path checkout uses, so an item is never persisted
    without exactly one reservation behind it.
    """
    item = LineItemInput(product_id=product_id, quantity=quantity, unit_price_cents=unit_price_cents)
    _validate_item(item)

    def _op() -> TransactionItem:
        transaction = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if not transaction:
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": transaction_id},
            )
        if transaction.status == STATUS_CANCELLED:
            raise AlreadyCancelledError(
                "Cannot add items to a cancelled transaction",
                details={"transaction_id": transaction_id},
            )

        line = _append_item(transaction, item)
        # Bumps version_id so a concurrent cancel cannot miss this line
        transaction.updated_at = utcnow()
        return line

    return run_in_transaction(_op)


def _transition(transaction: Transaction, target: str) -> None:
    if transaction.status == STATUS_CANCELLED:
        raise AlreadyCancelledError(
            f"Transaction {transaction.transaction_number} is already cancelled",
            details={"transaction_id": transaction.id},
        )
    if target not in ALLOWED_TRANSITIONS.get(transaction.status, set()):
        raise InvalidTransitionError(
            f"Cannot move transaction from {transaction.status} to {target}",
            details={"transaction_id": transaction.id, "status": transaction.status},
        )
    transaction.status = target
    transaction.updated_at = utcnow()


def complete_transaction(transaction_id: int) -> Transaction:
    """Promote a pending transaction to completed."""
    def _op() -> Transaction:
        transaction = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if not transaction:
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": transaction_id},
            )
        _transition(transaction, STATUS_COMPLETED)
        db.session.flush()
        return transaction

    return run_in_transaction(_op)


def cancel_transaction(transaction_id: int) -> Transaction:
    """
    Cancel a transaction and give back the stock of every line item.

    Restorations and the status flip commit together. The version check on
    the flip makes a racing second cancel roll back its restorations, retry,
    and then fail with AlreadyCancelledError.
    """
    def _op() -> Transaction:
        transaction = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if not transaction:
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": transaction_id},
            )
        if transaction.status == STATUS_CANCELLED:
            raise AlreadyCancelledError(
                f"Transaction {transaction.transaction_number} is already cancelled",
                details={"transaction_id": transaction_id},
            )

        items = (
            db.session.query(TransactionItem)
            .filter_by(transaction_id=transaction.id)
            .order_by(TransactionItem.id.asc())
            .all()
        )
        for item in items:
            inventory_service.restore(
                item.product_id,
                item.quantity,
                transaction_id=transaction.id,
                transaction_item_id=item.id,
            )

        _transition(transaction, STATUS_CANCELLED)
        db.session.flush()
        return transaction

    transaction = run_in_transaction(_op)
    logger.info("Transaction %s cancelled", transaction.transaction_number)
    return transaction


def get_transaction(transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise TransactionNotFoundError(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )
    return transaction


def list_transactions(*, status: str | None = None, limit: int = 50, offset: int = 0) -> list[Transaction]:
    """Newest first. status filters to one lifecycle state."""
    limit = parse_int(limit, "limit", minimum=1)
    offset = parse_int(offset, "offset", minimum=0)
    if limit > 200:
        raise ValidationError("limit must be at most 200")

    query = db.session.query(Transaction)
    if status:
        status = parse_choice(status, "status", TRANSACTION_STATUSES)
        query = query.filter(Transaction.status == status)

    return (
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )

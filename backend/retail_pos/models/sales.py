from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import cents_to_decimal


PAYMENT_TYPES = ("cash", "card", "digital_wallet", "bank_transfer")

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
TRANSACTION_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)


class Transaction(db.Model):
    """
    Checkout transaction header.

    Status lifecycle: pending -> completed -> cancelled. Checkout inserts
    straight into completed; cancelled is terminal. Rows are never deleted.
    version_id guards the status flip against concurrent cancellations.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_transactions_number"),
        db.CheckConstraint("total_amount_cents > 0", name="ck_transactions_total_positive"),
        db.CheckConstraint("discount_amount_cents >= 0", name="ck_transactions_discount_non_negative"),
        db.CheckConstraint("tax_amount_cents >= 0", name="ck_transactions_tax_non_negative"),
        db.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name="ck_transactions_status_valid",
        ),
        db.CheckConstraint(
            "payment_type IN ('cash', 'card', 'digital_wallet', 'bank_transfer')",
            name="ck_transactions_payment_type_valid",
        ),
        # Reports filter on status and a created_at window
        db.Index("ix_transactions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable, e.g. "TXN-1760812345678-k3j9x0a2b"
    transaction_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.id",
        lazy="selectin",
    )
    customer = db.relationship("Customer")
    user = db.relationship("User")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} number={self.transaction_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "total_amount": cents_to_decimal(self.total_amount_cents),
            "discount_amount": cents_to_decimal(self.discount_amount_cents),
            "tax_amount": cents_to_decimal(self.tax_amount_cents),
            "payment_type": self.payment_type,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """
    Line item on a transaction. Written once, never updated.

    unit_price_cents is the sale price at checkout; unit_cost_cents snapshots
    the product cost at the same moment for historical margin reporting.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents > 0", name="ck_transaction_items_price_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    transaction = db.relationship("Transaction", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": cents_to_decimal(self.unit_price_cents),
            "total_price": cents_to_decimal(self.total_price_cents),
            "created_at": to_utc_z(self.created_at),
        }

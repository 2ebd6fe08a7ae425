from __future__ import annotations

from ..extensions import db
from ..constants import SALE_NORMAL, SALE_STATUS_COMPLETED, CUSTOMER_TYPE_WALK_IN
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Completed sale document.

    Sales are written once, together with their items, inside the transaction
    that moves stock and posts to the customer ledger. IMMUTABLE afterwards:
    refunds and exchanges create new rows that reference the original.

    sale_number format: SAL-YYYYMMDD-NNNNN (date + random suffix, unique).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_department_created", "department", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(32), nullable=False, unique=True)

    department = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_type = db.Column(db.String(16), nullable=False, default=CUSTOMER_TYPE_WALK_IN)

    payment_mode = db.Column(db.String(32), nullable=False)
    transaction_type = db.Column(db.String(16), nullable=False, default=SALE_NORMAL)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED)

    # Totals (all amounts in cents, no tax)
    total_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Exchange sales point back at the sale whose goods were returned
    original_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    served_by = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    original_sale = db.relationship("Sale", remote_side=[id], backref=db.backref("exchange_sales", lazy=True))

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.sale_number!r} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "department": self.department,
            "customer_id": self.customer_id,
            "customer_type": self.customer_type,
            "payment_mode": self.payment_mode,
            "transaction_type": self.transaction_type,
            "status": self.status,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "balance_cents": self.balance_cents,
            "change_cents": self.change_cents,
            "original_sale_id": self.original_sale_id,
            "served_by": self.served_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class SaleItem(db.Model):
    """
    Line item on a sale, priced at the moment of sale.

    refunded_quantity is the only mutable column: refund_service increments it
    so that a line can never be refunded beyond its original quantity.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_items_sale_line"),
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint(
            "refunded_quantity >= 0 AND refunded_quantity <= quantity",
            name="ck_sale_items_refunded_within_quantity",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot of product identity at sale time
    sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    refunded_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.line_number"),
    )
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def refundable_quantity(self) -> int:
        return self.quantity - self.refunded_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "line_total_cents": self.line_total_cents,
            "refunded_quantity": self.refunded_quantity,
        }


class Refund(db.Model):
    """
    Append-only refund record, one per refunded sale line.

    amount_cents is always computed from the ORIGINAL unit price on the sale
    line, never from the product's current price.
    """
    __tablename__ = "refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_number = db.Column(db.String(32), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    refund_type = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    processed_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("refunds", lazy=True))
    sale_item = db.relationship("SaleItem", backref=db.backref("refunds", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_number": self.refund_number,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
            "refund_type": self.refund_type,
            "reason": self.reason,
            "processed_by": self.processed_by,
            "created_at": to_utc_z(self.created_at),
        }

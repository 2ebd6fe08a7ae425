from __future__ import annotations

from ..extensions import db
from ..constants import RECORD_ACTIVE, RESTOCK_PENDING_PAYMENT, CREDIT_UNPAID
from ..time_utils import to_utc_z


class Supplier(db.Model):
    """
    Vendor we buy stock from on credit.

    CREDIT INVARIANT (maintained by supplier_service only):
        balance_cents == SUM(amount_cents) of this supplier's unpaid credits
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.CheckConstraint("balance_cents >= 0", name="ck_suppliers_balance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=RECORD_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class Restock(db.Model):
    """
    One supplier delivery.

    total_cost_cents = SUM(line quantity * buy price) + misc_expenses_cents
    expected_profit_cents = SUM(line quantity * (sell price - buy price)) - misc_expenses_cents
    """
    __tablename__ = "restocks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    misc_expenses_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_profit_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(32), nullable=False, default=RESTOCK_PENDING_PAYMENT, index=True)
    notes = db.Column(db.String(255), nullable=True)
    received_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("restocks", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "total_cost_cents": self.total_cost_cents,
            "misc_expenses_cents": self.misc_expenses_cents,
            "expected_profit_cents": self.expected_profit_cents,
            "status": self.status,
            "notes": self.notes,
            "received_by": self.received_by,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class RestockLine(db.Model):
    __tablename__ = "restock_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_restock_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restock_id = db.Column(db.Integer, db.ForeignKey("restocks.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    buy_price_cents = db.Column(db.Integer, nullable=False)
    sell_price_cents = db.Column(db.Integer, nullable=False)
    line_cost_cents = db.Column(db.Integer, nullable=False)

    restock = db.relationship("Restock", backref=db.backref("lines", lazy=True, order_by="RestockLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restock_id": self.restock_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "buy_price_cents": self.buy_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "line_cost_cents": self.line_cost_cents,
        }


class SupplierCredit(db.Model):
    """
    Amount owed to a supplier for one restock.

    amount_cents is the REMAINING amount and only ever decreases (FIFO
    consumption by supplier payments); original_amount_cents never changes.
    """
    __tablename__ = "supplier_credits"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_supplier_credits_amount_non_negative"),
        db.Index("ix_supplier_credits_supplier_status", "supplier_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    restock_id = db.Column(db.Integer, db.ForeignKey("restocks.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    original_amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=CREDIT_UNPAID)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("credits", lazy=True))
    restock = db.relationship("Restock", backref=db.backref("credits", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "restock_id": self.restock_id,
            "amount_cents": self.amount_cents,
            "original_amount_cents": self.original_amount_cents,
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }


class SupplierPayment(db.Model):
    """Append-only record of money paid to a supplier. IMMUTABLE."""
    __tablename__ = "supplier_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    paid_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "paid_by": self.paid_by,
            "created_at": to_utc_z(self.created_at),
        }

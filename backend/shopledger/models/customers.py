from __future__ import annotations

from ..extensions import db
from ..constants import BOARDING_BOARDER, BOARDING_DAY, PROGRAM_NONE, PAYMENT_STATUS_COMPLETED
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Enrolled learner (customer) with an account at the school shop.

    LEDGER INVARIANT (maintained by balance_service only):
        balance_cents == max(0, total_items_cost_cents - amount_paid_cents)

    Customers are created at enrollment and never hard-deleted; payments,
    sales and allocation history reference them for the lifetime of the ledger.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("balance_cents >= 0", name="ck_customers_balance_non_negative"),
        db.CheckConstraint("pocket_money_balance_cents >= 0", name="ck_customers_pocket_money_non_negative"),
        db.Index("ix_customers_class_name", "class_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    admission_number = db.Column(db.String(32), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    class_name = db.Column(db.String(64), nullable=True)

    boarding_status = db.Column(db.String(16), nullable=False, default=BOARDING_DAY)
    program_membership = db.Column(db.String(8), nullable=False, default=PROGRAM_NONE)

    guardian_name = db.Column(db.String(255), nullable=True)
    guardian_phone = db.Column(db.String(32), nullable=True)

    # Account ledger (all amounts in cents)
    total_items_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Pocket-money subledger
    pocket_money_enabled = db.Column(db.Boolean, nullable=False, default=False)
    pocket_money_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_boarder(self) -> bool:
        return self.boarding_status == BOARDING_BOARDER

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} balance_cents={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "admission_number": self.admission_number,
            "name": self.name,
            "class_name": self.class_name,
            "boarding_status": self.boarding_status,
            "program_membership": self.program_membership,
            "guardian_name": self.guardian_name,
            "guardian_phone": self.guardian_phone,
            "total_items_cost_cents": self.total_items_cost_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_cents": self.balance_cents,
            "pocket_money_enabled": self.pocket_money_enabled,
            "pocket_money_balance_cents": self.pocket_money_balance_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class Payment(db.Model):
    """
    Append-only ledger of money received from (or returned to) a customer.

    amount_cents is positive for payments and negative for refund reversals.
    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    is_installment = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_COMPLETED)
    notes = db.Column(db.String(255), nullable=True)
    recorded_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "is_installment": self.is_installment,
            "status": self.status,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }

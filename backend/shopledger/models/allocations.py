from __future__ import annotations

from ..extensions import db
from ..constants import ALLOCATION_ALLOCATED
from ..time_utils import to_utc_z


class Allocation(db.Model):
    """
    Recurring grant of a product to a customer under program A or B.

    specific_days holds a comma-separated list of lowercase weekday names and
    is only meaningful when frequency == "specific_days".

    last_given_at / next_due_date are written by allocation_service on
    fulfillment only; everything else is set at creation time.
    """
    __tablename__ = "allocations"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_allocations_quantity_positive"),
        db.Index("ix_allocations_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    frequency = db.Column(db.String(32), nullable=False)
    specific_days = db.Column(db.String(128), nullable=True)
    program_type = db.Column(db.String(8), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ALLOCATION_ALLOCATED, index=True)
    last_given_at = db.Column(db.DateTime(timezone=True), nullable=True)
    next_due_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    notes = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("allocations", lazy=True))
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "frequency": self.frequency,
            "specific_days": self.specific_days,
            "program_type": self.program_type,
            "status": self.status,
            "last_given_at": to_utc_z(self.last_given_at),
            "next_due_date": to_utc_z(self.next_due_date),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class AllocationHistory(db.Model):
    """
    Append-only log of allocation fulfillments.

    program_type and frequency are copied from the allocation at the time it
    was given so the history survives later edits or cancellation.
    """
    __tablename__ = "allocation_history"
    __table_args__ = (
        db.Index("ix_allocation_history_customer_given", "customer_id", "given_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    allocation_id = db.Column(db.Integer, db.ForeignKey("allocations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    program_type = db.Column(db.String(8), nullable=False)
    frequency = db.Column(db.String(32), nullable=False)
    given_by = db.Column(db.String(128), nullable=True)
    given_at = db.Column(db.DateTime(timezone=True), nullable=False)

    allocation = db.relationship(
        "Allocation",
        backref=db.backref("history", lazy=True, order_by="AllocationHistory.given_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "allocation_id": self.allocation_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "program_type": self.program_type,
            "frequency": self.frequency,
            "given_by": self.given_by,
            "given_at": to_utc_z(self.given_at),
        }

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PocketMoneyTransaction(db.Model):
    """
    Append-only movement on a boarder's pocket-money balance.

    amount_cents is signed: positive for TOP_UP / REFUND, negative for
    PURCHASE / DEDUCT. balance_after_cents is the balance once applied.
    """
    __tablename__ = "pocket_money_transactions"
    __table_args__ = (
        db.Index("ix_pocket_money_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    recorded_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "reason": self.reason,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }

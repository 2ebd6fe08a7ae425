from __future__ import annotations

from ..extensions import db
from ..constants import RECORD_ACTIVE, DEFAULT_DEPARTMENT, DEFAULT_REORDER_LEVEL
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data with a mutable on-hand quantity.

    STOCK INVARIANT: stock_qty >= 0, enforced twice: by stock_service before
    every write (raising InsufficientStock) and by a table check constraint.

    Products are archived (status=ARCHIVED), never deleted; archived products
    cannot be sold or allocated but remain referenced by history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_qty >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_department_status", "department", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    department = db.Column(db.String(64), nullable=False, default=DEFAULT_DEPARTMENT)
    category = db.Column(db.String(64), nullable=True)

    buy_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_qty = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=DEFAULT_REORDER_LEVEL)

    is_allocatable = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default=RECORD_ACTIVE, index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == RECORD_ACTIVE

    @property
    def is_low_stock(self) -> bool:
        return self.stock_qty <= self.reorder_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock_qty={self.stock_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "department": self.department,
            "category": self.category,
            "buy_price_cents": self.buy_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "stock_qty": self.stock_qty,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "is_allocatable": self.is_allocatable,
            "status": self.status,
            "supplier_id": self.supplier_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

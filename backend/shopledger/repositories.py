"""
Typed lookups for the ledger entities.

One function per entity/access pattern, each returning a model instance or
raising NotFound. ``lock=True`` adds SELECT ... FOR UPDATE. Archived
products and suppliers are hidden unless ``include_archived=True``.
"""

from __future__ import annotations

from typing import Iterable

from .constants import RECORD_ACTIVE
from .errors import NotFound
from .extensions import db
from .models import Allocation, Customer, Product, Sale, Supplier
from .services.concurrency import lock_for_update


def _one(query, lock: bool):
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_customer(customer_id: int, *, lock: bool = False) -> Customer:
    customer = _one(db.session.query(Customer).filter(Customer.id == customer_id), lock)
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def get_product(product_id: int, *, lock: bool = False, include_archived: bool = False) -> Product:
    q = db.session.query(Product).filter(Product.id == product_id)
    if not include_archived:
        q = q.filter(Product.status == RECORD_ACTIVE)
    product = _one(q, lock)
    if product is None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def find_product_by_sku(sku: str, *, lock: bool = False) -> Product | None:
    """Exact SKU match, active or archived (SKUs are never reused)."""
    return _one(db.session.query(Product).filter(Product.sku == sku), lock)


def lock_products(product_ids: Iterable[int], *, include_archived: bool = False) -> dict[int, Product]:
    """
    Lock a set of products in ascending id order and return them keyed by id.

    Raises NotFound naming the first missing id.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    q = db.session.query(Product).filter(Product.id.in_(ids))
    if not include_archived:
        q = q.filter(Product.status == RECORD_ACTIVE)
    rows = lock_for_update(q.order_by(Product.id)).all()
    by_id = {p.id: p for p in rows}
    for product_id in ids:
        if product_id not in by_id:
            raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return by_id


def get_supplier(supplier_id: int, *, lock: bool = False, include_archived: bool = False) -> Supplier:
    q = db.session.query(Supplier).filter(Supplier.id == supplier_id)
    if not include_archived:
        q = q.filter(Supplier.status == RECORD_ACTIVE)
    supplier = _one(q, lock)
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


def get_sale(sale_id: int, *, lock: bool = False) -> Sale:
    sale = _one(db.session.query(Sale).filter(Sale.id == sale_id), lock)
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def get_sale_by_number(sale_number: str) -> Sale:
    sale = db.session.query(Sale).filter(Sale.sale_number == sale_number).first()
    if sale is None:
        raise NotFound(f"Sale {sale_number} not found", details={"sale_number": sale_number})
    return sale


def get_allocation(allocation_id: int, *, lock: bool = False) -> Allocation:
    allocation = _one(db.session.query(Allocation).filter(Allocation.id == allocation_id), lock)
    if allocation is None:
        raise NotFound(f"Allocation {allocation_id} not found", details={"allocation_id": allocation_id})
    return allocation

# Overview: Pytest coverage for suppliers; restocks, credit terms and oldest-first settlement.

from datetime import datetime, timedelta

import pytest

from shopledger.errors import InsufficientBalance, InvalidState, ValidationError
from shopledger.models import Product, Restock, RestockLine, SupplierCredit, SupplierPayment
from shopledger.services import supplier_service
from shopledger.services.supplier_service import RestockInput, RestockItemInput, SupplierPaymentInput

NOW = datetime(2026, 2, 2, 10, 0)


def _restock(supplier, product, quantity, buy, actor, *, sell=None, misc=0, now=NOW):
    return supplier_service.process_restock(
        RestockInput(
            supplier_id=supplier.id,
            items=[RestockItemInput(
                product_id=product.id,
                quantity=quantity,
                buy_price_cents=buy,
                sell_price_cents=sell if sell is not None else product.sell_price_cents,
            )],
            misc_expenses_cents=misc,
        ),
        actor=actor,
        now=now,
    )


class TestSuppliers:

    def test_same_name_returns_existing_supplier(self, db_session, supplier, actor):
        again = supplier_service.create_supplier(name="text book centre", actor=actor)
        assert again.id == supplier.id

    def test_archive_with_balance_rejected(self, db_session, supplier, pen, actor):
        _restock(supplier, pen, 10, 1000, actor)
        with pytest.raises(InvalidState):
            supplier_service.archive_supplier(supplier.id, actor=actor)

    def test_archived_supplier_hidden_from_list(self, db_session, supplier, actor):
        supplier_service.archive_supplier(supplier.id, actor=actor)
        assert supplier_service.list_suppliers() == []
        assert [s.id for s in supplier_service.list_suppliers(include_archived=True)] == [supplier.id]


class TestRestock:

    def test_restock_adds_stock_and_opens_credit(self, db_session, supplier, exercise_book, actor):
        result = _restock(supplier, exercise_book, 10, 5000, actor)

        assert result.credit.amount_cents == 50000
        assert result.credit.status == "unpaid"
        assert result.credit.due_date == NOW + timedelta(days=30)
        assert result.supplier.balance_cents == 50000

        db_session.refresh(exercise_book)
        assert exercise_book.stock_qty == 60
        assert exercise_book.buy_price_cents == 5000
        assert exercise_book.supplier_id == supplier.id
        assert db_session.query(RestockLine).one().line_cost_cents == 50000

    def test_misc_expenses_and_expected_profit(self, db_session, supplier, pen, actor):
        result = _restock(supplier, pen, 20, 1000, actor, sell=2500, misc=3000)

        restock = result.restock
        assert restock.total_cost_cents == 23000
        assert restock.misc_expenses_cents == 3000
        assert restock.expected_profit_cents == 50000 - 23000
        db_session.refresh(pen)
        assert pen.sell_price_cents == 2500

    def test_unknown_sku_creates_product(self, db_session, supplier, actor):
        supplier_service.process_restock(
            RestockInput(
                supplier_id=supplier.id,
                items=[RestockItemInput(
                    sku="RUL-30",
                    name="Ruler 30cm",
                    department="Stationery",
                    quantity=40,
                    buy_price_cents=300,
                    sell_price_cents=500,
                )],
            ),
            actor=actor,
            now=NOW,
        )
        product = db_session.query(Product).filter_by(sku="RUL-30").one()
        assert product.stock_qty == 40
        assert product.department == "Stationery"
        assert product.supplier_id == supplier.id

    def test_new_product_needs_a_name(self, db_session, supplier, actor):
        with pytest.raises(ValidationError):
            supplier_service.process_restock(
                RestockInput(
                    supplier_id=supplier.id,
                    items=[RestockItemInput(sku="XX-1", quantity=1, buy_price_cents=1, sell_price_cents=2)],
                ),
                actor=actor,
            )
        assert db_session.query(Restock).count() == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"sku": 12345},
            {"department": 7},
            {"name": ["Ruler"]},
            {"reorder_level": "ten"},
        ],
    )
    def test_malformed_item_rejected_before_any_write(self, db_session, supplier, actor, overrides):
        fields = dict(sku="RUL-30", name="Ruler 30cm", department="Stationery", quantity=5,
                      buy_price_cents=300, sell_price_cents=500)
        fields.update(overrides)

        with pytest.raises(ValidationError):
            supplier_service.process_restock(
                RestockInput(supplier_id=supplier.id, items=[RestockItemInput(**fields)]),
                actor=actor,
            )
        assert db_session.query(Restock).count() == 0
        assert db_session.query(Product).count() == 0

    def test_new_product_without_department_uses_default(self, db_session, supplier, actor):
        supplier_service.process_restock(
            RestockInput(
                supplier_id=supplier.id,
                items=[RestockItemInput(sku=" GLU-01 ", name="Glue", quantity=5, buy_price_cents=100, sell_price_cents=200)],
            ),
            actor=actor,
        )
        product = db_session.query(Product).filter_by(sku="GLU-01").one()
        assert product.department == "General"

    def test_low_stock_products_reported(self, db_session, supplier, actor):
        result = supplier_service.process_restock(
            RestockInput(
                supplier_id=supplier.id,
                items=[RestockItemInput(
                    sku="CHK-01",
                    name="Chalk",
                    department="Stationery",
                    reorder_level=5,
                    quantity=3,
                    buy_price_cents=100,
                    sell_price_cents=150,
                )],
            ),
            actor=actor,
        )
        product = db_session.query(Product).filter_by(sku="CHK-01").one()
        assert result.low_stock_product_ids == [product.id]
        assert result.to_dict()["low_stock_product_ids"] == [product.id]

    def test_zero_cost_restock_is_settled(self, db_session, supplier, pen, actor):
        result = _restock(supplier, pen, 5, 0, actor)
        assert result.credit.status == "paid"
        assert result.restock.status == "paid"
        assert result.supplier.balance_cents == 0


class TestSupplierPayments:

    def test_payment_settles_oldest_credit_first(self, db_session, supplier, pen, exercise_book, actor):
        first = _restock(supplier, pen, 10, 1000, actor, now=NOW)
        second = _restock(supplier, exercise_book, 1, 5000, actor, now=NOW + timedelta(days=1))

        result = supplier_service.record_supplier_payment(
            SupplierPaymentInput(supplier_id=supplier.id, amount_cents=12000, method="mpesa", reference="QX1"),
            actor=actor,
            now=NOW + timedelta(days=2),
        )

        assert result.previous_balance_cents == 15000
        assert result.new_balance_cents == 3000
        assert [c["applied_cents"] for c in result.credits_applied] == [10000, 2000]

        c1 = db_session.get(SupplierCredit, first.credit.id)
        c2 = db_session.get(SupplierCredit, second.credit.id)
        assert c1.status == "paid"
        assert c1.amount_cents == 0
        assert c2.status == "unpaid"
        assert c2.amount_cents == 3000
        assert db_session.get(Restock, first.restock.id).status == "paid"
        assert db_session.get(Restock, second.restock.id).status == "pending_payment"
        assert db_session.query(SupplierPayment).one().paid_by == actor.name

    def test_overpayment_rejected(self, db_session, supplier, pen, actor):
        _restock(supplier, pen, 10, 1000, actor)
        with pytest.raises(InsufficientBalance):
            supplier_service.record_supplier_payment(
                SupplierPaymentInput(supplier_id=supplier.id, amount_cents=10001), actor=actor,
            )
        db_session.refresh(supplier)
        assert supplier.balance_cents == 10000

    def test_nothing_owed_rejected(self, db_session, supplier, actor):
        with pytest.raises(InsufficientBalance):
            supplier_service.record_supplier_payment(
                SupplierPaymentInput(supplier_id=supplier.id, amount_cents=100), actor=actor,
            )


class TestCreditReports:

    def test_summary_reports_overdue_credit(self, db_session, supplier, pen, actor):
        _restock(supplier, pen, 10, 1000, actor)

        on_time = supplier_service.get_supplier_summary(supplier.id, now=NOW + timedelta(days=10))
        assert on_time["credit_summary"]["has_overdue"] is False
        assert on_time["credit_summary"]["unpaid_credits_count"] == 1

        late = supplier_service.get_supplier_summary(supplier.id, now=NOW + timedelta(days=31))
        assert late["credit_summary"]["overdue_credits_count"] == 1
        assert late["credit_summary"]["total_overdue_cents"] == 10000

    def test_due_credits_lists_supplier_contact(self, db_session, supplier, pen, actor):
        _restock(supplier, pen, 10, 1000, actor)

        assert supplier_service.get_due_credits(now=NOW + timedelta(days=5)) == []
        due = supplier_service.get_due_credits(now=NOW + timedelta(days=35))
        assert len(due) == 1
        assert due[0]["supplier_name"] == "Text Book Centre"
        assert due[0]["supplier_phone"] == "0722000000"
        assert due[0]["days_overdue"] == 5

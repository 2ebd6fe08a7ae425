# Overview: Pytest coverage for checkout; validation atomicity, stock decrement and ledger posting.

import re

import pytest

from shopledger.errors import InsufficientStock, InvalidState, NotFound, ValidationError
from shopledger.models import Payment, Sale, SaleItem
from shopledger.services import sales_service, stock_service
from shopledger.services.sales_service import SaleInput, SaleItemInput


class TestLearnerSales:

    def test_two_add_to_balance_sales_accumulate(self, db_session, learner, exercise_book, actor):
        for _ in range(2):
            result = sales_service.process_sale(
                SaleInput(
                    department="Stationery",
                    customer_id=learner.id,
                    items=[SaleItemInput(product_id=exercise_book.id, quantity=1)],
                    transaction_type="ADD_TO_BALANCE",
                ),
                actor=actor,
            )
            assert result.total_cents == 15000
            assert result.paid_cents == 0

        db_session.refresh(learner)
        db_session.refresh(exercise_book)
        assert learner.balance_cents == 30000
        assert learner.total_items_cost_cents == 30000
        assert exercise_book.stock_qty == 48
        assert db_session.query(Payment).count() == 0

    def test_partial_payment_leaves_shortfall_owed(self, db_session, learner, exercise_book, pen, actor):
        result = sales_service.process_sale(
            SaleInput(
                department="Stationery",
                customer_id=learner.id,
                items=[
                    SaleItemInput(product_id=exercise_book.id, quantity=2),
                    SaleItemInput(product_id=pen.id, quantity=5),
                ],
                payment_mode="mpesa",
                amount_paid_cents=30000,
            ),
            actor=actor,
        )

        assert result.total_cents == 40000
        assert result.balance_cents == 10000
        assert result.customer_balance_cents == 10000
        assert result.items_count == 2

        payment = db_session.query(Payment).one()
        assert payment.amount_cents == 30000
        assert payment.sale_id == result.sale_id
        assert payment.reference == result.sale_number

    def test_unit_price_override(self, db_session, learner, pen, actor):
        result = sales_service.process_sale(
            SaleInput(
                department="Stationery",
                customer_id=learner.id,
                items=[SaleItemInput(product_id=pen.id, quantity=3, unit_price_cents=1500)],
                amount_paid_cents=4500,
            ),
            actor=actor,
        )
        assert result.total_cents == 4500
        assert result.customer_balance_cents == 0

    def test_add_to_balance_with_payment_rejected(self, db_session, learner, pen, actor):
        with pytest.raises(ValidationError):
            sales_service.process_sale(
                SaleInput(
                    department="Stationery",
                    customer_id=learner.id,
                    items=[SaleItemInput(product_id=pen.id, quantity=1)],
                    transaction_type="ADD_TO_BALANCE",
                    amount_paid_cents=100,
                ),
                actor=actor,
            )


class TestValidationIsAtomic:

    def test_insufficient_stock_changes_nothing(self, db_session, learner, pen, sweater, actor):
        with pytest.raises(InsufficientStock):
            sales_service.process_sale(
                SaleInput(
                    department="Uniform",
                    customer_id=learner.id,
                    items=[SaleItemInput(product_id=sweater.id, quantity=11)],
                    transaction_type="ADD_TO_BALANCE",
                ),
                actor=actor,
            )

        db_session.refresh(sweater)
        db_session.refresh(learner)
        assert sweater.stock_qty == 10
        assert learner.balance_cents == 0
        assert db_session.query(Sale).count() == 0

    def test_summed_quantity_per_product_is_checked(self, db_session, sweater, actor):
        with pytest.raises(InsufficientStock):
            sales_service.process_sale(
                SaleInput(
                    department="Uniform",
                    items=[
                        SaleItemInput(product_id=sweater.id, quantity=6),
                        SaleItemInput(product_id=sweater.id, quantity=6),
                    ],
                    amount_paid_cents=2_000_000,
                ),
                actor=actor,
            )
        db_session.refresh(sweater)
        assert sweater.stock_qty == 10

    def test_department_mismatch(self, db_session, learner, pen, sweater, actor):
        with pytest.raises(InvalidState):
            sales_service.process_sale(
                SaleInput(
                    department="Uniform",
                    customer_id=learner.id,
                    items=[
                        SaleItemInput(product_id=sweater.id, quantity=1),
                        SaleItemInput(product_id=pen.id, quantity=1),
                    ],
                    transaction_type="ADD_TO_BALANCE",
                ),
                actor=actor,
            )
        db_session.refresh(sweater)
        assert sweater.stock_qty == 10
        assert db_session.query(SaleItem).count() == 0

    def test_archived_product_not_sellable(self, db_session, pen, actor):
        stock_service.archive_product(pen.id, actor=actor)
        with pytest.raises(NotFound):
            sales_service.process_sale(
                SaleInput(
                    department="Stationery",
                    items=[SaleItemInput(product_id=pen.id, quantity=1)],
                    amount_paid_cents=2000,
                ),
                actor=actor,
            )

    def test_empty_items_rejected(self, db_session, learner, actor):
        with pytest.raises(ValidationError):
            sales_service.process_sale(SaleInput(department="Stationery", customer_id=learner.id, items=[]), actor=actor)

    def test_unknown_customer(self, db_session, pen, actor):
        with pytest.raises(NotFound):
            sales_service.process_sale(
                SaleInput(
                    department="Stationery",
                    customer_id=999999,
                    items=[SaleItemInput(product_id=pen.id, quantity=1)],
                ),
                actor=actor,
            )


class TestWalkInSales:

    def test_overpayment_returns_change(self, db_session, pen, actor):
        result = sales_service.process_sale(
            SaleInput(
                department="Stationery",
                items=[SaleItemInput(product_id=pen.id, quantity=2)],
                amount_paid_cents=5000,
            ),
            actor=actor,
        )
        assert result.total_cents == 4000
        assert result.paid_cents == 4000
        assert result.change_cents == 1000
        assert result.customer_balance_cents is None
        assert db_session.query(Payment).count() == 0

        sale = db_session.get(Sale, result.sale_id)
        assert sale.customer_type == "WALK_IN"
        assert sale.served_by == actor.name

    def test_underpayment_rejected(self, db_session, pen, actor):
        with pytest.raises(InvalidState):
            sales_service.process_sale(
                SaleInput(
                    department="Stationery",
                    items=[SaleItemInput(product_id=pen.id, quantity=2)],
                    amount_paid_cents=1000,
                ),
                actor=actor,
            )

    def test_add_to_balance_requires_customer(self, db_session, pen, actor):
        with pytest.raises(InvalidState):
            sales_service.process_sale(
                SaleInput(
                    department="Stationery",
                    items=[SaleItemInput(product_id=pen.id, quantity=1)],
                    transaction_type="ADD_TO_BALANCE",
                ),
                actor=actor,
            )


class TestSaleRecords:

    def test_sale_number_format_and_snapshot(self, db_session, learner, exercise_book, actor):
        result = sales_service.process_sale(
            SaleInput(
                department="Stationery",
                customer_id=learner.id,
                items=[SaleItemInput(product_id=exercise_book.id, quantity=1)],
                transaction_type="ADD_TO_BALANCE",
            ),
            actor=actor,
        )
        assert re.fullmatch(r"SAL-\d{8}-\d{5}", result.sale_number)

        sale = sales_service.get_sale(result.sale_id)
        item = sale.items[0]
        assert item.line_number == 1
        assert item.sku == "EXB-200"
        assert item.unit_price_cents == 15000
        assert item.cost_price_cents == 10000
        assert item.refunded_quantity == 0

    def test_list_sales_filters_by_customer(self, db_session, learner, pen, actor):
        sales_service.process_sale(
            SaleInput(department="Stationery", items=[SaleItemInput(product_id=pen.id, quantity=1)], amount_paid_cents=2000),
            actor=actor,
        )
        sales_service.process_sale(
            SaleInput(
                department="Stationery",
                customer_id=learner.id,
                items=[SaleItemInput(product_id=pen.id, quantity=1)],
                transaction_type="ADD_TO_BALANCE",
            ),
            actor=actor,
        )
        assert len(sales_service.list_sales()) == 2
        assert [s.customer_id for s in sales_service.list_sales(customer_id=learner.id)] == [learner.id]

    def test_sale_number_collision_on_insert(self, db_session, pen, actor, monkeypatch):
        def walk_in_sale():
            return sales_service.process_sale(
                SaleInput(department="Stationery", items=[SaleItemInput(product_id=pen.id, quantity=1)], amount_paid_cents=2000),
                actor=actor,
            )

        first = walk_in_sale()
        # Simulate a concurrent checkout that drew the same number after the uniqueness check
        monkeypatch.setattr(sales_service, "generate_document_number", lambda *args: first.sale_number)

        with pytest.raises(InvalidState):
            walk_in_sale()

        db_session.refresh(pen)
        assert pen.stock_qty == 99
        assert db_session.query(Sale).count() == 1

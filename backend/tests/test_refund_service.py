# Overview: Pytest coverage for refunds and exchanges; restocking, ledger reversal and over-refund guards.

import pytest

from shopledger.errors import InsufficientStock, InvalidState, NotFound, ValidationError
from shopledger.models import Payment, Refund, Sale
from shopledger.services import refund_service, sales_service
from shopledger.services.refund_service import RefundInput, RefundItemInput
from shopledger.services.sales_service import SaleInput, SaleItemInput


def _sell(customer, product, quantity, actor, *, paid=0, add_to_balance=False, department="Stationery"):
    return sales_service.process_sale(
        SaleInput(
            department=department,
            customer_id=customer.id if customer else None,
            items=[SaleItemInput(product_id=product.id, quantity=quantity)],
            amount_paid_cents=paid,
            transaction_type="ADD_TO_BALANCE" if add_to_balance else "NORMAL",
        ),
        actor=actor,
    )


class TestRefundRoundTrip:

    def test_paid_sale_full_refund_restores_everything(self, db_session, learner, exercise_book, actor):
        sale = _sell(learner, exercise_book, 2, actor, paid=30000)

        result = refund_service.process_refund(
            RefundInput(sale_id=sale.sale_id, refund_type="full", reason="Wrong books"),
            actor=actor,
        )

        assert result.refund_total_cents == 30000
        assert result.cash_back_cents == 30000
        db_session.refresh(learner)
        db_session.refresh(exercise_book)
        assert exercise_book.stock_qty == 50
        assert learner.balance_cents == 0
        assert learner.total_items_cost_cents == 0
        assert learner.amount_paid_cents == 0

        reversal = db_session.query(Payment).filter(Payment.amount_cents < 0).one()
        assert reversal.amount_cents == -30000
        assert reversal.sale_id == sale.sale_id

    def test_add_to_balance_refund_clears_debt_without_cash(self, db_session, learner, exercise_book, actor):
        sale = _sell(learner, exercise_book, 1, actor, add_to_balance=True)
        db_session.refresh(learner)
        assert learner.balance_cents == 15000

        sale_item_id = sales_service.get_sale(sale.sale_id).items[0].id
        result = refund_service.process_refund(
            RefundInput(
                sale_id=sale.sale_id,
                refund_type="partial",
                reason="Damaged",
                items=[RefundItemInput(quantity=1, sale_item_id=sale_item_id)],
            ),
            actor=actor,
        )

        assert result.cash_back_cents == 0
        assert result.customer_balance_cents == 0
        assert db_session.query(Payment).count() == 0

    def test_refund_uses_original_unit_price(self, db_session, learner, pen, actor):
        sale = sales_service.process_sale(
            SaleInput(
                department="Stationery",
                customer_id=learner.id,
                items=[SaleItemInput(product_id=pen.id, quantity=4, unit_price_cents=1500)],
                amount_paid_cents=6000,
            ),
            actor=actor,
        )
        result = refund_service.process_refund(
            RefundInput(
                sale_id=sale.sale_id,
                refund_type="partial",
                reason="Not needed",
                items=[RefundItemInput(quantity=2, product_id=pen.id)],
            ),
            actor=actor,
        )
        assert result.refund_total_cents == 3000
        assert result.processed_items[0]["unit_price_cents"] == 1500

    def test_walk_in_refund_hands_cash_back(self, db_session, pen, actor):
        sale = _sell(None, pen, 3, actor, paid=6000)
        result = refund_service.process_refund(
            RefundInput(
                sale_id=sale.sale_id,
                refund_type="partial",
                reason="Changed mind",
                items=[RefundItemInput(quantity=1, product_id=pen.id)],
            ),
            actor=actor,
        )
        assert result.cash_back_cents == 2000
        assert result.customer_balance_cents is None
        db_session.refresh(pen)
        assert pen.stock_qty == 98


class TestRefundGuards:

    def test_reason_required(self, db_session, learner, pen, actor):
        sale = _sell(learner, pen, 1, actor, add_to_balance=True)
        with pytest.raises(InvalidState):
            refund_service.process_refund(RefundInput(sale_id=sale.sale_id, refund_type="full", reason=" "), actor=actor)

    def test_over_refund_rejected(self, db_session, learner, pen, actor):
        sale = _sell(learner, pen, 1, actor, add_to_balance=True)
        request = RefundInput(
            sale_id=sale.sale_id,
            refund_type="partial",
            reason="Broken",
            items=[RefundItemInput(quantity=1, product_id=pen.id)],
        )
        refund_service.process_refund(request, actor=actor)

        with pytest.raises(InvalidState):
            refund_service.process_refund(request, actor=actor)

        db_session.refresh(pen)
        assert pen.stock_qty == 100
        assert db_session.query(Refund).count() == 1

    def test_full_refund_twice_rejected(self, db_session, learner, pen, actor):
        sale = _sell(learner, pen, 2, actor, add_to_balance=True)
        refund_service.process_refund(RefundInput(sale_id=sale.sale_id, refund_type="full", reason="Returned"), actor=actor)
        with pytest.raises(InvalidState):
            refund_service.process_refund(RefundInput(sale_id=sale.sale_id, refund_type="full", reason="Again"), actor=actor)

    def test_partial_refund_needs_items(self, db_session, learner, pen, actor):
        sale = _sell(learner, pen, 1, actor, add_to_balance=True)
        with pytest.raises(ValidationError):
            refund_service.process_refund(RefundInput(sale_id=sale.sale_id, refund_type="partial", reason="x"), actor=actor)

    def test_product_not_in_sale(self, db_session, learner, pen, exercise_book, actor):
        sale = _sell(learner, pen, 1, actor, add_to_balance=True)
        with pytest.raises(NotFound):
            refund_service.process_refund(
                RefundInput(
                    sale_id=sale.sale_id,
                    refund_type="partial",
                    reason="x",
                    items=[RefundItemInput(quantity=1, product_id=exercise_book.id)],
                ),
                actor=actor,
            )

    def test_unknown_sale(self, db_session, actor):
        with pytest.raises(NotFound):
            refund_service.process_refund(RefundInput(sale_id=999999, refund_type="full", reason="x"), actor=actor)


class TestExchange:

    def test_exchange_creates_linked_sale_and_applies_credit(self, db_session, learner, exercise_book, pen, actor):
        sale = _sell(learner, exercise_book, 1, actor, paid=15000)

        result = refund_service.process_refund(
            RefundInput(
                sale_id=sale.sale_id,
                refund_type="exchange",
                reason="Wanted pens instead",
                items=[RefundItemInput(quantity=1, product_id=exercise_book.id)],
                exchange_items=[SaleItemInput(product_id=pen.id, quantity=2)],
            ),
            actor=actor,
        )

        assert result.refund_total_cents == 15000
        assert result.exchange_total_cents == 4000
        assert result.cash_back_cents == 11000

        exchange = db_session.get(Sale, result.exchange_sale_id)
        assert exchange.transaction_type == "EXCHANGE"
        assert exchange.original_sale_id == sale.sale_id
        assert exchange.paid_cents == 4000

        db_session.refresh(learner)
        db_session.refresh(pen)
        db_session.refresh(exercise_book)
        assert learner.balance_cents == 0
        assert learner.total_items_cost_cents == 4000
        assert pen.stock_qty == 98
        assert exercise_book.stock_qty == 50

    def test_exchange_on_account_charges_the_difference(self, db_session, learner, pen, exercise_book, actor):
        sale = _sell(learner, pen, 1, actor, add_to_balance=True)

        result = refund_service.process_refund(
            RefundInput(
                sale_id=sale.sale_id,
                refund_type="exchange",
                reason="Upgrade",
                items=[RefundItemInput(quantity=1, product_id=pen.id)],
                exchange_items=[SaleItemInput(product_id=exercise_book.id, quantity=1)],
            ),
            actor=actor,
        )

        assert result.cash_back_cents == 0
        assert result.customer_balance_cents == 15000

    def test_exchange_stock_shortage_rolls_back_refund(self, db_session, learner, pen, sweater, actor):
        sale = _sell(learner, sweater, 1, actor, add_to_balance=True, department="Uniform")
        with pytest.raises(InsufficientStock):
            refund_service.process_refund(
                RefundInput(
                    sale_id=sale.sale_id,
                    refund_type="exchange",
                    reason="Size",
                    items=[RefundItemInput(quantity=1, product_id=sweater.id)],
                    exchange_items=[SaleItemInput(product_id=sweater.id, quantity=11)],
                ),
                actor=actor,
            )
        db_session.refresh(sweater)
        db_session.refresh(learner)
        assert sweater.stock_qty == 9
        assert learner.balance_cents == 120000
        assert db_session.query(Refund).count() == 0

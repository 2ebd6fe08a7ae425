# Overview: Pytest coverage for the boarders' pocket-money subledger.

import pytest

from shopledger.errors import InsufficientBalance, InvalidState
from shopledger.models import PocketMoneyTransaction, Sale
from shopledger.services import pocket_money_service, refund_service
from shopledger.services.pocket_money_service import PocketMoneyPurchaseInput
from shopledger.services.refund_service import RefundInput, RefundItemInput
from shopledger.services.sales_service import SaleItemInput


def _buy(customer, product, quantity, actor, department="Stationery"):
    return pocket_money_service.purchase(
        PocketMoneyPurchaseInput(
            customer_id=customer.id,
            department=department,
            items=[SaleItemInput(product_id=product.id, quantity=quantity)],
        ),
        actor=actor,
    )


class TestPurchase:

    def test_purchase_spends_pocket_money_only(self, db_session, boarder, pen, actor):
        pocket_money_service.top_up(boarder.id, 10000, actor=actor)

        result = _buy(boarder, pen, 3, actor)

        assert result.total_cents == 6000
        assert result.paid_cents == 6000
        db_session.refresh(boarder)
        db_session.refresh(pen)
        assert boarder.pocket_money_balance_cents == 4000
        assert boarder.balance_cents == 0
        assert boarder.total_items_cost_cents == 0
        assert pen.stock_qty == 97

        sale = db_session.get(Sale, result.sale_id)
        assert sale.payment_mode == "pocket_money"
        txn = db_session.query(PocketMoneyTransaction).filter_by(transaction_type="PURCHASE").one()
        assert txn.amount_cents == -6000
        assert txn.balance_after_cents == 4000
        assert txn.sale_id == sale.id

    def test_department_outside_allow_list(self, db_session, boarder, snack, actor):
        pocket_money_service.top_up(boarder.id, 10000, actor=actor)
        with pytest.raises(InvalidState):
            _buy(boarder, snack, 1, actor, department="Canteen")

    def test_day_learner_cannot_spend(self, db_session, learner, pen, actor):
        with pytest.raises(InvalidState):
            _buy(learner, pen, 1, actor)

    def test_disabled_boarder_cannot_spend(self, db_session, boarder, pen, actor):
        pocket_money_service.top_up(boarder.id, 10000, actor=actor)
        pocket_money_service.disable(boarder.id, reason="Parent request", actor=actor)
        with pytest.raises(InvalidState):
            _buy(boarder, pen, 1, actor)

    def test_insufficient_balance_changes_nothing(self, db_session, boarder, pen, actor):
        pocket_money_service.top_up(boarder.id, 3000, actor=actor)

        with pytest.raises(InsufficientBalance):
            _buy(boarder, pen, 2, actor)

        db_session.refresh(boarder)
        db_session.refresh(pen)
        assert boarder.pocket_money_balance_cents == 3000
        assert pen.stock_qty == 100
        assert db_session.query(Sale).count() == 0


class TestBalanceChanges:

    def test_top_up_requires_enabled_boarder(self, db_session, learner, actor):
        with pytest.raises(InvalidState):
            pocket_money_service.top_up(learner.id, 1000, actor=actor)

    def test_deduct_floors_at_zero_and_logs_what_was_taken(self, db_session, boarder, actor):
        pocket_money_service.top_up(boarder.id, 1500, actor=actor)

        txn = pocket_money_service.deduct(boarder.id, 4000, reason="Lost library book", actor=actor)

        assert txn.amount_cents == -1500
        assert txn.balance_after_cents == 0
        db_session.refresh(boarder)
        assert boarder.pocket_money_balance_cents == 0

    def test_deduct_requires_reason(self, db_session, boarder, actor):
        with pytest.raises(InvalidState):
            pocket_money_service.deduct(boarder.id, 100, reason="", actor=actor)

    def test_disable_requires_reason(self, db_session, boarder, actor):
        with pytest.raises(InvalidState):
            pocket_money_service.disable(boarder.id, reason=None, actor=actor)

    def test_enable_rejects_day_learner(self, db_session, learner, actor):
        with pytest.raises(InvalidState):
            pocket_money_service.enable(learner.id, actor=actor)


class TestStatusAndHistory:

    def test_status_checks_prospective_spend(self, db_session, boarder, actor):
        pocket_money_service.top_up(boarder.id, 5000, actor=actor)

        status = pocket_money_service.status(boarder.id, amount_cents=6000)

        assert status["is_boarder"] is True
        assert status["has_pocket_money"] is True
        assert status["has_sufficient_balance"] is False
        assert status["balance_cents"] == 5000
        assert status["allowed_departments"] == ["Stationery", "Uniform"]

    def test_history_is_newest_first(self, db_session, boarder, pen, actor):
        pocket_money_service.top_up(boarder.id, 5000, reason="Term start", actor=actor)
        _buy(boarder, pen, 1, actor)

        entries = pocket_money_service.history(boarder.id)
        assert [e.transaction_type for e in entries] == ["PURCHASE", "TOP_UP"]
        assert entries[1].reason == "Term start"


class TestPocketMoneyRefunds:

    def test_refund_credits_pocket_money(self, db_session, boarder, pen, actor):
        pocket_money_service.top_up(boarder.id, 10000, actor=actor)
        sale = _buy(boarder, pen, 2, actor)

        result = refund_service.process_refund(
            RefundInput(
                sale_id=sale.sale_id,
                refund_type="partial",
                reason="Faulty",
                items=[RefundItemInput(quantity=1, product_id=pen.id)],
            ),
            actor=actor,
        )

        assert result.cash_back_cents == 0
        assert result.pocket_money_balance_cents == 8000
        db_session.refresh(boarder)
        assert boarder.balance_cents == 0
        txn = db_session.query(PocketMoneyTransaction).filter_by(transaction_type="REFUND").one()
        assert txn.amount_cents == 2000

    def test_pocket_money_sale_cannot_be_exchanged(self, db_session, boarder, pen, exercise_book, actor):
        pocket_money_service.top_up(boarder.id, 10000, actor=actor)
        sale = _buy(boarder, pen, 1, actor)

        with pytest.raises(InvalidState):
            refund_service.process_refund(
                RefundInput(
                    sale_id=sale.sale_id,
                    refund_type="exchange",
                    reason="Swap",
                    items=[RefundItemInput(quantity=1, product_id=pen.id)],
                    exchange_items=[SaleItemInput(product_id=exercise_book.id, quantity=1)],
                ),
                actor=actor,
            )

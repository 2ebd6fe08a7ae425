# Overview: Pytest coverage for the customer account ledger primitives and statements.

import pytest

from shopledger.errors import InvalidState, NotFound, ValidationError
from shopledger.models import AuditEvent, Payment
from shopledger.services import balance_service, customer_service
from shopledger.services.balance_service import PaymentMeta


def _assert_ledger_invariant(customer):
    assert customer.balance_cents == max(0, customer.total_items_cost_cents - customer.amount_paid_cents)


class TestApplyBalanceDelta:

    def test_payment_reduces_balance_and_writes_payment(self, db_session, learner, actor):
        balance_service.charge_customer(learner.id, 30000, actor=actor)

        change = balance_service.apply_balance_delta(
            learner.id, 12000, actor=actor, payment=PaymentMeta(method="cash", reference="RC-1"),
        )

        assert change.previous_balance_cents == 30000
        assert change.new_balance_cents == 18000
        assert change.payment is not None
        assert change.payment.amount_cents == 12000
        db_session.refresh(learner)
        assert learner.amount_paid_cents == 12000
        _assert_ledger_invariant(learner)

    def test_negative_amount_is_taken_as_absolute(self, db_session, learner, actor):
        balance_service.charge_customer(learner.id, 5000, actor=actor)
        change = balance_service.apply_balance_delta(learner.id, -2000, actor=actor)
        assert change.new_balance_cents == 3000
        assert change.payment is None
        assert db_session.query(Payment).count() == 0

    def test_overpayment_floors_balance_at_zero(self, db_session, learner, actor):
        balance_service.charge_customer(learner.id, 5000, actor=actor)
        change = balance_service.apply_balance_delta(learner.id, 8000, actor=actor)
        assert change.new_balance_cents == 0
        db_session.refresh(learner)
        assert learner.amount_paid_cents == 8000

    def test_unknown_customer(self, db_session, actor):
        with pytest.raises(NotFound):
            balance_service.apply_balance_delta(999999, 1000, actor=actor)

    def test_zero_amount_rejected(self, db_session, learner, actor):
        with pytest.raises(ValidationError):
            balance_service.apply_balance_delta(learner.id, 0, actor=actor)

    def test_audit_event_records_actor(self, db_session, learner, actor):
        balance_service.apply_balance_delta(learner.id, 1000, actor=actor)
        event = (
            db_session.query(AuditEvent)
            .filter_by(event_type="ledger.payment_applied", entity_id=learner.id)
            .one()
        )
        assert event.actor_name == actor.name
        assert event.actor_role == actor.role


class TestReversePayment:

    def test_reversal_writes_negative_payment(self, db_session, learner, actor):
        balance_service.charge_customer(learner.id, 10000, actor=actor)
        balance_service.apply_balance_delta(learner.id, 10000, actor=actor, payment=PaymentMeta(method="cash"))

        change = balance_service.reverse_payment(learner.id, 4000, actor=actor)

        assert change.previous_balance_cents == 0
        assert change.new_balance_cents == 4000
        assert change.payment.amount_cents == -4000
        assert change.payment.method == "refund"

    def test_amount_paid_floors_at_zero(self, db_session, learner, actor):
        balance_service.apply_balance_delta(learner.id, 1000, actor=actor)
        balance_service.reverse_payment(learner.id, 5000, actor=actor)
        db_session.refresh(learner)
        assert learner.amount_paid_cents == 0
        _assert_ledger_invariant(learner)


class TestInstallments:

    def test_installment_is_flagged(self, db_session, learner, actor):
        balance_service.charge_customer(learner.id, 50000, actor=actor)
        change = balance_service.record_installment_payment(
            learner.id, 20000, method="mpesa", reference="QK12ABC", actor=actor,
        )
        assert change.new_balance_cents == 30000
        assert change.payment.is_installment is True
        assert change.payment.method == "mpesa"

    def test_unknown_method_rejected(self, db_session, learner, actor):
        with pytest.raises(ValidationError):
            balance_service.record_installment_payment(learner.id, 1000, method="bitcoin", actor=actor)

    def test_float_amount_rejected(self, db_session, learner, actor):
        with pytest.raises(ValidationError):
            balance_service.record_installment_payment(learner.id, 10.5, method="cash", actor=actor)


class TestCustomerStatement:

    def test_statement_lists_charges_and_payments(self, db_session, learner, actor):
        balance_service.charge_customer(learner.id, 30000, actor=actor)
        balance_service.record_installment_payment(learner.id, 10000, method="cash", actor=actor)

        statement = customer_service.get_customer_statement(learner.id)

        assert statement["balance_cents"] == 20000
        assert statement["total_items_cost_cents"] == 30000
        assert statement["amount_paid_cents"] == 10000
        assert [e["type"] for e in statement["entries"]] == ["installment"]
        assert statement["entries"][0]["credit_cents"] == 10000

    def test_balance_fields_cannot_be_edited(self, db_session, learner, actor):
        with pytest.raises(InvalidState):
            customer_service.update_customer(learner.id, {"balance_cents": 0}, actor=actor)

    def test_duplicate_admission_number(self, db_session, learner, actor):
        with pytest.raises(InvalidState):
            customer_service.create_customer(name="Someone Else", admission_number="ADM-001", actor=actor)

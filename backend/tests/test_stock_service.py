# Overview: Pytest coverage for product stock changes and product lifecycle.

import pytest

from shopledger.errors import InsufficientStock, InvalidState, NotFound, ValidationError
from shopledger.services import stock_service


class TestAdjustStock:

    def test_adjustment_requires_reason(self, db_session, pen, actor):
        with pytest.raises(InvalidState):
            stock_service.adjust_stock(pen.id, -1, reason="  ", actor=actor)

    def test_adjustment_applies_delta(self, db_session, pen, actor):
        change = stock_service.adjust_stock(pen.id, -5, reason="Damaged", actor=actor)
        assert change.previous_qty == 100
        assert change.new_qty == 95
        db_session.refresh(pen)
        assert pen.stock_qty == 95

    def test_cannot_go_negative(self, db_session, sweater, actor):
        with pytest.raises(InsufficientStock) as exc:
            stock_service.adjust_stock(sweater.id, -11, reason="Count correction", actor=actor)
        assert exc.value.details["available"] == 10
        db_session.refresh(sweater)
        assert sweater.stock_qty == 10

    def test_zero_delta_rejected(self, db_session, pen, actor):
        with pytest.raises(InvalidState):
            stock_service.adjust_stock(pen.id, 0, reason="Nothing", actor=actor)

    def test_decimal_delta_rejected(self, db_session, pen, actor):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(pen.id, "1.5", reason="Typo", actor=actor)

    def test_low_stock_flag(self, db_session, sweater, actor):
        change = stock_service.adjust_stock(sweater.id, -8, reason="Transfer out", actor=actor)
        assert change.is_low_stock is True
        assert [p.id for p in stock_service.get_low_stock_products()] == [sweater.id]


class TestProducts:

    def test_duplicate_sku_rejected(self, db_session, pen, actor):
        with pytest.raises(InvalidState):
            stock_service.create_product(sku="PEN-BLU", name="Another pen", sell_price_cents=100, actor=actor)

    def test_archived_products_are_hidden(self, db_session, pen, exercise_book, actor):
        stock_service.archive_product(pen.id, actor=actor)
        assert [p.sku for p in stock_service.list_products()] == ["EXB-200"]
        with pytest.raises(NotFound):
            stock_service.adjust_stock(pen.id, 1, reason="Found one", actor=actor)

    def test_list_by_department(self, db_session, pen, sweater):
        assert [p.sku for p in stock_service.list_products(department="Uniform")] == ["UNI-SWT"]

"""
Integration tests for sale header updates and sale deletion with stock reversal.
"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.exc import OperationalError

from atelier.exceptions import FatalError, NotFoundError
from atelier.models import (
    DiscountMode, PaymentMethod, Product, Sale, SaleProduct, StockMove, StockMoveReason, StockUpdateType
)
from atelier.services import sale_delete_service, sales_service, stock_service
from atelier.services.pricing_service import FinalPriceOverride, NoDiscount, PercentageDiscount
from atelier.services.sales_service import RecordSaleRequest, SaleItem, SaleUpdate


@pytest.fixture
def recorded_sale(session, location, mug, bowl):
    """Retail sale: 2 mugs + 1 bowl, packaging 5.00, 10% off."""
    sale = sales_service.record_sale(session, RecordSaleRequest(
        location_id=location.id,
        payment_method='CASH',
        items=[SaleItem(mug.id, Decimal('2')), SaleItem(bowl.id, Decimal('1'))],
        packaging_cost=Decimal('5.00'),
        discount=PercentageDiscount(Decimal('10'))
    ))
    return sale


class TestUpdateSale:
    """Tests for header-only sale updates."""

    def test_recomputes_from_snapshots_not_live_prices(self, session, recorded_sale, mug):
        """Test totals are recomputed from line snapshots, not current prices."""
        mug.final_selling_price_retail = Decimal('999.00')
        session.commit()

        sale = sales_service.update_sale(session, recorded_sale.id, SaleUpdate(
            discount=PercentageDiscount(Decimal('20'))
        ))

        # 2 x 25.00 + 40.00 + 5.00 = 95.00
        assert sale.suggested_total_price == Decimal('95.00')
        assert sale.discount_amount == Decimal('19.00')
        assert sale.final_total_price == Decimal('76.00')

    def test_change_packaging_keeps_discount(self, session, recorded_sale):
        """Test changing packaging keeps the stored percentage directive."""
        sale = sales_service.update_sale(session, recorded_sale.id, SaleUpdate(packaging_cost=Decimal('15.00')))

        assert sale.packaging_price == Decimal('15.00')
        assert sale.discount_mode == DiscountMode.PERCENTAGE
        assert sale.discount_amount == Decimal('10.50')
        assert sale.final_total_price == Decimal('94.50')

    def test_switch_to_final_price(self, session, recorded_sale):
        """Test switching the directive to a final price override."""
        sale = sales_service.update_sale(session, recorded_sale.id, SaleUpdate(
            discount=FinalPriceOverride(Decimal('90.00'))
        ))

        assert sale.discount_mode == DiscountMode.FINAL_PRICE
        assert sale.discount_amount == Decimal('5.00')
        assert sale.discount_percentage == Decimal('5.26')

    def test_clear_discount(self, session, recorded_sale):
        sale = sales_service.update_sale(session, recorded_sale.id, SaleUpdate(discount=NoDiscount()))

        assert sale.discount_mode == DiscountMode.NONE
        assert sale.discount_value is None
        assert sale.final_total_price == Decimal('95.00')

    def test_header_fields(self, session, recorded_sale, customer):
        """Test customer, payment method, date and editor are updated."""
        sale = sales_service.update_sale(session, recorded_sale.id, SaleUpdate(
            customer_id=customer.id,
            payment_method='card',
            sale_date=date(2026, 1, 15),
            updated_by='jose'
        ))

        assert sale.customer_id == customer.id
        assert sale.payment_method == PaymentMethod.CARD
        assert sale.sale_date == date(2026, 1, 15)
        assert sale.last_updated_by == 'jose'

    def test_does_not_touch_stock_or_lines(self, session, recorded_sale, mug):
        """Test an update never changes stock or sale lines."""
        mug_id = mug.id
        sales_service.update_sale(session, recorded_sale.id, SaleUpdate(packaging_cost=Decimal('0')))

        assert session.get(Product, mug_id).stock == 8
        assert session.query(SaleProduct).filter_by(sale_id=recorded_sale.id).count() == 2

    def test_unknown_sale(self, session):
        with pytest.raises(NotFoundError):
            sales_service.update_sale(session, 9999, SaleUpdate())

    def test_detail_breakdown_uses_snapshots(self, session, recorded_sale, mug):
        """Test the detail view allocates the discount over snapshot lines."""
        mug.description = 'Renamed'
        session.commit()

        detail = sales_service.get_sale_detail(session, recorded_sale.id)

        assert detail['finalTotalPrice'] == '85.50'
        assert detail['subtotal'] == '90.00'
        assert [line['description'] for line in detail['lines']] == ['Product MUG-01', 'Product BOWL-01']
        allocated = sum(Decimal(line['allocatedDiscount']) for line in detail['lines'])
        assert allocated == Decimal('9.50')


class TestDeleteSale:
    """Tests for sale deletion with stock reversal."""

    def test_restores_stock(self, session, recorded_sale, mug, bowl):
        """Test stock returns to its pre-sale value and the sale is gone."""
        mug_id, bowl_id, sale_id = mug.id, bowl.id, recorded_sale.id

        result = sale_delete_service.delete_sale_with_reversal(session, sale_id, deleted_by='admin')

        assert result['saleId'] == sale_id
        assert session.get(Product, mug_id).stock == 10
        assert session.get(Product, bowl_id).stock == 5
        assert session.get(Sale, sale_id) is None
        assert session.query(SaleProduct).filter_by(sale_id=sale_id).count() == 0

        moves = session.query(StockMove).filter_by(reason=StockMoveReason.SALE_DELETED).all()
        assert {m.product_id for m in moves} == {mug_id, bowl_id}

    def test_restore_is_additive(self, session, recorded_sale, mug):
        """Test the restore adds on top of a recount made after the sale."""
        mug_id = mug.id
        # Stock count after the sale: 8 -> manual recount to 3
        mug.stock = 3
        session.commit()

        sale_delete_service.delete_sale_with_reversal(session, recorded_sale.id)

        assert session.get(Product, mug_id).stock == 5

    def test_restore_skips_product_untracked_at_sale_time(self, session, location, gift_wrap):
        """Test stock that was never taken out is not added back."""
        wrap_id = gift_wrap.id
        sale = sales_service.record_sale(session, RecordSaleRequest(
            location_id=location.id, payment_method='CASH', items=[SaleItem(wrap_id, Decimal('2'))]
        ))
        stock_service.update_product_stock(session, wrap_id, 10, StockUpdateType.SET)

        result = sale_delete_service.delete_sale_with_reversal(session, sale.id)

        assert result['restored'] == []
        assert session.get(Product, wrap_id).stock == 10

    def test_fractional_untracked_sale_can_be_deleted(self, session, location, gift_wrap):
        """Test a sale with a fractional quantity of an untracked product deletes cleanly."""
        wrap_id = gift_wrap.id
        sale_id = sales_service.record_sale(session, RecordSaleRequest(
            location_id=location.id, payment_method='CASH', items=[SaleItem(wrap_id, Decimal('2.5'))]
        )).id

        sale_delete_service.delete_sale_with_reversal(session, sale_id)

        assert session.get(Sale, sale_id) is None
        assert session.get(Product, wrap_id).stock is None

    def test_unknown_sale(self, session):
        with pytest.raises(NotFoundError):
            sale_delete_service.delete_sale_with_reversal(session, 9999)

    def test_storage_failure_is_fatal_and_rolled_back(self, monkeypatch, session, recorded_sale, mug):
        """Test a storage failure mid-delete is fatal, reported and rolled back."""
        mug_id, sale_id = mug.id, recorded_sale.id
        captured = []

        def broken_flush(*args, **kwargs):
            raise OperationalError('DELETE FROM sales', {}, Exception('disk I/O error'))

        monkeypatch.setattr(session(), 'flush', broken_flush)
        monkeypatch.setattr(sale_delete_service.sentry_sdk, 'capture_exception', captured.append)

        with pytest.raises(FatalError):
            sale_delete_service.delete_sale_with_reversal(session, sale_id)

        monkeypatch.undo()
        session.expire_all()

        assert len(captured) == 1
        assert session.get(Sale, sale_id) is not None
        assert session.get(Product, mug_id).stock == 8

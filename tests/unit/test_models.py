"""
Unit tests for SQLAlchemy models.
"""

import pytest
from datetime import date
from decimal import Decimal

from atelier.exceptions import InvalidArgumentError
from atelier.models import (
    Location, PaymentMethod, Product, ProductStatus, Sale, SaleProduct, StockStatus,
    normalize_payment_method
)


class TestProductModel:
    """Tests for Product model."""

    def test_create_product(self, session, mug):
        """Test creating a product."""
        assert mug.id is not None
        assert mug.status == ProductStatus.ACTIVE
        assert mug.is_active is True
        assert mug.tracks_stock is True

    def test_untracked_product_keeps_null_stock(self, session, gift_wrap):
        """Test a product created without stock is stored as untracked."""
        product_id = gift_wrap.id
        session.expire_all()

        product = session.get(Product, product_id)
        assert product.stock is None
        assert product.tracks_stock is False

    def test_code_unique(self, session, mug):
        """Test that product code must be unique."""
        session.add(Product(
            code='MUG-01',
            description='Duplicate',
            final_selling_price_retail=Decimal('1'),
            final_selling_price_wholesale=Decimal('1')
        ))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()

    def test_archive_and_restore(self, session, mug):
        """Test archiving and restoring a product."""
        mug.archive()
        session.commit()

        assert mug.status == ProductStatus.ARCHIVED
        assert mug.archived_at is not None
        assert mug.is_active is False

        mug.restore()
        session.commit()

        assert mug.is_active is True
        assert mug.archived_at is None

    def test_price_for_channel(self, mug):
        assert mug.price_for_channel(False) == Decimal('25.00')
        assert mug.price_for_channel(True) == Decimal('18.00')

    @pytest.mark.parametrize('stock, alert, expected', [
        (10, 2, StockStatus.NORMAL),
        (2, 2, StockStatus.LOW),
        (0, 0, StockStatus.LOW),
        (-1, 2, StockStatus.NEGATIVE),
        (None, 2, StockStatus.NORMAL),
    ])
    def test_stock_status(self, stock, alert, expected):
        """Test the derived stock status."""
        product = Product(code='X', description='X', stock=stock, low_stock_alert=alert)
        assert product.stock_status == expected


class TestSaleProductSnapshot:
    """Snapshot fields are written once."""

    def _sale_with_line(self, session, location, product):
        sale = Sale(
            sale_date=date(2026, 3, 1),
            location_id=location.id,
            payment_method=PaymentMethod.CASH,
            suggested_total_price=Decimal('25.00'),
            final_total_price=Decimal('25.00')
        )
        session.add(sale)
        session.flush()
        line = SaleProduct(
            sale_id=sale.id,
            product_id=product.id,
            quantity=Decimal('1'),
            product_description_snapshot=product.description,
            price_at_the_time=product.final_selling_price_retail,
            wholesale_price_at_the_time=product.final_selling_price_wholesale
        )
        session.add(line)
        session.commit()
        return sale, line

    def test_new_line_accepts_values(self, session, location, mug):
        sale, line = self._sale_with_line(session, location, mug)

        assert line.price_at_the_time == Decimal('25.00')
        assert line.price_for_channel(True) == Decimal('18.00')
        assert [saved.id for saved in sale.lines] == [line.id]

    @pytest.mark.parametrize('field, value', [
        ('price_at_the_time', Decimal('1.00')),
        ('wholesale_price_at_the_time', Decimal('1.00')),
        ('product_description_snapshot', 'Edited'),
        ('quantity', Decimal('9')),
    ])
    def test_persisted_line_is_immutable(self, session, location, mug, field, value):
        """Test snapshot fields cannot change once the line is saved."""
        _, line = self._sale_with_line(session, location, mug)

        with pytest.raises(InvalidArgumentError):
            setattr(line, field, value)

    def test_product_edit_does_not_touch_snapshot(self, session, location, mug):
        """Test editing a product leaves past sale lines alone."""
        _, line = self._sale_with_line(session, location, mug)

        mug.final_selling_price_retail = Decimal('99.00')
        mug.description = 'Renamed mug'
        session.commit()
        session.expire_all()

        assert line.price_at_the_time == Decimal('25.00')
        assert line.product_description_snapshot == 'Product MUG-01'


class TestMisc:
    """Tests for payment methods and locations."""

    def test_normalize_payment_method(self):
        assert normalize_payment_method('cash') == PaymentMethod.CASH
        assert normalize_payment_method(PaymentMethod.CARD) == PaymentMethod.CARD
        assert PaymentMethod.BANK_TRANSFER.display_name == 'Bank transfer'

        with pytest.raises(ValueError):
            normalize_payment_method('BITCOIN')

    def test_location_name_unique(self, session, location):
        """Test that location name must be unique."""
        session.add(Location(name='Main Shop'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()

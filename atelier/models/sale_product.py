"""Sale Product (sale line) model."""
from sqlalchemy import Column, String, Numeric, ForeignKey, inspect
from sqlalchemy.orm import validates
from atelier.database import Base, IdType
from atelier.exceptions import InvalidArgumentError

# Columns frozen once the line is persisted
SNAPSHOT_FIELDS = (
    'sale_id',
    'product_id',
    'quantity',
    'product_description_snapshot',
    'price_at_the_time',
    'wholesale_price_at_the_time',
)


class SaleProduct(Base):
    """
    One line of a sale.

    Description and prices are copied from the product when the sale is
    recorded so historical reports stay accurate after the product is
    edited or archived.
    """

    __tablename__ = 'sale_product'

    id = Column(IdType, primary_key=True, autoincrement=True)
    sale_id = Column(IdType, ForeignKey('sales.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('products.id'), nullable=False, index=True)
    quantity = Column(Numeric(8, 3), nullable=False)
    product_description_snapshot = Column(String(255), nullable=False)
    price_at_the_time = Column(Numeric(10, 2), nullable=False)
    wholesale_price_at_the_time = Column(Numeric(10, 2), nullable=False)

    @validates(*SNAPSHOT_FIELDS)
    def _write_once(self, key, value):
        if inspect(self).persistent:
            raise InvalidArgumentError(f'Sale line field "{key}" is a snapshot and cannot be changed')
        return value

    def price_for_channel(self, is_wholesale: bool):
        if is_wholesale:
            return self.wholesale_price_at_the_time
        return self.price_at_the_time

    def __repr__(self):
        return f"<SaleProduct(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

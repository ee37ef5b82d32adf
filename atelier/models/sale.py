"""Sale model."""
from sqlalchemy import Column, String, Boolean, Numeric, Date, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from atelier.database import Base, IdType
import enum


class PaymentMethod(enum.Enum):
    """Payment method enum."""
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    OTHER = "OTHER"

    @property
    def display_name(self) -> str:
        return _PAYMENT_METHOD_LABELS[self]


_PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH: 'Cash',
    PaymentMethod.CARD: 'Card',
    PaymentMethod.BANK_TRANSFER: 'Bank transfer',
    PaymentMethod.OTHER: 'Other',
}


class DiscountMode(enum.Enum):
    """How the discount was entered when the sale was recorded."""
    NONE = "NONE"
    PERCENTAGE = "PERCENTAGE"
    FINAL_PRICE = "FINAL_PRICE"


def normalize_payment_method(method) -> PaymentMethod:
    """
    Normalize a payment method value to the PaymentMethod enum.

    Raises:
        ValueError: if the value is not a known payment method.
    """
    if isinstance(method, PaymentMethod):
        return method
    if method is None:
        raise ValueError('Payment method is required')
    return PaymentMethod(str(method).strip().upper())


class Sale(Base):
    """Sale header. Lines are created with it and never edited afterwards."""

    __tablename__ = 'sales'

    id = Column(IdType, primary_key=True, autoincrement=True)
    sale_date = Column(Date, nullable=False)
    customer_id = Column(IdType, ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    location_id = Column(IdType, ForeignKey('locations.id'), nullable=False)
    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False)
    is_wholesale = Column(Boolean, nullable=False, default=False)

    packaging_price = Column(Numeric(10, 2), nullable=False, default=0)
    # Discount directive as entered
    discount_mode = Column(Enum(DiscountMode, name='discount_mode'), nullable=False, default=DiscountMode.NONE)
    discount_value = Column(Numeric(10, 2), nullable=True)

    # Computed totals
    suggested_total_price = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_percentage = Column(Numeric(6, 2), nullable=False, default=0)
    final_total_price = Column(Numeric(10, 2), nullable=False)

    created_by = Column(String(100), nullable=True)
    last_updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    lines = relationship(
        'SaleProduct',
        cascade='all, delete-orphan',
        order_by='SaleProduct.id',
        lazy='selectin'
    )

    def __repr__(self):
        return f"<Sale(id={self.id}, total={self.final_total_price}, date={self.sale_date})>"

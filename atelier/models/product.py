"""Product model."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from atelier.database import Base, IdType
import enum


class ProductStatus(enum.Enum):
    """Product lifecycle status."""
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class StockStatus(enum.Enum):
    """Derived stock status, never stored."""
    NORMAL = "NORMAL"
    LOW = "LOW"
    NEGATIVE = "NEGATIVE"


class Product(Base):
    """Product model."""

    __tablename__ = 'products'

    id = Column(IdType, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    description = Column(String(255), nullable=False)
    category_id = Column(IdType, ForeignKey('categories.id'), nullable=True)
    final_selling_price_retail = Column(Numeric(10, 2), nullable=False, default=0)
    final_selling_price_wholesale = Column(Numeric(10, 2), nullable=False, default=0)
    minutes_to_make = Column(Integer, nullable=True)
    # NULL stock means the product is not stock-tracked
    stock = Column(Integer, nullable=True)
    low_stock_alert = Column(Integer, nullable=False, default=0, server_default='0')
    status = Column(Enum(ProductStatus, name='product_status'), nullable=False, default=ProductStatus.ACTIVE)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Product(id={self.id}, code='{self.code}', stock={self.stock})>"

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    @property
    def tracks_stock(self) -> bool:
        return self.stock is not None

    def archive(self) -> None:
        """Take the product out of the catalog. Past sales keep referencing it."""
        if self.status == ProductStatus.ARCHIVED:
            return
        self.status = ProductStatus.ARCHIVED
        self.archived_at = datetime.now()

    def restore(self) -> None:
        """Bring an archived product back into the catalog."""
        self.status = ProductStatus.ACTIVE
        self.archived_at = None

    def price_for_channel(self, is_wholesale: bool):
        if is_wholesale:
            return self.final_selling_price_wholesale
        return self.final_selling_price_retail

    @property
    def stock_status(self) -> StockStatus:
        """
        Derived low-stock status.

        NEGATIVE when stock went below zero (backorder), LOW when it reached
        the alert threshold, NORMAL otherwise. Untracked products are NORMAL.
        """
        if self.stock is None:
            return StockStatus.NORMAL
        if self.stock < 0:
            return StockStatus.NEGATIVE
        if self.stock <= (self.low_stock_alert or 0):
            return StockStatus.LOW
        return StockStatus.NORMAL

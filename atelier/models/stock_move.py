"""Stock Move model."""
from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, Text
from sqlalchemy.sql import func
from atelier.database import Base, IdType
import enum


class StockUpdateType(enum.Enum):
    """Stock operation enum."""
    ADD = "ADD"
    REMOVE = "REMOVE"
    SET = "SET"


class StockMoveReason(enum.Enum):
    """What triggered the stock movement."""
    MANUAL = "MANUAL"
    SALE = "SALE"
    SALE_DELETED = "SALE_DELETED"


class StockMove(Base):
    """Append-only stock movement log."""

    __tablename__ = 'stock_move'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('products.id'), nullable=False, index=True)
    operation = Column(Enum(StockUpdateType, name='stock_update_type'), nullable=False)
    reason = Column(Enum(StockMoveReason, name='stock_move_reason'), nullable=False)
    reference_id = Column(IdType, nullable=True)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    change_amount = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return (
            f"<StockMove(id={self.id}, product_id={self.product_id}, "
            f"operation={self.operation.value}, change={self.change_amount})>"
        )

"""Customer model."""
from sqlalchemy import Column, String, Text, Date, DateTime, Boolean
from sqlalchemy.sql import func
from atelier.database import Base, IdType


class Customer(Base):
    """Customer. Sales keep a nullable reference, so they survive customer removal."""

    __tablename__ = 'customers'

    id = Column(IdType, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    phone_number = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default='1')
    first_sale_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.full_name}')>"

"""Location model."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from atelier.database import Base, IdType


class Location(Base):
    """Point of sale (shop, bazaar, online store...)."""

    __tablename__ = 'locations'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default='1')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Location(id={self.id}, name='{self.name}', is_active={self.is_active})>"

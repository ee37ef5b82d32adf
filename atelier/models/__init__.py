"""Models package - exports all SQLAlchemy models."""
from atelier.models.category import Category
from atelier.models.location import Location
from atelier.models.customer import Customer
from atelier.models.product import Product, ProductStatus, StockStatus
from atelier.models.sale import Sale, PaymentMethod, DiscountMode, normalize_payment_method
from atelier.models.sale_product import SaleProduct, SNAPSHOT_FIELDS
from atelier.models.stock_move import StockMove, StockUpdateType, StockMoveReason

__all__ = [
    'Category', 'Location', 'Customer',
    'Product', 'ProductStatus', 'StockStatus',
    'Sale', 'PaymentMethod', 'DiscountMode', 'normalize_payment_method',
    'SaleProduct', 'SNAPSHOT_FIELDS',
    'StockMove', 'StockUpdateType', 'StockMoveReason',
]

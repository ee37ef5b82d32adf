"""
Stock adjuster.

Applies ADD / REMOVE / SET operations to product stock, enforces the
negative stock policy, keeps the stock movement log and serves the
low-stock alert lists.

Negative stock policy:
- Sale-driven decrements follow SALE_NEGATIVE_STOCK_POLICY (default ALLOW,
  i.e. backorder: stock may go below zero and a warning is logged).
- Manual operations started by staff always REJECT a negative result.
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from atelier.exceptions import (
    ConflictError, InsufficientStockError, InvalidArgumentError, NotFoundError
)
from atelier.models import Product, ProductStatus, StockMove, StockMoveReason, StockUpdateType

logger = logging.getLogger(__name__)

STOCK_CACHE_MODULE = 'stock'


class NegativeStockPolicy(enum.Enum):
    """What to do when an operation would take stock below zero."""
    ALLOW = "ALLOW"
    REJECT = "REJECT"


@dataclass
class StockAdjustment:
    """Outcome of a single stock operation."""
    product_id: int
    product_code: str
    update_type: StockUpdateType
    previous_stock: int
    new_stock: int
    change_amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'productId': self.product_id,
            'productCode': self.product_code,
            'updateType': self.update_type.value,
            'previousStock': self.previous_stock,
            'newStock': self.new_stock,
            'changeAmount': self.change_amount,
        }


def sale_stock_policy() -> NegativeStockPolicy:
    """Negative stock policy for sale-driven decrements, from app config."""
    if not has_app_context():
        return NegativeStockPolicy.ALLOW
    value = current_app.config.get('SALE_NEGATIVE_STOCK_POLICY', 'ALLOW')
    return NegativeStockPolicy(str(value).upper())


def whole_units(quantity, product_code: str) -> int:
    """
    Convert a sale quantity to a stock delta.

    Raises:
        InvalidArgumentError: for fractional quantities on stock-tracked products.
    """
    quantity = Decimal(str(quantity))
    if quantity != quantity.to_integral_value():
        raise InvalidArgumentError(
            f'Quantity {quantity} for {product_code} must be a whole number of units'
        )
    return int(quantity)


# =====================================================
# LOCKING
# =====================================================

def lock_products(session: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    """
    Lock product rows FOR UPDATE (in id order) and reload their stock.

    Raises:
        ConflictError: if the locks could not be acquired in time (retryable).
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}

    try:
        _apply_lock_timeout(session)
        products = session.query(Product).filter(
            Product.id.in_(ids)
        ).order_by(Product.id).with_for_update().populate_existing().all()
    except OperationalError as e:
        session.rollback()
        logger.warning(f"Could not lock products {ids}: {e}")
        raise ConflictError('Stock is being updated by another operation, please retry') from e

    return {p.id: p for p in products}


def _apply_lock_timeout(session: Session) -> None:
    """Bound the wait for row locks on PostgreSQL."""
    if session.get_bind().dialect.name != 'postgresql':
        return
    timeout_ms = 5000
    if has_app_context():
        timeout_ms = int(current_app.config.get('STOCK_LOCK_TIMEOUT_MS', timeout_ms))
    session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


# =====================================================
# CORE ADJUSTMENT
# =====================================================

def adjust_stock(
    session: Session,
    product: Product,
    quantity: int,
    update_type: StockUpdateType,
    reason: StockMoveReason = StockMoveReason.MANUAL,
    policy: NegativeStockPolicy = NegativeStockPolicy.REJECT,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None
) -> StockAdjustment:
    """
    Apply a stock operation to an already locked product.

    ADD and REMOVE move stock by `quantity`; SET assigns it. The caller owns
    the transaction (no commit here).

    Raises:
        InvalidArgumentError: negative quantity, or SET below zero under REJECT.
        InsufficientStockError: REMOVE below zero under REJECT.
    """
    if quantity is None or quantity < 0:
        raise InvalidArgumentError('Stock quantity cannot be negative')

    previous_stock = product.stock if product.stock is not None else 0

    if update_type == StockUpdateType.ADD:
        new_stock = previous_stock + quantity
    elif update_type == StockUpdateType.REMOVE:
        new_stock = previous_stock - quantity
    elif update_type == StockUpdateType.SET:
        new_stock = quantity
    else:
        raise InvalidArgumentError(f'Unknown stock update type: {update_type}')

    if new_stock < 0:
        if policy == NegativeStockPolicy.REJECT:
            raise InsufficientStockError(product.code, quantity, previous_stock)
        logger.warning(
            f"Product {product.code} stock goes negative (backorder): "
            f"current={previous_stock}, removing={quantity}, reason={reason.value}"
        )

    change_amount = new_stock - previous_stock
    product.stock = new_stock

    session.add(StockMove(
        product_id=product.id,
        operation=update_type,
        reason=reason,
        reference_id=reference_id,
        previous_stock=previous_stock,
        new_stock=new_stock,
        change_amount=change_amount,
        notes=notes
    ))

    logger.info(
        f"STOCK_MOVEMENT: product={product.code} operation={update_type.value} "
        f"reason={reason.value} previous={previous_stock} new={new_stock} change={change_amount}"
    )

    return StockAdjustment(
        product_id=product.id,
        product_code=product.code,
        update_type=update_type,
        previous_stock=previous_stock,
        new_stock=new_stock,
        change_amount=change_amount
    )


# =====================================================
# SALE-DRIVEN OPERATIONS (caller owns the transaction)
# =====================================================

def reduce_stock_after_sale(
    session: Session,
    quantities: Dict[int, Decimal],
    sale_id: int,
    policy: Optional[NegativeStockPolicy] = None
) -> List[StockAdjustment]:
    """
    Decrement stock for every product of a recorded sale.

    Products that do not track stock are skipped.
    """
    policy = policy or sale_stock_policy()
    products = lock_products(session, quantities.keys())

    adjustments = []
    for product_id in sorted(quantities):
        product = products.get(product_id)
        if product is None:
            raise NotFoundError(f'Product with id={product_id} was not found')
        if not product.tracks_stock:
            logger.debug(f"Product {product.code} does not track stock, skipping reduction")
            continue

        adjustments.append(adjust_stock(
            session,
            product,
            whole_units(quantities[product_id], product.code),
            StockUpdateType.REMOVE,
            reason=StockMoveReason.SALE,
            policy=policy,
            reference_id=sale_id,
            notes=f'Sale #{sale_id}'
        ))

    return adjustments


def sold_units_by_product(session: Session, sale_id: int) -> Dict[int, int]:
    """Units a sale actually took out of stock, from its SALE movements."""
    moves = session.query(StockMove).filter(
        StockMove.reason == StockMoveReason.SALE,
        StockMove.reference_id == sale_id
    ).all()

    units: Dict[int, int] = {}
    for move in moves:
        units[move.product_id] = units.get(move.product_id, 0) - move.change_amount
    return {product_id: qty for product_id, qty in units.items() if qty > 0}


def restore_stock_after_sale_deleted(session: Session, sale_id: int) -> List[StockAdjustment]:
    """
    Give back what the sale removed (additive, independent of later changes).

    Products the sale did not decrement (untracked at sale time) get nothing
    back, even if they track stock now.
    """
    units = sold_units_by_product(session, sale_id)
    products = lock_products(session, units.keys())

    adjustments = []
    for product_id in sorted(units):
        product = products.get(product_id)
        if product is None:
            continue
        if not product.tracks_stock:
            logger.warning(f"Product {product.code} no longer tracks stock, not restoring sale #{sale_id}")
            continue

        adjustments.append(adjust_stock(
            session,
            product,
            units[product_id],
            StockUpdateType.ADD,
            reason=StockMoveReason.SALE_DELETED,
            policy=NegativeStockPolicy.ALLOW,
            reference_id=sale_id,
            notes=f'Sale #{sale_id} deleted'
        ))

    return adjustments


# =====================================================
# MANUAL OPERATIONS (own transaction)
# =====================================================

def update_product_stock(
    session: Session,
    product_id: int,
    quantity: int,
    update_type: StockUpdateType,
    updated_by: Optional[str] = None
) -> StockAdjustment:
    """
    Manual stock change from the stock management screen.

    Raises:
        NotFoundError: product does not exist.
        InsufficientStockError / InvalidArgumentError: result would be negative.
        ConflictError: product row is locked by another operation.
    """
    try:
        products = lock_products(session, [product_id])
        product = products.get(product_id)
        if not product:
            raise NotFoundError(f'Product with id={product_id} was not found')

        adjustment = adjust_stock(
            session,
            product,
            quantity,
            update_type,
            reason=StockMoveReason.MANUAL,
            policy=NegativeStockPolicy.REJECT,
            notes=f'Manual update by {updated_by}' if updated_by else None
        )
        session.commit()

    except Exception:
        session.rollback()
        raise

    invalidate_stock_cache()
    return adjustment


def bulk_update_stock(
    session: Session,
    updates: List[Dict[str, Any]],
    updated_by: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Apply several manual updates; each one succeeds or fails on its own.

    Args:
        updates: list of {'product_id': int, 'quantity': int, 'update_type': StockUpdateType}

    Returns:
        One result dict per update, with 'success' and 'message'.
    """
    results = []
    for update in updates:
        try:
            adjustment = update_product_stock(
                session,
                update['product_id'],
                update['quantity'],
                update['update_type'],
                updated_by=updated_by
            )
            result = adjustment.to_dict()
            result.update({'success': True, 'message': None})
        except (InvalidArgumentError, NotFoundError, ConflictError) as e:
            logger.warning(f"Bulk stock update failed for product {update.get('product_id')}: {e.message}")
            result = {
                'productId': update.get('product_id'),
                'updateType': update['update_type'].value,
                'success': False,
                'message': e.message,
            }
        results.append(result)
    return results


def update_low_stock_alert(session: Session, product_id: int, low_stock_alert: int) -> Product:
    """Set the low-stock alert threshold of a product."""
    if low_stock_alert is None or low_stock_alert < 0:
        raise InvalidArgumentError('Low stock alert cannot be negative')

    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError(f'Product with id={product_id} was not found')

    previous = product.low_stock_alert
    product.low_stock_alert = low_stock_alert
    session.commit()

    logger.info(f"Low stock alert for {product.code} changed from {previous} to {low_stock_alert}")
    invalidate_stock_cache()
    return product


# =====================================================
# MONITORING AND ALERTS
# =====================================================

def get_low_stock_products(session: Session, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Active, stock-tracked products at or below their alert threshold (cached)."""
    def load():
        query = session.query(Product).filter(
            Product.status == ProductStatus.ACTIVE,
            Product.stock.isnot(None),
            Product.stock <= Product.low_stock_alert
        ).order_by(Product.stock.asc(), Product.code.asc())
        if limit:
            query = query.limit(limit)
        return [stock_row(p) for p in query.all()]

    cache = _cache_or_none()
    if cache is None:
        return load()
    ttl = current_app.config.get('CACHE_STOCK_TTL', 60)
    return cache.memoize(STOCK_CACHE_MODULE, f'low:{limit or "all"}', load, ttl)


def get_negative_stock_products(session: Session) -> List[Dict[str, Any]]:
    """Active products sold on backorder (stock below zero)."""
    products = session.query(Product).filter(
        Product.status == ProductStatus.ACTIVE,
        Product.stock < 0
    ).order_by(Product.stock.asc(), Product.code.asc()).all()
    return [stock_row(p) for p in products]


def get_stock_update_types() -> Dict[str, str]:
    return {
        StockUpdateType.ADD.value: 'Add to current stock',
        StockUpdateType.REMOVE.value: 'Remove from current stock',
        StockUpdateType.SET.value: 'Set stock to an exact value',
    }


def stock_row(product: Product) -> Dict[str, Any]:
    return {
        'productId': product.id,
        'code': product.code,
        'description': product.description,
        'stock': product.stock,
        'lowStockAlert': product.low_stock_alert,
        'stockStatus': product.stock_status.value,
    }


def invalidate_stock_cache() -> None:
    """Drop cached stock views after a stock change."""
    cache = _cache_or_none()
    if cache is not None:
        cache.invalidate_module(STOCK_CACHE_MODULE)


def _cache_or_none():
    from atelier.services.cache_service import get_cache
    if not has_app_context():
        return None
    try:
        return get_cache()
    except RuntimeError:
        return None

"""
Sales service with transactional logic.
Handles sale recording, header updates and sale detail views.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from atelier.exceptions import InvalidArgumentError, NotFoundError
from atelier.models import (
    Customer, Location, PaymentMethod, Product, Sale, SaleProduct, normalize_payment_method
)
from atelier.services import pricing_service, stock_service
from atelier.services.cart_service import build_cart_line, get_active_product
from atelier.services.pricing_service import (
    CartLine, DiscountDirective, NoDiscount, PriceCalculationRequest, PriceCalculationResult
)
from atelier.utils.number_format import money_str

logger = logging.getLogger(__name__)


@dataclass
class SaleItem:
    product_id: int
    quantity: Decimal


@dataclass
class RecordSaleRequest:
    """Everything needed to record a sale."""
    location_id: int
    payment_method: Any
    items: List[SaleItem] = field(default_factory=list)
    is_wholesale: bool = False
    packaging_cost: Decimal = Decimal('0')
    discount: DiscountDirective = field(default_factory=NoDiscount)
    customer_id: Optional[int] = None
    sale_date: Optional[date] = None
    created_by: Optional[str] = None


@dataclass
class SaleUpdate:
    """
    Header fields of a sale that may be changed after recording.

    None means "keep the current value". Channel and lines are not here
    because they cannot change.
    """
    customer_id: Optional[int] = None
    location_id: Optional[int] = None
    payment_method: Any = None
    sale_date: Optional[date] = None
    packaging_cost: Optional[Decimal] = None
    discount: Optional[DiscountDirective] = None
    updated_by: Optional[str] = None


# =====================================================
# RECORD
# =====================================================

def record_sale(session: Session, request: RecordSaleRequest) -> Sale:
    """
    Record a sale in a single transaction.

    Steps:
    1. Resolve location and customer
    2. Lock products and build cart lines (duplicates merged)
    3. Price the cart
    4. Persist the header
    5. Decrement stock (sale policy)
    6. Persist lines with snapshots of the same locked rows
    7. Set the customer's first sale date
    8. Commit

    Raises:
        NotFoundError: location, customer or product missing.
        InvalidArgumentError: invalid quantities, amounts or discount.
        InsufficientStockError: stock would go negative under REJECT policy.
        ConflictError: product rows could not be locked (retryable).
    """
    if not request.items:
        raise InvalidArgumentError('A sale needs at least one product')

    try:
        # Step 1: Location and customer
        location = get_active_location(session, request.location_id)
        customer = get_customer(session, request.customer_id) if request.customer_id else None
        payment_method = _payment_method(request.payment_method)

        # Step 2: Lock products, then build cart lines from the locked rows
        quantities = merge_items(request.items)
        stock_service.lock_products(session, quantities.keys())
        products: Dict[int, Product] = {}
        lines: List[CartLine] = []
        for product_id, quantity in quantities.items():
            product = get_active_product(session, product_id)
            products[product_id] = product
            lines.append(build_cart_line(product, quantity, request.is_wholesale))

        # Step 3: Pricing
        result = pricing_service.calculate(PriceCalculationRequest(
            lines=lines,
            is_wholesale=request.is_wholesale,
            packaging_cost=_packaging(request.packaging_cost),
            discount=request.discount or NoDiscount()
        ))

        # Step 4: Header
        sale = Sale(
            sale_date=request.sale_date or date.today(),
            customer_id=customer.id if customer else None,
            location_id=location.id,
            payment_method=payment_method,
            is_wholesale=request.is_wholesale,
            created_by=request.created_by,
            last_updated_by=request.created_by
        )
        _apply_totals(sale, request.discount or NoDiscount(), result)
        session.add(sale)
        session.flush()

        # Step 5: Stock
        stock_service.reduce_stock_after_sale(session, quantities, sale.id)

        # Step 6: Lines with snapshots
        for line in lines:
            product = products[line.product_id]
            session.add(SaleProduct(
                sale_id=sale.id,
                product_id=product.id,
                quantity=line.quantity,
                product_description_snapshot=product.description,
                price_at_the_time=product.final_selling_price_retail,
                wholesale_price_at_the_time=product.final_selling_price_wholesale
            ))

        # Step 7: Customer history
        if customer and customer.first_sale_date is None:
            customer.first_sale_date = sale.sale_date

        session.commit()

    except Exception:
        session.rollback()
        raise

    session.refresh(sale)
    stock_service.invalidate_stock_cache()

    logger.info(
        f"Sale #{sale.id} recorded - location={location.name}, lines={len(lines)}, "
        f"wholesale={sale.is_wholesale}, total={sale.final_total_price}, by={request.created_by}"
    )
    return sale


def merge_items(items: List[SaleItem]) -> Dict[int, Decimal]:
    """Merge repeated products into one quantity, keeping first-seen order."""
    quantities: Dict[int, Decimal] = {}
    for item in items:
        quantity = Decimal(str(item.quantity))
        if quantity <= 0:
            raise InvalidArgumentError('Quantity must be greater than 0')
        quantities[item.product_id] = quantities.get(item.product_id, Decimal('0')) + quantity
    return quantities


# =====================================================
# UPDATE
# =====================================================

def update_sale(session: Session, sale_id: int, update: SaleUpdate) -> Sale:
    """
    Change header fields of a sale and recompute its totals.

    Totals come from the stored line snapshots, never from live product
    prices.

    Raises:
        NotFoundError: sale, customer or location missing.
        InvalidArgumentError: invalid packaging or discount.
    """
    try:
        sale = session.query(Sale).filter(Sale.id == sale_id).with_for_update().first()
        if not sale:
            raise NotFoundError(f'Sale with id={sale_id} was not found')

        if update.customer_id is not None:
            sale.customer_id = get_customer(session, update.customer_id).id
        if update.location_id is not None:
            sale.location_id = get_active_location(session, update.location_id).id
        if update.payment_method is not None:
            sale.payment_method = _payment_method(update.payment_method)
        if update.sale_date is not None:
            sale.sale_date = update.sale_date

        packaging_cost = sale.packaging_price if update.packaging_cost is None else update.packaging_cost
        discount = update.discount or pricing_service.discount_from_record(sale.discount_mode, sale.discount_value)

        result = price_sale(sale, packaging_cost=packaging_cost, discount=discount)
        _apply_totals(sale, discount, result)
        sale.last_updated_by = update.updated_by

        session.commit()

    except Exception:
        session.rollback()
        raise

    logger.info(
        f"Sale #{sale.id} updated - discount={sale.discount_amount}, "
        f"total={sale.final_total_price}, by={update.updated_by}"
    )
    return sale


# =====================================================
# READ
# =====================================================

def get_sale(session: Session, sale_id: int) -> Sale:
    sale = session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f'Sale with id={sale_id} was not found')
    return sale


def price_sale(sale: Sale, packaging_cost=None, discount: Optional[DiscountDirective] = None) -> PriceCalculationResult:
    """Run the pricing engine over a sale's snapshot lines."""
    lines = [
        CartLine(
            product_id=line.product_id,
            description=line.product_description_snapshot,
            quantity=Decimal(str(line.quantity)),
            unit_price=Decimal(str(line.price_for_channel(sale.is_wholesale)))
        )
        for line in sale.lines
    ]
    if discount is None:
        discount = pricing_service.discount_from_record(sale.discount_mode, sale.discount_value)

    return pricing_service.calculate(PriceCalculationRequest(
        lines=lines,
        is_wholesale=sale.is_wholesale,
        packaging_cost=_packaging(sale.packaging_price if packaging_cost is None else packaging_cost),
        discount=discount
    ))


def get_sale_detail(session: Session, sale_id: int) -> Dict[str, Any]:
    """Sale header, lines and price breakdown as a JSON-ready dict."""
    sale = get_sale(session, sale_id)
    return sale_detail(session, sale)


def sale_detail(session: Session, sale: Sale) -> Dict[str, Any]:
    breakdown = price_sale(sale)
    customer = session.get(Customer, sale.customer_id) if sale.customer_id else None
    location = session.get(Location, sale.location_id)

    return {
        'saleId': sale.id,
        'saleDate': sale.sale_date.isoformat(),
        'customerId': sale.customer_id,
        'customerName': customer.full_name if customer else None,
        'locationId': sale.location_id,
        'locationName': location.name if location else None,
        'paymentMethod': sale.payment_method.value,
        'isWholesale': sale.is_wholesale,
        'packagingCost': money_str(sale.packaging_price),
        'discountMode': sale.discount_mode.value,
        'discountValue': money_str(sale.discount_value),
        'suggestedTotalPrice': money_str(sale.suggested_total_price),
        'discountAmount': money_str(sale.discount_amount),
        'discountPercentage': money_str(sale.discount_percentage),
        'finalTotalPrice': money_str(sale.final_total_price),
        'subtotal': money_str(breakdown.subtotal),
        'unallocatedDiscount': money_str(breakdown.unallocated_discount),
        'lines': [line.to_dict() for line in breakdown.lines],
        'createdBy': sale.created_by,
        'lastUpdatedBy': sale.last_updated_by,
    }


def list_payment_methods() -> List[Dict[str, str]]:
    return [{'value': m.value, 'label': m.display_name} for m in PaymentMethod]


def list_active_locations(session: Session) -> List[Dict[str, Any]]:
    locations = session.query(Location).filter(Location.is_active.is_(True)).order_by(Location.name).all()
    return [{'id': loc.id, 'name': loc.name} for loc in locations]


def get_active_location(session: Session, location_id: int) -> Location:
    location = session.get(Location, location_id)
    if not location or not location.is_active:
        raise NotFoundError(f'Location with id={location_id} was not found')
    return location


def get_customer(session: Session, customer_id: int) -> Customer:
    customer = session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f'Customer with id={customer_id} was not found')
    return customer


# =====================================================
# HELPERS
# =====================================================

def _apply_totals(sale: Sale, discount: DiscountDirective, result: PriceCalculationResult) -> None:
    sale.packaging_price = result.packaging_cost
    sale.discount_mode = discount.mode
    sale.discount_value = discount.value
    sale.suggested_total_price = result.pre_discount_total
    sale.discount_amount = result.discount_amount
    sale.discount_percentage = result.effective_discount_percentage
    sale.final_total_price = result.final_total


def _packaging(value) -> Decimal:
    if value is None:
        return Decimal('0')
    return Decimal(str(value))


def _payment_method(value) -> PaymentMethod:
    try:
        return normalize_payment_method(value)
    except ValueError:
        raise InvalidArgumentError(f'Invalid payment method: {value}')

"""
Sale pricing engine.

Pure computation: takes priced cart lines, a packaging cost and a discount
directive and returns the full price breakdown. No database access.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Union

from atelier.exceptions import InvalidArgumentError
from atelier.models import DiscountMode
from atelier.utils.number_format import money_str, qty_str

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


def to_money(value) -> Decimal:
    """Round a value to currency precision (2 decimals, half-up)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# =====================================================
# DISCOUNT DIRECTIVE
# =====================================================

@dataclass(frozen=True)
class NoDiscount:
    """Sell at the suggested total."""

    mode = DiscountMode.NONE

    @property
    def value(self) -> Optional[Decimal]:
        return None


@dataclass(frozen=True)
class PercentageDiscount:
    """Discount expressed as a percentage of the pre-discount total."""
    value: Decimal

    mode = DiscountMode.PERCENTAGE


@dataclass(frozen=True)
class FinalPriceOverride:
    """Discount derived from the price the customer actually pays."""
    value: Decimal

    mode = DiscountMode.FINAL_PRICE


DiscountDirective = Union[NoDiscount, PercentageDiscount, FinalPriceOverride]


def discount_from_fields(discount_percentage=None, final_price=None) -> DiscountDirective:
    """
    Build a directive from the two optional request fields.

    Raises:
        InvalidArgumentError: if both fields are given.
    """
    if discount_percentage is not None and final_price is not None:
        raise InvalidArgumentError('Provide either a discount percentage or a final price, not both')
    if final_price is not None:
        return FinalPriceOverride(Decimal(str(final_price)))
    if discount_percentage is not None:
        return PercentageDiscount(Decimal(str(discount_percentage)))
    return NoDiscount()


def discount_from_record(mode: DiscountMode, value) -> DiscountDirective:
    """Rebuild the directive stored on a sale."""
    if mode == DiscountMode.PERCENTAGE:
        return PercentageDiscount(Decimal(str(value)))
    if mode == DiscountMode.FINAL_PRICE:
        return FinalPriceOverride(Decimal(str(value)))
    return NoDiscount()


# =====================================================
# REQUEST / RESULT
# =====================================================

@dataclass
class CartLine:
    """A priced cart line for the chosen channel."""
    product_id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    code: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.quantity * self.unit_price)

    def to_dict(self):
        return {
            'productId': self.product_id,
            'code': self.code,
            'description': self.description,
            'quantity': qty_str(self.quantity),
            'unitPrice': money_str(self.unit_price),
            'subtotal': money_str(self.subtotal),
        }


@dataclass
class PriceCalculationRequest:
    lines: List[CartLine] = field(default_factory=list)
    is_wholesale: bool = False
    packaging_cost: Decimal = ZERO
    discount: DiscountDirective = field(default_factory=NoDiscount)


@dataclass
class PricedLine:
    """A cart line with its share of the discount."""
    product_id: int
    description: str
    code: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    allocated_discount: Decimal
    final_price: Decimal

    @property
    def effective_unit_price(self) -> Decimal:
        if not self.quantity:
            return ZERO
        return to_money(self.final_price / self.quantity)

    def to_dict(self):
        return {
            'productId': self.product_id,
            'code': self.code,
            'description': self.description,
            'quantity': qty_str(self.quantity),
            'unitPrice': money_str(self.unit_price),
            'subtotal': money_str(self.subtotal),
            'allocatedDiscount': money_str(self.allocated_discount),
            'finalPrice': money_str(self.final_price),
            'effectiveUnitPrice': money_str(self.effective_unit_price),
        }


@dataclass
class PriceCalculationResult:
    subtotal: Decimal
    packaging_cost: Decimal
    pre_discount_total: Decimal
    discount_amount: Decimal
    final_total: Decimal
    effective_discount_percentage: Decimal
    lines: List[PricedLine]
    # Discount that exceeds the line subtotal and is absorbed by packaging
    unallocated_discount: Decimal = ZERO
    is_wholesale: bool = False

    def to_dict(self):
        return {
            'isWholesale': self.is_wholesale,
            'subtotal': money_str(self.subtotal),
            'packagingCost': money_str(self.packaging_cost),
            'preDiscountTotal': money_str(self.pre_discount_total),
            'discountAmount': money_str(self.discount_amount),
            'discountPercentage': money_str(self.effective_discount_percentage),
            'finalTotal': money_str(self.final_total),
            'unallocatedDiscount': money_str(self.unallocated_discount),
            'lines': [line.to_dict() for line in self.lines],
        }


# =====================================================
# ENGINE
# =====================================================

def calculate(request: PriceCalculationRequest) -> PriceCalculationResult:
    """
    Compute the full price breakdown for a cart.

    Steps:
    1. Line subtotals (quantity x channel unit price, rounded to cents)
    2. Pre-discount total = subtotal + packaging
    3. Resolve the discount directive
    4. Final total = pre-discount total - discount
    5. Allocate the discount to lines proportionally to their subtotal

    Raises:
        InvalidArgumentError: negative quantity/price/packaging, percentage
            outside [0, 100] or negative final price.
    """
    _validate_request(request)

    # Step 1: Line subtotals
    subtotal = sum((line.subtotal for line in request.lines), ZERO)

    # Step 2: Packaging
    packaging_cost = to_money(request.packaging_cost or ZERO)
    pre_discount_total = subtotal + packaging_cost

    # Step 3: Discount
    discount_amount, effective_percentage = _resolve_discount(request.discount, pre_discount_total)

    # Step 4: Final total
    final_total = pre_discount_total - discount_amount

    # Step 5: Allocation
    allocatable = min(discount_amount, subtotal)
    allocations = allocate_discount([line.subtotal for line in request.lines], allocatable)

    priced_lines = []
    for line, allocated in zip(request.lines, allocations):
        line_subtotal = line.subtotal
        priced_lines.append(PricedLine(
            product_id=line.product_id,
            description=line.description,
            code=line.code,
            quantity=line.quantity,
            unit_price=to_money(line.unit_price),
            subtotal=line_subtotal,
            allocated_discount=allocated,
            final_price=line_subtotal - allocated
        ))

    logger.debug(
        f"Pricing calculated - subtotal={subtotal}, packaging={packaging_cost}, "
        f"discount={discount_amount} ({effective_percentage}%), final={final_total}"
    )

    return PriceCalculationResult(
        subtotal=subtotal,
        packaging_cost=packaging_cost,
        pre_discount_total=pre_discount_total,
        discount_amount=discount_amount,
        final_total=final_total,
        effective_discount_percentage=effective_percentage,
        lines=priced_lines,
        unallocated_discount=discount_amount - allocatable,
        is_wholesale=request.is_wholesale
    )


def allocate_discount(subtotals: List[Decimal], discount: Decimal) -> List[Decimal]:
    """
    Split a discount across lines proportionally to their subtotals.

    Each share is rounded to cents; the rounding remainder goes to the line
    with the largest subtotal so the shares add up to exactly `discount`.
    """
    total = sum(subtotals, ZERO)
    if not subtotals or total <= 0 or discount <= 0:
        return [ZERO for _ in subtotals]

    shares = [to_money(amount * discount / total) for amount in subtotals]

    remainder = discount - sum(shares, ZERO)
    if remainder:
        largest = max(range(len(subtotals)), key=lambda i: subtotals[i])
        shares[largest] += remainder

    return shares


def calculate_discount_percentage(pre_discount_total: Decimal, discount_amount: Decimal) -> Decimal:
    """Discount as a percentage of the pre-discount total (0 for an empty total)."""
    if not pre_discount_total:
        return ZERO
    return to_money(discount_amount * HUNDRED / pre_discount_total)


def _resolve_discount(directive: DiscountDirective, pre_discount_total: Decimal):
    """Return (discount_amount, effective_percentage) for a directive."""
    if isinstance(directive, FinalPriceOverride):
        # An override above the suggested total is no discount, never a markup
        discount_amount = max(pre_discount_total - to_money(directive.value), ZERO)
        return discount_amount, calculate_discount_percentage(pre_discount_total, discount_amount)

    if isinstance(directive, PercentageDiscount):
        discount_amount = to_money(pre_discount_total * directive.value / HUNDRED)
        return discount_amount, to_money(directive.value)

    return ZERO, ZERO


def _validate_request(request: PriceCalculationRequest) -> None:
    for line in request.lines:
        if line.quantity is None or line.quantity < 0:
            raise InvalidArgumentError(f'Quantity for product {line.product_id} cannot be negative')
        if line.unit_price is None or line.unit_price < 0:
            raise InvalidArgumentError(f'Price for product {line.product_id} cannot be negative')

    if request.packaging_cost is not None and request.packaging_cost < 0:
        raise InvalidArgumentError('Packaging cost cannot be negative')

    directive = request.discount
    if isinstance(directive, PercentageDiscount):
        if directive.value is None or not (0 <= directive.value <= 100):
            raise InvalidArgumentError('Discount percentage must be between 0 and 100')
    elif isinstance(directive, FinalPriceOverride):
        if directive.value is None or directive.value < 0:
            raise InvalidArgumentError('Final price cannot be negative')
    elif not isinstance(directive, NoDiscount):
        raise InvalidArgumentError('Unknown discount directive')

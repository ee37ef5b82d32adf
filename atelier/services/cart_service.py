"""Cart item resolution and cart pricing preview (read-only)."""
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from atelier.exceptions import InvalidArgumentError, NotFoundError
from atelier.models import Product
from atelier.services import pricing_service
from atelier.services.pricing_service import (
    CartLine, DiscountDirective, NoDiscount, PriceCalculationRequest, PriceCalculationResult
)


def get_active_product(session: Session, product_id: int) -> Product:
    """
    Get a product that can be sold.

    Raises:
        NotFoundError: if the product does not exist or is archived.
    """
    product = session.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError(f'Product with id={product_id} was not found')
    return product


def build_cart_line(product: Product, quantity: Decimal, is_wholesale: bool) -> CartLine:
    """Price a product for the chosen channel."""
    if quantity is None or quantity <= 0:
        raise InvalidArgumentError('Quantity must be greater than 0')

    return CartLine(
        product_id=product.id,
        description=product.description,
        code=product.code,
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(product.price_for_channel(is_wholesale)))
    )


def resolve_cart_item(session: Session, product_id: int, quantity: Decimal, is_wholesale: bool) -> CartLine:
    """
    Resolve (product, quantity, channel) into a priced cart line.

    Preview only: stock is neither checked nor reserved here.

    Raises:
        NotFoundError: product missing or archived.
        InvalidArgumentError: quantity <= 0.
    """
    if quantity is None or quantity <= 0:
        raise InvalidArgumentError('Quantity must be greater than 0')
    product = get_active_product(session, product_id)
    return build_cart_line(product, quantity, is_wholesale)


def calculate_cart_pricing(
    session: Session,
    items: List[Dict[str, Any]],
    is_wholesale: bool,
    packaging_cost: Decimal = Decimal('0'),
    discount: DiscountDirective = None
) -> PriceCalculationResult:
    """
    Resolve every cart item and run the pricing engine over them.

    Args:
        items: list of {'product_id': int, 'quantity': Decimal}
    """
    lines = [
        resolve_cart_item(session, item['product_id'], item['quantity'], is_wholesale)
        for item in items
    ]

    return pricing_service.calculate(PriceCalculationRequest(
        lines=lines,
        is_wholesale=is_wholesale,
        packaging_cost=packaging_cost if packaging_cost is not None else Decimal('0'),
        discount=discount or NoDiscount()
    ))
